"""
Engineering Partner - AI-driven engineering lifecycle documentation.

Generates, revises and exports multi-phase engineering project documents
through dependency-scheduled model calls and Orchestrator / Doer / QA agent
pipelines.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
