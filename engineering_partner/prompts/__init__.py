"""Prompt management - templates for every model call."""

from engineering_partner.prompts.templates import (
    ALL_TEMPLATES,
    DOCUMENT_OBJECTIVES,
    PromptTemplate,
    get_template,
    list_templates,
)

__all__ = [
    "ALL_TEMPLATES",
    "DOCUMENT_OBJECTIVES",
    "PromptTemplate",
    "get_template",
    "list_templates",
]
