"""
Prompt context assembly.

Turns the project aggregate into the text context handed to every model
call: static project facts, accumulated prior-phase content, and the
serialized document set used by the agent pipelines.
"""

from dataclasses import dataclass

from engineering_partner.project.models import DevelopmentMode, Phase, PhaseStatus, Project

SECTION_SEPARATOR = "\n\n---\n\n"


@dataclass(frozen=True)
class ProjectDocument:
    """A single document as seen by the agents."""

    id: str
    name: str
    content: str


# =============================================================================
# PROJECT CONTEXT
# =============================================================================


def base_prompt_context(project: Project) -> str:
    """Static project facts shared by every prompt."""
    context = (
        f"## Project: {project.name}\n"
        f"### Development Mode: {project.development_mode.value}\n"
        f"### Disciplines: {', '.join(project.disciplines)}\n"
        f"### Requirements:\n{project.requirements}\n"
        f"### Constraints:\n{project.constraints}"
    )
    if project.custom_concept:
        context += f"\n### Custom Guiding Concept:\n{project.custom_concept}"
    return context


def _completed_with_output(phase: Phase) -> bool:
    return bool(phase.outputs) and phase.status == PhaseStatus.COMPLETED


def prior_phase_context(project: Project, phase_id: str) -> str:
    """Content of completed phases that precede ``phase_id``.

    When a compacted context exists it replaces the Requirements phase
    (the first phase) and accumulation starts from the second phase.
    """
    index = project.phase_index(phase_id)
    if index < 1:
        return ""

    base = ""
    start = 0
    if project.compacted_context:
        base = (
            "## COMPACTED PROJECT CONTEXT (from Requirements Phase):\n"
            f"{project.compacted_context}\n\n"
        )
        start = 1

    sections = [
        f"## Context from Previous Phase ({phase.name}):\n{phase.current_content}"
        for phase in project.phases[start:index]
        if _completed_with_output(phase)
    ]
    return base + SECTION_SEPARATOR.join(sections)


def full_project_context(project: Project) -> str:
    """Project facts plus every completed phase's current content."""
    parts = [base_prompt_context(project)]
    phases = project.phases
    if project.compacted_context:
        parts.append(
            "## COMPACTED PROJECT CONTEXT (from Requirements Phase):\n"
            f"{project.compacted_context}"
        )
        phases = phases[1:]

    for phase in phases:
        if _completed_with_output(phase):
            parts.append(f"## Phase: {phase.name}\n\n{phase.current_content}")

    return SECTION_SEPARATOR.join(parts) + SECTION_SEPARATOR


# =============================================================================
# DOCUMENT SERIALIZATION
# =============================================================================


def serialize_project_documents(
    project: Project,
    include_meta: bool = True,
) -> list[ProjectDocument]:
    """Flatten the project into named documents with their current content.

    Args:
        project: Project to serialize.
        include_meta: Whether to include textual meta documents.

    Returns:
        Documents in phase order; ids are ``phase-<id>`` or ``sprint-<id>``.
    """
    docs: list[ProjectDocument] = []
    for phase in project.phases:
        if phase.outputs:
            docs.append(
                ProjectDocument(
                    id=f"phase-{phase.id}",
                    name=phase.name,
                    content=phase.current_content or "",
                )
            )
        for item in phase.work_items:
            if item.outputs:
                docs.append(
                    ProjectDocument(
                        id=f"sprint-{item.id}",
                        name=f"{phase.name} / {item.name}",
                        content=item.current_content or "",
                    )
                )

    if include_meta:
        for meta in project.meta_documents:
            if meta.is_textual:
                docs.append(ProjectDocument(id=meta.id, name=meta.name, content=meta.content))

    return docs


def render_documents(docs: list[ProjectDocument]) -> str:
    """Render documents as a single delimited context block."""
    return "\n\n".join(f"--- DOCUMENT: {doc.name} ---\n{doc.content}" for doc in docs)


# =============================================================================
# SYSTEM INSTRUCTIONS
# =============================================================================


def system_instruction(base: str, mode: DevelopmentMode) -> str:
    """Append the verbosity directive matching the development mode."""
    if mode == DevelopmentMode.RAPID:
        return (
            f"{base}\nIMPORTANT: Respond in a brief, accurate, and cryptic manner, "
            "using concise technical language. Omit lengthy explanations."
        )
    return (
        f"{base}\nIMPORTANT: Your output must be exceptionally verbose, detailed, and "
        "comprehensive. Provide deep specifications and thorough explanations. Do not be "
        "concise; err on the side of too much detail."
    )
