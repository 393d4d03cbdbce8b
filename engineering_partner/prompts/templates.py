"""
Prompt templates for Engineering Partner model calls.

This module provides the system instructions and user prompts for every
model call: phase and sprint document generation, the change-impact and
export agent pipelines, the iterative risk/resource search, and the
single-call project insights.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# =============================================================================
# TEMPLATE MODEL
# =============================================================================


class PromptTemplate(BaseModel):
    """A reusable prompt template."""

    model_config = ConfigDict(frozen=True)

    name: str
    template: str
    description: str = ""
    variables: list[str] = Field(default_factory=list)

    def format(self, **kwargs: Any) -> str:
        """Format the template with provided values.

        Args:
            **kwargs: Template variable values.

        Returns:
            Formatted prompt string.
        """
        return self.template.format(**kwargs)

    def get_missing_variables(self, **kwargs: Any) -> list[str]:
        """Get list of variables not provided.

        Args:
            **kwargs: Provided variables.

        Returns:
            List of missing variable names.
        """
        return [v for v in self.variables if v not in kwargs]


# =============================================================================
# PHASE AND SPRINT GENERATION
# =============================================================================


PHASE_DOCUMENT_SYSTEM = PromptTemplate(
    name="phase_document_system",
    description="System instruction for a standard phase document",
    template="""You are an expert AI engineering assistant with deep expertise in {disciplines}. Your task is to generate a comprehensive, professional engineering document for a specific project phase. The output must be well-structured, detailed, and formatted in Markdown.""",
    variables=["disciplines"],
)


PHASE_DOCUMENT_PROMPT = PromptTemplate(
    name="phase_document",
    description="Generate the document for a phase without sub-documents",
    template="""{base_context}
{prior_context}

---

## Current Phase to Generate: {phase_name}
Description: {phase_description}

## Tuning Parameters:
{tuning}

## Task:
Generate the complete engineering documentation for this phase, with deep technical specifications. Adhere to the project details and tuning parameters provided. Use terminology appropriate for the specified engineering disciplines. At the very end of the document, add a '## Validation' section containing a single specific goal for this phase and a short checklist (3-5 items) to verify the goal has been met.""",
    variables=["base_context", "prior_context", "phase_name", "phase_description", "tuning"],
)


SUB_DOCUMENT_SYSTEM = PromptTemplate(
    name="sub_document_system",
    description="System instruction for one document inside a document phase",
    template="""You are an expert AI engineering assistant with deep expertise in {disciplines}. Your task is to generate the "{document_name}" document for the "{phase_name}" phase. Your output must be in professional, well-formatted Markdown.""",
    variables=["disciplines", "document_name", "phase_name"],
)


SUB_DOCUMENT_PROMPT = PromptTemplate(
    name="sub_document",
    description="Generate one document inside a document phase",
    template="""{base_context}
{prior_context}
{sibling_context}

---

## Task:
Generate the **{document_name}** document for the **{phase_name}** phase as a detailed technical document based on the objective below:
"{objective}"{notes}

## Tuning Parameters:
{tuning}

Use terminology appropriate for the specified engineering disciplines. At the very end of the document, add a '## Validation' section containing a single specific goal for this document and a short checklist (3-5 items) to verify the goal has been met.""",
    variables=[
        "base_context",
        "prior_context",
        "sibling_context",
        "document_name",
        "phase_name",
        "objective",
        "notes",
        "tuning",
    ],
)


CRITICAL_DESIGN_SYSTEM = PromptTemplate(
    name="critical_design_system",
    description="System instruction for breaking Critical Design into sprints",
    template="""You are an expert AI engineering assistant with deep expertise in {disciplines}. Your task is to break down the "Critical Design" phase into a preliminary design specification and a series of development sprints. The sprints must include dedicated sprints for "Design for Manufacturing and Assembly (DFMA)" and "Failure Modes and Effects Analysis (FMEA)". Determine the logical dependencies between sprints by listing the names of prerequisite sprints in each sprint's 'dependencies' array. The final sprint must always be named 'Design Review Checklist'. The preliminary specification must be a detailed Markdown document and sprint descriptions must be comprehensive.""",
    variables=["disciplines"],
)


CRITICAL_DESIGN_PROMPT = PromptTemplate(
    name="critical_design",
    description="Generate the preliminary spec and sprint plan",
    template="""{base_context}
{prior_context}

---

## Task:
Generate the preliminary design specification and a list of development sprints based on the project details. Ensure DFMA and FMEA sprints are included, and define logical dependencies between sprints by name.""",
    variables=["base_context", "prior_context"],
)


SPRINT_SYSTEM = PromptTemplate(
    name="sprint_system",
    description="System instruction for a generic sprint specification",
    template="""You are an expert AI engineering assistant with deep expertise in {disciplines}. Your task is to generate a detailed technical specification.""",
    variables=["disciplines"],
)


FMEA_SPRINT_SYSTEM = PromptTemplate(
    name="fmea_sprint_system",
    description="System instruction for an FMEA sprint",
    template="""You are an expert AI reliability engineer with deep expertise in {disciplines}. Your task is to generate a formal Failure Modes and Effects Analysis (FMEA).""",
    variables=["disciplines"],
)


DFMA_SPRINT_SYSTEM = PromptTemplate(
    name="dfma_sprint_system",
    description="System instruction for a DFMA sprint",
    template="""You are an expert AI manufacturing engineer with deep expertise in {disciplines}. Your task is to generate a formal Design for Manufacturing and Assembly (DFMA) analysis.""",
    variables=["disciplines"],
)


SPRINT_SPECIFICATION_PROMPT = PromptTemplate(
    name="sprint_specification",
    description="Generate the technical spec and deliverables for one sprint",
    template="""## Context:
{sprint_context}

---

## Current Sprint: {sprint_name}
Description: {sprint_description}

## Task:
Generate the technical specification and a list of specific deliverables. Use terminology appropriate for the specified engineering disciplines.

## Tuning Parameters:
{tuning}
{notes}

At the very end of the technicalSpec markdown, add a '## Validation' section containing a single specific goal for this sprint and a short checklist (3-5 items) to verify the goal has been met.""",
    variables=["sprint_context", "sprint_name", "sprint_description", "tuning", "notes"],
)


CHECKLIST_SYSTEM = PromptTemplate(
    name="checklist_system",
    description="System instruction for design review checklists",
    template="""You are an AI engineering review assistant. Based on the provided document, generate a concise checklist of 5-7 critical verification items.""",
)


CHECKLIST_PROMPT = PromptTemplate(
    name="checklist",
    description="Generate a design review checklist for a phase document",
    template="""## Engineering Document for Review:

{document}

## Task:
Generate the design review checklist.""",
    variables=["document"],
)


# Objectives for the standard documents of the document phases, keyed by
# (phase name, document name).
DOCUMENT_OBJECTIVES: dict[tuple[str, str], str] = {
    ("Requirements", "Project Scope"): (
        "Generate a professional Project Scope document. The document must begin with an "
        "'Introduction', immediately followed by a 'Project Objectives' section. Base the content "
        "on the project's core details, guiding concept, and disciplines."
    ),
    ("Requirements", "Statement of Work (SOW)"): (
        "Generate a formal Statement of Work (SOW) describing the work to be performed, "
        "deliverables, milestones, acceptance criteria and responsibilities."
    ),
    ("Requirements", "Technical Requirements Specification"): (
        "Generate a detailed Technical Requirements Specification with uniquely numbered, "
        "measurable and verifiable functional, performance, interface and environmental requirements."
    ),
    ("Preliminary Design", "Conceptual Design Options"): (
        "Generate at least three distinct, high-level conceptual design options, each with its "
        "architecture, key components, advantages and drawbacks."
    ),
    ("Preliminary Design", "Trade Study Analysis"): (
        "Generate a formal Trade Study Analysis comparing the conceptual design options against "
        "weighted criteria, with a scoring matrix and a justified recommendation."
    ),
    ("Testing", "Verification Plan"): (
        "Generate a formal Verification Plan mapping each technical requirement to a verification "
        "method (test, analysis, inspection, demonstration) with procedures and pass criteria."
    ),
    ("Testing", "Validation Plan"): (
        "Generate a formal Validation Plan describing how the finished system will be validated "
        "against user needs in its operational environment."
    ),
}


# =============================================================================
# CHANGE-IMPACT PIPELINE
# =============================================================================


CHANGE_ORCHESTRATOR_SYSTEM = PromptTemplate(
    name="change_orchestrator_system",
    description="Orchestrator: identify documents impacted by a change request",
    template="""You are an Orchestrator Agent. Your task is to analyze a change request and identify which documents are impacted. Return a JSON array of the names of the documents that need editing, using the names exactly as given. The project has these standards to follow: {standards}.""",
    variables=["standards"],
)


CHANGE_ORCHESTRATOR_PROMPT = PromptTemplate(
    name="change_orchestrator",
    description="Orchestrator input for change-impact analysis",
    template="""Project Context:
{context}

Change Request: "{change_request}"

Identify the impacted documents.""",
    variables=["context", "change_request"],
)


CHANGE_DOER_SYSTEM = PromptTemplate(
    name="change_doer_system",
    description="Doer: rewrite one document for a change request",
    template="""You are a Doer Agent, an expert technical writer. Your task is to edit a document based on a change request, using the full project context. You must adhere to these compliance standards: {standards}. Return only the complete, updated document text. Do not add any commentary.""",
    variables=["standards"],
)


CHANGE_DOER_PROMPT = PromptTemplate(
    name="change_doer",
    description="Doer input for one impacted document",
    template="""Full Project Context:
{context}

Document to Edit: "{document_name}"
---BEGIN DOCUMENT---
{original}
---END DOCUMENT---

Change Request: "{change_request}"
{revision_notes}
Rewrite the document to incorporate the change.""",
    variables=["context", "document_name", "original", "change_request", "revision_notes"],
)


CHANGE_QA_SYSTEM = PromptTemplate(
    name="change_qa_system",
    description="QA: verify an edited document",
    template="""You are a QA Agent. You verify edits. Compare the original and new document versions against the change request and compliance standards. Respond in JSON with 'approved' (boolean) and 'feedback' (string). Feedback is required if not approved.""",
)


CHANGE_QA_PROMPT = PromptTemplate(
    name="change_qa",
    description="QA input for an edited document",
    template="""Compliance Standards: {standards}
Change Request: "{change_request}"

Original Document:
{original}

New Document:
{new_content}

Verify the change.""",
    variables=["standards", "change_request", "original", "new_content"],
)


# =============================================================================
# EXPORT PIPELINE
# =============================================================================


EXPORT_ORCHESTRATOR_SYSTEM = PromptTemplate(
    name="export_orchestrator_system",
    description="Orchestrator: plan data extraction for an external tool",
    template="""You are an Orchestrator Agent. Your task is to analyze {scope} and create a plan to export it for an external tool. Based on the target tool's requirements, determine what specific data points (e.g., dimensions, component names, connections, materials) need to be extracted from the project documentation. Your output should be a concise, step-by-step plan for the Doer agent, specifying which documents are most relevant for each piece of data.""",
    variables=["scope"],
)


EXPORT_ORCHESTRATOR_PROMPT = PromptTemplate(
    name="export_orchestrator",
    description="Orchestrator input for an export",
    template="""{subject}

Target Tool: {tool_name}
Target Tool Requirements:
{format_description}

Plan the data extraction and formatting for the Doer Agent.""",
    variables=["subject", "tool_name", "format_description"],
)


EXPORT_DOER_SYSTEM = PromptTemplate(
    name="export_doer_system",
    description="Doer: produce the raw export file",
    template="""You are a Doer Agent, an expert in generating configuration and script files for engineering software like {tool_name}. Follow the plan from the Orchestrator to generate a file compatible with the target tool. Read the provided project documents to find the necessary information. Your output must be ONLY the raw file content, exactly as specified in the target format. Do not add any commentary, explanations, or markdown code blocks.""",
    variables=["tool_name"],
)


EXPORT_DOER_PROMPT = PromptTemplate(
    name="export_doer",
    description="Doer input for an export",
    template="""Orchestrator's Plan:
{plan}

Full Project Documentation:
{context}

Target Tool: {tool_name}
Target File Format: {output_format}
{revision_notes}
Generate the file content now.""",
    variables=["plan", "context", "tool_name", "output_format", "revision_notes"],
)


EXPORT_QA_SYSTEM = PromptTemplate(
    name="export_qa_system",
    description="QA: validate an export file",
    template="""You are a QA Agent. You must validate a generated file against the target tool's requirements. Respond ONLY with a JSON object containing 'approved' (boolean) and 'feedback' (string). Feedback is required if not approved.""",
)


EXPORT_QA_PROMPT = PromptTemplate(
    name="export_qa",
    description="QA input for an export file",
    template="""Generated File Content:
{content}

Target Tool: {tool_name}
Validation Criteria: {acceptance_criteria}

Does the file meet the criteria?""",
    variables=["content", "tool_name", "acceptance_criteria"],
)


# =============================================================================
# ITERATIVE SEARCH (RISKS / RESOURCES)
# =============================================================================


RISK_ORCHESTRATOR_SYSTEM = PromptTemplate(
    name="risk_orchestrator_system",
    description="Orchestrator: pick the next risk topic",
    template="""You are an Orchestrator Agent. Your goal is to identify the next most critical potential risk for the project based on the provided documents and the risks already found. Formulate a specific, focused topic for the Doer agent to investigate. Be concise.""",
)


RISK_DOER_SYSTEM = PromptTemplate(
    name="risk_doer_system",
    description="Doer: formulate one risk",
    template="""You are a Doer Agent, an expert risk analyst. Based on the task from the orchestrator and the project context, identify and formulate a single, specific risk. You MUST provide a title, category, severity, a detailed description, and a concrete mitigation plan.""",
)


RISK_QA_SYSTEM = PromptTemplate(
    name="risk_qa_system",
    description="QA: validate a risk and decide whether to stop",
    template="""You are a QA Agent. Your job is to validate the proposed risk. Is it realistic? Is the mitigation plan sensible? Based on this risk and the number of iterations, should we stop searching for more risks? A high iteration count or finding a 'Low' severity risk are good reasons to stop. Respond with JSON containing 'approved', 'feedback' and 'shouldStop'.""",
)


RESOURCE_ORCHESTRATOR_SYSTEM = PromptTemplate(
    name="resource_orchestrator_system",
    description="Orchestrator: pick the next resource to investigate",
    template="""You are an Orchestrator Agent. Your goal is to find required resources (software, equipment) and their sources. Based on the project documents and resources already found, identify the next most critical resource category or component to investigate. Be specific and concise.""",
)


RESOURCE_DOER_SYSTEM = PromptTemplate(
    name="resource_doer_system",
    description="Doer: formulate one resource",
    template="""You are a Doer Agent, an expert engineering resource planner. Based on the task from the orchestrator and the project context, identify a single, specific resource. You MUST provide its name, a source or vendor, its category ('Software', 'Equipment' or 'Other'), and a brief justification.""",
)


RESOURCE_QA_SYSTEM = PromptTemplate(
    name="resource_qa_system",
    description="QA: validate a resource and decide whether to stop",
    template="""You are a QA Agent. Validate the proposed resource. Is it realistic? Is the source appropriate? Is the justification sound? Based on this and the iteration count, should we stop searching? A high iteration count or finding an obvious resource are good reasons to stop. Respond with JSON containing 'approved', 'feedback' and 'shouldStop'.""",
)


SEARCH_ORCHESTRATOR_PROMPT = PromptTemplate(
    name="search_orchestrator",
    description="Orchestrator input for one search iteration",
    template="""Project Context:
{context}

{label}s Found So Far:
{found}

Identify the next single, most important area to investigate for a new {label_lower}.""",
    variables=["context", "label", "found", "label_lower"],
)


SEARCH_DOER_PROMPT = PromptTemplate(
    name="search_doer",
    description="Doer input for one search iteration",
    template="""Project Context:
{context}

Task: {task}

Formulate the {label_lower} as a JSON object.""",
    variables=["context", "task", "label_lower"],
)


SEARCH_QA_PROMPT = PromptTemplate(
    name="search_qa",
    description="QA input for one search iteration",
    template="""Proposed {label}:
{candidate}

Total Iterations So Far: {iteration}/{max_iterations}

Validate the {label_lower} and decide if the search should stop.""",
    variables=["label", "candidate", "iteration", "max_iterations", "label_lower"],
)


# =============================================================================
# PROJECT INSIGHTS
# =============================================================================


QUERY_SYSTEM = PromptTemplate(
    name="query_system",
    description="Answer questions strictly from project context",
    template="""You are an AI assistant with complete knowledge of the provided engineering project. Answer the user's question based *only* on the context provided. If the answer is not in the context, say "I cannot answer that based on the available project documentation.\"""",
)


QUERY_PROMPT = PromptTemplate(
    name="query",
    description="Natural-language question about the project",
    template="""## Project Context:
{context}

## User Question:
{question}""",
    variables=["context", "question"],
)


RISK_ASSESSMENT_SYSTEM = PromptTemplate(
    name="risk_assessment_system",
    description="Single-shot risk assessment",
    template="""You are an expert AI risk analyst specializing in {disciplines} projects. Analyze the provided documentation and identify 3-5 key risks. For each risk, provide a title, category, severity, a detailed description, and a comprehensive mitigation strategy.""",
    variables=["disciplines"],
)


RISK_ASSESSMENT_PROMPT = PromptTemplate(
    name="risk_assessment",
    description="Documentation to assess for risks",
    template="""## Project Documentation:
{context}

## Task:
Identify the key project risks.""",
    variables=["context"],
)


RECOMMENDATIONS_SYSTEM = PromptTemplate(
    name="recommendations_system",
    description="Actionable recommendations from documentation and metrics",
    template="""You are an expert AI engineering consultant specializing in {disciplines}. Based on the project documentation and current performance metrics, provide 2-3 actionable recommendations to improve the project's execution. Focus on methodology, process, tools, or risk mitigation.""",
    variables=["disciplines"],
)


RECOMMENDATIONS_PROMPT = PromptTemplate(
    name="recommendations",
    description="Context and metrics for recommendations",
    template="""## Project Context & Metrics:
{context}
## Current Project Metrics:
{metrics}

## Task:
Generate actionable recommendations.""",
    variables=["context", "metrics"],
)


COMPACT_CONTEXT_SYSTEM = PromptTemplate(
    name="compact_context_system",
    description="Compress requirements documentation into dense context",
    template="""You are an AI specializing in context compression for large language models. Condense the provided project documents into a dense, token-efficient block of text. Retain ALL key technical specifications, constraints, component names, performance metrics, and specific numbers or values. Use symbols, abbreviations, and a compact key:value structure to maximize information density. This output will be the sole context for later tasks, so it must be complete and accurate. Do not use conversational language or Markdown formatting.""",
)


COMPACT_CONTEXT_PROMPT = PromptTemplate(
    name="compact_context",
    description="Requirements documentation to compress",
    template="""{base_context}

## Requirements Phase Documentation:

{requirements}""",
    variables=["base_context", "requirements"],
)


PROJECT_SUMMARY_SYSTEM = PromptTemplate(
    name="project_summary_system",
    description="Executive summary of the whole project",
    template="""You are an expert AI engineering program manager with knowledge of {disciplines}. Write an executive summary of the project in Markdown covering objectives, the selected design, current status of each phase, key risks and next steps.""",
    variables=["disciplines"],
)


PROJECT_SUMMARY_PROMPT = PromptTemplate(
    name="project_summary",
    description="Project documentation to summarize",
    template="""## Full Project Documentation:
{context}

## Task:
Write the executive summary.""",
    variables=["context"],
)


COMPARE_VERSIONS_SYSTEM = PromptTemplate(
    name="compare_versions_system",
    description="Explain differences between two document versions",
    template="""You are an expert AI technical reviewer. Compare two versions of an engineering document and describe, in Markdown, what changed, why it matters technically, and any inconsistencies the change introduces.""",
)


COMPARE_VERSIONS_PROMPT = PromptTemplate(
    name="compare_versions",
    description="Two versions of one document",
    template="""## Document: {document_name}

## Version {old_version} ({old_reason}):
{old_content}

## Version {new_version} ({new_reason}):
{new_content}

## Task:
Summarize the differences.""",
    variables=[
        "document_name",
        "old_version",
        "old_reason",
        "old_content",
        "new_version",
        "new_reason",
        "new_content",
    ],
)


INITIAL_REQUIREMENTS_SYSTEM = PromptTemplate(
    name="initial_requirements_system",
    description="Project setup: draft requirements",
    template="""You are an expert AI engineering assistant specializing in requirements gathering. Your task is to generate a detailed, professional technical requirements document in Markdown.""",
)


INITIAL_CONSTRAINTS_SYSTEM = PromptTemplate(
    name="initial_constraints_system",
    description="Project setup: draft constraints",
    template="""You are an expert AI engineering assistant specializing in identifying project constraints. Your task is to generate a detailed list of potential project constraints in Markdown.""",
)


INITIAL_DOCUMENT_PROMPT = PromptTemplate(
    name="initial_document",
    description="Project setup input",
    template="""## Project: {name}
### Description:
{description}
### Disciplines: {disciplines}

Task: {task}""",
    variables=["name", "description", "disciplines", "task"],
)


# =============================================================================
# TEMPLATE REGISTRY
# =============================================================================


# All templates for easy access
ALL_TEMPLATES: dict[str, PromptTemplate] = {
    template.name: template
    for template in (
        # Generation
        PHASE_DOCUMENT_SYSTEM,
        PHASE_DOCUMENT_PROMPT,
        SUB_DOCUMENT_SYSTEM,
        SUB_DOCUMENT_PROMPT,
        CRITICAL_DESIGN_SYSTEM,
        CRITICAL_DESIGN_PROMPT,
        SPRINT_SYSTEM,
        FMEA_SPRINT_SYSTEM,
        DFMA_SPRINT_SYSTEM,
        SPRINT_SPECIFICATION_PROMPT,
        CHECKLIST_SYSTEM,
        CHECKLIST_PROMPT,
        # Change impact
        CHANGE_ORCHESTRATOR_SYSTEM,
        CHANGE_ORCHESTRATOR_PROMPT,
        CHANGE_DOER_SYSTEM,
        CHANGE_DOER_PROMPT,
        CHANGE_QA_SYSTEM,
        CHANGE_QA_PROMPT,
        # Export
        EXPORT_ORCHESTRATOR_SYSTEM,
        EXPORT_ORCHESTRATOR_PROMPT,
        EXPORT_DOER_SYSTEM,
        EXPORT_DOER_PROMPT,
        EXPORT_QA_SYSTEM,
        EXPORT_QA_PROMPT,
        # Search
        RISK_ORCHESTRATOR_SYSTEM,
        RISK_DOER_SYSTEM,
        RISK_QA_SYSTEM,
        RESOURCE_ORCHESTRATOR_SYSTEM,
        RESOURCE_DOER_SYSTEM,
        RESOURCE_QA_SYSTEM,
        SEARCH_ORCHESTRATOR_PROMPT,
        SEARCH_DOER_PROMPT,
        SEARCH_QA_PROMPT,
        # Insights
        QUERY_SYSTEM,
        QUERY_PROMPT,
        RISK_ASSESSMENT_SYSTEM,
        RISK_ASSESSMENT_PROMPT,
        RECOMMENDATIONS_SYSTEM,
        RECOMMENDATIONS_PROMPT,
        COMPACT_CONTEXT_SYSTEM,
        COMPACT_CONTEXT_PROMPT,
        PROJECT_SUMMARY_SYSTEM,
        PROJECT_SUMMARY_PROMPT,
        COMPARE_VERSIONS_SYSTEM,
        COMPARE_VERSIONS_PROMPT,
        INITIAL_REQUIREMENTS_SYSTEM,
        INITIAL_CONSTRAINTS_SYSTEM,
        INITIAL_DOCUMENT_PROMPT,
    )
}


def get_template(name: str) -> PromptTemplate | None:
    """Get a template by name.

    Args:
        name: Template name.

    Returns:
        PromptTemplate if found, None otherwise.
    """
    return ALL_TEMPLATES.get(name)


def list_templates() -> list[str]:
    """List all available template names.

    Returns:
        List of template names.
    """
    return list(ALL_TEMPLATES.keys())
