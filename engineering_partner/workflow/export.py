"""
Tool-specific export pipeline.

The Orchestrator plans which data to extract for an external engineering
tool, the Doer writes the raw file body in the tool's format, and QA checks
it against the tool's acceptance criteria. A rejection or a malformed QA
verdict fails the export.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from engineering_partner.core.errors import PartnerError, UnknownExportTargetError, WorkflowCancelledError
from engineering_partner.core.events import EventLevel, EventType
from engineering_partner.llm.invoker import ModelInvoker
from engineering_partner.llm.schemas import QAVerdict
from engineering_partner.llm.selection import TaskType
from engineering_partner.project.context import base_prompt_context, full_project_context
from engineering_partner.project.models import MetaDocument, Project
from engineering_partner.prompts.templates import (
    EXPORT_DOER_PROMPT,
    EXPORT_DOER_SYSTEM,
    EXPORT_ORCHESTRATOR_PROMPT,
    EXPORT_ORCHESTRATOR_SYSTEM,
    EXPORT_QA_PROMPT,
    EXPORT_QA_SYSTEM,
)
from engineering_partner.workflow.pipeline import AgentPipeline, PipelineStatus

# =============================================================================
# CATALOG
# =============================================================================


class ExportCategory(str, Enum):
    CAD = "CAD"
    ELECTRONICS = "Electronics"


class ExportTarget(BaseModel):
    """An external tool the project can be exported to."""

    model_config = ConfigDict(frozen=True)

    tool_id: str = Field(..., min_length=1)
    name: str
    category: ExportCategory
    output_format: str
    format_description: str
    acceptance_criteria: str
    extension: str = Field(..., pattern=r"^[a-z0-9]+$")


DEFAULT_EXPORT_TARGETS: tuple[ExportTarget, ...] = (
    ExportTarget(
        tool_id="solidworks",
        name="SolidWorks",
        category=ExportCategory.CAD,
        output_format="SolidWorks VBA Script",
        format_description=(
            "A VBA script (.swp) that builds a simplified 3D part. The script defines parameters "
            "(dimensions, materials) and uses SolidWorks API calls such as CreateExtrusion and "
            "CreateCut to build the main features described in the project."
        ),
        acceptance_criteria=(
            "The output is a valid VBA script with Sub/End Sub blocks, Dim declarations and calls "
            "to SolidWorks API methods (e.g. Part.InsertSketch, FeatureManager.FeatureExtrusion). "
            "No explanatory text outside VBA comments (prefixed with ')."
        ),
        extension="swp",
    ),
    ExportTarget(
        tool_id="fusion360",
        name="Fusion 360",
        category=ExportCategory.CAD,
        output_format="Fusion 360 Python Script",
        format_description=(
            "A self-contained Python script (.py) for the Fusion 360 API (adsk) that defines "
            "parameters and creates sketches, extrusions and other features to model the design."
        ),
        acceptance_criteria=(
            "The output is Python only, imports adsk.core, adsk.fusion and adsk.cam, defines a "
            "run(context) function and uses objects like app.activeProduct.design with methods "
            "like sketches.add and features.extrudeFeatures.createInput."
        ),
        extension="py",
    ),
    ExportTarget(
        tool_id="generic-3d-print",
        name="Generic 3D Print (.stl)",
        category=ExportCategory.CAD,
        output_format="ASCII STL File",
        format_description=(
            "An ASCII STL file starting with `solid <name>` and ending with `endsolid <name>`, "
            "containing facet blocks that each define a triangle with a normal vector and three "
            "vertices, giving a simplified geometric representation of the design."
        ),
        acceptance_criteria=(
            "The file starts with `solid <name>` and ends with `endsolid <name>`. Every block starts "
            "with `facet normal` and ends with `endfacet`, and contains an `outer loop` with exactly "
            "three `vertex` lines. Only STL content is present."
        ),
        extension="stl",
    ),
    ExportTarget(
        tool_id="kicad",
        name="KiCad",
        category=ExportCategory.ELECTRONICS,
        output_format="KiCad Netlist",
        format_description=(
            "A netlist (.net) in KiCad's S-expression format listing components with values and "
            "footprints, and the nets connecting component pins."
        ),
        acceptance_criteria=(
            "The file starts with `(export (version D)`, has balanced parentheses and contains "
            "`(components`, `(comp`, `(libsource`, `(nets` and `(net`. Only netlist content is present."
        ),
        extension="net",
    ),
    ExportTarget(
        tool_id="altium",
        name="Altium Designer",
        category=ExportCategory.ELECTRONICS,
        output_format="Altium BOM CSV",
        format_description=(
            'A Bill of Materials CSV with columns such as "Designator", "Footprint", "LibRef", '
            '"Quantity" and "Description", populated from components named in the project.'
        ),
        acceptance_criteria=(
            'The output is CSV with a header row containing at least "Designator", "Footprint" and '
            '"Quantity", followed by rows of matching comma-separated values. Only CSV data is present.'
        ),
        extension="csv",
    ),
)


class ExportCatalog:
    """
    Read-only lookup of export targets.

    Example:
        >>> catalog = ExportCatalog.default()
        >>> catalog.get("kicad").extension
        'net'
    """

    def __init__(self, targets: list[ExportTarget] | tuple[ExportTarget, ...]) -> None:
        self._targets = {target.tool_id: target for target in targets}

    @classmethod
    def default(cls) -> "ExportCatalog":
        """Catalog with the built-in CAD and electronics targets."""
        return cls(DEFAULT_EXPORT_TARGETS)

    def get(self, tool_id: str) -> ExportTarget:
        """Get a target by tool id.

        Raises:
            UnknownExportTargetError: If the tool is not in the catalog.
        """
        target = self._targets.get(tool_id)
        if target is None:
            raise UnknownExportTargetError(f"Invalid target tool: {tool_id}")
        return target

    def targets(self, category: ExportCategory | None = None) -> list[ExportTarget]:
        """List targets, optionally filtered by category."""
        return [t for t in self._targets.values() if category is None or t.category == category]

    def __contains__(self, tool_id: str) -> bool:
        return tool_id in self._targets

    def __len__(self) -> int:
        return len(self._targets)


# =============================================================================
# PIPELINE
# =============================================================================


@dataclass
class ExportArtifact:
    """An approved export file."""

    file_name: str
    content: str
    target: ExportTarget
    plan: str = ""

    def to_meta_document(self) -> MetaDocument:
        """Wrap the artifact as a project meta document."""
        return MetaDocument(name=self.file_name, content=self.content, doc_type="export")


def export_file_name(target: ExportTarget, project: Project, asset: MetaDocument | None = None) -> str:
    """File name for an export of the whole project or of a single asset."""
    if asset is not None:
        return f"{asset.name.replace(' ', '_')}.{target.extension}"
    return f"{project.name.replace(' ', '_')}_Export_for_{target.name}.{target.extension}"


class ExportPipeline(AgentPipeline):
    """
    Orchestrator -> Doer -> QA pipeline producing a file for an external tool.

    Example:
        >>> pipeline = ExportPipeline(invoker, ExportCatalog.default())
        >>> artifact = await pipeline.export_project(project, "altium")
        >>> artifact.file_name
        'CubeSat_Comms_Export_for_Altium Designer.csv'
    """

    def __init__(self, invoker: ModelInvoker, catalog: ExportCatalog, **kwargs: Any) -> None:
        super().__init__(invoker, **kwargs)
        self.catalog = catalog

    async def export_project(self, project: Project, tool_id: str) -> ExportArtifact:
        """Export the whole project.

        Raises:
            UnknownExportTargetError: If the tool is not in the catalog.
            QARejectedError: If QA rejects the file.
            GenerationFormatError: If the QA verdict is malformed.
        """
        target = self.catalog.get(tool_id)
        subject = f"Full Project Documentation:\n{full_project_context(project)}"
        return await self._run(project, target, subject, "an entire engineering project's documentation")

    async def export_asset(self, project: Project, asset: MetaDocument, tool_id: str) -> ExportArtifact:
        """Export a single asset of the project."""
        target = self.catalog.get(tool_id)
        subject = (
            f"Project Context Summary:\n{base_prompt_context(project)}\n\n"
            f'Asset to Export ("{asset.name}"):\n{asset.doc_type} asset available for export.'
        )
        return await self._run(project, target, subject, "a specific asset from an engineering project", asset)

    async def _run(
        self,
        project: Project,
        target: ExportTarget,
        subject: str,
        scope: str,
        asset: MetaDocument | None = None,
    ) -> ExportArtifact:
        file_name = export_file_name(target, project, asset)
        context = full_project_context(project)

        try:
            self.cancel_token.raise_if_cancelled()
            self._set_status(PipelineStatus.ORCHESTRATING, "Orchestrator is analyzing export requirements...")
            plan = await self.invoker.generate_text(
                EXPORT_ORCHESTRATOR_PROMPT.format(
                    subject=subject,
                    tool_name=target.name,
                    format_description=target.format_description,
                ),
                TaskType.ORCHESTRATOR,
                system_instruction=EXPORT_ORCHESTRATOR_SYSTEM.format(scope=scope),
            )

            content = await self._doer_qa_cycle(
                file_name,
                produce=lambda notes: self.invoker.generate_text(
                    EXPORT_DOER_PROMPT.format(
                        plan=plan,
                        context=context,
                        tool_name=target.name,
                        output_format=target.output_format,
                        revision_notes=notes,
                    ),
                    TaskType.DOER,
                    system_instruction=EXPORT_DOER_SYSTEM.format(tool_name=target.name),
                    strip_fences=True,
                ),
                validate=lambda produced: self.invoker.generate_structured(
                    EXPORT_QA_PROMPT.format(
                        content=produced,
                        tool_name=target.name,
                        acceptance_criteria=target.acceptance_criteria,
                    ),
                    QAVerdict,
                    TaskType.QA,
                    system_instruction=EXPORT_QA_SYSTEM.template,
                ),
            )
        except WorkflowCancelledError:
            raise
        except PartnerError as e:
            self._set_status(PipelineStatus.ERROR, f"Export to {target.name} failed: {e}")
            raise

        self._set_status(PipelineStatus.COMPLETE, "QA has approved the file.")
        self.events.emit(
            EventType.COMPLETED,
            f"Exported {file_name}",
            level=EventLevel.SUCCESS,
            tool_id=target.tool_id,
        )
        logger.info(f"Export for {target.name} approved: {file_name} ({len(content)} chars)")
        return ExportArtifact(file_name=file_name, content=content, target=target, plan=plan)
