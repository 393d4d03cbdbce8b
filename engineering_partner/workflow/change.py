"""
Change-impact pipeline.

Given a change request, the Orchestrator names the impacted documents, then
each document in turn is rewritten by the Doer and checked by QA. The run
stops at the first failure. Only a fully approved run is persisted, as a
new version on every edited phase or work item.
"""

from dataclasses import dataclass, field

from loguru import logger

from engineering_partner.core.errors import PartnerError, WorkflowCancelledError
from engineering_partner.core.events import EventLevel, EventType
from engineering_partner.llm.schemas import ImpactedDocumentNames, QAVerdict
from engineering_partner.llm.selection import TaskType
from engineering_partner.project.context import ProjectDocument, render_documents, serialize_project_documents
from engineering_partner.project.models import (
    DocumentStatus,
    ImpactedDocument,
    Project,
    VersionedMixin,
    VersionedOutput,
)
from engineering_partner.project.store import ProjectUpdate, UpdateSink
from engineering_partner.prompts.templates import (
    CHANGE_DOER_PROMPT,
    CHANGE_DOER_SYSTEM,
    CHANGE_ORCHESTRATOR_PROMPT,
    CHANGE_ORCHESTRATOR_SYSTEM,
    CHANGE_QA_PROMPT,
    CHANGE_QA_SYSTEM,
)
from engineering_partner.workflow.pipeline import AgentPipeline, PipelineStatus


@dataclass
class ChangeImpactResult:
    """Outcome of one change-impact run."""

    change_request: str
    status: PipelineStatus
    documents: list[ImpactedDocument] = field(default_factory=list)
    error: str | None = None

    def document(self, name: str) -> ImpactedDocument | None:
        """Get an impacted document by name."""
        for doc in self.documents:
            if doc.name == name:
                return doc
        return None


class ChangeImpactPipeline(AgentPipeline):
    """
    Orchestrator -> Doer -> QA pipeline editing documents for a change request.

    Example:
        >>> pipeline = ChangeImpactPipeline(invoker, events=emitter)
        >>> result = await pipeline.run(project, "Switch the enclosure to aluminium", sink=store)
        >>> result.status
        <PipelineStatus.COMPLETE: 'complete'>
    """

    async def run(
        self,
        project: Project,
        change_request: str,
        sink: UpdateSink | None = None,
    ) -> ChangeImpactResult:
        """Apply a change request across the project's documents.

        Args:
            project: Current project snapshot; edited phases and work items
                receive new versions on success.
            change_request: Free-text description of the change.
            sink: Persistence for the new versions.

        Returns:
            Result with per-document statuses. Failures are recorded in the
            result rather than raised.

        Raises:
            WorkflowCancelledError: If cancellation was requested.
        """
        result = ChangeImpactResult(change_request=change_request, status=PipelineStatus.IDLE)
        standards = ", ".join(project.compliance_standards) or "none specified"

        all_docs = serialize_project_documents(project)
        editable = [d for d in all_docs if project.find_document_owner(d.id) is not None]

        try:
            names = await self._orchestrate(all_docs, change_request, standards)
        except WorkflowCancelledError:
            raise
        except PartnerError as e:
            return self._fail(result, f"Failed to analyze impact: {e}")

        result.documents = [
            ImpactedDocument(id=d.id, name=d.name, original_content=d.content)
            for d in editable
            if d.name in names
        ]
        if not result.documents:
            result.status = PipelineStatus.COMPLETE
            self.events.emit(EventType.COMPLETED, "Orchestrator found no documents impacted by this change.")
            return result

        logger.info(f"Impacted documents: {', '.join(d.name for d in result.documents)}")
        shared = {d.id: d for d in all_docs}

        for doc in result.documents:
            doc.status = DocumentStatus.EDITING
            context = render_documents(list(shared.values()))
            try:
                new_content = await self._doer_qa_cycle(
                    doc.name,
                    produce=lambda notes, doc=doc, context=context: self._edit(
                        doc, context, change_request, standards, notes
                    ),
                    validate=lambda content, doc=doc: self._validate(doc, content, change_request, standards),
                    on_produced=lambda content, doc=doc: self._mark_validating(doc, content),
                )
            except WorkflowCancelledError:
                raise
            except PartnerError as e:
                doc.status = DocumentStatus.FAILED
                doc.qa_feedback = getattr(e, "feedback", None) or str(e)
                self.events.emit(
                    EventType.UNIT_FAILED,
                    f"Failed on document: {doc.name}. {doc.qa_feedback}",
                    level=EventLevel.ERROR,
                    subject_id=doc.id,
                )
                return self._fail(result, f"Failed on document: {doc.name}. {doc.qa_feedback}")

            doc.new_content = new_content
            doc.status = DocumentStatus.COMPLETE
            shared[doc.id] = ProjectDocument(id=doc.id, name=doc.name, content=new_content)
            self.events.emit(
                EventType.UNIT_COMPLETED,
                f'Document "{doc.name}" updated.',
                level=EventLevel.SUCCESS,
                subject_id=doc.id,
            )

        try:
            await self._persist(project, result, sink)
        except PartnerError as e:
            logger.error(f"Change request not saved: {e}")
            return self._fail(result, f"Failed to save changes: {e}")

        result.status = PipelineStatus.COMPLETE
        self._set_status(PipelineStatus.COMPLETE, f"Change applied to {len(result.documents)} documents.")
        self.events.emit(EventType.COMPLETED, "Change request applied.", level=EventLevel.SUCCESS)
        return result

    # -------------------------------------------------------------------------
    # Agent steps
    # -------------------------------------------------------------------------

    async def _orchestrate(
        self,
        docs: list[ProjectDocument],
        change_request: str,
        standards: str,
    ) -> list[str]:
        self.cancel_token.raise_if_cancelled()
        self._set_status(PipelineStatus.ORCHESTRATING, "Orchestrator is analyzing the change request...")
        names = await self.invoker.generate_structured(
            CHANGE_ORCHESTRATOR_PROMPT.format(context=render_documents(docs), change_request=change_request),
            ImpactedDocumentNames,
            TaskType.ORCHESTRATOR,
            system_instruction=CHANGE_ORCHESTRATOR_SYSTEM.format(standards=standards),
        )
        return names.root

    async def _edit(
        self,
        doc: ImpactedDocument,
        context: str,
        change_request: str,
        standards: str,
        notes: str,
    ) -> str:
        return await self.invoker.generate_text(
            CHANGE_DOER_PROMPT.format(
                context=context,
                document_name=doc.name,
                original=doc.original_content,
                change_request=change_request,
                revision_notes=notes,
            ),
            TaskType.DOER,
            system_instruction=CHANGE_DOER_SYSTEM.format(standards=standards),
        )

    async def _validate(
        self,
        doc: ImpactedDocument,
        content: str,
        change_request: str,
        standards: str,
    ) -> QAVerdict:
        return await self.invoker.generate_structured(
            CHANGE_QA_PROMPT.format(
                standards=standards,
                change_request=change_request,
                original=doc.original_content,
                new_content=content,
            ),
            QAVerdict,
            TaskType.QA,
            system_instruction=CHANGE_QA_SYSTEM.template,
        )

    @staticmethod
    def _mark_validating(doc: ImpactedDocument, content: str) -> None:
        doc.new_content = content
        doc.status = DocumentStatus.VALIDATING

    # -------------------------------------------------------------------------
    # Outcome
    # -------------------------------------------------------------------------

    def _fail(self, result: ChangeImpactResult, message: str) -> ChangeImpactResult:
        result.status = PipelineStatus.ERROR
        result.error = message
        self._set_status(PipelineStatus.ERROR, message)
        self.events.emit(EventType.ERROR, message, level=EventLevel.ERROR)
        return result

    async def _persist(
        self,
        project: Project,
        result: ChangeImpactResult,
        sink: UpdateSink | None,
    ) -> None:
        """Store every edited document as one batch, then update the snapshot.

        Raises:
            VersionConflictError: If any document changed in storage since
                the snapshot was taken; nothing is stored in that case.
        """
        reason = f"Change Request: {result.change_request}"
        staged: list[tuple[VersionedMixin, VersionedOutput]] = []
        updates: list[ProjectUpdate] = []
        for doc in result.documents:
            owner = project.find_document_owner(doc.id)
            if owner is None or doc.new_content is None:
                continue
            phase, item = owner
            target = item if item is not None else phase
            output = VersionedOutput(version=target.latest_version + 1, content=doc.new_content, reason=reason)
            staged.append((target, output))
            updates.append(ProjectUpdate(
                project_id=project.id,
                phase_id=phase.id,
                work_item_id=item.id if item is not None else None,
                output=output,
            ))

        if sink is not None:
            await sink.apply_all(updates)

        for target, output in staged:
            target.outputs = [*target.outputs, output]
        logger.debug(f"Persisted {len(staged)} documents for change request")
