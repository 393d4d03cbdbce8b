"""
Project persistence.

Workflows never write to storage directly: every mutation is expressed as a
ProjectUpdate and handed to an UpdateSink. The stores here merge updates
into the project aggregate under a per-project lock and
refuse appends that were computed against a stale output history.
"""

import asyncio
import json
from pathlib import Path
from typing import Protocol

from loguru import logger
from pydantic import BaseModel

from engineering_partner.core.errors import ProjectNotFoundError, VersionConflictError
from engineering_partner.project.models import (
    DesignReview,
    MetaDocument,
    PhaseStatus,
    Project,
    VersionedOutput,
    WorkItem,
    WorkItemStatus,
)

# =============================================================================
# UPDATE MODEL
# =============================================================================


class ProjectUpdate(BaseModel):
    """Partial update to one phase, one work item, or the project's meta documents.

    ``output`` is appended to the target's history; its version must be
    exactly one greater than the stored latest version.
    """

    project_id: str
    phase_id: str | None = None
    work_item_id: str | None = None
    output: VersionedOutput | None = None
    phase_status: PhaseStatus | None = None
    work_item_status: WorkItemStatus | None = None
    work_items: list[WorkItem] | None = None
    deliverables: list[str] | None = None
    design_review: DesignReview | None = None
    meta_document: MetaDocument | None = None

    @property
    def lock_key(self) -> str:
        """Key of the entity this update mutates."""
        return f"{self.project_id}:{self.phase_id or ''}:{self.work_item_id or ''}"


class UpdateSink(Protocol):
    """Anything that can durably apply a ProjectUpdate."""

    async def apply(self, update: ProjectUpdate) -> None: ...

    async def apply_all(self, updates: list[ProjectUpdate]) -> None: ...


class NullSink:
    """Sink that discards updates (dry runs)."""

    async def apply(self, update: ProjectUpdate) -> None:
        logger.debug(f"Discarding update for {update.lock_key}")

    async def apply_all(self, updates: list[ProjectUpdate]) -> None:
        logger.debug(f"Discarding {len(updates)} updates")


# =============================================================================
# IN-MEMORY STORE
# =============================================================================


class InMemoryProjectStore:
    """
    Project store keeping projects in process memory.

    Updates to one project are serialised by a per-project lock and merged
    into a copy of the stored aggregate, which replaces the stored one only
    when every update in the batch merged cleanly.

    Example:
        >>> store = InMemoryProjectStore()
        >>> store.add(project)
        >>> await store.apply(ProjectUpdate(project_id=project.id, phase_id="testing",
        ...                                 phase_status=PhaseStatus.IN_PROGRESS))
    """

    def __init__(self) -> None:
        self._projects: dict[str, Project] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self.applied: list[ProjectUpdate] = []

    def add(self, project: Project) -> Project:
        """Register a project."""
        self._save(project)
        return project

    def get(self, project_id: str) -> Project:
        """Get a snapshot copy of a project.

        Raises:
            ProjectNotFoundError: If the project does not exist.
        """
        return self._load(project_id).model_copy(deep=True)

    def list_ids(self) -> list[str]:
        """List stored project IDs."""
        return sorted(self._projects)

    async def apply(self, update: ProjectUpdate) -> None:
        """Merge one update into the stored project.

        Re-applying an update whose output is already stored is a no-op.

        Raises:
            ProjectNotFoundError: If the project, phase or work item is missing.
            VersionConflictError: If the appended output is not the next version.
        """
        await self.apply_all([update])

    async def apply_all(self, updates: list[ProjectUpdate]) -> None:
        """Merge a batch of updates to one project: all of them or none.

        Raises:
            ValueError: If the batch spans several projects.
            ProjectNotFoundError: If the project, phase or work item is missing.
            VersionConflictError: If any appended output is stale.
        """
        if not updates:
            return
        project_ids = {u.project_id for u in updates}
        if len(project_ids) > 1:
            raise ValueError(f"A batch must target one project, got: {', '.join(sorted(project_ids))}")
        project_id = updates[0].project_id

        lock = self._locks.setdefault(project_id, asyncio.Lock())
        async with lock:
            project = (await self._read(project_id)).model_copy(deep=True)
            for update in updates:
                self._merge(project, update)
            await self._write(project)
            self.applied.extend(updates)
        logger.debug(f"Applied {len(updates)} update(s) to project {project_id}")

    # -------------------------------------------------------------------------
    # Storage hooks
    # -------------------------------------------------------------------------

    def _load(self, project_id: str) -> Project:
        project = self._projects.get(project_id)
        if project is None:
            raise ProjectNotFoundError(f"Project not found: {project_id}")
        return project

    def _save(self, project: Project) -> None:
        self._projects[project.id] = project

    async def _read(self, project_id: str) -> Project:
        return self._load(project_id)

    async def _write(self, project: Project) -> None:
        self._save(project)

    # -------------------------------------------------------------------------
    # Merge
    # -------------------------------------------------------------------------

    @staticmethod
    def _merge(project: Project, update: ProjectUpdate) -> None:
        if update.meta_document is not None:
            if all(doc.id != update.meta_document.id for doc in project.meta_documents):
                project.meta_documents.append(update.meta_document)

        if update.phase_id is None:
            return

        phase = project.get_phase(update.phase_id)
        if phase is None:
            raise ProjectNotFoundError(f"Phase not found: {update.phase_id}")

        if update.work_items is not None:
            phase.work_items = [item.model_copy(deep=True) for item in update.work_items]
        if update.design_review is not None:
            phase.design_review = update.design_review
        if update.phase_status is not None:
            phase.status = update.phase_status

        target = phase
        if update.work_item_id is not None:
            item = phase.get_work_item(update.work_item_id)
            if item is None:
                raise ProjectNotFoundError(f"Work item not found: {update.work_item_id}")
            if update.work_item_status is not None:
                item.status = update.work_item_status
            if update.deliverables is not None:
                item.deliverables = list(update.deliverables)
            target = item

        if update.output is not None:
            stored = next((o for o in target.outputs if o.version == update.output.version), None)
            if stored is not None and stored.content == update.output.content:
                logger.debug(f"Version {stored.version} of {update.lock_key} already stored")
                return
            expected = update.output.version - 1
            if target.latest_version != expected:
                raise VersionConflictError(update.lock_key, expected, target.latest_version)
            target.outputs = [*target.outputs, update.output]


# =============================================================================
# JSON FILE STORE
# =============================================================================


class JsonProjectStore(InMemoryProjectStore):
    """Project store persisting one JSON document per project.

    File reads and writes made while applying updates run in the default
    executor, so the per-project lock is held across them.

    Args:
        directory: Directory holding ``<project_id>.json`` files.
    """

    def __init__(self, directory: str | Path) -> None:
        super().__init__()
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, project_id: str) -> Path:
        return self.directory / f"{project_id}.json"

    def _load(self, project_id: str) -> Project:
        path = self._path(project_id)
        if not path.exists():
            raise ProjectNotFoundError(f"Project not found: {project_id}")
        return Project.model_validate_json(path.read_text(encoding="utf-8"))

    def _save(self, project: Project) -> None:
        self._path(project.id).write_text(
            json.dumps(project.to_dict(), indent=2),
            encoding="utf-8",
        )

    async def _read(self, project_id: str) -> Project:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._load, project_id)

    async def _write(self, project: Project) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._save, project)

    def list_ids(self) -> list[str]:
        return sorted(p.stem for p in self.directory.glob("*.json"))
