"""Unit tests for the project model, prompt context and stores."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from engineering_partner.core.errors import ProjectNotFoundError, VersionConflictError
from engineering_partner.project.context import (
    SECTION_SEPARATOR,
    base_prompt_context,
    full_project_context,
    prior_phase_context,
    render_documents,
    serialize_project_documents,
    system_instruction,
)
from engineering_partner.project.models import (
    DevelopmentMode,
    MetaDocument,
    PhaseStatus,
    Project,
    VersionedOutput,
    WorkItem,
    WorkItemStatus,
    create_default_phases,
)
from engineering_partner.project.store import InMemoryProjectStore, JsonProjectStore, ProjectUpdate

# =============================================================================
# MODELS
# =============================================================================


@pytest.mark.unit
class TestVersionedOutputs:
    """Tests for the append-only output history."""

    def test_versions_are_monotonic(self) -> None:
        item = WorkItem(id="a", name="Architecture")

        first = item.append_output("v1", "Automated generation")
        second = item.append_output("v2", "Change Request: lighter frame")

        assert [first.version, second.version] == [1, 2]
        assert item.current_content == "v2"
        assert item.outputs[0].content == "v1"

    def test_outputs_are_frozen(self) -> None:
        output = VersionedOutput(version=1, content="x")
        with pytest.raises(ValidationError):
            output.content = "y"  # type: ignore[misc]

    def test_empty_history(self) -> None:
        item = WorkItem(name="Empty")
        assert item.latest_version == 0
        assert item.current_content is None

    def test_is_ready(self) -> None:
        item = WorkItem(id="c", name="C", dependencies=["a", "b"])
        assert not item.is_ready({"a"})
        assert item.is_ready({"a", "b"})


@pytest.mark.unit
class TestProject:
    """Tests for the project aggregate."""

    def test_default_phases(self) -> None:
        phases = create_default_phases()

        assert [p.name for p in phases] == [
            "Requirements",
            "Preliminary Design",
            "Critical Design",
            "Testing",
            "Launch",
            "Operation",
            "Improvement",
        ]
        assert phases[0].work_items[0].id == "requirements-1"
        assert phases[2].design_review.required
        assert phases[2].work_items == []

    def test_lookup(self, sample_project: Project) -> None:
        assert sample_project.get_phase_by_name("critical design").id == "critical-design"
        assert sample_project.phase_index("testing") == 3
        assert sample_project.get_phase("missing") is None

    def test_find_document_owner(self, sample_project: Project) -> None:
        phase, item = sample_project.find_document_owner("sprint-requirements-2")
        assert phase.id == "requirements"
        assert item is not None and item.name == "Statement of Work (SOW)"

        phase, item = sample_project.find_document_owner("phase-testing")
        assert phase.id == "testing" and item is None

        assert sample_project.find_document_owner("meta-123") is None

    def test_meta_document_textual(self) -> None:
        assert MetaDocument(name="Log", content="x", doc_type="risk-assessment-log").is_textual
        assert not MetaDocument(name="Sketch", content="", doc_type="2d-image").is_textual


# =============================================================================
# CONTEXT
# =============================================================================


@pytest.mark.unit
class TestPromptContext:
    """Tests for prompt context assembly."""

    def test_base_context(self, sample_project: Project) -> None:
        context = base_prompt_context(sample_project)

        assert context.startswith("## Project: CubeSat Comms")
        assert "### Disciplines: Aerospace Engineering, Electrical Engineering" in context
        assert "Custom Guiding Concept" not in context

        sample_project.custom_concept = "Reuse flight heritage"
        assert "### Custom Guiding Concept:\nReuse flight heritage" in base_prompt_context(sample_project)

    def test_prior_context_only_completed_earlier_phases(self, sample_project: Project) -> None:
        testing = sample_project.get_phase("testing")
        testing.append_output("test plan", "Automated generation")
        testing.status = PhaseStatus.COMPLETED

        context = prior_phase_context(sample_project, "critical-design")

        assert "## Context from Previous Phase (Requirements):" in context
        assert "test plan" not in context
        assert prior_phase_context(sample_project, "requirements") == ""

    def test_prior_context_uses_compaction(self, sample_project: Project) -> None:
        sample_project.compacted_context = "dl:2Mbps;P:10W"

        context = prior_phase_context(sample_project, "preliminary-design")

        assert context.startswith("## COMPACTED PROJECT CONTEXT (from Requirements Phase):\ndl:2Mbps;P:10W")
        assert "Context from Previous Phase (Requirements)" not in context

    def test_full_context(self, sample_project: Project) -> None:
        context = full_project_context(sample_project)

        assert "## Phase: Requirements\n\n## Requirements" in context
        assert context.endswith(SECTION_SEPARATOR)

    def test_serialize_documents(self, sample_project: Project) -> None:
        item = sample_project.get_phase("requirements").work_items[0]
        item.append_output("scope text", "Automated generation")
        sample_project.meta_documents.append(MetaDocument(id="meta-1", name="Risk Log", content="risks"))
        sample_project.meta_documents.append(MetaDocument(name="Sketch", content="", doc_type="2d-image"))

        docs = serialize_project_documents(sample_project)

        assert [d.id for d in docs] == ["phase-requirements", "sprint-requirements-1", "meta-1"]
        assert docs[1].name == "Requirements / Project Scope"
        assert render_documents(docs[2:]) == "--- DOCUMENT: Risk Log ---\nrisks"
        assert len(serialize_project_documents(sample_project, include_meta=False)) == 2

    def test_system_instruction_modes(self) -> None:
        assert "exceptionally verbose" in system_instruction("Base.", DevelopmentMode.FULL)
        assert "cryptic" in system_instruction("Base.", DevelopmentMode.RAPID)
        assert system_instruction("Base.", DevelopmentMode.RAPID).startswith("Base.\n")


# =============================================================================
# STORES
# =============================================================================


@pytest.mark.unit
class TestInMemoryProjectStore:
    """Tests for update merging and version checks."""

    @pytest.mark.asyncio
    async def test_get_returns_copy(self, store: InMemoryProjectStore) -> None:
        snapshot = store.get("proj-1")
        snapshot.name = "Changed"

        assert store.get("proj-1").name == "CubeSat Comms"

    def test_missing_project(self) -> None:
        with pytest.raises(ProjectNotFoundError):
            InMemoryProjectStore().get("nope")

    @pytest.mark.asyncio
    async def test_apply_work_item_update(self, store: InMemoryProjectStore) -> None:
        snapshot = store.get("proj-1")
        item = snapshot.get_phase("requirements").work_items[0]
        output = item.append_output("scope", "Automated generation")

        await store.apply(ProjectUpdate(
            project_id="proj-1",
            phase_id="requirements",
            work_item_id=item.id,
            output=output,
            work_item_status=WorkItemStatus.COMPLETED,
            deliverables=["scope.md"],
        ))

        stored = store.get("proj-1").get_phase("requirements").work_items[0]
        assert stored.current_content == "scope"
        assert stored.status == WorkItemStatus.COMPLETED
        assert stored.deliverables == ["scope.md"]
        assert len(store.applied) == 1

    @pytest.mark.asyncio
    async def test_stale_version_rejected(self, store: InMemoryProjectStore) -> None:
        stale = store.get("proj-1")
        fresh = store.get("proj-1")

        first = fresh.get_phase("requirements").append_output("v2 fresh", "edit")
        await store.apply(ProjectUpdate(project_id="proj-1", phase_id="requirements", output=first))

        conflicting = stale.get_phase("requirements").append_output("v2 stale", "edit")
        with pytest.raises(VersionConflictError) as exc:
            await store.apply(ProjectUpdate(project_id="proj-1", phase_id="requirements", output=conflicting))

        assert exc.value.expected == 1
        assert exc.value.actual == 2
        assert store.get("proj-1").get_phase("requirements").current_content == "v2 fresh"

    @pytest.mark.asyncio
    async def test_unknown_phase(self, store: InMemoryProjectStore) -> None:
        with pytest.raises(ProjectNotFoundError):
            await store.apply(ProjectUpdate(project_id="proj-1", phase_id="nope", phase_status=PhaseStatus.COMPLETED))

    @pytest.mark.asyncio
    async def test_meta_document_appended(self, store: InMemoryProjectStore) -> None:
        doc = MetaDocument(name="CubeSat Comms - Risk Assessment Log", content="# log")

        await store.apply(ProjectUpdate(project_id="proj-1", meta_document=doc))

        assert store.get("proj-1").meta_documents[0].name == doc.name

    @pytest.mark.asyncio
    async def test_reapplying_update_is_noop(self, store: InMemoryProjectStore) -> None:
        snapshot = store.get("proj-1")
        output = snapshot.get_phase("testing").append_output("Verification matrix", "Automated generation")
        update = ProjectUpdate(project_id="proj-1", phase_id="testing", output=output)
        log = ProjectUpdate(project_id="proj-1", meta_document=MetaDocument(name="Log", content="# log"))

        await store.apply(update)
        await store.apply(update)
        await store.apply(log)
        await store.apply(log)

        stored = store.get("proj-1")
        assert [o.version for o in stored.get_phase("testing").outputs] == [1]
        assert len(stored.meta_documents) == 1

    @pytest.mark.asyncio
    async def test_same_version_different_content_conflicts(self, store: InMemoryProjectStore) -> None:
        first = store.get("proj-1").get_phase("testing").append_output("plan A", "edit")
        other = store.get("proj-1").get_phase("testing").append_output("plan B", "edit")
        await store.apply(ProjectUpdate(project_id="proj-1", phase_id="testing", output=first))

        with pytest.raises(VersionConflictError):
            await store.apply(ProjectUpdate(project_id="proj-1", phase_id="testing", output=other))

    @pytest.mark.asyncio
    async def test_batch_is_all_or_nothing(self, store: InMemoryProjectStore) -> None:
        snapshot = store.get("proj-1")
        concurrent = store.get("proj-1").get_phase("testing").append_output("concurrent edit", "edit")
        await store.apply(ProjectUpdate(project_id="proj-1", phase_id="testing", output=concurrent))

        requirements = snapshot.get_phase("requirements").append_output("req v2", "edit")
        testing = snapshot.get_phase("testing").append_output("stale testing", "edit")
        with pytest.raises(VersionConflictError):
            await store.apply_all([
                ProjectUpdate(project_id="proj-1", phase_id="requirements", output=requirements),
                ProjectUpdate(project_id="proj-1", phase_id="testing", output=testing),
            ])

        stored = store.get("proj-1")
        assert stored.get_phase("requirements").latest_version == 1
        assert stored.get_phase("testing").current_content == "concurrent edit"

    @pytest.mark.asyncio
    async def test_batch_across_projects_rejected(self, store: InMemoryProjectStore) -> None:
        with pytest.raises(ValueError):
            await store.apply_all([
                ProjectUpdate(project_id="proj-1", phase_id="testing", phase_status=PhaseStatus.COMPLETED),
                ProjectUpdate(project_id="proj-2", phase_id="testing", phase_status=PhaseStatus.COMPLETED),
            ])


@pytest.mark.unit
class TestJsonProjectStore:
    """Tests for the JSON file store."""

    @pytest.mark.asyncio
    async def test_round_trip_through_disk(self, tmp_path: Path, sample_project: Project) -> None:
        store = JsonProjectStore(tmp_path / "projects")
        store.add(sample_project)

        await store.apply(ProjectUpdate(
            project_id=sample_project.id,
            phase_id="testing",
            phase_status=PhaseStatus.IN_PROGRESS,
        ))

        reopened = JsonProjectStore(tmp_path / "projects")
        project = reopened.get(sample_project.id)
        assert reopened.list_ids() == [sample_project.id]
        assert project.get_phase("testing").status == PhaseStatus.IN_PROGRESS
        assert project.get_phase("requirements").outputs[0].reason == "Automated generation"
