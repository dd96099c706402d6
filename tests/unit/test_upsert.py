"""Tests for the merge-upsert engine and the storage stage."""

from datetime import datetime

import pytest

from job_extraction.core.db import JobStore, add_discovered_job, init_db
from job_extraction.core.errors import MissingDependency, StorageConflict
from job_extraction.core.schemas import (
    DimensionMapping,
    DimensionValue,
    DomainClassification,
    ExperienceDetection,
    JobRecord,
    JobStatus,
    PipelineState,
    QualityMetrics,
)
from job_extraction.pipeline.storage import StorageStage
from job_extraction.pipeline.upsert import (
    MergePolicy,
    UpsertEngine,
    build_record,
    merge_records,
    policy_for,
)

NOW = datetime(2025, 6, 1, 12, 0, 0)


@pytest.fixture()
def store(tmp_path):  # type: ignore[no-untyped-def]
    conn = init_db(tmp_path / "test.db")
    yield JobStore(conn)
    conn.close()


def _complete_state(job_id: str = "job-1", compensation: str = "$150k") -> PipelineState:
    return PipelineState(
        job_data=JobRecord(id=job_id, url=f"https://example.com/{job_id}"),
        domain_classification=DomainClassification(
            domain="engineering", sub_domain="backend", role="senior_engineer", confidence=0.8,
        ),
        experience_detection=ExperienceDetection(level="senior", confidence=0.8),
        dimension_mapping=DimensionMapping(
            dimensions={
                "responsibilities": DimensionValue(value="Own services", confidence=1.0, required=True, threshold=0.7),
                "compensation": DimensionValue(value=compensation, confidence=1.0, required=True, threshold=0.7),
            },
            total=2,
            required_count=2,
            extracted_required_count=2,
            completeness_score=1.0,
        ),
        quality_metrics=QualityMetrics(
            quality_score=1.0, completeness_score=1.0, confidence_score=1.0,
            required_dimensions_score=1.0, passed=True, total_dimensions=2,
            valid_dimensions=2, required_dimensions_met=True,
        ),
    )


# ---------------------------------------------------------------------------
# Merge policy
# ---------------------------------------------------------------------------
class TestMergeRecords:
    def test_policy_table(self) -> None:
        assert policy_for("id") is MergePolicy.IMMUTABLE
        assert policy_for("created_at") is MergePolicy.IMMUTABLE
        assert policy_for("extracted_dimensions") is MergePolicy.MERGE_MAP
        assert policy_for("extraction_metadata") is MergePolicy.MERGE_MAP
        assert policy_for("domain") is MergePolicy.REPLACE

    def test_immutable_fields_kept(self) -> None:
        merged = merge_records(
            {"id": "a", "created_at": "2024-01-01"},
            {"id": "b", "created_at": "2025-01-01"},
            now=NOW,
        )
        assert merged["id"] == "a"
        assert merged["created_at"] == "2024-01-01"

    def test_immutable_written_when_absent(self) -> None:
        merged = merge_records({"id": "a"}, {"id": "a", "created_at": "2025-01-01"}, now=NOW)
        assert merged["created_at"] == "2025-01-01"

    def test_merge_map_new_keys_win_old_kept(self) -> None:
        merged = merge_records(
            {"extraction_metadata": {"customFlag": True, "quality_score": 0.2}},
            {"extraction_metadata": {"quality_score": 0.9}},
            now=NOW,
        )
        assert merged["extraction_metadata"] == {"customFlag": True, "quality_score": 0.9}

    def test_merge_map_recomputed_key_overwrites(self) -> None:
        merged = merge_records(
            {"extraction_metadata": {"customFlag": True}},
            {"extraction_metadata": {"customFlag": False}},
            now=NOW,
        )
        assert merged["extraction_metadata"]["customFlag"] is False

    def test_replace_and_preserve_unrelated(self) -> None:
        merged = merge_records(
            {"domain": "product", "company": "Acme", "applied": True},
            {"domain": "engineering"},
            now=NOW,
        )
        assert merged["domain"] == "engineering"
        assert merged["company"] == "Acme"
        assert merged["applied"] is True

    def test_updated_at_always_refreshed(self) -> None:
        merged = merge_records({"updated_at": "2020-01-01"}, {"updated_at": "2021-01-01"}, now=NOW)
        assert merged["updated_at"] == NOW.isoformat()


# ---------------------------------------------------------------------------
# Record building
# ---------------------------------------------------------------------------
class TestBuildRecord:
    def test_shape(self) -> None:
        record = build_record(_complete_state(), now=NOW)

        assert record["id"] == "job-1"
        assert record["status"] == "extracted"
        assert record["domain"] == "engineering"
        assert record["experience_level"] == "senior"
        assert record["extracted_dimensions"]["compensation"] == {
            "value": "$150k",
            "confidence": 1.0,
            "source": "dimension_mapper",
            "metadata": {"required": True, "threshold": 0.7},
        }
        assert record["quality_metrics"]["passed"] is True
        assert record["entities"]["compensation"] == "$150k"
        meta = record["extraction_metadata"]
        assert meta["extraction_time"] == NOW.isoformat()
        assert meta["validation_passed"] is True
        assert meta["experience_method"] == "parsed"

    def test_incomplete_state_raises(self) -> None:
        state = _complete_state().model_copy(update={"quality_metrics": None})
        with pytest.raises(StorageConflict, match="incomplete state"):
            build_record(state)


# ---------------------------------------------------------------------------
# Upsert engine
# ---------------------------------------------------------------------------
class TestUpsertEngine:
    def test_insert_when_absent(self, store: JobStore) -> None:
        stored = UpsertEngine(store).upsert(build_record(_complete_state(), now=NOW))
        assert stored["status"] == "extracted"
        assert store.get("job-1")["domain"] == "engineering"  # type: ignore[index]

    def test_merge_preserves_prior_fields(self, store: JobStore) -> None:
        add_discovered_job(store, "job-1", "https://example.com/job-1", company="Acme")
        store.update("job-1", {"extraction_metadata": {"customFlag": "keep-me"}})
        created_at = store.get("job-1")["created_at"]  # type: ignore[index]

        UpsertEngine(store).upsert(build_record(_complete_state(), now=NOW))

        doc = store.get("job-1")
        assert doc is not None
        assert doc["status"] == "extracted"
        assert doc["company"] == "Acme"
        assert doc["created_at"] == created_at
        assert doc["extraction_metadata"]["customFlag"] == "keep-me"
        assert doc["extraction_metadata"]["quality_score"] == 1.0

    def test_dimension_map_merged(self, store: JobStore) -> None:
        store.put({"id": "job-1", "extracted_dimensions": {"legacy": {"value": "old"}}})
        UpsertEngine(store).upsert(build_record(_complete_state(), now=NOW))
        dims = store.get("job-1")["extracted_dimensions"]  # type: ignore[index]
        assert set(dims) == {"legacy", "responsibilities", "compensation"}

    def test_record_without_id(self, store: JobStore) -> None:
        with pytest.raises(StorageConflict):
            UpsertEngine(store).upsert({"domain": "engineering"})


# ---------------------------------------------------------------------------
# Storage stage
# ---------------------------------------------------------------------------
class TestStorageStage:
    async def test_advances_status(self, store: JobStore) -> None:
        add_discovered_job(store, "job-1", "https://example.com/job-1")
        state = await StorageStage(UpsertEngine(store)).run(_complete_state())

        assert state.job_data.status is JobStatus.EXTRACTED
        assert store.get("job-1")["status"] == "extracted"  # type: ignore[index]

    async def test_requires_quality_metrics(self, store: JobStore) -> None:
        state = _complete_state().model_copy(update={"quality_metrics": None})
        with pytest.raises(MissingDependency, match="quality_metrics"):
            await StorageStage(UpsertEngine(store)).run(state)
        assert store.get("job-1") is None
