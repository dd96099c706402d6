"""Integration test: full extraction pipeline over a real SQLite store (no browser, no LLM)."""

import json
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from job_extraction.core.config import PipelineOptions
from job_extraction.core.db import JobStore, add_discovered_job, init_db, job_record_from_document
from job_extraction.core.errors import PipelineAborted
from job_extraction.core.schemas import ExtractedContent, JobStatus
from job_extraction.llm.completion import CompletionResult
from job_extraction.pipeline.orchestrator import ExtractionPipeline
from job_extraction.taxonomy.registry import TaxonomyRegistry

FIXTURES_DIR = Path(__file__).parent.parent / "fixtures"

POSTING = """Senior Backend Engineer - Acme

We are looking for an engineer with 5 years experience building distributed systems.
You will design and own backend services, mentor engineers and run the on-call rotation.
Compensation: base salary $150k plus equity.
"""

CLASSIFICATION = json.dumps({"domain": "engineering", "sub_domain": "backend", "role": "senior_engineer"})
LEVEL = json.dumps({"level": "senior"})
DIMENSIONS = json.dumps({
    "responsibilities": ["Design and own backend services", "Mentor engineers"],
    "compensation": {"value": "base salary $150k plus equity", "confidence": 0.9},
    "team_size": None,
})


# ---------------------------------------------------------------------------
# Collaborator fakes
# ---------------------------------------------------------------------------


class StaticContentSource:
    """Returns the same posting text for every URL."""

    def __init__(self, text: str = POSTING) -> None:
        self._text = text
        self.urls: list[str] = []

    async def extract_text(self, url: str, *, timeout_ms: int = 60000, max_retries: int = 3) -> ExtractedContent:
        self.urls.append(url)
        return ExtractedContent(url=url, raw_text=self._text, page_title="Senior Backend Engineer")


def _scripted_completion(*responses: str) -> MagicMock:
    """Completion service answering each call with the next scripted response."""
    completion = MagicMock()
    completion.complete.side_effect = [CompletionResult(success=True, data=r) for r in responses]
    return completion


@pytest.fixture()
def registry() -> TaxonomyRegistry:
    return TaxonomyRegistry.from_directory(FIXTURES_DIR / "taxonomy")


@pytest.fixture()
def store(tmp_path):  # type: ignore[no-untyped-def]
    conn = init_db(tmp_path / "jobs.db")
    yield JobStore(conn)
    conn.close()


def _pipeline(registry, store, completion, **options) -> ExtractionPipeline:  # type: ignore[no-untyped-def]
    return ExtractionPipeline(
        registry, completion, StaticContentSource(), store, PipelineOptions(**options), inter_job_delay_s=0,
    )


def _seed(store: JobStore, job_id: str = "acme-backend-1"):  # type: ignore[no-untyped-def]
    document = add_discovered_job(store, job_id, f"https://jobs.example.com/{job_id}", company="Acme")
    return job_record_from_document(document)


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestWorkedScenario:
    async def test_senior_backend_posting(self, registry, store) -> None:  # type: ignore[no-untyped-def]
        job = _seed(store)
        created_at = store.get(job.id)["created_at"]  # type: ignore[index]
        pipeline = _pipeline(registry, store, _scripted_completion(CLASSIFICATION, LEVEL, DIMENSIONS))

        result = await pipeline.run(job)

        assert result.success
        state = result.final_state
        classification = state.domain_classification
        assert (classification.domain, classification.sub_domain, classification.role) == (  # type: ignore[union-attr]
            "engineering", "backend", "senior_engineer",
        )
        assert state.experience_detection.level == "senior"  # type: ignore[union-attr]
        assert state.dimension_mapping.completeness_score == 1.0  # type: ignore[union-attr]
        assert state.quality_metrics.passed  # type: ignore[union-attr]
        assert state.job_data.status is JobStatus.EXTRACTED

        doc = store.get(job.id)
        assert doc is not None
        assert doc["status"] == "extracted"
        assert doc["company"] == "Acme"
        assert doc["domain"] == "engineering"
        assert doc["experience_level"] == "senior"
        assert doc["extracted_dimensions"]["compensation"]["confidence"] == 0.9
        assert doc["entities"]["responsibilities"] == ["Design and own backend services", "Mentor engineers"]
        assert doc["extraction_metadata"]["validation_passed"] is True
        assert doc["created_at"] == created_at


class TestMalformedExtraction:
    async def test_tolerant_mode(self, registry, store) -> None:  # type: ignore[no-untyped-def]
        job = _seed(store)
        completion = _scripted_completion(CLASSIFICATION, LEVEL, "Sure! Here are the dimensions: {oops")
        pipeline = _pipeline(registry, store, completion, stop_on_error=False)

        result = await pipeline.run(job)

        assert not result.success
        assert [(e.stage, e.error_type) for e in result.errors] == [
            ("dimension_mapper", "MalformedExtraction"),
            ("quality_validator", "MissingDependency"),
            ("storage", "MissingDependency"),
        ]
        assert result.final_state.dimension_mapping is None
        assert result.final_state.quality_metrics is None
        assert store.get(job.id)["status"] == "discovered"  # type: ignore[index]

    async def test_stop_on_error(self, registry, store) -> None:  # type: ignore[no-untyped-def]
        job = _seed(store)
        completion = _scripted_completion(CLASSIFICATION, LEVEL, "{oops")
        pipeline = _pipeline(registry, store, completion, stop_on_error=True)

        with pytest.raises(PipelineAborted) as exc_info:
            await pipeline.run(job)

        state = exc_info.value.state
        assert [e.error_type for e in state.errors] == ["MalformedExtraction"]
        assert state.experience_detection is not None
        assert store.get(job.id)["status"] == "discovered"  # type: ignore[index]


class TestIdempotence:
    async def test_rerun_converges(self, registry, store) -> None:  # type: ignore[no-untyped-def]
        job = _seed(store)
        completion = _scripted_completion(CLASSIFICATION, LEVEL, DIMENSIONS, CLASSIFICATION, LEVEL, DIMENSIONS)
        pipeline = _pipeline(registry, store, completion)

        await pipeline.run(job)
        first = store.get(job.id)
        await pipeline.run(job)
        second = store.get(job.id)

        assert first is not None and second is not None
        for field in ("extracted_dimensions", "domain", "sub_domain", "role", "experience_level", "quality_metrics"):
            assert first[field] == second[field], field
        assert first["created_at"] == second["created_at"]
        assert second["updated_at"] >= first["updated_at"]
        assert len(store.list_by_status(JobStatus.EXTRACTED)) == 1

    async def test_prior_metadata_preserved(self, registry, store) -> None:  # type: ignore[no-untyped-def]
        job = _seed(store)
        store.update(job.id, {"extraction_metadata": {"customFlag": "reviewed-by-ops"}})
        pipeline = _pipeline(registry, store, _scripted_completion(CLASSIFICATION, LEVEL, DIMENSIONS))

        await pipeline.run(job)

        meta = store.get(job.id)["extraction_metadata"]  # type: ignore[index]
        assert meta["customFlag"] == "reviewed-by-ops"
        assert meta["experience_method"] == "parsed"


class TestDiscoveredBatch:
    async def test_batch_over_store(self, registry, store) -> None:  # type: ignore[no-untyped-def]
        _seed(store, "job-a")
        _seed(store, "job-b")
        completion = _scripted_completion(CLASSIFICATION, LEVEL, DIMENSIONS, CLASSIFICATION, LEVEL, "{oops")
        pipeline = _pipeline(registry, store, completion, stop_on_error=True)

        batch = await pipeline.run_discovered(limit=5)

        assert batch.total_jobs == 2
        assert batch.successful_jobs == 1
        assert [d["id"] for d in store.list_by_status(JobStatus.DISCOVERED)] == ["job-b"]
