"""Merge-upsert of extraction results into the job store.

Field-level merge policy:

  IMMUTABLE  kept from the stored record once written (id, created_at)
  MERGE_MAP  shallow dict merge, new keys win, old keys kept
  REPLACE    new value overwrites (every field not listed)

Fields present only in the stored record are always preserved, so repeated
or resumed runs converge instead of clobbering data written elsewhere.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Any

from job_extraction.core.db import JobStore
from job_extraction.core.errors import StorageConflict
from job_extraction.core.schemas import JobStatus, PipelineState
from job_extraction.pipeline.entities import build_entities

logger = logging.getLogger(__name__)


class MergePolicy(str, Enum):
    REPLACE = "replace"
    MERGE_MAP = "merge_map"
    IMMUTABLE = "immutable"


FIELD_POLICIES: dict[str, MergePolicy] = {
    "id": MergePolicy.IMMUTABLE,
    "created_at": MergePolicy.IMMUTABLE,
    "extracted_dimensions": MergePolicy.MERGE_MAP,
    "extraction_metadata": MergePolicy.MERGE_MAP,
}


def policy_for(field: str) -> MergePolicy:
    return FIELD_POLICIES.get(field, MergePolicy.REPLACE)


def merge_records(
    existing: dict[str, Any],
    incoming: dict[str, Any],
    *,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Merge ``incoming`` over ``existing`` according to FIELD_POLICIES."""
    merged = dict(existing)
    for field, value in incoming.items():
        policy = policy_for(field)
        if policy is MergePolicy.IMMUTABLE:
            if merged.get(field) is None:
                merged[field] = value
        elif policy is MergePolicy.MERGE_MAP:
            old = merged.get(field)
            if isinstance(old, dict) and isinstance(value, dict):
                merged[field] = {**old, **value}
            else:
                merged[field] = value
        else:
            merged[field] = value
    merged["updated_at"] = (now or datetime.now()).isoformat()
    return merged


def build_record(state: PipelineState, *, now: datetime | None = None) -> dict[str, Any]:
    """Assemble the stored document for a completed extraction.

    Requires classification, detection, mapping and quality metrics on ``state``.
    """
    now = now or datetime.now()
    job = state.job_data
    classification = state.domain_classification
    detection = state.experience_detection
    mapping = state.dimension_mapping
    metrics = state.quality_metrics
    if classification is None or detection is None or mapping is None or metrics is None:
        msg = f"Cannot build a stored record for job '{job.id}' from an incomplete state"
        raise StorageConflict(msg)

    record: dict[str, Any] = {
        "id": job.id,
        "url": job.url,
        "status": JobStatus.EXTRACTED.value,
        "created_at": job.created_at.isoformat(),
        "updated_at": now.isoformat(),
        "domain": classification.domain,
        "sub_domain": classification.sub_domain,
        "role": classification.role,
        "experience_level": detection.level,
        "extracted_dimensions": {
            name: {
                "value": dim.value,
                "confidence": dim.confidence,
                "source": "dimension_mapper",
                "metadata": {"required": dim.required, "threshold": dim.threshold},
            }
            for name, dim in mapping.dimensions.items()
        },
        "quality_metrics": metrics.model_dump(mode="json"),
        "entities": build_entities(mapping.dimensions),
        "extraction_metadata": {
            "extraction_time": now.isoformat(),
            "total_dimensions": mapping.total,
            "required_dimensions": mapping.required_count,
            "extracted_required_dimensions": mapping.extracted_required_count,
            "quality_score": metrics.quality_score,
            "confidence_score": metrics.confidence_score,
            "completeness_score": metrics.completeness_score,
            "validation_passed": metrics.passed,
            "domain_confidence": classification.confidence,
            "experience_confidence": detection.confidence,
            "experience_method": detection.method,
        },
    }
    if state.extracted_content is not None and state.extracted_content.page_title:
        record["page_title"] = state.extracted_content.page_title
    return record


class UpsertEngine:
    """Insert-if-absent, merge-if-present over a JobStore."""

    def __init__(self, store: JobStore) -> None:
        self._store = store

    def upsert(self, record: dict[str, Any]) -> dict[str, Any]:
        key = record.get("id")
        if not key:
            msg = "Cannot upsert a record without an 'id'"
            raise StorageConflict(msg)

        existing = self._store.get(key)
        if existing is None:
            logger.info("Inserting new record for job %s", key)
            return self._store.put({**record, "status": JobStatus.EXTRACTED.value})

        merged = merge_records(existing, record)
        logger.info("Merging extraction into existing record for job %s", key)
        return self._store.update(key, merged)
