"""Quality validator: pass/fail gate over a dimension mapping.

    quality = clamp01(0.4 * completeness + 0.4 * avg_confidence + 0.2 * required_score)
    passed  = quality >= quality_threshold
              and completeness >= completeness_threshold
              and every required dimension extracted
"""

import logging

from job_extraction.core.config import QualityThresholds
from job_extraction.core.schemas import DimensionMapping, PipelineState, QualityMetrics
from job_extraction.pipeline.base import Stage
from job_extraction.pipeline.dimensions import is_present

logger = logging.getLogger(__name__)

COMPLETENESS_WEIGHT = 0.4
CONFIDENCE_WEIGHT = 0.4
REQUIRED_WEIGHT = 0.2


def _clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


def validate_quality(mapping: DimensionMapping, thresholds: QualityThresholds) -> QualityMetrics:
    """Compute quality metrics. Pure; the issues list never affects the score."""
    issues: list[str] = []
    valid_confidences: list[float] = []

    for name, dim in mapping.dimensions.items():
        threshold = dim.threshold if dim.threshold is not None else thresholds.confidence_threshold
        present = is_present(dim.value)
        if present and dim.confidence >= threshold:
            valid_confidences.append(dim.confidence)
        elif present:
            issues.append(f"Low confidence on {name}: {dim.confidence:.2f} < {threshold:.2f}")
        elif dim.required:
            issues.append(f"Missing required dimension: {name}")

    avg_confidence = sum(valid_confidences) / len(valid_confidences) if valid_confidences else 0.0
    required_score = (
        mapping.extracted_required_count / mapping.required_count if mapping.required_count else 1.0
    )
    completeness = mapping.completeness_score
    quality_score = _clamp01(
        COMPLETENESS_WEIGHT * completeness
        + CONFIDENCE_WEIGHT * avg_confidence
        + REQUIRED_WEIGHT * required_score
    )
    required_met = mapping.extracted_required_count >= mapping.required_count

    if quality_score < thresholds.quality_threshold:
        issues.append(
            f"Quality score {quality_score:.2f} below threshold {thresholds.quality_threshold:.2f}"
        )
    if completeness < thresholds.completeness_threshold:
        issues.append(
            f"Completeness {completeness:.2f} below threshold {thresholds.completeness_threshold:.2f}"
        )

    return QualityMetrics(
        quality_score=quality_score,
        completeness_score=completeness,
        confidence_score=avg_confidence,
        required_dimensions_score=required_score,
        passed=(
            quality_score >= thresholds.quality_threshold
            and completeness >= thresholds.completeness_threshold
            and required_met
        ),
        issues=issues,
        total_dimensions=mapping.total,
        valid_dimensions=len(valid_confidences),
        required_dimensions_met=required_met,
    )


class QualityValidatorStage(Stage):
    requires = ("dimension_mapping",)

    def __init__(self, thresholds: QualityThresholds) -> None:
        self._thresholds = thresholds

    @property
    def name(self) -> str:
        return "quality_validator"

    async def run(self, state: PipelineState) -> PipelineState:
        (mapping,) = state.require(self.name, "dimension_mapping")
        metrics = validate_quality(mapping, self._thresholds)
        logger.info(
            "Job %s: quality %.2f (%s)",
            state.job_data.id, metrics.quality_score, "passed" if metrics.passed else "failed",
        )
        return state.model_copy(update={"quality_metrics": metrics})
