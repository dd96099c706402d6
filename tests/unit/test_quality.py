"""Tests for the quality validator."""

import pytest

from job_extraction.core.config import QualityThresholds
from job_extraction.core.errors import MissingDependency
from job_extraction.core.schemas import DimensionMapping, DimensionValue, JobRecord, PipelineState
from job_extraction.pipeline.quality import QualityValidatorStage, validate_quality


def _mapping(dimensions: dict[str, DimensionValue]) -> DimensionMapping:
    required = [d for d in dimensions.values() if d.required]
    extracted = [
        d for d in required
        if d.value not in (None, "") and d.confidence >= (d.threshold if d.threshold is not None else 0.7)
    ]
    return DimensionMapping(
        dimensions=dimensions,
        total=len(dimensions),
        required_count=len(required),
        extracted_required_count=len(extracted),
        completeness_score=len(extracted) / len(required) if required else 1.0,
    )


def _dv(value: object = "x", confidence: float = 1.0, required: bool = True, threshold: float | None = 0.7) -> DimensionValue:
    return DimensionValue(value=value, confidence=confidence, required=required, threshold=threshold)


class TestValidateQuality:
    def test_perfect_extraction_passes(self) -> None:
        metrics = validate_quality(
            _mapping({"responsibilities": _dv(), "compensation": _dv()}), QualityThresholds(),
        )
        assert metrics.quality_score == pytest.approx(1.0)
        assert metrics.passed
        assert metrics.issues == []
        assert metrics.valid_dimensions == 2
        assert metrics.required_dimensions_met

    def test_formula(self) -> None:
        # completeness 0.5, avg confidence over valid dims (0.9, 0.8) = 0.85, required 0.5
        mapping = _mapping({
            "a": _dv(confidence=0.9),
            "b": _dv(value=None, confidence=0.0),
            "c": _dv(confidence=0.8, required=False),
        })
        metrics = validate_quality(mapping, QualityThresholds())

        assert metrics.completeness_score == pytest.approx(0.5)
        assert metrics.confidence_score == pytest.approx(0.85)
        assert metrics.required_dimensions_score == pytest.approx(0.5)
        assert metrics.quality_score == pytest.approx(0.4 * 0.5 + 0.4 * 0.85 + 0.2 * 0.5)
        assert not metrics.passed
        assert "Missing required dimension: b" in metrics.issues

    def test_low_confidence_excluded_from_average(self) -> None:
        mapping = _mapping({"a": _dv(confidence=1.0), "b": _dv(confidence=0.3, required=False)})
        metrics = validate_quality(mapping, QualityThresholds())

        assert metrics.confidence_score == pytest.approx(1.0)
        assert metrics.valid_dimensions == 1
        assert any(issue.startswith("Low confidence on b") for issue in metrics.issues)

    def test_global_threshold_used_when_dimension_has_none(self) -> None:
        mapping = _mapping({"a": _dv(), "b": _dv(confidence=0.6, required=False, threshold=None)})
        loose = validate_quality(mapping, QualityThresholds(confidence_threshold=0.5))
        strict = validate_quality(mapping, QualityThresholds(confidence_threshold=0.65))
        assert loose.valid_dimensions == 2
        assert strict.valid_dimensions == 1

    def test_no_dimensions_present(self) -> None:
        mapping = _mapping({"a": _dv(value=None, confidence=0.0)})
        metrics = validate_quality(mapping, QualityThresholds())
        assert metrics.confidence_score == 0.0
        assert metrics.quality_score == 0.0
        assert not metrics.passed

    def test_no_required_dimensions(self) -> None:
        mapping = _mapping({"notes": _dv(required=False)})
        metrics = validate_quality(mapping, QualityThresholds())
        assert metrics.required_dimensions_score == 1.0
        assert metrics.passed

    def test_each_gate_applies(self) -> None:
        # completeness 1.0 but quality threshold unreachable
        mapping = _mapping({"a": _dv(confidence=0.75)})
        metrics = validate_quality(mapping, QualityThresholds(quality_threshold=0.99))
        assert not metrics.passed
        assert any("Quality score" in issue for issue in metrics.issues)

    def test_completeness_gate(self) -> None:
        mapping = _mapping({"a": _dv(), "b": _dv(), "c": _dv(value="")})
        metrics = validate_quality(
            mapping, QualityThresholds(quality_threshold=0.0, completeness_threshold=0.9),
        )
        assert not metrics.passed
        assert any("Completeness" in issue for issue in metrics.issues)

    def test_required_gate_independent_of_thresholds(self) -> None:
        mapping = _mapping({"a": _dv(), "b": _dv(value=None, confidence=0.0)})
        metrics = validate_quality(
            mapping, QualityThresholds(quality_threshold=0.0, completeness_threshold=0.0),
        )
        assert not metrics.required_dimensions_met
        assert not metrics.passed

    def test_score_clamped(self) -> None:
        # Upstream noise: more extracted than required.
        mapping = DimensionMapping(
            dimensions={"a": _dv()},
            total=1,
            required_count=1,
            extracted_required_count=2,
            completeness_score=1.0,
        )
        metrics = validate_quality(mapping, QualityThresholds())
        assert 0.0 <= metrics.quality_score <= 1.0

    def test_deterministic(self) -> None:
        mapping = _mapping({"a": _dv(confidence=0.8), "b": _dv(confidence=0.9, required=False)})
        assert validate_quality(mapping, QualityThresholds()) == validate_quality(mapping, QualityThresholds())


class TestQualityValidatorStage:
    async def test_writes_metrics(self) -> None:
        state = PipelineState(
            job_data=JobRecord(id="job-1", url="u"),
            dimension_mapping=_mapping({"a": _dv()}),
        )
        updated = await QualityValidatorStage(QualityThresholds()).run(state)
        assert updated.quality_metrics is not None
        assert updated.quality_metrics.passed

    async def test_requires_mapping(self) -> None:
        state = PipelineState(job_data=JobRecord(id="job-1", url="u"))
        with pytest.raises(MissingDependency):
            await QualityValidatorStage(QualityThresholds()).run(state)
