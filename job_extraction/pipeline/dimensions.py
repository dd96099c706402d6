"""Dimension mapper: extracts the role/level-specific structured fields."""

import logging
from typing import Any

from job_extraction.core.schemas import DimensionMapping, DimensionValue, PipelineState
from job_extraction.llm.completion import CompletionService
from job_extraction.llm.parsing import parse_json_object
from job_extraction.pipeline.base import Stage, request_completion, truncate
from job_extraction.taxonomy.models import DimensionConfig
from job_extraction.taxonomy.registry import TaxonomyRegistry

logger = logging.getLogger(__name__)


def is_present(value: Any) -> bool:
    """None, blank strings and empty containers count as absent."""
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, dict, tuple, set)):
        return bool(value)
    return True


def _clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


def read_dimension(raw: Any) -> tuple[Any, float]:
    """Split one response field into (value, confidence).

    Accepts a plain value or ``{"value": ..., "confidence": x}``. A plain
    present value gets confidence 1.0; an absent value always gets 0.0.
    """
    confidence: float | None = None
    value = raw
    if isinstance(raw, dict) and "value" in raw:
        value = raw["value"]
        reported = raw.get("confidence")
        if isinstance(reported, (int, float)) and not isinstance(reported, bool):
            confidence = _clamp01(float(reported))

    if not is_present(value):
        return value, 0.0
    return value, 1.0 if confidence is None else confidence


def build_mapping(data: dict[str, Any], dimensions: dict[str, DimensionConfig]) -> DimensionMapping:
    """Score the parsed response against the declared dimensions.

    Keys the response adds beyond the declared set are ignored.
    """
    values: dict[str, DimensionValue] = {}
    required_count = 0
    extracted_required = 0

    for name, cfg in dimensions.items():
        value, confidence = read_dimension(data.get(name))
        values[name] = DimensionValue(
            value=value,
            confidence=confidence,
            required=cfg.required,
            threshold=cfg.confidence_threshold,
        )
        if cfg.required:
            required_count += 1
            if is_present(value) and confidence >= cfg.confidence_threshold:
                extracted_required += 1

    completeness = extracted_required / required_count if required_count else 1.0
    return DimensionMapping(
        dimensions=values,
        total=len(values),
        required_count=required_count,
        extracted_required_count=extracted_required,
        completeness_score=_clamp01(completeness),
    )


def build_dimension_prompt(dimensions: dict[str, DimensionConfig], role: str, level: str, text: str) -> str:
    lines = [
        f"Extract the following fields from this {level} '{role}' job posting.",
        "",
    ]
    for name, cfg in dimensions.items():
        marker = "required" if cfg.required else "optional"
        lines.append(f"- {name} ({marker}): {cfg.extraction_prompt}")
    lines += [
        "",
        "Return ONLY a JSON object with one key per field. Each value is either the",
        'extracted value or {"value": <extracted value>, "confidence": <0.0-1.0>}.',
        "Use null for fields the posting does not mention.",
        "",
        "JOB POSTING",
        text,
    ]
    return "\n".join(lines)


class DimensionMapperStage(Stage):
    requires = ("extracted_content", "domain_classification", "experience_detection")

    def __init__(
        self,
        registry: TaxonomyRegistry,
        completion: CompletionService,
        *,
        max_prompt_chars: int = 4000,
    ) -> None:
        self._registry = registry
        self._completion = completion
        self._max_prompt_chars = max_prompt_chars

    @property
    def name(self) -> str:
        return "dimension_mapper"

    async def run(self, state: PipelineState) -> PipelineState:
        content, classification, detection = state.require(self.name, *self.requires)
        dimensions = self._registry.dimensions(
            classification.domain, classification.sub_domain, classification.role, detection.level,
        )
        prompt = build_dimension_prompt(
            dimensions,
            classification.role,
            detection.level,
            truncate(content.raw_text, self._max_prompt_chars),
        )
        raw = await request_completion(self._completion, prompt, stage=self.name)
        mapping = build_mapping(parse_json_object(raw), dimensions)

        logger.info(
            "Job %s: %d/%d required dimensions extracted (completeness %.2f)",
            state.job_data.id,
            mapping.extracted_required_count,
            mapping.required_count,
            mapping.completeness_score,
        )
        return state.model_copy(update={"dimension_mapping": mapping})
