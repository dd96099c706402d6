"""Experience level detector: picks one level from the role's declared set.

A messy or unusable answer never fails the stage. It falls back to
containment recovery and then to the first declared level, with the
confidence lowered to match.
"""

import logging

from job_extraction.core.schemas import ExperienceDetection, PipelineState
from job_extraction.llm.completion import CompletionService
from job_extraction.llm.parsing import ParseStatus, parse_label
from job_extraction.pipeline.base import Stage, request_completion, truncate
from job_extraction.taxonomy.models import ExperienceLevelConfig
from job_extraction.taxonomy.registry import TaxonomyRegistry

logger = logging.getLogger(__name__)

METHOD_CONFIDENCE = {
    "parsed": 0.8,
    "recovered": 0.6,
    "defaulted": 0.3,
}


def build_experience_prompt(levels: dict[str, ExperienceLevelConfig], role: str, text: str) -> str:
    lines = [f"Determine the experience level for this '{role}' job posting.", "", "Allowed levels:"]
    for name, cfg in levels.items():
        hint = f" (signals: {', '.join(cfg.keywords)})" if cfg.keywords else ""
        lines.append(f"  - {name}{hint}")
    lines += [
        "",
        'Return ONLY a JSON object: {"level": "<one of the allowed levels>"}',
        "",
        "JOB POSTING",
        text,
    ]
    return "\n".join(lines)


class ExperienceLevelStage(Stage):
    requires = ("extracted_content", "domain_classification")

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
        return "experience_level_detector"

    async def run(self, state: PipelineState) -> PipelineState:
        content, classification = state.require(self.name, *self.requires)
        sub_cfg = self._registry.sub_domain(classification.domain, classification.sub_domain)
        levels = sub_cfg.levels_for(classification.role)
        allowed = list(levels)

        prompt = build_experience_prompt(
            levels, classification.role, truncate(content.raw_text, self._max_prompt_chars),
        )
        raw = await request_completion(self._completion, prompt, stage=self.name)
        outcome = parse_label(raw, allowed, key="level")

        if outcome.status is ParseStatus.FAILED or outcome.value is None:
            level, method = allowed[0], "defaulted"
            logger.warning(
                "Job %s: could not read an experience level (%s), defaulting to '%s'",
                state.job_data.id, outcome.detail, level,
            )
        else:
            level, method = outcome.value, outcome.status.value
            if outcome.status is ParseStatus.RECOVERED:
                logger.info("Job %s: recovered level '%s' from free text", state.job_data.id, level)

        detection = ExperienceDetection(level=level, confidence=METHOD_CONFIDENCE[method], method=method)
        return state.model_copy(update={"experience_detection": detection}).with_metadata(
            **{f"{self.name}_method": method},
        )
