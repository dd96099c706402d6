"""Domain classifier: raw text → (domain, sub_domain, role) from the taxonomy.

The completion service sees the whole hierarchy in one prompt and must answer
with a path that exists in it. Anything else is rejected, never coerced.
"""

import logging

from job_extraction.core.errors import InvalidClassification
from job_extraction.core.schemas import DomainClassification, PipelineState
from job_extraction.llm.completion import CompletionService
from job_extraction.llm.parsing import parse_json_object
from job_extraction.pipeline.base import Stage, request_completion, truncate
from job_extraction.taxonomy.registry import TaxonomyRegistry

logger = logging.getLogger(__name__)

CLASSIFICATION_CONFIDENCE = 0.8


def build_classification_prompt(hierarchy: dict[str, dict[str, list[str]]], text: str) -> str:
    """Assemble the prompt listing every domain → sub-domain → role path."""
    lines = ["Classify the job posting below into exactly one path of this taxonomy.", ""]
    for domain, sub_domains in hierarchy.items():
        lines.append(f"{domain}:")
        for sub_domain, roles in sub_domains.items():
            lines.append(f"  {sub_domain}: {', '.join(roles)}")
    lines += [
        "",
        "Use the identifiers exactly as written above.",
        'Return ONLY a JSON object: {"domain": "...", "sub_domain": "...", "role": "..."}',
        "",
        "JOB POSTING",
        text,
    ]
    return "\n".join(lines)


class DomainClassifierStage(Stage):
    requires = ("extracted_content",)

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
        return "domain_classifier"

    async def run(self, state: PipelineState) -> PipelineState:
        (content,) = state.require(self.name, "extracted_content")
        prompt = build_classification_prompt(
            self._registry.hierarchy(), truncate(content.raw_text, self._max_prompt_chars),
        )
        raw = await request_completion(self._completion, prompt, stage=self.name)
        data = parse_json_object(raw)

        domain = data.get("domain")
        sub_domain = data.get("sub_domain")
        role = data.get("role")
        if not all(isinstance(v, str) for v in (domain, sub_domain, role)):
            msg = f"Classification must contain string domain, sub_domain and role, got {data}"
            raise InvalidClassification(msg)
        if not self._registry.has_path(domain, sub_domain, role):
            msg = f"'{domain}/{sub_domain}/{role}' is not a path in the taxonomy"
            raise InvalidClassification(msg)

        classification = DomainClassification(
            domain=domain,
            sub_domain=sub_domain,
            role=role,
            confidence=CLASSIFICATION_CONFIDENCE,
        )
        logger.info("Job %s classified as %s/%s/%s", state.job_data.id, domain, sub_domain, role)
        return state.model_copy(update={"domain_classification": classification})
