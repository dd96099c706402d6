"""Entity formatting: dimension mapping → the stored record's ``entities`` block.

Dimensions with a known entity field land at the top level; everything else
goes under ``inferred_sections`` so no extracted data is dropped.
"""

from typing import Any

from job_extraction.core.schemas import DimensionValue

DIMENSION_TO_ENTITY: dict[str, str] = {
    "job_title": "job_title",
    "title": "job_title",
    "company": "company_name",
    "company_name": "company_name",
    "about_company": "about_company",
    "location": "location",
    "workplace_type": "workplace_type",
    "remote_policy": "workplace_type",
    "employment_type": "employment_type",
    "responsibilities": "responsibilities",
    "what_you_will_do": "what_you_will_do",
    "day_to_day": "what_you_will_do",
    "requirements": "requirements",
    "minimum_qualifications": "minimum_qualifications",
    "preferred_qualifications": "additional_qualifications",
    "additional_qualifications": "additional_qualifications",
    "required_skills": "required_skills",
    "technical_skills": "required_skills",
    "soft_skills": "soft_skills",
    "benefits": "benefits",
    "compensation": "compensation",
    "salary_range": "compensation",
    "equal_opportunity": "equal_opportunity",
}

# Always present in the output, [] when nothing mapped to them.
CANONICAL_LIST_FIELDS = (
    "benefits",
    "employment_type",
    "requirements",
    "workplace_type",
    "minimum_qualifications",
    "equal_opportunity",
    "about_company",
    "responsibilities",
    "soft_skills",
    "additional_qualifications",
    "what_you_will_do",
)

# Coerced to a list only when present.
OPTIONAL_LIST_FIELDS = ("location", "required_skills")


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    if isinstance(value, (tuple, set)):
        return list(value)
    if isinstance(value, str) and not value.strip():
        return []
    return [value]


def build_entities(dimensions: dict[str, DimensionValue]) -> dict[str, Any]:
    entities: dict[str, Any] = {"inferred_sections": {}}

    for name, dim in dimensions.items():
        field = DIMENSION_TO_ENTITY.get(name)
        if field is None:
            entities["inferred_sections"][name] = dim.value
        elif dim.value is not None or field not in entities:
            entities[field] = dim.value

    for field in CANONICAL_LIST_FIELDS:
        entities[field] = _as_list(entities.get(field))
    for field in OPTIONAL_LIST_FIELDS:
        if entities.get(field) is not None:
            entities[field] = _as_list(entities[field])

    return entities
