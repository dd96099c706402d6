"""Taxonomy models: domain → sub-domain → role → experience level → dimension.

Dimensions resolve from the most specific level that defines them
(experience level, then role, then sub-domain). Experience levels resolve from
the role, then the sub-domain. Declaration order is kept; the first declared
level is the detector's fallback.
"""

from typing import Any

from pydantic import BaseModel, Field, StrictBool, StrictInt, field_validator, model_validator


class DimensionConfig(BaseModel):
    """One structured field to extract."""

    required: StrictBool
    confidence_threshold: float = Field(ge=0.0, le=1.0, strict=True)
    extraction_prompt: str

    @field_validator("extraction_prompt")
    @classmethod
    def prompt_not_empty(cls, v: str) -> str:
        if not v.strip():
            msg = "extraction_prompt must not be empty"
            raise ValueError(msg)
        return v.strip()


class ExperienceLevelConfig(BaseModel):
    required_dimensions: StrictInt = Field(ge=0)
    analysis_depth: str = "standard"
    keywords: list[str] = Field(default_factory=list)
    dimensions: dict[str, DimensionConfig] | None = None


class RoleConfig(BaseModel):
    """Per-role overrides. Empty means the sub-domain defaults apply."""

    experience_levels: dict[str, ExperienceLevelConfig] | None = None
    dimensions: dict[str, DimensionConfig] | None = None

    @field_validator("experience_levels")
    @classmethod
    def levels_not_empty(
        cls, v: dict[str, ExperienceLevelConfig] | None,
    ) -> dict[str, ExperienceLevelConfig] | None:
        if v is not None and not v:
            msg = "experience_levels override must not be empty"
            raise ValueError(msg)
        return v


class SubDomainConfig(BaseModel):
    roles: dict[str, RoleConfig]
    dimensions: dict[str, DimensionConfig]
    experience_levels: dict[str, ExperienceLevelConfig]

    @field_validator("roles", mode="before")
    @classmethod
    def roles_from_list(cls, v: Any) -> Any:
        # A plain list means every role takes the sub-domain defaults.
        if isinstance(v, list):
            return {name: {} for name in v}
        if isinstance(v, dict):
            return {name: cfg or {} for name, cfg in v.items()}
        return v

    @field_validator("roles", "dimensions", "experience_levels")
    @classmethod
    def not_empty(cls, v: dict[str, Any]) -> dict[str, Any]:
        if not v:
            msg = "must define at least one entry"
            raise ValueError(msg)
        return v

    @model_validator(mode="after")
    def required_counts_fit(self) -> "SubDomainConfig":
        for role in self.roles:
            for level, level_cfg in self.levels_for(role).items():
                available = len(self.dimensions_for(role, level))
                if level_cfg.required_dimensions > available:
                    msg = (
                        f"level '{level}' of role '{role}' requires "
                        f"{level_cfg.required_dimensions} dimensions but only {available} are defined"
                    )
                    raise ValueError(msg)
        return self

    def levels_for(self, role: str) -> dict[str, ExperienceLevelConfig]:
        role_cfg = self.roles[role]
        return role_cfg.experience_levels or self.experience_levels

    def dimensions_for(self, role: str, level: str) -> dict[str, DimensionConfig]:
        role_cfg = self.roles[role]
        level_cfg = self.levels_for(role).get(level)
        if level_cfg is not None and level_cfg.dimensions:
            return level_cfg.dimensions
        return role_cfg.dimensions or self.dimensions


class DomainConfig(BaseModel):
    domain: str
    description: str = ""
    sub_domains: dict[str, SubDomainConfig]

    @field_validator("sub_domains")
    @classmethod
    def sub_domains_not_empty(cls, v: dict[str, SubDomainConfig]) -> dict[str, SubDomainConfig]:
        if not v:
            msg = "sub_domains must define at least one sub-domain"
            raise ValueError(msg)
        return v
