"""Configuration registry: loads, validates and serves the domain taxonomy.

Layout of the taxonomy directory::

    <directory>/
        quality.yaml            # optional global thresholds
        domains/
            engineering.yaml    # one file per domain, named after it
            data_science.yaml

Built once per process and handed to every stage. Everything is validated on
construction via ``from_directory``; after that the cache is read-only.
"""

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from job_extraction.core.config import QualityThresholds
from job_extraction.core.errors import ConfigInvalid, ConfigNotFound
from job_extraction.taxonomy.models import DimensionConfig, DomainConfig, SubDomainConfig

logger = logging.getLogger(__name__)

_DOMAIN_SUFFIXES = (".yaml", ".yml")


class TaxonomyRegistry:
    """Read-only lookups over the domain taxonomy and global quality thresholds."""

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory)
        self._domains: dict[str, DomainConfig] = {}
        self._quality: QualityThresholds | None = None
        self._available: list[str] | None = None

    @classmethod
    def from_directory(cls, directory: str | Path) -> "TaxonomyRegistry":
        """Construct a registry and eagerly validate every definition in it."""
        registry = cls(directory)
        registry.load_all()
        _ = registry.quality
        logger.info(
            "Loaded taxonomy from %s: %d domains", directory, len(registry.domains()),
        )
        return registry

    @property
    def directory(self) -> Path:
        return self._directory

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def available_domains(self) -> list[str]:
        """Domain names with a definition file, sorted. Scanned once."""
        if self._available is None:
            domains_dir = self._directory / "domains"
            if not domains_dir.is_dir():
                msg = f"Taxonomy domains directory not found: {domains_dir}"
                raise ConfigNotFound(msg)
            self._available = sorted(
                p.stem for p in domains_dir.iterdir()
                if p.is_file() and p.suffix in _DOMAIN_SUFFIXES
            )
        return list(self._available)

    def load_domain(self, domain: str) -> DomainConfig:
        """Return the validated config for ``domain``, loading it on first use."""
        cached = self._domains.get(domain)
        if cached is not None:
            return cached

        path = self._domain_path(domain)
        raw = _read_yaml(path)
        try:
            config = DomainConfig.model_validate(raw)
        except ValidationError as e:
            msg = f"Invalid taxonomy for domain '{domain}' ({path}): {e}"
            raise ConfigInvalid(msg) from e

        if config.domain != domain:
            msg = f"Domain file {path.name} declares domain '{config.domain}', expected '{domain}'"
            raise ConfigInvalid(msg)

        self._domains[domain] = config
        logger.debug("Loaded domain '%s' with %d sub-domains", domain, len(config.sub_domains))
        return config

    def load_all(self) -> dict[str, DomainConfig]:
        domains = self.available_domains()
        if not domains:
            msg = f"No domain definitions found in {self._directory / 'domains'}"
            raise ConfigNotFound(msg)
        return {name: self.load_domain(name) for name in domains}

    @property
    def quality(self) -> QualityThresholds:
        """Global quality thresholds; defaults when quality.yaml is absent."""
        if self._quality is None:
            path = self._directory / "quality.yaml"
            if path.exists():
                raw = _read_yaml(path)
                try:
                    self._quality = QualityThresholds.model_validate(raw)
                except ValidationError as e:
                    msg = f"Invalid quality thresholds ({path}): {e}"
                    raise ConfigInvalid(msg) from e
            else:
                logger.debug("No quality.yaml in %s - using default thresholds", self._directory)
                self._quality = QualityThresholds()
        return self._quality

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def domains(self) -> list[str]:
        return list(self.load_all())

    def hierarchy(self) -> dict[str, dict[str, list[str]]]:
        """domain → sub_domain → role names, in declaration order."""
        return {
            name: {sub: list(sub_cfg.roles) for sub, sub_cfg in config.sub_domains.items()}
            for name, config in self.load_all().items()
        }

    def has_path(self, domain: str, sub_domain: str, role: str) -> bool:
        """True if (domain, sub_domain, role) is a path in the taxonomy."""
        if domain not in self.available_domains():
            return False
        sub_cfg = self.load_domain(domain).sub_domains.get(sub_domain)
        return sub_cfg is not None and role in sub_cfg.roles

    def sub_domain(self, domain: str, sub_domain: str) -> SubDomainConfig:
        if domain not in self.available_domains():
            msg = f"Unknown domain '{domain}'"
            raise ConfigNotFound(msg)
        sub_cfg = self.load_domain(domain).sub_domains.get(sub_domain)
        if sub_cfg is None:
            msg = f"Sub-domain '{sub_domain}' not found in domain '{domain}'"
            raise ConfigNotFound(msg)
        return sub_cfg

    def roles(self, domain: str, sub_domain: str) -> list[str]:
        return list(self.sub_domain(domain, sub_domain).roles)

    def experience_levels(self, domain: str, sub_domain: str, role: str) -> list[str]:
        """The role's declared experience levels, in declaration order."""
        sub_cfg = self._role_scope(domain, sub_domain, role)
        return list(sub_cfg.levels_for(role))

    def dimensions(
        self, domain: str, sub_domain: str, role: str, level: str,
    ) -> dict[str, DimensionConfig]:
        """Dimensions to extract for a role at an experience level."""
        sub_cfg = self._role_scope(domain, sub_domain, role)
        if level not in sub_cfg.levels_for(role):
            msg = f"Experience level '{level}' not declared for role '{role}'"
            raise ConfigNotFound(msg)
        return sub_cfg.dimensions_for(role, level)

    def _role_scope(self, domain: str, sub_domain: str, role: str) -> SubDomainConfig:
        sub_cfg = self.sub_domain(domain, sub_domain)
        if role not in sub_cfg.roles:
            msg = f"Role '{role}' not found in {domain}/{sub_domain}"
            raise ConfigNotFound(msg)
        return sub_cfg

    def _domain_path(self, domain: str) -> Path:
        if domain not in self.available_domains():
            msg = f"No taxonomy definition for domain '{domain}' in {self._directory / 'domains'}"
            raise ConfigNotFound(msg)
        for suffix in _DOMAIN_SUFFIXES:
            path = self._directory / "domains" / f"{domain}{suffix}"
            if path.exists():
                return path
        msg = f"No taxonomy definition for domain '{domain}'"
        raise ConfigNotFound(msg)


def _read_yaml(path: Path) -> Any:
    try:
        raw = yaml.safe_load(path.read_text())
    except yaml.YAMLError as e:
        msg = f"Malformed YAML in {path}: {e}"
        raise ConfigInvalid(msg) from e
    except OSError as e:
        msg = f"Cannot read {path}: {e}"
        raise ConfigNotFound(msg) from e
    if not isinstance(raw, dict):
        msg = f"{path} must contain a mapping at the top level"
        raise ConfigInvalid(msg)
    return raw
