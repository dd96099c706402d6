"""Exception hierarchy for the extraction pipeline.

Stages raise these; the orchestrator catches them, records a StageError and
decides whether to continue. Only ConfigNotFound / ConfigInvalid are expected
to escape before a run starts.
"""

from typing import Any


class ExtractionError(Exception):
    """Base class for every pipeline error."""


class ConfigNotFound(ExtractionError):
    """A taxonomy or quality definition file does not exist."""


class ConfigInvalid(ExtractionError):
    """A taxonomy or quality definition failed structural validation."""


class MissingDependency(ExtractionError):
    """A stage ran without an upstream output it requires."""

    def __init__(self, stage: str, missing: list[str]) -> None:
        self.stage = stage
        self.missing = missing
        super().__init__(f"{stage} requires {', '.join(missing)} which is not available")


class InvalidClassification(ExtractionError):
    """The completion service returned a label outside the closed taxonomy."""


class ExtractionFailed(ExtractionError):
    """The completion call failed or the page yielded no usable text."""


class MalformedExtraction(ExtractionError):
    """The completion response could not be parsed into the expected shape."""


class NavigationFailed(ExtractionError):
    """The content collaborator exhausted its navigation retries."""


class StorageConflict(ExtractionError):
    """The document store rejected a read, insert or update."""


class PipelineAborted(ExtractionError):
    """Raised after recording a stage failure when stop_on_error is set.

    Carries the partial state so callers can still report or persist it.
    """

    def __init__(self, stage: str, state: Any, cause: BaseException) -> None:
        self.stage = stage
        self.state = state
        self.cause = cause
        super().__init__(f"Pipeline aborted at {stage}: {cause}")
