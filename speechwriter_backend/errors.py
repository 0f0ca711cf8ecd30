"""Error taxonomy shared by the humanization pipeline and the quality gate."""

from typing import Optional


class SpeechwriterError(Exception):
    """Base class for all domain errors raised by the backend."""


class ValidationError(SpeechwriterError):
    """Malformed pipeline input. Raised before any stage runs."""


class GenerationError(SpeechwriterError):
    """The generation capability failed or returned unusable structured output."""

    def __init__(self, message: str, raw_text: Optional[str] = None):
        super().__init__(message)
        self.raw_text = raw_text


class StageFailure(SpeechwriterError):
    """A pipeline stage failed; subsequent stages must not run."""

    def __init__(self, stage: str, cause: BaseException):
        super().__init__(f"{stage} failed: {cause}")
        self.stage = stage
        self.cause = cause


class PersistenceError(SpeechwriterError):
    """A write to the persistence collaborator failed."""
