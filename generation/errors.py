"""
Error taxonomy for the question acquisition pipeline.

Inside the pipeline these are carried as values on attempt outcomes rather
than raised past the resolver. Only CollaboratorUnavailable is raised by the
collaborator bindings themselves.
"""


class TriviaError(Exception):
    """Base class. `reason` is a short human-readable diagnostic."""

    def __init__(self, reason: str = ""):
        super().__init__(reason)
        self.reason = reason

    def __str__(self) -> str:
        name = type(self).__name__
        return f"{name}: {self.reason}" if self.reason else name


class InputError(TriviaError):
    """Malformed request field. Recovered by defaulting."""


class GenerationTimeout(TriviaError):
    """A generation call ran past its attempt budget and was abandoned."""


class ParseError(TriviaError):
    """No JSON object could be extracted from model output."""


class SchemaValidationError(TriviaError):
    """Structural rejection (choices, index, lengths)."""


class DomainValidationError(TriviaError):
    """Category-specific rejection (e.g. dictionary headword rules)."""


class DuplicateCollision(TriviaError):
    """Candidate subject was already served."""


class ExhaustedRetries(TriviaError):
    """Every generation attempt failed."""


class CollaboratorUnavailable(TriviaError):
    """Cache, store or generation binding missing or erroring."""
