"""
Exception hierarchy for the recommendation and trust-scoring engine.
"""


class EngineError(Exception):
    """Base class for all engine errors."""


class ConfigurationError(EngineError):
    """Invalid threshold, weight or other tunable, raised at load time."""


class SchemeMismatchError(EngineError):
    """A vector or profile was produced by a different extraction scheme."""

    def __init__(self, item_id: str, found: str, expected: str):
        super().__init__(
            f"{item_id}: scheme version {found!r} does not match current {expected!r}"
        )
        self.item_id = item_id
        self.found = found
        self.expected = expected


class DimensionMismatchError(EngineError):
    """Vector dimensionality differs from the current extraction scheme."""


class ExtractionError(EngineError):
    """Feature extraction failed for a single content item."""


class ContentNotFoundError(EngineError):
    """The referenced content item does not exist in the catalog."""


class InvalidRequestError(EngineError):
    """A request parameter is outside its accepted range."""


class InvalidTransitionError(EngineError):
    """The requested access-state transition is not allowed from the current state."""


class UnauthorizedActorError(EngineError):
    """The actor is not permitted to perform an administrative transition."""


class JobNotFoundError(EngineError):
    """No batch job exists with the given identifier."""
