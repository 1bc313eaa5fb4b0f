# Content recommendation and trust-scoring engine

from .errors import (
    ConfigurationError,
    ContentNotFoundError,
    DimensionMismatchError,
    EngineError,
    ExtractionError,
    InvalidRequestError,
    InvalidTransitionError,
    JobNotFoundError,
    SchemeMismatchError,
    UnauthorizedActorError,
)
from .config import EngineConfig, build_engine_config, default_engine_config
from .factory import Engine, EngineStores, build_engine
from .logging_config import (
    setup_logging,
    stop_logging,
    get_logger,
)

__all__ = [
    "ConfigurationError",
    "ContentNotFoundError",
    "DimensionMismatchError",
    "Engine",
    "EngineConfig",
    "EngineError",
    "EngineStores",
    "ExtractionError",
    "InvalidRequestError",
    "InvalidTransitionError",
    "JobNotFoundError",
    "SchemeMismatchError",
    "UnauthorizedActorError",
    "build_engine",
    "build_engine_config",
    "default_engine_config",
    "get_logger",
    "setup_logging",
    "stop_logging",
]
