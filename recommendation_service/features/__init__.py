"""
Feature extraction for catalog content.
"""

from .extractor import (
    ExtractionResult,
    FeatureExtractor,
    STOP_WORDS,
    cosine_similarity,
)

__all__ = [
    "ExtractionResult",
    "FeatureExtractor",
    "STOP_WORDS",
    "cosine_similarity",
]
