"""Match analysis: annotator contract and language-model implementation."""

from vaultbets.analysis.client import LlmAnnotator, parse_annotation
from vaultbets.analysis.interfaces import (
    Annotation,
    AnnotationError,
    IAnnotator,
    SupportingAnalysis,
)

__all__ = [
    "Annotation",
    "AnnotationError",
    "IAnnotator",
    "LlmAnnotator",
    "SupportingAnalysis",
    "parse_annotation",
]
