"""decodax: anchor-based detector post-processing in JAX."""

from __future__ import annotations

from .adapters import InferenceAdapter, InferenceResult, TensorSpec
from .exceptions import ConfigurationError, DecodaxError, OutputShapeError
from .models import DetectedObject, DetectionModel, DetectionModelConfig, DetectionResult, DetectorFamily

__version__ = "0.1.0"

__all__ = [
    "ConfigurationError",
    "DecodaxError",
    "DetectedObject",
    "DetectionModel",
    "DetectionModelConfig",
    "DetectionResult",
    "DetectorFamily",
    "InferenceAdapter",
    "InferenceResult",
    "OutputShapeError",
    "TensorSpec",
]
