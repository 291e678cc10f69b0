"""decodax model component exports."""

from __future__ import annotations

from .detectors import DetectionModel, DetectionModelConfig, DetectorFamily
from .task_modules import DetectedObject, DetectionResult

__all__ = ["DetectedObject", "DetectionModel", "DetectionModelConfig", "DetectionResult", "DetectorFamily"]
