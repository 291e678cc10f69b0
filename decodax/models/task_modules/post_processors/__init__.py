"""Post-processing utilities for task-specific outputs."""

from __future__ import annotations

from .result_mapper import (
    DetectedObject,
    DetectionResult,
    get_label_name,
    map_detections,
    rescale_boxes,
    rescale_landmarks,
    scale_factors,
)

__all__ = [
    "DetectedObject",
    "DetectionResult",
    "get_label_name",
    "map_detections",
    "rescale_boxes",
    "rescale_landmarks",
    "scale_factors",
]
