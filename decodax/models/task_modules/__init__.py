"""Task-specific modules (post-processing) for detectors."""

from __future__ import annotations

from .post_processors import DetectedObject, DetectionResult, map_detections

__all__ = ["DetectedObject", "DetectionResult", "map_detections"]
