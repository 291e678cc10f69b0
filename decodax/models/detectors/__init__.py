"""Detector post-processing models."""

from .detection_model import DetectionModel, DetectionModelConfig, DetectorFamily

__all__ = ["DetectionModel", "DetectionModelConfig", "DetectorFamily"]
