"""Default post-processing configuration for FaceBoxes networks."""

from __future__ import annotations

from ml_collections import ConfigDict


def get_config() -> ConfigDict:
    """Return the FaceBoxes configuration.

    The network regresses against densified 32/64/128 px anchors on the
    stride-32 level and single 256/512 px anchors on the coarser levels.
    Scores are ``(background, face)`` pairs and there are no landmarks.
    """
    config = ConfigDict()
    config.family = "faceboxes"
    config.confidence_threshold = 0.5
    config.iou_threshold = 0.3
    config.labels = ("Face",)
    config.steps = (32.0, 64.0, 128.0)
    config.min_sizes = ((32.0, 64.0, 128.0), (256.0,), (512.0,))
    config.dense_first_level = True
    config.box_format = "xyxy"
    config.variance = (0.1, 0.2)
    config.num_landmarks = 0
    config.score_layout = "interleaved"
    config.include_boundaries = False
    config.max_detections = None
    return config
