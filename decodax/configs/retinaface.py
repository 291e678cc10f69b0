"""Default post-processing configuration for RetinaFace (PyTorch export) networks."""

from __future__ import annotations

from ml_collections import ConfigDict


def get_config() -> ConfigDict:
    """Return the RetinaFace configuration.

    Two centred anchors per cell on each of the stride 8/16/32 levels, stored
    in centre form. The landmark count is read from the landmark output
    (five points for the standard models).
    """
    config = ConfigDict()
    config.family = "retinaface"
    config.confidence_threshold = 0.5
    config.iou_threshold = 0.5
    config.labels = ("Face",)
    config.steps = (8.0, 16.0, 32.0)
    config.min_sizes = ((16.0, 32.0), (64.0, 128.0), (256.0, 512.0))
    config.dense_first_level = False
    config.box_format = "cxcywh"
    config.variance = (0.1, 0.2)
    config.num_landmarks = None
    config.score_layout = "interleaved"
    config.include_boundaries = False
    config.max_detections = None
    config.clip_landmarks = True
    return config
