"""Utility modules for anchor-based detectors."""

from .anchor_generator import AnchorGenerator, generate_prior_boxes
from .box_coder import (
    centers_to_corners,
    corners_to_centers,
    decode_boxes,
    decode_landmarks,
    decode_selected,
    decode_selected_landmarks,
)
from .iou import box_iou
from .nms import NMSResult, kept_indices, nms
from .score_filter import ScoreFilterResult, filter_scores, foreground_scores

__all__ = [
    "AnchorGenerator",
    "NMSResult",
    "ScoreFilterResult",
    "box_iou",
    "centers_to_corners",
    "corners_to_centers",
    "decode_boxes",
    "decode_landmarks",
    "decode_selected",
    "decode_selected_landmarks",
    "filter_scores",
    "foreground_scores",
    "generate_prior_boxes",
    "kept_indices",
    "nms",
]
