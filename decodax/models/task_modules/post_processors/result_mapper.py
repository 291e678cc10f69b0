"""Mapping of decoded detections back to original image space.

Detections are decoded in network-input pixels. The network input is a plain
(aspect-ratio ignoring) resize of the original image, so each axis is mapped
back independently:

* ``scale_x = input_width / image_width`` and ``scale_y = input_height / image_height``
* every x coordinate is divided by ``scale_x`` and every y coordinate by ``scale_y``
* coordinates are clamped to ``[0, image_width]`` / ``[0, image_height]``

The survivors of NMS are then packaged as :class:`DetectedObject` instances,
preserving the NMS order (descending confidence).
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field

import jax.numpy as jnp
import numpy as np
from jaxtyping import Array, Float

Size = tuple[int, int]
BoxArray = Float[Array, "num_boxes 4"]
LandmarkArray = Float[Array, "num_boxes num_landmarks 2"]


@dataclass(frozen=True)
class DetectedObject:
    """A single detection in original-image pixel coordinates."""

    label_id: int
    label: str
    confidence: float
    box: tuple[float, float, float, float]
    landmarks: tuple[tuple[float, float], ...] | None = None

    @property
    def x(self) -> float:
        return self.box[0]

    @property
    def y(self) -> float:
        return self.box[1]

    @property
    def width(self) -> float:
        return self.box[2] - self.box[0]

    @property
    def height(self) -> float:
        return self.box[3] - self.box[1]

    @property
    def area(self) -> float:
        return max(0.0, self.width) * max(0.0, self.height)


@dataclass
class DetectionResult:
    """Ordered detections produced for one inference result."""

    objects: list[DetectedObject] = field(default_factory=list)
    frame_id: int = 0

    def __len__(self) -> int:
        return len(self.objects)

    def __iter__(self) -> Iterator[DetectedObject]:
        return iter(self.objects)

    def boxes(self) -> np.ndarray:
        """Return boxes as a ``[N, 4]`` float32 array."""
        return np.asarray([obj.box for obj in self.objects], dtype=np.float32).reshape(-1, 4)

    def scores(self) -> np.ndarray:
        return np.asarray([obj.confidence for obj in self.objects], dtype=np.float32)

    def labels(self) -> np.ndarray:
        return np.asarray([obj.label_id for obj in self.objects], dtype=np.int32)

    def landmarks(self) -> np.ndarray | None:
        """Return landmarks as ``[N, L, 2]``, or ``None`` if none were decoded."""
        if not self.objects or self.objects[0].landmarks is None:
            return None
        return np.asarray([obj.landmarks for obj in self.objects], dtype=np.float32)


def get_label_name(labels: Sequence[str], label_id: int) -> str:
    """Look up ``label_id`` in ``labels``, falling back to ``"#<id>"``."""
    if 0 <= label_id < len(labels):
        return labels[label_id]
    return f"#{label_id}"


def scale_factors(input_size: Size, image_size: Size) -> tuple[float, float]:
    """Return ``(scale_x, scale_y)`` from original image to network input.

    Both sizes are ``(width, height)`` in pixels.
    """
    input_width, input_height = input_size
    image_width, image_height = image_size
    if image_width <= 0 or image_height <= 0:
        raise ValueError(f"image_size must be positive; received {image_size}.")
    if input_width <= 0 or input_height <= 0:
        raise ValueError(f"input_size must be positive; received {input_size}.")
    return float(input_width) / float(image_width), float(input_height) / float(image_height)


def rescale_boxes(boxes: BoxArray, scale: tuple[float, float], image_size: Size) -> BoxArray:
    """Map ``(x1, y1, x2, y2)`` boxes to image space and clamp them."""
    boxes = jnp.asarray(boxes, dtype=jnp.float32)
    if boxes.ndim != 2 or boxes.shape[-1] != 4:
        raise ValueError(f"boxes must have shape (N, 4); received {boxes.shape}.")
    scale_x, scale_y = scale
    width, height = image_size
    x1 = jnp.clip(boxes[:, 0] / scale_x, 0.0, float(width))
    y1 = jnp.clip(boxes[:, 1] / scale_y, 0.0, float(height))
    x2 = jnp.clip(boxes[:, 2] / scale_x, 0.0, float(width))
    y2 = jnp.clip(boxes[:, 3] / scale_y, 0.0, float(height))
    return jnp.stack((x1, y1, x2, y2), axis=-1)


def rescale_landmarks(
    landmarks: LandmarkArray,
    scale: tuple[float, float],
    image_size: Size,
    *,
    clip: bool = True,
) -> LandmarkArray:
    """Map ``[N, L, 2]`` landmark points to image space and optionally clamp them."""
    landmarks = jnp.asarray(landmarks, dtype=jnp.float32)
    if landmarks.ndim != 3 or landmarks.shape[-1] != 2:
        raise ValueError(f"landmarks must have shape (N, L, 2); received {landmarks.shape}.")
    scale_x, scale_y = scale
    width, height = image_size
    xs = landmarks[..., 0] / scale_x
    ys = landmarks[..., 1] / scale_y
    if clip:
        xs = jnp.clip(xs, 0.0, float(width))
        ys = jnp.clip(ys, 0.0, float(height))
    return jnp.stack((xs, ys), axis=-1)


def map_detections(
    kept: Sequence[int] | np.ndarray,
    boxes: BoxArray,
    scores: Float[Array, "num_boxes"],
    *,
    image_size: Size,
    input_size: Size,
    labels: Sequence[str],
    label_ids: Sequence[int] | np.ndarray | None = None,
    landmarks: LandmarkArray | None = None,
    clip_landmarks: bool = True,
) -> list[DetectedObject]:
    """Package the kept detections in original image coordinates.

    Args:
        kept: Positions into ``boxes``/``scores`` in output order.
        boxes: Decoded boxes in network-input pixels.
        scores: Confidence of every decoded box.
        image_size: Original image ``(width, height)``.
        input_size: Network input ``(width, height)``.
        labels: Label table; single-class detectors use ``labels[0]``.
        label_ids: Optional class id of every decoded box (defaults to 0).
        landmarks: Optional decoded landmarks shaped ``[N, L, 2]``.
        clip_landmarks: Clamp landmark points to the image bounds.

    Returns:
        Detections ordered like ``kept``.
    """
    kept_array = np.asarray(kept, dtype=np.int32).reshape(-1)
    if kept_array.size == 0:
        return []

    scale = scale_factors(input_size, image_size)
    selected_boxes = np.asarray(rescale_boxes(jnp.take(jnp.asarray(boxes), kept_array, axis=0), scale, image_size))
    selected_scores = np.asarray(scores)[kept_array]
    selected_ids = np.zeros_like(kept_array) if label_ids is None else np.asarray(label_ids, dtype=np.int32)[kept_array]
    selected_landmarks = None
    if landmarks is not None:
        selected_landmarks = np.asarray(
            rescale_landmarks(
                jnp.take(jnp.asarray(landmarks), kept_array, axis=0),
                scale,
                image_size,
                clip=clip_landmarks,
            )
        )

    objects = []
    for row, label_id in enumerate(selected_ids):
        points = None
        if selected_landmarks is not None:
            points = tuple((float(x), float(y)) for x, y in selected_landmarks[row])
        objects.append(
            DetectedObject(
                label_id=int(label_id),
                label=get_label_name(labels, int(label_id)),
                confidence=float(selected_scores[row]),
                box=tuple(float(v) for v in selected_boxes[row]),
                landmarks=points,
            )
        )
    return objects


__all__ = [
    "DetectedObject",
    "DetectionResult",
    "get_label_name",
    "map_detections",
    "rescale_boxes",
    "rescale_landmarks",
    "scale_factors",
]
