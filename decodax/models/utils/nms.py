"""Greedy non-maximum suppression.

This module implements the classic greedy NMS used to post-process anchor
detectors: candidates are visited in descending score order, each unsuppressed
box is kept, and every remaining box overlapping it by more than the IoU
threshold is discarded. Equal scores are visited in ascending index order so
that results are deterministic. The loop is expressed with JAX control-flow
primitives and returns fixed-shape, ``-1``-padded index arrays.
"""

from __future__ import annotations

from typing import Final, NamedTuple

import jax
import jax.numpy as jnp
import numpy as np
from jaxtyping import Array, Float, Int

from .iou import box_iou

Boxes = Float[Array, "num_boxes 4"]
Scores = Float[Array, "num_boxes"]
Indices = Int[Array, "max_kept"]
CountScalar = Int[Array, ""]

_NEGATIVE_ONE: Final[int] = -1


class NMSResult(NamedTuple):
    """Container for NMS outputs.

    Attributes:
        indices: Indices of the kept boxes in descending score order with a
            fixed shape. Unused slots are filled with ``-1``.
        valid_counts: Number of valid entries at the front of ``indices``.
    """

    indices: Indices
    valid_counts: CountScalar


def _descending_order(scores: Scores) -> Int[Array, "num_boxes"]:
    """Indices sorted by descending score, ties by ascending index."""
    return jnp.argsort(-scores, stable=True).astype(jnp.int32)


def nms(
    boxes: Boxes,
    scores: Scores,
    iou_threshold: float = 0.5,
    max_output_size: int | None = None,
    *,
    include_boundaries: bool = False,
) -> NMSResult:
    """Perform greedy non-maximum suppression on a single set of boxes.

    Args:
        boxes: Bounding boxes in ``(x1, y1, x2, y2)`` format shaped ``(N, 4)``.
        scores: Confidence scores shaped ``(N,)``.
        iou_threshold: Boxes with ``IoU > threshold`` against a kept box are
            removed.
        max_output_size: Maximum number of boxes to keep. ``None`` keeps every
            surviving box.
        include_boundaries: Forwarded to :func:`box_iou`.

    Returns:
        An :class:`NMSResult` whose valid indices are ordered by descending
        score.
    """
    boxes = jnp.asarray(boxes, dtype=jnp.float32)
    scores = jnp.asarray(scores, dtype=jnp.float32)

    if boxes.ndim != 2 or boxes.shape[-1] != 4:
        raise ValueError(f"boxes must have shape (N, 4); received {boxes.shape}.")
    if scores.ndim != 1 or scores.shape[0] != boxes.shape[0]:
        raise ValueError(f"scores must have shape (N,); received {scores.shape} for {boxes.shape[0]} boxes.")
    if max_output_size is not None and max_output_size < 0:
        raise ValueError(f"max_output_size must be non-negative; received {max_output_size}.")

    num_boxes = boxes.shape[0]
    max_kept = num_boxes if max_output_size is None else min(num_boxes, max_output_size)
    if max_kept == 0:
        return NMSResult(indices=jnp.zeros((0,), dtype=jnp.int32), valid_counts=jnp.asarray(0, dtype=jnp.int32))

    sorted_indices = _descending_order(scores)
    suppressed = jnp.zeros((num_boxes,), dtype=jnp.bool_)
    kept_indices = jnp.full((max_kept,), _NEGATIVE_ONE, dtype=jnp.int32)

    def cond_fn(state: tuple[Int[Array, ""], Int[Array, ""], Array, Array]) -> Array:
        i, kept_count, _, _ = state
        return jnp.logical_and(i < num_boxes, kept_count < max_kept)

    def body_fn(state: tuple[Int[Array, ""], Int[Array, ""], Array, Array]) -> tuple[Int[Array, ""], Int[Array, ""], Array, Array]:
        i, kept_count, suppressed_mask, kept = state
        current_index = jax.lax.dynamic_index_in_dim(sorted_indices, i, axis=0, keepdims=False)

        def skip_fn(
            operand: tuple[Int[Array, ""], Int[Array, ""], Array, Array, Int[Array, ""]],
        ) -> tuple[Int[Array, ""], Int[Array, ""], Array, Array]:
            idx_i, count, mask, selected, _ = operand
            return idx_i + 1, count, mask, selected

        def select_fn(
            operand: tuple[Int[Array, ""], Int[Array, ""], Array, Array, Int[Array, ""]],
        ) -> tuple[Int[Array, ""], Int[Array, ""], Array, Array]:
            idx_i, count, mask, selected, candidate = operand
            candidate_box = jax.lax.dynamic_slice(boxes, (candidate, 0), (1, 4))
            ious = box_iou(candidate_box, boxes, include_boundaries=include_boundaries)[0]
            new_mask = jnp.logical_or(mask, ious > iou_threshold)
            new_mask = new_mask.at[candidate].set(True)
            new_selected = selected.at[count].set(candidate)
            return idx_i + 1, count + 1, new_mask, new_selected

        current_suppressed = jax.lax.dynamic_index_in_dim(suppressed_mask, current_index, axis=0, keepdims=False)
        return jax.lax.cond(
            current_suppressed,
            skip_fn,
            select_fn,
            (i, kept_count, suppressed_mask, kept, current_index),
        )

    initial_state = (
        jnp.asarray(0, dtype=jnp.int32),
        jnp.asarray(0, dtype=jnp.int32),
        suppressed,
        kept_indices,
    )
    _, valid_count, _, final_indices = jax.lax.while_loop(cond_fn, body_fn, initial_state)
    return NMSResult(indices=final_indices, valid_counts=valid_count)


def kept_indices(result: NMSResult) -> np.ndarray:
    """Strip the ``-1`` padding from an :class:`NMSResult`."""
    indices = np.asarray(result.indices)
    if indices.ndim != 1:
        raise ValueError(f"NMS indices must be 1D; received shape {indices.shape}.")
    return indices[: int(np.asarray(result.valid_counts))].astype(np.int32)


__all__ = ["NMSResult", "kept_indices", "nms"]
