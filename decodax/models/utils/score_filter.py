"""Confidence filtering of per-anchor detector scores.

Detector heads emit either two scores per anchor, laid out as interleaved
``(background, foreground)`` pairs, or a single foreground score per anchor.
:func:`filter_scores` keeps the anchors whose foreground score exceeds a
threshold and reports them in ascending anchor-index order.
"""

from __future__ import annotations

from typing import Final, Literal, NamedTuple

import jax.numpy as jnp
from jaxtyping import Array, Float, Int

ScoreLayout = Literal["interleaved", "single"]

_LAYOUT_WIDTHS: Final[dict[str, int]] = {"interleaved": 2, "single": 1}


class ScoreFilterResult(NamedTuple):
    """Anchors that passed the confidence threshold.

    Attributes:
        indices: Anchor indices in ascending order.
        scores: Foreground score of each selected anchor.
    """

    indices: Int[Array, "num_candidates"]
    scores: Float[Array, "num_candidates"]


def scores_per_anchor(layout: ScoreLayout) -> int:
    """Return how many score values each anchor occupies for ``layout``."""
    try:
        return _LAYOUT_WIDTHS[layout]
    except KeyError as exc:
        raise ValueError(f"layout must be one of {tuple(_LAYOUT_WIDTHS)}; received {layout!r}.") from exc


def foreground_scores(scores: jnp.ndarray, layout: ScoreLayout = "interleaved") -> Float[Array, "num_anchors"]:
    """Extract the foreground score of every anchor.

    Args:
        scores: Raw score tensor. Any shape whose flattened length is a
            multiple of the layout width is accepted, e.g. ``[1, N, 2]``,
            ``[N, 2]`` or ``[N]``.
        layout: ``"interleaved"`` for ``(background, foreground)`` pairs or
            ``"single"`` for one score per anchor.

    Returns:
        Foreground confidences shaped ``[N]``.
    """
    width = scores_per_anchor(layout)
    scores = jnp.asarray(scores, dtype=jnp.float32)
    if scores.size % width != 0:
        raise ValueError(f"{layout} scores need a multiple of {width} values; received shape {scores.shape}.")
    return scores.reshape(-1, width)[:, width - 1]


def filter_scores(
    scores: jnp.ndarray,
    threshold: float,
    *,
    layout: ScoreLayout = "interleaved",
) -> ScoreFilterResult:
    """Select anchors whose foreground score is strictly above ``threshold``.

    Args:
        scores: Raw score tensor (see :func:`foreground_scores`).
        threshold: Confidence cut-off.
        layout: Score layout of ``scores``.

    Returns:
        A :class:`ScoreFilterResult` ordered by anchor index. Both arrays are
        empty when no anchor passes.
    """
    foreground = foreground_scores(scores, layout)
    indices = jnp.nonzero(foreground > threshold)[0].astype(jnp.int32)
    return ScoreFilterResult(indices=indices, scores=jnp.take(foreground, indices, axis=0))


__all__ = ["ScoreFilterResult", "ScoreLayout", "filter_scores", "foreground_scores", "scores_per_anchor"]
