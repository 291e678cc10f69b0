"""Prior (anchor) box generation for single-shot face detectors.

This module builds the fixed anchor table that FaceBoxes and RetinaFace style
networks regress against. For every pyramid level the input image is divided
into ``height // step`` by ``width // step`` cells, visited row-major, and each
cell emits one or more square anchors per configured minimum size.

The finest level of FaceBoxes uses anchor densification: small anchors are
replicated at sub-cell offsets so that they tile the image as densely as the
larger ones.

    * min size 32 -> 4 x 4 sub-positions at offsets ``{0, .25, .5, .75}``
    * min size 64 -> 2 x 2 sub-positions at offsets ``{0, .5}``
    * any other size -> a single anchor centred in the cell

The anchor index order produced here is the order of the network's output
rows, so it must never change for a fixed configuration.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Final, Literal

import jax.numpy as jnp
from jaxtyping import Array, Float

BoxFormat = Literal["xyxy", "cxcywh"]
Anchors = Float[Array, "num_anchors 4"]

_DENSE_OFFSETS: Final[dict[float, tuple[float, ...]]] = {
    32: (0.0, 0.25, 0.5, 0.75),
    64: (0.0, 0.5),
}
_CENTER_OFFSET: Final[tuple[float, ...]] = (0.5,)
_BOX_FORMATS: Final[tuple[str, ...]] = ("xyxy", "cxcywh")


def _normalize_min_sizes(min_sizes: Sequence[Sequence[float] | float]) -> tuple[tuple[float, ...], ...]:
    """Coerce per-level minimum sizes to a tuple of float tuples."""
    normalized = []
    for sizes in min_sizes:
        if isinstance(sizes, (int, float)):
            normalized.append((float(sizes),))
        else:
            normalized.append(tuple(float(size) for size in sizes))
    return tuple(normalized)


@dataclass(frozen=True, kw_only=True)
class AnchorGenerator:
    """Generator for the prior boxes of a multi-level single-shot detector.

    Attributes:
        steps: Pixel stride of each pyramid level (e.g. ``(32, 64, 128)``).
        min_sizes: Anchor edge lengths per level. Level ``k`` emits one anchor
            group per entry of ``min_sizes[k]``, in the configured order.
        dense_first_level: Apply the FaceBoxes densification rule on level 0.
        box_format: ``"xyxy"`` for ``(left, top, right, bottom)`` anchors or
            ``"cxcywh"`` for ``(center_x, center_y, width, height)`` anchors.

    Notes:
        * Anchors are expressed in network-input pixel coordinates.
        * The number of anchors in a cell depends only on the level, so the
          total count is ``sum(cells_k * anchors_per_cell(k))``.
    """

    steps: Sequence[float] = (32.0, 64.0, 128.0)
    min_sizes: Sequence[Sequence[float]] = ((32.0, 64.0, 128.0), (256.0,), (512.0,))
    dense_first_level: bool = True
    box_format: BoxFormat = "xyxy"

    def __post_init__(self) -> None:
        """Validate configuration and normalize containers."""
        steps = tuple(float(step) for step in self.steps)
        min_sizes = _normalize_min_sizes(self.min_sizes)
        if len(steps) != len(min_sizes):
            raise ValueError(f"steps and min_sizes must share the same length; got {len(steps)} and {len(min_sizes)}.")
        if not steps:
            raise ValueError("At least one pyramid level is required.")
        if any(step <= 0 for step in steps):
            raise ValueError(f"steps must be positive; received {steps}.")
        for level, sizes in enumerate(min_sizes):
            if not sizes:
                raise ValueError(f"min_sizes for level {level} must contain at least one value.")
            if any(size <= 0 for size in sizes):
                raise ValueError(f"min_sizes must be positive; received {sizes} for level {level}.")
        if self.box_format not in _BOX_FORMATS:
            raise ValueError(f"box_format must be one of {_BOX_FORMATS}; received {self.box_format!r}.")

        object.__setattr__(self, "steps", steps)
        object.__setattr__(self, "min_sizes", min_sizes)

    @property
    def num_levels(self) -> int:
        return len(self.steps)

    def feature_map_shapes(self, height: int, width: int) -> tuple[tuple[int, int], ...]:
        """Return the ``(rows, cols)`` cell grid of every level."""
        if height < 0 or width < 0:
            raise ValueError(f"Input shape must be non-negative, got ({height}, {width}).")
        return tuple((int(height // step), int(width // step)) for step in self.steps)

    def _cell_template(self, level: int) -> list[tuple[float, float, float]]:
        """Return ``(offset_x, offset_y, size)`` for each anchor of one cell."""
        template = []
        for size in self.min_sizes[level]:
            if level == 0 and self.dense_first_level:
                offsets = _DENSE_OFFSETS.get(size, _CENTER_OFFSET)
            else:
                offsets = _CENTER_OFFSET
            for offset_y in offsets:
                for offset_x in offsets:
                    template.append((offset_x, offset_y, size))
        return template

    def anchors_per_cell(self, level: int) -> int:
        """Return the number of anchors emitted by one cell of ``level``."""
        if not 0 <= level < self.num_levels:
            raise IndexError(f"level must be in [0, {self.num_levels}); received {level}.")
        return len(self._cell_template(level))

    def num_anchors(self, height: int, width: int) -> int:
        """Return the total anchor count for an input of ``height`` x ``width``."""
        shapes = self.feature_map_shapes(height, width)
        return sum(rows * cols * self.anchors_per_cell(level) for level, (rows, cols) in enumerate(shapes))

    def generate(
        self,
        height: int,
        width: int,
        *,
        per_level: bool = False,
    ) -> list[Anchors] | Anchors:
        """Generate anchors for a network input of ``height`` x ``width`` pixels.

        Args:
            height: Network input height in pixels.
            width: Network input width in pixels.
            per_level: If ``True``, return a list with one array per level.

        Returns:
            Anchors of all levels concatenated in level order with shape
            ``[N, 4]`` when ``per_level=False``; otherwise a list of per-level
            arrays.
        """
        shapes = self.feature_map_shapes(height, width)
        anchors_by_level = [
            self._generate_level_anchors(level, rows, cols) for level, (rows, cols) in enumerate(shapes)
        ]
        if per_level:
            return anchors_by_level
        return jnp.concatenate(anchors_by_level, axis=0)

    def _generate_level_anchors(self, level: int, rows: int, cols: int) -> Anchors:
        """Generate anchors for a single pyramid level."""
        if rows == 0 or cols == 0:
            return jnp.zeros((0, 4), dtype=jnp.float32)

        step = self.steps[level]
        template = jnp.asarray(self._cell_template(level), dtype=jnp.float32)

        grid_x, grid_y = jnp.meshgrid(
            jnp.arange(cols, dtype=jnp.float32),
            jnp.arange(rows, dtype=jnp.float32),
            indexing="xy",
        )
        # [rows, cols, anchors_per_cell]; rows outermost, sub-anchors innermost.
        centers_x = (grid_x[..., None] + template[:, 0]) * step
        centers_y = (grid_y[..., None] + template[:, 1]) * step
        sizes = jnp.broadcast_to(template[:, 2], centers_x.shape)

        if self.box_format == "cxcywh":
            anchors = jnp.stack((centers_x, centers_y, sizes, sizes), axis=-1)
        else:
            half_sizes = 0.5 * sizes
            anchors = jnp.stack(
                (
                    centers_x - half_sizes,
                    centers_y - half_sizes,
                    centers_x + half_sizes,
                    centers_y + half_sizes,
                ),
                axis=-1,
            )
        return anchors.reshape(-1, 4)


def generate_prior_boxes(
    height: int,
    width: int,
    *,
    steps: Sequence[float] = (32.0, 64.0, 128.0),
    min_sizes: Sequence[Sequence[float]] = ((32.0, 64.0, 128.0), (256.0,), (512.0,)),
    dense_first_level: bool = True,
    box_format: BoxFormat = "xyxy",
) -> Anchors:
    """Functional API for prior box generation.

    Args:
        height: Network input height in pixels.
        width: Network input width in pixels.
        steps: Pixel stride per level.
        min_sizes: Anchor sizes per level.
        dense_first_level: Apply sub-cell densification on level 0.
        box_format: Output box representation.

    Returns:
        All anchors flattened across levels with shape ``[N, 4]``.
    """
    generator = AnchorGenerator(
        steps=steps,
        min_sizes=min_sizes,
        dense_first_level=dense_first_level,
        box_format=box_format,
    )
    return generator.generate(height, width, per_level=False)


__all__ = ["AnchorGenerator", "BoxFormat", "generate_prior_boxes"]
