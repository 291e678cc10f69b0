"""
Inference adapter interface.

The decoding core never runs a network itself. It reads static tensor
descriptions from an adapter at setup time and consumes one
:class:`InferenceResult` per call. Output arrays inside a result are views
owned by the adapter and are only valid while the result is being processed.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Protocol

import numpy.typing as npt


@dataclass(frozen=True)
class TensorSpec:
    """Static description of one model input or output.

    Attributes:
        shape: Tensor dimensions as reported by the runtime.
        layout: Dimension names such as ``"NCHW"``; empty when unknown.
    """

    shape: tuple[int, ...]
    layout: str = ""


@dataclass(frozen=True)
class InferenceResult:
    """Raw outputs of one inference call.

    Attributes:
        outputs: Output tensors keyed by output name.
        image_width: Width of the original image in pixels.
        image_height: Height of the original image in pixels.
        frame_id: Caller-supplied identifier copied into the detection result.
    """

    outputs: Mapping[str, npt.ArrayLike]
    image_width: int
    image_height: int
    frame_id: int = 0


class InferenceAdapter(Protocol):
    """Runtime that executes the network and describes its tensors."""

    def get_input_specs(self) -> Mapping[str, TensorSpec]:
        ...

    def get_output_specs(self) -> Mapping[str, TensorSpec]:
        ...


def input_geometry(spec: TensorSpec) -> tuple[int, int, int]:
    """Return ``(height, width, channels)`` of a 4D image input.

    The layout string names each dimension (``"NCHW"`` or ``"NHWC"``). An
    empty layout is read as ``NCHW``.
    """
    layout = (spec.layout or "NCHW").upper()
    if len(spec.shape) != 4 or len(layout) != 4:
        raise ValueError(f"Expected a 4D image input; received shape {spec.shape} with layout {layout!r}.")
    try:
        return (
            int(spec.shape[layout.index("H")]),
            int(spec.shape[layout.index("W")]),
            int(spec.shape[layout.index("C")]),
        )
    except ValueError as exc:
        raise ValueError(f"Layout {layout!r} must contain N, C, H and W.") from exc
