"""Single-shot face detector post-processing model.

:class:`DetectionModel` owns a validated :class:`DetectionModelConfig` and the
anchor table of the network it wraps, and turns every inference result into a
:class:`DetectionResult`:

1. keep anchors whose foreground score exceeds ``confidence_threshold``;
2. decode their regression (and landmark) rows against the anchors;
3. run greedy NMS with ``iou_threshold``;
4. map the survivors to original image pixels.

Detector families differ only in configuration data (anchor layout, expected
outputs, landmark decoding), selected by :class:`DetectorFamily`.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, fields
from typing import Any, Final

import jax.numpy as jnp
from jaxtyping import Array, Float
from ml_collections import ConfigDict

from decodax.adapters.base import InferenceAdapter, InferenceResult, TensorSpec, input_geometry
from decodax.exceptions import ConfigurationError, OutputShapeError
from decodax.models.task_modules.post_processors.result_mapper import DetectionResult, map_detections
from decodax.models.utils.anchor_generator import AnchorGenerator, BoxFormat
from decodax.models.utils.box_coder import decode_selected, decode_selected_landmarks
from decodax.models.utils.nms import kept_indices, nms
from decodax.models.utils.score_filter import ScoreLayout, filter_scores, scores_per_anchor

logger = logging.getLogger(__name__)

_ROLE_KEYWORDS: Final[dict[str, tuple[str, ...]]] = {
    "boxes": ("bbox", "box", "loc"),
    "scores": ("cls", "score", "conf"),
    "landmarks": ("landmark", "lmk", "kps"),
}


class DetectorFamily(enum.Enum):
    """Supported detector output conventions."""

    FACEBOXES = "faceboxes"
    RETINAFACE = "retinaface"


_FAMILY_DEFAULTS: Final[dict[DetectorFamily, dict[str, Any]]] = {
    DetectorFamily.FACEBOXES: {
        "steps": (32.0, 64.0, 128.0),
        "min_sizes": ((32.0, 64.0, 128.0), (256.0,), (512.0,)),
        "dense_first_level": True,
        "box_format": "xyxy",
        "iou_threshold": 0.3,
        "num_landmarks": 0,
        "num_landmarks": 0,
    },
    DetectorFamily.RETINAFACE: {
        "steps": (8.0, 16.0, 32.0),
        "min_sizes": ((16.0, 32.0), (64.0, 128.0), (256.0, 512.0)),
        "dense_first_level": False,
        "box_format": "cxcywh",
        "iou_threshold": 0.5,
        "num_landmarks": None,
    },
}


@dataclass(frozen=True, kw_only=True)
class DetectionModelConfig:
    """Configuration bundle for :class:`DetectionModel`.

    Attributes:
        family: Detector family; selects expected outputs and landmark support.
        confidence_threshold: Minimum foreground score (exclusive).
        iou_threshold: NMS overlap threshold (exclusive).
        labels: Label table. Face detectors use ``("Face",)``.
        steps: Pixel stride per pyramid level.
        min_sizes: Anchor sizes per pyramid level.
        dense_first_level: Densify small anchors on the first level.
        box_format: Storage form of the anchor table.
        variance: ``(center, size)`` regression variance.
        num_landmarks: Landmark points per detection. ``0`` disables landmark
            decoding, ``None`` infers the count from the landmark output.
        score_layout: ``"interleaved"`` (background, foreground) pairs or
            ``"single"`` foreground scores.
        include_boundaries: Use inclusive pixel boundaries in NMS IoU.
        max_detections: Optional cap on the number of NMS survivors.
        clip_landmarks: Clamp landmarks to the original image bounds.
        output_names: Optional explicit ``role -> output name`` mapping for the
            ``boxes``, ``scores`` and ``landmarks`` roles.

    Geometry fields left as ``None`` (``iou_threshold``, ``steps``,
    ``min_sizes``, ``dense_first_level``, ``box_format``, ``num_landmarks``)
    take the defaults of ``family``. For RetinaFace an unset ``num_landmarks``
    stays ``None`` and is inferred; for FaceBoxes it becomes ``0``.
    """

    family: DetectorFamily = DetectorFamily.FACEBOXES
    confidence_threshold: float = 0.5
    iou_threshold: float | None = None
    labels: Sequence[str] = ("Face",)
    steps: Sequence[float] | None = None
    min_sizes: Sequence[Sequence[float]] | None = None
    dense_first_level: bool | None = None
    box_format: BoxFormat | None = None
    variance: Sequence[float] = (0.1, 0.2)
    num_landmarks: int | None = None
    score_layout: ScoreLayout = "interleaved"
    include_boundaries: bool = False
    max_detections: int | None = None
    clip_landmarks: bool = True
    output_names: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate values and normalize containers."""
        try:
            family = DetectorFamily(self.family)
        except ValueError as exc:
            valid = [member.value for member in DetectorFamily]
            raise ConfigurationError(f"family must be one of {valid}; received {self.family!r}.") from exc
        object.__setattr__(self, "family", family)
        for key, value in _FAMILY_DEFAULTS[family].items():
            if getattr(self, key) is None:
                object.__setattr__(self, key, value)
        object.__setattr__(self, "labels", tuple(str(label) for label in self.labels))
        object.__setattr__(self, "variance", tuple(float(v) for v in self.variance))
        object.__setattr__(self, "output_names", dict(self.output_names))

        if not self.labels:
            raise ConfigurationError("labels must contain at least one entry.")
        if len(self.variance) != 2:
            raise ConfigurationError(f"variance must contain two values; received {self.variance}.")
        if not 0.0 <= self.iou_threshold <= 1.0:
            raise ConfigurationError(f"iou_threshold must be within [0, 1]; received {self.iou_threshold}.")
        if self.num_landmarks is not None and self.num_landmarks < 0:
            raise ConfigurationError(f"num_landmarks must be non-negative; received {self.num_landmarks}.")
        if family is DetectorFamily.FACEBOXES and self.num_landmarks:
            raise ConfigurationError("FaceBoxes models do not produce landmarks; num_landmarks must be 0.")
        if self.max_detections is not None and self.max_detections < 0:
            raise ConfigurationError(f"max_detections must be non-negative; received {self.max_detections}.")
        unknown_roles = set(self.output_names) - set(_ROLE_KEYWORDS)
        if unknown_roles:
            raise ConfigurationError(f"Unknown output roles {sorted(unknown_roles)}; expected {sorted(_ROLE_KEYWORDS)}.")
        try:
            scores_per_anchor(self.score_layout)
            generator = self.anchor_generator()
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc
        object.__setattr__(self, "steps", generator.steps)
        object.__setattr__(self, "min_sizes", generator.min_sizes)

    @classmethod
    def for_family(cls, family: DetectorFamily | str, **overrides: Any) -> DetectionModelConfig:
        """Return the default configuration of ``family`` with ``overrides`` applied."""
        try:
            family = DetectorFamily(family)
        except ValueError as exc:
            raise ConfigurationError(f"Unknown detector family {family!r}.") from exc
        values = dict(_FAMILY_DEFAULTS[family])
        values.update(overrides)
        return cls(family=family, **values)

    @classmethod
    def from_config_dict(cls, config: ConfigDict | Mapping[str, Any]) -> DetectionModelConfig:
        """Build a configuration from an :class:`ml_collections.ConfigDict`.

        Keys that are not configuration fields raise :class:`ConfigurationError`.
        Missing keys fall back to the defaults of the configured family.
        """
        values = config.to_dict() if isinstance(config, ConfigDict) else dict(config)
        known = {f.name for f in fields(cls)}
        unknown = set(values) - known
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {sorted(unknown)}.")
        family = values.pop("family", DetectorFamily.FACEBOXES)
        return cls.for_family(family, **values)

    @property
    def landmarks_enabled(self) -> bool:
        return self.num_landmarks is None or self.num_landmarks > 0

    def anchor_generator(self) -> AnchorGenerator:
        return AnchorGenerator(
            steps=self.steps,
            min_sizes=self.min_sizes,
            dense_first_level=self.dense_first_level,
            box_format=self.box_format,
        )


def _anchor_dimension(name: str, spec: TensorSpec, row_width: int) -> int:
    """Return ``N`` for an output shaped ``[1, N, row_width]`` or ``[N, row_width]``.

    Single-value rows may also drop the trailing axis: ``[1, N]`` or ``[N]``.
    """
    shape = tuple(int(dim) for dim in spec.shape)
    if len(shape) == 3 and shape[0] == 1:
        shape = shape[1:]
    if row_width == 1:
        if len(shape) == 1:
            return shape[0]
        if len(shape) == 2 and shape[0] == 1:
            return shape[1]
    if len(shape) != 2 or shape[1] != row_width:
        raise OutputShapeError(f"Output {name!r} must have shape [1, N, {row_width}]; received {tuple(spec.shape)}.")
    return shape[0]


class DetectionModel:
    """Post-processing wrapper for anchor-based face detectors.

    The anchor table is generated once for the network input resolution and is
    only read afterwards, so a single instance may post-process results from
    several threads.
    """

    def __init__(self, config: DetectionModelConfig, adapter: InferenceAdapter) -> None:
        self.config = config
        self._adapter = adapter
        name = config.family.value

        input_specs = dict(adapter.get_input_specs())
        if len(input_specs) != 1:
            raise ConfigurationError(f"{name} model wrapper expects models that have only 1 input; received {len(input_specs)}.")
        try:
            height, width, channels = input_geometry(next(iter(input_specs.values())))
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc
        if channels != 3:
            raise ConfigurationError(f"Expected 3-channel input; received {channels} channels.")

        self._generator = config.anchor_generator()
        self._anchors: Float[Array, "num_anchors 4"] = jnp.zeros((0, 4), dtype=jnp.float32)
        self._input_size = (0, 0)
        self._output_roles: dict[str, str] = {}
        self._num_landmarks = 0
        self.reshape(width, height)

    @property
    def anchors(self) -> Float[Array, "num_anchors 4"]:
        return self._anchors

    @property
    def num_anchors(self) -> int:
        return int(self._anchors.shape[0])

    @property
    def input_size(self) -> tuple[int, int]:
        """Network input ``(width, height)``."""
        return self._input_size

    @property
    def num_landmarks(self) -> int:
        return self._num_landmarks

    @property
    def output_roles(self) -> dict[str, str]:
        return dict(self._output_roles)

    def reshape(self, width: int, height: int) -> None:
        """Regenerate anchors for a new network input resolution.

        Output descriptions are re-read from the adapter and validated against
        the new anchor count.
        """
        output_specs = dict(self._adapter.get_output_specs())
        roles = self._resolve_output_roles(output_specs)
        anchors = self._generator.generate(height, width)
        num_anchors = int(anchors.shape[0])

        box_count = _anchor_dimension(roles["boxes"], output_specs[roles["boxes"]], 4)
        score_width = scores_per_anchor(self.config.score_layout)
        score_count = _anchor_dimension(roles["scores"], output_specs[roles["scores"]], score_width)
        for role, count in (("boxes", box_count), ("scores", score_count)):
            if count != num_anchors:
                raise OutputShapeError(
                    f"Output {roles[role]!r} describes {count} anchors but {num_anchors} were generated "
                    f"for a {width}x{height} input."
                )

        num_landmarks = 0
        if "landmarks" in roles:
            num_landmarks = self._resolve_landmark_count(roles["landmarks"], output_specs[roles["landmarks"]], num_anchors)

        self._anchors = anchors
        self._input_size = (int(width), int(height))
        self._output_roles = roles
        self._num_landmarks = num_landmarks
        logger.info(
            "Generated %d %s anchors for a %dx%d input (%d landmarks)",
            num_anchors,
            self.config.family.value,
            width,
            height,
            num_landmarks,
        )

    def _resolve_landmark_count(self, name: str, spec: TensorSpec, num_anchors: int) -> int:
        shape = tuple(int(dim) for dim in spec.shape)
        if len(shape) == 3 and shape[0] == 1:
            shape = shape[1:]
        if len(shape) != 2 or shape[1] % 2 != 0 or shape[1] == 0:
            raise OutputShapeError(f"Output {name!r} must have shape [1, N, 2 * L]; received {tuple(spec.shape)}.")
        if shape[0] != num_anchors:
            raise OutputShapeError(f"Output {name!r} describes {shape[0]} anchors but {num_anchors} were generated.")
        inferred = shape[1] // 2
        configured = self.config.num_landmarks
        if configured is not None and configured != inferred:
            raise OutputShapeError(f"Output {name!r} holds {inferred} landmarks but num_landmarks is {configured}.")
        return inferred

    def _required_roles(self) -> tuple[str, ...]:
        if self.config.family is DetectorFamily.RETINAFACE and self.config.landmarks_enabled:
            return ("boxes", "scores", "landmarks")
        return ("boxes", "scores")

    def _resolve_output_roles(self, output_specs: Mapping[str, TensorSpec]) -> dict[str, str]:
        """Assign output tensor names to the ``boxes``/``scores``/``landmarks`` roles."""
        required = self._required_roles()
        name = self.config.family.value
        if len(output_specs) != len(required):
            raise ConfigurationError(
                f"{name} model wrapper expects models that have {len(required)} outputs; received {len(output_specs)}."
            )

        roles: dict[str, str] = {}
        for role, output_name in self.config.output_names.items():
            if role not in required:
                continue
            if output_name not in output_specs:
                raise ConfigurationError(f"Configured output {output_name!r} for role {role!r} does not exist.")
            roles[role] = output_name

        for role in required:
            if role in roles:
                continue
            matches = [
                output_name
                for output_name in output_specs
                if output_name not in roles.values() and any(key in output_name.lower() for key in _ROLE_KEYWORDS[role])
            ]
            if len(matches) == 1:
                roles[role] = matches[0]

        missing = [role for role in required if role not in roles]
        unassigned = sorted(output_name for output_name in output_specs if output_name not in roles.values())
        if len(missing) == 1 and len(unassigned) == 1:
            roles[missing[0]] = unassigned[0]
        elif missing and len(missing) == len(required) == 2:
            # Unnamed two-output models follow sorted name order: boxes, scores.
            roles = dict(zip(required, unassigned))
        elif missing:
            raise ConfigurationError(f"Could not identify outputs for roles {missing} among {sorted(output_specs)}.")
        return roles

    def _output(self, result: InferenceResult, role: str, row_width: int) -> jnp.ndarray:
        output_name = self._output_roles[role]
        if output_name not in result.outputs:
            raise OutputShapeError(f"Inference result is missing output {output_name!r}.")
        tensor = jnp.asarray(result.outputs[output_name], dtype=jnp.float32)
        if tensor.size != self.num_anchors * row_width:
            raise OutputShapeError(
                f"Output {output_name!r} holds {tensor.size} values; expected {self.num_anchors * row_width}."
            )
        return tensor

    def postprocess(self, result: InferenceResult) -> DetectionResult:
        """Convert one inference result into detections in image pixels."""
        config = self.config
        boxes_tensor = self._output(result, "boxes", 4)
        scores_tensor = self._output(result, "scores", scores_per_anchor(config.score_layout))

        candidates = filter_scores(scores_tensor, config.confidence_threshold, layout=config.score_layout)
        logger.debug(
            "Frame %d: %d candidates above confidence %.3f",
            result.frame_id,
            int(candidates.indices.shape[0]),
            config.confidence_threshold,
        )

        anchors = self._anchors
        boxes = decode_selected(boxes_tensor, anchors, candidates.indices, config.variance, anchor_format=config.box_format)
        landmarks = None
        if self._num_landmarks:
            landmark_tensor = self._output(result, "landmarks", 2 * self._num_landmarks)
            landmarks = decode_selected_landmarks(
                landmark_tensor,
                anchors,
                candidates.indices,
                self._num_landmarks,
                config.variance,
                anchor_format=config.box_format,
            )

        nms_result = nms(
            boxes,
            candidates.scores,
            iou_threshold=config.iou_threshold,
            max_output_size=config.max_detections,
            include_boundaries=config.include_boundaries,
        )
        keep = kept_indices(nms_result)
        logger.debug("Frame %d: %d detections after NMS", result.frame_id, keep.shape[0])

        objects = map_detections(
            keep,
            boxes,
            candidates.scores,
            image_size=(result.image_width, result.image_height),
            input_size=self._input_size,
            labels=config.labels,
            landmarks=landmarks,
            clip_landmarks=config.clip_landmarks,
        )
        return DetectionResult(objects=objects, frame_id=result.frame_id)

    __call__ = postprocess


__all__ = ["DetectionModel", "DetectionModelConfig", "DetectorFamily"]
