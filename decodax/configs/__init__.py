"""Preset ``ConfigDict`` factories for the supported detector families."""

from __future__ import annotations

from ml_collections import ConfigDict

from . import faceboxes, retinaface

_FACTORIES = {
    "faceboxes": faceboxes.get_config,
    "retinaface": retinaface.get_config,
}


def get_config(family: str) -> ConfigDict:
    """Return the preset configuration for ``family``."""
    try:
        return _FACTORIES[family]()
    except KeyError as exc:
        raise KeyError(f"No preset configuration for detector family {family!r}; available: {sorted(_FACTORIES)}.") from exc


__all__ = ["faceboxes", "get_config", "retinaface"]
