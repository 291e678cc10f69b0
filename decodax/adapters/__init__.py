from .base import InferenceAdapter, InferenceResult, TensorSpec, input_geometry

__all__ = ["InferenceAdapter", "InferenceResult", "TensorSpec", "input_geometry"]
