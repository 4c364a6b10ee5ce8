"""Model backbones for GEO Engine."""

from .base import BaseBackend, GenerationOutput, GenerationParams
from .simulated_backend import (
    HARDWARE_CATALOG,
    MODEL_CATALOG,
    HardwareSpec,
    ModelSpec,
    SimulatedBackend,
    list_simulated_models,
)
from ..core.config import BackendType, ModelConfig


def create_backend(config: ModelConfig, max_seq_length: int = 0) -> BaseBackend:
    """Create the backend selected by the model configuration."""
    if config.backend == BackendType.SIMULATED:
        return SimulatedBackend(config.source, device=config.device, max_seq_length=max_seq_length)
    elif config.backend == BackendType.TRANSFORMERS:
        from .transformers_backend import TransformersBackend
        return TransformersBackend(config.source, config=config, max_seq_length=max_seq_length)
    elif config.backend == BackendType.OPENVINO:
        from .openvino_backend import OpenVINOBackend
        return OpenVINOBackend(config.source, config=config, max_seq_length=max_seq_length)
    else:
        raise ValueError(f"Unsupported backend: {config.backend}")


__all__ = [
    "BaseBackend",
    "GenerationOutput",
    "GenerationParams",
    "SimulatedBackend",
    "ModelSpec",
    "HardwareSpec",
    "MODEL_CATALOG",
    "HARDWARE_CATALOG",
    "list_simulated_models",
    "create_backend",
]
