"""
GEO Engine
==========

Generative Engine Optimization: tunes decoding and runtime parameters of
generative language models for throughput, latency, memory or quality,
and packages the tuned model for deployment.

Supported Backbones:
- transformers: Hugging Face models on CPU or CUDA
- openvino: optimum-intel OpenVINO models
- simulated: analytical roofline model (no weights needed)

Supported Search Methods:
- bayesian: Tree-structured Parzen Estimator
- random: Random sampling
- grid: Exhaustive grid sweep
"""

__version__ = "0.1.0"

from .core.config import GEOConfig
from .core.engine import GEOEngine

__all__ = [
    "GEOEngine",
    "GEOConfig",
    "__version__",
]
