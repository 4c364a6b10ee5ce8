"""Core components for GEO Engine."""

from .config import (
    BackendType,
    DatasetConfig,
    DeploymentConfig,
    GEOConfig,
    Metric,
    ModelConfig,
    OptimizerConfig,
    OptimizerMethod,
    ParameterSpec,
    PostProcessingConfig,
    ProfilingConfig,
)
from .profiler import ProfileResult, Profiler
from .optimizer import HyperparameterOptimizer, OptimizationResult
from .report import BenchmarkReport
from .engine import GEOEngine

__all__ = [
    "BackendType",
    "DatasetConfig",
    "DeploymentConfig",
    "GEOConfig",
    "Metric",
    "ModelConfig",
    "OptimizerConfig",
    "OptimizerMethod",
    "ParameterSpec",
    "PostProcessingConfig",
    "ProfilingConfig",
    "ProfileResult",
    "Profiler",
    "HyperparameterOptimizer",
    "OptimizationResult",
    "BenchmarkReport",
    "GEOEngine",
]
