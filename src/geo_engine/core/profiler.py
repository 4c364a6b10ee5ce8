"""
Runtime profiler for GEO Engine.

Measures request latency, token throughput, memory and (optionally) output
quality for one set of generation parameters.
"""

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

import numpy as np
import psutil

from .config import Metric, ProfilingConfig
from .postprocessing import PostProcessor
from ..backends.base import BaseBackend, GenerationParams
from ..datasets.base import BaseDataset

logger = logging.getLogger(__name__)


@dataclass
class ProfileResult:
    """Statistics of one profiling run."""
    num_requests: int = 0
    num_samples: int = 0
    generated_tokens: int = 0
    total_time_s: float = 0.0
    mean_latency_ms: float = 0.0
    median_latency_ms: float = 0.0
    min_latency_ms: float = 0.0
    max_latency_ms: float = 0.0
    std_latency_ms: float = 0.0
    p50_latency_ms: float = 0.0
    p90_latency_ms: float = 0.0
    p99_latency_ms: float = 0.0
    throughput_tokens_per_s: float = 0.0
    throughput_samples_per_s: float = 0.0
    peak_memory_mb: float = 0.0
    quality: Dict[str, float] = field(default_factory=dict)
    params: Dict[str, Any] = field(default_factory=dict)

    def metric(self, metric: Metric) -> float:
        """Scalar value used as an optimization objective."""
        if metric == Metric.LATENCY:
            return self.p50_latency_ms
        elif metric == Metric.THROUGHPUT:
            return self.throughput_tokens_per_s
        elif metric == Metric.MEMORY:
            return self.peak_memory_mb
        elif metric == Metric.QUALITY:
            return float(self.quality.get("rougeL", 0.0))
        raise ValueError(f"Unsupported metric: {metric}")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProfileResult":
        return cls(**data)


def _latency_stats(latencies_ms: List[float]) -> Dict[str, float]:
    latencies = np.array(latencies_ms)
    return {
        "mean_latency_ms": float(np.mean(latencies)),
        "median_latency_ms": float(np.median(latencies)),
        "min_latency_ms": float(np.min(latencies)),
        "max_latency_ms": float(np.max(latencies)),
        "std_latency_ms": float(np.std(latencies)),
        "p50_latency_ms": float(np.percentile(latencies, 50)),
        "p90_latency_ms": float(np.percentile(latencies, 90)),
        "p99_latency_ms": float(np.percentile(latencies, 99)),
    }


class Profiler:
    """Drives a backend over a dataset and collects runtime statistics."""

    def __init__(
        self,
        backend: BaseBackend,
        dataset: BaseDataset,
        config: Optional[ProfilingConfig] = None,
        postprocessor: Optional[PostProcessor] = None,
    ):
        self.backend = backend
        self.dataset = dataset
        self.config = config or ProfilingConfig()
        self.postprocessor = postprocessor or PostProcessor()
        self._process = psutil.Process()
        self._cursor = 0

    def _next_indices(self, batch_size: int) -> List[int]:
        total = self.dataset.sample_count
        indices = [(self._cursor + i) % total for i in range(batch_size)]
        self._cursor = (self._cursor + batch_size) % total
        return indices

    def profile(
        self,
        params: Optional[GenerationParams] = None,
        runtime_options: Optional[Dict[str, Any]] = None,
    ) -> ProfileResult:
        """
        Profile the backend with the given parameters.

        Args:
            params: Decoding parameters (defaults when None)
            runtime_options: Backend-specific knobs applied before the run

        Returns:
            ProfileResult
        """
        params = params or GenerationParams()
        if params.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1 (got {params.batch_size})")

        if not self.dataset.is_loaded:
            self.dataset.load()
        if self.dataset.sample_count == 0:
            raise ValueError("Dataset is empty, nothing to profile")

        self.backend.apply_runtime_options(runtime_options or {})
        if not self.backend.is_loaded:
            self.backend.load()

        if self.config.warmup_iterations > 0:
            self._cursor = 0
            warmup_prompts, _ = self.dataset.get_batch(self._next_indices(params.batch_size))
            self.backend.warmup(self.config.warmup_iterations, params, warmup_prompts)

        self._cursor = 0
        latencies_ms: List[float] = []
        generated_tokens = 0
        num_samples = 0
        peak_rss = self._process.memory_info().rss
        peak_backend = self.backend.memory_bytes()
        predictions: List[str] = []
        references: List[Optional[str]] = []
        want_quality = Metric.QUALITY in self.config.metrics

        for _ in range(self.config.iterations):
            batch_prompts, batch_refs = self.dataset.get_batch(self._next_indices(params.batch_size))
            output = self.backend.generate(batch_prompts, params)

            latencies_ms.append(output.latency_s * 1000.0)
            generated_tokens += output.generated_tokens
            num_samples += len(batch_prompts)
            peak_rss = max(peak_rss, self._process.memory_info().rss)
            peak_backend = max(peak_backend, self.backend.memory_bytes())

            if want_quality:
                predictions.extend(self.postprocessor.process_batch(output.texts))
                references.extend(batch_refs)

        total_time = float(np.sum(latencies_ms)) / 1000.0

        quality: Dict[str, float] = {}
        if want_quality:
            if any(r is not None for r in references):
                quality = self.dataset.compute_quality(predictions, references)
            else:
                logger.warning("Quality requested but the dataset has no references")

        result = ProfileResult(
            num_requests=len(latencies_ms),
            num_samples=num_samples,
            generated_tokens=generated_tokens,
            total_time_s=total_time,
            throughput_tokens_per_s=generated_tokens / total_time if total_time > 0 else 0.0,
            throughput_samples_per_s=num_samples / total_time if total_time > 0 else 0.0,
            peak_memory_mb=max(peak_rss, peak_backend) / (1024 ** 2),
            quality=quality,
            params={**params.to_dict(), **self.backend.runtime_options},
            **_latency_stats(latencies_ms),
        )

        logger.debug(
            f"Profiled {result.params}: p50={result.p50_latency_ms:.2f} ms, "
            f"{result.throughput_tokens_per_s:.1f} tok/s, {result.peak_memory_mb:.0f} MB"
        )
        return result
