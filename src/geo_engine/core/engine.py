"""
Main engine for GEO Engine.

Ties together the data loader, model backbone, optimizer, post-processing,
profiler and deployment stages.
"""

import json
import logging
import platform
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

import psutil

from .config import GEOConfig, Metric, OptimizerMethod
from .optimizer import HyperparameterOptimizer, OptimizationResult
from .postprocessing import PostProcessor
from .profiler import ProfileResult, Profiler
from .report import BenchmarkReport
from ..backends import create_backend
from ..backends.base import BaseBackend, GenerationParams
from ..datasets import create_dataset
from ..datasets.base import BaseDataset
from ..deploy import DeploymentBuilder

logger = logging.getLogger(__name__)


class GEOEngine:
    """
    Main class for tuning and profiling generative models.

    This class orchestrates:
    - Dataset and model loading
    - Baseline profiling
    - Hyperparameter search
    - Baseline vs. optimized reporting
    - Deployment artifact generation

    Example:

        engine = GEOEngine(model_name="gpt2", dataset="prompts.jsonl",
                           optimizer_method="bayesian", budget=30)
        result = engine.optimize()
        print(result.best_params)
        print(engine.profile())
    """

    def __init__(
        self,
        model_name: Optional[str] = None,
        dataset: Optional[str] = None,
        optimizer_method: str = "bayesian",
        budget: int = 20,
        config: Optional[GEOConfig] = None,
        backend: Optional[BaseBackend] = None,
    ):
        """
        Initialize the engine.

        Args:
            model_name: Hub id or catalog name (ignored when ``config`` is given)
            dataset: Prompt file path, or None for synthetic prompts
            optimizer_method: bayesian, random or grid
            budget: Number of optimization trials
            config: Full configuration (takes precedence over the shortcuts)
            backend: Pre-built backend, e.g. for tests or custom backbones
        """
        if config is None:
            if not model_name:
                raise ValueError("Either model_name or config is required")
            config = GEOConfig()
            config.model.name = model_name
            config.dataset.path = dataset
            if dataset:
                config.dataset.name = Path(dataset).stem
            config.optimizer.method = OptimizerMethod(optimizer_method)
            config.optimizer.budget = budget

        self.config = config
        self.backend: Optional[BaseBackend] = backend
        self.dataset: Optional[BaseDataset] = None
        self.postprocessor: Optional[PostProcessor] = None
        self.profiler: Optional[Profiler] = None

        self.baseline: Optional[ProfileResult] = None
        self.optimized: Optional[ProfileResult] = None
        self.optimization: Optional[OptimizationResult] = None

    @classmethod
    def from_config(cls, config_path: str, backend: Optional[BaseBackend] = None) -> "GEOEngine":
        """Create an engine from a YAML configuration file."""
        config = GEOConfig.from_yaml(config_path)
        errors = config.validate()
        if errors:
            raise ValueError("Invalid configuration:\n  - " + "\n  - ".join(errors))
        return cls(config=config, backend=backend)

    @property
    def model_label(self) -> str:
        return self.config.model.name or str(self.config.model.model_path)

    def setup(self) -> None:
        """Set up dataset, backend and profiler (idempotent)."""
        if self.profiler is not None:
            return

        Path(self.config.results_dir).mkdir(parents=True, exist_ok=True)
        Path(self.config.logs_dir).mkdir(parents=True, exist_ok=True)

        self.dataset = create_dataset(self.config.dataset, seed=self.config.optimizer.seed)
        self.dataset.load()

        if self.backend is None:
            self.backend = create_backend(self.config.model, max_seq_length=self.config.dataset.max_seq_length)

        self.postprocessor = PostProcessor(self.config.postprocessing)
        self.profiler = Profiler(
            backend=self.backend,
            dataset=self.dataset,
            config=self.config.profiling,
            postprocessor=self.postprocessor,
        )

    @property
    def best_params(self) -> Dict[str, Any]:
        """Best parameters found so far (defaults before optimization)."""
        if self.optimization is not None:
            return dict(self.optimization.best_params)
        return GenerationParams().to_dict()

    def profile(self, params: Optional[Dict[str, Any]] = None) -> ProfileResult:
        """
        Profile the model.

        Args:
            params: Flat dict of generation params and runtime options. When
                None, the best params of the last optimization are used, or
                the defaults before any optimization.

        Returns:
            ProfileResult
        """
        self.setup()

        use_defaults = params is None and self.optimization is None
        values = self.best_params if params is None else params
        generation_params, runtime_options = GenerationParams.split(values)

        result = self.profiler.profile(generation_params, runtime_options)

        if use_defaults and self.baseline is None:
            self.baseline = result
        return result

    def optimize(self) -> OptimizationResult:
        """Profile the baseline, search parameters, profile the best ones."""
        self.setup()

        if self.baseline is None:
            logger.info("Profiling baseline (default parameters)...")
            self.baseline = self.profiler.profile(GenerationParams())

        optimizer = HyperparameterOptimizer(self.profiler, self.config.optimizer)
        self.optimization = optimizer.optimize()

        logger.info("Profiling best parameters...")
        self.optimized = self.profile(self.optimization.best_params)
        self.optimization.best_profile = self.optimized

        return self.optimization

    def benchmark_report(self) -> BenchmarkReport:
        """Baseline vs. optimized comparison."""
        if self.baseline is None or self.optimized is None:
            raise RuntimeError("Run optimize() before building a benchmark report")
        return BenchmarkReport.from_profiles(
            self.model_label,
            self.baseline,
            self.optimized,
            cost_per_hour=self.config.profiling.cost_per_hour * self.config.deployment.replicas,
        )

    def deploy(
        self,
        output_dir: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, str]:
        """Write deployment artifacts for ``params`` (the best parameters by default)."""
        builder = DeploymentBuilder(
            self.config.deployment,
            self.config.model,
            params=self.best_params if params is None else params,
            postprocessing=self.config.postprocessing,
        )
        return builder.write(output_dir)

    def get_system_info(self) -> Dict[str, Any]:
        """Get system information."""
        info = {
            "platform": platform.platform(),
            "python_version": platform.python_version(),
            "processor": platform.processor(),
            "physical_cores": psutil.cpu_count(logical=False),
            "logical_cores": psutil.cpu_count(logical=True),
            "memory_gb": psutil.virtual_memory().total / (1024 ** 3),
        }

        if self.backend is not None:
            info["backend"] = self.backend.get_info()

        return info

    def results(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "model": self.model_label,
            "timestamp": datetime.now().isoformat(),
            "config": self.config.to_dict(),
            "baseline": self.baseline.to_dict() if self.baseline else None,
            "optimization": self.optimization.to_dict() if self.optimization else None,
            "optimized": self.optimized.to_dict() if self.optimized else None,
            "system": self.get_system_info(),
        }
        if self.baseline is not None and self.optimized is not None:
            data["report"] = self.benchmark_report().to_dict()
        return data

    def save_results(self, output_path: Optional[str] = None) -> str:
        """Save results to a JSON file."""
        if output_path is None:
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            output_path = Path(self.config.results_dir) / f"results_{timestamp}.json"

        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, "w") as f:
            json.dump(self.results(), f, indent=2, default=str)

        logger.info(f"Results saved to {output_path}")
        return str(output_path)

    def print_summary(self) -> None:
        """Print optimization summary to console."""
        if self.optimization is None:
            return

        opt = self.optimization
        print("\n" + "=" * 60)
        print(f"[GEO] {self.model_label} / {opt.method} / {opt.objective} ({opt.direction})")
        print("=" * 60)
        print(f"Trials: {opt.n_complete} complete, {opt.n_pruned} pruned, {opt.n_failed} failed")
        print(f"Best {opt.objective}: {opt.best_value:.4f}")
        print("Best params:")
        for name, value in sorted(opt.best_params.items()):
            print(f"  {name}: {value}")

        if self.baseline is not None and self.optimized is not None:
            print("")
            print(self.benchmark_report().to_markdown())

            if Metric.QUALITY in self.config.profiling.metrics and self.optimized.quality:
                print(f"Quality (rougeL): {self.baseline.metric(Metric.QUALITY):.2f} -> "
                      f"{self.optimized.metric(Metric.QUALITY):.2f}")

        print("=" * 60 + "\n")
