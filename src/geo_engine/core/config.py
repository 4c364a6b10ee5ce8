"""Configuration for GEO Engine."""

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml


class OptimizerMethod(Enum):
    """Hyperparameter search strategies."""
    BAYESIAN = "bayesian"
    RANDOM = "random"
    GRID = "grid"


class BackendType(Enum):
    """Model backbones."""
    TRANSFORMERS = "transformers"
    OPENVINO = "openvino"
    SIMULATED = "simulated"


class Metric(Enum):
    """Profiling metrics."""
    LATENCY = "latency"
    THROUGHPUT = "throughput"
    MEMORY = "memory"
    QUALITY = "quality"


# Objectives that are better when larger
MAXIMIZED_METRICS = (Metric.THROUGHPUT, Metric.QUALITY)

PARAMETER_KINDS = ("int", "float", "categorical")

_MEMORY_UNITS = {
    "": 1,
    "k": 1000,
    "M": 1000 ** 2,
    "G": 1000 ** 3,
    "T": 1000 ** 4,
    "Ki": 1024,
    "Mi": 1024 ** 2,
    "Gi": 1024 ** 3,
    "Ti": 1024 ** 4,
}

_QUANTITY_RE = re.compile(r"^([0-9]+(?:\.[0-9]+)?)([A-Za-z]*)$")


def parse_memory_quantity(value: str) -> int:
    """Convert a Kubernetes memory quantity ("4Gi", "512M", "1024") to bytes."""
    match = _QUANTITY_RE.match(str(value).strip())
    if not match or match.group(2) not in _MEMORY_UNITS:
        raise ValueError(f"Invalid memory quantity: {value!r}")
    return int(float(match.group(1)) * _MEMORY_UNITS[match.group(2)])


def parse_cpu_quantity(value: str) -> float:
    """Convert a Kubernetes CPU quantity ("2", "500m", "1.5") to cores."""
    match = _QUANTITY_RE.match(str(value).strip())
    if not match or match.group(2) not in ("", "m"):
        raise ValueError(f"Invalid CPU quantity: {value!r}")
    cores = float(match.group(1))
    if match.group(2) == "m":
        cores /= 1000.0
    return cores


def _enum_value(enum_cls, value: Any, field_name: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        valid = ", ".join(e.value for e in enum_cls)
        raise ValueError(f"Invalid {field_name}: {value!r} (expected one of: {valid})")


@dataclass
class ModelConfig:
    """Model configuration."""
    name: str = ""
    version: str = "main"
    backend: BackendType = BackendType.TRANSFORMERS
    model_path: Optional[str] = None
    device: str = "cpu"
    dtype: str = "float32"
    trust_remote_code: bool = False

    @property
    def source(self) -> str:
        """Where weights are loaded from (local path wins over hub id)."""
        return self.model_path or self.name


@dataclass
class DatasetConfig:
    """Dataset configuration. ``path=None`` selects synthetic prompts."""
    name: str = "synthetic"
    path: Optional[str] = None
    count: int = 0  # 0 = all
    prompt_field: str = "prompt"
    reference_field: str = "reference"
    max_seq_length: int = 1024
    synthetic_prompt_tokens: int = 128
    synthetic_samples: int = 64


@dataclass
class ParameterSpec:
    """One dimension of the hyperparameter search space."""
    name: str
    kind: str = "float"
    low: Optional[float] = None
    high: Optional[float] = None
    step: Optional[float] = None
    log: bool = False
    choices: List[Any] = field(default_factory=list)

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> "ParameterSpec":
        kind = data.get("type", data.get("kind", "categorical" if "choices" in data else "float"))
        return cls(
            name=name,
            kind=str(kind),
            low=data.get("low"),
            high=data.get("high"),
            step=data.get("step"),
            log=bool(data.get("log", False)),
            choices=list(data.get("choices", [])),
        )

    def to_dict(self) -> Dict[str, Any]:
        if self.kind == "categorical":
            return {"type": self.kind, "choices": list(self.choices)}
        data: Dict[str, Any] = {"type": self.kind, "low": self.low, "high": self.high}
        if self.step is not None:
            data["step"] = self.step
        if self.log:
            data["log"] = True
        return data

    def validate(self) -> List[str]:
        errors = []
        if self.kind not in PARAMETER_KINDS:
            errors.append(f"Parameter '{self.name}': unknown type '{self.kind}'")
            return errors
        if self.kind == "categorical":
            if not self.choices:
                errors.append(f"Parameter '{self.name}': categorical needs choices")
            return errors
        if self.low is None or self.high is None:
            errors.append(f"Parameter '{self.name}': low and high are required")
            return errors
        if self.low > self.high:
            errors.append(f"Parameter '{self.name}': low ({self.low}) > high ({self.high})")
        if self.log and self.low <= 0:
            errors.append(f"Parameter '{self.name}': log scale requires low > 0")
        if self.step is not None and self.step <= 0:
            errors.append(f"Parameter '{self.name}': step must be positive")
        if self.log and self.step is not None:
            errors.append(f"Parameter '{self.name}': step and log cannot be combined")
        return errors


@dataclass
class OptimizerConfig:
    """Hyperparameter search configuration."""
    method: OptimizerMethod = OptimizerMethod.BAYESIAN
    budget: int = 20
    objective: Metric = Metric.THROUGHPUT
    direction: Optional[str] = None  # None = derived from objective
    seed: int = 42
    timeout_s: float = 0.0
    latency_budget_ms: float = 0.0
    search_space: List[ParameterSpec] = field(default_factory=list)

    def resolved_direction(self) -> str:
        if self.direction:
            return self.direction
        return "maximize" if self.objective in MAXIMIZED_METRICS else "minimize"


@dataclass
class ProfilingConfig:
    """Profiler configuration."""
    metrics: List[Metric] = field(default_factory=lambda: [
        Metric.LATENCY, Metric.THROUGHPUT, Metric.MEMORY,
    ])
    iterations: int = 20
    warmup_iterations: int = 3
    cost_per_hour: float = 1.0  # USD per replica hour


@dataclass
class PostProcessingConfig:
    """Generated text clean-up."""
    strip_whitespace: bool = True
    stop_sequences: List[str] = field(default_factory=list)
    max_chars: int = 0  # 0 = unlimited
    collapse_whitespace: bool = False


@dataclass
class DeploymentConfig:
    """Container and Kubernetes deployment settings."""
    replicas: int = 1
    cpu: str = "2"
    memory: str = "4Gi"
    gpu: int = 0
    image: str = "geo-engine:latest"
    port: int = 8080
    namespace: str = "default"
    output_dir: str = "./deploy"


@dataclass
class GEOConfig:
    """Main GEO Engine configuration."""

    model: ModelConfig = field(default_factory=ModelConfig)
    dataset: DatasetConfig = field(default_factory=DatasetConfig)
    optimizer: OptimizerConfig = field(default_factory=OptimizerConfig)
    profiling: ProfilingConfig = field(default_factory=ProfilingConfig)
    postprocessing: PostProcessingConfig = field(default_factory=PostProcessingConfig)
    deployment: DeploymentConfig = field(default_factory=DeploymentConfig)

    results_dir: str = "./results"
    logs_dir: str = "./logs"

    @classmethod
    def from_yaml(cls, yaml_path: str) -> "GEOConfig":
        """Load configuration from YAML file."""
        with open(yaml_path, "r") as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"Configuration root must be a mapping: {yaml_path}")

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GEOConfig":
        """Build configuration from a parsed YAML mapping."""
        model_data = data.get("model", {}) or {}
        model = ModelConfig(
            name=str(model_data.get("name", "")),
            version=str(model_data.get("version", "main")),
            backend=_enum_value(BackendType, model_data.get("backend", "transformers"), "model.backend"),
            model_path=model_data.get("model_path"),
            device=model_data.get("device", "cpu"),
            dtype=model_data.get("dtype", "float32"),
            trust_remote_code=model_data.get("trust_remote_code", False),
        )

        dataset_data = data.get("dataset", {}) or {}
        dataset = DatasetConfig(
            name=dataset_data.get("name", "synthetic"),
            path=dataset_data.get("path"),
            count=dataset_data.get("count", 0),
            prompt_field=dataset_data.get("prompt_field", "prompt"),
            reference_field=dataset_data.get("reference_field", "reference"),
            max_seq_length=dataset_data.get("max_seq_length", 1024),
            synthetic_prompt_tokens=dataset_data.get("synthetic_prompt_tokens", 128),
            synthetic_samples=dataset_data.get("synthetic_samples", 64),
        )

        optimizer_data = data.get("optimizer", {}) or {}
        space_data = optimizer_data.get("search_space", {}) or {}
        optimizer = OptimizerConfig(
            method=_enum_value(OptimizerMethod, optimizer_data.get("method", "bayesian"), "optimizer.method"),
            budget=optimizer_data.get("budget", 20),
            objective=_enum_value(Metric, optimizer_data.get("objective", "throughput"), "optimizer.objective"),
            direction=optimizer_data.get("direction"),
            seed=optimizer_data.get("seed", 42),
            timeout_s=optimizer_data.get("timeout_s", 0.0),
            latency_budget_ms=optimizer_data.get("latency_budget_ms", 0.0),
            search_space=[ParameterSpec.from_dict(name, spec) for name, spec in space_data.items()],
        )

        profiling_data = data.get("profiling", {}) or {}
        metric_names = profiling_data.get("metrics", ["latency", "throughput", "memory"])
        profiling = ProfilingConfig(
            metrics=[_enum_value(Metric, m, "profiling.metrics") for m in metric_names],
            iterations=profiling_data.get("iterations", 20),
            warmup_iterations=profiling_data.get("warmup_iterations", 3),
            cost_per_hour=profiling_data.get("cost_per_hour", 1.0),
        )

        post_data = data.get("postprocessing", {}) or {}
        postprocessing = PostProcessingConfig(
            strip_whitespace=post_data.get("strip_whitespace", True),
            stop_sequences=list(post_data.get("stop_sequences", [])),
            max_chars=post_data.get("max_chars", 0),
            collapse_whitespace=post_data.get("collapse_whitespace", False),
        )

        deploy_data = data.get("deployment", {}) or {}
        resources = deploy_data.get("resources", {}) or {}
        deployment = DeploymentConfig(
            replicas=deploy_data.get("replicas", 1),
            cpu=str(resources.get("cpu", deploy_data.get("cpu", "2"))),
            memory=str(resources.get("memory", deploy_data.get("memory", "4Gi"))),
            gpu=resources.get("gpu", deploy_data.get("gpu", 0)),
            image=deploy_data.get("image", "geo-engine:latest"),
            port=deploy_data.get("port", 8080),
            namespace=deploy_data.get("namespace", "default"),
            output_dir=deploy_data.get("output_dir", "./deploy"),
        )

        output_data = data.get("output", {}) or {}

        return cls(
            model=model,
            dataset=dataset,
            optimizer=optimizer,
            profiling=profiling,
            postprocessing=postprocessing,
            deployment=deployment,
            results_dir=output_data.get("results_dir", "./results"),
            logs_dir=output_data.get("logs_dir", "./logs"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize back to the YAML layout accepted by ``from_dict``."""
        return {
            "model": {
                "name": self.model.name,
                "version": self.model.version,
                "backend": self.model.backend.value,
                "model_path": self.model.model_path,
                "device": self.model.device,
                "dtype": self.model.dtype,
                "trust_remote_code": self.model.trust_remote_code,
            },
            "dataset": {
                "name": self.dataset.name,
                "path": self.dataset.path,
                "count": self.dataset.count,
                "prompt_field": self.dataset.prompt_field,
                "reference_field": self.dataset.reference_field,
                "max_seq_length": self.dataset.max_seq_length,
                "synthetic_prompt_tokens": self.dataset.synthetic_prompt_tokens,
                "synthetic_samples": self.dataset.synthetic_samples,
            },
            "optimizer": {
                "method": self.optimizer.method.value,
                "budget": self.optimizer.budget,
                "objective": self.optimizer.objective.value,
                "direction": self.optimizer.direction,
                "seed": self.optimizer.seed,
                "timeout_s": self.optimizer.timeout_s,
                "latency_budget_ms": self.optimizer.latency_budget_ms,
                "search_space": {p.name: p.to_dict() for p in self.optimizer.search_space},
            },
            "profiling": {
                "metrics": [m.value for m in self.profiling.metrics],
                "iterations": self.profiling.iterations,
                "warmup_iterations": self.profiling.warmup_iterations,
                "cost_per_hour": self.profiling.cost_per_hour,
            },
            "postprocessing": {
                "strip_whitespace": self.postprocessing.strip_whitespace,
                "stop_sequences": list(self.postprocessing.stop_sequences),
                "max_chars": self.postprocessing.max_chars,
                "collapse_whitespace": self.postprocessing.collapse_whitespace,
            },
            "deployment": {
                "replicas": self.deployment.replicas,
                "resources": {
                    "cpu": self.deployment.cpu,
                    "memory": self.deployment.memory,
                    "gpu": self.deployment.gpu,
                },
                "image": self.deployment.image,
                "port": self.deployment.port,
                "namespace": self.deployment.namespace,
                "output_dir": self.deployment.output_dir,
            },
            "output": {
                "results_dir": self.results_dir,
                "logs_dir": self.logs_dir,
            },
        }

    @property
    def direction(self) -> str:
        return self.optimizer.resolved_direction()

    def validate(self) -> List[str]:
        """Validate configuration and return list of errors."""
        errors = []

        if not self.model.name and not self.model.model_path:
            errors.append("Model name is required")

        if self.model.model_path and not Path(self.model.model_path).exists():
            errors.append(f"Model path not found: {self.model.model_path}")

        if self.dataset.path and not Path(self.dataset.path).exists():
            errors.append(f"Dataset path not found: {self.dataset.path}")

        if self.dataset.count < 0:
            errors.append("Dataset count must be >= 0")

        if self.optimizer.budget < 1:
            errors.append(f"Optimizer budget must be >= 1 (got {self.optimizer.budget})")

        if self.optimizer.direction not in (None, "maximize", "minimize"):
            errors.append(f"Invalid optimizer direction: {self.optimizer.direction}")

        names = set()
        for spec in self.optimizer.search_space:
            if spec.name in names:
                errors.append(f"Duplicate search space parameter: {spec.name}")
            names.add(spec.name)
            errors.extend(spec.validate())
            if (self.optimizer.method == OptimizerMethod.GRID
                    and spec.kind == "float" and spec.step is None):
                errors.append(f"Parameter '{spec.name}': grid search needs a step for float ranges")

        if self.profiling.iterations < 1:
            errors.append("Profiling iterations must be >= 1")

        if self.profiling.warmup_iterations < 0:
            errors.append("Profiling warmup iterations must be >= 0")

        if self.optimizer.objective not in self.profiling.metrics:
            errors.append(
                f"Optimizer objective '{self.optimizer.objective.value}' "
                f"is not among the profiled metrics"
            )

        if self.deployment.replicas < 1:
            errors.append(f"Deployment replicas must be >= 1 (got {self.deployment.replicas})")

        if self.deployment.gpu < 0:
            errors.append("Deployment gpu count must be >= 0")

        for label, parser, value in (
            ("cpu", parse_cpu_quantity, self.deployment.cpu),
            ("memory", parse_memory_quantity, self.deployment.memory),
        ):
            try:
                parser(value)
            except ValueError as e:
                errors.append(f"Deployment {label}: {e}")

        return errors
