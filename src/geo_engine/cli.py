"""
Command Line Interface for GEO Engine.

Supports: transformers, OpenVINO and simulated backbones
"""

import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import click
import optuna
import yaml

from . import __version__
from .core.config import (
    BackendType,
    GEOConfig,
    Metric,
    OptimizerMethod,
)
from .core.engine import GEOEngine

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

BACKEND_CHOICES = [b.value for b in BackendType]
METHOD_CHOICES = [m.value for m in OptimizerMethod]
METRIC_CHOICES = [m.value for m in Metric]

EXAMPLE_CONFIG = """\
# GEO Engine configuration
model:
  name: gpt2
  version: main
  backend: simulated        # transformers | openvino | simulated
  device: cpu
  dtype: float32

dataset:
  name: synthetic
  path: null                # .jsonl/.json/.csv/.txt prompts; null = synthetic
  count: 0                  # 0 = all samples
  prompt_field: prompt
  reference_field: reference
  synthetic_samples: 64
  synthetic_prompt_tokens: 128

optimizer:
  method: bayesian          # bayesian | random | grid
  budget: 20
  objective: throughput     # latency | throughput | memory | quality
  seed: 42
  latency_budget_ms: 0      # 0 = no p90 latency constraint
  search_space:
    batch_size: {type: int, low: 1, high: 16}
    max_new_tokens: {type: categorical, choices: [32, 64, 128]}
    num_beams: {type: categorical, choices: [1, 2, 4]}
    do_sample: {type: categorical, choices: [false, true]}

profiling:
  metrics: [latency, throughput, memory]
  iterations: 20
  warmup_iterations: 3
  cost_per_hour: 1.0        # USD per replica hour

postprocessing:
  strip_whitespace: true
  stop_sequences: []
  max_chars: 0

deployment:
  replicas: 2
  resources:
    cpu: "2"
    memory: 4Gi
    gpu: 0
  image: geo-engine:latest
  port: 8080
  namespace: default
  output_dir: ./deploy

output:
  results_dir: ./results
  logs_dir: ./logs
"""


def _setup_logging(verbose: bool) -> None:
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        optuna.logging.set_verbosity(optuna.logging.INFO)
    else:
        optuna.logging.set_verbosity(optuna.logging.WARNING)


def _load_engine(config_path: str) -> GEOEngine:
    try:
        return GEOEngine.from_config(config_path)
    except (ValueError, FileNotFoundError, yaml.YAMLError) as e:
        click.echo(f"Error: {e}")
        sys.exit(1)


def _build_config(model: str, backend: str, device: str, dataset: Optional[str]) -> GEOConfig:
    config = GEOConfig()
    config.model.name = model
    config.model.backend = BackendType(backend)
    config.model.device = device
    if dataset:
        config.dataset.path = dataset
        config.dataset.name = Path(dataset).stem
    return config


def _check_config(config: GEOConfig) -> None:
    errors = config.validate()
    if errors:
        click.echo("Error: Invalid configuration:")
        for error in errors:
            click.echo(f"  - {error}")
        sys.exit(1)


def _load_params_file(path: str) -> Dict[str, Any]:
    """Read tuned params from a geo_params.yaml, a results JSON or a flat mapping."""
    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"Params file must contain a mapping: {path}")
    if isinstance(data.get("params"), dict):
        return data["params"]
    optimization = data.get("optimization")
    if isinstance(optimization, dict) and isinstance(optimization.get("best_params"), dict):
        return optimization["best_params"]
    return data


@click.group()
@click.version_option(version=__version__, prog_name="geo")
def main():
    """
    GEO Engine: Generative Engine Optimization

    Tunes decoding and runtime parameters of generative models for
    throughput, latency, memory or quality, reports the gain against the
    default configuration and writes deployment artifacts.

    Supported backbones:
    - transformers (Hugging Face, CPU or CUDA)
    - openvino (optimum-intel)
    - simulated (roofline model, no weights needed)
    """
    pass


@main.command()
@click.option('--config', '-c', type=click.Path(exists=True), required=True,
              help='Path to configuration file')
@click.option('--budget', type=int, default=None,
              help='Number of optimization trials (overrides config)')
@click.option('--method', type=click.Choice(METHOD_CHOICES), default=None,
              help='Search method (overrides config)')
@click.option('--output-dir', '-o', type=click.Path(), default=None,
              help='Output directory for results (overrides config)')
@click.option('--skip-deploy', is_flag=True, help='Do not write deployment artifacts')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose output')
def run(config: str, budget: Optional[int], method: Optional[str], output_dir: Optional[str],
        skip_deploy: bool, verbose: bool):
    """
    Run the full pipeline: optimize, report, deploy.

    Examples:

        geo run -c geo_config.yaml

        geo run -c geo_config.yaml --budget 50 --method random --skip-deploy
    """
    _setup_logging(verbose)

    click.echo(f"\n{'='*60}")
    click.echo("GEO Engine")
    click.echo(f"{'='*60}\n")

    click.echo(f"Loading configuration from: {config}")
    engine = _load_engine(config)

    if budget is not None:
        engine.config.optimizer.budget = budget
    if method is not None:
        engine.config.optimizer.method = OptimizerMethod(method)
    if output_dir is not None:
        engine.config.results_dir = output_dir
    _check_config(engine.config)

    cfg = engine.config
    click.echo(f"Model: {cfg.model.name} ({cfg.model.backend.value}, {cfg.model.device})")
    click.echo(f"Dataset: {cfg.dataset.path or cfg.dataset.name}")
    click.echo(f"Search: {cfg.optimizer.method.value}, budget {cfg.optimizer.budget}")
    click.echo(f"Objective: {cfg.optimizer.objective.value} ({cfg.direction})")
    click.echo("")

    try:
        engine.optimize()
    except (ValueError, RuntimeError, MemoryError, ImportError) as e:
        click.echo(f"Error: {e}")
        sys.exit(1)

    engine.print_summary()

    results_path = engine.save_results()
    click.echo(f"Results saved to: {results_path}")

    report_path = engine.benchmark_report().save(str(Path(cfg.results_dir) / "benchmark.md"))
    click.echo(f"Benchmark table saved to: {report_path}")

    if not skip_deploy:
        paths = engine.deploy()
        click.echo("Deployment artifacts:")
        for key, path in paths.items():
            click.echo(f"  {key}: {path}")


@main.command()
@click.option('--model', '-m', type=str, required=True,
              help='Model name (hub id or simulated catalog name)')
@click.option('--backend', type=click.Choice(BACKEND_CHOICES), default='transformers',
              help='Model backbone')
@click.option('--device', '-d', type=str, default='cpu', help='Target device')
@click.option('--dataset', type=click.Path(exists=True), default=None,
              help='Prompt file (synthetic prompts when omitted)')
@click.option('--method', type=click.Choice(METHOD_CHOICES), default='bayesian',
              help='Search method')
@click.option('--budget', '-n', type=int, default=20, help='Number of trials')
@click.option('--objective', type=click.Choice(METRIC_CHOICES), default='throughput',
              help='Metric to optimize')
@click.option('--iterations', type=int, default=20,
              help='Profiling iterations per trial')
@click.option('--warmup', type=int, default=3, help='Warmup iterations per trial')
@click.option('--seed', type=int, default=42, help='Sampler seed')
@click.option('--output-dir', '-o', type=click.Path(), default='./results',
              help='Output directory for results')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose output')
def optimize(model: str, backend: str, device: str, dataset: Optional[str], method: str,
             budget: int, objective: str, iterations: int, warmup: int, seed: int,
             output_dir: str, verbose: bool):
    """
    Optimize generation parameters without a config file.

    Examples:

        geo optimize -m gpt2 --backend simulated --budget 30

        geo optimize -m distilgpt2 --dataset prompts.jsonl --objective quality
    """
    _setup_logging(verbose)

    config = _build_config(model, backend, device, dataset)
    config.optimizer.method = OptimizerMethod(method)
    config.optimizer.budget = budget
    config.optimizer.objective = Metric(objective)
    config.optimizer.seed = seed
    config.profiling.iterations = iterations
    config.profiling.warmup_iterations = warmup
    if config.optimizer.objective not in config.profiling.metrics:
        config.profiling.metrics.append(config.optimizer.objective)
    config.results_dir = output_dir
    _check_config(config)

    engine = GEOEngine(config=config)
    try:
        engine.optimize()
    except (ValueError, RuntimeError, MemoryError, ImportError) as e:
        click.echo(f"Error: {e}")
        sys.exit(1)

    engine.print_summary()
    results_path = engine.save_results()
    click.echo(f"Results saved to: {results_path}")


@main.command()
@click.option('--model', '-m', type=str, required=True,
              help='Model name (hub id or simulated catalog name)')
@click.option('--backend', type=click.Choice(BACKEND_CHOICES), default='transformers',
              help='Model backbone')
@click.option('--device', '-d', type=str, default='cpu', help='Target device')
@click.option('--dataset', type=click.Path(exists=True), default=None,
              help='Prompt file (synthetic prompts when omitted)')
@click.option('--batch-size', '-b', type=int, default=1, help='Batch size')
@click.option('--max-new-tokens', type=int, default=64, help='Tokens generated per prompt')
@click.option('--iterations', '-n', type=int, default=20, help='Number of iterations')
@click.option('--warmup', type=int, default=3, help='Number of warmup iterations')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose output')
def profile(model: str, backend: str, device: str, dataset: Optional[str], batch_size: int,
            max_new_tokens: int, iterations: int, warmup: int, verbose: bool):
    """
    Profile one parameter set.

    Example:

        geo profile -m gpt2 --backend simulated -b 8 --max-new-tokens 128
    """
    _setup_logging(verbose)

    config = _build_config(model, backend, device, dataset)
    config.profiling.iterations = iterations
    config.profiling.warmup_iterations = warmup
    _check_config(config)

    engine = GEOEngine(config=config)
    click.echo(f"Profiling {model} ({warmup} warmup + {iterations} iterations)...")
    try:
        result = engine.profile({"batch_size": batch_size, "max_new_tokens": max_new_tokens})
    except (ValueError, RuntimeError, MemoryError, ImportError) as e:
        click.echo(f"Error: {e}")
        sys.exit(1)

    click.echo("\nResults:")
    click.echo(f"  Mean latency:   {result.mean_latency_ms:.2f} ms")
    click.echo(f"  Median latency: {result.median_latency_ms:.2f} ms")
    click.echo(f"  Min latency:    {result.min_latency_ms:.2f} ms")
    click.echo(f"  Max latency:    {result.max_latency_ms:.2f} ms")
    click.echo(f"  P90 latency:    {result.p90_latency_ms:.2f} ms")
    click.echo(f"  P99 latency:    {result.p99_latency_ms:.2f} ms")
    click.echo(f"  Throughput:     {result.throughput_tokens_per_s:.2f} tokens/s")
    click.echo(f"  Peak memory:    {result.peak_memory_mb:.1f} MB")


@main.command()
@click.option('--config', '-c', type=click.Path(exists=True), required=True,
              help='Path to configuration file')
@click.option('--params', '-p', type=click.Path(exists=True), default=None,
              help='Tuned params (geo_params.yaml or results JSON); defaults otherwise')
@click.option('--output-dir', '-o', type=click.Path(), default=None,
              help='Output directory (overrides config)')
def deploy(config: str, params: Optional[str], output_dir: Optional[str]):
    """
    Write Dockerfile and Kubernetes manifests.

    Examples:

        geo deploy -c geo_config.yaml -p results/results_20240101_120000.json

        geo deploy -c geo_config.yaml -o ./k8s
    """
    engine = _load_engine(config)

    try:
        values = _load_params_file(params) if params else None
        paths = engine.deploy(output_dir, params=values)
    except (ValueError, yaml.YAMLError) as e:
        click.echo(f"Error: {e}")
        sys.exit(1)

    click.echo("Deployment artifacts:")
    for key, path in paths.items():
        click.echo(f"  {key}: {path}")
    click.echo(f"\nBuild with: docker build -f {paths['dockerfile']} .")
    click.echo(f"Apply with: kubectl apply -f {paths['kubernetes']}")


@main.command('init-config')
@click.option('--output', '-o', type=click.Path(), default='geo_config.yaml',
              help='Where to write the configuration')
@click.option('--force', is_flag=True, help='Overwrite an existing file')
def init_config(output: str, force: bool):
    """
    Write an example configuration file.

    Example:

        geo init-config -o geo_config.yaml
    """
    path = Path(output)
    if path.exists() and not force:
        click.echo(f"Error: {path} already exists (use --force to overwrite)")
        sys.exit(1)

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(EXAMPLE_CONFIG)
    click.echo(f"Configuration written to: {path}")


@main.command()
@click.option('--params', '-p', type=click.Path(exists=True), required=True,
              help='Params file written by "geo deploy"')
@click.option('--host', type=str, default='0.0.0.0', help='Bind address')
@click.option('--port', type=int, default=8080, help='Port')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose output')
def serve(params: str, host: str, port: int, verbose: bool):
    """
    Serve a tuned model over HTTP (container entrypoint).

    Example:

        geo serve -p deploy/geo_params.yaml --port 8080
    """
    from .serving import serve as run_server

    _setup_logging(verbose)
    try:
        run_server(params, host=host, port=port)
    except (ValueError, MemoryError, ImportError) as e:
        click.echo(f"Error: {e}")
        sys.exit(1)


@main.command('list-models')
def list_models():
    """List models and devices known to the simulated backend."""
    from .backends.simulated_backend import HARDWARE_CATALOG, list_simulated_models

    click.echo("\nSimulated models:")
    for name, spec in sorted(list_simulated_models().items()):
        click.echo(
            f"  {name:<12} {spec.n_params / 1e6:>8.0f}M params  "
            f"{spec.n_layers:>3} layers  hidden {spec.hidden_size:<5}  "
            f"{spec.weight_bytes / 1e9:.2f} GB weights"
        )

    click.echo("\nSimulated devices:")
    for name, hw in sorted(HARDWARE_CATALOG.items()):
        click.echo(
            f"  {name:<12} {hw.peak_tflops:>6.1f} TFLOPS  "
            f"{hw.memory_bandwidth_gbps:>7.1f} GB/s  {hw.memory_gb:.0f} GB"
        )


@main.command()
def info():
    """Show system and library information."""
    import platform

    import numpy as np
    import psutil

    click.echo("\nSystem Information:")
    click.echo(f"  Platform: {platform.platform()}")
    click.echo(f"  Python: {platform.python_version()}")
    click.echo(f"  Processor: {platform.processor()}")
    click.echo(f"  Physical cores: {psutil.cpu_count(logical=False)}")
    click.echo(f"  Logical cores: {psutil.cpu_count(logical=True)}")
    click.echo(f"  Memory: {psutil.virtual_memory().total / (1024**3):.1f} GB")

    click.echo("\nLibrary Versions:")
    click.echo(f"  GEO Engine: {__version__}")
    click.echo(f"  NumPy: {np.__version__}")
    click.echo(f"  Optuna: {optuna.__version__}")

    try:
        import torch
        click.echo(f"  PyTorch: {torch.__version__}")
    except ImportError:
        click.echo("  PyTorch: Not installed")

    try:
        import transformers
        click.echo(f"  Transformers: {transformers.__version__}")
    except ImportError:
        click.echo("  Transformers: Not installed")

    try:
        import openvino as ov
        click.echo(f"  OpenVINO: {ov.__version__}")
    except ImportError:
        click.echo("  OpenVINO: Not installed")

    try:
        import optimum.intel  # noqa: F401
        click.echo("  Optimum Intel: Installed")
    except ImportError:
        click.echo("  Optimum Intel: Not installed")


if __name__ == '__main__':
    main()
