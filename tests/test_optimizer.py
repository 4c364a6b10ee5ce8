"""
Tests for the hyperparameter optimizer.

All searches run on the simulated backend, so trial results are
deterministic and fast.
"""

import optuna
import pytest

from geo_engine.backends import SimulatedBackend
from geo_engine.core.config import Metric, OptimizerConfig, OptimizerMethod, ParameterSpec, ProfilingConfig
from geo_engine.core.optimizer import HyperparameterOptimizer
from geo_engine.core.profiler import Profiler
from geo_engine.datasets import SyntheticPromptDataset

optuna.logging.set_verbosity(optuna.logging.WARNING)


@pytest.fixture
def profiler():
    return Profiler(
        SimulatedBackend("gpt2"),
        SyntheticPromptDataset(num_samples=8, prompt_tokens=16),
        ProfilingConfig(iterations=2, warmup_iterations=0),
    )


BATCH_SPACE = [ParameterSpec("batch_size", kind="categorical", choices=[1, 8])]


class TestHyperparameterOptimizer:
    """Tests for HyperparameterOptimizer."""

    def test_grid_finds_larger_batch(self, profiler):
        config = OptimizerConfig(method=OptimizerMethod.GRID, budget=10, search_space=BATCH_SPACE)

        result = HyperparameterOptimizer(profiler, config).optimize()

        # grid is capped at its size
        assert result.n_trials == 2
        assert result.best_params == {"batch_size": 8}
        assert result.direction == "maximize"
        assert result.method == "grid"
        assert result.best_profile is not None
        assert result.best_value == pytest.approx(result.best_profile.throughput_tokens_per_s)

    def test_minimize_latency(self, profiler):
        config = OptimizerConfig(
            method=OptimizerMethod.GRID,
            budget=4,
            objective=Metric.LATENCY,
            search_space=[ParameterSpec("max_new_tokens", kind="categorical", choices=[8, 32])],
        )

        result = HyperparameterOptimizer(profiler, config).optimize()

        assert result.direction == "minimize"
        assert result.best_params == {"max_new_tokens": 8}

    @pytest.mark.parametrize("method", [OptimizerMethod.BAYESIAN, OptimizerMethod.RANDOM])
    def test_budget(self, profiler, method):
        config = OptimizerConfig(method=method, budget=4, seed=1)

        result = HyperparameterOptimizer(profiler, config).optimize()

        assert result.n_trials == 4
        assert result.n_complete == 4
        assert len(result.trials) == 4

    def test_seed_reproducible(self, profiler):
        config = OptimizerConfig(method=OptimizerMethod.RANDOM, budget=3, seed=7)

        first = HyperparameterOptimizer(profiler, config).optimize()
        second = HyperparameterOptimizer(profiler, config).optimize()

        assert first.best_params == second.best_params
        assert first.best_value == second.best_value

    def test_default_search_space(self, profiler):
        optimizer = HyperparameterOptimizer(profiler, OptimizerConfig(budget=1))

        names = [spec.name for spec in optimizer.search_space]
        assert "kv_cache_dtype" in names

    def test_runtime_options_in_trials(self, profiler):
        config = OptimizerConfig(
            method=OptimizerMethod.GRID,
            budget=2,
            search_space=[ParameterSpec("kv_cache_dtype", kind="categorical", choices=["fp16", "int8"])],
        )

        result = HyperparameterOptimizer(profiler, config).optimize()

        assert result.best_params["kv_cache_dtype"] in ("fp16", "int8")
        assert result.best_profile.params["kv_cache_dtype"] == result.best_params["kv_cache_dtype"]

    def test_trials_record_metrics(self, profiler):
        config = OptimizerConfig(method=OptimizerMethod.GRID, budget=2, search_space=BATCH_SPACE)

        result = HyperparameterOptimizer(profiler, config).optimize()

        metrics = result.trials[0]["metrics"]
        for metric in Metric:
            assert metric.value in metrics
        assert "p90_latency_ms" in metrics

    def test_latency_budget_prunes(self, profiler):
        baseline = profiler.profile()
        config = OptimizerConfig(
            method=OptimizerMethod.GRID,
            budget=2,
            search_space=[ParameterSpec("max_new_tokens", kind="categorical", choices=[16, 256])],
            latency_budget_ms=baseline.p90_latency_ms * 1.5,
        )

        result = HyperparameterOptimizer(profiler, config).optimize()

        assert result.n_pruned == 1
        assert result.n_complete == 1
        assert result.best_params == {"max_new_tokens": 16}

    def test_all_trials_pruned(self, profiler):
        config = OptimizerConfig(
            method=OptimizerMethod.GRID,
            budget=2,
            search_space=BATCH_SPACE,
            latency_budget_ms=0.001,
        )

        with pytest.raises(RuntimeError, match="No trial completed"):
            HyperparameterOptimizer(profiler, config).optimize()

    def test_out_of_memory_trials_fail(self):
        profiler = Profiler(
            SimulatedBackend("llama2-7b", device="a10g"),
            SyntheticPromptDataset(num_samples=4, prompt_tokens=1000),
            ProfilingConfig(iterations=1, warmup_iterations=0),
        )
        config = OptimizerConfig(
            method=OptimizerMethod.GRID,
            budget=2,
            search_space=[ParameterSpec("batch_size", kind="categorical", choices=[1, 64])],
        )

        result = HyperparameterOptimizer(profiler, config).optimize()

        assert result.n_failed == 1
        assert result.best_params == {"batch_size": 1}

    def test_to_dict(self, profiler):
        config = OptimizerConfig(method=OptimizerMethod.GRID, budget=2, search_space=BATCH_SPACE)

        data = HyperparameterOptimizer(profiler, config).optimize().to_dict()

        assert data["best_params"] == {"batch_size": 8}
        assert data["best_profile"]["params"]["batch_size"] == 8
        assert len(data["trials"]) == 2

    def test_grid_on_default_search_space(self, profiler):
        config = OptimizerConfig(method=OptimizerMethod.GRID, budget=3)

        result = HyperparameterOptimizer(profiler, config).optimize()

        assert result.n_trials == 3
        assert result.n_complete + result.n_failed == 3

    def test_unsupported_runtime_option_fails_trial(self, profiler):
        config = OptimizerConfig(
            method=OptimizerMethod.GRID,
            budget=4,
            search_space=[ParameterSpec("kv_cache_dtype", kind="categorical", choices=["fp16", "fp4"])],
        )

        result = HyperparameterOptimizer(profiler, config).optimize()

        assert result.n_trials == 2
        assert result.n_failed == 1
        assert result.best_params == {"kv_cache_dtype": "fp16"}
