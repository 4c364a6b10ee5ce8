"""
Tests for GEOEngine, end to end on the simulated backend.
"""

import json

import optuna
import pytest
import yaml

from geo_engine import GEOConfig, GEOEngine
from geo_engine.backends import GenerationParams
from geo_engine.core.config import BackendType, OptimizerMethod, ParameterSpec

optuna.logging.set_verbosity(optuna.logging.WARNING)


def make_config(tmp_path) -> GEOConfig:
    config = GEOConfig()
    config.model.name = "gpt2"
    config.model.backend = BackendType.SIMULATED
    config.dataset.synthetic_samples = 8
    config.dataset.synthetic_prompt_tokens = 16
    config.optimizer.method = OptimizerMethod.GRID
    config.optimizer.budget = 4
    config.optimizer.search_space = [ParameterSpec("batch_size", kind="categorical", choices=[1, 8])]
    config.profiling.iterations = 2
    config.profiling.warmup_iterations = 0
    config.deployment.output_dir = str(tmp_path / "deploy")
    config.results_dir = str(tmp_path / "results")
    config.logs_dir = str(tmp_path / "logs")
    return config


@pytest.fixture
def engine(tmp_path):
    return GEOEngine(config=make_config(tmp_path))


class TestEngineConstruction:
    """Tests for building engines."""

    def test_shortcut_arguments(self):
        engine = GEOEngine(model_name="gpt2", dataset="prompts.jsonl", optimizer_method="random", budget=5)

        assert engine.config.model.name == "gpt2"
        assert engine.config.dataset.path == "prompts.jsonl"
        assert engine.config.dataset.name == "prompts"
        assert engine.config.optimizer.method == OptimizerMethod.RANDOM
        assert engine.config.optimizer.budget == 5

    def test_requires_model(self):
        with pytest.raises(ValueError):
            GEOEngine()

    def test_invalid_method(self):
        with pytest.raises(ValueError):
            GEOEngine(model_name="gpt2", optimizer_method="annealing")

    def test_from_config(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump(make_config(tmp_path).to_dict()))

        engine = GEOEngine.from_config(str(path))

        assert engine.config.model.backend == BackendType.SIMULATED
        assert engine.config.optimizer.search_space[0].choices == [1, 8]

    def test_from_config_invalid(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("optimizer:\n  budget: 0\n")

        with pytest.raises(ValueError, match="Invalid configuration") as excinfo:
            GEOEngine.from_config(str(path))

        message = str(excinfo.value)
        assert "Model name" in message
        assert "budget" in message


class TestEngine:
    """Tests for the engine pipeline."""

    def test_setup_idempotent(self, engine):
        engine.setup()
        profiler = engine.profiler
        engine.setup()

        assert engine.profiler is profiler
        assert engine.dataset.is_loaded

    def test_prompts_truncated_to_max_seq_length(self, tmp_path):
        config = make_config(tmp_path)
        config.dataset.synthetic_prompt_tokens = 200
        config.dataset.max_seq_length = 32
        engine = GEOEngine(config=config)
        engine.setup()

        output = engine.backend.generate(engine.dataset.get_item_list()[:1], GenerationParams(max_new_tokens=2))

        assert engine.backend.max_seq_length == 32
        assert output.prompt_tokens == 32

    def test_profile_records_baseline(self, engine):
        result = engine.profile()

        assert engine.baseline is result
        assert result.params["batch_size"] == 1

    def test_profile_explicit_params(self, engine):
        result = engine.profile({"batch_size": 4, "kv_cache_dtype": "int8"})

        assert engine.baseline is None
        assert result.params["batch_size"] == 4
        assert result.params["kv_cache_dtype"] == "int8"

    def test_report_requires_optimize(self, engine):
        with pytest.raises(RuntimeError):
            engine.benchmark_report()

    def test_optimize(self, engine):
        result = engine.optimize()

        assert result.best_params == {"batch_size": 8}
        assert engine.baseline is not None
        assert engine.optimized is result.best_profile
        assert engine.optimized.throughput_tokens_per_s > engine.baseline.throughput_tokens_per_s

        row = engine.benchmark_report().rows[0]
        assert row.model == "gpt2"
        assert row.cost_saving_pct > 0

    def test_profile_after_optimize_uses_best(self, engine):
        engine.optimize()

        assert engine.profile().params["batch_size"] == 8

    def test_deploy_uses_best_params(self, engine, tmp_path):
        engine.optimize()

        paths = engine.deploy()

        assert paths["params"].startswith(str(tmp_path / "deploy"))
        with open(paths["params"]) as f:
            assert yaml.safe_load(f)["params"] == {"batch_size": 8}

    def test_deploy_explicit_params(self, engine, tmp_path):
        paths = engine.deploy(str(tmp_path / "other"), params={"batch_size": 2})

        with open(paths["params"]) as f:
            assert yaml.safe_load(f)["params"] == {"batch_size": 2}

    def test_save_results(self, engine, tmp_path):
        engine.optimize()

        path = engine.save_results()

        assert path.startswith(str(tmp_path / "results"))
        with open(path) as f:
            data = json.load(f)
        assert data["model"] == "gpt2"
        assert data["config"]["model"]["backend"] == "simulated"
        assert data["optimization"]["best_params"] == {"batch_size": 8}
        assert data["baseline"]["params"]["batch_size"] == 1
        assert data["optimized"]["params"]["batch_size"] == 8
        assert len(data["report"]["rows"]) == 1
        assert "logical_cores" in data["system"]

    def test_save_results_explicit_path(self, engine, tmp_path):
        path = engine.save_results(str(tmp_path / "nested" / "out.json"))

        with open(path) as f:
            data = json.load(f)
        assert data["optimization"] is None
        assert "report" not in data

    def test_print_summary(self, engine, capsys):
        engine.optimize()

        engine.print_summary()

        out = capsys.readouterr().out
        assert "Best params" in out
        assert "batch_size: 8" in out
        assert "| gpt2 |" in out

    def test_system_info(self, engine):
        engine.setup()

        info = engine.get_system_info()

        assert info["logical_cores"] >= 1
        assert info["backend"]["backend"] == "SimulatedBackend"
