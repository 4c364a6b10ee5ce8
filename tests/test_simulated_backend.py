"""
Tests for the simulated (roofline) backend.
"""

import pytest

from geo_engine.backends import GenerationParams, create_backend
from geo_engine.backends.simulated_backend import (
    HardwareSpec,
    SimulatedBackend,
    list_simulated_models,
)
from geo_engine.core.config import BackendType, ModelConfig


def _throughput(output):
    return output.generated_tokens / output.latency_s


class TestSimulatedBackend:
    """Tests for SimulatedBackend."""

    @pytest.fixture
    def backend(self):
        backend = SimulatedBackend("gpt2")
        backend.load()
        return backend

    @pytest.fixture
    def prompts(self):
        return ["tell me about caching in distributed systems"] * 8

    def test_unknown_model(self):
        with pytest.raises(ValueError, match="Unknown simulated model"):
            SimulatedBackend("not-a-model")

    def test_unknown_device(self):
        with pytest.raises(ValueError, match="Unknown simulated device"):
            SimulatedBackend("gpt2", device="tpu")

    def test_hub_name_normalized(self):
        backend = SimulatedBackend("facebook/opt-125m", device="A100")

        assert backend.model_spec.name == "opt-125m"
        assert backend.hardware.name == "a100"

    def test_catalog(self):
        models = list_simulated_models()

        assert "gpt2" in models
        assert models["gpt2"].weight_bytes == models["gpt2"].n_params * 4

    def test_load(self, backend):
        assert backend.is_loaded
        assert backend.memory_bytes() == backend.model_spec.weight_bytes

    def test_load_out_of_memory(self):
        backend = SimulatedBackend("llama2-7b")
        backend.hardware = HardwareSpec("tiny", peak_tflops=1.0, memory_bandwidth_gbps=10.0, memory_gb=1.0)

        with pytest.raises(MemoryError):
            backend.load()

    def test_generate(self, backend, prompts):
        output = backend.generate(prompts[:3], GenerationParams(max_new_tokens=16))

        assert len(output.texts) == 3
        assert output.generated_tokens == 3 * 16
        assert output.prompt_tokens == 3 * len(prompts[0].split())
        assert output.latency_s > 0
        assert len(output.texts[0].split()) == 16

    def test_generate_empty(self, backend):
        output = backend.generate([], GenerationParams())

        assert output.texts == []
        assert output.generated_tokens == 0

    def test_batching_raises_throughput(self, backend, prompts):
        single = backend.generate(prompts[:1], GenerationParams(max_new_tokens=32))
        batched = backend.generate(prompts, GenerationParams(max_new_tokens=32))

        assert _throughput(batched) > _throughput(single)
        assert batched.latency_s >= single.latency_s

    def test_beams_cost_latency(self, backend, prompts):
        greedy = backend.generate(prompts, GenerationParams(max_new_tokens=32))
        beams = backend.generate(prompts, GenerationParams(max_new_tokens=32, num_beams=4))

        assert beams.latency_s > greedy.latency_s

    def test_sampling_overhead(self, backend, prompts):
        greedy = backend.generate(prompts, GenerationParams(max_new_tokens=32))
        sampled = backend.generate(prompts, GenerationParams(max_new_tokens=32, do_sample=True))

        assert sampled.latency_s > greedy.latency_s

    def test_deterministic(self, backend, prompts):
        a = backend.generate(prompts, GenerationParams(max_new_tokens=8))
        b = backend.generate(prompts, GenerationParams(max_new_tokens=8))

        assert a.latency_s == b.latency_s
        assert a.texts == b.texts

    def test_int8_kv_cache_saves_memory(self, backend, prompts):
        params = GenerationParams(max_new_tokens=64)

        backend.apply_runtime_options({"kv_cache_dtype": "fp16"})
        backend.generate(prompts, params)
        fp16_bytes = backend.memory_bytes()

        backend.apply_runtime_options({"kv_cache_dtype": "int8"})
        backend.generate(prompts, params)
        int8_bytes = backend.memory_bytes()

        assert int8_bytes < fp16_bytes

    def test_invalid_kv_cache_dtype(self, backend, prompts):
        backend.apply_runtime_options({"kv_cache_dtype": "fp4"})

        with pytest.raises(RuntimeError, match="kv_cache_dtype"):
            backend.generate(prompts, GenerationParams())

    def test_generate_out_of_memory(self):
        backend = SimulatedBackend("llama2-7b", device="a10g")
        backend.load()
        long_prompts = [" ".join(["token"] * 1000)] * 16

        with pytest.raises(MemoryError):
            backend.generate(long_prompts, GenerationParams(max_new_tokens=1024))

    def test_prompts_truncated(self):
        long_prompts = [" ".join(["token"] * 500)] * 2
        params = GenerationParams(max_new_tokens=4)

        truncated = SimulatedBackend("gpt2", max_seq_length=64).generate(long_prompts, params)
        full = SimulatedBackend("gpt2").generate(long_prompts, params)

        assert truncated.prompt_tokens == 2 * 64
        assert full.prompt_tokens == 2 * 500
        assert truncated.latency_s < full.latency_s

    def test_warmup_loads(self):
        backend = SimulatedBackend("gpt2")

        backend.warmup(num_iterations=2, prompts=["warm up prompt"])

        assert backend.is_loaded
        assert backend.memory_bytes() > backend.model_spec.weight_bytes

    def test_runtime_options_replaced(self, backend):
        backend.apply_runtime_options({"kv_cache_dtype": "int8"})
        backend.apply_runtime_options({})

        assert backend.runtime_options == {}

    def test_default_search_space(self, backend):
        names = [spec.name for spec in backend.default_search_space()]

        assert names[:4] == ["batch_size", "max_new_tokens", "num_beams", "do_sample"]
        assert "kv_cache_dtype" in names

    def test_get_info(self, backend):
        info = backend.get_info()

        assert info["backend"] == "SimulatedBackend"
        assert info["model"] == "gpt2"
        assert info["hardware"] == "cpu"
        assert info["loaded"] is True

    def test_context_manager(self):
        with SimulatedBackend("distilgpt2") as backend:
            assert backend.is_loaded


class TestCreateBackend:
    """Tests for the backend factory."""

    def test_simulated(self):
        backend = create_backend(ModelConfig(name="gpt2", backend=BackendType.SIMULATED, device="a10g"))

        assert isinstance(backend, SimulatedBackend)
        assert backend.hardware.name == "a10g"

    def test_model_path_wins(self):
        config = ModelConfig(name="gpt2", model_path="distilgpt2", backend=BackendType.SIMULATED)

        assert create_backend(config).model_spec.name == "distilgpt2"

    def test_max_seq_length_passed(self):
        config = ModelConfig(name="gpt2", backend=BackendType.SIMULATED)

        assert create_backend(config, max_seq_length=256).max_seq_length == 256


class TestGenerationParams:
    """Tests for GenerationParams."""

    def test_split(self):
        params, runtime = GenerationParams.split({"batch_size": 4, "num_streams": "2"})

        assert params.batch_size == 4
        assert params.max_new_tokens == 64
        assert runtime == {"num_streams": "2"}

    def test_round_trip(self):
        params = GenerationParams(batch_size=2, do_sample=True, temperature=0.7)

        assert GenerationParams.from_dict(params.to_dict()) == params
