"""
Tests for the PyTorch and OpenVINO backends.

Nothing here downloads weights: model objects are replaced by mocks.
"""

import pytest
from unittest.mock import MagicMock

from geo_engine.backends.base import GenerationParams
from geo_engine.backends.openvino_backend import build_ov_config
from geo_engine.core.config import BackendType, ModelConfig

# Skip tests if optional backends are not available
transformers_available = True
try:
    import torch  # noqa: F401
    import transformers  # noqa: F401
except ImportError:
    transformers_available = False

optimum_available = True
try:
    from optimum.intel.openvino import OVModelForCausalLM  # noqa: F401
except ImportError:
    optimum_available = False


class TestOVConfig:
    """Tests for OpenVINO compile properties."""

    def test_empty(self):
        assert build_ov_config({}) == {}

    def test_all_options(self):
        props = build_ov_config({
            "performance_hint": "throughput",
            "num_streams": 4,
            "num_threads": "8",
            "cache_dir": "/tmp/ov_cache",
            "batch_size": 2,
        })

        assert props == {
            "PERFORMANCE_HINT": "THROUGHPUT",
            "NUM_STREAMS": "4",
            "INFERENCE_NUM_THREADS": "8",
            "CACHE_DIR": "/tmp/ov_cache",
        }


@pytest.mark.skipif(not transformers_available, reason="PyTorch/Transformers not installed")
class TestTransformersBackend:
    """Tests for TransformersBackend."""

    @pytest.fixture
    def backend(self):
        from geo_engine.backends.transformers_backend import TransformersBackend

        backend = TransformersBackend("gpt2", config=ModelConfig(name="gpt2", version="abc123"))
        backend._tokenizer = MagicMock(pad_token_id=50256)
        return backend

    def test_backend_import(self):
        from geo_engine.backends.transformers_backend import TRANSFORMERS_AVAILABLE

        assert TRANSFORMERS_AVAILABLE is True

    def test_initialization(self, backend):
        assert backend.model_path == "gpt2"
        assert backend.config.version == "abc123"
        assert not backend.is_loaded
        assert backend.memory_bytes() == 0

    def test_invalid_dtype(self):
        from geo_engine.backends.transformers_backend import TransformersBackend

        with pytest.raises(ValueError, match="dtype"):
            TransformersBackend("gpt2", config=ModelConfig(name="gpt2", dtype="int4"))

    def test_search_space(self, backend):
        names = [spec.name for spec in backend.default_search_space()]

        assert "temperature" in names
        assert "top_p" in names

    def test_greedy_kwargs(self, backend):
        kwargs = backend._generate_kwargs(GenerationParams(max_new_tokens=12, temperature=0.3))

        assert kwargs["max_new_tokens"] == 12
        assert kwargs["do_sample"] is False
        assert kwargs["pad_token_id"] == 50256
        assert "temperature" not in kwargs

    def test_sampling_kwargs(self, backend):
        kwargs = backend._generate_kwargs(GenerationParams(do_sample=True, temperature=0.3, top_p=0.9))

        assert kwargs["temperature"] == 0.3
        assert kwargs["top_p"] == 0.9
        assert kwargs["top_k"] == 50

    def test_info(self, backend):
        info = backend.get_info()

        assert info["backend"] == "TransformersBackend"
        assert info["revision"] == "abc123"
        assert info["dtype"] == "float32"


@pytest.mark.skipif(transformers_available, reason="PyTorch/Transformers installed")
class TestTransformersMissing:
    """Without torch the backend fails with an install hint."""

    def test_import_error(self):
        from geo_engine.backends import create_backend

        with pytest.raises(ImportError, match="pip install"):
            create_backend(ModelConfig(name="gpt2", backend=BackendType.TRANSFORMERS))


@pytest.mark.skipif(not optimum_available, reason="optimum-intel not installed")
class TestOpenVINOBackend:
    """Tests for OpenVINOBackend."""

    @pytest.fixture
    def backend(self):
        from geo_engine.backends.openvino_backend import OpenVINOBackend

        return OpenVINOBackend("gpt2", config=ModelConfig(name="gpt2", backend=BackendType.OPENVINO))

    def test_initialization(self, backend):
        assert backend.device == "CPU"
        assert not backend.is_loaded

    def test_search_space(self, backend):
        names = [spec.name for spec in backend.default_search_space()]

        assert "performance_hint" in names
        assert "num_streams" in names

    def test_recompile_on_option_change(self, backend):
        backend._loaded = True
        backend._compiled_with = {"PERFORMANCE_HINT": "LATENCY"}

        backend.apply_runtime_options({"performance_hint": "LATENCY", "kv_cache_dtype": "fp16"})
        assert backend.is_loaded

        backend.apply_runtime_options({"performance_hint": "THROUGHPUT"})
        assert not backend.is_loaded


@pytest.fixture
def fake_torch(monkeypatch):
    """Stand-in torch module so the backends can be built without the library."""
    from geo_engine.backends import openvino_backend, transformers_backend

    torch_mock = MagicMock()
    torch_mock.get_num_threads.return_value = 8
    monkeypatch.setattr(transformers_backend, "TRANSFORMERS_AVAILABLE", True)
    monkeypatch.setattr(transformers_backend, "torch", torch_mock)
    monkeypatch.setattr(openvino_backend, "TRANSFORMERS_AVAILABLE", True)
    monkeypatch.setattr(openvino_backend, "OPTIMUM_AVAILABLE", True)
    return torch_mock


class TestTorchThreads:
    """torch_num_threads is process-wide and must not outlive the run that set it."""

    def test_restored_when_option_dropped(self, fake_torch):
        from geo_engine.backends.transformers_backend import TransformersBackend

        backend = TransformersBackend("gpt2")

        backend.apply_runtime_options({"torch_num_threads": 2})
        fake_torch.set_num_threads.assert_called_with(2)

        backend.apply_runtime_options({})
        fake_torch.set_num_threads.assert_called_with(8)


class TestTruncation:
    """Tests for prompt truncation arguments."""

    def test_no_limit(self, fake_torch):
        from geo_engine.backends.transformers_backend import TransformersBackend

        kwargs = TransformersBackend("gpt2").tokenizer_kwargs()

        assert kwargs == {"return_tensors": "pt", "padding": True}

    def test_limit(self, fake_torch):
        from geo_engine.backends.transformers_backend import TransformersBackend

        kwargs = TransformersBackend("gpt2", max_seq_length=512).tokenizer_kwargs()

        assert kwargs["truncation"] is True
        assert kwargs["max_length"] == 512


class TestDefaultSearchSpaceGrid:
    """Every backend's default search space can be enumerated by grid search."""

    @pytest.mark.parametrize("backend_type", list(BackendType))
    def test_grid(self, fake_torch, backend_type):
        from geo_engine.backends import create_backend
        from geo_engine.core.search_space import grid_from_specs, grid_size

        backend = create_backend(ModelConfig(name="gpt2", backend=backend_type))

        grid = grid_from_specs(backend.default_search_space())

        assert grid_size(grid) > 1
        for values in grid.values():
            assert values

    def test_sampling_ranges(self, fake_torch):
        from geo_engine.backends.transformers_backend import TransformersBackend
        from geo_engine.core.search_space import grid_from_specs

        grid = grid_from_specs(TransformersBackend("gpt2").default_search_space())

        assert grid["temperature"][0] == pytest.approx(0.3)
        assert grid["temperature"][-1] == pytest.approx(1.2)
        assert grid["top_p"] == pytest.approx([0.7, 0.8, 0.9, 1.0])
