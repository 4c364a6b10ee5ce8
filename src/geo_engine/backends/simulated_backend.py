"""
Simulated backend for GEO Engine.

Models generation time with a roofline estimate instead of running weights:
each phase costs max(compute_time, memory_time). Used for dry runs of the
tuning loop and in tests, where loading a real model is not an option.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List

from .base import BaseBackend, GenerationOutput, GenerationParams
from ..core.config import ParameterSpec

logger = logging.getLogger(__name__)

# Fixed per-request cost (tokenization, scheduling)
REQUEST_OVERHEAD_S = 0.002

# Extra decode cost per step when sampling instead of greedy argmax
SAMPLING_OVERHEAD = 0.03

KV_CACHE_BYTES = {
    "fp16": 2,
    "int8": 1,
}


@dataclass
class ModelSpec:
    """Architecture numbers needed by the roofline model."""
    name: str
    n_params: int
    n_layers: int
    hidden_size: int
    bytes_per_param: int = 2

    @property
    def weight_bytes(self) -> int:
        return self.n_params * self.bytes_per_param

    def kv_bytes_per_token(self, kv_bytes: int = 2) -> int:
        # K and V for every layer
        return 2 * self.n_layers * self.hidden_size * kv_bytes


@dataclass
class HardwareSpec:
    """Accelerator capabilities."""
    name: str
    peak_tflops: float
    memory_bandwidth_gbps: float
    memory_gb: float

    @property
    def flops_per_s(self) -> float:
        return self.peak_tflops * 1e12

    @property
    def bytes_per_s(self) -> float:
        return self.memory_bandwidth_gbps * 1e9

    @property
    def memory_bytes(self) -> float:
        return self.memory_gb * 1e9


MODEL_CATALOG: Dict[str, ModelSpec] = {
    "distilgpt2": ModelSpec("distilgpt2", 82_000_000, 6, 768, 4),
    "gpt2": ModelSpec("gpt2", 124_000_000, 12, 768, 4),
    "opt-125m": ModelSpec("opt-125m", 125_000_000, 12, 768, 2),
    "llama2-7b": ModelSpec("llama2-7b", 6_740_000_000, 32, 4096, 2),
    "mistral-7b": ModelSpec("mistral-7b", 7_240_000_000, 32, 4096, 2),
}

HARDWARE_CATALOG: Dict[str, HardwareSpec] = {
    "cpu": HardwareSpec("cpu", peak_tflops=1.5, memory_bandwidth_gbps=100.0, memory_gb=64.0),
    "a10g": HardwareSpec("a10g", peak_tflops=125.0, memory_bandwidth_gbps=600.0, memory_gb=24.0),
    "a100": HardwareSpec("a100", peak_tflops=312.0, memory_bandwidth_gbps=2039.0, memory_gb=80.0),
}


def list_simulated_models() -> Dict[str, ModelSpec]:
    """Return the model catalog of the simulated backend."""
    return dict(MODEL_CATALOG)


def _normalize_name(name: str) -> str:
    # "facebook/opt-125m" -> "opt-125m"
    return name.split("/")[-1].lower()


class SimulatedBackend(BaseBackend):
    """
    Roofline-model backend.

    Batching raises throughput until weights plus KV cache no longer fit in
    device memory; beam search multiplies decode work; sampling adds a
    per-step overhead. Output text is derived from the prompt so that
    reference-based quality metrics stay meaningful.
    """

    def __init__(self, model_path: str, device: str = "cpu", **kwargs):
        super().__init__(model_path, **kwargs)

        key = _normalize_name(model_path)
        if key not in MODEL_CATALOG:
            known = ", ".join(sorted(MODEL_CATALOG))
            raise ValueError(f"Unknown simulated model: {model_path} (known: {known})")
        if device.lower() not in HARDWARE_CATALOG:
            known = ", ".join(sorted(HARDWARE_CATALOG))
            raise ValueError(f"Unknown simulated device: {device} (known: {known})")

        self.model_spec = MODEL_CATALOG[key]
        self.hardware = HARDWARE_CATALOG[device.lower()]
        self._last_memory_bytes = 0

    def load(self) -> None:
        if self.model_spec.weight_bytes > self.hardware.memory_bytes:
            raise MemoryError(
                f"{self.model_spec.name} weights do not fit on {self.hardware.name}"
            )
        self._last_memory_bytes = self.model_spec.weight_bytes
        self._loaded = True
        logger.info(f"Simulated {self.model_spec.name} on {self.hardware.name}")

    def default_search_space(self) -> List[ParameterSpec]:
        space = super().default_search_space()
        space.append(ParameterSpec("kv_cache_dtype", kind="categorical", choices=["fp16", "int8"]))
        return space

    def _kv_bytes(self) -> int:
        dtype = self.runtime_options.get("kv_cache_dtype", "fp16")
        if dtype not in KV_CACHE_BYTES:
            # a bad choice fails the trial, not the whole search
            raise RuntimeError(
                f"Unsupported kv_cache_dtype: {dtype} (expected one of: {', '.join(KV_CACHE_BYTES)})"
            )
        return KV_CACHE_BYTES[dtype]

    def estimate_prefill_time(self, batch_size: int, seq_length: int) -> float:
        flops = 2.0 * self.model_spec.n_params * batch_size * seq_length
        compute_time = flops / self.hardware.flops_per_s
        memory_time = self.model_spec.weight_bytes / self.hardware.bytes_per_s
        return max(compute_time, memory_time)

    def estimate_decode_time(self, sequences: int, context_length: int) -> float:
        flops = 2.0 * self.model_spec.n_params * sequences
        kv_bytes = sequences * context_length * self.model_spec.kv_bytes_per_token(self._kv_bytes())
        compute_time = flops / self.hardware.flops_per_s
        memory_time = (self.model_spec.weight_bytes + kv_bytes) / self.hardware.bytes_per_s
        return max(compute_time, memory_time)

    def required_memory(self, sequences: int, total_length: int) -> int:
        kv = sequences * total_length * self.model_spec.kv_bytes_per_token(self._kv_bytes())
        return self.model_spec.weight_bytes + kv

    def generate(self, prompts: List[str], params: GenerationParams) -> GenerationOutput:
        if not self._loaded:
            self.load()

        batch = len(prompts)
        if batch == 0:
            return GenerationOutput()

        prompt_lengths = [max(1, len(p.split())) for p in prompts]
        if self.max_seq_length > 0:
            prompt_lengths = [min(n, self.max_seq_length) for n in prompt_lengths]
        prompt_len = max(prompt_lengths)
        new_tokens = params.max_new_tokens
        sequences = batch * max(1, params.num_beams)

        memory = self.required_memory(sequences, prompt_len + new_tokens)
        if memory > self.hardware.memory_bytes:
            raise MemoryError(
                f"Batch of {batch} x {max(1, params.num_beams)} beams needs "
                f"{memory / 1e9:.1f} GB, {self.hardware.name} has {self.hardware.memory_gb:.0f} GB"
            )
        self._last_memory_bytes = memory

        latency = REQUEST_OVERHEAD_S + self.estimate_prefill_time(batch, prompt_len)
        step_factor = 1.0 + (SAMPLING_OVERHEAD if params.do_sample else 0.0)
        for step in range(new_tokens):
            latency += self.estimate_decode_time(sequences, prompt_len + step) * step_factor

        texts = [self._echo_text(p, new_tokens) for p in prompts]

        return GenerationOutput(
            texts=texts,
            prompt_tokens=sum(prompt_lengths),
            generated_tokens=batch * new_tokens,
            latency_s=latency,
        )

    @staticmethod
    def _echo_text(prompt: str, num_tokens: int) -> str:
        words = prompt.split() or ["<eos>"]
        return " ".join(words[i % len(words)] for i in range(num_tokens))

    def memory_bytes(self) -> int:
        return self._last_memory_bytes

    def get_info(self) -> Dict[str, Any]:
        info = super().get_info()
        info.update({
            "model": self.model_spec.name,
            "n_params": self.model_spec.n_params,
            "hardware": self.hardware.name,
        })
        return info
