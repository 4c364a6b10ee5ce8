"""
PyTorch / Hugging Face Transformers backend for GEO Engine.
"""

import logging
import time
from typing import Any, Dict, List, Optional

try:
    import torch
    from transformers import AutoModelForCausalLM, AutoTokenizer
    TRANSFORMERS_AVAILABLE = True
except ImportError:
    TRANSFORMERS_AVAILABLE = False
    torch = None
    AutoModelForCausalLM = None
    AutoTokenizer = None

from .base import BaseBackend, GenerationOutput, GenerationParams
from ..core.config import ModelConfig, ParameterSpec

logger = logging.getLogger(__name__)

TORCH_DTYPES = ("float32", "float16", "bfloat16")


class TransformersBackend(BaseBackend):
    """
    Causal language model backend on PyTorch.

    This backend supports:
    - Hub ids and local checkpoints (``revision`` from the model version)
    - float32 / float16 / bfloat16 weights
    - Batched generation with left padding
    - ``torch_num_threads`` as a tunable runtime option
    """

    def __init__(
        self,
        model_path: str,
        config: Optional[ModelConfig] = None,
        **kwargs
    ):
        """Initialize Transformers backend."""
        if not TRANSFORMERS_AVAILABLE:
            raise ImportError(
                "PyTorch and Transformers are not installed. Please install them with: "
                "pip install 'geo-engine[hf]'"
            )

        super().__init__(model_path, **kwargs)

        self.config = config or ModelConfig(name=model_path)
        if self.config.dtype not in TORCH_DTYPES:
            raise ValueError(f"Unsupported dtype: {self.config.dtype} (expected one of {TORCH_DTYPES})")

        self._model = None
        self._tokenizer = None
        # torch threads are process-wide; restored when a trial stops setting them
        self._default_num_threads = torch.get_num_threads()

    def load(self) -> None:
        """Load tokenizer and weights."""
        logger.info(f"Loading {self.model_path} (revision={self.config.version}) on {self.config.device}...")

        self._tokenizer = AutoTokenizer.from_pretrained(
            self.model_path,
            revision=self.config.version,
            padding_side="left",
            trust_remote_code=self.config.trust_remote_code,
        )
        if self._tokenizer.pad_token is None:
            self._tokenizer.pad_token = self._tokenizer.eos_token

        self._model = AutoModelForCausalLM.from_pretrained(
            self.model_path,
            revision=self.config.version,
            torch_dtype=getattr(torch, self.config.dtype),
            trust_remote_code=self.config.trust_remote_code,
        )
        self._model.to(self.config.device)
        self._model.eval()

        if self._model.generation_config.pad_token_id is None:
            self._model.generation_config.pad_token_id = self._tokenizer.pad_token_id

        self._loaded = True
        logger.info(f"Model loaded: {self.model_path}")

    def default_search_space(self) -> List[ParameterSpec]:
        space = super().default_search_space()
        space.append(ParameterSpec("temperature", kind="float", low=0.3, high=1.2, step=0.1))
        space.append(ParameterSpec("top_p", kind="float", low=0.7, high=1.0, step=0.1))
        return space

    def apply_runtime_options(self, options: Dict[str, Any]) -> None:
        super().apply_runtime_options(options)
        num_threads = options.get("torch_num_threads")
        torch.set_num_threads(int(num_threads) if num_threads else self._default_num_threads)

    def _generate_kwargs(self, params: GenerationParams) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "max_new_tokens": params.max_new_tokens,
            "num_beams": params.num_beams,
            "do_sample": params.do_sample,
            "repetition_penalty": params.repetition_penalty,
            "pad_token_id": self._tokenizer.pad_token_id,
        }
        # temperature/top_p/top_k only apply when sampling
        if params.do_sample:
            kwargs.update({
                "temperature": params.temperature,
                "top_p": params.top_p,
                "top_k": params.top_k,
            })
        return kwargs

    def generate(self, prompts: List[str], params: GenerationParams) -> GenerationOutput:
        if not self._loaded:
            self.load()

        encoded = self._tokenizer(prompts, **self.tokenizer_kwargs()).to(self.config.device)
        prompt_width = encoded["input_ids"].shape[1]

        start = time.perf_counter()
        with torch.inference_mode():
            output_ids = self._model.generate(**encoded, **self._generate_kwargs(params))
        if self.config.device.startswith("cuda"):
            torch.cuda.synchronize()
        latency = time.perf_counter() - start

        new_ids = output_ids[:, prompt_width:]
        texts = self._tokenizer.batch_decode(new_ids, skip_special_tokens=True)
        generated = int((new_ids != self._tokenizer.pad_token_id).sum().item())

        return GenerationOutput(
            texts=texts,
            prompt_tokens=int(encoded["attention_mask"].sum().item()),
            generated_tokens=generated,
            latency_s=latency,
        )

    def memory_bytes(self) -> int:
        if not self._loaded:
            return 0
        if self.config.device.startswith("cuda") and torch.cuda.is_available():
            return int(torch.cuda.max_memory_allocated())
        return int(self._model.get_memory_footprint())

    def get_info(self) -> Dict[str, Any]:
        info = super().get_info()
        info.update({
            "revision": self.config.version,
            "device": self.config.device,
            "dtype": self.config.dtype,
            "torch_version": torch.__version__,
        })
        return info
