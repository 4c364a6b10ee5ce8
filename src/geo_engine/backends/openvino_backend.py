"""
OpenVINO backend for GEO Engine.

Uses OVModelForCausalLM from optimum-intel for OpenVINO-accelerated
autoregressive generation with KV-cache support.
"""

import logging
import time
from typing import Any, Dict, List, Optional

try:
    from optimum.intel.openvino import OVModelForCausalLM
    OPTIMUM_AVAILABLE = True
except ImportError:
    OPTIMUM_AVAILABLE = False
    OVModelForCausalLM = None

try:
    import torch
    from transformers import AutoTokenizer
    TRANSFORMERS_AVAILABLE = True
except ImportError:
    TRANSFORMERS_AVAILABLE = False
    torch = None
    AutoTokenizer = None

from .base import BaseBackend, GenerationOutput, GenerationParams
from ..core.config import ModelConfig, ParameterSpec

logger = logging.getLogger(__name__)


def build_ov_config(options: Dict[str, Any]) -> Dict[str, str]:
    """Translate runtime options into OpenVINO compile properties."""
    ov_config: Dict[str, str] = {}
    if options.get("performance_hint"):
        ov_config["PERFORMANCE_HINT"] = str(options["performance_hint"]).upper()
    if options.get("num_streams"):
        ov_config["NUM_STREAMS"] = str(options["num_streams"])
    if options.get("num_threads"):
        ov_config["INFERENCE_NUM_THREADS"] = str(int(options["num_threads"]))
    if options.get("cache_dir"):
        ov_config["CACHE_DIR"] = str(options["cache_dir"])
    return ov_config


class OpenVINOBackend(BaseBackend):
    """
    OpenVINO backend for causal language models.

    Performance hint, stream count and thread count are runtime options, so
    the optimizer can tune them next to the decoding parameters. Changing
    any of them recompiles the model on the next request.
    """

    def __init__(
        self,
        model_path: str,
        config: Optional[ModelConfig] = None,
        **kwargs
    ):
        """Initialize OpenVINO backend."""
        if not OPTIMUM_AVAILABLE or not TRANSFORMERS_AVAILABLE:
            raise ImportError(
                "optimum-intel is not installed. Please install it with: "
                "pip install 'geo-engine[openvino]'"
            )

        super().__init__(model_path, **kwargs)

        self.config = config or ModelConfig(name=model_path)
        self._model = None
        self._tokenizer = None
        self._compiled_with: Dict[str, str] = {}

    @property
    def device(self) -> str:
        return self.config.device.upper()

    def load(self) -> None:
        """Load (export if needed) and compile the model."""
        ov_config = build_ov_config(self.runtime_options)

        logger.info(f"Loading {self.model_path} on {self.device} with {ov_config or 'default properties'}...")

        self._model = OVModelForCausalLM.from_pretrained(
            self.model_path,
            revision=self.config.version,
            device=self.device,
            ov_config=ov_config,
            compile=True,
            trust_remote_code=self.config.trust_remote_code,
        )

        if self._tokenizer is None:
            self._tokenizer = AutoTokenizer.from_pretrained(
                self.model_path,
                revision=self.config.version,
                padding_side="left",
                trust_remote_code=self.config.trust_remote_code,
            )
            if self._tokenizer.pad_token is None:
                self._tokenizer.pad_token = self._tokenizer.eos_token

        gen_cfg = self._model.generation_config
        if gen_cfg.pad_token_id is None:
            gen_cfg.pad_token_id = self._tokenizer.pad_token_id

        self._compiled_with = ov_config
        self._loaded = True
        logger.info(f"Model compiled on {self.device}")

    def default_search_space(self) -> List[ParameterSpec]:
        space = super().default_search_space()
        space.append(ParameterSpec("performance_hint", kind="categorical", choices=["LATENCY", "THROUGHPUT"]))
        space.append(ParameterSpec("num_streams", kind="categorical", choices=["1", "2", "4", "AUTO"]))
        return space

    def apply_runtime_options(self, options: Dict[str, Any]) -> None:
        super().apply_runtime_options(options)
        if self._loaded and build_ov_config(self.runtime_options) != self._compiled_with:
            logger.debug("Compile properties changed, model will be recompiled")
            self._loaded = False

    def generate(self, prompts: List[str], params: GenerationParams) -> GenerationOutput:
        if not self._loaded:
            self.load()

        encoded = self._tokenizer(prompts, **self.tokenizer_kwargs())
        prompt_width = encoded["input_ids"].shape[1]

        kwargs: Dict[str, Any] = {
            "max_new_tokens": params.max_new_tokens,
            "num_beams": params.num_beams,
            "do_sample": params.do_sample,
            "repetition_penalty": params.repetition_penalty,
        }
        if params.do_sample:
            kwargs.update({
                "temperature": params.temperature,
                "top_p": params.top_p,
                "top_k": params.top_k,
            })

        start = time.perf_counter()
        with torch.no_grad():
            output_ids = self._model.generate(**encoded, **kwargs)
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

    def get_info(self) -> Dict[str, Any]:
        info = super().get_info()
        info.update({
            "device": self.device,
            "revision": self.config.version,
            "ov_config": dict(self._compiled_with),
        })
        return info
