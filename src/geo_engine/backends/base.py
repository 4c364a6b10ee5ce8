"""
Base backend interface for GEO Engine.
"""

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List, Optional, Tuple

from ..core.config import ParameterSpec


@dataclass
class GenerationParams:
    """Decoding parameters shared by every backend."""
    batch_size: int = 1
    max_new_tokens: int = 64
    temperature: float = 1.0
    top_p: float = 1.0
    top_k: int = 50
    num_beams: int = 1
    do_sample: bool = False
    repetition_penalty: float = 1.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GenerationParams":
        """Build params, ignoring keys that are backend runtime options."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    @staticmethod
    def split(data: Dict[str, Any]) -> Tuple["GenerationParams", Dict[str, Any]]:
        """Split a flat trial dict into (GenerationParams, runtime options)."""
        known = {f.name for f in fields(GenerationParams)}
        params = GenerationParams.from_dict(data)
        runtime = {k: v for k, v in data.items() if k not in known}
        return params, runtime

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class GenerationOutput:
    """Result of a single ``generate`` call."""
    texts: List[str] = field(default_factory=list)
    prompt_tokens: int = 0
    generated_tokens: int = 0
    latency_s: float = 0.0


class BaseBackend(ABC):
    """Abstract base class for model backbones."""

    def __init__(self, model_path: str, max_seq_length: int = 0, **kwargs):
        """
        Initialize the backend.

        Args:
            model_path: Hub id or local path of the model
            max_seq_length: Prompts are truncated to this many tokens (0 = no limit)
            **kwargs: Backend-specific options
        """
        self.model_path = model_path
        self.max_seq_length = max_seq_length
        self.options = kwargs
        self.runtime_options: Dict[str, Any] = {}
        self._loaded = False

    @abstractmethod
    def load(self) -> None:
        """Load the model into memory."""
        pass

    @abstractmethod
    def generate(self, prompts: List[str], params: GenerationParams) -> GenerationOutput:
        """
        Generate completions for a batch of prompts.

        Args:
            prompts: Input prompts (one request)
            params: Decoding parameters

        Returns:
            GenerationOutput with decoded texts, token counts and latency
        """
        pass

    def default_search_space(self) -> List[ParameterSpec]:
        """Search space used when the configuration defines none."""
        return [
            ParameterSpec("batch_size", kind="int", low=1, high=16, step=1),
            ParameterSpec("max_new_tokens", kind="categorical", choices=[32, 64, 128]),
            ParameterSpec("num_beams", kind="categorical", choices=[1, 2, 4]),
            ParameterSpec("do_sample", kind="categorical", choices=[False, True]),
        ]

    def apply_runtime_options(self, options: Dict[str, Any]) -> None:
        """Replace backend-specific knobs (threads, streams, hints) with a trial's."""
        self.runtime_options = dict(options)

    def memory_bytes(self) -> int:
        """Backend-reported memory in use (weights, caches). 0 if unknown."""
        return 0

    @property
    def is_loaded(self) -> bool:
        """Check if the model is loaded."""
        return self._loaded

    def tokenizer_kwargs(self) -> Dict[str, Any]:
        """Tokenizer arguments for batched prompts, truncated when a limit is set."""
        kwargs: Dict[str, Any] = {"return_tensors": "pt", "padding": True}
        if self.max_seq_length > 0:
            kwargs.update({"truncation": True, "max_length": self.max_seq_length})
        return kwargs

    def warmup(
        self,
        num_iterations: int = 3,
        params: Optional[GenerationParams] = None,
        prompts: Optional[List[str]] = None,
    ) -> None:
        """
        Warm up the model by running a few generations.

        Args:
            num_iterations: Number of warmup iterations
            params: Decoding parameters (defaults to a single short request)
            prompts: Prompts to warm up with (defaults to "Hello" per batch slot)
        """
        if not self._loaded:
            self.load()

        params = params or GenerationParams(max_new_tokens=8)
        prompts = prompts or ["Hello"] * params.batch_size
        for _ in range(num_iterations):
            self.generate(prompts, params)

    def get_info(self) -> Dict[str, Any]:
        """
        Get information about the backend and model.

        Returns:
            Dictionary with backend information
        """
        return {
            "backend": self.__class__.__name__,
            "model_path": self.model_path,
            "loaded": self._loaded,
            "runtime_options": dict(self.runtime_options),
        }

    def __enter__(self):
        """Context manager entry."""
        self.load()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        pass
