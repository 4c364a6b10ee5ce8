"""Datasets for GEO Engine."""

from .base import BaseDataset
from .prompts import PromptDataset, SyntheticPromptDataset
from ..core.config import DatasetConfig


def create_dataset(config: DatasetConfig, seed: int = 0) -> BaseDataset:
    """Create a dataset from configuration (synthetic when no path is set)."""
    if config.path:
        return PromptDataset(
            data_path=config.path,
            count=config.count or None,
            prompt_field=config.prompt_field,
            reference_field=config.reference_field,
        )
    return SyntheticPromptDataset(
        num_samples=config.synthetic_samples,
        prompt_tokens=config.synthetic_prompt_tokens,
        seed=seed,
        count=config.count or None,
    )


__all__ = [
    "BaseDataset",
    "PromptDataset",
    "SyntheticPromptDataset",
    "create_dataset",
]
