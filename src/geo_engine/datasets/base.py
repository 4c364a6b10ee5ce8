"""
Base dataset interface for GEO Engine.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple


class BaseDataset(ABC):
    """
    Abstract base class for prompt datasets.

    Datasets are responsible for:
    - Loading prompts (and optional reference outputs)
    - Providing prompts for generation requests
    - Computing quality metrics against references
    """

    def __init__(
        self,
        data_path: Optional[str] = None,
        count: Optional[int] = None,
        **kwargs
    ):
        """
        Initialize the dataset.

        Args:
            data_path: Path to the dataset file
            count: Number of samples to use (None = all)
            **kwargs: Dataset-specific options
        """
        self.data_path = data_path
        self.count = count
        self.options = kwargs

        self._loaded = False
        self._items: List[str] = []
        self._labels: List[Optional[str]] = []

    @abstractmethod
    def load(self) -> None:
        """Load the dataset into memory."""
        pass

    @abstractmethod
    def compute_quality(
        self,
        predictions: List[str],
        references: List[Optional[str]]
    ) -> Dict[str, float]:
        """
        Compute quality metrics.

        Args:
            predictions: Generated texts
            references: Reference texts (None where a sample has none)

        Returns:
            Dictionary with quality metrics
        """
        pass

    def get_sample(self, index: int) -> Tuple[str, Optional[str]]:
        """
        Get a prompt and its reference by index.

        Args:
            index: Sample index

        Returns:
            Tuple of (prompt, reference)
        """
        if not self._loaded:
            self.load()
        if index < 0 or index >= self.sample_count:
            raise IndexError(f"Sample index {index} out of range (0..{self.sample_count - 1})")
        return self._items[index], self._labels[index]

    def get_batch(self, indices: List[int]) -> Tuple[List[str], List[Optional[str]]]:
        """
        Get multiple prompts.

        Args:
            indices: List of sample indices

        Returns:
            Tuple of (prompts, references)
        """
        prompts = []
        references = []
        for idx in indices:
            prompt, reference = self.get_sample(idx)
            prompts.append(prompt)
            references.append(reference)
        return prompts, references

    @property
    def total_count(self) -> int:
        """Get total number of samples."""
        return len(self._items)

    @property
    def sample_count(self) -> int:
        """Get number of samples to use (respects count limit)."""
        if not self.count:
            return self.total_count
        return min(self.count, self.total_count)

    @property
    def has_references(self) -> bool:
        return any(label is not None for label in self._labels[:self.sample_count])

    @property
    def is_loaded(self) -> bool:
        """Check if dataset is loaded."""
        return self._loaded

    def get_item_list(self) -> List[str]:
        """Get list of all prompts."""
        return self._items[:self.sample_count]

    def get_labels(self) -> List[Optional[str]]:
        """Get list of all references."""
        return self._labels[:self.sample_count]

    def __len__(self) -> int:
        """Get dataset length."""
        return self.sample_count

    def __getitem__(self, index: int) -> Tuple[str, Optional[str]]:
        """Get a sample by index."""
        return self.get_sample(index)
