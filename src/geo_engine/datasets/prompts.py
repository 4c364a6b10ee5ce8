"""Prompt datasets for GEO Engine.

PromptDataset reads prompts (and optional reference outputs) from JSONL,
JSON, CSV or plain text files. SyntheticPromptDataset builds deterministic
prompts so that tuning can run without any data on disk.
"""

import csv
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np

from .base import BaseDataset

logger = logging.getLogger(__name__)

SUPPORTED_SUFFIXES = (".jsonl", ".json", ".csv", ".txt")

_SYNTHETIC_VOCAB = (
    "the model generates text about data systems latency memory throughput "
    "optimization search profile deploy cluster request batch token cache "
    "engine prompt answer question summary report metric cost budget user "
    "service container replica node value result quality score trial"
).split()


def _rouge_quality(predictions: List[str], references: List[Optional[str]]) -> Dict[str, float]:
    """ROUGE-1/2/L F-measure (x100) over samples that have a reference."""
    try:
        from rouge_score import rouge_scorer
    except ImportError:
        raise ImportError(
            "rouge-score is required for quality metrics. "
            "Install with: pip install rouge-score"
        )

    scorer = rouge_scorer.RougeScorer(["rouge1", "rouge2", "rougeL"], use_stemmer=False)

    rouge1_scores = []
    rouge2_scores = []
    rougeL_scores = []

    for pred, ref in zip(predictions, references):
        if ref is None:
            continue
        scores = scorer.score(ref, pred)
        rouge1_scores.append(scores["rouge1"].fmeasure * 100)
        rouge2_scores.append(scores["rouge2"].fmeasure * 100)
        rougeL_scores.append(scores["rougeL"].fmeasure * 100)

    num_samples = len(rougeL_scores)
    if num_samples == 0:
        return {"rouge1": 0.0, "rouge2": 0.0, "rougeL": 0.0, "num_samples": 0}

    return {
        "rouge1": float(np.mean(rouge1_scores)),
        "rouge2": float(np.mean(rouge2_scores)),
        "rougeL": float(np.mean(rougeL_scores)),
        "num_samples": num_samples,
    }


class PromptDataset(BaseDataset):
    """Prompts loaded from a file.

    Supported layouts:
      - ``.jsonl``: one object per line with prompt/reference fields
      - ``.json``: list of objects, or ``{"prompts": [...], "references": [...]}``
      - ``.csv``: header row with prompt/reference columns
      - ``.txt``: one prompt per line, no references
    """

    def __init__(
        self,
        data_path: str,
        count: Optional[int] = None,
        prompt_field: str = "prompt",
        reference_field: str = "reference",
        **kwargs,
    ):
        super().__init__(data_path, count, **kwargs)
        self.prompt_field = prompt_field
        self.reference_field = reference_field

    def load(self) -> None:
        path = Path(self.data_path)
        if not path.exists():
            raise FileNotFoundError(f"Dataset file not found: {path}")

        suffix = path.suffix.lower()
        if suffix not in SUPPORTED_SUFFIXES:
            raise ValueError(
                f"Unsupported dataset format '{suffix}' (expected one of: {', '.join(SUPPORTED_SUFFIXES)})"
            )

        self._items = []
        self._labels = []

        if suffix == ".jsonl":
            self._load_jsonl(path)
        elif suffix == ".json":
            self._load_json(path)
        elif suffix == ".csv":
            self._load_csv(path)
        else:
            self._load_text(path)

        self._loaded = True

        logger.info(
            f"Prompt dataset loaded: {self.sample_count} samples from {path.name} "
            f"({'with' if self.has_references else 'without'} references)"
        )

    def _add_entry(self, entry: Any, position: int) -> None:
        if isinstance(entry, str):
            self._items.append(entry)
            self._labels.append(None)
            return
        if not isinstance(entry, dict) or entry.get(self.prompt_field) in (None, ""):
            logger.warning(f"Skipping entry {position}: missing '{self.prompt_field}'")
            return
        self._items.append(str(entry[self.prompt_field]))
        reference = entry.get(self.reference_field)
        self._labels.append(None if reference in (None, "") else str(reference))

    def _load_jsonl(self, path: Path) -> None:
        with open(path, "r", encoding="utf-8") as f:
            for line_no, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                self._add_entry(json.loads(line), line_no)

    def _load_json(self, path: Path) -> None:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)

        if isinstance(data, list):
            for i, entry in enumerate(data):
                self._add_entry(entry, i)
        elif isinstance(data, dict):
            prompts = data.get("prompts", data.get(self.prompt_field, []))
            references = data.get("references", data.get(self.reference_field, []))
            for i, prompt in enumerate(prompts):
                reference = references[i] if i < len(references) else None
                self._add_entry({self.prompt_field: prompt, self.reference_field: reference}, i)
        else:
            raise ValueError(f"Unsupported JSON layout in {path}")

    def _load_csv(self, path: Path) -> None:
        with open(path, "r", encoding="utf-8", newline="") as f:
            reader = csv.DictReader(f)
            for row_no, row in enumerate(reader, 2):
                self._add_entry(row, row_no)

    def _load_text(self, path: Path) -> None:
        with open(path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line:
                    self._add_entry(line, 0)

    def compute_quality(
        self, predictions: List[str], references: List[Optional[str]]
    ) -> Dict[str, float]:
        """Compute ROUGE scores against reference outputs."""
        return _rouge_quality(predictions, references)


class SyntheticPromptDataset(BaseDataset):
    """Deterministic prompts drawn from a small fixed vocabulary."""

    def __init__(
        self,
        num_samples: int = 64,
        prompt_tokens: int = 128,
        seed: int = 0,
        count: Optional[int] = None,
        **kwargs,
    ):
        super().__init__(None, count, **kwargs)
        self.num_samples = num_samples
        self.prompt_tokens = prompt_tokens
        self.seed = seed

    def load(self) -> None:
        rng = np.random.default_rng(self.seed)
        self._items = []
        for _ in range(self.num_samples):
            # +/- 25% length jitter
            length = max(1, int(self.prompt_tokens * rng.uniform(0.75, 1.25)))
            words = rng.choice(_SYNTHETIC_VOCAB, size=length)
            self._items.append(" ".join(words))
        self._labels = [None] * len(self._items)
        self._loaded = True

        logger.info(f"Synthetic dataset: {self.sample_count} prompts (~{self.prompt_tokens} tokens)")

    def compute_quality(
        self, predictions: List[str], references: List[Optional[str]]
    ) -> Dict[str, float]:
        return _rouge_quality(predictions, references)
