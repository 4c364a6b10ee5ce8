"""Post-processing of generated text."""

import re
from typing import List, Optional

from .config import PostProcessingConfig

_WHITESPACE_RE = re.compile(r"\s+")


class PostProcessor:
    """Applies stop sequences, whitespace clean-up and length caps."""

    def __init__(self, config: Optional[PostProcessingConfig] = None):
        self.config = config or PostProcessingConfig()

    def process(self, text: str) -> str:
        cut = len(text)
        for stop in self.config.stop_sequences:
            if not stop:
                continue
            pos = text.find(stop)
            if pos != -1:
                cut = min(cut, pos)
        text = text[:cut]

        if self.config.collapse_whitespace:
            text = _WHITESPACE_RE.sub(" ", text)
        if self.config.strip_whitespace:
            text = text.strip()
        if self.config.max_chars > 0:
            text = text[:self.config.max_chars]
        return text

    def process_batch(self, texts: List[str]) -> List[str]:
        return [self.process(t) for t in texts]
