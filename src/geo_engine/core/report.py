"""Baseline vs. optimized benchmark report."""

import json
import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from .profiler import ProfileResult

logger = logging.getLogger(__name__)

TABLE_HEADER = (
    "| Model | Baseline Throughput (tok/s) | Optimized Throughput (tok/s) "
    "| Latency Before (ms) | Latency After (ms) | Cost Saving (%) |"
)
TABLE_SEPARATOR = "|---|---:|---:|---:|---:|---:|"


def cost_per_million_tokens(tokens_per_s: float, cost_per_hour: float) -> float:
    """Serving cost of one million generated tokens at a given throughput."""
    if tokens_per_s <= 0:
        return float("inf")
    return cost_per_hour / (tokens_per_s * 3600.0) * 1e6


def cost_saving_pct(baseline_tokens_per_s: float, optimized_tokens_per_s: float) -> float:
    """Relative cost reduction; negative when the optimized setup is slower."""
    if baseline_tokens_per_s <= 0 or optimized_tokens_per_s <= 0:
        return 0.0
    return (1.0 - baseline_tokens_per_s / optimized_tokens_per_s) * 100.0


@dataclass
class BenchmarkRow:
    model: str
    baseline_throughput: float
    optimized_throughput: float
    latency_before_ms: float
    latency_after_ms: float
    cost_saving_pct: float

    def to_markdown(self) -> str:
        return (
            f"| {self.model} | {self.baseline_throughput:.1f} | {self.optimized_throughput:.1f} "
            f"| {self.latency_before_ms:.1f} | {self.latency_after_ms:.1f} "
            f"| {self.cost_saving_pct:.1f} |"
        )


class BenchmarkReport:
    """Collection of benchmark rows, rendered as a markdown table or JSON."""

    def __init__(self, rows: Optional[List[BenchmarkRow]] = None, cost_per_hour: float = 1.0):
        self.rows: List[BenchmarkRow] = list(rows or [])
        self.cost_per_hour = cost_per_hour

    @classmethod
    def from_profiles(
        cls,
        model: str,
        baseline: ProfileResult,
        optimized: ProfileResult,
        cost_per_hour: float = 1.0,
    ) -> "BenchmarkReport":
        report = cls(cost_per_hour=cost_per_hour)
        report.add_row(model, baseline, optimized)
        return report

    def add_row(self, model: str, baseline: ProfileResult, optimized: ProfileResult) -> BenchmarkRow:
        row = BenchmarkRow(
            model=model,
            baseline_throughput=baseline.throughput_tokens_per_s,
            optimized_throughput=optimized.throughput_tokens_per_s,
            latency_before_ms=baseline.p50_latency_ms,
            latency_after_ms=optimized.p50_latency_ms,
            cost_saving_pct=cost_saving_pct(
                baseline.throughput_tokens_per_s, optimized.throughput_tokens_per_s
            ),
        )
        self.rows.append(row)
        return row

    def to_markdown(self) -> str:
        lines = [TABLE_HEADER, TABLE_SEPARATOR]
        lines.extend(row.to_markdown() for row in self.rows)
        return "\n".join(lines) + "\n"

    def to_dict(self) -> Dict[str, Any]:
        rows = []
        for row in self.rows:
            data = asdict(row)
            data["baseline_cost_per_1m_tokens"] = cost_per_million_tokens(
                row.baseline_throughput, self.cost_per_hour
            )
            data["optimized_cost_per_1m_tokens"] = cost_per_million_tokens(
                row.optimized_throughput, self.cost_per_hour
            )
            rows.append(data)
        return {"cost_per_hour": self.cost_per_hour, "rows": rows}

    def save(self, output_path: str) -> str:
        """Write the report; ``.md`` gets the table, anything else JSON."""
        path = Path(output_path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            if path.suffix.lower() == ".md":
                f.write(self.to_markdown())
            else:
                json.dump(self.to_dict(), f, indent=2, default=str)

        logger.info(f"Benchmark report saved to {path}")
        return str(path)
