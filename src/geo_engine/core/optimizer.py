"""
Hyperparameter optimizer for GEO Engine.

Each trial draws generation parameters (and backend runtime options) from
the search space, profiles them, and reports the objective metric back to
an Optuna study.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import optuna

from .config import Metric, OptimizerConfig, OptimizerMethod, ParameterSpec
from .profiler import ProfileResult, Profiler
from .search_space import grid_from_specs, grid_size, suggest_params
from ..backends.base import GenerationParams

logger = logging.getLogger(__name__)


@dataclass
class OptimizationResult:
    """Outcome of a hyperparameter search."""
    best_params: Dict[str, Any]
    best_value: float
    objective: str
    direction: str
    method: str
    n_trials: int = 0
    n_complete: int = 0
    n_pruned: int = 0
    n_failed: int = 0
    trials: List[Dict[str, Any]] = field(default_factory=list)
    best_profile: Optional[ProfileResult] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "best_params": dict(self.best_params),
            "best_value": self.best_value,
            "objective": self.objective,
            "direction": self.direction,
            "method": self.method,
            "n_trials": self.n_trials,
            "n_complete": self.n_complete,
            "n_pruned": self.n_pruned,
            "n_failed": self.n_failed,
            "trials": list(self.trials),
            "best_profile": self.best_profile.to_dict() if self.best_profile else None,
        }


class HyperparameterOptimizer:
    """
    Searches generation parameters for the best objective value.

    Supported methods:
    - bayesian: Tree-structured Parzen Estimator
    - random: independent uniform sampling
    - grid: exhaustive sweep (capped by the budget)
    """

    def __init__(
        self,
        profiler: Profiler,
        config: Optional[OptimizerConfig] = None,
        search_space: Optional[List[ParameterSpec]] = None,
    ):
        self.profiler = profiler
        self.config = config or OptimizerConfig()
        self.search_space = search_space or self.config.search_space or \
            profiler.backend.default_search_space()
        self.study: Optional[optuna.Study] = None
        self._profiles: Dict[int, ProfileResult] = {}

    def _create_sampler(self) -> optuna.samplers.BaseSampler:
        method = self.config.method
        if method == OptimizerMethod.BAYESIAN:
            return optuna.samplers.TPESampler(seed=self.config.seed)
        elif method == OptimizerMethod.RANDOM:
            return optuna.samplers.RandomSampler(seed=self.config.seed)
        elif method == OptimizerMethod.GRID:
            return optuna.samplers.GridSampler(grid_from_specs(self.search_space), seed=self.config.seed)
        raise ValueError(f"Unsupported optimizer method: {method}")

    def _n_trials(self) -> int:
        if self.config.method == OptimizerMethod.GRID:
            return min(self.config.budget, grid_size(grid_from_specs(self.search_space)))
        return self.config.budget

    def _objective(self, trial: optuna.Trial) -> float:
        values = suggest_params(trial, self.search_space)
        params, runtime_options = GenerationParams.split(values)

        try:
            profile = self.profiler.profile(params, runtime_options)
        except MemoryError as e:
            # Out-of-memory configurations are infeasible, not fatal
            raise RuntimeError(f"Out of memory: {e}") from e

        for metric in Metric:
            trial.set_user_attr(metric.value, profile.metric(metric))
        trial.set_user_attr("p90_latency_ms", profile.p90_latency_ms)

        budget = self.config.latency_budget_ms
        if budget > 0 and profile.p90_latency_ms > budget:
            logger.info(
                f"Trial {trial.number} pruned: p90 {profile.p90_latency_ms:.1f} ms > budget {budget:.1f} ms"
            )
            raise optuna.TrialPruned()

        self._profiles[trial.number] = profile
        value = profile.metric(self.config.objective)
        logger.info(f"Trial {trial.number}: {self.config.objective.value}={value:.4f} params={values}")
        return value

    def optimize(self) -> OptimizationResult:
        """Run the search and return the best parameters found."""
        direction = self.config.resolved_direction()
        self.study = optuna.create_study(direction=direction, sampler=self._create_sampler())
        self._profiles = {}

        n_trials = self._n_trials()
        logger.info(
            f"Optimizing {self.config.objective.value} ({direction}) with "
            f"{self.config.method.value} search, {n_trials} trials"
        )

        self.study.optimize(
            self._objective,
            n_trials=n_trials,
            timeout=self.config.timeout_s or None,
            catch=(RuntimeError,),
        )

        trials = self.study.trials
        states = [t.state for t in trials]
        complete = [t for t in trials if t.state == optuna.trial.TrialState.COMPLETE]
        if not complete:
            raise RuntimeError(
                f"No trial completed ({states.count(optuna.trial.TrialState.PRUNED)} pruned, "
                f"{states.count(optuna.trial.TrialState.FAIL)} failed)"
            )

        best = self.study.best_trial
        result = OptimizationResult(
            best_params=dict(best.params),
            best_value=float(best.value),
            objective=self.config.objective.value,
            direction=direction,
            method=self.config.method.value,
            n_trials=len(trials),
            n_complete=len(complete),
            n_pruned=states.count(optuna.trial.TrialState.PRUNED),
            n_failed=states.count(optuna.trial.TrialState.FAIL),
            trials=[
                {
                    "number": t.number,
                    "state": t.state.name,
                    "params": dict(t.params),
                    "value": t.value,
                    "metrics": dict(t.user_attrs),
                }
                for t in trials
            ],
            best_profile=self._profiles.get(best.number),
        )

        logger.info(
            f"Best {result.objective}: {result.best_value:.4f} "
            f"({result.n_complete}/{result.n_trials} trials complete)"
        )
        return result
