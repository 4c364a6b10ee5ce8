"""Search space helpers bridging ParameterSpec and Optuna trials."""

from typing import Any, Dict, List

import numpy as np
import optuna

from .config import ParameterSpec


def suggest_params(trial: optuna.Trial, specs: List[ParameterSpec]) -> Dict[str, Any]:
    """Draw one value per parameter from an Optuna trial."""
    params: Dict[str, Any] = {}
    for spec in specs:
        if spec.kind == "categorical":
            params[spec.name] = trial.suggest_categorical(spec.name, list(spec.choices))
        elif spec.kind == "int":
            params[spec.name] = trial.suggest_int(
                spec.name,
                int(spec.low),
                int(spec.high),
                step=int(spec.step or 1),
                log=spec.log,
            )
        elif spec.kind == "float":
            params[spec.name] = trial.suggest_float(
                spec.name,
                float(spec.low),
                float(spec.high),
                step=spec.step,
                log=spec.log,
            )
        else:
            raise ValueError(f"Unsupported parameter type '{spec.kind}' for {spec.name}")
    return params


def grid_values(spec: ParameterSpec) -> List[Any]:
    """Enumerate the discrete values of one parameter for grid search."""
    if spec.kind == "categorical":
        return list(spec.choices)
    if spec.kind == "int":
        return list(range(int(spec.low), int(spec.high) + 1, int(spec.step or 1)))
    if spec.kind == "float":
        if spec.step is None:
            raise ValueError(f"Parameter '{spec.name}': grid search needs a step for float ranges")
        count = int(np.floor((spec.high - spec.low) / spec.step + 1e-9)) + 1
        return [round(float(spec.low + i * spec.step), 10) for i in range(count)]
    raise ValueError(f"Unsupported parameter type '{spec.kind}' for {spec.name}")


def grid_from_specs(specs: List[ParameterSpec]) -> Dict[str, List[Any]]:
    """Search space dict as expected by ``optuna.samplers.GridSampler``."""
    return {spec.name: grid_values(spec) for spec in specs}


def grid_size(grid: Dict[str, List[Any]]) -> int:
    size = 1
    for values in grid.values():
        size *= len(values)
    return size
