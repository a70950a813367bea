"""Earliest/latest qualifying value per subject across several source tables.

Each event names a source dataset, the rows of it that count, and how to compute
the compared value (usually a date) plus any other variables to carry. All
events are first normalized into one candidate stream keyed by subject; the
reduction over that stream never looks at where a candidate came from.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from clinical_derivations.derivations.selection import (
    Condition,
    evaluate_condition,
    merge_new_vars,
    select_extreme,
)
from clinical_derivations.io import require_columns
from clinical_derivations.logging_utils import get_logger

log = get_logger(__name__)

Extractor = Callable[[pd.DataFrame], Any]


@dataclass(frozen=True)
class Event:
    """One source of candidates: `set_values_to` maps variable -> callable or constant."""

    dataset_name: str
    condition: Condition = None
    set_values_to: Mapping[str, Any] = field(default_factory=dict)


def _candidates(event: Event, source: pd.DataFrame, by_vars: Sequence[str], order: Sequence[str]) -> pd.DataFrame:
    require_columns(source, by_vars, table=event.dataset_name)
    rows = source[evaluate_condition(event.condition, source)]
    out = rows[list(by_vars)].copy()
    for target, spec in event.set_values_to.items():
        value = spec(rows) if callable(spec) else spec
        out[target] = value.to_numpy() if isinstance(value, pd.Series) else value
    # tie-break keys a source does not have stay missing for its candidates
    for key in order:
        if key not in out.columns:
            out[key] = rows[key].to_numpy() if key in rows.columns else np.nan
    return out


def collect_candidates(
    events: Sequence[Event],
    source_datasets: Mapping[str, pd.DataFrame],
    by_vars: Sequence[str],
    compare_var: str,
    order: Sequence[str] = (),
) -> pd.DataFrame:
    """Union of all events' candidates that have a comparable `compare_var`."""
    frames = []
    for event in events:
        if event.dataset_name not in source_datasets:
            raise ValueError(f"Event refers to unknown dataset {event.dataset_name!r}")
        if compare_var not in event.set_values_to:
            raise ValueError(f"Event on {event.dataset_name!r} does not set {compare_var!r}")
        candidates = _candidates(event, source_datasets[event.dataset_name], by_vars, order)
        usable = candidates[compare_var].notna()
        log.debug(
            "event_candidates",
            dataset=event.dataset_name,
            qualifying=len(candidates),
            comparable=int(usable.sum()),
        )
        frames.append(candidates[usable])
    if not frames:
        return pd.DataFrame(columns=list(by_vars) + [compare_var] + list(order))
    return pd.concat(frames, ignore_index=True).infer_objects()


def derive_vars_extreme_event(
    dataset: pd.DataFrame,
    by_vars: Sequence[str],
    events: Sequence[Event],
    source_datasets: Mapping[str, pd.DataFrame],
    new_vars: Sequence[str],
    mode: str = "last",
    order: Sequence[str] = (),
    compare_var: Optional[str] = None,
) -> pd.DataFrame:
    """Merge the variables of the extreme event per subject onto `dataset`.

    Candidates are ranked by `compare_var` (default: the first of `new_vars`)
    and then by the `order` tie-break keys. A candidate whose value cannot be
    compared, e.g. a partial date left unimputed, does not take part.
    """
    by_vars = list(by_vars)
    compare_var = compare_var or new_vars[0]
    require_columns(dataset, by_vars, table="dataset")

    union = collect_candidates(events, source_datasets, by_vars, compare_var, order)
    winners = select_extreme(union, by_vars, [compare_var, *order], mode=mode, table="event candidates")
    out = merge_new_vars(dataset, winners, by_vars, {v: v for v in new_vars})
    log.info(
        "derived_extreme_event",
        variable=compare_var,
        mode=mode,
        events=[e.dataset_name for e in events],
        candidates=len(union),
        missing=int(out[compare_var].isna().sum()),
    )
    return out


def aggregate_extreme(
    sources: Sequence[Tuple[pd.DataFrame, Condition, Extractor]],
    by_vars: Sequence[str],
    mode: str = "last",
    order: Sequence[str] = (),
    value_name: str = "value",
) -> pd.DataFrame:
    """Extreme extracted value per group over (table, condition, extractor) sources.

    Returns one row per group with at least one comparable candidate, holding
    the `by_vars` and `value_name` columns.
    """
    events = []
    datasets: Dict[str, pd.DataFrame] = {}
    for idx, (table, condition, extractor) in enumerate(sources):
        name = f"source_{idx}"
        datasets[name] = table
        events.append(Event(dataset_name=name, condition=condition, set_values_to={value_name: extractor}))

    union = collect_candidates(events, datasets, by_vars, value_name, order)
    winners = select_extreme(union, by_vars, [value_name, *order], mode=mode, table="event candidates")
    return winners[list(by_vars) + [value_name]]


__all__ = [
    "Event",
    "collect_candidates",
    "derive_vars_extreme_event",
    "aggregate_extreme",
]
