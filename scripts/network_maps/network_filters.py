"""Rule-driven attribute filters for transit line and station layers.

Filters are plain data: a ``FilterStep`` keeps or drops the rows matching any
of its ``Predicate`` objects, and a pipeline is a list of steps applied in
order (AND across steps, OR within a step). Rule sets can live in the
calling script as constants or be loaded from a JSON file of the form::

    {
      "core": [
        {"action": "keep", "label": "modes",
         "predicates": [
            {"column": "TECHNOLOGY", "op": "in", "values": ["Subway", "LRT / BRT"]},
            {"column": "NAME", "op": "in", "values": ["UP Express"]}
         ]}
      ]
    }

Stations are tied to lines by name only; no spatial matching is done.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence

import geopandas as gpd
import pandas as pd

from scripts.network_maps.transit_layers import MissingAttributeError

LOGGER = logging.getLogger(__name__)

VALID_ACTIONS: frozenset[str] = frozenset({"keep", "drop"})
VALID_OPS: frozenset[str] = frozenset({"in", "contains"})

# =============================================================================
# RULE TYPES
# =============================================================================


@dataclass(frozen=True)
class Predicate:
    """Row test on one attribute column.

    ``in`` is exact membership; ``contains`` is literal substring containment
    of any of *values*. Null cells never match.
    """

    column: str
    op: str
    values: tuple[str, ...]

    def __post_init__(self) -> None:
        if self.op not in VALID_OPS:
            raise ValueError(f"Unknown predicate op {self.op!r}; expected one of {sorted(VALID_OPS)}")
        # Accept any iterable of values but store a hashable tuple; a lone
        # string is one value, not a sequence of characters
        if isinstance(self.values, str):
            object.__setattr__(self, "values", (self.values,))
        object.__setattr__(self, "values", tuple(str(v) for v in self.values))


@dataclass(frozen=True)
class FilterStep:
    """Keep or drop rows matching any of *predicates*."""

    action: str
    predicates: tuple[Predicate, ...]
    label: str = ""

    def __post_init__(self) -> None:
        if self.action not in VALID_ACTIONS:
            raise ValueError(
                f"Unknown filter action {self.action!r}; expected one of {sorted(VALID_ACTIONS)}"
            )
        object.__setattr__(self, "predicates", tuple(self.predicates))


@dataclass
class NetworkSubset:
    """One filtered view of the network, ready to render."""

    name: str
    lines: gpd.GeoDataFrame
    stations: gpd.GeoDataFrame
    line_names: set[str] = field(default_factory=set)


def keep(*predicates: Predicate, label: str = "") -> FilterStep:
    """Step retaining rows that match any of *predicates*."""
    return FilterStep("keep", predicates, label)


def drop(*predicates: Predicate, label: str = "") -> FilterStep:
    """Step removing rows that match any of *predicates*."""
    return FilterStep("drop", predicates, label)


# =============================================================================
# RULE LOADING
# =============================================================================


def _predicate_from_record(step_no: int, rec: Any) -> Predicate:
    if not isinstance(rec, Mapping):
        raise ValueError(f"Filter step #{step_no}: predicate must be an object, got {type(rec).__name__}")
    values = rec["values"]
    # A bare string would otherwise be split into characters
    if isinstance(values, str) or not isinstance(values, (list, tuple)):
        raise ValueError(
            f"Filter step #{step_no}: 'values' for column {rec.get('column')!r} must be a list, "
            f"got {values!r}"
        )
    return Predicate(rec["column"], rec["op"], tuple(values))


def steps_from_records(records: Iterable[Mapping[str, Any]]) -> list[FilterStep]:
    """Build FilterSteps from JSON-style dicts.

    Raises:
        ValueError: On an unknown action/op or a malformed record.
    """
    steps: list[FilterStep] = []
    for i, rec in enumerate(records):
        if not isinstance(rec, Mapping):
            raise ValueError(f"Filter step #{i} must be an object, got {type(rec).__name__}")
        try:
            predicates = tuple(_predicate_from_record(i, p) for p in rec["predicates"])
            steps.append(FilterStep(rec["action"], predicates, rec.get("label", "")))
        except KeyError as exc:
            raise ValueError(f"Filter step #{i} is missing key {exc}") from exc
    return steps


def load_rules(path: str | Path) -> dict[str, list[FilterStep]]:
    """Read a JSON rules file mapping pipeline name → list of step records."""
    rules_path = Path(path)
    LOGGER.info("Loading filter rules from %s", rules_path)
    with rules_path.open(encoding="utf-8") as fh:
        raw = json.load(fh)
    if not isinstance(raw, dict):
        raise ValueError(f"{rules_path}: top level must be an object of pipelines")
    return {name: steps_from_records(records) for name, records in raw.items()}


# =============================================================================
# FILTERING
# =============================================================================


def predicate_mask(gdf: pd.DataFrame, predicate: Predicate) -> pd.Series:
    """Evaluate *predicate* per row, returning a boolean Series aligned to *gdf*."""
    if predicate.column not in gdf.columns:
        raise MissingAttributeError(
            f"Filter column {predicate.column!r} not found; available: {list(gdf.columns)}"
        )

    col = gdf[predicate.column]
    present = col.notna()
    text = col.where(present, "").astype(str)

    if predicate.op == "in":
        mask = text.isin(predicate.values)
    else:
        mask = pd.Series(False, index=gdf.index)
        for value in predicate.values:
            mask |= text.str.contains(value, regex=False)

    return (mask & present).astype(bool)


def step_mask(gdf: pd.DataFrame, step: FilterStep) -> pd.Series:
    """Rows matching any predicate of *step*."""
    mask = pd.Series(False, index=gdf.index)
    for predicate in step.predicates:
        mask |= predicate_mask(gdf, predicate)
    return mask


def apply_step(gdf: gpd.GeoDataFrame, step: FilterStep) -> gpd.GeoDataFrame:
    """Return the rows of *gdf* that survive *step* (order preserved)."""
    matched = step_mask(gdf, step)
    selected = gdf.loc[matched if step.action == "keep" else ~matched].copy()
    LOGGER.info(
        "%s %s: %d → %d rows",
        step.action,
        step.label or "(unlabelled)",
        len(gdf),
        len(selected),
    )
    return selected


def apply_steps(gdf: gpd.GeoDataFrame, steps: Sequence[FilterStep]) -> gpd.GeoDataFrame:
    """Apply *steps* in order. An empty result is valid and only logged."""
    result = gdf.copy()
    for step in steps:
        result = apply_step(result, step)
    if result.empty and not gdf.empty:
        LOGGER.warning("Filter pipeline removed every feature")
    return result


# =============================================================================
# STATION JOIN
# =============================================================================


def distinct_names(gdf: pd.DataFrame, column: str = "NAME") -> set[str]:
    """Non-null distinct values of *column* as strings."""
    if column not in gdf.columns:
        raise MissingAttributeError(f"Column {column!r} not found")
    return {str(v) for v in gdf[column].dropna().unique()}


def join_stations(
    stations: gpd.GeoDataFrame,
    lines: gpd.GeoDataFrame,
    extra_names: Iterable[str] = (),
    column: str = "NAME",
) -> gpd.GeoDataFrame:
    """Stations whose name appears among the line names or in *extra_names*."""
    wanted = distinct_names(lines, column) | {str(n) for n in extra_names}
    if column not in stations.columns:
        raise MissingAttributeError(f"Station layer has no {column!r} column")

    mask = stations[column].notna() & stations[column].astype(str).isin(wanted)
    selected = stations.loc[mask].copy()
    if selected.empty:
        LOGGER.warning("No stations matched %d line names", len(wanted))
    return selected


def unmatched_names(
    lines: gpd.GeoDataFrame,
    stations: gpd.GeoDataFrame,
    extra_names: Iterable[str] = (),
    column: str = "NAME",
) -> tuple[list[str], list[str]]:
    """Report names that do not line up between the two layers.

    Returns:
        ``(lines_without_stations, unused_extra_names)``, both sorted.
    """
    station_names = distinct_names(stations, column)
    line_names = distinct_names(lines, column)
    extras = {str(n) for n in extra_names}
    return sorted(line_names - station_names), sorted(extras - station_names)


# =============================================================================
# PIPELINES
# =============================================================================


def build_subset(
    name: str,
    lines: gpd.GeoDataFrame,
    stations: gpd.GeoDataFrame,
    steps: Sequence[FilterStep],
    extra_station_names: Iterable[str] = (),
) -> NetworkSubset:
    """Filter *lines* with *steps* and attach the matching stations."""
    LOGGER.info("Building subset '%s'", name)
    extras = tuple(extra_station_names)
    subset_lines = apply_steps(lines, steps)
    subset_stations = join_stations(stations, subset_lines, extras)

    orphans, unused = unmatched_names(subset_lines, stations, extras)
    if orphans:
        LOGGER.warning("'%s': lines with no station of the same name: %s", name, ", ".join(orphans))
    if unused:
        LOGGER.debug("'%s': station extras not present in the station layer: %s", name, ", ".join(unused))

    return NetworkSubset(
        name=name,
        lines=subset_lines,
        stations=subset_stations,
        line_names=distinct_names(subset_lines),
    )


def build_subsets(
    lines: gpd.GeoDataFrame,
    stations: gpd.GeoDataFrame,
    rules: Mapping[str, Sequence[FilterStep]],
    extra_station_names: Iterable[str] = (),
    chains: Mapping[str, str] | None = None,
) -> dict[str, NetworkSubset]:
    """Run every pipeline in *rules*, in order.

    Args:
        lines: Full line layer.
        stations: Full station layer.
        rules: Pipeline name → steps.
        extra_station_names: Station names always joined regardless of lines.
        chains: Pipeline name → earlier pipeline whose *output* it filters
            further (e.g. ``{"rapid": "core"}``). Unchained pipelines start
            from the full line layer.

    Returns:
        Pipeline name → NetworkSubset, in the order of *rules*.
    """
    chains = dict(chains or {})
    extras = tuple(extra_station_names)
    subsets: dict[str, NetworkSubset] = {}

    for name, steps in rules.items():
        parent = chains.get(name)
        if parent is None:
            source = lines
        elif parent in subsets:
            source = subsets[parent].lines
        else:
            raise ValueError(f"Pipeline '{name}' chains from '{parent}', which has not run yet")
        subsets[name] = build_subset(name, source, stations, steps, extras)

    return subsets
