"""
Per-column aggregation of joined source attributes onto target keys.

Each requested column gets one aggregation kind, resolved once per call:

- WeightedSum: additive quantities (e.g. flows). Summed with each value
  weighted by the length of the source segment it came from, and later
  rescaled so the network total is conserved.
- WeightedMean: length-weighted mean.
- Reduce: any pandas aggregation (name or callable) applied to the
  grouped values as they are.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, ClassVar, Dict, Mapping, Optional, Union

import geopandas as gpd
import numpy as np
import pandas as pd
from pandas.api.types import is_numeric_dtype

from netmerge.constants import LENGTH_Y_COL

logger = logging.getLogger(__name__)


class Aggregation:
    """Base class of the aggregation kinds."""

    additive: ClassVar[bool] = False
    weighted: ClassVar[bool] = False

    def reduce(
        self,
        table: pd.DataFrame,
        key: str,
        column: str,
        sum_flows: bool = True,
        weight_col: str = LENGTH_Y_COL,
    ) -> pd.Series:
        raise NotImplementedError


@dataclass(frozen=True)
class WeightedSum(Aggregation):
    additive: ClassVar[bool] = True
    weighted: ClassVar[bool] = True

    def reduce(self, table, key, column, sum_flows=True, weight_col=LENGTH_Y_COL):
        if not sum_flows:
            return table.groupby(key)[column].sum(min_count=1)
        weighted = table[column] * table[weight_col]
        return weighted.groupby(table[key]).sum(min_count=1)


@dataclass(frozen=True)
class WeightedMean(Aggregation):
    weighted: ClassVar[bool] = True

    def reduce(self, table, key, column, sum_flows=True, weight_col=LENGTH_Y_COL):
        weights = table[weight_col].where(table[column].notna())
        numerator = (table[column] * weights).groupby(table[key]).sum(min_count=1)
        denominator = weights.groupby(table[key]).sum(min_count=1)
        return numerator / denominator.where(denominator > 0)


@dataclass(frozen=True)
class Reduce(Aggregation):
    fn: Union[str, Callable[[pd.Series], Any]] = "mean"

    def reduce(self, table, key, column, sum_flows=True, weight_col=LENGTH_Y_COL):
        grouped = table.groupby(key)[column]
        if self.fn == "sum":
            # an all-null group stays null
            return grouped.sum(min_count=1)
        return grouped.agg(self.fn)


def as_aggregation(fn: Union[Aggregation, str, Callable]) -> Aggregation:
    """
    Turn a user-supplied aggregation spec into an Aggregation.

    'sum', the builtin `sum` and `np.sum` mean an additive column
    (WeightedSum); 'weighted_mean' gives WeightedMean; any other string or
    callable is wrapped in Reduce.
    """
    if isinstance(fn, Aggregation):
        return fn
    if isinstance(fn, str):
        if fn == "sum":
            return WeightedSum()
        if fn == "weighted_mean":
            return WeightedMean()
        return Reduce(fn)
    if fn is sum or fn is np.sum:
        return WeightedSum()
    if callable(fn):
        return Reduce(fn)
    raise TypeError(f"Cannot interpret {fn!r} as an aggregation function")


def resolve_funs(
    source: gpd.GeoDataFrame,
    funs: Optional[Mapping[str, Union[Aggregation, str, Callable]]] = None,
) -> Dict[str, Aggregation]:
    """
    Resolve the column -> aggregation mapping for a merge.

    With `funs=None` every numeric source column is treated as additive.
    Raises KeyError for columns missing from `source` and TypeError when a
    length-weighted aggregation is requested for a non-numeric column.
    """
    geom_col = source.geometry.name

    if funs is None:
        exclude = {geom_col, LENGTH_Y_COL}
        numeric_cols = source.drop(columns=geom_col).select_dtypes(include="number").columns
        resolved = {c: WeightedSum() for c in numeric_cols if c not in exclude}
        if not resolved:
            raise ValueError(
                "No numeric columns found in the source network. "
                "Specify `funs` explicitly."
            )
        logger.debug("Defaulting to WeightedSum for columns %s", list(resolved))
        return resolved

    resolved = {}
    for col, fn in funs.items():
        if col not in source.columns or col == geom_col:
            raise KeyError(f"Column '{col}' not found in the source network.")
        agg = as_aggregation(fn)
        if agg.weighted and not is_numeric_dtype(source[col]):
            raise TypeError(
                f"{type(agg).__name__} needs a numeric column; '{col}' is {source[col].dtype}."
            )
        resolved[col] = agg
    if not resolved:
        raise ValueError("`funs` is empty; nothing to aggregate.")
    return resolved


def aggregate_columns(
    joined: pd.DataFrame,
    key: str,
    aggregations: Mapping[str, Aggregation],
    sum_flows: bool = True,
    weight_col: str = LENGTH_Y_COL,
) -> pd.DataFrame:
    """
    Group `joined` by `key` and reduce each column with its aggregation.

    Returns a DataFrame indexed by key with one column per aggregation.
    Keys whose values are all null get null, not zero.
    """
    if isinstance(joined, gpd.GeoDataFrame):
        joined = pd.DataFrame(joined.drop(columns=joined.geometry.name))

    results = {}
    for col, agg in aggregations.items():
        logger.debug("Aggregating '%s' with %s (sum_flows=%s)", col, agg, sum_flows)
        series = agg.reduce(joined, key, col, sum_flows=sum_flows, weight_col=weight_col)
        results[col] = series.replace([np.inf, -np.inf], np.nan)

    return pd.concat(results, axis=1)
