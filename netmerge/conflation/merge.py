"""
Merge route networks: transfer source attributes onto target geometry.

Pipeline:
    1. Resolve one aggregation per requested source column.
    2. rnet_join: subset target, buffer it, join source segment centroids.
    3. Group joined rows by target key and aggregate each column.
    4. Left-join the aggregates back onto the target network.
    5. If sum_flows: turn additive columns into per-metre intensities and
       apply one global rescale so the network total matches the source.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

import geopandas as gpd
import numpy as np

from netmerge.conflation.aggregation import (
    Aggregation,
    aggregate_columns,
    resolve_funs,
)
from netmerge.conflation.join import resolve_key_column, rnet_join
from netmerge.constants import (
    DEFAULT_BUFFER_STYLE,
    DEFAULT_JOIN_DIST,
    DEFAULT_MERGE_SUBSET_DIST,
    LENGTH_X_COL,
)
from netmerge.network_utils.geometry_utils import line_lengths, validate_crs

logger = logging.getLogger(__name__)

FunSpec = Union[Aggregation, str, Callable]


@dataclass
class MergeConfig:
    """
    All rnet_merge options in one place.

    The first four fields are rnet_merge's own; the rest are passed through
    to rnet_join and, via it, to rnet_subset.
    """
    dist: float = DEFAULT_JOIN_DIST
    funs: Optional[Dict[str, FunSpec]] = None
    sum_flows: bool = True
    subset_dist: float = DEFAULT_MERGE_SUBSET_DIST

    key_column: Union[int, str] = 0
    subset_target: bool = True
    segment_length: float = 0
    buffer_style: str = DEFAULT_BUFFER_STYLE

    crop: bool = True
    min_length: float = 0
    remove_disconnected: bool = True

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> "MergeConfig":
        """Build a config from a parameter dict, e.g. merge_parameters.json."""
        known = {f.name for f in fields(cls)}
        unknown = set(params) - known
        if unknown:
            raise ValueError(f"Unknown merge parameters: {sorted(unknown)}")
        return cls(**params)

    def merge_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for rnet_merge (shallow, unlike asdict)."""
        return {f.name: getattr(self, f.name) for f in fields(self)}


def rescale_additive_columns(
    merged: gpd.GeoDataFrame,
    source: gpd.GeoDataFrame,
    columns: List[str],
) -> gpd.GeoDataFrame:
    """
    Convert additive columns to per-metre intensities and rescale them so
    that sum(intensity * length) over the target equals
    sum(value * length) over the source.

    The correction is one global ratio per column. Zero-length targets get
    NaN. Ratios are stored in `attrs["rescale_ratios"]`.
    """
    merged = merged.copy()
    if not columns:
        merged.attrs["rescale_ratios"] = {}
        return merged

    length_x = line_lengths(merged)
    merged[LENGTH_X_COL] = length_x
    safe_length_x = length_x.where(length_x > 0)
    length_y = line_lengths(source)

    ratios: Dict[str, float] = {}
    for col in columns:
        intensity = merged[col] / safe_length_x
        assigned_total = float((intensity * length_x).sum())
        source_total = float((source[col] * length_y).sum())
        over_estimate = assigned_total / source_total if source_total != 0 else np.nan

        if not np.isfinite(over_estimate) or over_estimate == 0:
            logger.warning(
                "Cannot rescale '%s' (assigned total %.3f, source total %.3f); "
                "leaving intensities unscaled",
                col,
                assigned_total,
                source_total,
            )
            merged[col] = intensity
            ratios[col] = np.nan
            continue

        merged[col] = intensity / over_estimate
        ratios[col] = over_estimate
        logger.info("Rescaled '%s' by global over-estimate ratio %.4f", col, over_estimate)

    merged.attrs["rescale_ratios"] = ratios
    return merged


def rnet_merge(
    target: gpd.GeoDataFrame,
    source: gpd.GeoDataFrame,
    dist: float = DEFAULT_JOIN_DIST,
    funs: Optional[Mapping[str, FunSpec]] = None,
    sum_flows: bool = True,
    subset_dist: float = DEFAULT_MERGE_SUBSET_DIST,
    **join_kwargs: Any,
) -> gpd.GeoDataFrame:
    """
    Merge route networks, keeping target geometry and aggregating source
    attributes onto it.

    Parameters
    ----------
    target : GeoDataFrame
        Network whose geometry is kept (e.g. OSM ways).
    source : GeoDataFrame
        Network whose attributes are transferred (e.g. modelled flows).
    dist : float
        Buffer width (m) around each target feature.
    funs : mapping, optional
        Column -> aggregation. Values may be Aggregation instances
        (WeightedSum(), WeightedMean(), Reduce(fn)), strings ('sum' for an
        additive column, 'weighted_mean', or any pandas aggregation name)
        or callables. The builtin `sum` is additive like 'sum'.
        Default: WeightedSum for every numeric column.
    sum_flows : bool
        Length-weight and rescale additive columns. If False they are
        plainly summed.
    subset_dist : float
        Buffer width (m) used to subset the target before joining.
    **join_kwargs
        Passed to rnet_join (key_column, segment_length, buffer_style,
        subset_target, crop, min_length, remove_disconnected...).

    Returns
    -------
    GeoDataFrame
        `target` with one new column per aggregated source column (null
        where nothing matched) and, if sum_flows, a `length_x` column.
        `attrs["rescale_ratios"]` maps each additive column to its ratio.
    """
    validate_crs(target, source)
    aggregations = resolve_funs(source, funs)

    key = resolve_key_column(target, join_kwargs.pop("key_column", 0))
    if key in aggregations:
        raise ValueError(f"Cannot aggregate onto the target key column '{key}'.")
    additive_cols = [c for c, agg in aggregations.items() if agg.additive]

    logger.info(
        "Merging %d source features onto %d target features: %s",
        len(source),
        len(target),
        {c: repr(agg) for c, agg in aggregations.items()},
    )

    source_geom = source.geometry.name
    joined = rnet_join(
        target,
        source[list(aggregations) + [source_geom]],
        dist=dist,
        transfer_length=True,
        key_column=key,
        subset_dist=subset_dist,
        **join_kwargs,
    )

    merged = target.copy()
    overlap = [c for c in aggregations if c in merged.columns]
    if overlap:
        logger.warning("Replacing existing target columns %s with merged values", overlap)
        merged = merged.drop(columns=overlap)

    if joined.empty:
        logger.warning("Join produced no rows; all merged columns are null")
        for col in aggregations:
            merged[col] = np.nan
    else:
        aggregated = aggregate_columns(joined, key, aggregations, sum_flows=sum_flows)
        merged = merged.merge(aggregated.reset_index(), on=key, how="left")
        logger.info(
            "Merged values onto %d/%d target features",
            merged[key].isin(aggregated.index[aggregated.notna().any(axis=1)]).sum(),
            len(merged),
        )

    if sum_flows:
        merged = rescale_additive_columns(merged, source, additive_cols)
    else:
        merged.attrs["rescale_ratios"] = {}

    return merged
