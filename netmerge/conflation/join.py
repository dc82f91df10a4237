"""
Spatial join of source line attributes onto buffers around target lines.

Every target feature is buffered on its own; source lines (optionally split
into short segments) are reduced to centroids and joined to the buffers
they fall in. One source centroid may land in several buffers: those
duplicates are kept here and resolved by aggregation downstream.
"""

from __future__ import annotations

import logging
from typing import Any, Union

import geopandas as gpd
import numpy as np
import pandas as pd
from pandas.api.types import is_numeric_dtype

from netmerge.conflation.subset import rnet_subset
from netmerge.constants import (
    DEFAULT_BUFFER_STYLE,
    DEFAULT_JOIN_DIST,
    DEFAULT_QUAD_SEGS,
    DEFAULT_SUBSET_DIST,
    LENGTH_Y_COL,
)
from netmerge.network_utils.geometry_utils import (
    buffer_lines,
    line_centroids,
    line_lengths,
    validate_crs,
)
from netmerge.network_utils.line_segments import line_segment

logger = logging.getLogger(__name__)


def resolve_key_column(target: gpd.GeoDataFrame, key_column: Union[int, str]) -> str:
    """
    Return the name of the key column of `target`.

    `key_column` is either a column name or a 0-based position among the
    non-geometry columns.
    """
    columns = [c for c in target.columns if c != target.geometry.name]
    if isinstance(key_column, str):
        if key_column not in columns:
            raise KeyError(f"Key column '{key_column}' not found in target columns {columns}.")
        return key_column

    if not 0 <= key_column < len(columns):
        raise KeyError(
            f"Key column position {key_column} out of range for {len(columns)} "
            "non-geometry target columns."
        )
    return columns[key_column]


def _empty_join(buffers: gpd.GeoDataFrame, centroids: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
    """Left join result when there is nothing to match: all source columns null."""
    joined = buffers.copy()
    for col in centroids.columns:
        if col == centroids.geometry.name:
            continue
        dtype = "float64" if is_numeric_dtype(centroids[col]) else "object"
        joined[col] = pd.Series(np.nan, index=joined.index, dtype=dtype)
    return joined.reset_index(drop=True)


def rnet_join(
    target: gpd.GeoDataFrame,
    source: gpd.GeoDataFrame,
    dist: float = DEFAULT_JOIN_DIST,
    transfer_length: bool = True,
    key_column: Union[int, str] = 0,
    subset_target: bool = True,
    subset_dist: float = DEFAULT_SUBSET_DIST,
    segment_length: float = 0,
    buffer_style: str = DEFAULT_BUFFER_STYLE,
    quad_segs: int = DEFAULT_QUAD_SEGS,
    **subset_kwargs: Any,
) -> gpd.GeoDataFrame:
    """
    Join source attributes onto buffers around the target features.

    Parameters
    ----------
    target : GeoDataFrame
        Network whose geometry (and key) the output is built on.
    source : GeoDataFrame
        Network whose attributes are transferred.
    dist : float
        Buffer width (m) around each target feature.
    transfer_length : bool
        Add the `length_y` column (length of each source segment), used as
        the weight in aggregation.
    key_column : int or str
        Target key column, by name or position among non-geometry columns.
    subset_target : bool
        Subset `target` by `source` before buffering (see rnet_subset).
    subset_dist : float
        Buffer width (m) used for that subsetting.
    segment_length : float
        Split source lines into segments no longer than this before the
        join. 0 disables splitting.
    buffer_style : {'flat', 'round', 'square'}
        End cap of the target buffers.
    quad_segs : int
        Buffer arc resolution.
    **subset_kwargs
        Passed on to rnet_subset (crop, min_length, remove_disconnected...).

    Returns
    -------
    GeoDataFrame
        One row per (target feature, matched source segment) pair, with the
        target buffer as geometry, the key column, the source attributes and
        `length_y`. Targets without a match appear once with null source
        attributes.
    """
    if not dist > 0:
        raise ValueError(f"dist must be positive, got {dist!r}")
    validate_crs(target, source)

    key = resolve_key_column(target, key_column)
    if target[key].duplicated().any():
        logger.warning("Key column '%s' is not unique in the target network", key)

    if subset_target:
        target = rnet_subset(
            target, source, dist=subset_dist, quad_segs=quad_segs, **subset_kwargs
        )

    buffers = gpd.GeoDataFrame(
        target[[key]].copy(),
        geometry=buffer_lines(target, dist, cap_style=buffer_style, quad_segs=quad_segs),
    )

    if segment_length > 0:
        source = line_segment(source, segment_length)
    else:
        source = source.copy()

    if key in source.columns and key != source.geometry.name:
        logger.warning("Dropping source column '%s' which collides with the target key", key)
        source = source.drop(columns=key)

    if transfer_length:
        source[LENGTH_Y_COL] = line_lengths(source)

    centroids = line_centroids(source)

    if buffers.empty or centroids.empty:
        logger.info(
            "Nothing to join: %d target buffers, %d source centroids",
            len(buffers),
            len(centroids),
        )
        return _empty_join(buffers, centroids)

    joined = gpd.sjoin(buffers, centroids, how="left", predicate="intersects")

    matched = joined.loc[joined["index_right"].notna(), key].nunique()
    logger.info(
        "Joined %d source segments onto %d target buffers: %d rows, %d/%d targets matched",
        len(centroids),
        len(buffers),
        len(joined),
        matched,
        buffers[key].nunique(),
    )

    return joined.drop(columns="index_right").reset_index(drop=True)
