"""
Trim a target line network to the parts that lie near a reference network.
"""

from __future__ import annotations

import logging

import geopandas as gpd

from netmerge.constants import (
    DEFAULT_QUAD_SEGS,
    DEFAULT_SUBSET_DIST,
    ENDPOINT_TOLERANCE_M,
    LENGTH_X_ORIGINAL_COL,
)
from netmerge.network_utils.connectivity import rnet_connected
from netmerge.network_utils.geometry_utils import (
    line_cast,
    line_lengths,
    union_buffer,
    validate_crs,
)

logger = logging.getLogger(__name__)


def rnet_subset(
    target: gpd.GeoDataFrame,
    reference: gpd.GeoDataFrame,
    dist: float = DEFAULT_SUBSET_DIST,
    crop: bool = True,
    min_length: float = 0,
    remove_disconnected: bool = True,
    quad_segs: int = DEFAULT_QUAD_SEGS,
    tolerance: float = ENDPOINT_TOLERANCE_M,
) -> gpd.GeoDataFrame:
    """
    Subset `target` to the features (or parts of features) within `dist` of
    `reference`.

    Parameters
    ----------
    target : GeoDataFrame
        Line network to be subset.
    reference : GeoDataFrame
        Network defining the area of interest.
    dist : float
        Width (m) of the rounded buffer around the union of `reference`.
    crop : bool
        If True, clip every target feature to the buffer and split the
        result into simple lines. If False, keep only features lying
        entirely inside the buffer.
    min_length : float
        Drop features whose (post-crop) length is <= min_length. 0 disables.
    remove_disconnected : bool
        Keep only the largest connected component of the result.
    quad_segs : int
        Buffer arc resolution (segments per quarter circle).
    tolerance : float
        Endpoint snapping tolerance used by the connectivity filter.

    Returns
    -------
    GeoDataFrame
        Subset of `target` with an extra `length_x_original` column holding
        each feature's length before cropping. The index is reset.
    """
    if not dist > 0:
        raise ValueError(f"dist must be positive, got {dist!r}")
    if min_length < 0:
        raise ValueError(f"min_length must be >= 0, got {min_length!r}")
    validate_crs(target, reference)

    subset = target.copy()
    subset[LENGTH_X_ORIGINAL_COL] = line_lengths(subset)
    length_before = subset[LENGTH_X_ORIGINAL_COL].sum()

    buffer_polygon = union_buffer(reference, dist, quad_segs=quad_segs)

    if crop:
        geom_col = subset.geometry.name
        subset[geom_col] = subset.geometry.intersection(buffer_polygon)
        subset = line_cast(subset)
    else:
        subset = subset[subset.geometry.within(buffer_polygon)].reset_index(drop=True)

    if min_length > 0:
        subset = subset[line_lengths(subset) > min_length].reset_index(drop=True)

    if remove_disconnected:
        subset = rnet_connected(subset, tolerance=tolerance).reset_index(drop=True)

    logger.info(
        "Subset target network: %d -> %d features, %.1f -> %.1f m (dist=%.1f, crop=%s)",
        len(target),
        len(subset),
        length_before,
        line_lengths(subset).sum(),
        dist,
        crop,
    )
    return subset
