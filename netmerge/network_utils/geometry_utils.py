# geometry_utils.py
"""
Thin wrappers over the shapely / geopandas primitives used by the
conflation pipeline: CRS checks, buffers, unions, centroids, lengths and
casting multi-part lines back to simple LineStrings.

All distances are in the units of the (projected, metric) CRS shared by the
networks being compared.
"""

from __future__ import annotations

import logging
from typing import List, Sequence, Union

import geopandas as gpd
import numpy as np
import pandas as pd
import shapely
from shapely.geometry import LineString
from shapely.geometry.base import BaseGeometry

from netmerge.constants import BUFFER_STYLES, DEFAULT_QUAD_SEGS

logger = logging.getLogger(__name__)

GeoLike = Union[gpd.GeoDataFrame, gpd.GeoSeries]


# ---------------------------------------------------------------------------
# CRS handling
# ---------------------------------------------------------------------------

def validate_crs(*frames: GeoLike) -> None:
    """
    Check that all frames share one projected CRS.

    Raises ValueError if any frame has no CRS, if the CRSs differ, or if the
    shared CRS is geographic (distances would be in degrees).
    """
    crs = None
    for i, frame in enumerate(frames):
        if frame.crs is None:
            raise ValueError(
                f"Network #{i} has no CRS defined; set a projected (metric) CRS first."
            )
        if crs is None:
            crs = frame.crs
        elif frame.crs != crs:
            raise ValueError(
                f"CRS mismatch: {crs.to_string()} vs {frame.crs.to_string()}. "
                "Reproject the networks to a common projected CRS."
            )

    if crs is not None and crs.is_geographic:
        raise ValueError(
            f"CRS {crs.to_string()} is geographic; buffer distances must be in metres. "
            "Reproject to a projected CRS (see to_metric_crs)."
        )


def to_metric_crs(frame: GeoLike) -> GeoLike:
    """Reproject a geographic frame to its estimated UTM zone."""
    if frame.crs is None:
        raise ValueError("Cannot reproject a frame without a CRS.")
    if not frame.crs.is_geographic or frame.empty:
        return frame
    utm_crs = frame.estimate_utm_crs()
    logger.info("Reprojecting from %s to %s", frame.crs.to_string(), utm_crs.to_string())
    return frame.to_crs(utm_crs)


# ---------------------------------------------------------------------------
# Vectorised primitives
# ---------------------------------------------------------------------------

def _as_geoseries(geoms: GeoLike) -> gpd.GeoSeries:
    if isinstance(geoms, gpd.GeoDataFrame):
        return geoms.geometry
    if isinstance(geoms, gpd.GeoSeries):
        return geoms
    raise TypeError(f"Expected a GeoDataFrame or GeoSeries, got {type(geoms)}")


def _check_dist(dist: float) -> None:
    if not dist > 0:
        raise ValueError(f"Buffer distance must be positive, got {dist!r}")


def line_lengths(geoms: GeoLike) -> pd.Series:
    """Planar length of every feature as floats."""
    return _as_geoseries(geoms).length.astype(float)


def line_centroids(frame: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
    """Copy of `frame` with each geometry replaced by its centroid."""
    out = frame.copy()
    out[out.geometry.name] = out.geometry.centroid
    return out


def buffer_lines(
    geoms: GeoLike,
    dist: float,
    cap_style: str = "flat",
    quad_segs: int = DEFAULT_QUAD_SEGS,
) -> gpd.GeoSeries:
    """
    Buffer every feature independently.

    Parameters
    ----------
    geoms : GeoDataFrame or GeoSeries
        Line features in a projected CRS.
    dist : float
        Buffer width in CRS units (m).
    cap_style : {'flat', 'round', 'square'}
        End cap. 'flat' stops the buffer at the line ends so it does not
        reach past dead ends.
    quad_segs : int
        Segments used to approximate a quarter circle.

    Returns
    -------
    GeoSeries
        Buffer polygons, indexed like the input.
    """
    _check_dist(dist)
    if cap_style not in BUFFER_STYLES:
        raise ValueError(f"Unknown buffer style {cap_style!r}; expected one of {BUFFER_STYLES}")

    series = _as_geoseries(geoms)
    buffered = shapely.buffer(
        series.to_numpy(), dist, quad_segs=quad_segs, cap_style=cap_style
    )
    return gpd.GeoSeries(buffered, index=series.index, crs=series.crs)


def union_buffer(
    geoms: GeoLike,
    dist: float,
    quad_segs: int = DEFAULT_QUAD_SEGS,
) -> BaseGeometry:
    """Union all geometries, then apply one rounded buffer of width `dist`."""
    _check_dist(dist)
    series = _as_geoseries(geoms)
    merged = shapely.union_all(series.to_numpy())
    return shapely.buffer(merged, dist, quad_segs=quad_segs)


# ---------------------------------------------------------------------------
# Casting multi-part geometries to simple lines
# ---------------------------------------------------------------------------

def cast_to_simple_lines(geometry: BaseGeometry | None) -> List[LineString]:
    """
    Split a (multi-part) geometry into its simple LineString parts.

    Vertices are kept as they are: parts are neither merged nor simplified.
    Points, empty parts and zero-length parts (collapsed crop results) are
    dropped.
    """
    if geometry is None or geometry.is_empty:
        return []

    if isinstance(geometry, LineString):
        parts = [geometry]
    elif hasattr(geometry, "geoms"):
        parts = []
        for part in geometry.geoms:
            parts.extend(cast_to_simple_lines(part))
    else:
        return []

    return [p for p in parts if not p.is_empty and p.length > 0]


def explode_line_parts(
    frame: gpd.GeoDataFrame,
    parts: Sequence[List[LineString]],
) -> gpd.GeoDataFrame:
    """
    Build a frame with one row per line in `parts`, repeating the attributes
    of the row each list belongs to. Rows with an empty list are dropped.
    """
    geom_col = frame.geometry.name
    attrs = pd.DataFrame(frame.drop(columns=geom_col))
    attrs["_parts"] = pd.Series(list(parts), index=frame.index, dtype=object)
    attrs = attrs.explode("_parts")
    attrs = attrs[attrs["_parts"].notna()].reset_index(drop=True)

    geometry = gpd.GeoSeries(attrs.pop("_parts").tolist(), index=attrs.index, crs=frame.crs)
    out = gpd.GeoDataFrame(attrs, geometry=geometry)
    if geom_col != "geometry":
        out = out.rename_geometry(geom_col)
    return out


def line_cast(frame: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
    """Frame-level cast_to_simple_lines; the index is reset."""
    parts = [cast_to_simple_lines(g) for g in frame.geometry]
    out = explode_line_parts(frame, parts)
    dropped = int(np.sum([len(p) == 0 for p in parts]))
    if dropped:
        logger.debug("line_cast dropped %d features without a line part", dropped)
    return out
