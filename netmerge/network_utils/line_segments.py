"""
Split line features into sub-lines of bounded length.

Each line of length L is cut into ceil(L / segment_length) pieces of equal
length, so no piece is longer than `segment_length` and the pieces add up
to the original line.
"""

from __future__ import annotations

import logging
import math
from typing import List

import geopandas as gpd
from shapely.geometry import LineString
from shapely.ops import substring
from tqdm import tqdm

from netmerge.network_utils.geometry_utils import explode_line_parts, line_cast

logger = logging.getLogger(__name__)


def split_line(line: LineString, segment_length: float) -> List[LineString]:
    """Cut `line` into equal pieces no longer than `segment_length`."""
    if not segment_length > 0:
        raise ValueError(f"segment_length must be positive, got {segment_length!r}")

    length = line.length
    cuts = int(math.ceil(length / segment_length))
    if cuts <= 1:
        return [line]

    step = length / cuts
    pieces = [substring(line, i * step, (i + 1) * step) for i in range(cuts - 1)]
    # last piece ends exactly at the line's end point
    pieces.append(substring(line, (cuts - 1) * step, length))
    return pieces


def line_segment(frame: gpd.GeoDataFrame, segment_length: float) -> gpd.GeoDataFrame:
    """
    Split every feature of `frame` into sub-lines of at most `segment_length`.

    Multi-part geometries are cast to simple lines first. Attributes of each
    feature are repeated on all of its pieces.
    """
    if not segment_length > 0:
        raise ValueError(f"segment_length must be positive, got {segment_length!r}")

    lines = line_cast(frame)
    parts = [
        split_line(geom, segment_length)
        for geom in tqdm(lines.geometry, total=len(lines), desc="Segmenting lines")
    ]
    segments = explode_line_parts(lines, parts)
    logger.info(
        "Split %d lines into %d segments (segment_length=%.1f)",
        len(lines),
        len(segments),
        segment_length,
    )
    return segments
