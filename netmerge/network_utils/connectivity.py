"""
Connectivity filtering for line networks.

Features are connected when they share an endpoint. Endpoints closer than
`tolerance` to each other count as the same node; closeness chains, so
A-B and B-C within tolerance put A, B and C on one node.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, List, Set

import geopandas as gpd
import networkx as nx
from shapely.geometry import Point
from shapely.strtree import STRtree

from netmerge.constants import ENDPOINT_TOLERANCE_M
from netmerge.network_utils.geometry_utils import cast_to_simple_lines

logger = logging.getLogger(__name__)


def _endpoint_nodes(endpoints: List[Point], tolerance: float) -> List[int]:
    """Node id per endpoint, merging endpoints within `tolerance` of each other."""
    near = nx.Graph()
    near.add_nodes_from(range(len(endpoints)))
    if endpoints:
        tree = STRtree(endpoints)
        left, right = tree.query(endpoints, predicate="dwithin", distance=tolerance)
        near.add_edges_from(zip(left.tolist(), right.tolist()))

    node_of = [0] * len(endpoints)
    for node, members in enumerate(nx.connected_components(near)):
        for i in members:
            node_of[i] = node
    return node_of


def endpoint_graph(
    frame: gpd.GeoDataFrame, tolerance: float = ENDPOINT_TOLERANCE_M
) -> nx.MultiGraph:
    """
    Graph with merged line endpoints as nodes and features as edges.

    Each edge carries `row`, the positional index of its feature. Multi-part
    features contribute one edge per part.
    """
    if not tolerance > 0:
        raise ValueError(f"tolerance must be positive, got {tolerance!r}")

    rows = []
    endpoints = []
    for pos, geom in enumerate(frame.geometry):
        for part in cast_to_simple_lines(geom):
            rows.append(pos)
            endpoints.append(Point(part.coords[0]))
            endpoints.append(Point(part.coords[-1]))

    node_of = _endpoint_nodes(endpoints, tolerance)

    G = nx.MultiGraph()
    for k, pos in enumerate(rows):
        G.add_edge(node_of[2 * k], node_of[2 * k + 1], row=pos)
    return G


def rnet_connected(
    frame: gpd.GeoDataFrame, tolerance: float = ENDPOINT_TOLERANCE_M
) -> gpd.GeoDataFrame:
    """
    Keep only the features of the largest connected component.

    "Largest" counts features, not nodes. Ties go to the first component
    found. Features without a line geometry are dropped.
    """
    if frame.empty:
        return frame.copy()

    G = endpoint_graph(frame, tolerance=tolerance)
    if G.number_of_edges() == 0:
        return frame.iloc[0:0].copy()

    component_of: Dict[int, int] = {}
    for i, nodes in enumerate(nx.connected_components(G)):
        for node in nodes:
            component_of[node] = i

    rows_by_component: Dict[int, Set[int]] = defaultdict(set)
    for u, _, data in G.edges(data=True):
        rows_by_component[component_of[u]].add(data["row"])

    largest = max(rows_by_component.values(), key=len)
    logger.info(
        "Keeping %d of %d features in the largest of %d connected components",
        len(largest),
        len(frame),
        len(rows_by_component),
    )
    return frame.iloc[sorted(largest)].copy()
