import geopandas as gpd
import pytest
from shapely.geometry import LineString

# British National Grid: projected, metres
CRS = "EPSG:27700"


@pytest.fixture
def make_network():
    """Factory: make_network([[(x, y), ...], ...], col=[...]) -> GeoDataFrame."""

    def _make(lines, crs=CRS, **columns):
        geometry = [LineString(coords) if coords is not None else None for coords in lines]
        return gpd.GeoDataFrame(dict(columns), geometry=geometry, crs=crs)

    return _make


@pytest.fixture
def parallel_target(make_network):
    # two features 100 m apart
    return make_network(
        [[(0, 0), (200, 0)], [(0, 100), (200, 100)]],
        osm_id=[1, 2],
    )


@pytest.fixture
def flow_source(make_network):
    return make_network([[(0, 0), (200, 0)]], flow=[10.0])
