import math

import pytest
from shapely.geometry import LineString, MultiLineString

from netmerge.network_utils.geometry_utils import line_lengths
from netmerge.network_utils.line_segments import line_segment, split_line


@pytest.mark.parametrize(
    "coords, segment_length",
    [
        ([(0, 0), (100, 0)], 30),
        ([(0, 0), (50, 50), (120, 10)], 7.5),
        ([(0, 0), (3, 4)], 5),
    ],
)
def test_split_line_conserves_length(coords, segment_length):
    line = LineString(coords)
    pieces = split_line(line, segment_length)

    assert sum(p.length for p in pieces) == pytest.approx(line.length)
    assert len(pieces) == math.ceil(line.length / segment_length)
    assert all(p.length <= segment_length + 1e-9 for p in pieces)
    assert pieces[0].coords[0] == pytest.approx(line.coords[0])
    assert pieces[-1].coords[-1] == pytest.approx(line.coords[-1])


def test_split_line_short_line_unchanged():
    line = LineString([(0, 0), (4, 0)])
    assert split_line(line, 10) == [line]


def test_split_line_rejects_non_positive_length():
    with pytest.raises(ValueError):
        split_line(LineString([(0, 0), (4, 0)]), 0)


def test_line_segment_repeats_attributes(make_network):
    net = make_network([[(0, 0), (100, 0)], [(0, 10), (20, 10)]], flow=[5.0, 7.0])
    segments = line_segment(net, 25)

    assert list(segments["flow"]) == [5.0] * 4 + [7.0]
    assert line_lengths(segments).sum() == pytest.approx(120)
    assert segments.crs == net.crs


def test_line_segment_handles_multilines(make_network):
    net = make_network([[(0, 0), (1, 0)]], flow=[1.0])
    net.loc[0, "geometry"] = MultiLineString([[(0, 0), (10, 0)], [(20, 0), (30, 0)]])

    segments = line_segment(net, 5)
    assert len(segments) == 4
    assert line_lengths(segments).sum() == pytest.approx(20)


def test_line_segment_rejects_zero(make_network):
    with pytest.raises(ValueError):
        line_segment(make_network([[(0, 0), (1, 0)]]), 0)
