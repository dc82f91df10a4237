import pytest

from netmerge.conflation.subset import rnet_subset
from netmerge.network_utils.geometry_utils import line_lengths


@pytest.fixture
def reference(make_network):
    return make_network([[(0, 0), (200, 0)]])


def test_crop_trims_to_buffer_and_records_original_length(make_network, reference):
    target = make_network([[(-100, 0), (300, 0)]], osm_id=[7])
    subset = rnet_subset(target, reference, dist=10)

    assert len(subset) == 1
    assert subset["osm_id"].iloc[0] == 7
    # rounded buffer reaches 10 m past each end of the reference
    assert line_lengths(subset).iloc[0] == pytest.approx(220, abs=1e-6)
    assert subset["length_x_original"].iloc[0] == pytest.approx(400)


def test_crop_splits_features_leaving_and_reentering_buffer(make_network):
    reference = make_network([[(0, 0), (100, 0)], [(200, 0), (300, 0)]])
    target = make_network([[(0, 0), (300, 0)]], osm_id=[1])

    subset = rnet_subset(target, reference, dist=5, remove_disconnected=False)
    assert list(subset["osm_id"]) == [1, 1]
    assert line_lengths(subset).sum() == pytest.approx(210, abs=1e-6)


def test_without_crop_keeps_only_features_inside(make_network, reference):
    target = make_network(
        [[(10, 2), (190, 2)], [(-50, 0), (100, 0)], [(0, 500), (100, 500)]],
        osm_id=[1, 2, 3],
    )
    subset = rnet_subset(target, reference, dist=10, crop=False, remove_disconnected=False)
    assert list(subset["osm_id"]) == [1]
    assert line_lengths(subset).iloc[0] == pytest.approx(180)


def test_min_length_drops_short_crop_fragments(make_network, reference):
    target = make_network(
        [[(0, 1), (200, 1)], [(100, -50), (100, 50)]],
        osm_id=[1, 2],
    )
    kept = rnet_subset(target, reference, dist=10, remove_disconnected=False)
    assert sorted(kept["osm_id"]) == [1, 2]

    filtered = rnet_subset(target, reference, dist=10, min_length=25, remove_disconnected=False)
    assert list(filtered["osm_id"]) == [1]


def test_subset_never_increases_length(make_network, reference):
    target = make_network(
        [[(-50, 0), (100, 0)], [(100, 0), (100, 80)], [(100, 0), (250, 3)], [(0, 300), (50, 300)]],
        osm_id=[1, 2, 3, 4],
    )
    original_total = line_lengths(target).sum()

    connected = rnet_subset(target, reference, dist=10)
    loose = rnet_subset(target, reference, dist=10, remove_disconnected=False)

    assert line_lengths(loose).sum() <= original_total
    assert (line_lengths(loose) <= loose["length_x_original"] + 1e-9).all()
    assert len(connected) <= len(loose)


def test_remove_disconnected_drops_isolated_fragments(make_network, reference):
    target = make_network(
        [[(0, 0), (100, 0)], [(100, 0), (200, 0)], [(50, 5), (60, 5)]],
        osm_id=[1, 2, 3],
    )
    subset = rnet_subset(target, reference, dist=10)
    assert sorted(subset["osm_id"]) == [1, 2]


def test_empty_reference_gives_empty_subset(make_network):
    target = make_network([[(0, 0), (100, 0)]], osm_id=[1])
    empty_reference = make_network([]).iloc[0:0]
    subset = rnet_subset(target, empty_reference, dist=10)
    assert subset.empty
    assert "osm_id" in subset.columns


def test_subset_rejects_bad_parameters(make_network, reference):
    target = make_network([[(0, 0), (100, 0)]], osm_id=[1])
    with pytest.raises(ValueError):
        rnet_subset(target, reference, dist=0)
    with pytest.raises(ValueError):
        rnet_subset(target, reference, dist=5, min_length=-1)
    with pytest.raises(ValueError):
        rnet_subset(target.set_crs("EPSG:3857", allow_override=True), reference, dist=5)
