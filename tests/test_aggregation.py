import numpy as np
import pandas as pd
import pytest

from netmerge.conflation.aggregation import (
    Reduce,
    WeightedMean,
    WeightedSum,
    aggregate_columns,
    as_aggregation,
    resolve_funs,
)


@pytest.fixture
def joined_table():
    return pd.DataFrame(
        {
            "osm_id": [1, 1, 2, 3],
            "flow": [10.0, 20.0, 5.0, np.nan],
            "quietness": [1.0, 3.0, 50.0, np.nan],
            "length_y": [2.0, 3.0, 4.0, np.nan],
        }
    )


def test_weighted_sum_uses_segment_lengths(joined_table):
    result = WeightedSum().reduce(joined_table, "osm_id", "flow")
    assert result[1] == pytest.approx(10 * 2 + 20 * 3)
    assert result[2] == pytest.approx(20)
    assert np.isnan(result[3])


def test_weighted_sum_without_sum_flows_is_plain_sum(joined_table):
    result = WeightedSum().reduce(joined_table, "osm_id", "flow", sum_flows=False)
    assert result[1] == 30
    assert np.isnan(result[3])


def test_weighted_mean(joined_table):
    result = WeightedMean().reduce(joined_table, "osm_id", "quietness")
    assert result[1] == pytest.approx((1 * 2 + 3 * 3) / 5)
    assert result[2] == pytest.approx(50)
    assert np.isnan(result[3])


def test_reduce_ignores_lengths(joined_table):
    assert Reduce("mean").reduce(joined_table, "osm_id", "quietness")[1] == 2
    assert Reduce(max).reduce(joined_table, "osm_id", "quietness")[1] == 3
    plain_sum = Reduce("sum").reduce(joined_table, "osm_id", "flow")
    assert plain_sum[1] == 30
    assert np.isnan(plain_sum[3])


def test_aggregate_columns_combines_by_key(joined_table):
    table = aggregate_columns(
        joined_table, "osm_id", {"flow": WeightedSum(), "quietness": Reduce("mean")}
    )
    assert table.index.name == "osm_id"
    assert list(table.columns) == ["flow", "quietness"]
    assert table.loc[1].tolist() == pytest.approx([80, 2])
    assert table.loc[3].isna().all()


def test_as_aggregation():
    assert as_aggregation("sum") == WeightedSum()
    assert as_aggregation("weighted_mean") == WeightedMean()
    assert as_aggregation("median") == Reduce("median")
    assert as_aggregation(sum) == WeightedSum()
    assert as_aggregation(np.sum) == WeightedSum()
    assert isinstance(as_aggregation(np.max), Reduce)
    assert as_aggregation(WeightedMean()) == WeightedMean()
    assert WeightedSum().additive and not Reduce("sum").additive
    with pytest.raises(TypeError):
        as_aggregation(3)


def test_resolve_funs_defaults_to_numeric_columns(make_network):
    source = make_network(
        [[(0, 0), (1, 0)]], flow=[1.0], count=[3], name=["a"], length_y=[1.0]
    )
    assert resolve_funs(source) == {"flow": WeightedSum(), "count": WeightedSum()}


def test_resolve_funs_validates_columns(make_network):
    source = make_network([[(0, 0), (1, 0)]], flow=[1.0], name=["a"])

    assert resolve_funs(source, {"flow": "sum", "name": "first"}) == {
        "flow": WeightedSum(),
        "name": Reduce("first"),
    }
    with pytest.raises(KeyError):
        resolve_funs(source, {"missing": "sum"})
    with pytest.raises(KeyError):
        resolve_funs(source, {"geometry": "first"})
    with pytest.raises(TypeError):
        resolve_funs(source, {"name": "sum"})
    with pytest.raises(ValueError):
        resolve_funs(source, {})
    with pytest.raises(ValueError):
        resolve_funs(source[["name", "geometry"]])
