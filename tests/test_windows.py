import pandas as pd
import pytest

from cleanpipe.exceptions import MetricComputationError
from cleanpipe.metrics.windows import dense_rank, period_delta, rolling_total, running_total, top_n_per_partition


def test_dense_rank_ties_share_rank_without_gaps():
    df = pd.DataFrame({"company": list("abcde"), "total": [100, 100, 90, 80, None]})
    ranked = dense_rank(df, "total")

    assert ranked["rank"].tolist()[:4] == [1, 1, 2, 3]
    assert pd.isna(ranked["rank"].iloc[4])


def test_dense_rank_per_partition():
    df = pd.DataFrame({
        "year": [2022, 2022, 2022, 2023, 2023],
        "total": [400, 100, 400, 200, 30],
    })
    ranked = dense_rank(df, "total", partition_by="year")

    assert ranked.loc[ranked["year"] == 2022, "rank"].tolist() == [1, 1, 2]
    assert ranked.loc[ranked["year"] == 2023, "rank"].tolist() == [1, 2]


def test_top_n_per_partition_keeps_ties():
    df = pd.DataFrame({"year": [1, 1, 1, 1], "total": [5, 5, 4, 3]})
    top = top_n_per_partition(df, "total", 2, partition_by="year")
    assert top["total"].tolist() == [5, 5, 4]


def test_rolling_three_period_window_is_clamped():
    df = pd.DataFrame({"period": ["2023-03", "2023-01", "2023-02", "2023-05", "2023-04"],
                       "value": [3, 1, 2, 5, 4]})
    rolled = rolling_total(df, "value", "period", window=3)

    assert rolled["period"].tolist() == ["2023-01", "2023-02", "2023-03", "2023-04", "2023-05"]
    assert rolled["rolling_3_value"].tolist() == [1.0, 3.0, 6.0, 9.0, 12.0]


def test_running_total_skips_nulls():
    df = pd.DataFrame({"month": [1, 2, 3, 4], "value": [None, 5.0, None, 10.0]})
    running = running_total(df, "value", "month", name="total")

    assert pd.isna(running["total"].iloc[0])
    assert running["total"].tolist()[1:] == [5.0, 5.0, 15.0]


def test_period_delta_first_row_null_second_row_pct_change():
    df = pd.DataFrame({"month": [1, 2, 3, 4], "value": [100.0, 150.0, 0.0, 50.0]})
    delta = period_delta(df, "value", "month")["value_pct_change"]

    assert pd.isna(delta.iloc[0])
    assert delta.iloc[1] == (150.0 - 100.0) * 100 / 100.0
    assert delta.iloc[2] == -100.0
    # zero predecessor is guarded to null
    assert pd.isna(delta.iloc[3])


def test_period_delta_restarts_per_partition():
    df = pd.DataFrame({"city": ["a", "a", "b", "b"], "month": [1, 2, 1, 2], "value": [10.0, 20.0, 4.0, 2.0]})
    delta = period_delta(df, "value", "month", partition_by="city")

    assert pd.isna(delta["value_pct_change"].iloc[0])
    assert delta["value_pct_change"].iloc[1] == 100.0
    assert pd.isna(delta["value_pct_change"].iloc[2])
    assert delta["value_pct_change"].iloc[3] == -50.0


def test_window_input_is_not_mutated():
    df = pd.DataFrame({"month": [2, 1], "value": [1.0, 2.0]})
    before = df.copy()
    rolling_total(df, "value", "month")
    pd.testing.assert_frame_equal(df, before)


def test_invalid_window():
    with pytest.raises(MetricComputationError):
        rolling_total(pd.DataFrame({"m": [1], "v": [1]}), "v", "m", window=0)
