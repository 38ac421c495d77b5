import pandas as pd
import pytest

from cleanpipe.exceptions import ConfigurationError
from cleanpipe.metrics.funnel import FunnelStage, funnel
from cleanpipe.metrics.segmentation import RuleCascade, ScoreBands, rank_scores, rfm_table, score_rfm


@pytest.fixture
def abc_bands() -> ScoreBands:
    return ScoreBands([0, 10, 50, 100], ["A", "B", "C"])


def test_band_lower_bound_is_inclusive(abc_bands):
    assert abc_bands.score(10) == "B"
    assert abc_bands.score(0) == "A"
    assert abc_bands.score(49.99) == "B"
    assert abc_bands.score(50) == "C"


def test_last_band_is_closed_and_out_of_range_is_null(abc_bands):
    assert abc_bands.score(100) == "C"
    assert abc_bands.score(100.5) is None
    assert abc_bands.score(-1) is None
    assert abc_bands.score(None) is None


def test_breakpoints_must_increase():
    with pytest.raises(ConfigurationError):
        ScoreBands([0, 50, 10], ["A", "B"])
    with pytest.raises(ConfigurationError):
        ScoreBands([0, 10, 50], ["A"])


def test_quantile_bands_follow_the_data():
    bands = ScoreBands.from_quantiles(range(1, 101), n=4)
    assert bands.score(1) == 1
    assert bands.score(100) == 4

    reversed_bands = ScoreBands.from_quantiles(range(1, 101), n=4, ascending=False)
    assert reversed_bands.score(1) == 4


def test_rule_cascade_first_match_wins():
    df = pd.DataFrame({"r": [5, 5, 1], "f": [5, 1, 1]})
    cascade = RuleCascade(
        [
            ({"all": [{"field": "r", "op": "ge", "value": 4}, {"field": "f", "op": "ge", "value": 4}]}, "Champions"),
            ({"field": "r", "op": "ge", "value": 4}, "Potential"),
            ({"field": "f", "op": "ge", "value": 4}, "Loyal"),
        ],
        default="Other",
    )
    assert cascade.evaluate(df).tolist() == ["Champions", "Potential", "Other"]


def test_rfm_scores_and_segments():
    orders = pd.DataFrame({
        "customer_id": ["c1", "c2", "c1", "c3", "c2"],
        "order_id": ["o1", "o2", "o3", "o4", "o5"],
        "order_placed_at": pd.to_datetime([
            "2023-01-05 12:00", "2023-01-10 19:00", "2023-02-01 13:00", "2023-02-14 20:00", "2023-03-03 09:00",
        ]),
        "total_price": [500.0, 300.0, 200.0, 800.0, 150.0],
    })
    rfm = rfm_table(orders, "customer_id", "order_placed_at", "total_price", order_id="order_id")
    assert rfm["recency_days"].tolist() == [29, 0, 16]
    assert rfm["frequency"].tolist() == [2, 2, 1]

    scored = score_rfm(rfm).set_index("customer_id")
    assert scored.loc["c2", "r_score"] == 5
    assert scored.loc["c1", "r_score"] == 1
    assert scored.loc["c2", "segment"] == "Potential Loyalists"
    assert scored.loc["c1", "segment"] == "At Risk"


def test_funnel_counts_never_increase():
    df = pd.DataFrame({
        "placed": [1, 1, 1, 1],
        "accepted": [1, None, 1, 1],
        "delivered": [1, 1, None, 1],
    })
    stages = [
        FunnelStage("placed", {"field": "placed", "op": "not_null"}),
        ("accepted", {"field": "accepted", "op": "not_null"}),
        ("delivered", {"field": "delivered", "op": "not_null"}),
    ]
    result = funnel(df, stages)

    assert result["count"].tolist() == [4, 3, 2]
    assert result["drop_off"].tolist() == [0, 1, 1]
    assert pd.isna(result["step_conversion_pct"].iloc[0])
    assert result["step_conversion_pct"].iloc[2] == 66.67
    assert result["overall_conversion_pct"].iloc[2] == 50.0


def test_funnel_by_dimension():
    df = pd.DataFrame({"city": ["a", "a", "b"], "ok": [1, None, None]})
    result = funnel(df, [("all", {"always": True}), ("ok", {"field": "ok", "op": "not_null"})], by=["city"])

    b = result[result["city"] == "b"]
    assert b["count"].tolist() == [1, 0]
    assert b["step_conversion_pct"].iloc[1] == 0.0


def test_rank_scores_span_full_scale_on_skewed_data():
    frequency = pd.Series([1, 1, 1, 1, 1, 1, 1, 2, 3, 8])
    scores = rank_scores(frequency, 5)

    assert scores.tolist()[:7] == [1] * 7
    assert scores.iloc[9] == 5
    assert scores.iloc[8] >= scores.iloc[7] > 1


def test_rank_scores_recency_and_nulls():
    recency = pd.Series([30, 0, None, 10], dtype="Int64")
    scores = rank_scores(recency, 5, ascending=False)

    assert scores.iloc[1] == 5
    assert scores.iloc[0] == 1
    assert pd.isna(scores.iloc[2])


def test_heavy_buyer_is_champion_when_most_customers_order_once():
    rfm = pd.DataFrame({
        "customer_id": [f"c{i}" for i in range(10)],
        "recency_days": pd.array([60, 55, 50, 45, 40, 35, 30, 10, 5, 0], dtype="Int64"),
        "frequency": pd.array([1, 1, 1, 1, 1, 1, 1, 2, 3, 8], dtype="Int64"),
        "monetary": pd.array([10.0, 20.0, 30.0, 40.0, 50.0, 60.0, 70.0, 200.0, 300.0, 900.0], dtype="Float64"),
    })
    scored = score_rfm(rfm).set_index("customer_id")

    assert scored.loc["c9", "f_score"] == 5
    assert scored.loc["c9", "segment"] == "Champions"
    assert (scored["f_score"].iloc[:7] == 1).all()
