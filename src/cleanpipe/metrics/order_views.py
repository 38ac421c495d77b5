# Business views over the cleaned food-delivery orders table
# Derived features used here: order_year, order_month, order_period,
# delivery_minutes, fee_type (see the orders section of config.yaml)
import pandas as pd

from .aggregation import Measure, Ratio, aggregate, rounded, safe_divide
from .funnel import FUNNEL_COLUMNS, FunnelStage, funnel
from .registry import REGISTRY
from .segmentation import rfm_table, score_rfm
from .windows import period_delta, rolling_total, top_n_per_partition

DATASET = "orders"

# share of (price - delivery fee) assumed to be kept by the platform
PLATFORM_TAKE_RATE = 0.30

DELIVERED = {"field": "order_status", "op": "eq", "value": "delivered"}

ORDER_FUNNEL = [
    FunnelStage("placed", {"field": "order_id", "op": "not_null"}),
    FunnelStage("accepted", {"field": "accepted_at", "op": "not_null"}),
    FunnelStage("picked_up", {"field": "picked_up_at", "op": "not_null"}),
    FunnelStage("delivered", DELIVERED),
]

ROLLUP_COLUMNS = ["orders", "delivered_orders", "revenue", "avg_order_value", "delivery_rate_pct", "avg_delivery_minutes"]

RFM_COLUMNS = [
    "customer_id", "recency_days", "frequency", "monetary",
    "r_score", "f_score", "m_score", "rfm_score", "segment",
]


def _rollup(df: pd.DataFrame, dimension: str, view: str) -> pd.DataFrame:
    totals = aggregate(
        df, [dimension],
        [
            Measure("orders", "count"),
            Measure("delivered_orders", "count", where=DELIVERED),
            Measure("revenue", "sum", "total_price"),
            Measure("avg_order_value", "avg", "total_price"),
            Measure("avg_delivery_minutes", "avg", "delivery_minutes"),
        ],
        ratios=[Ratio("delivery_rate_pct", "delivered_orders", "orders", scale=100, round_to=2)],
        view=view,
    )
    totals["avg_order_value"] = rounded(totals["avg_order_value"], 2)
    totals["avg_delivery_minutes"] = rounded(totals["avg_delivery_minutes"], 2)
    ordered = totals.sort_values("revenue", ascending=False, kind="mergesort").reset_index(drop=True)
    return ordered[[dimension] + ROLLUP_COLUMNS]


@REGISTRY.view(
    "monthly_trend", DATASET,
    [
        "order_year", "order_month", "order_count", "revenue", "inferred_platform_revenue_per_order",
        "mom_orders_pct", "mom_revenue_pct", "mom_platform_revenue_pct",
        "rolling_3m_orders", "rolling_3m_revenue", "rolling_3m_platform_revenue",
    ],
    "Month-over-month change and three-month rolling totals",
)
def monthly_trend(df: pd.DataFrame) -> pd.DataFrame:
    view = "monthly_trend"
    orders = df.loc[df["order_year"].notna() & df["order_month"].notna()]
    orders = orders.assign(
        platform_revenue=PLATFORM_TAKE_RATE * (orders["total_price"] - orders["delivery_fee_paid"])
    )
    monthly = aggregate(
        orders, ["order_year", "order_month"],
        [
            Measure("order_count", "count_nonnull", "order_id"),
            Measure("revenue", "sum", "total_price"),
            Measure("inferred_platform_revenue_per_order", "avg", "platform_revenue"),
        ],
        view=view,
    )
    monthly["inferred_platform_revenue_per_order"] = rounded(monthly["inferred_platform_revenue_per_order"], 2)

    period = ["order_year", "order_month"]
    monthly = period_delta(monthly, "order_count", period, name="mom_orders_pct", round_to=2, view=view)
    monthly = period_delta(monthly, "revenue", period, name="mom_revenue_pct", round_to=2, view=view)
    monthly = period_delta(
        monthly, "inferred_platform_revenue_per_order", period,
        name="mom_platform_revenue_pct", round_to=2, view=view,
    )
    monthly = rolling_total(monthly, "order_count", period, window=3, name="rolling_3m_orders", view=view)
    monthly = rolling_total(monthly, "revenue", period, window=3, name="rolling_3m_revenue", view=view)
    return rolling_total(
        monthly, "inferred_platform_revenue_per_order", period, window=3,
        name="rolling_3m_platform_revenue", view=view,
    )


@REGISTRY.view("channel_rollup", DATASET, ["channel"] + ROLLUP_COLUMNS)
def channel_rollup(df: pd.DataFrame) -> pd.DataFrame:
    return _rollup(df, "channel", "channel_rollup")


@REGISTRY.view("city_rollup", DATASET, ["city"] + ROLLUP_COLUMNS)
def city_rollup(df: pd.DataFrame) -> pd.DataFrame:
    return _rollup(df, "city", "city_rollup")


@REGISTRY.view("device_rollup", DATASET, ["device_type"] + ROLLUP_COLUMNS)
def device_rollup(df: pd.DataFrame) -> pd.DataFrame:
    return _rollup(df, "device_type", "device_rollup")


@REGISTRY.view(
    "delivery_fee_mix", DATASET,
    ["fee_type", "orders", "revenue", "avg_order_value", "share_of_orders_pct"],
    "Paid vs free delivery orders",
)
def delivery_fee_mix(df: pd.DataFrame) -> pd.DataFrame:
    mix = aggregate(
        df, ["fee_type"],
        [
            Measure("orders", "count"),
            Measure("revenue", "sum", "total_price"),
            Measure("avg_order_value", "avg", "total_price"),
        ],
        categories={"fee_type": ["paid", "free"]},
        view="delivery_fee_mix",
    )
    mix["avg_order_value"] = rounded(mix["avg_order_value"], 2)
    mix["share_of_orders_pct"] = safe_divide(mix["orders"] * 100, int(mix["orders"].sum())).round(2)
    return mix


@REGISTRY.view("order_funnel", DATASET, FUNNEL_COLUMNS, "placed -> accepted -> picked up -> delivered")
def order_funnel(df: pd.DataFrame) -> pd.DataFrame:
    return funnel(df, ORDER_FUNNEL, view="order_funnel")


@REGISTRY.view("rfm_customers", DATASET, RFM_COLUMNS, "Recency / frequency / monetary scores per customer")
def rfm_customers(df: pd.DataFrame) -> pd.DataFrame:
    rfm = rfm_table(df, "customer_id", "order_placed_at", "total_price", order_id="order_id", view="rfm_customers")
    return score_rfm(rfm)[RFM_COLUMNS]


@REGISTRY.view("rfm_segments", DATASET, ["segment", "customers", "revenue", "avg_monetary"])
def rfm_segments(df: pd.DataFrame) -> pd.DataFrame:
    customers = rfm_customers(df)
    segments = aggregate(
        customers, ["segment"],
        [
            Measure("customers", "count"),
            Measure("revenue", "sum", "monetary"),
            Measure("avg_monetary", "avg", "monetary"),
        ],
        view="rfm_segments",
    )
    segments["avg_monetary"] = rounded(segments["avg_monetary"], 2)
    return segments.sort_values("revenue", ascending=False, kind="mergesort").reset_index(drop=True)


@REGISTRY.view(
    "top_cities_per_month", DATASET,
    ["order_period", "city", "revenue", "rank"],
    "Three highest-revenue cities per month",
)
def top_cities_per_month(df: pd.DataFrame) -> pd.DataFrame:
    monthly = aggregate(
        df.loc[df["order_period"].notna()], ["order_period", "city"],
        [Measure("revenue", "sum", "total_price")],
        view="top_cities_per_month",
    )
    return top_n_per_partition(monthly, "revenue", 3, partition_by="order_period", view="top_cities_per_month")
