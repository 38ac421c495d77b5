# Exploratory views over the cleaned layoffs table
# (company, location, industry, total_laid_off, percentage_laid_off, date,
#  stage, country, funds_raised_millions + date_year / date_period features)
from typing import Optional

import pandas as pd

from .aggregation import Measure, aggregate
from .registry import REGISTRY
from .segmentation import RuleCascade
from .windows import running_total, top_n_per_partition

DATASET = "layoffs"

SEVERITY_BANDS = ["Below 10%", "Between 10-25%", "Between 25-50%", "50-99%", "100%", "Unknown"]

# null percentage falls to "Unknown" (the cascade default), not into the "100%" band
SEVERITY_RULES = [
    ({"field": "percentage_laid_off", "op": "lt", "value": 10}, "Below 10%"),
    ({"field": "percentage_laid_off", "op": "lt", "value": 25}, "Between 10-25%"),
    ({"field": "percentage_laid_off", "op": "lt", "value": 50}, "Between 25-50%"),
    ({"field": "percentage_laid_off", "op": "lt", "value": 100}, "50-99%"),
    ({"field": "percentage_laid_off", "op": "ge", "value": 100}, "100%"),
]

_EVENTS_AND_TOTAL = [
    Measure("layoff_events", "count"),
    Measure("total_layoffs", "sum", "total_laid_off"),
]


def _largest_first(df: pd.DataFrame, column: str, limit: Optional[int] = None) -> pd.DataFrame:
    ordered = df.sort_values(column, ascending=False, kind="mergesort", na_position="last")
    if limit is not None:
        ordered = ordered.head(limit)
    return ordered.reset_index(drop=True)


def _rollup(df: pd.DataFrame, dimension: str, view: str, limit: Optional[int] = None) -> pd.DataFrame:
    totals = aggregate(df, [dimension], _EVENTS_AND_TOTAL, view=view)
    return _largest_first(totals, "total_layoffs", limit)


@REGISTRY.view(
    "top_layoff_events", DATASET,
    ["company", "country", "total_laid_off", "percentage_laid_off", "date"],
    "Ten largest single layoff events",
)
def top_layoff_events(df: pd.DataFrame) -> pd.DataFrame:
    columns = ["company", "country", "total_laid_off", "percentage_laid_off", "date"]
    return _largest_first(df[columns], "total_laid_off", 10)


@REGISTRY.view("layoffs_by_year", DATASET, ["year", "total_layoffs", "events"])
def layoffs_by_year(df: pd.DataFrame) -> pd.DataFrame:
    yearly = aggregate(
        df, ["date_year"],
        [Measure("total_layoffs", "sum", "total_laid_off"), Measure("events", "count")],
        view="layoffs_by_year",
    )
    return yearly.rename(columns={"date_year": "year"})


@REGISTRY.view(
    "monthly_rolling_layoffs", DATASET,
    ["month", "monthly_total", "rolling_total", "events"],
    "Monthly layoffs with a running total since the first month",
)
def monthly_rolling_layoffs(df: pd.DataFrame) -> pd.DataFrame:
    # rows without a date belong to no month
    dated = df.loc[df["date_period"].notna()]
    monthly = aggregate(
        dated, ["date_period"],
        [Measure("monthly_total", "sum", "total_laid_off"), Measure("events", "count")],
        view="monthly_rolling_layoffs",
    ).rename(columns={"date_period": "month"})
    return running_total(monthly, "monthly_total", "month", name="rolling_total", view="monthly_rolling_layoffs")


@REGISTRY.view("layoffs_by_company", DATASET, ["company", "layoff_events", "total_layoffs"])
def layoffs_by_company(df: pd.DataFrame) -> pd.DataFrame:
    return _rollup(df, "company", "layoffs_by_company", limit=10)


@REGISTRY.view("layoffs_by_country", DATASET, ["country", "layoff_events", "total_layoffs"])
def layoffs_by_country(df: pd.DataFrame) -> pd.DataFrame:
    return _rollup(df, "country", "layoffs_by_country", limit=10)


@REGISTRY.view("layoffs_by_industry", DATASET, ["industry", "layoff_events", "total_layoffs"])
def layoffs_by_industry(df: pd.DataFrame) -> pd.DataFrame:
    return _rollup(df, "industry", "layoffs_by_industry")


@REGISTRY.view("layoffs_by_stage", DATASET, ["stage", "layoff_events", "total_layoffs"])
def layoffs_by_stage(df: pd.DataFrame) -> pd.DataFrame:
    known = df.loc[df["total_laid_off"].notna() & df["stage"].notna()]
    return _rollup(known, "stage", "layoffs_by_stage")


@REGISTRY.view(
    "complete_shutdowns", DATASET,
    ["company", "location", "date", "total_laid_off", "percentage_laid_off"],
    "Events where the whole workforce was laid off",
)
def complete_shutdowns(df: pd.DataFrame) -> pd.DataFrame:
    columns = ["company", "location", "date", "total_laid_off", "percentage_laid_off"]
    shutdowns = df.loc[(df["percentage_laid_off"] == 100).fillna(False).astype(bool), columns]
    return shutdowns.sort_values(["date", "company"], kind="mergesort").reset_index(drop=True)


@REGISTRY.view(
    "top_companies_per_year", DATASET,
    ["year", "company", "total_laid_off", "rank"],
    "Five largest layoff events per year (dense rank, ties share a rank)",
)
def top_companies_per_year(df: pd.DataFrame) -> pd.DataFrame:
    events = df.rename(columns={"date_year": "year"})
    events = events.loc[events["year"].notna(), ["year", "company", "total_laid_off"]]
    return top_n_per_partition(events, "total_laid_off", 5, partition_by="year", view="top_companies_per_year")


@REGISTRY.view("severity_bands", DATASET, ["severity_band", "events"])
def severity_bands(df: pd.DataFrame) -> pd.DataFrame:
    banded = df.assign(severity_band=RuleCascade(SEVERITY_RULES, default="Unknown").evaluate(df))
    counts = aggregate(
        banded, ["severity_band"], [Measure("events", "count")],
        categories={"severity_band": SEVERITY_BANDS},
        view="severity_bands",
    )
    return counts
