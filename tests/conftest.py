"""Shared fixtures: raw layoffs / orders tables and the repository config."""

import sys
from pathlib import Path

import pandas as pd
import pytest

PROJECT_ROOT = Path(__file__).resolve().parent.parent
CONFIG_PATH = PROJECT_ROOT / "config" / "config.yaml"


def pytest_sessionstart() -> None:
    """Add src directory to sys.path for test imports."""
    src_path = PROJECT_ROOT / "src"
    if str(src_path) not in sys.path:
        sys.path.insert(0, str(src_path))


LAYOFF_HEADERS = [
    "\ufeffCompany", "Location HQ", "Industry", "# Laid Off", "%", "Date",
    "Stage", "Country", "$ Raised (mm)", "Date Added",
]

LAYOFF_ROWS = [
    ["Acme", "SF Bay Area", "Retail", "100", "10%", "01/15/2022", "Series B", "United States", "$200", "01/16/2022"],
    ["Acme", "SF Bay Area", "Retail", "100", "10%", "01/15/2022", "Series B", "United States", "$200", "01/16/2022"],
    ["Acme", "SF Bay Area", "", "50", "5%", "06/01/2022", "Series B", "United States", "$200", "06/02/2022"],
    ["Ludia", "Montreal", "Consumer", "30", "", "02/10/2023", "Acquired", "", "", "02/11/2023"],
    ["Globex", "Berlin", "Finance", "", "", "03/05/2023", "Post-IPO", "Germany", "1,000", "03/06/2023"],
    ["Initech", "Austin", "", "20", "100%", "04/01/2023", "Seed", "United States", "5", "04/02/2023"],
    ["Hooli", "New York City", "Data", "abc", "20%", "05/05/2023", "Series C", "United States", "10", "05/06/2023"],
    ["Hooli", "New York City", "Data", "200", "25%", "05/20/2023", "Series C", "United States", "10", "05/21/2023"],
    ["Umbrella", "London", "Healthcare", "400", "100%", "07/07/2022", "Post-IPO", "United Kingdom", "50", "07/08/2022"],
    ["Umbrella", "London", "Healthcare", "400", "100%", "07/07/2022", "Post-IPO", "United Kingdom", "50", "07/08/2022"],
]

ORDER_COLUMNS = [
    "order_id", "customer_id", "city", "channel", "device_type", "order_status",
    "order_placed_at", "accepted_at", "picked_up_at", "delivered_at", "total_price", "delivery_fee_paid",
]

ORDER_ROWS = [
    ["o1", "c1", "Delhi", "App", "Android", "Delivered",
     "2023-01-05T12:00:00", "2023-01-05T12:05:00", "2023-01-05T12:20:00", "2023-01-05T12:40:00", "500", "30"],
    ["o2", "c2", "Mumbai", "web", "ios", "delivered",
     "2023-01-10T19:00:00", "2023-01-10T19:02:00", "2023-01-10T19:15:00", "2023-01-10T19:30:00", "300", "0"],
    ["o3", "c1", "Delhi", "app", "android", "cancelled",
     "2023-02-01T13:00:00", "", "", "", "200", "0"],
    ["o4", "c3", "Delhi", "app", "desktop", "delivered",
     "2023-02-14T20:00:00", "2023-02-14T20:03:00", "2023-02-14T20:10:00", "2023-02-14T20:45:00", "800", "50"],
    ["o5", "c2", "Mumbai", "Website", "iOS", "accepted",
     "2023-03-03T09:00:00", "2023-03-03T09:01:00", "", "", "150", "20"],
    ["o1", "c1", "Delhi", "App", "Android", "Delivered",
     "2023-01-05T12:00:00", "2023-01-05T12:05:00", "2023-01-05T12:20:00", "2023-01-05T12:40:00", "500", "30"],
]


@pytest.fixture
def config_manager():
    from cleanpipe.utils.config import ConfigManager

    manager = ConfigManager(str(CONFIG_PATH))
    manager.load_config()
    return manager


@pytest.fixture
def raw_layoffs() -> pd.DataFrame:
    return pd.DataFrame(LAYOFF_ROWS, columns=LAYOFF_HEADERS)


@pytest.fixture
def raw_orders() -> pd.DataFrame:
    return pd.DataFrame(ORDER_ROWS, columns=ORDER_COLUMNS)


@pytest.fixture
def layoffs_pipeline(config_manager):
    from cleanpipe.processing.etl_pipeline import CleaningPipeline

    return CleaningPipeline(
        config_manager.get_dataset_config("layoffs"),
        {"on_malformed": "quarantine", "backfill_policy": "first"},
        dataset_name="layoffs",
    )


@pytest.fixture
def orders_pipeline(config_manager):
    from cleanpipe.processing.etl_pipeline import CleaningPipeline

    return CleaningPipeline(
        config_manager.get_dataset_config("orders"),
        {"on_malformed": "quarantine"},
        dataset_name="orders",
    )


@pytest.fixture
def cleaned_layoffs(layoffs_pipeline, raw_layoffs) -> pd.DataFrame:
    return layoffs_pipeline.run(raw_layoffs).cleaned


@pytest.fixture
def cleaned_orders(orders_pipeline, raw_orders) -> pd.DataFrame:
    return orders_pipeline.run(raw_orders).cleaned
