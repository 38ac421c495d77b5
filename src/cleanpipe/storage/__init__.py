# Data Storage Layer
#  persists pipeline outputs
# - Parquet snapshots of the cleaned table and views
# - SQL warehouse (any SQLAlchemy URL, sqlite by default)

from .snapshot_store import SnapshotStore
from .warehouse import ViewWarehouse

__all__ = ["SnapshotStore", "ViewWarehouse"]
