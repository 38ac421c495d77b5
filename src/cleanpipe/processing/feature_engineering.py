import operator
from typing import Dict, Any, List, Optional, Sequence

import pandas as pd

from ..exceptions import ConfigurationError, PipelineError
from ..utils.logging_config import get_logger

logger = get_logger(__name__)

COMPARISONS = {
    "lt": operator.lt,
    "le": operator.le,
    "gt": operator.gt,
    "ge": operator.ge,
    "eq": operator.eq,
    "ne": operator.ne,
}

_UNIT_SECONDS = {"minutes": 60, "hours": 3600, "days": 86400}

DATE_PARTS = ("year", "month", "day", "hour", "weekday", "period")


class DatePartFeature:
    # tách year / month / day / hour / weekday / period ('YYYY-MM') từ một cột ngày

    def __init__(self, source: str, parts: Sequence[str] = ("year", "month"), prefix: Optional[str] = None):
        unknown = [part for part in parts if part not in DATE_PARTS]
        if unknown:
            raise ConfigurationError(f"Unknown date parts {unknown}; expected {DATE_PARTS}")
        self.source = source
        self.parts = list(parts)
        self.prefix = prefix or source

    @property
    def sources(self) -> List[str]:
        return [self.source]

    @property
    def outputs(self) -> List[str]:
        return [f"{self.prefix}_{part}" for part in self.parts]

    def compute(self, df: pd.DataFrame) -> Dict[str, pd.Series]:
        dates = pd.to_datetime(df[self.source])
        columns = {}
        for part, name in zip(self.parts, self.outputs):
            if part == "period":
                columns[name] = dates.dt.strftime("%Y-%m").astype(object).where(dates.notna(), None)
            elif part == "weekday":
                columns[name] = dates.dt.dayofweek.astype("Int64")
            else:
                columns[name] = getattr(dates.dt, part).astype("Int64")
        return columns


class TimeDeltaFeature:
    # khoảng thời gian giữa hai cột timestamp; null khi thiếu một đầu mút

    def __init__(self, name: str, start: str, end: str, unit: str = "minutes"):
        if unit not in _UNIT_SECONDS:
            raise ConfigurationError(f"Unknown time unit '{unit}'")
        self.name = name
        self.start = start
        self.end = end
        self.unit = unit

    @property
    def sources(self) -> List[str]:
        return [self.start, self.end]

    @property
    def outputs(self) -> List[str]:
        return [self.name]

    def compute(self, df: pd.DataFrame) -> Dict[str, pd.Series]:
        delta = pd.to_datetime(df[self.end]) - pd.to_datetime(df[self.start])
        seconds = delta.dt.total_seconds()
        return {self.name: (seconds / _UNIT_SECONDS[self.unit]).astype("Float64")}


class ThresholdFlag:
    # cờ phân loại theo ngưỡng, vd: delivery_fee_paid > 0 -> paid / free

    def __init__(self, name: str, source: str, op: str, threshold: float, labels: Optional[Sequence[Any]] = None):
        if op not in COMPARISONS:
            raise ConfigurationError(f"Unknown comparison '{op}'")
        if labels is not None and len(labels) != 2:
            raise ConfigurationError("ThresholdFlag labels must be [label_when_true, label_when_false]")
        self.name = name
        self.source = source
        self.op = op
        self.threshold = threshold
        self.labels = list(labels) if labels is not None else None

    @property
    def sources(self) -> List[str]:
        return [self.source]

    @property
    def outputs(self) -> List[str]:
        return [self.name]

    def compute(self, df: pd.DataFrame) -> Dict[str, pd.Series]:
        values = df[self.source]
        present = values.notna()
        compare = COMPARISONS[self.op]
        hits = pd.Series(
            [bool(compare(value, self.threshold)) if ok else False for value, ok in zip(values, present)],
            index=df.index,
        )
        if self.labels is None:
            flag = hits.astype("boolean").where(present, pd.NA)
        else:
            flag = hits.map({True: self.labels[0], False: self.labels[1]}).astype(object).where(present, None)
        return {self.name: flag}


def build_feature(spec: Dict[str, Any]):
    kind = spec.get("kind")
    if kind == "date_parts":
        return DatePartFeature(spec["source"], spec.get("parts", ("year", "month")), spec.get("prefix"))
    if kind == "time_delta":
        return TimeDeltaFeature(spec["name"], spec["start"], spec["end"], spec.get("unit", "minutes"))
    if kind == "threshold_flag":
        return ThresholdFlag(spec["name"], spec["source"], spec["op"], spec["threshold"], spec.get("labels"))
    raise ConfigurationError(f"Unknown feature kind '{kind}'")


class FeatureEngineer:

    def __init__(self, features: List[Any]):
        self.features = list(features)
        self._check_independent()

    @classmethod
    def from_config(cls, specs: List[Dict[str, Any]]) -> "FeatureEngineer":
        return cls([build_feature(spec) for spec in specs or []])

    # mỗi feature chỉ được đọc cột đã có sẵn, không đọc output của feature khác
    def _check_independent(self) -> None:
        outputs = {}
        for feature in self.features:
            for name in feature.outputs:
                if name in outputs:
                    raise ConfigurationError(f"Derived column '{name}' is produced twice")
                outputs[name] = feature
        for feature in self.features:
            chained = [src for src in feature.sources if src in outputs]
            if chained:
                raise ConfigurationError(
                    f"Derived feature {feature.outputs} reads derived columns {chained}; "
                    "features may only read coerced source columns"
                )

    def engineer_features(self, df: pd.DataFrame) -> pd.DataFrame:
        logger.info("Starting feature engineering")
        missing = sorted({src for f in self.features for src in f.sources if src not in df.columns})
        if missing:
            raise PipelineError(f"Feature sources missing from input: {missing}")

        df_engineered = df.copy()
        for feature in self.features:
            # every feature reads the original frame, never df_engineered
            for name, column in feature.compute(df).items():
                df_engineered[name] = column

        logger.info(f"Feature engineering completed. Added {len(df_engineered.columns) - len(df.columns)} new features")
        return df_engineered
