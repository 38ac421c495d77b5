# Cleaning rules for the staged table
# Each rule takes a frame and returns a new frame plus a dict of counters;
# the input frame is never modified.
from collections import Counter
from typing import Dict, Any, Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd

from ..exceptions import (
    AmbiguousBackfillError,
    ConfigurationError,
    MalformedFieldError,
    PipelineError,
)
from ..ingestion.staging import ROW_NUMBER_COLUMN, data_columns
from ..utils.logging_config import get_logger

logger = get_logger(__name__)

BACKFILL_POLICIES = ("first", "most_frequent", "error")
COERCION_TYPES = ("integer", "decimal", "date", "string")
MALFORMED_POLICIES = ("quarantine", "raise")


def _require_columns(df: pd.DataFrame, columns: Iterable[str], rule: str) -> None:
    missing = [col for col in columns if col not in df.columns]
    if missing:
        raise PipelineError(f"{rule}: columns missing from input: {missing}")


def _ingestion_order(df: pd.DataFrame) -> pd.DataFrame:
    if ROW_NUMBER_COLUMN in df.columns:
        return df.sort_values(ROW_NUMBER_COLUMN, kind="mergesort")
    return df


class BlankNormalizer:
    # '' và chuỗi chỉ có khoảng trắng -> None, trước mọi bước ép kiểu

    def __init__(self, fields: Optional[List[str]] = None, tokens: Iterable[str] = ("",)):
        self.fields = list(fields) if fields else None
        self.tokens = {token.strip() for token in tokens} | {""}

    def _is_blank(self, value: Any) -> bool:
        return isinstance(value, str) and value.strip() in self.tokens

    def apply(self, df: pd.DataFrame) -> Tuple[pd.DataFrame, Dict[str, int]]:
        fields = self.fields or data_columns(df)
        _require_columns(df, fields, "BlankNormalizer")

        normalized = df.copy()
        total = 0
        for col in fields:
            mask = normalized[col].map(self._is_blank).astype(bool)
            count = int(mask.sum())
            if count:
                normalized[col] = normalized[col].astype(object).where(~mask, None)
                total += count
        return normalized, {"blanks_normalized": total}


class CategoricalStandardizer:

    def __init__(
        self,
        field: str,
        mapping: Optional[Dict[str, str]] = None,
        prefixes: Optional[Dict[str, str]] = None,
        known: Optional[Iterable[str]] = None,
        strip_chars: Optional[str] = None,
    ):
        self.field = field
        self.mapping = dict(mapping or {})
        self.prefixes = dict(prefixes or {})
        self.strip_chars = strip_chars
        self.canonical = set(self.mapping.values()) | set(self.prefixes.values()) | set(known or [])
        self._check_stable()

    def _check_stable(self) -> None:
        # a canonical value must resolve to itself, otherwise a second pass would change it
        unstable = {}
        for value in sorted(set(self.mapping.values()) | set(self.prefixes.values())):
            resolved, _ = self._resolve(value)
            if resolved != value:
                unstable[value] = resolved
        if unstable:
            raise ConfigurationError(
                f"Categorical mapping for '{self.field}' is not stable under reapplication",
                errors=unstable,
            )

    def _resolve(self, value: str) -> Tuple[str, bool]:
        candidate = value.strip()
        if self.strip_chars:
            candidate = candidate.rstrip(self.strip_chars).strip()
        if candidate in self.mapping:
            return self.mapping[candidate], True
        for prefix, canonical in self.prefixes.items():
            if candidate.startswith(prefix):
                return canonical, True
        if candidate in self.canonical:
            return candidate, True
        # unresolved values are kept exactly as they came in
        return value, False

    def apply(self, df: pd.DataFrame) -> Tuple[pd.DataFrame, Dict[str, Any]]:
        _require_columns(df, [self.field], "CategoricalStandardizer")
        standardized = df.copy()

        changed = 0
        unresolved = set()
        values = []
        for value in standardized[self.field]:
            if not isinstance(value, str):
                values.append(value)
                continue
            resolved, ok = self._resolve(value)
            if not ok:
                unresolved.add(value)
            if resolved != value:
                changed += 1
            values.append(resolved)
        standardized[self.field] = pd.Series(values, index=standardized.index, dtype=object)

        if unresolved:
            logger.warning(
                "Unresolved categories",
                field=self.field,
                values=sorted(unresolved),
            )
        return standardized, {
            "categories_standardized": changed,
            "unresolved_categories": sorted(unresolved),
        }


class ValuePatch:
    # explicit correction for known entities, e.g. company == Ludia -> country = Canada

    def __init__(self, match: Dict[str, Any], set_values: Dict[str, Any]):
        if not match or not set_values:
            raise ConfigurationError("ValuePatch needs both 'match' and 'set'")
        self.match = dict(match)
        self.set_values = dict(set_values)

    def apply(self, df: pd.DataFrame) -> Tuple[pd.DataFrame, Dict[str, int]]:
        _require_columns(df, list(self.match) + list(self.set_values), "ValuePatch")
        patched = df.copy()

        mask = pd.Series(True, index=patched.index)
        for col, value in self.match.items():
            mask &= patched[col].eq(value).fillna(False).astype(bool)

        differs = pd.Series(False, index=patched.index)
        for col, value in self.set_values.items():
            differs |= patched[col].ne(value).fillna(True).astype(bool)
        touched = mask & differs

        for col, value in self.set_values.items():
            patched.loc[touched, col] = value
        return patched, {"rows_patched": int(touched.sum())}


class CrossRecordBackfill:

    def __init__(self, field: str, join_key: List[str], policy: str = "first"):
        if policy not in BACKFILL_POLICIES:
            raise ConfigurationError(f"Unknown backfill policy '{policy}'; expected one of {BACKFILL_POLICIES}")
        self.field = field
        self.join_key = list(join_key)
        self.policy = policy

    def _choose(self, key_value: Tuple, candidates: List[Any]) -> Any:
        distinct = list(dict.fromkeys(candidates))
        if len(distinct) == 1 or self.policy == "first":
            return distinct[0]
        if self.policy == "error":
            raise AmbiguousBackfillError(self.field, self.join_key, key_value, distinct)
        counts = Counter(candidates)
        best = max(counts.values())
        # ties go to the value seen first in ingestion order
        return next(value for value in distinct if counts[value] == best)

    def apply(self, df: pd.DataFrame) -> Tuple[pd.DataFrame, Dict[str, int]]:
        _require_columns(df, [self.field] + self.join_key, "CrossRecordBackfill")
        backfilled = df.copy()

        ordered = _ingestion_order(backfilled)
        has_key = ordered[self.join_key].notna().all(axis=1)
        keys = pd.Series(
            list(ordered[self.join_key].itertuples(index=False, name=None)),
            index=ordered.index,
            dtype=object,
        )

        donors = has_key & ordered[self.field].notna()
        receivers = has_key & ordered[self.field].isna()
        if not receivers.any():
            return backfilled, {"rows_backfilled": 0, "backfill_conflicts": 0}

        candidates: Dict[Tuple, List[Any]] = {}
        for key_value, value in zip(keys[donors], ordered.loc[donors, self.field]):
            candidates.setdefault(key_value, []).append(value)

        chosen: Dict[Tuple, Any] = {}
        conflicts = 0
        for key_value in dict.fromkeys(keys[receivers]):
            if key_value not in candidates:
                continue
            if len(set(candidates[key_value])) > 1:
                conflicts += 1
                logger.warning(
                    "Backfill siblings disagree",
                    field=self.field,
                    key=list(key_value),
                    candidates=list(dict.fromkeys(candidates[key_value])),
                    policy=self.policy,
                )
            chosen[key_value] = self._choose(key_value, candidates[key_value])

        filled = 0
        for idx in ordered.index[receivers]:
            key_value = keys[idx]
            if key_value in chosen:
                backfilled.at[idx, self.field] = chosen[key_value]
                filled += 1

        return backfilled, {"rows_backfilled": filled, "backfill_conflicts": conflicts}


class RequiredFieldFilter:
    # xoá dòng thiếu bất kỳ trường bắt buộc nào (vd: industry)

    def __init__(self, fields: List[str]):
        self.fields = list(fields)

    def apply(self, df: pd.DataFrame) -> Tuple[pd.DataFrame, Dict[str, int]]:
        _require_columns(df, self.fields, "RequiredFieldFilter")
        missing = df[self.fields].isna().any(axis=1)
        return df.loc[~missing].reset_index(drop=True), {"required_missing_dropped": int(missing.sum())}


class EssentialFieldFilter:
    # xoá dòng không còn trường định lượng nào (tất cả đều null)

    def __init__(self, fields: List[str]):
        self.fields = list(fields)

    def apply(self, df: pd.DataFrame) -> Tuple[pd.DataFrame, Dict[str, int]]:
        _require_columns(df, self.fields, "EssentialFieldFilter")
        all_missing = df[self.fields].isna().all(axis=1)
        return df.loc[~all_missing].reset_index(drop=True), {"essential_missing_dropped": int(all_missing.sum())}


class TypeCoercer:

    def __init__(self, fields: Dict[str, Dict[str, Any]], on_error: str = "quarantine"):
        if on_error not in MALFORMED_POLICIES:
            raise ConfigurationError(f"Unknown malformed-field policy '{on_error}'")
        for name, spec in fields.items():
            if spec.get("type") not in COERCION_TYPES:
                raise ConfigurationError(f"Field '{name}': unsupported type {spec.get('type')!r}")
        self.fields = fields
        self.on_error = on_error

    @staticmethod
    def _strip(value: Any, chars: str) -> Optional[str]:
        if value is None:
            return None
        text = str(value).strip()
        for char in chars:
            text = text.replace(char, "")
        return text.strip()

    def _coerce_series(self, series: pd.Series, spec: Dict[str, Any]) -> Tuple[pd.Series, pd.Series]:
        kind = spec["type"]
        present = series.notna()

        if kind == "string":
            converted = series.map(lambda v: None if v is None else str(v)).astype(object)
            return converted, pd.Series(False, index=series.index)

        if kind == "date":
            text = series.map(lambda v: self._strip(v, ""), na_action="ignore")
            dates = pd.to_datetime(text, format=spec.get("format", "ISO8601"), errors="coerce")
            failed = present & dates.isna()
            return dates.where(~failed), failed

        text = series.map(lambda v: self._strip(v, spec.get("strip_chars", ",")), na_action="ignore")
        numbers = pd.to_numeric(text, errors="coerce").astype("float64")
        failed = present & (numbers.isna() | np.isinf(numbers))
        if kind == "integer":
            failed |= numbers.notna() & (numbers % 1 != 0)
            return numbers.where(~failed).astype("Int64"), failed

        decimals = numbers.where(~failed)
        if "scale" in spec:
            decimals = decimals.round(spec["scale"])
        return decimals.astype("Float64"), failed

    def apply(self, df: pd.DataFrame) -> Tuple[pd.DataFrame, pd.DataFrame, List[MalformedFieldError]]:
        _require_columns(df, list(self.fields), "TypeCoercer")
        coerced = df.copy()
        errors: List[MalformedFieldError] = []
        bad_rows = pd.Series(False, index=df.index)

        for name, spec in self.fields.items():
            converted, failed = self._coerce_series(df[name], spec)
            for idx in df.index[failed.to_numpy()]:
                row_number = int(df.at[idx, ROW_NUMBER_COLUMN]) if ROW_NUMBER_COLUMN in df.columns else int(idx)
                error = MalformedFieldError(name, df.at[idx, name], spec["type"], row_number)
                if self.on_error == "raise":
                    logger.error(str(error))
                    raise error
                errors.append(error)
            bad_rows |= failed
            coerced[name] = converted

        if errors:
            logger.warning(
                f"Quarantined {int(bad_rows.sum())} rows with malformed fields",
                fields=sorted({error.field for error in errors}),
            )
        rejected = df.loc[bad_rows].reset_index(drop=True)
        return coerced.loc[~bad_rows].reset_index(drop=True), rejected, errors
