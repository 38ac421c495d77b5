import pandas as pd
import pytest

from cleanpipe.exceptions import AmbiguousBackfillError, ConfigurationError, MalformedFieldError
from cleanpipe.ingestion import stage_table
from cleanpipe.processing.cleaning import (
    BlankNormalizer,
    CategoricalStandardizer,
    CrossRecordBackfill,
    EssentialFieldFilter,
    RequiredFieldFilter,
    TypeCoercer,
    ValuePatch,
)


def test_blank_normalizer_turns_blanks_into_null():
    staged = stage_table(pd.DataFrame({"a": ["", "  ", "x"], "b": ["NA", "y", ""]}))
    normalized, stats = BlankNormalizer(tokens=["", "NA"]).apply(staged)

    assert normalized["a"].tolist() == [None, None, "x"]
    assert normalized["b"].tolist() == [None, "y", None]
    assert stats["blanks_normalized"] == 4
    # input untouched
    assert staged["a"].tolist() == ["", "  ", "x"]


def test_categorical_standardizer_is_idempotent():
    staged = stage_table(pd.DataFrame({"industry": ["Crypto Currency", "CryptoCurrency", "Crypto", "Retail", None]}))
    rule = CategoricalStandardizer("industry", prefixes={"Crypto": "Crypto"}, known=["Retail"])

    once, stats = rule.apply(staged)
    twice, second_stats = rule.apply(once)

    pd.testing.assert_frame_equal(once, twice)
    assert once["industry"].tolist() == ["Crypto", "Crypto", "Crypto", "Retail", None]
    assert stats["categories_standardized"] == 2
    assert second_stats["categories_standardized"] == 0


def test_categorical_standardizer_reports_unresolved():
    staged = stage_table(pd.DataFrame({"status": ["Delivered", "delivrd", "delivered"]}))
    rule = CategoricalStandardizer("status", mapping={"Delivered": "delivered"})

    standardized, stats = rule.apply(staged)

    assert standardized["status"].tolist() == ["delivered", "delivrd", "delivered"]
    assert stats["unresolved_categories"] == ["delivrd"]


def test_categorical_mapping_must_be_stable():
    with pytest.raises(ConfigurationError):
        CategoricalStandardizer("x", mapping={"a": "b", "b": "c"})


def test_value_patch_counts_changed_rows():
    staged = stage_table(pd.DataFrame({
        "company": ["Ludia", "Ludia", "Other"],
        "country": [None, "Canada", None],
    }))
    patched, stats = ValuePatch({"company": "Ludia"}, {"country": "Canada"}).apply(staged)

    assert patched["country"].tolist() == ["Canada", "Canada", None]
    assert stats["rows_patched"] == 1


def _siblings() -> pd.DataFrame:
    return stage_table(pd.DataFrame({
        "company": ["A", "A", "A", "A", "B", None],
        "industry": ["X", None, "Y", "Y", None, None],
    }))


def test_backfill_first_by_ingestion_order():
    filled, stats = CrossRecordBackfill("industry", ["company"], policy="first").apply(_siblings())

    assert filled["industry"].tolist() == ["X", "X", "Y", "Y", None, None]
    assert stats == {"rows_backfilled": 1, "backfill_conflicts": 1}


def test_backfill_most_frequent():
    filled, _ = CrossRecordBackfill("industry", ["company"], policy="most_frequent").apply(_siblings())
    assert filled.loc[1, "industry"] == "Y"


def test_backfill_error_policy_raises_on_disagreement():
    with pytest.raises(AmbiguousBackfillError):
        CrossRecordBackfill("industry", ["company"], policy="error").apply(_siblings())


def test_backfill_never_adds_rows():
    staged = _siblings()
    filled, _ = CrossRecordBackfill("industry", ["company"]).apply(staged)
    assert len(filled) == len(staged)


def test_backfill_unknown_policy():
    with pytest.raises(ConfigurationError):
        CrossRecordBackfill("industry", ["company"], policy="random")


def test_required_and_essential_filters():
    df = pd.DataFrame({"industry": ["x", None, "y"], "a": [1, None, None], "b": [None, 2, None]})

    required, stats = RequiredFieldFilter(["industry"]).apply(df)
    assert len(required) == 2
    assert stats["required_missing_dropped"] == 1

    essential, stats = EssentialFieldFilter(["a", "b"]).apply(df)
    assert len(essential) == 2
    assert stats["essential_missing_dropped"] == 1


def test_type_coercer_quarantines_malformed_rows():
    staged = stage_table(pd.DataFrame({
        "total": ["10", "abc", None, "1,000", "2.5"],
        "pct": ["10%", "5%", "", None, "12.345%"],
    }))
    staged = BlankNormalizer().apply(staged)[0]
    coercer = TypeCoercer({
        "total": {"type": "integer"},
        "pct": {"type": "decimal", "scale": 2, "strip_chars": "%"},
    })

    coerced, rejected, errors = coercer.apply(staged)

    assert str(coerced["total"].dtype) == "Int64"
    assert coerced["total"].iloc[0] == 10
    assert pd.isna(coerced["total"].iloc[1])
    assert coerced["total"].iloc[2] == 1000
    assert len(coerced) == 3
    assert rejected["_row_number"].tolist() == [1, 4]
    assert {(e.field, e.row_number) for e in errors} == {("total", 1), ("total", 4)}


def test_type_coercer_decimal_scale():
    staged = stage_table(pd.DataFrame({"pct": ["12.346%", "7"]}))
    coerced, rejected, _ = TypeCoercer({"pct": {"type": "decimal", "scale": 2, "strip_chars": "%"}}).apply(staged)

    assert rejected.empty
    assert coerced["pct"].tolist() == [12.35, 7.0]


def test_type_coercer_raise_mode():
    staged = stage_table(pd.DataFrame({"date": ["01/15/2022", "2022-13-45"]}))
    coercer = TypeCoercer({"date": {"type": "date", "format": "%m/%d/%Y"}}, on_error="raise")

    with pytest.raises(MalformedFieldError) as exc:
        coercer.apply(staged)
    assert exc.value.field == "date"
    assert exc.value.row_number == 1


def test_type_coercer_parses_dates():
    staged = stage_table(pd.DataFrame({"date": ["01/15/2022", None]}))
    coerced, rejected, _ = TypeCoercer({"date": {"type": "date", "format": "%m/%d/%Y"}}).apply(staged)

    assert rejected.empty
    assert coerced["date"].iloc[0] == pd.Timestamp("2022-01-15")
    assert pd.isna(coerced["date"].iloc[1])
