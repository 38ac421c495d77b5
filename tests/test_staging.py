import os

import pandas as pd
import pytest

from cleanpipe.exceptions import PipelineError
from cleanpipe.ingestion import CSVIngestion, ROW_NUMBER_COLUMN, data_columns, stage_table


def test_stage_table_renames_and_drops(raw_layoffs):
    rename = {"Company": "company", "# Laid Off": "total_laid_off", "Date Added": "date_added"}
    staged = stage_table(raw_layoffs, rename=rename, drop=["date_added"])

    assert "company" in staged.columns
    assert "total_laid_off" in staged.columns
    assert "date_added" not in staged.columns
    assert staged[ROW_NUMBER_COLUMN].tolist() == list(range(len(raw_layoffs)))
    assert ROW_NUMBER_COLUMN not in data_columns(staged)


def test_stage_table_keeps_values_as_text():
    raw = pd.DataFrame({"n": [1.0, 2.5, None], "s": [" a ", "", None]})
    staged = stage_table(raw)

    assert staged["n"].tolist() == ["1", "2.5", None]
    # strings are kept verbatim, blanks are normalized later
    assert staged["s"].tolist() == [" a ", "", None]


def test_stage_table_does_not_mutate_input(raw_layoffs):
    before = raw_layoffs.copy()
    stage_table(raw_layoffs, rename={"Company": "company"})
    pd.testing.assert_frame_equal(raw_layoffs, before)


def test_stage_table_rejects_staged_input(raw_layoffs):
    staged = stage_table(raw_layoffs)
    with pytest.raises(PipelineError):
        stage_table(staged)


def test_stage_table_rejects_duplicate_columns():
    raw = pd.DataFrame({"a": ["1"], "b": ["2"]})
    with pytest.raises(PipelineError):
        stage_table(raw, rename={"b": "a"})


def test_csv_ingestion_keeps_blanks(tmp_path, raw_layoffs):
    path = tmp_path / "layoffs.csv"
    raw_layoffs.to_csv(path, index=False)

    df = CSVIngestion().read(str(path))

    assert len(df) == len(raw_layoffs)
    assert df.loc[2, "Industry"] == ""
    assert df.loc[4, "$ Raised (mm)"] == "1,000"


def test_csv_ingestion_rejects_unknown_format(tmp_path):
    with pytest.raises(ValueError):
        CSVIngestion().read(str(tmp_path / "layoffs.json"))


def test_latest_file_uses_modification_time(tmp_path):
    older = tmp_path / "layoffs_2024_12.csv"
    newer = tmp_path / "layoffs_2023_01.csv"
    older.write_text("a\n1\n", encoding="utf-8")
    newer.write_text("a\n2\n", encoding="utf-8")
    os.utime(older, (1_000_000, 1_000_000))
    os.utime(newer, (2_000_000, 2_000_000))
    (tmp_path / "orders_2025.csv").write_text("a\n3\n", encoding="utf-8")

    assert CSVIngestion.latest_file(str(tmp_path), "layoffs") == str(newer)


def test_latest_file_without_candidates(tmp_path):
    with pytest.raises(FileNotFoundError):
        CSVIngestion.latest_file(str(tmp_path), "layoffs")
