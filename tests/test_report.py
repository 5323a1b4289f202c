"""
Tests for the window report.
"""

import sys
from pathlib import Path

import pytest

# Add scripts directory to path for imports
scripts_dir = Path(__file__).parent.parent / "scripts"
sys.path.insert(0, str(scripts_dir))

from readbias.report import add_rates, category_columns, load_summary_table, summarize


@pytest.fixture
def fixed_table(temp_dir):
    path = temp_dir / "readbias.tsv"
    path.write_text(
        "read\tmap\tbad_map\tunmap\tr1_only\tr2_only\n"
        "4\t3\t0\t1\t0\t0\n"
        "8\t2\t0\t2\t0\t0\n"
    )
    return path


@pytest.fixture
def compact_paired_table(temp_dir):
    path = temp_dir / "readbias_paired.tsv"
    path.write_text(
        "read\tmap\tbad_map\tunmap\tr1_only\tr2_only\tunclass\n"
        "2\t1\t1\t0\t0\t0\t0\n"
    )
    return path


class TestLoadSummaryTable:

    def test_load(self, fixed_table):
        df = load_summary_table(str(fixed_table))
        assert list(df["read"]) == [4, 8]

    def test_missing_columns(self, temp_dir):
        path = temp_dir / "bad.tsv"
        path.write_text("read\tcount\n1\t1\n")
        with pytest.raises(ValueError):
            load_summary_table(str(path))


class TestRates:

    def test_category_columns(self, compact_paired_table):
        df = load_summary_table(str(compact_paired_table))
        assert category_columns(df) == ["map", "bad_map", "unmap", "r1_only", "r2_only", "unclass"]

    def test_add_rates(self, fixed_table):
        df = add_rates(load_summary_table(str(fixed_table)))
        assert list(df["total"]) == [4, 4]
        assert list(df["map_rate"]) == pytest.approx([0.75, 0.5])
        assert list(df["unmap_rate"]) == pytest.approx([0.25, 0.5])

    def test_add_rates_idempotent_columns(self, fixed_table):
        df = add_rates(add_rates(load_summary_table(str(fixed_table))))
        assert list(df["total"]) == [4, 4]

    def test_zero_window_rate(self, temp_dir):
        path = temp_dir / "zero.tsv"
        path.write_text("read\tmap\tunmap\n0\t0\t0\n")
        df = add_rates(load_summary_table(str(path)))
        assert df["map_rate"].iloc[0] == 0.0


class TestSummarize:

    def test_summary(self, fixed_table):
        summary = summarize(load_summary_table(str(fixed_table)))
        assert summary["windows"] == 2
        assert summary["records"] == 8
        assert summary["counted"] == 8
        assert summary["map_rate"] == pytest.approx(5 / 8)

    def test_header_only(self, temp_dir):
        path = temp_dir / "empty.tsv"
        path.write_text("read\tmap\tunmap\n")
        summary = summarize(load_summary_table(str(path)))
        assert summary["windows"] == 0
        assert summary["map_rate"] == 0.0
