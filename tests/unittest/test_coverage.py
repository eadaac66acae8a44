# AGPL-3.0 License

"""
Unit tests for coverage parsing and attribution.
"""

import json

import pytest

from prove.errors import CoverageError
from prove.utils.coverage import (
    CoverageFile,
    LineRange,
    diff_coverage,
    find_coverage_record,
    global_summary,
    load_coverage,
    parse_coverage,
)
from prove.utils.git import ChangedLine


def line_file(path: str, hits: dict[int, int], branches=None) -> CoverageFile:
    """A record with one single-line statement per line."""
    return CoverageFile(
        path=path,
        statements={str(line): count for line, count in hits.items()},
        statement_map={str(line): LineRange(line, line) for line in hits},
        branches=branches or {},
    )


class TestDiffCoverage:
    """Tests for diff_coverage()."""

    def test_no_changed_lines_is_fully_covered(self):
        """Test that an empty diff is 100% covered regardless of instrumentation."""
        result = diff_coverage([], {}, "/repo")

        assert result.percentage == 100.0
        assert result.total_lines == 0

    def test_missing_record_counts_as_uncovered(self):
        """Test that lines in files without instrumentation are uncovered."""
        changed = [ChangedLine("src/a.py", 1), ChangedLine("src/a.py", 2)]

        result = diff_coverage(changed, {}, "/repo")

        assert result.percentage == 0.0
        assert result.uncovered_lines == tuple(changed)

    def test_eight_of_ten_lines(self):
        """Test that 8 hit lines out of 10 added yields 80%."""
        hits = {line: (1 if line <= 8 else 0) for line in range(1, 11)}
        files = {"/repo/src/a.py": line_file("/repo/src/a.py", hits)}
        changed = [ChangedLine("src/a.py", line) for line in range(1, 11)]

        result = diff_coverage(changed, files, "/repo")

        assert result.percentage == pytest.approx(80.0)
        assert result.covered_lines == 8
        assert [line.line for line in result.uncovered_lines] == [9, 10]

    def test_multi_line_statement_covers_each_line(self):
        """Test that a hit statement spanning lines covers every spanned line."""
        record = CoverageFile(path="src/a.py", statements={"0": 2}, statement_map={"0": LineRange(3, 5)})

        result = diff_coverage([ChangedLine("src/a.py", 4)], {"src/a.py": record}, "/repo")

        assert result.percentage == 100.0


class TestFindCoverageRecord:
    """Tests for record lookup."""

    def test_absolute_then_relative_then_suffix(self):
        """Test the lookup order for recorded paths."""
        absolute = line_file("/repo/src/a.py", {1: 1})
        relative = line_file("src/b.py", {1: 1})
        suffixed = line_file("/build/checkout/src/c.py", {1: 1})
        files = {"/repo/src/a.py": absolute, "src/b.py": relative, "/build/checkout/src/c.py": suffixed}

        assert find_coverage_record("src/a.py", files, "/repo") is absolute
        assert find_coverage_record("src/b.py", files, "/repo") is relative
        assert find_coverage_record("src/c.py", files, "/repo") is suffixed
        assert find_coverage_record("src/d.py", files, "/repo") is None


class TestGlobalSummary:
    """Tests for global_summary()."""

    def test_branch_with_any_hit_arm_is_covered(self):
        """Test that [0, 3] counts as covered and [0, 0] does not."""
        files = {
            "a.py": line_file("a.py", {1: 1}, branches={"0": (0, 3)}),
            "b.py": line_file("b.py", {1: 0}, branches={"0": (0, 0)}),
        }

        summary = global_summary(files)

        assert summary.branches.total == 2
        assert summary.branches.covered == 1
        assert summary.lines.pct == pytest.approx(50.0)

    def test_empty_denominators_are_zero(self):
        """Test that no instrumentation yields 0% rather than an error."""
        summary = global_summary({})

        assert summary.lines.pct == 0.0
        assert summary.to_dict()["branches"] == {"total": 0, "covered": 0, "pct": 0.0}


class TestParsers:
    """Tests for artifact parsing."""

    def test_istanbul(self):
        """Test parsing of Istanbul coverage-final.json."""
        data = {
            "/repo/src/a.js": {
                "path": "/repo/src/a.js",
                "statementMap": {
                    "0": {"start": {"line": 1, "column": 0}, "end": {"line": 1, "column": 10}},
                    "1": {"start": {"line": 2, "column": 0}, "end": {"line": 3, "column": 1}},
                },
                "s": {"0": 1, "1": 0},
                "branchMap": {},
                "b": {"0": [0, 3]},
                "fnMap": {},
                "f": {"0": 1},
            }
        }

        record = parse_coverage(data)["/repo/src/a.js"]

        assert record.is_line_covered(1)
        assert not record.is_line_covered(3)
        assert record.branches == {"0": (0, 3)}
        assert record.functions == {"0": 1}

    def test_coverage_py(self):
        """Test parsing of coverage.py JSON output."""
        data = {
            "meta": {"version": "7.4.0"},
            "files": {
                "src/a.py": {
                    "executed_lines": [1, 2],
                    "missing_lines": [5],
                    "executed_branches": [[2, 3]],
                    "missing_branches": [[2, 5]],
                }
            },
            "totals": {},
        }

        record = parse_coverage(data)["src/a.py"]

        assert record.is_line_covered(2)
        assert not record.is_line_covered(5)
        assert record.branches == {"2": (1, 0)}
        assert global_summary({"src/a.py": record}).branches.covered == 1

    def test_load_missing_file(self, temp_dir):
        """Test that a missing artifact raises CoverageError."""
        with pytest.raises(CoverageError):
            load_coverage(temp_dir / "coverage.json")

    def test_load_malformed_file(self, temp_dir):
        """Test that invalid JSON raises CoverageError."""
        path = temp_dir / "coverage.json"
        path.write_text("{not json")

        with pytest.raises(CoverageError):
            load_coverage(path)

    def test_load_roundtrip_from_disk(self, temp_dir):
        """Test that load_coverage reads an artifact written to disk."""
        path = temp_dir / "coverage.json"
        path.write_text(json.dumps({"meta": {}, "files": {"a.py": {"executed_lines": [1]}}}))

        assert load_coverage(path)["a.py"].is_line_covered(1)
