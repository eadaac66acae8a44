# AGPL-3.0 License

"""
Coverage attribution.

Parses instrumentation artifacts (Istanbul coverage-final.json or
coverage.py coverage.json) into CoverageFile records, and computes the
global summary and the coverage of lines added by the current diff.
Everything except load_coverage() is pure.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

from prove.errors import CoverageError
from prove.utils.git import ChangedLine


@dataclass(frozen=True)
class LineRange:
    start: int
    end: int

    def contains(self, line: int) -> bool:
        return self.start <= line <= self.end


@dataclass(frozen=True)
class CoverageFile:
    """
    Instrumentation record for one source file.

    Attributes:
        path: Path the instrumentation tool recorded for the file
        statements: Statement id -> hit count
        statement_map: Statement id -> line range
        branches: Branch id -> hit count per arm
        functions: Function id -> hit count
        lines: Line number -> hit count, when the tool records it
    """
    path: str
    statements: Mapping[str, int] = field(default_factory=dict)
    statement_map: Mapping[str, LineRange] = field(default_factory=dict)
    branches: Mapping[str, tuple[int, ...]] = field(default_factory=dict)
    functions: Mapping[str, int] = field(default_factory=dict)
    lines: Optional[Mapping[int, int]] = None

    def line_hits(self) -> dict[int, bool]:
        """Lines spanned by statements, mapped to whether any covering statement ran."""
        hits: dict[int, bool] = {}
        for statement_id, line_range in self.statement_map.items():
            hit = self.statements.get(statement_id, 0) > 0
            for line in range(line_range.start, line_range.end + 1):
                hits[line] = hits.get(line, False) or hit
        return hits

    def is_line_covered(self, line: int) -> bool:
        if self.lines is not None:
            return self.lines.get(line, 0) > 0
        for statement_id, line_range in self.statement_map.items():
            if line_range.contains(line):
                return self.statements.get(statement_id, 0) > 0
        return False


@dataclass(frozen=True)
class CoverageMetric:
    total: int
    covered: int

    @property
    def pct(self) -> float:
        return (self.covered / self.total) * 100 if self.total > 0 else 0.0


@dataclass(frozen=True)
class CoverageSummary:
    statements: CoverageMetric
    branches: CoverageMetric
    functions: CoverageMetric
    lines: CoverageMetric

    @property
    def average_pct(self) -> float:
        """Mean percentage over the metrics the artifact instruments."""
        metrics = [metric for metric in (self.statements, self.branches, self.functions, self.lines) if metric.total > 0]
        if not metrics:
            return 0.0
        return sum(metric.pct for metric in metrics) / len(metrics)

    def to_dict(self) -> dict[str, dict[str, float]]:
        return {
            name: {"total": metric.total, "covered": metric.covered, "pct": round(metric.pct, 2)}
            for name, metric in (
                ("statements", self.statements),
                ("branches", self.branches),
                ("functions", self.functions),
                ("lines", self.lines),
            )
        }


@dataclass(frozen=True)
class DiffCoverageResult:
    total_lines: int
    covered_lines: int
    percentage: float
    uncovered_lines: tuple[ChangedLine, ...] = ()


def global_summary(files: Mapping[str, CoverageFile]) -> CoverageSummary:
    """
    Aggregate instrumentation across all files.

    A branch counts as covered when any of its arms was hit. Empty
    denominators produce 0%.
    """
    totals = {"statements": [0, 0], "branches": [0, 0], "functions": [0, 0], "lines": [0, 0]}

    for record in files.values():
        totals["statements"][0] += len(record.statements)
        totals["statements"][1] += sum(1 for hits in record.statements.values() if hits > 0)

        totals["branches"][0] += len(record.branches)
        totals["branches"][1] += sum(1 for arms in record.branches.values() if any(hit > 0 for hit in arms))

        totals["functions"][0] += len(record.functions)
        totals["functions"][1] += sum(1 for hits in record.functions.values() if hits > 0)

        line_hits = record.line_hits()
        totals["lines"][0] += len(line_hits)
        totals["lines"][1] += sum(1 for covered in line_hits.values() if covered)

    return CoverageSummary(**{name: CoverageMetric(total, covered) for name, (total, covered) in totals.items()})


def find_coverage_record(
    file_path: str,
    files: Mapping[str, CoverageFile],
    working_dir: str
) -> Optional[CoverageFile]:
    """
    Locate the record for a diff path.

    Lookup order: absolute path, relative path, then suffix match.
    """
    absolute = os.path.normpath(os.path.join(working_dir, file_path))
    if absolute in files:
        return files[absolute]
    if file_path in files:
        return files[file_path]

    relative = os.path.normpath(file_path)
    for key in sorted(files):
        normalized = os.path.normpath(key)
        if normalized == relative or normalized.endswith(os.sep + relative):
            return files[key]
    return None


def diff_coverage(
    changed_lines: Iterable[ChangedLine],
    files: Mapping[str, CoverageFile],
    working_dir: str
) -> DiffCoverageResult:
    """
    Compute coverage restricted to lines added by the diff.

    Files without an instrumentation record count all of their changed
    lines as uncovered.

    Args:
        changed_lines: Added lines from the diff
        files: Instrumentation records keyed by recorded path
        working_dir: Directory the diff paths are relative to

    Returns:
        DiffCoverageResult; percentage is 100.0 when there are no changed lines
    """
    by_file: dict[str, list[ChangedLine]] = {}
    for changed in changed_lines:
        by_file.setdefault(changed.file, []).append(changed)

    total = 0
    covered = 0
    uncovered: list[ChangedLine] = []

    for file_path, lines in by_file.items():
        record = find_coverage_record(file_path, files, working_dir)
        for changed in lines:
            total += 1
            if record is not None and record.is_line_covered(changed.line):
                covered += 1
            else:
                uncovered.append(changed)

    percentage = (covered / total) * 100 if total > 0 else 100.0
    return DiffCoverageResult(
        total_lines=total,
        covered_lines=covered,
        percentage=percentage,
        uncovered_lines=tuple(uncovered),
    )


def parse_istanbul(data: Mapping[str, Any]) -> dict[str, CoverageFile]:
    """Parse Istanbul coverage-final.json content."""
    files = {}
    for key, entry in data.items():
        if not isinstance(entry, dict):
            continue
        statement_map = {
            str(sid): LineRange(int(loc["start"]["line"]), int(loc["end"]["line"]))
            for sid, loc in (entry.get("statementMap") or {}).items()
            if isinstance(loc, dict) and "start" in loc and "end" in loc
        }
        lines = entry.get("l")
        files[key] = CoverageFile(
            path=entry.get("path", key),
            statements={str(sid): int(hits) for sid, hits in (entry.get("s") or {}).items()},
            statement_map=statement_map,
            branches={str(bid): tuple(int(h) for h in arms) for bid, arms in (entry.get("b") or {}).items()},
            functions={str(fid): int(hits) for fid, hits in (entry.get("f") or {}).items()},
            lines={int(line): int(hits) for line, hits in lines.items()} if isinstance(lines, dict) else None,
        )
    return files


def parse_coverage_py(data: Mapping[str, Any]) -> dict[str, CoverageFile]:
    """Parse coverage.py `coverage json` output."""
    files = {}
    for key, entry in (data.get("files") or {}).items():
        executed = [int(line) for line in entry.get("executed_lines", [])]
        missing = [int(line) for line in entry.get("missing_lines", [])]

        line_hits = {line: 1 for line in executed}
        line_hits.update({line: 0 for line in missing if line not in line_hits})

        arms: dict[int, list[int]] = {}
        for source, _target in entry.get("executed_branches", []):
            arms.setdefault(int(source), []).append(1)
        for source, _target in entry.get("missing_branches", []):
            arms.setdefault(int(source), []).append(0)

        functions = {}
        for name, info in (entry.get("functions") or {}).items():
            if name:
                functions[name] = len(info.get("executed_lines", []))

        files[key] = CoverageFile(
            path=key,
            statements={str(line): hits for line, hits in line_hits.items()},
            statement_map={str(line): LineRange(line, line) for line in line_hits},
            branches={str(line): tuple(hits) for line, hits in sorted(arms.items())},
            functions=functions,
            lines=line_hits,
        )
    return files


def parse_coverage(data: Mapping[str, Any]) -> dict[str, CoverageFile]:
    """Parse either supported artifact format, detected from its shape."""
    if isinstance(data.get("files"), dict) and "meta" in data:
        return parse_coverage_py(data)
    return parse_istanbul(data)


def load_coverage(path: Path) -> dict[str, CoverageFile]:
    """
    Read and parse a coverage artifact.

    Raises:
        CoverageError: If the file is missing or malformed
    """
    path = Path(path)
    if not path.is_file():
        raise CoverageError(f"Coverage file not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise CoverageError(f"Unexpected coverage format in {path}")
        return parse_coverage(data)
    except CoverageError:
        raise
    except (ValueError, KeyError, TypeError) as e:
        raise CoverageError(f"Failed to parse coverage file {path}: {e}") from e
