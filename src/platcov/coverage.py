# coverage.py
"""lcov report parsing and coverage totals."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from .errors import CoverageError
from .model import ExclusionPattern


@dataclass
class FileCoverage:
    """Coverage counters for one source file (one SF record)."""
    path: str
    lines: Dict[int, int] = field(default_factory=dict)  # line -> hit count
    lines_found: int = 0
    lines_hit: int = 0
    functions_found: int = 0
    functions_hit: int = 0
    branches_found: int = 0
    branches_hit: int = 0

    @property
    def total_lines(self) -> int:
        # DA entries win over LF/LH summary lines when both are present
        return len(self.lines) if self.lines else self.lines_found

    @property
    def covered_lines(self) -> int:
        if self.lines:
            return sum(1 for hits in self.lines.values() if hits > 0)
        return self.lines_hit

    def merge(self, other: FileCoverage) -> None:
        for line, hits in other.lines.items():
            self.lines[line] = self.lines.get(line, 0) + hits
        self.lines_found = max(self.lines_found, other.lines_found)
        self.lines_hit = max(self.lines_hit, other.lines_hit)
        self.functions_found = max(self.functions_found, other.functions_found)
        self.functions_hit = max(self.functions_hit, other.functions_hit)
        self.branches_found = max(self.branches_found, other.branches_found)
        self.branches_hit = max(self.branches_hit, other.branches_hit)


@dataclass
class CoverageSummary:
    """
    Line coverage totals over the included files.

    Excluded files are listed for reporting only; they contribute to neither
    the covered count nor the total.
    """
    files: List[FileCoverage]
    excluded: List[str] = field(default_factory=list)

    @property
    def total_lines(self) -> int:
        return sum(f.total_lines for f in self.files)

    @property
    def covered_lines(self) -> int:
        return sum(f.covered_lines for f in self.files)

    @property
    def line_percent(self) -> float:
        total = self.total_lines
        if total == 0:
            return 0.0
        return 100.0 * self.covered_lines / total

    @property
    def function_percent(self) -> float:
        total = sum(f.functions_found for f in self.files)
        if total == 0:
            return 0.0
        return 100.0 * sum(f.functions_hit for f in self.files) / total


def _int(value: str, line_no: int) -> int:
    try:
        return int(value)
    except ValueError:
        raise CoverageError(f"malformed lcov line {line_no}: expected integer, got {value!r}") from None


def parse_lcov(text: str) -> List[FileCoverage]:
    """
    Parse lcov tracefile text into per-file records.

    Repeated SF records for the same path are merged.
    """
    by_path: Dict[str, FileCoverage] = {}
    order: List[str] = []
    current: Optional[FileCoverage] = None

    for line_no, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line:
            continue

        if line == "end_of_record":
            if current is None:
                raise CoverageError(f"malformed lcov line {line_no}: end_of_record without SF")
            if current.path in by_path:
                by_path[current.path].merge(current)
            else:
                by_path[current.path] = current
                order.append(current.path)
            current = None
            continue

        tag, sep, value = line.partition(":")
        if not sep:
            continue

        if tag == "SF":
            current = FileCoverage(path=value)
            continue
        if current is None:
            # TN and other header lines before the first SF
            continue

        if tag == "DA":
            parts = value.split(",")
            if len(parts) < 2:
                raise CoverageError(f"malformed lcov line {line_no}: {raw!r}")
            ln, hits = _int(parts[0], line_no), _int(parts[1], line_no)
            current.lines[ln] = current.lines.get(ln, 0) + hits
        elif tag == "LF":
            current.lines_found = _int(value, line_no)
        elif tag == "LH":
            current.lines_hit = _int(value, line_no)
        elif tag == "FNF":
            current.functions_found = _int(value, line_no)
        elif tag == "FNH":
            current.functions_hit = _int(value, line_no)
        elif tag == "BRF":
            current.branches_found = _int(value, line_no)
        elif tag == "BRH":
            current.branches_hit = _int(value, line_no)

    if current is not None:
        raise CoverageError(f"lcov record for {current.path!r} is missing end_of_record")

    return [by_path[p] for p in order]


def summarize(
    records: Iterable[FileCoverage],
    exclusion: ExclusionPattern | None = None,
) -> CoverageSummary:
    """Totals over records not matched by the exclusion pattern."""
    included: List[FileCoverage] = []
    excluded: List[str] = []
    for rec in records:
        if exclusion is not None and exclusion.matches(rec.path):
            excluded.append(rec.path)
        else:
            included.append(rec)
    return CoverageSummary(files=included, excluded=excluded)


def load_report(path: str | Path) -> List[FileCoverage]:
    p = Path(path)
    if not p.is_file():
        raise CoverageError(f"coverage report not found: {p}")
    try:
        text = p.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise CoverageError(f"could not read coverage report {p}: {e}") from e
    return parse_lcov(text)
