from __future__ import annotations

import pytest

from helpers import LCOV_REPORT
from platcov.coverage import load_report, parse_lcov, summarize
from platcov.errors import ConfigError, CoverageError
from platcov.model import ExclusionPattern
from platcov.step_workflows.coverage import DEFAULT_EXCLUDE, coverage_command, coverage_step
from platcov.step_workflows.test import cargo_test_command, cargo_test_step


def test_excluded_files_leave_numerator_and_denominator():
    records = parse_lcov(LCOV_REPORT)

    summary = summarize(records, ExclusionPattern(DEFAULT_EXCLUDE))

    assert summary.line_percent == pytest.approx(50.0)
    assert (summary.covered_lines, summary.total_lines) == (2, 4)
    assert summary.excluded == ["/work/rain/src/bin/main.rs"]


def test_without_exclusion_everything_counts():
    summary = summarize(parse_lcov(LCOV_REPORT))

    assert summary.line_percent == pytest.approx(20.0)
    assert summary.excluded == []


def test_summary_lines_used_when_no_da_entries():
    text = "SF:src/lib.rs\nLF:10\nLH:7\nFNF:4\nFNH:1\nend_of_record\n"

    summary = summarize(parse_lcov(text))

    assert summary.line_percent == pytest.approx(70.0)
    assert summary.function_percent == pytest.approx(25.0)


def test_repeated_records_for_one_file_are_merged():
    text = (
        "SF:src/lib.rs\nDA:1,0\nDA:2,1\nend_of_record\n"
        "SF:src/lib.rs\nDA:1,3\nDA:3,0\nend_of_record\n"
    )

    records = parse_lcov(text)

    assert len(records) == 1
    assert records[0].lines == {1: 3, 2: 1, 3: 0}
    assert records[0].covered_lines == 2


def test_empty_report_is_zero_percent():
    assert summarize(parse_lcov("")).line_percent == 0.0


def test_truncated_record_is_an_error():
    with pytest.raises(CoverageError):
        parse_lcov("SF:src/lib.rs\nDA:1,1\n")


def test_garbage_counter_is_an_error():
    with pytest.raises(CoverageError):
        parse_lcov("SF:src/lib.rs\nDA:one,1\nend_of_record\n")


def test_load_report_missing_file(tmp_path):
    with pytest.raises(CoverageError):
        load_report(tmp_path / "lcov.info")


def test_coverage_command_applies_exclusion_at_instrumentation():
    step = coverage_step("Generate code coverage")

    assert coverage_command(step.data) == [
        "cargo", "llvm-cov", "--workspace", "--lcov",
        "--output-path", "lcov.info",
        "--ignore-filename-regex", DEFAULT_EXCLUDE,
    ]


def test_coverage_step_rejects_bad_regex_at_definition():
    with pytest.raises(ConfigError):
        coverage_step("Generate code coverage", exclude="src/bin/(.*")


def test_platform_test_command_disables_optional_features():
    step = cargo_test_step("Run unit tests only")

    cmd = cargo_test_command(step.data)

    assert cmd == ["cargo", "test", "--lib", "--workspace", "--no-default-features"]
    assert not any(arg.startswith("--features") or arg == "--all-features" for arg in cmd)


def test_explicit_features_are_opt_in():
    step = cargo_test_step("with features", default_features=True, features=["tui", "serde"])

    assert cargo_test_command(step.data) == ["cargo", "test", "--lib", "--workspace", "--features", "tui,serde"]
