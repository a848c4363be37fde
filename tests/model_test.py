from __future__ import annotations

from pathlib import PureWindowsPath

import pytest

from platcov.dsl import job, on, sh
from platcov.errors import ConfigError
from platcov.model import (
    ColorMode,
    ExclusionPattern,
    PipelineConfig,
    TriggerEvent,
    Triggers,
    host_os,
    runner_os,
    validate_jobs,
)


@pytest.mark.parametrize(
    "label, expected",
    [
        ("windows-latest", "Windows"),
        ("windows-2022", "Windows"),
        ("ubuntu-latest", "Linux"),
        ("macos-14", "macOS"),
    ],
)
def test_runner_os(label, expected):
    assert runner_os(label) == expected


def test_runner_os_rejects_unknown_label():
    with pytest.raises(ConfigError):
        runner_os("solaris-10")


def test_host_os_maps_darwin():
    assert host_os("Darwin") == "macOS"
    assert host_os("Linux") == "Linux"


class TestTriggers:
    def test_push_to_main(self):
        assert Triggers().matches(TriggerEvent("push", branch="main"))

    def test_push_to_other_branch(self):
        assert not Triggers().matches(TriggerEvent("push", branch="feature/rain"))

    def test_pull_request_filters_on_target_branch(self):
        t = Triggers()
        assert t.matches(TriggerEvent("pull_request", branch="feature/rain", base_branch="main"))
        assert not t.matches(TriggerEvent("pull_request", branch="main", base_branch="release"))

    def test_manual_dispatch(self):
        assert Triggers().matches(TriggerEvent("workflow_dispatch"))
        assert not on(workflow_dispatch=False).matches(TriggerEvent("workflow_dispatch"))

    def test_unrecognized_event_matches_nothing(self):
        event = TriggerEvent("schedule", branch="main")
        assert not event.recognized
        assert not Triggers().matches(event)


class TestExclusionPattern:
    pattern = ExclusionPattern(r"src/bin/.*|src/tui/.*\.rs")

    def test_excludes_binaries_and_tui(self):
        assert self.pattern.matches("/home/ci/rain/src/bin/main.rs")
        assert self.pattern.matches("src/tui/app.rs")

    def test_keeps_library_code(self):
        assert not self.pattern.matches("src/rain/rain_drop.rs")
        assert not self.pattern.matches("src/tui_helpers.rs")

    def test_windows_paths_are_normalised(self):
        assert self.pattern.matches(PureWindowsPath(r"C:\ci\rain\src\bin\main.rs"))
        assert self.pattern.matches(r"C:\ci\rain\src\tui\app.rs")

    def test_malformed_pattern_rejected_at_construction(self):
        with pytest.raises(ConfigError):
            ExclusionPattern("src/(bin")

    def test_empty_pattern_rejected(self):
        with pytest.raises(ConfigError):
            ExclusionPattern("")


def test_color_mode_is_passed_as_cargo_env():
    assert PipelineConfig().step_env() == {"CARGO_TERM_COLOR": "always"}
    assert PipelineConfig(color=ColorMode.NEVER).step_env() == {"CARGO_TERM_COLOR": "never"}


def test_job_requires_steps():
    with pytest.raises(ValueError):
        job("empty", runs_on="ubuntu-latest")


def test_job_rejects_unknown_runner():
    with pytest.raises(ConfigError):
        job("x", sh("noop", "true"), runs_on="plan9-latest")


def test_job_default_cwd_applies_to_steps_without_one():
    j = job("x", sh("a", "true"), sh("b", "true", cwd="sub"), runs_on="ubuntu-latest", cwd="crates")
    assert [s.cwd for s in j.steps] == ["crates", "sub"]


def test_validate_jobs_rejects_duplicates():
    a = job("dup", sh("a", "true"), runs_on="ubuntu-latest")
    b = job("dup", sh("b", "true"), runs_on="windows-latest")
    with pytest.raises(ConfigError):
        validate_jobs([a, b])
