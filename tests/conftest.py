"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

from helpers import CARGO_LOCK, FAKE_LLVM_COV, FakeUploader
from platcov.context import RunContext
from platcov.model import PipelineConfig
from platcov.settings import EnvSecretStore
from platcov.ui.console import Console

COMMIT = "0123456789abcdef0123456789abcdef01234567"


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """Cargo workspace root with a lock file."""
    ws = tmp_path / "ws"
    ws.mkdir()
    (ws / "Cargo.lock").write_text(CARGO_LOCK, encoding="utf-8")
    return ws


@pytest.fixture
def console() -> Console:
    return Console(debug=False)


@pytest.fixture
def uploader() -> FakeUploader:
    return FakeUploader()


@pytest.fixture
def run_ctx(workspace: Path, console: Console, uploader: FakeUploader) -> RunContext:
    return RunContext(
        workspace=workspace,
        config=PipelineConfig(),
        console=console,
        secrets=EnvSecretStore({"CODECOV_TOKEN": "s3cr3t-token"}),
        commit=COMMIT,
        branch="main",
        uploader_factory=uploader.factory,
    )


@pytest.fixture
def fake_llvm_cov(tmp_path: Path) -> list[str]:
    """argv prefix that behaves like `cargo llvm-cov` for the coverage step."""
    script = tmp_path / "fake_llvm_cov.py"
    script.write_text(FAKE_LLVM_COV, encoding="utf-8")
    return [sys.executable, str(script)]
