"""Pytest configuration for the fragments client test suite."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

import pytest

from tests.fakes import RecordingExecutor, ScriptedTransport


def _normalise_marker_name(name: str) -> str:
    return name.replace("-", "_")


_SUITE_STASH_KEY = object()


@dataclass(frozen=True)
class SuiteDefinition:
    """Describe how a logical test suite should filter collected tests."""

    name: str
    include_any: Sequence[str] = ()
    exclude_any: Sequence[str] = ()
    description: str = ""

    def should_run(self, item: pytest.Item) -> bool:
        markers = {_normalise_marker_name(marker.name) for marker in item.iter_markers()}
        include = {_normalise_marker_name(name) for name in self.include_any}
        exclude = {_normalise_marker_name(name) for name in self.exclude_any}
        if include and not markers & include:
            return False
        return not markers & exclude


SUITES: Mapping[str, SuiteDefinition] = {
    "core": SuiteDefinition(
        name="core",
        exclude_any=("integration",),
        description="Fast module-level checks",
    ),
    "service": SuiteDefinition(
        name="service",
        description="Core suite plus CLI flows",
    ),
}


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--suite",
        action="store",
        choices=sorted(SUITES),
        help="Select the logical test suite to run",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "unit: fast module-level tests")
    config.addinivalue_line(
        "markers", "integration: tests that wire several components through the CLI"
    )
    suite_name = config.getoption("--suite")
    if suite_name is not None:
        config.stash[_SUITE_STASH_KEY] = SUITES[suite_name]


@pytest.hookimpl(trylast=True)
def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    suite = config.stash.get(_SUITE_STASH_KEY, None)
    if suite is None:
        return
    selected = [item for item in items if suite.should_run(item)]
    deselected = [item for item in items if not suite.should_run(item)]
    if deselected:
        config.hook.pytest_deselected(items=deselected)
        items[:] = selected


@pytest.fixture(autouse=True)
def _isolated_home(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    """Keep log files and persisted configuration inside the test directory."""
    monkeypatch.setenv("FRAGMENTS_LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    return tmp_path


@pytest.fixture
def scripted_transport() -> ScriptedTransport:
    return ScriptedTransport()


@pytest.fixture
def recording_executor() -> RecordingExecutor:
    return RecordingExecutor()
