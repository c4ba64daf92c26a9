# ruff: noqa: E402

import sys
from pathlib import Path

import pytest
from _pytest.doctest import DoctestModule

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

import syzsup.log as syzsup_log

DOCTEST_MODULES = {
    ROOT / "src" / "syzsup" / "__init__.py",
    ROOT / "src" / "syzsup" / "cloud.py",
    ROOT / "src" / "syzsup" / "config.py",
    ROOT / "src" / "syzsup" / "io.py",
    ROOT / "src" / "syzsup" / "kernel.py",
    ROOT / "src" / "syzsup" / "loop.py",
    ROOT / "src" / "syzsup" / "models.py",
    ROOT / "src" / "syzsup" / "paths.py",
    ROOT / "src" / "syzsup" / "sources" / "kernel.py",
}


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SYZSUP_NO_COLOR", "1")
    monkeypatch.setattr(syzsup_log, "_configured_level", None)
    monkeypatch.setattr(syzsup_log, "_no_color_override", None)


def pytest_collect_file(
    parent: pytest.Collector, file_path: Path
) -> DoctestModule | None:
    path = file_path if isinstance(file_path, Path) else Path(str(file_path))
    if path in DOCTEST_MODULES:
        return DoctestModule.from_parent(parent, path=path)
    return None
