"""CLI fixtures: isolated config, fake credentials, a seeded store."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest


@pytest.fixture
def cli_env(tmp_path: Path, monkeypatch) -> Path:
    """Run commands from an empty project dir with no global config."""
    project = tmp_path / "project"
    project.mkdir()
    monkeypatch.chdir(project)
    monkeypatch.setattr("docqa.config._GLOBAL_CONFIG_PATH", tmp_path / "no-global.yaml")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    return project


@pytest.fixture
def docs_file(tmp_path: Path) -> Path:
    path = tmp_path / "docs.json"
    path.write_text(
        json.dumps(
            [
                {
                    "url": "https://docs.example.com/enrollment",
                    "title": "Student Enrollment",
                    "content": "Navigate to Students > Enroll New Student and fill in the form.",
                    "metadata": {"section": "Students"},
                },
                {
                    "url": "https://docs.example.com/attendance",
                    "title": "Attendance Codes",
                    "content": "Attendance codes are configured under Setup > Attendance.",
                },
            ]
        ),
        encoding="utf-8",
    )
    return path


@pytest.fixture(autouse=True)
def _restore_root_logger():
    """The CLI callback reconfigures the root logger; undo it after each test."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
