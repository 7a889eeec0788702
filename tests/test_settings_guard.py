"""Tests for the settings re-entrancy guard."""

from __future__ import annotations

import hashlib
from pathlib import Path

from dotai.settings_guard import SettingsSyncGuard, file_digest


def test_idle_guard_never_reports_echo(tmp_path: Path) -> None:
    path = tmp_path / "settings.yaml"
    path.write_text("a: 1\n", encoding="utf-8")
    guard = SettingsSyncGuard()

    assert guard.observe(path) is False
    assert guard.state == "idle"


def test_matching_digest_completes_the_batch(tmp_path: Path) -> None:
    path = tmp_path / "settings.yaml"
    path.write_text("a: 1\n", encoding="utf-8")
    guard = SettingsSyncGuard()
    guard.begin(hashlib.sha256(b"a: 1\n").hexdigest())

    assert guard.state == "applying"
    assert guard.observe(path) is True
    assert guard.state == "idle"
    assert guard.batch is None
    assert guard.observe(path) is False


def test_different_content_is_an_external_change(tmp_path: Path) -> None:
    path = tmp_path / "settings.yaml"
    path.write_text("a: 2\n", encoding="utf-8")
    guard = SettingsSyncGuard()
    guard.begin(hashlib.sha256(b"a: 1\n").hexdigest())

    assert guard.observe(path) is False
    assert guard.state == "idle"


def test_file_digest_of_missing_file(tmp_path: Path) -> None:
    assert file_digest(tmp_path / "missing") is None
