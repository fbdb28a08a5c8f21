"""
Tests for vhdenv.core.mirror module.
"""

import os
from pathlib import Path

from vhdenv.core.messages import Severity
from vhdenv.core.mirror import TemplateFileMirror

from conftest import FakeBackend, RecordingNotifier


def make_mirror(backend: FakeBackend, notifier: RecordingNotifier, customs: list[str]) -> TemplateFileMirror:
    return TemplateFileMirror(backend, notifier, customs, {"user": "alice", "proxy": "proxy:8080"})


class TestTemplateFileMirror:
    """Tests for the customized files."""

    def test_first_run_creates_template(
        self, backend: FakeBackend, notifier: RecordingNotifier, disk
    ) -> None:
        root = backend.mount("E", disk.file)
        settings = root / "Settings" / "app.ini"
        settings.parent.mkdir()
        settings.write_text("user=#[user]\nhost=#[host]\n")

        make_mirror(backend, notifier, ["\\Settings\\app.ini"]).apply("E:")

        assert settings.read_text() == "user=alice\nhost=#[host]\n"
        template = root / "Settings" / "app.ini-template"
        assert template.read_text() == "user=#[user]\nhost=#[host]\n"
        assert notifier.of(Severity.TRACE)

    def test_rerun_uses_template(self, backend: FakeBackend, notifier: RecordingNotifier, disk) -> None:
        root = backend.mount("E", disk.file)
        settings = root / "app.ini"
        settings.write_text("proxy=#[proxy]")

        mirror = make_mirror(backend, notifier, ["/app.ini"])
        mirror.apply("E:")
        mirror.values["proxy"] = "other:3128"
        mirror.apply("E:")

        assert settings.read_text() == "proxy=other:3128"

    def test_edited_file_becomes_new_template(
        self, backend: FakeBackend, notifier: RecordingNotifier, disk
    ) -> None:
        root = backend.mount("E", disk.file)
        settings = root / "app.ini"
        settings.write_text("user=#[user]")
        mirror = make_mirror(backend, notifier, ["/app.ini"])
        mirror.apply("E:")

        settings.write_text("name=#[user]")
        template = root / "app.ini-template"
        stamp = template.stat().st_mtime + 10
        os.utime(settings, (stamp, stamp))
        mirror.apply("E:")

        assert settings.read_text() == "name=alice"
        assert template.read_text() == "name=#[user]"

    def test_relative_and_missing_entries_are_ignored(
        self, backend: FakeBackend, notifier: RecordingNotifier, disk
    ) -> None:
        root = backend.mount("E", disk.file)
        (root / "app.ini").write_text("user=#[user]")
        (root / "folder").mkdir()

        make_mirror(backend, notifier, ["app.ini", "\\missing.ini", "\\folder", "", "\\"]).apply("E:")

        assert (root / "app.ini").read_text() == "user=#[user]"
        assert notifier.messages == []

    def test_target_path(self, backend: FakeBackend, notifier: RecordingNotifier) -> None:
        mirror = make_mirror(backend, notifier, [])
        assert mirror.target("E:", "\\\\Settings\\app.ini") == backend.drive_path("E:") / "Settings" / "app.ini"
        assert mirror.target("E:", "Settings/app.ini") is None
