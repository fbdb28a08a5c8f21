"""
Tests for vhdenv.core.diskpart module.
"""

from pathlib import Path

from vhdenv.core.config import DiskConfig
from vhdenv.core.diskpart import DiskpartInvoker, classify
from vhdenv.core.templates import CreateProperties, DetachProperties, ScriptTask
from vhdenv.platform.base import CommandResult

from conftest import FakeBackend


class TestClassify:
    """Tests for the success/failure decision."""

    def test_success(self) -> None:
        result = classify(CommandResult(0, "  DiskPart successfully completed.\n", "", ["diskpart"]))
        assert result.success
        assert result.output == "DiskPart successfully completed."

    def test_error_text_with_zero_exit_code_fails(self) -> None:
        result = classify(CommandResult(0, "", "Virtual Disk Service error", ["diskpart"]))
        assert result.failed
        assert "Virtual Disk Service error" in result.output

    def test_nonzero_exit_code_fails(self) -> None:
        result = classify(CommandResult(1, "partial output", "", ["diskpart"]))
        assert result.failed
        assert result.output == "partial output"

    def test_both_streams_are_kept(self) -> None:
        result = classify(CommandResult(1, "out", "err", ["diskpart"]))
        assert result.output == "out\nerr"

    def test_start_failure(self) -> None:
        result = classify(CommandResult(-1, "", "", ["diskpart"], error="file not found"))
        assert result.failed
        assert result.message == "file not found"


class TestDiskpartInvoker:
    """Tests for DiskpartInvoker."""

    def test_runs_tool_with_script_file(self, backend: FakeBackend, disk_config: DiskConfig) -> None:
        invoker = DiskpartInvoker(backend, disk_config)
        result = invoker.run(ScriptTask.DETACH, DetachProperties(file="D:\\work.vhdx"))

        assert result.success
        command = backend.commands[-1]
        assert command[:2] == ["diskpart.exe", "/s"]
        assert Path(command[2]) == disk_config.script_directory / "diskpart.detach"
        assert backend.scripts[-1] == ("detach", 'select vdisk file="D:\\work.vhdx"\ndetach vdisk\nexit\n')

    def test_script_file_removed_after_run(self, backend: FakeBackend, disk_config: DiskConfig) -> None:
        invoker = DiskpartInvoker(backend, disk_config)
        invoker.run(ScriptTask.DETACH, DetachProperties(file="D:\\work.vhdx"))
        assert not invoker.script_file(ScriptTask.DETACH).exists()

    def test_script_file_removed_after_failure(self, backend: FakeBackend, disk_config: DiskConfig) -> None:
        backend.fail("detach", stderr="failed")
        invoker = DiskpartInvoker(backend, disk_config)
        result = invoker.run(ScriptTask.DETACH, DetachProperties(file="D:\\work.vhdx"))
        assert result.failed
        assert not invoker.script_file(ScriptTask.DETACH).exists()

    def test_stale_script_file_is_replaced(self, backend: FakeBackend, disk_config: DiskConfig) -> None:
        invoker = DiskpartInvoker(backend, disk_config)
        stale = invoker.script_file(ScriptTask.DETACH)
        stale.write_text("garbage from a crashed run")

        invoker.run(ScriptTask.DETACH, DetachProperties(file="D:\\work.vhdx"))
        assert "garbage" not in backend.scripts[-1][1]

    def test_failure_output_is_verbatim(self, backend: FakeBackend, disk_config: DiskConfig) -> None:
        backend.fail("create", returncode=1, stderr="The system cannot find the path specified.")
        invoker = DiskpartInvoker(backend, disk_config)
        properties = CreateProperties(
            file="D:\\work.vhdx", type="expandable", size=128000, style="GPT", format="NTFS", name="work"
        )
        result = invoker.run(ScriptTask.CREATE, properties)
        assert result.failed
        assert result.output == "The system cannot find the path specified."

    def test_non_ascii_script_fails_without_running(self, backend: FakeBackend, disk_config: DiskConfig) -> None:
        invoker = DiskpartInvoker(backend, disk_config)
        result = invoker.run(ScriptTask.DETACH, DetachProperties(file="D:\\wörk.vhdx"))
        assert result.failed
        assert result.message
        assert backend.commands == []

    def test_default_script_directory_is_temp(self, backend: FakeBackend) -> None:
        import tempfile

        invoker = DiskpartInvoker(backend, DiskConfig())
        assert invoker.script_file(ScriptTask.ATTACH) == Path(tempfile.gettempdir()) / "diskpart.attach"
