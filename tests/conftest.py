"""
Pytest configuration and fixtures for vhdenv tests.
"""

import re
import sys
import tempfile
import threading
from pathlib import Path
from typing import Any, Callable, Generator

import psutil
import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from vhdenv.core.config import DiskConfig, ReaperConfig, VhdEnvConfig  # noqa: E402
from vhdenv.core.messages import Message, Severity  # noqa: E402
from vhdenv.core.models import DiskImage, ManagedProcess  # noqa: E402
from vhdenv.platform.base import CommandResult, PlatformBackend  # noqa: E402

FILE_PATTERN = re.compile(r'file="([^"]+)"')
LETTER_PATTERN = re.compile(r"assign letter=([A-Za-z])")


class FakeBackend(PlatformBackend):
    """
    In-memory stand-in for the Windows backend.

    Drives are directories below ``root``; a drive counts as mounted while its
    letter is in ``mounted``. Diskpart runs are simulated from the script text,
    so create/attach/detach have the effect the real tool would have.
    """

    def __init__(self, root: Path, diskpart: str = "diskpart.exe") -> None:
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)
        self.diskpart = diskpart
        self.mounted: dict[str, str] = {}
        self.labels: dict[str, str] = {}
        self.virtual = True
        self.processes: dict[int, ManagedProcess] = {}
        self.host: set[int] = set()
        self.commands: list[list[str]] = []
        self.scripts: list[tuple[str, str]] = []
        self.failures: dict[str, CommandResult] = {}
        self.closable: set[int] = set()
        self.tree_killable: set[int] = set()
        self.unkillable: set[int] = set()
        self.closed: list[int] = []
        self.tree_killed: list[int] = []
        self.force_killed: list[int] = []
        self.shortcuts: list[tuple[Path, str, str]] = []
        self.shortcut_result: CommandResult | None = None

    @property
    def name(self) -> str:
        return "fake"

    def is_admin(self) -> bool:
        return True

    # ==================== Diskpart simulation ====================

    def run_command(self, command: list[str], timeout: float | None = None) -> CommandResult:
        self.commands.append(list(command))
        if command[0] != self.diskpart:
            return CommandResult(0, "", "", command)

        script_file = Path(command[2])
        task = script_file.suffix.lstrip(".")
        script = script_file.read_text(encoding="ascii")
        self.scripts.append((task, script))

        if task in self.failures:
            return self.failures[task]
        self._simulate(task, script)
        return CommandResult(0, "DiskPart successfully completed.", "", command)

    def _simulate(self, task: str, script: str) -> None:
        disk_file = Path(FILE_PATTERN.search(script).group(1))
        if task == "create":
            disk_file.write_bytes(b"vhdx")
        elif task == "attach":
            letter = LETTER_PATTERN.search(script).group(1).upper()
            self.mount(letter, disk_file)
        elif task == "detach":
            for letter, file in list(self.mounted.items()):
                if file == str(disk_file):
                    del self.mounted[letter]

    def diskpart_tasks(self) -> list[str]:
        return [task for task, _ in self.scripts]

    def fail(self, task: str, returncode: int = 1, stdout: str = "", stderr: str = "") -> None:
        self.failures[task] = CommandResult(returncode, stdout, stderr, [self.diskpart, "/s", task])

    # ==================== Drives ====================

    def mount(self, letter: str, disk_file: Path, label: str | None = None) -> Path:
        letter = letter[0].upper()
        self.mounted[letter] = str(disk_file)
        self.labels[letter] = label if label is not None else disk_file.stem
        path = self.drive_path(letter + ":")
        path.mkdir(parents=True, exist_ok=True)
        return path

    def drive_path(self, drive: str) -> Path:
        return self.root / drive[0].upper()

    def drive_exists(self, drive: str) -> bool:
        return drive[0].upper() in self.mounted

    def get_volume_label(self, drive: str) -> str | None:
        return self.labels.get(drive[0].upper())

    def is_virtual_disk(self, drive: str) -> bool:
        return self.virtual

    def create_shortcut(
        self,
        shortcut: Path,
        target: str,
        arguments: str,
        icon: str | None = None,
    ) -> CommandResult:
        self.shortcuts.append((shortcut, target, arguments))
        if self.shortcut_result is not None:
            return self.shortcut_result
        shortcut.write_bytes(b"lnk")
        return CommandResult(0, "", "", ["powershell"])

    # ==================== Processes ====================

    def spawn(self, pid: int, exe: str, name: str | None = None) -> ManagedProcess:
        process = ManagedProcess(pid=pid, name=name or Path(exe.replace("\\", "/")).name, exe=exe)
        self.processes[pid] = process
        return process

    def list_processes(self) -> list[ManagedProcess]:
        return list(self.processes.values())

    def close_main_window(self, pid: int) -> None:
        self.closed.append(pid)
        if pid in self.closable:
            self.processes.pop(pid, None)

    def kill_tree(self, pid: int) -> CommandResult:
        self.tree_killed.append(pid)
        if pid in self.tree_killable:
            self.processes.pop(pid, None)
            return CommandResult(0, "SUCCESS", "", ["taskkill", "/t", "/pid", str(pid)])
        return CommandResult(1, "", "ERROR: access denied", ["taskkill", "/t", "/pid", str(pid)])

    def host_process_ids(self) -> set[int]:
        return set(self.host)

    def process_exists(self, pid: int) -> bool:
        return pid in self.processes

    def kill_process(self, pid: int) -> None:
        self.force_killed.append(pid)
        if pid in self.unkillable:
            raise psutil.AccessDenied(pid)
        if pid not in self.processes:
            raise psutil.NoSuchProcess(pid)
        del self.processes[pid]


class RecordingNotifier:
    """Synchronous notifier that keeps every published message."""

    def __init__(self) -> None:
        self.messages: list[Message] = []
        self._lock = threading.Lock()

    def publish(self, severity: Severity, context: str, text: Any = "", data: Any = None) -> None:
        with self._lock:
            self.messages.append(Message(severity=severity, context=context, text=str(text or ""), data=data))

    def of(self, severity: Severity) -> list[Message]:
        return [m for m in self.messages if m.severity is severity]

    def texts(self, severity: Severity | None = None) -> list[str]:
        return [m.text for m in self.messages if severity is None or m.severity is severity]


class RecordingSubscriber:
    """Bus subscriber that collects messages, optionally failing on demand."""

    def __init__(self, fail: bool = False) -> None:
        self.messages: list[Message] = []
        self.fail = fail
        self.received = threading.Event()

    def receive(self, message: Message) -> None:
        self.messages.append(message)
        self.received.set()
        if self.fail:
            raise RuntimeError("subscriber failure")


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def backend(temp_dir: Path) -> FakeBackend:
    return FakeBackend(temp_dir / "drives")


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def disk_config(temp_dir: Path) -> DiskConfig:
    return DiskConfig(script_directory=temp_dir / "scripts")


@pytest.fixture
def reaper_config() -> ReaperConfig:
    return ReaperConfig(settle_seconds=2.0, force_attempts=3)


@pytest.fixture
def disk(temp_dir: Path) -> DiskImage:
    home = temp_dir / "home"
    home.mkdir()
    return DiskImage.of("E:", home / "work.vhdx")


@pytest.fixture
def sample_config(temp_dir: Path, disk_config: DiskConfig) -> VhdEnvConfig:
    """Create a sample configuration for testing."""
    config = VhdEnvConfig(disk=disk_config)
    config.logging.file_enabled = False
    config.logging.log_directory = temp_dir / "logs"
    config.reaper.settle_seconds = 0
    config.ensure_directories()
    return config


@pytest.fixture
def no_sleep() -> Callable[[float], None]:
    def sleep(seconds: float) -> None:
        return None

    return sleep


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow running tests")
