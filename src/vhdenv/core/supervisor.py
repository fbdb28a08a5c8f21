"""
vhdenv batch supervisor.

Runs the environment's startup/shutdown script and watches it for hangs.
Such scripts may chain long installers, so wall-clock time says nothing about
whether they still work. Instead the processor time of the script and all of
its descendants is sampled; only when it stops growing for the whole idle
window is the script considered frozen and killed.

The sampling loop runs on the calling thread. The worker is blocked for the
whole run of the script, which is the point: one lifecycle task at a time.
"""

from __future__ import annotations

import os
import subprocess
import sys
import threading
import time
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path
from typing import IO, TYPE_CHECKING

import psutil

from vhdenv.core.errors import FreezeTimeout
from vhdenv.core.logging import get_logger
from vhdenv.core.models import ExecutionResult

if TYPE_CHECKING:
    from vhdenv.core.config import SupervisorConfig

logger = get_logger(__name__)

FREEZE_DETECTED = "The script no longer responds and was terminated (freeze detection)"


def build_command(script: Path, arguments: Sequence[str]) -> list[str]:
    """Interpreter command line for the script."""
    suffix = script.suffix.lower()
    if suffix in (".cmd", ".bat"):
        return ["cmd.exe", "/C", str(script), *arguments]
    if suffix == ".py":
        return [sys.executable, str(script), *arguments]
    return [str(script), *arguments]


def processor_time(process: psutil.Process) -> float:
    """Accumulated user+system time of the process and its live descendants."""
    total = 0.0
    try:
        members = [process, *process.children(recursive=True)]
    except psutil.Error:
        members = [process]
    for member in members:
        try:
            times = member.cpu_times()
        except psutil.Error:
            continue
        total += times.user + times.system
    return total


class BatchSupervisor:
    """Runs a script and kills it when it stops making progress."""

    def __init__(
        self,
        config: SupervisorConfig,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.poll_interval = config.poll_interval_seconds
        self.idle_timeout = config.idle_timeout_seconds
        self.output_grace = config.output_grace_seconds
        self.clock = clock

    def environment(
        self,
        values: Mapping[str, str] | None = None,
        keep_inherited: bool = False,
    ) -> dict[str, str]:
        """
        The inherited environment merged with the caller values. With
        ``keep_inherited`` a variable that is already set is not overridden
        (used for detach, where the values of the running environment win).
        """
        env = dict(os.environ)
        for key, value in (values or {}).items():
            if keep_inherited and key in os.environ:
                continue
            env[key] = str(value)
        return env

    def run(
        self,
        script: Path,
        arguments: Sequence[str] = (),
        values: Mapping[str, str] | None = None,
        keep_inherited: bool = False,
        context: str = "Script",
    ) -> ExecutionResult:
        """
        Run the script to completion.

        Returns a failed result for a non-zero exit code or a script that
        cannot be started; raises FreezeTimeout for a script that hangs.
        """
        command = build_command(script, arguments)
        logger.info("Running script", command=command)

        try:
            popen = subprocess.Popen(
                command,
                cwd=str(script.parent),
                env=self.environment(values, keep_inherited),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
                creationflags=getattr(subprocess, "CREATE_NO_WINDOW", 0),
            )
        except OSError as e:
            return ExecutionResult(output="", failed=True, message=str(e))

        lines: list[str] = []
        lock = threading.Lock()
        readers = [
            threading.Thread(target=self._pump, args=(stream, lines, lock), daemon=True)
            for stream in (popen.stdout, popen.stderr)
        ]
        for reader in readers:
            reader.start()

        try:
            self._watch(popen, context)
        except FreezeTimeout as e:
            raise FreezeTimeout(e.context, e.message, self._collect(readers, lines, lock)) from None
        output = self._collect(readers, lines, lock)
        failed = popen.returncode != 0
        if failed:
            logger.warning("Script failed", command=command, returncode=popen.returncode)
        return ExecutionResult(output=output, failed=failed)

    def _collect(self, readers: list[threading.Thread], lines: list[str], lock: threading.Lock) -> str:
        # A program started by the script keeps the pipes open after the
        # script exits. Its output is not waited for beyond the grace period.
        for reader in readers:
            reader.join(timeout=self.output_grace)
        with lock:
            return "\n".join(lines).strip()

    @staticmethod
    def _pump(stream: IO[str] | None, lines: list[str], lock: threading.Lock) -> None:
        if stream is None:
            return
        with stream:
            for line in stream:
                with lock:
                    lines.append(line.rstrip("\r\n"))

    def _watch(self, popen: subprocess.Popen[str], context: str) -> None:
        try:
            process = psutil.Process(popen.pid)
        except psutil.NoSuchProcess:
            popen.wait()
            return

        baseline = processor_time(process)
        deadline = self.clock() + self.idle_timeout
        while popen.poll() is None:
            time.sleep(self.poll_interval)
            current = processor_time(process)
            if current != baseline:
                baseline = current
                deadline = self.clock() + self.idle_timeout
                continue
            if self.clock() > deadline and popen.poll() is None:
                self._kill(popen, process)
                raise FreezeTimeout(context, FREEZE_DETECTED)

    @staticmethod
    def _kill(popen: subprocess.Popen[str], process: psutil.Process) -> None:
        logger.warning("Freeze detected, killing script", pid=popen.pid)
        try:
            children = process.children(recursive=True)
        except psutil.Error:
            children = []
        for member in [*children, process]:
            try:
                member.kill()
            except psutil.Error:
                pass
        try:
            popen.wait(timeout=10)
        except subprocess.TimeoutExpired:
            logger.warning("Frozen script did not exit after kill", pid=popen.pid)
