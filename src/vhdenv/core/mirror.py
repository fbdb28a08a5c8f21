"""
vhdenv settings mirror.

Applies the configured environment values to files on the attached drive.
A customized file keeps a pristine copy of itself beside it as
``<file>-template``; on every attach the file is rewritten from that copy
with its ``#[key]`` placeholders filled in. Editing the file itself is
still possible: a file that is newer than its template becomes the new
template.
"""

from __future__ import annotations

import os
import re
import shutil
from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from vhdenv.core.logging import get_logger
from vhdenv.core.messages import Severity
from vhdenv.core.templates import fill_placeholders

if TYPE_CHECKING:
    from vhdenv.core.messages import Notifier
    from vhdenv.platform.base import PlatformBackend

logger = get_logger(__name__)

TEMPLATE_SUFFIX = "-template"


class SettingsMirror(Protocol):
    """Collaborator that prepares the attached drive before the startup script runs."""

    def apply(self, drive: str) -> None: ...


class TemplateFileMirror:
    """Rewrites the configured files of the drive from their templates."""

    CONTEXT = "Attach"

    def __init__(
        self,
        backend: PlatformBackend,
        notifier: Notifier,
        customs: list[str],
        values: Mapping[str, str],
    ) -> None:
        self.backend = backend
        self.notifier = notifier
        self.customs = list(customs)
        self.values = dict(values)

    def target(self, drive: str, entry: str) -> Path | None:
        """
        File on the drive an entry refers to. Only drive-absolute entries
        (``\\Settings\\app.ini``) are accepted, anything else is ignored.
        """
        entry = entry.strip().replace("\\", "/")
        if not entry.startswith("/"):
            return None
        relative = re.sub(r"^/+", "", entry)
        if not relative:
            return None
        return self.backend.drive_path(drive) / relative

    def apply(self, drive: str) -> None:
        for entry in self.customs:
            target = self.target(drive, entry)
            if target is None or not target.is_file():
                continue
            self.notifier.publish(Severity.TRACE, self.CONTEXT, f"Customizing {target}")
            self.customize(target)

    def customize(self, target: Path) -> None:
        template = target.with_name(target.name + TEMPLATE_SUFFIX)
        if not template.exists() or target.stat().st_mtime > template.stat().st_mtime:
            shutil.copyfile(target, template)
        content = template.read_text(encoding="utf-8")
        target.write_text(fill_placeholders(content, self.values), encoding="utf-8")
        # Template must stay newer than the rewritten file
        os.utime(template)
        logger.debug("File customized", file=str(target), template=str(template))

