"""
vhdenv script templates.

Diskpart scripts for the four disk tasks, embedded as text, with the
``#[name]`` placeholder convention layered on top of diskpart's own
scripting language. Placeholders are matched case-insensitively; one
without a value is left as it is.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Union

PLACEHOLDER_PATTERN = re.compile(
    r"#\[\s*([a-z_](?:[\w.\-]*[a-z0-9_])?)\s*\]",
    re.IGNORECASE,
)


class ScriptTask(Enum):
    """Disk tasks carried out by diskpart."""

    CREATE = "create"
    ATTACH = "attach"
    DETACH = "detach"
    COMPACT = "compact"


@dataclass(frozen=True)
class CreateProperties:
    file: str
    type: str
    size: int
    style: str
    format: str
    name: str


@dataclass(frozen=True)
class AttachProperties:
    file: str
    drive: str


@dataclass(frozen=True)
class DetachProperties:
    file: str


@dataclass(frozen=True)
class CompactProperties:
    file: str


ScriptProperties = Union[CreateProperties, AttachProperties, DetachProperties, CompactProperties]

PROPERTY_TYPES: dict[ScriptTask, type] = {
    ScriptTask.CREATE: CreateProperties,
    ScriptTask.ATTACH: AttachProperties,
    ScriptTask.DETACH: DetachProperties,
    ScriptTask.COMPACT: CompactProperties,
}

# GPT places the reserved partition first, the data partition is the second.
TEMPLATES: dict[ScriptTask, str] = {
    ScriptTask.CREATE: """\
create vdisk file="#[file]" maximum=#[size] type=#[type]
select vdisk file="#[file]"
attach vdisk
convert #[style]
create partition primary
format quick fs=#[format] label="#[name]"
detach vdisk
exit
""",
    ScriptTask.ATTACH: """\
select vdisk file="#[file]"
attach vdisk
select partition 2
assign letter=#[drive]
exit
""",
    ScriptTask.DETACH: """\
select vdisk file="#[file]"
detach vdisk
exit
""",
    ScriptTask.COMPACT: """\
select vdisk file="#[file]"
attach vdisk readonly
compact vdisk
detach vdisk
exit
""",
}


def fill_placeholders(text: str, values: Mapping[str, Any]) -> str:
    """Replace ``#[key]`` with the matching value; unknown keys stay untouched."""
    lookup = {key.lower(): value for key, value in values.items() if value is not None}

    def replace(match: re.Match[str]) -> str:
        key = match.group(1).lower()
        if key not in lookup:
            return match.group(0)
        return str(lookup[key])

    return PLACEHOLDER_PATTERN.sub(replace, text)


def render(task: ScriptTask, properties: ScriptProperties) -> str:
    """Return the ready-to-run script text for the task."""
    expected = PROPERTY_TYPES[task]
    if not isinstance(properties, expected):
        raise TypeError(
            f"{task.value} script requires {expected.__name__}, "
            f"got {type(properties).__name__}"
        )
    return fill_placeholders(TEMPLATES[task], asdict(properties))
