"""
Windows output parsers.

Parsers for PowerShell output.
"""

from __future__ import annotations

import json
from typing import Any


def parse_powershell_json(output: str) -> list[dict[str, Any]]:
    """Parse JSON output from PowerShell commands."""
    output = output.strip()
    if not output:
        return []

    try:
        data = json.loads(output)
        if isinstance(data, list):
            return data
        return [data]
    except json.JSONDecodeError:
        return []


def is_virtual_disk_record(record: dict[str, Any]) -> bool:
    """Whether a Get-Disk record describes a file backed virtual disk."""
    bus_type = record.get("BusType")
    if isinstance(bus_type, str) and "virtual" in bus_type.lower():
        return True
    # Get-Disk reports BusType 15 for "File Backed Virtual"
    if bus_type == 15:
        return True

    for key in ("Model", "FriendlyName"):
        value = record.get(key)
        if isinstance(value, str) and "virtual disk" in value.lower():
            return True

    location = record.get("Location")
    return isinstance(location, str) and location.lower().endswith((".vhd", ".vhdx"))
