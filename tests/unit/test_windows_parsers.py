"""
Tests for vhdenv.platform.windows.parsers module.
"""

import pytest

from vhdenv.platform.windows.parsers import is_virtual_disk_record, parse_powershell_json


class TestParsePowershellJson:
    """Tests for parse_powershell_json."""

    def test_single_object(self) -> None:
        assert parse_powershell_json('{"BusType": "File Backed Virtual"}') == [{"BusType": "File Backed Virtual"}]

    def test_list(self) -> None:
        assert len(parse_powershell_json('[{"a": 1}, {"a": 2}]')) == 2

    @pytest.mark.parametrize("output", ["", "   \n", "Get-Partition : No MSFT_Partition objects found"])
    def test_empty_or_invalid(self, output: str) -> None:
        assert parse_powershell_json(output) == []


class TestIsVirtualDiskRecord:
    """Tests for is_virtual_disk_record."""

    @pytest.mark.parametrize(
        "record",
        [
            {"BusType": "File Backed Virtual"},
            {"BusType": 15},
            {"Model": "Virtual Disk"},
            {"FriendlyName": "Msft Virtual Disk"},
            {"Location": "D:\\Environments\\work.VHDX"},
        ],
    )
    def test_virtual(self, record: dict) -> None:
        assert is_virtual_disk_record(record)

    @pytest.mark.parametrize(
        "record",
        [
            {"BusType": "USB", "Model": "SanDisk Ultra"},
            {"BusType": 11, "FriendlyName": "Samsung SSD 980", "Location": "PCI Slot 1"},
            {},
        ],
    )
    def test_physical(self, record: dict) -> None:
        assert not is_virtual_disk_record(record)
