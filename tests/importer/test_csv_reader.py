"""Tests for the CSV device file reader."""

import pytest

from src.autopilot.api.exceptions import InputError, MissingColumnError
from src.autopilot.importer.adapters.csv_reader import CsvDeviceReader, match_columns

HASH = "T0FJ" + "A" * 200


class TestMatchColumns:
    """Tests for header matching."""

    def test_collection_script_headers(self):
        headers = ["Device Serial Number", "Windows Product ID", "Hardware Hash"]
        assert match_columns(headers) == (0, 2)

    def test_compact_headers(self):
        assert match_columns(["SerialNumber", "HashBlob"]) == (0, 1)

    def test_case_insensitive(self):
        assert match_columns(["HARDWARE HASH", "serial"]) == (1, 0)

    def test_missing_serial_column(self):
        with pytest.raises(MissingColumnError) as exc:
            match_columns(["Name", "Value"])
        assert "serial number" in exc.value.message
        assert exc.value.details["headers"] == ["Name", "Value"]

    def test_missing_identifier_column(self):
        with pytest.raises(MissingColumnError) as exc:
            match_columns(["Serial", "Name"])
        assert "hardware identifier" in exc.value.message


class TestCsvDeviceReader:
    """Tests for CsvDeviceReader.read."""

    @pytest.fixture
    def reader(self):
        return CsvDeviceReader()

    def test_reads_records_with_row_numbers(self, reader):
        content = (
            "Device Serial Number,Windows Product ID,Hardware Hash\n"
            f"SN001,,{HASH}\n"
            f"SN002,,{HASH}\n"
        ).encode()

        records = reader.read(content)

        assert [r.serial_number for r in records] == ["SN001", "SN002"]
        assert [r.row_number for r in records] == [2, 3]
        assert records[0].hardware_identifier == HASH
        assert records[0].group_tag is None

    def test_reads_group_tag(self, reader):
        content = (
            "Device Serial Number,Hardware Hash,Group Tag\n"
            f"SN001,{HASH},Sales\n"
            f"SN002,{HASH},\n"
        ).encode()

        records = reader.read(content)

        assert records[0].group_tag == "Sales"
        assert records[1].group_tag is None

    def test_trims_cells_and_skips_blank_lines(self, reader):
        content = (
            "Serial,Hash\n"
            f"  SN001  , {HASH} \n"
            "\n"
            " , \n"
            f"SN003,{HASH}\n"
        ).encode()

        records = reader.read(content)

        assert [r.serial_number for r in records] == ["SN001", "SN003"]
        assert records[0].hardware_identifier == HASH
        assert records[1].row_number == 5

    def test_keeps_rows_with_missing_values(self, reader):
        """Incomplete rows are left for the validator to report."""
        content = f"Serial,Hash\nSN001,\n,{HASH}\n".encode()

        records = reader.read(content)

        assert len(records) == 2
        assert records[0].hardware_identifier == ""
        assert records[1].serial_number == ""

    def test_semicolon_delimiter(self, reader):
        content = f"Serial;Hash\nSN001;{HASH}\nSN002;{HASH}\n".encode()
        records = reader.read(content)
        assert [r.serial_number for r in records] == ["SN001", "SN002"]

    def test_utf8_bom_is_ignored(self, reader):
        content = f"Serial,Hash\nSN001,{HASH}\n".encode("utf-8-sig")
        records = reader.read(content)
        assert records[0].serial_number == "SN001"

    def test_empty_file(self, reader):
        with pytest.raises(InputError) as exc:
            reader.read(b"")
        assert exc.value.code == "EMPTY_FILE"

    def test_header_only_yields_no_records(self, reader):
        assert reader.read(b"Serial,Hash\n") == []

    def test_missing_columns(self, reader):
        with pytest.raises(MissingColumnError):
            reader.read(b"Name,Value\nfoo,bar\n")

    def test_read_path_missing_file(self, reader, tmp_path):
        with pytest.raises(InputError) as exc:
            reader.read_path(tmp_path / "nope.csv")
        assert exc.value.code == "INPUT_FILE_UNREADABLE"

    def test_read_path(self, reader, tmp_path):
        path = tmp_path / "devices.csv"
        path.write_text(f"Device Serial Number,Hardware Hash\nSN001,{HASH}\n")

        records = reader.read_path(path)

        assert records[0].serial_number == "SN001"
