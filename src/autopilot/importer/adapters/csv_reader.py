"""CSV device file reader.

Reads delimited files containing device serial numbers and hardware
hashes, as exported by the hardware-hash collection script:

| Device Serial Number | Windows Product ID | Hardware Hash | Group Tag |
|----------------------|--------------------|---------------|-----------|
| SN12345              |                    | T0FJAgEAHAAA… | Sales     |

- First row is treated as header
- Serial number and hardware hash columns are required
- Group tag column is optional
"""

import csv
import io
import logging
from pathlib import Path
from typing import Optional, Union

from ...api.exceptions import InputError, MissingColumnError
from ..domain.entities import DeviceRecord

logger = logging.getLogger(__name__)

# Substrings searched (case-insensitive) in header names, first match wins
SERIAL_KEYWORDS = ("device serial", "serial")
IDENTIFIER_KEYWORDS = ("hardware", "hash")
GROUP_TAG_KEYWORDS = ("group tag", "grouptag", "group_tag", "order id", "orderid")


def _find_column(
    headers: list[str],
    keywords: tuple[str, ...],
    exclude: tuple[Optional[int], ...] = (),
) -> Optional[int]:
    for idx, cell in enumerate(headers):
        if idx in exclude or cell is None:
            continue
        header = str(cell).strip().lower()
        if any(keyword in header for keyword in keywords):
            return idx
    return None


def match_columns(headers: list[str]) -> tuple[int, int]:
    """Choose the serial number and hardware identifier columns.

    Args:
        headers: Header row of the input file

    Returns:
        Tuple of (serial_col_index, identifier_col_index)

    Raises:
        MissingColumnError: If either column cannot be matched
    """
    serial_col = _find_column(headers, SERIAL_KEYWORDS)
    if serial_col is None:
        raise MissingColumnError("serial number", headers=list(headers))

    identifier_col = _find_column(headers, IDENTIFIER_KEYWORDS, exclude=(serial_col,))
    if identifier_col is None:
        raise MissingColumnError("hardware identifier", headers=list(headers))

    return serial_col, identifier_col


class CsvDeviceReader:
    """Parse device records out of a delimited text file.

    Rows are returned as-is (trimmed) so the validator can report every
    problem by row position; only completely blank lines are skipped.
    """

    def read_path(self, path: Union[str, Path]) -> list[DeviceRecord]:
        """Read a device file from disk."""
        file_path = Path(path)
        try:
            content = file_path.read_bytes()
        except OSError as e:
            raise InputError(
                f"Cannot read input file {file_path}: {e.strerror or e}",
                code="INPUT_FILE_UNREADABLE",
                cause=e,
            )
        return self.read(content)

    def read(self, file_content: bytes) -> list[DeviceRecord]:
        """Parse raw file bytes.

        Raises:
            InputError: If the file cannot be decoded or has no header row
            MissingColumnError: If a required column is missing
        """
        try:
            text = file_content.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise InputError(
                "Input file is not UTF-8 text",
                code="INPUT_FILE_ENCODING",
                cause=e,
            )

        try:
            dialect = csv.Sniffer().sniff(text[:1024], delimiters=",;\t")
        except csv.Error:
            dialect = csv.excel

        reader = csv.reader(io.StringIO(text), dialect)

        try:
            header_row = next(reader)
        except StopIteration:
            raise InputError("Input file is empty", code="EMPTY_FILE")

        serial_col, identifier_col = match_columns(header_row)
        group_col = _find_column(
            header_row, GROUP_TAG_KEYWORDS, exclude=(serial_col, identifier_col)
        )
        group_header = header_row[group_col] if group_col is not None else None
        logger.debug(
            f"Matched columns: serial={header_row[serial_col]!r}, "
            f"identifier={header_row[identifier_col]!r}, group_tag={group_header!r}"
        )

        records = []
        for row_num, row in enumerate(reader, start=2):
            if not row or all(not cell.strip() for cell in row):
                continue

            records.append(
                DeviceRecord(
                    serial_number=self._cell(row, serial_col),
                    hardware_identifier=self._cell(row, identifier_col),
                    group_tag=self._cell(row, group_col) or None,
                    row_number=row_num,
                )
            )

        logger.info(f"Parsed {len(records)} device record(s) from input file")
        return records

    @staticmethod
    def _cell(row: list[str], index: Optional[int]) -> str:
        if index is None or index >= len(row):
            return ""
        return row[index].strip()
