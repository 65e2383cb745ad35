"""Validate Records use case.

Checks every device record before anything is submitted:

- serial number must not be empty or whitespace
- hardware identifier must not be empty or whitespace
- hardware identifier must be at least ``min_identifier_length`` characters
  (a truncated or corrupted hash is far shorter than a real one; this is a
  plausibility check, not a cryptographic one)
- serial numbers must be unique within the file

The whole file is checked so every invalid row can be reported at once.
"""

import logging

from ...api.exceptions import EmptyFileError, InvalidRecordError
from ..domain.entities import DeviceRecord, ValidationIssue, ValidationReport

logger = logging.getLogger(__name__)

DEFAULT_MIN_IDENTIFIER_LENGTH = 100


class RecordValidator:
    """Validate device records individually and as a file."""

    def __init__(self, min_identifier_length: int = DEFAULT_MIN_IDENTIFIER_LENGTH):
        self.min_identifier_length = min_identifier_length

    def validate_record(self, record: DeviceRecord) -> None:
        """Validate one record.

        Raises:
            InvalidRecordError: On the first problem found
        """
        if not record.serial_number or not record.serial_number.strip():
            raise InvalidRecordError(
                "Serial number is required",
                row_number=record.row_number,
                field="serial_number",
            )

        identifier = (record.hardware_identifier or "").strip()
        if not identifier:
            raise InvalidRecordError(
                "Hardware identifier is required",
                row_number=record.row_number,
                field="hardware_identifier",
            )

        if len(identifier) < self.min_identifier_length:
            raise InvalidRecordError(
                f"Hardware identifier is implausibly short ({len(identifier)} chars, "
                f"expected at least {self.min_identifier_length}); it may be truncated",
                row_number=record.row_number,
                field="hardware_identifier",
            )

    def validate(self, records: list[DeviceRecord]) -> ValidationReport:
        """Validate every record of a file.

        Returns:
            ValidationReport listing valid records and every issue by row

        Raises:
            EmptyFileError: If there are no records at all
        """
        if not records:
            raise EmptyFileError()

        report = ValidationReport(total_records=len(records))
        seen_serials: dict[str, int] = {}

        for record in records:
            try:
                self.validate_record(record)
            except InvalidRecordError as e:
                report.issues.append(
                    ValidationIssue(
                        row_number=record.row_number,
                        field=e.field or "",
                        message=e.message,
                    )
                )
                continue

            serial_key = record.serial_number.strip().upper()
            if serial_key in seen_serials:
                report.issues.append(
                    ValidationIssue(
                        row_number=record.row_number,
                        field="serial_number",
                        message=(
                            f"Duplicate serial number {record.serial_number} "
                            f"(first seen on row {seen_serials[serial_key]})"
                        ),
                    )
                )
                continue

            seen_serials[serial_key] = record.row_number
            report.valid_records.append(record)

        logger.info(
            f"Validated {report.total_records} record(s): "
            f"{report.valid_count} valid, {report.invalid_count} invalid"
        )
        return report
