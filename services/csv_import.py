"""CSV lead import: per-row validation, in-file duplicate warnings and a
row-by-row insert that tolerates phone collisions with stored leads.

File format:
    first_name,last_name,phone,email,address,city,state,zip,notes
Only the first three columns are required.
"""
import io
import logging
import os
import re
from typing import IO, Iterable, Optional, Union
from uuid import UUID

import pandas as pd
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from config import NEW_STATUS
from db.repositories import leads as leads_repo
from db.repositories import pipeline_stages as stages_repo
from errors import CsvFormatError, StageNotFoundError
from schemas.lead import CsvRow, ImportResult, RowValidation
from services.lead_intake import normalize_phone

logger = logging.getLogger(__name__)

CSV_COLUMNS = ("first_name", "last_name", "phone", "email", "address", "city", "state", "zip", "notes")
REQUIRED_COLUMNS = ("first_name", "last_name", "phone")
CSV_HEADER = ",".join(CSV_COLUMNS)
CSV_UPLOAD_SOURCE = "csv_upload"

_SAMPLE_ROWS = (
    "John,Smith,+16045551234,john.smith@example.com,123 Main St,Vancouver,BC,V6B 1A1,Interested in sedan",
    "Sarah,Johnson,+17785552345,sarah.j@gmail.com,456 Oak Ave,Surrey,BC,V3T 2B2,Looking for SUV",
    "Michael,Williams,6043334444,michael.w@outlook.com,789 Pine Rd,Burnaby,BC,V5H 3C3,Trade-in available",
)

# Constraint name on Postgres, column reference on SQLite
_PHONE_CONFLICT_MARKERS = ("uq_leads_phone", "leads.phone")

CsvSource = Union[str, os.PathLike, IO]


def sample_csv() -> str:
    """Return the downloadable sample file."""
    return "\n".join((CSV_HEADER,) + _SAMPLE_ROWS)


def is_valid_phone(phone: str) -> bool:
    """10 digits, or 11 digits starting with 1, after stripping non-digits."""
    digits = re.sub(r"\D", "", phone or "")
    return len(digits) == 10 or (len(digits) == 11 and digits.startswith("1"))


def parse_csv(source: CsvSource) -> list[dict]:
    """Read a leads CSV into a list of row dicts with string values.

    source may be a path, a file object, or the CSV text itself.
    Blank lines are skipped; missing optional columns come back as "".
    """
    if isinstance(source, str) and "\n" in source:
        source = io.StringIO(source)
    try:
        df = pd.read_csv(
            source, dtype=str, keep_default_na=False, skip_blank_lines=True
        )
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as exc:
        raise CsvFormatError(f"Failed to parse CSV: {exc}") from exc
    except OSError as exc:
        raise CsvFormatError(f"Could not read CSV file: {exc}") from exc

    df.columns = [str(col).strip().lower().replace(" ", "_") for col in df.columns]
    missing = [col for col in REQUIRED_COLUMNS if col not in df.columns]
    if missing:
        raise CsvFormatError(f"Missing required column(s): {', '.join(missing)}")

    for col in CSV_COLUMNS:
        if col not in df.columns:
            df[col] = ""
    return df[list(CSV_COLUMNS)].to_dict(orient="records")


def _clean(value) -> str:
    return str(value).strip() if value is not None else ""


def validate_row(row: dict, index: int, seen_phones: set) -> RowValidation:
    """Validate one parsed row. index is 0-based; the report is 1-based.

    seen_phones is shared across the file; a repeated normalized phone is
    a warning, not an error.
    """
    errors = []
    warnings = []

    first_name = _clean(row.get("first_name"))
    last_name = _clean(row.get("last_name"))
    phone = _clean(row.get("phone"))
    email = _clean(row.get("email"))

    if not first_name:
        errors.append("First name is required")
    if not last_name:
        errors.append("Last name is required")
    if not phone:
        errors.append("Phone number is required")
    elif not is_valid_phone(phone):
        errors.append("Invalid phone number format (must be 10 or 11 digits)")

    if phone:
        normalized = normalize_phone(phone)
        if normalized in seen_phones:
            warnings.append("Duplicate phone number in CSV")
        else:
            seen_phones.add(normalized)

    if email and "@" not in email:
        warnings.append("Email format may be invalid")

    data = CsvRow(
        first_name=first_name,
        last_name=last_name,
        phone=phone,
        **{col: _clean(row.get(col)) or None for col in CSV_COLUMNS[3:]},
    )
    return RowValidation(row=index + 1, data=data, errors=errors, warnings=warnings)


def validate_rows(rows: Iterable[dict]) -> list[RowValidation]:
    seen_phones: set = set()
    return [validate_row(row, index, seen_phones) for index, row in enumerate(rows)]


def _is_phone_conflict(exc: IntegrityError) -> bool:
    message = str(exc.orig) if exc.orig is not None else str(exc)
    return any(marker in message for marker in _PHONE_CONFLICT_MARKERS)


async def import_rows(
    session: AsyncSession,
    validations: Iterable[RowValidation],
    user_id: Optional[UUID] = None,
) -> ImportResult:
    """Insert the valid rows one at a time, each in its own commit.

    A row whose phone already exists is counted as a duplicate; any other
    insert failure is counted as an error. Neither stops the batch.
    """
    valid = [v for v in validations if v.is_valid]
    result = ImportResult(total=len(valid))
    if not valid:
        return result

    stage = await stages_repo.first_stage(session)
    if stage is None:
        raise StageNotFoundError("No pipeline stages exist; create one before importing")
    stage_id = stage.id

    for validation in valid:
        row = validation.data
        phone = normalize_phone(row.phone)
        try:
            await leads_repo.create(session, {
                "first_name": row.first_name,
                "last_name": row.last_name,
                "phone": phone,
                "email": row.email,
                "address": row.address,
                "city": row.city,
                "state": row.state,
                "zip": row.zip,
                "notes": row.notes,
                "user_id": user_id,
                "owner_id": None,
                "lead_source": CSV_UPLOAD_SOURCE,
                "status": NEW_STATUS,
                "pipeline_stage_id": stage_id,
                "tags": [],
            })
            await session.commit()
            result.success_count += 1
        except IntegrityError as exc:
            await session.rollback()
            if _is_phone_conflict(exc):
                logger.info("Skipped duplicate phone: %s", phone)
                result.duplicate_count += 1
            else:
                logger.error("Insert error on row %d: %s", validation.row, exc)
                result.error_count += 1
        except SQLAlchemyError as exc:
            await session.rollback()
            logger.error("Unexpected error on row %d: %s", validation.row, exc)
            result.error_count += 1

    logger.info(
        "CSV import: %d imported, %d duplicate(s), %d error(s) of %d",
        result.success_count, result.duplicate_count, result.error_count, result.total,
    )
    return result


async def import_csv(
    session: AsyncSession, source: CsvSource, user_id: Optional[UUID] = None
) -> tuple[list[RowValidation], ImportResult]:
    """Parse, validate and import a CSV in one call."""
    validations = validate_rows(parse_csv(source))
    result = await import_rows(session, validations, user_id)
    return validations, result
