import io
import math
import numbers
import logging
import time
import uuid
from typing import Any, List, Optional, Sequence, Union

import pandas as pd
from pydantic import BaseModel, ConfigDict, Field
from http import HTTPStatus

from utils.result import Result

logger = logging.getLogger(__name__)

# Fixed spreadsheet schema
SENIORITY_HEADER = "Seniority"
YEARS_OF_EXPERIENCE_HEADER = "Years of experience"
AVAILABILITY_HEADER = "Availability"
EXPECTED_HEADERS = [SENIORITY_HEADER, YEARS_OF_EXPERIENCE_HEADER, AVAILABILITY_HEADER]

XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
GENERIC_CONTENT_TYPE = "application/octet-stream"
XLSX_EXTENSION = ".xlsx"

# 200 KiB
MAX_UPLOAD_BYTES = 200 * 1024

EXAMPLE_FILENAME = "candidate-example.xlsx"
EXAMPLE_VALUES = ["Senior", 5, "Immediate"]

FILE_REQUIRED_MESSAGE = "File is required"


class SpreadsheetReadError(Exception):
    """Raised when an upload cannot be parsed as an .xlsx workbook."""


class UploadedFile(BaseModel):
    """
    Raw upload held for the duration of one request.

    Attributes:
        filename: Client-supplied file name
        content_type: Declared MIME type
        content: Raw file bytes, possibly cut short once the size ceiling is passed
        size_bytes: Size of the whole upload when known, else the content length is used
    """
    model_config = ConfigDict(frozen=True)

    filename: str = ""
    content_type: Optional[str] = None
    content: bytes = b""
    size_bytes: Optional[int] = None

    @property
    def size(self) -> int:
        return self.size_bytes if self.size_bytes is not None else len(self.content)


class UploadLogContext:
    """Times one upload validation and logs it with the upload's request id, name, type and size"""
    def __init__(self, file: Optional[UploadedFile], request_id: Optional[str] = None):
        self.request_id = request_id or str(uuid.uuid4())[:8]
        self.fields = {
            "request_id": self.request_id,
            "upload_filename": file.filename if file else None,
            "content_type": file.content_type if file else None,
            "upload_size": file.size if file else 0
        }
        self.start_time = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        logger.info("Validating candidate upload", extra=self.fields)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration = time.perf_counter() - self.start_time
        extra = {**self.fields, "duration": duration}
        if exc_type:
            logger.error(
                f"Upload validation crashed after {duration:.3f}s: {exc_val}",
                extra=extra,
                exc_info=(exc_type, exc_val, exc_tb)
            )
        else:
            logger.info(f"Upload validation finished in {duration:.3f}s", extra=extra)


class SpreadsheetTable(BaseModel):
    """
    First worksheet of an upload.

    Attributes:
        headers: Header row with trailing blank cells removed
        values: First data row, padded to at least the expected column count
        data_row_count: Number of non-blank rows below the header row
    """
    headers: List[str] = Field(default_factory=list)
    values: List[Any] = Field(default_factory=list)
    data_row_count: int = 0


class CandidateRecord(BaseModel):
    """Normalized candidate built from the request fields and the spreadsheet."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    surname: str
    seniority: str
    years_of_experience: Union[int, float] = Field(alias="yearsOfExperience")
    availability: Union[bool, str]


class ErrorResponse(BaseModel):
    """Error body shared by every rejected request."""
    statusCode: int
    message: Union[List[str], str]
    error: str


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, float):
        return math.isnan(value)
    return bool(pd.isna(value))


def _cell_text(value: Any) -> str:
    if _is_blank(value):
        return ""
    return str(value).strip()


def _trim_trailing_blanks(cells: Sequence[Any]) -> List[Any]:
    cells = list(cells)
    while cells and _is_blank(cells[-1]):
        cells.pop()
    return cells


def read_spreadsheet(content: bytes) -> SpreadsheetTable:
    """
    Read the first worksheet of an .xlsx workbook.

    The first row is taken as the header row. Rows below it that are entirely
    blank are ignored; the first remaining row is the data row.

    Args:
        content: Raw workbook bytes

    Returns:
        SpreadsheetTable with headers, first data row and data row count

    Raises:
        SpreadsheetReadError: If the bytes are not a readable .xlsx workbook
    """
    try:
        df = pd.read_excel(io.BytesIO(content), sheet_name=0, header=None, dtype=object, engine="openpyxl")
    except Exception as e:
        raise SpreadsheetReadError(str(e)) from e

    rows = [list(row) for row in df.itertuples(index=False, name=None)]
    if not rows:
        return SpreadsheetTable()

    # Header text is compared exactly, surrounding spaces included
    headers = ["" if _is_blank(cell) else str(cell) for cell in _trim_trailing_blanks(rows[0])]
    data_rows = [row for row in rows[1:] if not all(_is_blank(cell) for cell in row)]

    values: List[Any] = []
    if data_rows:
        values = _trim_trailing_blanks(data_rows[0])
        values += [None] * (len(EXPECTED_HEADERS) - len(values))
        values = [None if _is_blank(cell) else cell for cell in values]

    logger.debug(
        "Read spreadsheet",
        extra={"headers": headers, "data_row_count": len(data_rows), "column_count": len(df.columns)}
    )
    return SpreadsheetTable(headers=headers, values=values, data_row_count=len(data_rows))


def write_workbook(rows: Sequence[Sequence[Any]]) -> bytes:
    """Write rows to the first worksheet of a new .xlsx workbook and return its bytes."""
    buffer = io.BytesIO()
    pd.DataFrame([list(row) for row in rows]).to_excel(
        buffer, sheet_name="Candidate", header=False, index=False, engine="openpyxl"
    )
    return buffer.getvalue()


def build_example_workbook() -> bytes:
    """A workbook that passes every structural check."""
    return write_workbook([EXPECTED_HEADERS, EXAMPLE_VALUES])


def coerce_years_of_experience(value: Any) -> Union[int, float]:
    """
    Parse a "Years of experience" cell.

    Numbers are kept, numeric strings are parsed. Integral values become int,
    others float.

    Raises:
        ValueError: For booleans, non-numeric text, negative or non-finite numbers
    """
    if isinstance(value, bool):
        raise ValueError(f"boolean is not a number: {value}")
    if isinstance(value, numbers.Real):
        number = float(value)
    else:
        number = float(str(value).strip())
    if not math.isfinite(number) or number < 0:
        raise ValueError(f"not a non-negative number: {value}")
    return int(number) if number.is_integer() else number


def coerce_availability(value: Any) -> Union[bool, str]:
    """Boolean cells stay booleans, anything else becomes trimmed text."""
    if isinstance(value, bool):
        return value
    return _cell_text(value)


def check_file_type(file: UploadedFile) -> List[str]:
    content_type = (file.content_type or "").split(";", 1)[0].strip().lower()
    if content_type == XLSX_CONTENT_TYPE:
        return []
    if content_type == GENERIC_CONTENT_TYPE and file.filename.lower().endswith(XLSX_EXTENSION):
        return []
    received = content_type or "unknown"
    return [f"Invalid file type '{received}'. Only .xlsx spreadsheets ({XLSX_CONTENT_TYPE}) are accepted"]


def check_file_size(file: UploadedFile, max_size_bytes: int = MAX_UPLOAD_BYTES) -> List[str]:
    if file.size > max_size_bytes:
        return [
            f"File size must not exceed {max_size_bytes} bytes ({max_size_bytes // 1024} KB), "
            f"received {file.size} bytes"
        ]
    return []


def validate_headers(headers: Sequence[str]) -> List[str]:
    if list(headers) == EXPECTED_HEADERS:
        return []
    found = ", ".join(headers) if headers else "none"
    return [f"Invalid headers. Expected exactly: {', '.join(EXPECTED_HEADERS)} (found: {found})"]


def validate_values(table: SpreadsheetTable) -> List[str]:
    """
    Check the data row of a parsed spreadsheet.

    Values are matched to the expected headers by position. The numeric check
    on "Years of experience" only runs when the header row is valid, since the
    position is meaningless otherwise.
    """
    errors = []
    expected_count = len(EXPECTED_HEADERS)

    if table.data_row_count == 0:
        return [f"Missing data row. Expected exactly one row of {expected_count} values below the headers"]
    if table.data_row_count > 1:
        errors.append(f"Expected exactly one data row below the headers, found {table.data_row_count}")

    if len(table.values) != expected_count:
        errors.append(f"Expected exactly {expected_count} values in the data row, found {len(table.values)}")

    empty_headers = [
        EXPECTED_HEADERS[index]
        for index, value in enumerate(table.values[:expected_count])
        if _is_blank(value)
    ]
    if empty_headers:
        errors.append(f"Empty value for: {', '.join(empty_headers)}")

    years_index = EXPECTED_HEADERS.index(YEARS_OF_EXPERIENCE_HEADER)
    years = table.values[years_index] if len(table.values) > years_index else None
    if table.headers == EXPECTED_HEADERS and not _is_blank(years):
        try:
            coerce_years_of_experience(years)
        except ValueError:
            errors.append(f"{YEARS_OF_EXPERIENCE_HEADER} must be a non-negative number, got '{_cell_text(years)}'")

    return errors


def validate_candidate_fields(name: Optional[str], surname: Optional[str]) -> List[str]:
    errors = []
    for field_name, value in (("name", name), ("surname", surname)):
        if not isinstance(value, str):
            errors.append(f"{field_name} should not be empty")
            errors.append(f"{field_name} must be a string")
        elif not value.strip():
            errors.append(f"{field_name} should not be empty")
    return errors


def _build_record(name: str, surname: str, table: SpreadsheetTable) -> CandidateRecord:
    seniority, years, availability = table.values[:len(EXPECTED_HEADERS)]
    return CandidateRecord(
        name=name.strip(),
        surname=surname.strip(),
        seniority=_cell_text(seniority),
        years_of_experience=coerce_years_of_experience(years),
        availability=coerce_availability(availability)
    )


def validate_upload(
    file: Optional[UploadedFile],
    name: Optional[str],
    surname: Optional[str],
    max_size_bytes: int = MAX_UPLOAD_BYTES,
    request_id: Optional[str] = None
) -> Result[CandidateRecord]:
    """
    Validate an uploaded candidate spreadsheet together with the request fields.

    Every check runs and every violation is collected, in this order:
    presence, file type, file size, spreadsheet structure, request fields.
    The spreadsheet is only parsed when the type and size checks pass.

    Args:
        file: The uploaded file, or None when nothing was attached
        name: Candidate name from the form
        surname: Candidate surname from the form
        max_size_bytes: Upload size ceiling
        request_id: Identifier used in log records

    Returns:
        Result[CandidateRecord]: 201 with the normalized record, or 400 with all violations
    """
    errors: List[str] = []
    table: Optional[SpreadsheetTable] = None

    with UploadLogContext(file, request_id) as context:
        if file is None or not file.filename:
            errors.append(FILE_REQUIRED_MESSAGE)
        else:
            file_errors = check_file_type(file) + check_file_size(file, max_size_bytes)
            errors.extend(file_errors)

            if not file_errors:
                try:
                    table = read_spreadsheet(file.content)
                except SpreadsheetReadError as e:
                    logger.warning(
                        "Failed to read spreadsheet",
                        extra={"request_id": context.request_id, "error": str(e)}
                    )
                    errors.append("File could not be read as an .xlsx spreadsheet")

            if table is not None:
                errors.extend(validate_headers(table.headers))
                errors.extend(validate_values(table))

        errors.extend(validate_candidate_fields(name, surname))

        if errors:
            logger.warning(
                f"Upload validation failed with {len(errors)} violation(s)",
                extra={"request_id": context.request_id, "violations": errors}
            )
            return Result.invalid_input(errors)

        record = _build_record(name, surname, table)
        logger.info("Candidate upload accepted", extra={"request_id": context.request_id})
        return Result.ok(record, status_code=HTTPStatus.CREATED)
