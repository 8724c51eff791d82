"""Read an uploaded .xlsx into header-keyed row dicts for bulk import."""

import io
import re
import zipfile
from typing import Any, List, Optional

from fastapi import UploadFile
from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from app.core.bulk_import import RawRow
from app.core.config import settings
from app.core.exceptions import ValidationError

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_SEPARATORS = re.compile(r"[\s\-]+")


def normalize_header(value: Any) -> str:
    """
    "firstName" -> "first_name", "Department Code" -> "department_code",
    "Current Class" -> "current_class".
    """
    if value is None:
        return ""
    text = _CAMEL_BOUNDARY.sub("_", str(value).strip())
    return _SEPARATORS.sub("_", text).lower()


def _cell(value: Any) -> Any:
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def _is_blank(row: tuple) -> bool:
    return all(c is None or (isinstance(c, str) and not c.strip()) for c in row)


def rows_from_bytes(content: bytes, max_rows: Optional[int] = None) -> List[RawRow]:
    """
    First sheet, first row = headers. Blank rows are skipped and blank cells become None.
    Dates stay as the cell delivers them (datetime or Excel serial number).
    """
    limit = settings.bulk_import_max_rows if max_rows is None else max_rows
    if not content:
        raise ValidationError("File is empty")
    try:
        wb = load_workbook(filename=io.BytesIO(content), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, ValueError, OSError) as e:
        raise ValidationError(f"Invalid Excel file: {e}") from e

    try:
        ws = wb.worksheets[0] if wb.worksheets else None
        if ws is None:
            raise ValidationError("Excel file has no sheet")

        rows_iter = ws.iter_rows(values_only=True)
        header_row = next(rows_iter, None)
        if not header_row or _is_blank(header_row):
            raise ValidationError("Excel file has no header row")
        headers = [normalize_header(h) for h in header_row]

        rows: List[RawRow] = []
        for row in rows_iter:
            if not row or _is_blank(row):
                continue
            if len(rows) >= limit:
                raise ValidationError(f"Maximum {limit} data rows allowed")
            rows.append({h: _cell(v) for h, v in zip(headers, row) if h})
    finally:
        wb.close()
    return rows


async def read_rows(file: UploadFile, max_rows: Optional[int] = None) -> List[RawRow]:
    if not file.filename or not file.filename.lower().endswith(".xlsx"):
        raise ValidationError("File must be an Excel file (.xlsx)")
    content = await file.read()
    return rows_from_bytes(content, max_rows=max_rows)
