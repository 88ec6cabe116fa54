from __future__ import annotations

import csv
import io
import json
from dataclasses import dataclass
from pathlib import PurePath
from typing import BinaryIO, Union

from errors import (
    EmptyFileError,
    NoDataRowsError,
    NoRecordsError,
    UnsupportedFormatError,
    ValidationError,
)

CSV_FORMAT = "csv"
JSON_FORMAT = "json"


@dataclass
class ParsedData:
    headers: list[str]
    rows: list[list[str]]
    format: str

    def preview_rows(self, n: int) -> list[list[str]]:
        return self.rows[: max(n, 0)]

    @property
    def total_rows(self) -> int:
        return len(self.rows)


def parse_file(filename: str, stream: Union[BinaryIO, bytes]) -> ParsedData:
    """
    Extract headers and string rows from a CSV or JSON statement without
    interpreting any column.
    """
    extension = PurePath(filename).suffix.lower()
    if extension == ".csv":
        return _parse_csv(stream)
    if extension == ".json":
        return _parse_json(stream)
    raise UnsupportedFormatError(f"unsupported file format: {extension or filename}")


def _text_stream(stream: Union[BinaryIO, bytes]) -> io.TextIOBase:
    if isinstance(stream, (bytes, bytearray)):
        stream = io.BytesIO(stream)
    return io.TextIOWrapper(stream, encoding="utf-8-sig", newline="")


def _parse_csv(stream: Union[BinaryIO, bytes]) -> ParsedData:
    text = _text_stream(stream)
    try:
        reader = csv.reader(text)
        try:
            headers = next(reader)
        except StopIteration:
            raise EmptyFileError("CSV file is empty") from None
        rows = [row for row in reader if row]
    except csv.Error as exc:
        raise ValidationError(f"error reading CSV: {exc}") from exc
    except UnicodeDecodeError as exc:
        raise ValidationError(f"error reading CSV: {exc}") from exc
    finally:
        text.detach()

    if not rows:
        raise NoDataRowsError("CSV file has no data rows")
    return ParsedData(headers=headers, rows=rows, format=CSV_FORMAT)


def _stringify(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def _parse_json(stream: Union[BinaryIO, bytes]) -> ParsedData:
    text = _text_stream(stream)
    try:
        data = json.load(text)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ValidationError(f"error parsing JSON: {exc}") from exc
    finally:
        text.detach()

    if not isinstance(data, list) or not all(isinstance(r, dict) for r in data):
        raise ValidationError("error parsing JSON: expected an array of objects")
    if not data:
        raise NoRecordsError("JSON file contains no records")

    headers = list(data[0].keys())
    rows = [[_stringify(record.get(key)) for key in headers] for record in data]
    return ParsedData(headers=headers, rows=rows, format=JSON_FORMAT)
