from __future__ import annotations

import io
import logging
from typing import BinaryIO, Optional, Union

from config import DEFAULT_MAX_UPLOAD_BYTES
from errors import ExpenseTraceError, NotFoundError, ValidationError
from file_parser import CSV_FORMAT, ParsedData, parse_file
from import_sessions import ImportSession, ImportSessionStore
from mapper import MappingResult, apply_mapping
from matcher import MatcherCache
from report import ReportCache
from schemas import ExpenseOut, FieldMapping, ImportInfo, ImportPreview, MappingPreview
from storage import Storage

logger = logging.getLogger(__name__)

PREVIEW_ROWS = 5
PREVIEW_EXPENSES = 5

# column order of the CLI statement format: source,date,description,amount,currency
CSV_DEFAULT_COLUMNS = ("source", "date", "description", "amount", "currency")
JSON_FIELDS = CSV_DEFAULT_COLUMNS

SESSION_MISSING = "Session expired or not found. Please upload the file again."
MAPPING_MISSING = "No field mapping found. Please complete the mapping step first."


def default_mapping(data: ParsedData) -> FieldMapping:
    """
    Mapping used when no one picked the columns: CSV files follow the fixed
    source,date,description,amount,currency order and JSON records are
    matched by field name.
    """
    if data.format == CSV_FORMAT:
        if len(data.headers) < len(CSV_DEFAULT_COLUMNS):
            raise ValidationError(
                f"expected {len(CSV_DEFAULT_COLUMNS)} columns "
                f"({','.join(CSV_DEFAULT_COLUMNS)}), got {len(data.headers)}"
            )
        index = {name: i for i, name in enumerate(CSV_DEFAULT_COLUMNS)}
    else:
        index = {name: i for i, name in enumerate(data.headers)}
        missing = [name for name in JSON_FIELDS if name not in index]
        if missing:
            raise ValidationError(f"missing fields: {', '.join(missing)}")

    return FieldMapping(
        source_column=index["source"],
        date_column=index["date"],
        description_column=index["description"],
        amount_column=index["amount"],
        currency_column=index["currency"],
    )


class ImportService:
    """
    Two-step statement import (parse, then commit with a column mapping)
    plus the single-shot path used by the command line.
    """

    def __init__(
        self,
        storage: Storage,
        sessions: ImportSessionStore,
        matchers: MatcherCache,
        report_cache: Optional[ReportCache] = None,
        log: Optional[logging.Logger] = None,
        max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
    ) -> None:
        self.storage = storage
        self.sessions = sessions
        self.matchers = matchers
        self.report_cache = report_cache
        self.log = log or logger
        self.max_upload_bytes = max_upload_bytes

    def _read(self, stream: Union[BinaryIO, bytes]) -> bytes:
        if isinstance(stream, (bytes, bytearray)):
            payload = bytes(stream)
        else:
            payload = stream.read(self.max_upload_bytes + 1)
        if len(payload) > self.max_upload_bytes:
            raise ValidationError(
                f"file exceeds the {self.max_upload_bytes} byte upload limit"
            )
        return payload

    def _parse(self, filename: str, stream: Union[BinaryIO, bytes]) -> ParsedData:
        payload = self._read(stream)
        self.log.info(
            f"import_upload: filename={filename!r} size={len(payload) // 1024}KB"
        )
        return parse_file(filename, io.BytesIO(payload))

    def _session(self, user_id: int, session_id: str) -> ImportSession:
        if not session_id:
            raise ValidationError("Session ID is required", field="session_id")
        session = self.sessions.get(session_id)
        if session is None or session.user_id not in (None, user_id):
            raise NotFoundError(SESSION_MISSING)
        return session

    def _invalidate(self, user_id: int) -> None:
        if self.report_cache is not None:
            self.report_cache.invalidate(user_id)

    def parse(
        self, user_id: int, filename: str, stream: Union[BinaryIO, bytes]
    ) -> ImportPreview:
        data = self._parse(filename, stream)
        session = self.sessions.create(filename, data, user_id=user_id)
        self.log.info(
            f"import_parsed: session_id={session.id} format={data.format} rows={data.total_rows}"
        )
        return ImportPreview(
            session_id=session.id,
            filename=filename,
            headers=data.headers,
            rows=data.preview_rows(PREVIEW_ROWS),
            total_rows=data.total_rows,
        )

    def preview_mapping(
        self, user_id: int, session_id: str, mapping: FieldMapping
    ) -> MappingPreview:
        session = self._session(user_id, session_id)
        result = apply_mapping(session.data, mapping, self.matchers.get(user_id))
        self.sessions.update(session_id, mapping)
        self.log.info(
            f"import_mapping_applied: session_id={session_id} "
            f"valid_rows={len(result.expenses)} error_rows={len(result.errors)}"
        )
        return MappingPreview(
            session_id=session_id,
            headers=session.data.headers,
            expenses=[
                ExpenseOut.model_validate(mapped.expense)
                for mapped in result.expenses[:PREVIEW_EXPENSES]
            ],
            total_rows=session.data.total_rows,
            errors=[error.message for error in result.errors],
        )

    def _insert(self, user_id: int, result: MappingResult) -> ImportInfo:
        expenses = [mapped.expense for mapped in result.expenses]
        uncategorized = [m.expense.description for m in result.expenses if not m.category]
        inserted = self.storage.insert_expenses(user_id, expenses)
        if inserted:
            self._invalidate(user_id)
        return ImportInfo(
            total_imports=inserted,
            with_category=len(expenses) - len(uncategorized),
            without_category=len(uncategorized),
            uncategorized=uncategorized,
            row_errors=result.errors,
        )

    def commit(
        self, user_id: int, session_id: str, mapping: Optional[FieldMapping] = None
    ) -> ImportInfo:
        """
        Map and store every row of an uploaded file. Failures come back in
        ``ImportInfo.error`` with nothing imported; bad rows are listed in
        ``row_errors`` and do not stop the rest.
        """
        try:
            session = self._session(user_id, session_id)
            mapping = mapping or session.mapping
            if mapping is None:
                raise ValidationError(MAPPING_MISSING)
            self.log.info(
                f"import_execute: session_id={session_id} filename={session.filename!r}"
            )
            result = apply_mapping(session.data, mapping, self.matchers.get(user_id))
            info = self._insert(user_id, result)
        except ExpenseTraceError as exc:
            self.log.warning(f"import_failed: session_id={session_id} error={exc}")
            return ImportInfo(error=str(exc))

        self.sessions.delete(session_id)
        self.log.info(
            f"import_completed: session_id={session_id} imported={info.total_imports} "
            f"errors={len(info.row_errors)}"
        )
        return info

    def import_file(
        self, user_id: int, filename: str, stream: Union[BinaryIO, bytes]
    ) -> ImportInfo:
        try:
            data = self._parse(filename, stream)
            result = apply_mapping(data, default_mapping(data), self.matchers.get(user_id))
            info = self._insert(user_id, result)
        except ExpenseTraceError as exc:
            self.log.warning(f"import_failed: filename={filename!r} error={exc}")
            return ImportInfo(error=str(exc))

        for description in info.uncategorized:
            self.log.info(f"expense_without_category: description={description!r}")
        self.log.info(
            f"import_completed: filename={filename!r} imported={info.total_imports} "
            f"errors={len(info.row_errors)}"
        )
        return info
