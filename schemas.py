from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from errors import ValidationError
from models import ExpenseType

# data rows are 0-indexed and the header occupies line 1 of the file
HEADER_ROW_OFFSET = 2


class FieldMapping(BaseModel):
    model_config = ConfigDict(extra="forbid")

    source: str = ""
    date_column: int
    description_column: int
    amount_column: int
    currency_column: int
    source_column: Optional[int] = None

    def check_columns(self, header_count: int) -> None:
        if self.source_column is None and not self.source.strip():
            raise ValidationError("source is required", field="source")
        columns = {
            "date_column": self.date_column,
            "description_column": self.description_column,
            "amount_column": self.amount_column,
            "currency_column": self.currency_column,
        }
        if self.source_column is not None:
            columns["source_column"] = self.source_column
        for name, index in columns.items():
            if index < 0 or index >= header_count:
                label = name.replace("_column", "")
                raise ValidationError(
                    f"invalid {label} column index: {index}", field=name
                )


class RowError(BaseModel):
    row_index: int
    error: str

    @property
    def message(self) -> str:
        return f"Row {self.row_index + HEADER_ROW_OFFSET}: {self.error}"


class ExpenseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    source: Optional[str]
    date: datetime
    description: str
    amount: int
    type: ExpenseType
    currency: str
    category_id: Optional[int] = None


class ImportPreview(BaseModel):
    session_id: str
    filename: str
    headers: list[str]
    rows: list[list[str]]
    total_rows: int


class MappingPreview(BaseModel):
    session_id: str
    headers: list[str]
    expenses: list[ExpenseOut] = Field(default_factory=list)
    total_rows: int
    errors: list[str] = Field(default_factory=list)


class ImportInfo(BaseModel):
    total_imports: int = 0
    with_category: int = 0
    without_category: int = 0
    uncategorized: list[str] = Field(default_factory=list)
    row_errors: list[RowError] = Field(default_factory=list)
    error: Optional[str] = None
