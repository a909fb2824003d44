from __future__ import annotations

from typing import Any, Iterable, List, Sequence

import pandas as pd

from .errors import DateParseError, DecodeError


class RowTable:
    """Column-oriented buffer filled one row at a time.

    Columns are kept by position, so a schema may repeat a name
    (``SELECT a.id, b.id ...``). The column set is fixed when the table
    is created.
    """

    def __init__(self, fields: Sequence[str]) -> None:
        self.fields: List[str] = list(fields)
        self._columns: List[Any] = [[] for _ in self.fields]
        self.num_rows = 0

    def __len__(self) -> int:
        return self.num_rows

    def _positions(self, name: str) -> List[int]:
        positions = [i for i, field in enumerate(self.fields) if field == name]
        if not positions:
            raise KeyError(name)
        return positions

    def append_row(self, record: Any) -> None:
        if not isinstance(record, (list, tuple)):
            raise DecodeError(f"row {self.num_rows} is {type(record).__name__}, not an array")
        if len(record) != len(self.fields):
            raise DecodeError(
                f"row {self.num_rows} has {len(record)} values but the schema has {len(self.fields)} columns"
            )
        for column, value in zip(self._columns, record):
            column.append(value)
        self.num_rows += 1

    def column(self, name: str) -> List[Any]:
        return list(self._columns[self._positions(name)[0]])

    def replace_column(self, position: int, values: pd.Series) -> None:
        if len(values) != self.num_rows:
            raise ValueError(f"column {self.fields[position]!r} needs {self.num_rows} values, got {len(values)}")
        self._columns[position] = values.reset_index(drop=True)

    def parse_date_columns(self, names: Iterable[str]) -> None:
        """Convert each named column to timestamps, all values or none.

        Every value is parsed on its own (``format="mixed"``), so dates and
        datetimes may share a column. Nulls become ``NaT``.
        """
        for name in names:
            for position in self._positions(name):
                try:
                    parsed = pd.to_datetime(
                        pd.Series(list(self._columns[position]), dtype=object),
                        format="mixed",
                        errors="raise",
                    )
                except (ValueError, TypeError, OverflowError) as exc:
                    raise DateParseError(name, str(exc)) from exc
                self.replace_column(position, parsed)

    def to_dataframe(self) -> pd.DataFrame:
        data = {}
        for position, column in enumerate(self._columns):
            if isinstance(column, pd.Series):
                data[position] = column
            else:
                data[position] = pd.Series(column, dtype=object).infer_objects()
        df = pd.DataFrame(data, columns=range(len(self.fields)))
        df.columns = self.fields
        return df
