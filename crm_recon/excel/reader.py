from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pandas as pd
import pandas._libs.parsers as parsers

from ..models.records import RawRecord

"""Tabular source reader (xlsx / xls / csv) built on pandas.

The sheet is read without a header and the configured header row is applied
afterwards, so that title rows above the header are tolerated. Fully empty
rows are dropped; NaN cells become None; text cells are stripped and
null sentinels (compared upper-cased) become None.
"""

__all__ = [
    "SheetHeaderError",
    "UnsupportedSourceError",
    "TabularSource",
    "read_raw_frame",
    "normalize_frame",
    "read_table",
]

SUPPORTED_SUFFIXES = {".xlsx", ".xls", ".csv"}


class SheetHeaderError(Exception):
    """Raised when the header row is missing, blank or has duplicates."""


class UnsupportedSourceError(Exception):
    pass


@dataclass(frozen=True)
class TabularSource:
    name: str
    headers: list[str]
    records: list[RawRecord]


def _na_options(keep_na_strings: list[str] | None) -> tuple[list[str] | None, bool]:
    if not keep_na_strings:
        return None, True
    # pandas' default NA strings minus the ones to keep as text
    custom_na = parsers.STR_NA_VALUES - set(keep_na_strings)
    return list(custom_na), False


def read_raw_frame(
    path: Path, sheet: str | None = None, keep_na_strings: list[str] | None = None
) -> pd.DataFrame:
    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_SUFFIXES:
        raise UnsupportedSourceError(f"unsupported file type '{suffix}' ({path.name})")
    na_values, keep_default_na = _na_options(keep_na_strings)
    if suffix == ".csv":
        return pd.read_csv(
            path,
            header=None,
            dtype=object,
            keep_default_na=keep_default_na,
            na_values=na_values,
            sep=None,
            engine="python",
        )
    return pd.read_excel(
        path,
        sheet_name=sheet if sheet is not None else 0,
        header=None,
        keep_default_na=keep_default_na,
        na_values=na_values,
    )


def _clean_cell(val: Any, null_sentinels: set[str] | None) -> Any:
    if val is None:
        return None
    if not isinstance(val, str) and pd.isna(val):
        return None
    if isinstance(val, str):
        stripped = val.strip()
        if stripped == "":
            return None
        if null_sentinels and stripped.upper() in null_sentinels:
            return None
        return stripped
    if isinstance(val, float) and val.is_integer():
        # integer columns containing blanks come back as floats
        return int(val)
    if hasattr(val, "item") and not isinstance(val, pd.Timestamp):
        # numpy scalar -> python scalar
        return val.item()
    return val


def normalize_frame(
    df: pd.DataFrame,
    name: str,
    header_row: int = 0,
    null_sentinels: set[str] | None = None,
) -> TabularSource:
    if df.shape[0] <= header_row:
        raise SheetHeaderError(f"'{name}' has no header row at line {header_row + 1}")
    headers: list[str] = []
    for cell in df.iloc[header_row].tolist():
        label = "" if cell is None or (not isinstance(cell, str) and pd.isna(cell)) else str(cell).strip()
        headers.append(label)

    # trailing unnamed columns are padding from the spreadsheet
    while headers and headers[-1] == "":
        headers.pop()
    if not headers:
        raise SheetHeaderError(f"'{name}' header row is empty")
    if "" in headers:
        raise SheetHeaderError(f"'{name}' has a blank header at column {headers.index('') + 1}")
    duplicates = sorted({h for h in headers if headers.count(h) > 1})
    if duplicates:
        raise SheetHeaderError(f"'{name}' has duplicate headers: {duplicates}")

    records: list[RawRecord] = []
    data_part = df.iloc[header_row + 1:, : len(headers)]
    row_number = 0
    for _, raw in data_part.iterrows():
        row_number += 1
        if raw.isna().all():
            continue
        values = [_clean_cell(v, null_sentinels) for v in raw.tolist()]
        if all(v is None for v in values):
            continue
        records.append(RawRecord(row_number=row_number, cells=tuple(zip(headers, values))))
    return TabularSource(name=name, headers=headers, records=records)


def read_table(
    path: Path,
    *,
    sheet: str | None = None,
    header_row: int = 0,
    keep_na_strings: list[str] | None = None,
    null_sentinels: set[str] | None = None,
) -> TabularSource:
    df = read_raw_frame(path, sheet=sheet, keep_na_strings=keep_na_strings)
    return normalize_frame(df, path.name, header_row=header_row, null_sentinels=null_sentinels)
