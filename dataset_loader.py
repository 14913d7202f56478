"""
dataset_loader.py

Load a tabular question bank into a pandas.DataFrame.
- Supports .csv and .xlsx
- Required-column validation
- Optional answer-key detection from bold option cells in Excel banks
"""
from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence, Dict, Any, Tuple

import pandas as pd
from openpyxl import load_workbook


# --------------------------- Exceptions --------------------------------------
class DatasetLoadError(Exception):
    """Raised when the bank fails to load due to IO or parsing issues."""


class DatasetValidationError(Exception):
    """Raised when the bank loads but violates expected schema constraints."""


# --------------------------- Helpers -----------------------------------------
DEFAULT_OPTION_LABELS: Tuple[str, ...] = ("A", "B", "C", "D")


def option_column(label: str) -> str:
    return f"Response_{label}"


def _read_csv(path: Path) -> pd.DataFrame:
    try:
        return pd.read_csv(path)
    except Exception as e:
        raise DatasetLoadError(f"Failed to read CSV {path!s}: {e!r}") from e


def _read_excel(path: Path, sheet: Optional[str | int]) -> pd.DataFrame:
    """Read an Excel sheet into a DataFrame. Defaults to the first sheet when sheet is None."""
    effective = 0 if sheet is None else sheet
    try:
        return pd.read_excel(path, sheet_name=effective)
    except Exception as e:
        raise DatasetLoadError(f"Failed to read Excel {path!s}: {e!r}") from e


def _validate_required_columns(df: pd.DataFrame, required: Optional[Sequence[str]]) -> None:
    if not required:
        return
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise DatasetValidationError(
            f"Missing required column(s): {', '.join(missing)}. "
            f"Available columns: {list(df.columns)}"
        )


def normalize_key(value: Any) -> str:
    if value is None:
        return ""
    try:
        if pd.isna(value):
            return ""
    except (TypeError, ValueError):
        pass
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def _bold_option_labels(
    path: Path,
    *,
    question_column: str,
    option_labels: Sequence[str],
) -> Dict[str, str]:
    """Map Question_ID -> label of the single bold option cell on the active sheet."""
    workbook = load_workbook(path, data_only=True)
    try:
        sheet = workbook.active

        header_cells = next(sheet.iter_rows(min_row=1, max_row=1))
        header_map: Dict[str, int] = {}
        for idx, cell in enumerate(header_cells):
            if isinstance(cell.value, str):
                header_map[cell.value.strip()] = idx

        present = [label for label in option_labels if option_column(label) in header_map]
        if question_column not in header_map or not present:
            return {}

        lookup: Dict[str, str] = {}
        for row in sheet.iter_rows(min_row=2):
            question_key = normalize_key(row[header_map[question_column]].value)
            if not question_key:
                continue

            bold = [
                label for label in present
                if (cell := row[header_map[option_column(label)]]).font and cell.font.bold
            ]
            if len(bold) > 1:
                raise DatasetValidationError(
                    f"Multiple bold responses found for {question_column}={question_key}: {bold}"
                )
            if bold:
                lookup[question_key] = bold[0]

        return lookup
    finally:
        workbook.close()


# --------------------------- Public API --------------------------------------
def load_dataset(
    path: str | Path,
    *,
    required_columns: Optional[Sequence[str]] = None,
    excel_sheet: Optional[str] = None,
    derive_answer_from_bold: bool = False,
    question_column: str = "Question_ID",
    option_labels: Sequence[str] = DEFAULT_OPTION_LABELS,
    answer_column: str = "__bold_answer",
) -> pd.DataFrame:
    """
    Load a question bank file into a pandas DataFrame.

    Parameters
    ----------
    path : str | Path
        Path to .csv or .xlsx.
    required_columns : Optional[Sequence[str]]
        Column names that must exist in the bank.
    excel_sheet : Optional[str]
        Sheet name for Excel inputs. Defaults to the first sheet.
    derive_answer_from_bold : bool
        For .xlsx banks, add `answer_column` holding the label of the bold
        option cell per row (empty when no option is bold). Ignored for CSV.

    Returns
    -------
    pd.DataFrame
    """
    p = Path(path)
    if not p.exists():
        raise DatasetLoadError(f"File not found: {p!s}")
    if not p.is_file():
        raise DatasetLoadError(f"Path is not a file: {p!s}")

    ext = p.suffix.lower()
    if ext == ".csv":
        df = _read_csv(p)
    elif ext == ".xlsx":
        df = _read_excel(p, excel_sheet)
    else:
        raise DatasetLoadError(f"Unsupported file extension {ext!r}. Use .csv or .xlsx.")

    df.columns = [str(c).strip() for c in df.columns]
    _validate_required_columns(df, required_columns)

    keys = df[question_column].apply(normalize_key) if question_column in df.columns else None
    if keys is not None:
        blank = [i for i, key in keys.items() if key == ""]
        if blank:
            raise DatasetValidationError(f"Row(s) missing {question_column}: {blank}")
        duplicated = sorted(set(keys[keys.duplicated()]))
        if duplicated:
            raise DatasetValidationError(f"Duplicate {question_column} value(s): {duplicated}")

    if derive_answer_from_bold and ext == ".xlsx" and keys is not None:
        lookup = _bold_option_labels(p, question_column=question_column, option_labels=option_labels)
        df[answer_column] = keys.map(lambda key: lookup.get(key, ""))

    return df
