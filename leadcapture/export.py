"""
Listing helpers for captured leads: search/filter, spreadsheet export,
share text and dashboard stats.
"""

import logging
import time
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Union

import pandas as pd

from .models import BUSINESS_TYPES, ContactRecord

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

ALL_TYPES = "All"
SHEET_NAME = "Leads"
WEEK_MS = 7 * 24 * 60 * 60 * 1000

EXPORT_COLUMNS = [
    ("Company Name", "company_name"),
    ("Address", "address"),
    ("Contact Person", "contact_person"),
    ("Contact Number", "contact_number"),
    ("WhatsApp", "whatsapp_number"),
    ("Email", "email"),
    ("Website", "website"),
    ("Nature of Business", "nature_of_business"),
    ("Business Type", "business_type"),
    ("Notes", "notes"),
]


def filter_records(
    records: Iterable[ContactRecord],
    search: str = "",
    business_type: str = ALL_TYPES
) -> List[ContactRecord]:
    """Match company name or contact person (case-insensitive) and business type."""
    needle = (search or "").strip().lower()
    wanted = business_type or ALL_TYPES
    if wanted != ALL_TYPES and wanted not in BUSINESS_TYPES:
        raise ValueError(f"Unknown business type: {wanted}")

    matches = []
    for record in records:
        if needle and needle not in record.company_name.lower() \
                and needle not in record.contact_person.lower():
            continue
        if wanted != ALL_TYPES and record.business_type != wanted:
            continue
        matches.append(record)
    return matches


def format_scan_date(captured_at: int) -> str:
    return datetime.fromtimestamp(captured_at / 1000).strftime("%Y-%m-%d %H:%M:%S")


def records_to_dataframe(records: Sequence[ContactRecord]) -> pd.DataFrame:
    """Convert records into a :class:`pandas.DataFrame` with export column names."""
    rows = []
    for record in records:
        row = {title: getattr(record, attr) for title, attr in EXPORT_COLUMNS}
        row["Scan Date"] = format_scan_date(record.captured_at)
        rows.append(row)
    columns = [title for title, _ in EXPORT_COLUMNS] + ["Scan Date"]
    return pd.DataFrame(rows, columns=columns)


def export_filename(extension: str = "xlsx", today: Optional[datetime] = None) -> str:
    today = today or datetime.now()
    return f"Leads_Export_{today.strftime('%Y-%m-%d')}.{extension}"


def export_records(records: Sequence[ContactRecord], path: PathLike) -> Path:
    """
    Write records to a CSV or Excel file, chosen by the file extension.

    Args:
        records: Records to export
        path: Output path (.csv or .xlsx)

    Returns:
        Path of the written file

    Raises:
        ValueError: If there is nothing to export or the extension is unsupported
    """
    if not records:
        raise ValueError("No leads to export")

    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    dataframe = records_to_dataframe(records)
    suffix = output_path.suffix.lower()

    if suffix == ".csv":
        dataframe.to_csv(output_path, index=False)
    elif suffix == ".xlsx":
        with pd.ExcelWriter(output_path, engine="openpyxl") as writer:
            dataframe.to_excel(writer, index=False, sheet_name=SHEET_NAME)
            _autosize_columns(writer.sheets[SHEET_NAME], dataframe)
    else:
        raise ValueError(f"Unsupported export file extension: {suffix}")

    logger.info(f"Exported {len(records)} leads to {output_path}")
    return output_path


def _autosize_columns(worksheet, dataframe: pd.DataFrame) -> None:
    """Width of each column = longest header or value + 2."""
    from openpyxl.utils import get_column_letter

    for index, column in enumerate(dataframe.columns, start=1):
        values = [str(v) for v in dataframe[column].tolist() if v is not None]
        width = max([len(column)] + [len(v) for v in values]) + 2
        worksheet.column_dimensions[get_column_letter(index)].width = width


def format_share_text(record: ContactRecord) -> str:
    """Plain-text summary of a lead for messaging apps."""
    lines = [
        f"*{record.company_name}*",
        "----------------",
        f"Contact: {record.contact_person}",
        f"Phone: {record.contact_number}",
        f"Email: {record.email}",
        f"Address: {record.address}",
        f"Type: {record.business_type}",
        f"Notes: {record.notes}",
    ]
    return "\n".join(lines)


def summarize(records: Sequence[ContactRecord], now_ms: Optional[int] = None) -> Dict:
    """Dashboard numbers: total leads, leads captured in the last 7 days, 3 most recent."""
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    this_week = sum(1 for r in records if now_ms - r.captured_at < WEEK_MS)
    return {
        "total": len(records),
        "this_week": this_week,
        "recent": [r.to_dict() for r in records[:3]]
    }
