"""
Schema resolution for user records.

Computes the effective field list of a single record (global fields followed
by its custom fields) and the column set of the user table (global fields
followed by every record's custom fields, first name seen wins).
"""

from typing import Any, Iterable, List, Optional, Sequence
import logging

import pandas as pd

from .field_models import FieldDefinition, UserRecord

logger = logging.getLogger(__name__)

ID_COLUMN = "ID"


def effective_fields_for(
    global_fields: Sequence[FieldDefinition],
    record: Optional[UserRecord] = None,
    staged_custom_fields: Optional[Sequence[FieldDefinition]] = None,
) -> List[FieldDefinition]:
    """
    Get the effective field list for a record.

    Args:
        global_fields: Global fields in stored order
        record: Record whose custom fields are appended
        staged_custom_fields: Uncommitted custom field list; takes precedence over the record's

    Returns:
        Global fields followed by the custom fields, both in their own order
    """
    if staged_custom_fields is not None:
        custom_fields = list(staged_custom_fields)
    elif record is not None:
        custom_fields = list(record.custom_fields)
    else:
        custom_fields = []
    return list(global_fields) + custom_fields


def unique_columns_across_all_records(
    global_fields: Sequence[FieldDefinition],
    records: Iterable[UserRecord],
) -> List[FieldDefinition]:
    """
    Get the user table columns.

    Starts with the global fields and appends each record's custom fields in
    record order, skipping any field whose name was already appended.
    """
    columns: List[FieldDefinition] = []
    seen = set()

    for field in global_fields:
        if field.name not in seen:
            columns.append(field)
            seen.add(field.name)

    for record in records:
        for field in record.custom_fields:
            if field.name not in seen:
                columns.append(field)
                seen.add(field.name)

    return columns


def find_name_collision(name: str, fields: Iterable[FieldDefinition]) -> Optional[FieldDefinition]:
    """Return the field already using ``name``, if any."""
    for field in fields:
        if field.name == name:
            return field
    return None


def _display_value(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def column_headers(columns: Sequence[FieldDefinition]) -> List[str]:
    """
    Table headers for the field columns, one per field.

    Labels are not unique across fields, so a label already taken (or equal
    to the ID column) is shown with the field name, e.g. "Email (workEmail)".
    """
    taken = {ID_COLUMN}
    headers = []
    for column in columns:
        header = column.label
        if header in taken:
            header = f"{column.label} ({column.name})"
        base, suffix = header, 2
        while header in taken:
            header = f"{base} {suffix}"
            suffix += 1
        taken.add(header)
        headers.append(header)
    return headers


def build_records_frame(records: Sequence[UserRecord], columns: Sequence[FieldDefinition]) -> pd.DataFrame:
    """
    Build the user table as a DataFrame.

    One row per record and one uniquely named column per field, plus an ID
    column. Values a record does not have are shown as empty strings.
    """
    headers = [ID_COLUMN] + column_headers(columns)
    rows = []
    for record in records:
        row = [record.id] + [_display_value(record.get(column.name)) for column in columns]
        rows.append(row)

    frame = pd.DataFrame(rows, columns=headers)
    logger.debug(f"Built user table with {len(rows)} rows and {len(columns)} field columns")
    return frame
