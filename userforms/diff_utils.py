"""
Diff utilities for user records.
Uses DeepDiff to report which fields an edit changes before it is saved.
"""

import re
from typing import Dict, Any, List
import logging

from deepdiff import DeepDiff

logger = logging.getLogger(__name__)

_ROOT_KEY_PATTERN = re.compile(r"root\['([^']+)'\]")

CHANGE_TYPES = (
    'values_changed',
    'dictionary_item_added',
    'dictionary_item_removed',
    'type_changes',
    'iterable_item_added',
    'iterable_item_removed',
)


def _normalize_value(value: Any) -> Any:
    """Normalize values for comparison: blank strings become None, strings are stripped."""
    if value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        return value if value else None
    if isinstance(value, list):
        return [_normalize_value(v) for v in value]
    if isinstance(value, dict):
        return {k: _normalize_value(v) for k, v in value.items()}
    return value


def _field_name(path: str) -> str:
    match = _ROOT_KEY_PATTERN.search(path)
    return match.group(1) if match else path


def calculate_diff(original: Dict[str, Any], modified: Dict[str, Any]) -> Dict[str, Any]:
    """
    Calculate differences between two versions of a record.

    Blank values are treated as missing, so clearing an untouched optional
    field is not reported as a change.

    Args:
        original: Record values before the edit
        modified: Record values after the edit

    Returns:
        Dict keyed by change type, each mapping top-level field names to details
    """
    normalized_original = {k: _normalize_value(v) for k, v in original.items()}
    normalized_modified = {k: _normalize_value(v) for k, v in modified.items()}

    # Absent and blank are the same thing for a form value
    for key in set(normalized_original) | set(normalized_modified):
        normalized_original.setdefault(key, None)
        normalized_modified.setdefault(key, None)

    diff = DeepDiff(normalized_original, normalized_modified, verbose_level=2)

    processed: Dict[str, Any] = {}
    for change_type in CHANGE_TYPES:
        entries = diff.get(change_type)
        if not entries:
            continue
        by_field: Dict[str, Any] = {}
        if isinstance(entries, dict):
            for path, detail in entries.items():
                by_field.setdefault(_field_name(str(path)), detail)
        else:
            for path in entries:
                by_field.setdefault(_field_name(str(path)), None)
        processed[change_type] = by_field

    return processed


def has_changes(diff: Dict[str, Any]) -> bool:
    """Check if there are any changes in the diff."""
    if not diff:
        return False
    return any(diff.get(change_type) for change_type in CHANGE_TYPES)


def get_changed_fields(diff: Dict[str, Any]) -> List[str]:
    """Get the names of all fields touched by the diff, sorted."""
    names = set()
    for change_type in CHANGE_TYPES:
        names.update((diff.get(change_type) or {}).keys())
    return sorted(names)


def get_change_summary(diff: Dict[str, Any]) -> Dict[str, int]:
    """
    Get a summary of changes by type.

    Returns:
        Dictionary with change counts by type
    """
    summary = {
        'modified': len(diff.get('values_changed') or {}),
        'added': len(diff.get('dictionary_item_added') or {}) + len(diff.get('iterable_item_added') or {}),
        'removed': len(diff.get('dictionary_item_removed') or {}) + len(diff.get('iterable_item_removed') or {}),
        'type_changed': len(diff.get('type_changes') or {}),
    }
    summary['total'] = sum(summary.values())
    return summary
