"""
Validation engine for user records and field definitions.

``validate_record`` checks a record against an ordered list of field
definitions and returns one message per failing field. The rules for a
field are evaluated in order and the first failing rule wins:

1. required and blank        -> "<label> is required"
2. email type                -> "Invalid email address"
3. tel type with a pattern   -> "Invalid phone number format"
4. minLength                 -> "Minimum N characters required"
5. maxLength                 -> "Maximum N characters allowed"
6. number type, min and max  -> "Must be a valid number" / "Minimum value is N" / "Maximum value is N"
7. date type                 -> "Invalid date"
"""

import re
from datetime import date
from typing import Dict, Any, List, Mapping, Optional, Sequence
import logging

from .exceptions import RecordValidationError
from .field_models import FieldDefinition, FieldType, SUPPORTED_FIELD_TYPES, STRUCTURAL_KEYS

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
FIELD_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
MAX_FIELD_NAME_LENGTH = 100


def is_blank(value: Any) -> bool:
    """Check if a value counts as absent: None, empty or whitespace-only."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, dict, tuple)):
        return len(value) == 0
    return False


def _format_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def validate_value(field: FieldDefinition, value: Any) -> Optional[str]:
    """
    Validate a single value against its field definition.

    Args:
        field: Field definition
        value: Raw value from the record (may be missing)

    Returns:
        Error message for the first failing rule, or None if valid
    """
    if is_blank(value):
        if field.required:
            return f"{field.label} is required"
        return None

    rules = field.validation
    text = value if isinstance(value, str) else str(value)

    if field.type == FieldType.EMAIL and not EMAIL_PATTERN.match(text):
        return "Invalid email address"

    if field.type == FieldType.TEL and rules is not None and rules.pattern:
        try:
            if not re.search(rules.pattern, text):
                return "Invalid phone number format"
        except re.error as e:
            logger.warning(f"Ignoring invalid pattern on field '{field.name}': {e}")

    if rules is not None and rules.min_length is not None and len(text) < rules.min_length:
        return f"Minimum {rules.min_length} characters required"

    if rules is not None and rules.max_length is not None and len(text) > rules.max_length:
        return f"Maximum {rules.max_length} characters allowed"

    if field.type == FieldType.NUMBER:
        try:
            number = float(text)
        except ValueError:
            return "Must be a valid number"
        if rules is not None and rules.min is not None and number < rules.min:
            return f"Minimum value is {_format_number(rules.min)}"
        if rules is not None and rules.max is not None and number > rules.max:
            return f"Maximum value is {_format_number(rules.max)}"

    if field.type == FieldType.DATE:
        try:
            date.fromisoformat(text)
        except ValueError:
            return "Invalid date"

    return None


def validate_record(record: Mapping[str, Any], fields: Sequence[FieldDefinition]) -> Dict[str, str]:
    """
    Validate a record against an ordered list of field definitions.

    Args:
        record: Field name to value mapping
        fields: Effective field list for the record

    Returns:
        Mapping of field name to error message; empty when every field passes
    """
    errors: Dict[str, str] = {}
    for field in fields:
        message = validate_value(field, record.get(field.name))
        if message:
            errors[field.name] = message
    return errors


def ensure_valid_record(record: Mapping[str, Any], fields: Sequence[FieldDefinition]) -> None:
    """Raise RecordValidationError if the record fails validation."""
    errors = validate_record(record, fields)
    if errors:
        logger.info(f"Record validation failed for {len(errors)} field(s): {sorted(errors)}")
        raise RecordValidationError(errors)


def validate_regex_pattern(pattern: Optional[str]) -> Optional[str]:
    """
    Validate regex pattern with safe regex compilation testing.

    Returns:
        Error message if invalid, None if valid
    """
    if not pattern:
        return None

    try:
        re.compile(pattern)
        return None
    except re.error as e:
        return f"Invalid regex pattern: {str(e)}"


def _validate_field_name(name: str) -> List[str]:
    if name in STRUCTURAL_KEYS:
        return [f"Field name '{name}' is reserved and cannot be used"]
    if len(name) > MAX_FIELD_NAME_LENGTH:
        return [f"Field name '{name}' is too long (max {MAX_FIELD_NAME_LENGTH} characters)"]
    if not FIELD_NAME_PATTERN.match(name):
        return [f"Field name '{name}' may only contain letters, digits and underscores"]
    return []


def _validate_rule_bounds(rules: Mapping[str, Any]) -> List[str]:
    errors = []

    min_length = rules.get("minLength", rules.get("min_length"))
    max_length = rules.get("maxLength", rules.get("max_length"))
    for label, value in (("Minimum length", min_length), ("Maximum length", max_length)):
        if value is None:
            continue
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            errors.append(f"{label} must be a non-negative whole number")
    if isinstance(min_length, int) and isinstance(max_length, int) and min_length > max_length:
        errors.append("Minimum length cannot be greater than maximum length")

    min_value = rules.get("min")
    max_value = rules.get("max")
    numeric = []
    for label, value in (("Minimum value", min_value), ("Maximum value", max_value)):
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            errors.append(f"{label} must be a number")
        else:
            numeric.append(value)
    if len(numeric) == 2 and min_value > max_value:
        errors.append("Minimum value cannot be greater than maximum value")

    pattern_error = validate_regex_pattern(rules.get("pattern"))
    if pattern_error:
        errors.append(pattern_error)

    return errors


def validate_field_definition(draft: Mapping[str, Any]) -> List[str]:
    """
    Validate a draft field definition before it is added to a field list.

    Args:
        draft: Field definition in payload form (name, label, type, ...)

    Returns:
        List of validation errors; empty when the draft is usable
    """
    name = (draft.get("name") or "").strip()
    label = (draft.get("label") or "").strip()

    if not name or not label:
        return ["Field name and label are required"]

    errors = _validate_field_name(name)

    field_type = draft.get("type") or FieldType.TEXT.value
    if isinstance(field_type, FieldType):
        field_type = field_type.value
    if field_type not in SUPPORTED_FIELD_TYPES:
        errors.append(f"Invalid field type '{field_type}'. Valid types: {SUPPORTED_FIELD_TYPES}")

    rules = draft.get("validation") or {}
    if not isinstance(rules, Mapping):
        errors.append("Validation rules must be a mapping")
    else:
        errors.extend(_validate_rule_bounds(rules))

    return errors
