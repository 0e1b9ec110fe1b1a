"""
Field store for the global form schema.
Handles listing, adding, updating and removing global fields and resetting them to the defaults.
"""

from typing import Dict, Any, List, Mapping, Sequence, Union
import logging

from pydantic import ValidationError

from .backends import StorageBackend
from .exceptions import BackendFailure, DuplicateFieldNameError, FieldDefinitionError, FieldNotFoundError
from .field_models import FieldDefinition, get_default_fields
from .validation import validate_field_definition

logger = logging.getLogger(__name__)

FieldLike = Union[FieldDefinition, Mapping[str, Any]]


def _to_payload(field: FieldLike) -> Dict[str, Any]:
    if isinstance(field, FieldDefinition):
        return field.to_payload()
    return dict(field)


def _parse_field(payload: Mapping[str, Any]) -> FieldDefinition:
    """Validate a payload into a FieldDefinition, reporting problems as FieldDefinitionError."""
    problems = validate_field_definition(payload)
    if problems:
        raise FieldDefinitionError(problems)
    try:
        return FieldDefinition.from_payload(dict(payload))
    except ValidationError as e:
        raise FieldDefinitionError([err.get("msg", str(err)) for err in e.errors()])


class FieldStore:
    """CRUD for the ordered, process-wide list of global fields."""

    def __init__(self, backend: StorageBackend):
        self.backend = backend

    def list(self) -> List[FieldDefinition]:
        """
        Get the global fields in stored order.

        Raises:
            BackendFailure: If the backend cannot be read or returns malformed fields
        """
        payloads = self.backend.list_fields()
        try:
            return [FieldDefinition.from_payload(p) for p in payloads]
        except (ValidationError, TypeError, KeyError) as e:
            logger.error(f"Backend returned malformed fields: {e}")
            raise BackendFailure("fetch fields", e, message="Failed to fetch fields: malformed field data")

    def _find(self, fields: Sequence[FieldDefinition], field_id: str) -> FieldDefinition:
        for field in fields:
            if field.id == field_id:
                return field
        raise FieldNotFoundError(field_id)

    def add(self, field: FieldLike) -> FieldDefinition:
        """
        Append a field to the global list.

        Args:
            field: FieldDefinition or payload mapping (must carry an id)

        Returns:
            The stored field

        Raises:
            FieldDefinitionError: If the field is malformed
            DuplicateFieldNameError: If a global field already uses the name
            BackendFailure: If the backend write fails
        """
        new_field = _parse_field(_to_payload(field))
        existing = self.list()
        if any(f.name == new_field.name for f in existing):
            raise DuplicateFieldNameError(new_field.name)

        stored = self.backend.create_field(new_field.to_payload())
        logger.info(f"Added global field '{new_field.name}' ({new_field.id})")
        return FieldDefinition.from_payload(stored) if stored else new_field

    def remove(self, field_id: str) -> None:
        """Remove a global field by id."""
        field = self._find(self.list(), field_id)
        self.backend.delete_field(field_id)
        logger.info(f"Removed global field '{field.name}' ({field_id})")

    def update(self, field_id: str, partial: Mapping[str, Any]) -> FieldDefinition:
        """
        Apply a partial update to a global field.

        The merged result is validated again, and a rename must not collide with
        another global field. The id itself never changes.
        """
        fields = self.list()
        current = self._find(fields, field_id)

        changes = {k: v for k, v in dict(partial).items() if k != "id"}
        merged = _parse_field({**current.to_payload(), **changes})
        if any(f.name == merged.name and f.id != field_id for f in fields):
            raise DuplicateFieldNameError(merged.name)

        stored = self.backend.update_field(field_id, changes)
        logger.info(f"Updated global field '{merged.name}' ({field_id}): {sorted(changes)}")
        return FieldDefinition.from_payload(stored) if stored else merged

    def replace_all(self, fields: Sequence[FieldLike]) -> List[FieldDefinition]:
        """
        Replace the whole global list in one backend call.

        Raises:
            FieldDefinitionError: If any field is malformed
            DuplicateFieldNameError: If two fields share a name
        """
        parsed = [_parse_field(_to_payload(f)) for f in fields]
        seen = set()
        for field in parsed:
            if field.name in seen:
                raise DuplicateFieldNameError(field.name)
            seen.add(field.name)

        self.backend.replace_fields([f.to_payload() for f in parsed])
        logger.info(f"Replaced global field list ({len(parsed)} fields)")
        return parsed

    def reset_to_default(self) -> List[FieldDefinition]:
        """Atomically replace the global list with the four default fields."""
        logger.info("Resetting global fields to defaults")
        return self.replace_all(get_default_fields())
