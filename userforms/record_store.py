"""
Record store for user records.

The store assigns ids and persists records; it does not validate them.
Validation against the effective field list is the caller's job.
"""

import copy
from typing import Dict, Any, Callable, List, Mapping, Optional
import logging

from pydantic import ValidationError

from .backends import StorageBackend
from .exceptions import BackendFailure
from .field_models import FieldDefinition, UserRecord, generate_user_id

logger = logging.getLogger(__name__)


def _normalize_custom_fields(custom_fields: Any) -> List[Dict[str, Any]]:
    """Serialize a custom field list (models or payloads) to payloads."""
    normalized = []
    for field in custom_fields or []:
        if isinstance(field, FieldDefinition):
            normalized.append(field.to_payload())
        else:
            normalized.append(FieldDefinition.from_payload(dict(field)).to_payload())
    return normalized


def _parse_record(payload: Mapping[str, Any], operation: str) -> UserRecord:
    try:
        return UserRecord.from_payload(dict(payload))
    except (ValidationError, KeyError, TypeError) as e:
        logger.error(f"Backend returned a malformed user during {operation}: {e}")
        raise BackendFailure(operation, e, message=f"Failed to {operation}: malformed user data")


class RecordStore:
    """CRUD for user records."""

    def __init__(self, backend: StorageBackend, id_factory: Callable[[], str] = generate_user_id):
        self.backend = backend
        self.id_factory = id_factory

    def list(self) -> List[UserRecord]:
        return [_parse_record(p, "fetch users") for p in self.backend.list_users()]

    def get(self, user_id: str) -> Optional[UserRecord]:
        """Get a user by id, or None if it does not exist."""
        payload = self.backend.get_user(user_id)
        if payload is None:
            return None
        return _parse_record(payload, "fetch user")

    def create(self, data: Mapping[str, Any]) -> UserRecord:
        """
        Create a user record with a generated id.

        Args:
            data: Field values plus an optional ``customFields`` list; any ``id`` is ignored

        Returns:
            The stored record, with ``customFields`` normalized to a list
        """
        values = {k: copy.deepcopy(v) for k, v in data.items() if k not in ("id", "customFields")}
        payload: Dict[str, Any] = {"id": self.id_factory()}
        payload.update(values)
        payload["customFields"] = _normalize_custom_fields(data.get("customFields"))

        stored = self.backend.create_user(payload)
        record = _parse_record(stored or payload, "create user")
        logger.info(f"Created user {record.id} with {len(record.values)} values "
                    f"and {len(record.custom_fields)} custom fields")
        return record

    def update(self, user_id: str, partial: Mapping[str, Any]) -> UserRecord:
        """
        Shallow-merge ``partial`` into a stored record.

        Supplied keys overwrite, other keys persist, and a supplied
        ``customFields`` list replaces the previous one as a whole.
        """
        changes = {k: copy.deepcopy(v) for k, v in partial.items() if k != "id"}
        if "customFields" in changes:
            changes["customFields"] = _normalize_custom_fields(changes["customFields"])

        stored = self.backend.update_user(user_id, changes)
        if not stored:
            stored = self.backend.get_user(user_id)
            if stored is None:
                raise BackendFailure("update user", message=f"Failed to update user: {user_id} not found")

        record = _parse_record(stored, "update user")
        logger.info(f"Updated user {user_id}: {sorted(changes)}")
        return record

    def delete(self, user_id: str) -> None:
        """Delete a user record together with its custom fields."""
        self.backend.delete_user(user_id)
        logger.info(f"Deleted user {user_id}")
