"""
Field and record models for the user forms app.
Pydantic models for runtime-defined form fields and the user records shaped by them.
"""

import random
import string
import time
from enum import Enum
from typing import Dict, Any, Optional, List, Iterable

from pydantic import BaseModel, ConfigDict, Field
import logging

logger = logging.getLogger(__name__)

CUSTOM_FIELD_PREFIX = "custom"
GLOBAL_FIELD_PREFIX = "field"
USER_ID_PREFIX = "user"

# Keys of a user record payload that are not form values
STRUCTURAL_KEYS = ("id", "customFields")


class FieldType(str, Enum):
    """Supported input types for a form field."""
    TEXT = "text"
    EMAIL = "email"
    TEL = "tel"
    NUMBER = "number"
    DATE = "date"
    TEXTAREA = "textarea"


SUPPORTED_FIELD_TYPES = [field_type.value for field_type in FieldType]


class FieldValidation(BaseModel):
    """Optional validation rules attached to a field."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    pattern: Optional[str] = None
    min_length: Optional[int] = Field(default=None, alias="minLength")
    max_length: Optional[int] = Field(default=None, alias="maxLength")
    min: Optional[float] = None
    max: Optional[float] = None

    def is_empty(self) -> bool:
        return all(value is None for value in self.model_dump().values())


class FieldDefinition(BaseModel):
    """
    One schema field.

    ``name`` is the key under which the value is stored in a user record,
    ``label`` is what the form displays.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    name: str
    label: str
    type: FieldType = FieldType.TEXT
    required: bool = False
    placeholder: Optional[str] = None
    validation: Optional[FieldValidation] = None

    def to_payload(self) -> Dict[str, Any]:
        """Serialize to the camelCase JSON shape used by the backends."""
        payload = self.model_dump(by_alias=True, exclude_none=True, mode="json")
        if self.validation is not None and self.validation.is_empty():
            payload.pop("validation", None)
        return payload

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "FieldDefinition":
        return cls.model_validate(payload)


class UserRecord(BaseModel):
    """
    A user record: generated id, record-local custom fields and the form values.

    On the wire a record is an open JSON object; ``values`` keeps the
    dynamic keys in insertion order while ``custom_fields`` stays typed.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str
    custom_fields: List[FieldDefinition] = Field(default_factory=list, alias="customFields")
    values: Dict[str, Any] = Field(default_factory=dict)

    def get(self, field_name: str, default: Any = None) -> Any:
        return self.values.get(field_name, default)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"id": self.id}
        payload.update(self.values)
        payload["customFields"] = [field.to_payload() for field in self.custom_fields]
        return payload

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "UserRecord":
        """
        Build a record from its open-map JSON shape.

        Args:
            payload: Record as stored by a backend

        Returns:
            UserRecord with ``customFields`` normalized to a list
        """
        values = {k: v for k, v in payload.items() if k not in STRUCTURAL_KEYS}
        custom_fields = payload.get("customFields") or []
        return cls(
            id=str(payload["id"]),
            custom_fields=[FieldDefinition.from_payload(f) for f in custom_fields],
            values=values,
        )


def _epoch_ms() -> int:
    return int(time.time() * 1000)


def generate_field_id(prefix: str = GLOBAL_FIELD_PREFIX, taken: Iterable[str] = ()) -> str:
    """
    Generate a field id of the form ``<prefix>-<epoch ms>``.

    Args:
        prefix: ``field`` for global fields, ``custom`` for record-local fields
        taken: Ids already in use; the timestamp is bumped until it is unique

    Returns:
        New field id
    """
    taken_ids = set(taken)
    stamp = _epoch_ms()
    field_id = f"{prefix}-{stamp}"
    while field_id in taken_ids:
        stamp += 1
        field_id = f"{prefix}-{stamp}"
    return field_id


def generate_user_id() -> str:
    """Generate a record id such as ``user-1700000000000-k3j9x0a1b``."""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"{USER_ID_PREFIX}-{_epoch_ms()}-{suffix}"


def is_custom_field(field: FieldDefinition) -> bool:
    """Check if a field is record-local rather than global."""
    return field.id.startswith(f"{CUSTOM_FIELD_PREFIX}-")


PHONE_NUMBER_PATTERN = r"^[+]?[(]?[0-9]{1,4}[)]?[-\s\.]?[(]?[0-9]{1,4}[)]?[-\s\.]?[0-9]{1,9}$"

_DEFAULT_FIELD_PAYLOADS: List[Dict[str, Any]] = [
    {
        "id": "firstName",
        "name": "firstName",
        "label": "First Name",
        "type": "text",
        "required": True,
        "placeholder": "Enter first name",
        "validation": {"minLength": 2, "maxLength": 50},
    },
    {
        "id": "lastName",
        "name": "lastName",
        "label": "Last Name",
        "type": "text",
        "required": True,
        "placeholder": "Enter last name",
        "validation": {"minLength": 2, "maxLength": 50},
    },
    {
        "id": "phoneNumber",
        "name": "phoneNumber",
        "label": "Phone Number",
        "type": "tel",
        "required": True,
        "placeholder": "+1 (555) 000-0000",
        "validation": {"pattern": PHONE_NUMBER_PATTERN},
    },
    {
        "id": "email",
        "name": "email",
        "label": "Email Address",
        "type": "email",
        "required": True,
        "placeholder": "example@email.com",
    },
]


def get_default_fields() -> List[FieldDefinition]:
    """Get a fresh copy of the four default fields, in display order."""
    return [FieldDefinition.from_payload(payload) for payload in _DEFAULT_FIELD_PAYLOADS]
