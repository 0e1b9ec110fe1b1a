"""
Screen workflows for the user forms app.

``FormBuilderWorkflow`` drives the Form Builder screen (global schema) and
``UserManagementWorkflow`` drives the User Management screen (records and
their custom fields). Both own their screen state explicitly and only touch
it after the store confirms a write, so a failed call leaves the previous
state in place.
"""

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, Callable, List, Mapping, Optional, Tuple
import logging

from .diff_utils import calculate_diff, get_change_summary, get_changed_fields, has_changes
from .exceptions import (
    BackendFailure,
    DuplicateFieldNameError,
    FieldDefinitionError,
    RecordValidationError,
    log_error_with_context,
)
from .field_models import (
    CUSTOM_FIELD_PREFIX,
    GLOBAL_FIELD_PREFIX,
    STRUCTURAL_KEYS,
    FieldDefinition,
    UserRecord,
    generate_field_id,
)
from .field_store import FieldStore
from .record_store import RecordStore
from .schema_resolver import effective_fields_for, find_name_collision, unique_columns_across_all_records
from .validation import validate_field_definition, validate_record

logger = logging.getLogger(__name__)


class CustomFieldState(str, Enum):
    IDLE = "idle"
    EDITING_NEW_FIELD = "editing-new-field"


class SaveState(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"


def _clean_draft(draft: Mapping[str, Any]) -> Dict[str, Any]:
    """Strip text inputs and drop empty optional values from a field draft."""
    cleaned: Dict[str, Any] = {}
    for key, value in draft.items():
        if isinstance(value, str):
            value = value.strip()
        if key == "validation" and isinstance(value, Mapping):
            value = {k: v for k, v in value.items() if v not in (None, "")}
            if not value:
                continue
        if key == "placeholder" and not value:
            continue
        cleaned[key] = value
    cleaned.setdefault("type", "text")
    cleaned["required"] = bool(cleaned.get("required", False))
    return cleaned


def build_field_from_draft(draft: Mapping[str, Any], prefix: str, taken_ids: List[str]) -> FieldDefinition:
    """
    Build a FieldDefinition from a form draft, synthesizing its id.

    Raises:
        FieldDefinitionError: If name or label is missing or the rules are invalid
    """
    cleaned = _clean_draft(draft)
    problems = validate_field_definition(cleaned)
    if problems:
        raise FieldDefinitionError(problems)
    cleaned["id"] = generate_field_id(prefix, taken_ids)
    return FieldDefinition.from_payload(cleaned)


class FormBuilderWorkflow:
    """Form Builder screen: manage the global field list."""

    def __init__(self, field_store: FieldStore):
        self.field_store = field_store
        self.fields: List[FieldDefinition] = []

    def load(self) -> bool:
        """Load the global fields; a failed read degrades to an empty list."""
        try:
            self.fields = self.field_store.list()
            logger.info(f"Loaded {len(self.fields)} global fields")
            return True
        except BackendFailure as e:
            log_error_with_context(e, "loading fields")
            self.fields = []
            return False

    def _refresh(self) -> None:
        try:
            self.fields = self.field_store.list()
        except BackendFailure as e:
            log_error_with_context(e, "refreshing fields")

    def add_field(self, draft: Mapping[str, Any]) -> FieldDefinition:
        """
        Add a global field from a form draft.

        Args:
            draft: name, label, type, required, placeholder and optional validation rules

        Returns:
            The new field

        Raises:
            FieldDefinitionError: If the draft is malformed
            DuplicateFieldNameError: If a global field already uses the name
            BackendFailure: If the store write fails; the field list is untouched
        """
        new_field = build_field_from_draft(draft, GLOBAL_FIELD_PREFIX, [f.id for f in self.fields])
        if find_name_collision(new_field.name, self.fields):
            raise DuplicateFieldNameError(new_field.name)

        stored = self.field_store.add(new_field)
        self._refresh()
        return stored

    def remove_field(self, field_id: str) -> None:
        self.field_store.remove(field_id)
        self._refresh()

    def update_field(self, field_id: str, changes: Mapping[str, Any]) -> FieldDefinition:
        updated = self.field_store.update(field_id, changes)
        self._refresh()
        return updated

    def reset_to_default(self) -> List[FieldDefinition]:
        fields = self.field_store.reset_to_default()
        self._refresh()
        return fields


@dataclass
class UserEditor:
    """State of the create/edit user form."""
    editing_user: Optional[UserRecord] = None
    form_data: Dict[str, Any] = field(default_factory=dict)
    staged_custom_fields: List[FieldDefinition] = field(default_factory=list)
    removed_custom_field_names: List[str] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)
    custom_field_state: CustomFieldState = CustomFieldState.IDLE

    @property
    def is_edit_mode(self) -> bool:
        return self.editing_user is not None


class UserManagementWorkflow:
    """User Management screen: list, create, edit and delete user records."""

    def __init__(self, field_store: FieldStore, record_store: RecordStore):
        self.field_store = field_store
        self.record_store = record_store
        self.users: List[UserRecord] = []
        self.global_fields: List[FieldDefinition] = []
        self.editor: Optional[UserEditor] = None
        self.save_state = SaveState.IDLE
        self.last_changed_fields: List[str] = []

    def load(self) -> bool:
        """
        Load users and global fields.

        Each failed read degrades to an empty list so the screen still renders.

        Returns:
            True if both reads succeeded
        """
        ok = True
        try:
            self.users = self.record_store.list()
        except BackendFailure as e:
            log_error_with_context(e, "loading users")
            self.users = []
            ok = False

        try:
            self.global_fields = self.field_store.list()
        except BackendFailure as e:
            log_error_with_context(e, "loading fields")
            self.global_fields = []
            ok = False

        logger.info(f"Loaded {len(self.users)} users and {len(self.global_fields)} global fields")
        return ok

    def columns(self) -> List[FieldDefinition]:
        return unique_columns_across_all_records(self.global_fields, self.users)

    def find_user(self, user_id: str) -> Optional[UserRecord]:
        for user in self.users:
            if user.id == user_id:
                return user
        return None

    # Editor lifecycle

    def open_editor(self, user: Optional[UserRecord] = None) -> UserEditor:
        """
        Open the form in create mode (no user) or edit mode.

        Global fields are re-read so the form reflects the latest schema; if
        that read fails the previously loaded fields are kept.
        """
        if user is not None:
            editor = UserEditor(
                editing_user=user,
                form_data={k: copy.deepcopy(v) for k, v in user.values.items() if k not in STRUCTURAL_KEYS},
                staged_custom_fields=[f.model_copy(deep=True) for f in user.custom_fields],
            )
        else:
            editor = UserEditor()

        try:
            self.global_fields = self.field_store.list()
        except BackendFailure as e:
            log_error_with_context(e, "refreshing fields for the editor")

        self.editor = editor
        self.save_state = SaveState.IDLE
        logger.debug(f"Opened editor ({'edit ' + user.id if user else 'create'})")
        return editor

    def close_editor(self) -> None:
        self.editor = None
        self.save_state = SaveState.IDLE

    def _require_editor(self) -> UserEditor:
        if self.editor is None:
            raise RuntimeError("No user form is open")
        return self.editor

    def effective_fields(self) -> List[FieldDefinition]:
        """Effective field list of the record being edited, using the staged custom fields."""
        editor = self._require_editor()
        return effective_fields_for(
            self.global_fields,
            editor.editing_user,
            staged_custom_fields=editor.staged_custom_fields,
        )

    def set_value(self, field_name: str, value: Any) -> None:
        editor = self._require_editor()
        editor.form_data[field_name] = value

    # Custom fields

    def begin_custom_field(self) -> None:
        self._require_editor().custom_field_state = CustomFieldState.EDITING_NEW_FIELD

    def cancel_custom_field(self) -> None:
        self._require_editor().custom_field_state = CustomFieldState.IDLE

    def add_custom_field(self, draft: Mapping[str, Any]) -> FieldDefinition:
        """
        Stage a record-local field; it is persisted when the record is saved.

        Raises:
            FieldDefinitionError: If name or label is missing or the draft is malformed
            DuplicateFieldNameError: If the name is already in the effective field list
        """
        editor = self._require_editor()
        effective = self.effective_fields()

        new_field = build_field_from_draft(
            draft, CUSTOM_FIELD_PREFIX, [f.id for f in effective]
        )
        if find_name_collision(new_field.name, effective):
            logger.info(f"Rejected custom field '{new_field.name}': name already in use")
            raise DuplicateFieldNameError(new_field.name)

        editor.staged_custom_fields = editor.staged_custom_fields + [new_field]
        if new_field.name in editor.removed_custom_field_names:
            editor.removed_custom_field_names.remove(new_field.name)
        editor.custom_field_state = CustomFieldState.IDLE
        logger.info(f"Staged custom field '{new_field.name}' ({new_field.id})")
        return new_field

    def remove_custom_field(self, field_id: str) -> Optional[FieldDefinition]:
        """Unstage a custom field and drop its value from the form."""
        editor = self._require_editor()
        removed = next((f for f in editor.staged_custom_fields if f.id == field_id), None)
        if removed is None:
            logger.warning(f"Custom field {field_id} is not staged")
            return None

        editor.staged_custom_fields = [f for f in editor.staged_custom_fields if f.id != field_id]
        editor.form_data.pop(removed.name, None)
        editor.errors.pop(removed.name, None)
        if removed.name not in editor.removed_custom_field_names:
            editor.removed_custom_field_names.append(removed.name)
        logger.info(f"Unstaged custom field '{removed.name}' ({field_id})")
        return removed

    # Save and delete

    def build_submission(self) -> Dict[str, Any]:
        """
        Build the payload sent to the record store.

        Values of custom fields removed in this session are stripped and the
        staged custom field list is attached. Updates are a shallow merge, so a
        removed field that the stored record still holds is sent as None to
        clear it.
        """
        editor = self._require_editor()
        stale = set(editor.removed_custom_field_names)
        payload = {
            k: copy.deepcopy(v)
            for k, v in editor.form_data.items()
            if k not in stale and k not in STRUCTURAL_KEYS
        }
        if editor.is_edit_mode:
            for name in sorted(stale):
                if editor.editing_user.values.get(name) is not None:
                    payload[name] = None
        payload["customFields"] = [f.to_payload() for f in editor.staged_custom_fields]
        return payload

    def submit(self) -> UserRecord:
        """
        Validate and save the open form.

        Returns:
            The created or updated record

        Raises:
            RecordValidationError: If any field fails validation; nothing is sent to the store
            BackendFailure: If the store call fails; the form stays open and unchanged
        """
        editor = self._require_editor()
        fields = self.effective_fields()

        errors = validate_record(editor.form_data, fields)
        editor.errors = errors
        if errors:
            logger.info(f"Submission blocked by {len(errors)} validation error(s)")
            raise RecordValidationError(errors)

        payload = self.build_submission()
        self.save_state = SaveState.SUBMITTING
        try:
            if editor.is_edit_mode:
                original = editor.editing_user.to_payload()
                original.pop("id", None)
                diff = calculate_diff(original, payload)
                self.last_changed_fields = get_changed_fields(diff)
                if has_changes(diff):
                    summary = get_change_summary(diff)
                    logger.info(
                        f"Updating user {editor.editing_user.id}: {summary['modified']} modified, "
                        f"{summary['added']} added, {summary['removed']} removed"
                    )
                else:
                    logger.info(f"No changes detected for user {editor.editing_user.id}")
                record = self.record_store.update(editor.editing_user.id, payload)
            else:
                self.last_changed_fields = sorted(k for k in payload if k != "customFields")
                record = self.record_store.create(payload)
        except BackendFailure as e:
            log_error_with_context(e, "saving user")
            raise
        finally:
            self.save_state = SaveState.IDLE

        self._refresh_users()
        self.close_editor()
        return record

    def delete_user(self, user_id: str, confirm: Callable[[str], bool]) -> bool:
        """
        Delete a user after the caller confirms.

        Args:
            user_id: Id of the user to delete
            confirm: Blocking confirmation prompt; receives the user id

        Returns:
            True if the user was deleted, False if the confirmation was declined

        Raises:
            BackendFailure: If the store call fails; the user list is untouched
        """
        if not confirm(user_id):
            logger.info(f"Deletion of user {user_id} cancelled")
            return False

        try:
            self.record_store.delete(user_id)
        except BackendFailure as e:
            log_error_with_context(e, "deleting user")
            raise

        self._refresh_users()
        return True

    def _refresh_users(self) -> None:
        try:
            self.users = self.record_store.list()
        except BackendFailure as e:
            log_error_with_context(e, "refreshing users")


def summarize_submit_error(error: Exception, is_edit_mode: bool) -> Tuple[str, Dict[str, str]]:
    """Get the toast message and inline errors for a failed submit."""
    if isinstance(error, RecordValidationError):
        return "Please fix the errors in the form", error.errors
    return f"Failed to {'update' if is_edit_mode else 'create'} user", {}
