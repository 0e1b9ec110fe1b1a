"""
User Management view for the user forms app.
Shows the user table and the create/edit form with record-local custom fields.
"""

import streamlit as st
import logging
from datetime import date, datetime
from typing import Any, Optional

from dateutil import parser

from .error_handler import ErrorHandler, ErrorType
from .exceptions import (
    BackendFailure,
    DuplicateFieldNameError,
    FieldDefinitionError,
    RecordValidationError,
    UserFormsError,
)
from .field_models import FieldDefinition, FieldType, UserRecord, is_custom_field
from .form_builder_view import render_field_draft_form
from .schema_resolver import build_records_frame
from .session_manager import PAGE_USERS, SessionManager
from .ui_feedback import Notify, show_loading
from .workflows import CustomFieldState, UserManagementWorkflow, summarize_submit_error

logger = logging.getLogger(__name__)


def parse_date_value(value: Any) -> Optional[date]:
    """Convert a stored date value to a date for st.date_input; unparseable values become None."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return parser.parse(str(value)).date()
    except (ValueError, OverflowError) as e:
        logger.warning(f"Failed to parse date string '{value}': {e}")
        return None


def parse_number_value(value: Any) -> Optional[float]:
    """Convert a stored number value for st.number_input; blank or non-numeric values become None."""
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning(f"Failed to parse number '{value}'")
        return None


def _whole_number(value: float):
    return int(value) if float(value).is_integer() else value


def _text_value(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


class UserManagementView:
    """User Management screen."""

    @staticmethod
    def render() -> None:
        """Main entry point for the User Management page."""
        workflow = SessionManager.get_user_management()

        if SessionManager.needs_load(PAGE_USERS):
            with show_loading("Loading users..."):
                if not workflow.load():
                    Notify.error("Failed to load data")
            SessionManager.mark_loaded(PAGE_USERS)

        st.header("👥 User Management")
        st.caption("Create, view, edit and delete user records")

        if workflow.editor is not None:
            UserManagementView._render_editor(workflow)
            return

        if st.button("➕ Add User", key="um_add_user", type="primary"):
            UserManagementView._open_editor(workflow, None)
            st.rerun()

        UserManagementView._render_delete_confirmation(workflow)
        UserManagementView._render_user_table(workflow)

    @staticmethod
    def _open_editor(workflow: UserManagementWorkflow, user: Optional[UserRecord]) -> None:
        st.session_state.um_editor_nonce = st.session_state.get('um_editor_nonce', 0) + 1
        workflow.open_editor(user)

    # User table

    @staticmethod
    def _render_user_table(workflow: UserManagementWorkflow) -> None:
        if not workflow.users:
            st.info("**No users yet.** Get started by creating your first user.")
            return

        columns = workflow.columns()
        frame = build_records_frame(workflow.users, columns)
        custom_labels = [c.label for c in columns if is_custom_field(c)]
        if custom_labels:
            st.caption(f"Custom columns: {', '.join(custom_labels)}")
        st.dataframe(frame, hide_index=True, use_container_width=True)

        st.markdown("#### Actions")
        for user in workflow.users:
            label = UserManagementView._user_title(user, columns)
            col1, col2, col3 = st.columns([4, 1, 1])
            with col1:
                st.write(label)
            with col2:
                if st.button("✏️ Edit", key=f"um_edit_{user.id}"):
                    UserManagementView._open_editor(workflow, user)
                    st.rerun()
            with col3:
                if st.button("🗑️ Delete", key=f"um_delete_{user.id}"):
                    SessionManager.set_pending_delete(user.id)
                    st.rerun()

    @staticmethod
    def _user_title(user: UserRecord, columns: list) -> str:
        """Row label: the first two non-empty values, or the id."""
        values = [_text_value(user.get(c.name)) for c in columns]
        values = [v for v in values if v][:2]
        return " ".join(values) if values else user.id

    @staticmethod
    def _render_delete_confirmation(workflow: UserManagementWorkflow) -> None:
        user_id = SessionManager.get_pending_delete()
        if not user_id:
            return

        st.warning(f"Are you sure you want to delete this user? ({user_id})")
        col1, col2 = st.columns(2)
        with col1:
            confirmed = st.button("Confirm Delete", key="um_confirm_delete", type="primary")
        with col2:
            cancelled = st.button("Cancel", key="um_cancel_delete")

        if cancelled:
            SessionManager.set_pending_delete(None)
            st.rerun()
        if confirmed:
            SessionManager.set_pending_delete(None)
            try:
                workflow.delete_user(user_id, confirm=lambda _user_id: True)
            except UserFormsError as e:
                ErrorHandler.handle_error(e, "deleting user", ErrorType.STORAGE, "Failed to delete user")
                return
            Notify.success("User has been deleted successfully")
            st.rerun()

    # Editor

    @staticmethod
    def _render_editor(workflow: UserManagementWorkflow) -> None:
        editor = workflow.editor
        if editor.is_edit_mode:
            st.subheader("Edit User")
            st.caption("Update the user's information below")
        else:
            st.subheader("Create New User")
            st.caption("Fill in the information to create a new user")

        if st.button("➕ Add Custom Field", key="um_begin_custom"):
            workflow.begin_custom_field()

        if editor.custom_field_state == CustomFieldState.EDITING_NEW_FIELD:
            UserManagementView._render_custom_field_form(workflow)

        fields = workflow.effective_fields()
        standard = fields[:len(workflow.global_fields)]
        staged = fields[len(workflow.global_fields):]

        st.markdown("##### Standard Fields")
        if not standard:
            st.info("No global fields configured. Add some in the Form Builder.")
        for field in standard:
            UserManagementView._render_field(workflow, field)

        if staged:
            st.markdown(f"##### Custom Fields for This User ({len(staged)})")
            for field in staged:
                col1, col2 = st.columns([6, 1])
                with col1:
                    UserManagementView._render_field(workflow, field)
                with col2:
                    if st.button("🗑️", key=f"um_remove_custom_{field.id}", help=f"Remove {field.label}"):
                        workflow.remove_custom_field(field.id)
                        Notify.info("Custom field has been removed")
                        st.rerun()

        st.divider()
        col1, col2 = st.columns(2)
        with col1:
            if st.button("Cancel", key="um_cancel_editor"):
                workflow.close_editor()
                st.rerun()
        with col2:
            submit_label = "Update User" if editor.is_edit_mode else "Create User"
            if st.button(submit_label, key="um_submit", type="primary"):
                UserManagementView._handle_submit(workflow)

    @staticmethod
    def _render_custom_field_form(workflow: UserManagementWorkflow) -> None:
        st.markdown("#### Add Custom Field")
        st.caption("This field is added to the current user only")
        draft, cancelled = render_field_draft_form("um_custom_field", "Add Field")
        if cancelled:
            workflow.cancel_custom_field()
            st.rerun()
        if draft is None:
            return

        try:
            field = workflow.add_custom_field(draft)
        except DuplicateFieldNameError as e:
            Notify.error(e.message)
            return
        except FieldDefinitionError as e:
            Notify.error(e.message)
            return

        Notify.success(f"\"{field.label}\" has been added to this user")
        st.rerun()

    @staticmethod
    def _render_field(workflow: UserManagementWorkflow, field: FieldDefinition) -> None:
        """Render the widget for one field and write its value back to the form."""
        editor = workflow.editor
        nonce = st.session_state.get('um_editor_nonce', 0)
        key = f"um_field_{nonce}_{field.id}"
        label = f"{field.label} *" if field.required else field.label
        current = editor.form_data.get(field.name)
        placeholder = field.placeholder or ""

        if is_custom_field(field):
            st.caption("🏷️ Custom Field")

        if field.type == FieldType.DATE:
            picked = st.date_input(label, value=parse_date_value(current), key=key)
            value = picked.strftime("%Y-%m-%d") if isinstance(picked, date) else ""
            changed = value != _text_value(current)
        elif field.type == FieldType.NUMBER:
            stored = parse_number_value(current)
            picked = st.number_input(label, value=stored, placeholder=placeholder or None, key=key)
            value = "" if picked is None else _whole_number(picked)
            changed = picked != stored
        elif field.type == FieldType.TEXTAREA:
            value = st.text_area(label, value=_text_value(current), placeholder=placeholder, key=key)
            changed = value != _text_value(current)
        else:
            value = st.text_input(label, value=_text_value(current), placeholder=placeholder, key=key)
            changed = value != _text_value(current)

        if changed:
            workflow.set_value(field.name, value)

        error = editor.errors.get(field.name)
        if error:
            st.error(error)

    @staticmethod
    def _handle_submit(workflow: UserManagementWorkflow) -> None:
        is_edit_mode = workflow.editor.is_edit_mode
        try:
            record = workflow.submit()
        except (RecordValidationError, BackendFailure) as e:
            message, _errors = summarize_submit_error(e, is_edit_mode)
            if isinstance(e, BackendFailure):
                ErrorHandler.handle_error(e, "saving user", ErrorType.STORAGE, message)
            else:
                Notify.error(message)
                # Inline errors are drawn by the field widgets on the next run
                st.rerun()
            return

        if is_edit_mode:
            changed = ", ".join(workflow.last_changed_fields) or "no fields"
            Notify.success(f"User information has been updated successfully ({changed})")
        else:
            Notify.success("New user has been created successfully")
        logger.info(f"Saved user {record.id}")
        st.rerun()
