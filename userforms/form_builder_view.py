"""
Form Builder view for the user forms app.
Lists the global fields and lets the operator add, remove and reset them.
"""

import streamlit as st
import logging
from typing import Dict, Any, Optional, Tuple

from .error_handler import ErrorHandler, ErrorType
from .exceptions import BackendFailure, DuplicateFieldNameError, FieldDefinitionError, UserFormsError
from .field_models import SUPPORTED_FIELD_TYPES, FieldDefinition
from .session_manager import PAGE_FORM_BUILDER, SessionManager
from .ui_feedback import Notify, show_loading
from .validation import validate_regex_pattern
from .workflows import FormBuilderWorkflow

logger = logging.getLogger(__name__)

TYPE_LABELS = {
    'text': 'Text',
    'email': 'Email',
    'tel': 'Phone',
    'number': 'Number',
    'date': 'Date',
    'textarea': 'Text Area',
}


def render_field_draft_form(key_prefix: str, submit_label: str) -> Tuple[Optional[Dict[str, Any]], bool]:
    """
    Render the "new field" inputs inside an st.form.

    Args:
        key_prefix: Widget key prefix, unique per screen
        submit_label: Label of the submit button

    Returns:
        (draft, cancelled): draft is None unless the form was submitted
    """
    with st.form(key=f"{key_prefix}_form", clear_on_submit=False):
        col1, col2 = st.columns(2)
        with col1:
            name = st.text_input("Field Name *", placeholder="e.g., dateOfBirth", key=f"{key_prefix}_name")
        with col2:
            label = st.text_input("Field Label *", placeholder="e.g., Date of Birth", key=f"{key_prefix}_label")

        col1, col2 = st.columns(2)
        with col1:
            field_type = st.selectbox(
                "Field Type",
                options=SUPPORTED_FIELD_TYPES,
                format_func=lambda t: TYPE_LABELS.get(t, t),
                key=f"{key_prefix}_type"
            )
        with col2:
            placeholder = st.text_input(
                "Placeholder (Optional)", placeholder="e.g., MM/DD/YYYY", key=f"{key_prefix}_placeholder"
            )

        required = st.checkbox("Required field", key=f"{key_prefix}_required")

        with st.expander("Validation rules (optional)"):
            col1, col2 = st.columns(2)
            with col1:
                min_length = st.number_input(
                    "Minimum Length", min_value=0, value=None, step=1, key=f"{key_prefix}_min_length"
                )
                min_value = st.number_input("Minimum Value", value=None, key=f"{key_prefix}_min")
            with col2:
                max_length = st.number_input(
                    "Maximum Length", min_value=0, value=None, step=1, key=f"{key_prefix}_max_length"
                )
                max_value = st.number_input("Maximum Value", value=None, key=f"{key_prefix}_max")
            pattern = st.text_input(
                "Validation Pattern (Regex)",
                key=f"{key_prefix}_pattern",
                help="Regular expression the value must match (phone fields)"
            )

        col1, col2 = st.columns(2)
        with col1:
            submitted = st.form_submit_button(submit_label, type="primary")
        with col2:
            cancelled = st.form_submit_button("Cancel")

    if pattern:
        pattern_error = validate_regex_pattern(pattern)
        if pattern_error:
            st.error(f"❌ **Pattern Error:** {pattern_error}")

    if not submitted:
        return None, bool(cancelled)

    draft = {
        'name': name,
        'label': label,
        'type': field_type,
        'required': required,
        'placeholder': placeholder,
        'validation': {
            'minLength': int(min_length) if min_length is not None else None,
            'maxLength': int(max_length) if max_length is not None else None,
            'min': min_value,
            'max': max_value,
            'pattern': pattern,
        },
    }
    return draft, False


def describe_field(field: FieldDefinition) -> str:
    """One-line summary of a field's name, type and rules."""
    parts = [f"`{field.name}`", TYPE_LABELS.get(field.type.value, field.type.value)]
    rules = field.validation
    if rules is not None:
        if rules.min_length is not None:
            parts.append(f"min {rules.min_length} chars")
        if rules.max_length is not None:
            parts.append(f"max {rules.max_length} chars")
        if rules.min is not None:
            parts.append(f"min {rules.min:g}")
        if rules.max is not None:
            parts.append(f"max {rules.max:g}")
        if rules.pattern:
            parts.append("pattern")
    return " · ".join(parts)


class FormBuilderView:
    """Form Builder screen."""

    @staticmethod
    def render() -> None:
        """Main entry point for the Form Builder page."""
        workflow = SessionManager.get_form_builder()

        if SessionManager.needs_load(PAGE_FORM_BUILDER):
            with show_loading("Loading fields..."):
                if not workflow.load():
                    Notify.error("Failed to load fields")
            SessionManager.mark_loaded(PAGE_FORM_BUILDER)

        st.header("🧩 Form Builder")
        st.caption("Configure your user form fields dynamically")

        FormBuilderView._render_toolbar(workflow)
        FormBuilderView._render_add_field(workflow)
        st.divider()
        FormBuilderView._render_field_list(workflow)
        FormBuilderView._render_info_card()

    @staticmethod
    def _render_toolbar(workflow: FormBuilderWorkflow) -> None:
        count = len(workflow.fields)
        col1, col2, col3 = st.columns([3, 1, 1])
        with col1:
            st.subheader("Form Fields")
            st.caption(f"{count} field{'s' if count != 1 else ''} configured")
        with col2:
            if st.button("Reset to Default", key="fb_reset"):
                FormBuilderView._handle_reset(workflow)
        with col3:
            if st.button("Add Field", key="fb_open_add", type="primary"):
                st.session_state.fb_adding = True

    @staticmethod
    def _render_add_field(workflow: FormBuilderWorkflow) -> None:
        if not st.session_state.get('fb_adding', False):
            return

        st.markdown("#### Add New Field")
        st.caption("Create a new field that will appear in the user form")
        draft, cancelled = render_field_draft_form("fb_new_field", "Add Field")
        if cancelled:
            st.session_state.fb_adding = False
            st.rerun()
        if draft is not None:
            FormBuilderView._handle_add(workflow, draft)

    @staticmethod
    def _render_field_list(workflow: FormBuilderWorkflow) -> None:
        if not workflow.fields:
            st.info("No fields configured. Use \"Add Field\" or \"Reset to Default\".")
            return

        for field in workflow.fields:
            col1, col2 = st.columns([6, 1])
            with col1:
                badge = " :red[Required]" if field.required else ""
                st.markdown(f"**{field.label}**{badge}")
                st.caption(describe_field(field))
            with col2:
                if st.button("🗑️", key=f"fb_remove_{field.id}", help=f"Remove {field.label}"):
                    FormBuilderView._handle_remove(workflow, field)

    @staticmethod
    def _render_info_card() -> None:
        with st.expander("ℹ️ How to extend the form"):
            st.markdown(
                "- Click \"Add Field\" to create new form fields dynamically\n"
                "- Specify field name, label, type, and whether it's required\n"
                "- Fields are automatically validated in the user form\n"
                "- Use \"Users\" in the sidebar to create, edit, and delete user records"
            )

    @staticmethod
    def _handle_add(workflow: FormBuilderWorkflow, draft: Dict[str, Any]) -> None:
        try:
            field = workflow.add_field(draft)
        except (FieldDefinitionError, DuplicateFieldNameError) as e:
            Notify.error(e.message)
            return
        except BackendFailure as e:
            ErrorHandler.handle_error(e, "adding field", ErrorType.STORAGE, "Failed to add field")
            return

        Notify.success(f"\"{field.label}\" has been added to the form")
        st.session_state.fb_adding = False
        st.rerun()

    @staticmethod
    def _handle_remove(workflow: FormBuilderWorkflow, field: FieldDefinition) -> None:
        try:
            workflow.remove_field(field.id)
        except UserFormsError as e:
            ErrorHandler.handle_error(e, "removing field", ErrorType.STORAGE, "Failed to remove field")
            return

        Notify.success(f"\"{field.label}\" has been removed from the form")
        st.rerun()

    @staticmethod
    def _handle_reset(workflow: FormBuilderWorkflow) -> None:
        try:
            workflow.reset_to_default()
        except UserFormsError as e:
            ErrorHandler.handle_error(e, "resetting fields", ErrorType.STORAGE, "Failed to reset fields")
            return

        Notify.success("Form fields have been reset to default configuration")
        st.rerun()
