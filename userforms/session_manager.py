"""
Session state management for the user forms app.
Holds the current page, the screen workflows and pending confirmations in st.session_state.
"""

import streamlit as st
from typing import Dict, Any, Optional
import logging

from .backends import StorageBackend, create_backend
from .field_store import FieldStore
from .record_store import RecordStore
from .workflows import FormBuilderWorkflow, UserManagementWorkflow

logger = logging.getLogger(__name__)

PAGE_USERS = "users"
PAGE_FORM_BUILDER = "form_builder"
PAGES = (PAGE_USERS, PAGE_FORM_BUILDER)
DEFAULT_PAGE = PAGE_USERS


class SessionManager:
    """Manages Streamlit session state for the user forms app."""

    @staticmethod
    def initialize(config: Dict[str, Any], backend: Optional[StorageBackend] = None):
        """
        Initialize session state; existing keys are left alone.

        The backend and both workflows are built once per session from the
        storage section of the config.
        """
        defaults = {
            'current_page': DEFAULT_PAGE,
            'pending_delete': None,
            'users_loaded': False,
            'fields_loaded': False,
        }
        for key, default_value in defaults.items():
            if key not in st.session_state:
                st.session_state[key] = default_value

        if 'backend' not in st.session_state:
            st.session_state.backend = backend if backend is not None else create_backend(config)
            field_store = FieldStore(st.session_state.backend)
            record_store = RecordStore(st.session_state.backend)
            st.session_state.form_builder = FormBuilderWorkflow(field_store)
            st.session_state.user_management = UserManagementWorkflow(field_store, record_store)
            logger.info(f"Session initialized with {type(st.session_state.backend).__name__}")

    @staticmethod
    def get_current_page() -> str:
        """Get the current page."""
        return st.session_state.get('current_page', DEFAULT_PAGE)

    @staticmethod
    def set_current_page(page: str):
        """Set the current page; switching pages forces the target page to reload."""
        if page not in PAGES:
            logger.warning(f"Unknown page requested: {page}")
            return

        old_page = st.session_state.get('current_page')
        if old_page != page:
            logger.info(f"Page transition: {old_page} -> {page}")
            st.session_state.current_page = page
            st.session_state.pending_delete = None
            if page == PAGE_USERS:
                st.session_state.users_loaded = False
            else:
                st.session_state.fields_loaded = False

    @staticmethod
    def get_form_builder() -> FormBuilderWorkflow:
        return st.session_state.form_builder

    @staticmethod
    def get_user_management() -> UserManagementWorkflow:
        return st.session_state.user_management

    @staticmethod
    def get_pending_delete() -> Optional[str]:
        """Get the id of the user awaiting delete confirmation."""
        return st.session_state.get('pending_delete')

    @staticmethod
    def set_pending_delete(user_id: Optional[str]):
        st.session_state.pending_delete = user_id

    @staticmethod
    def needs_load(page: str) -> bool:
        key = 'users_loaded' if page == PAGE_USERS else 'fields_loaded'
        return not st.session_state.get(key, False)

    @staticmethod
    def mark_loaded(page: str):
        key = 'users_loaded' if page == PAGE_USERS else 'fields_loaded'
        st.session_state[key] = True

    @staticmethod
    def request_reload():
        """Force both pages to re-read storage on their next render."""
        st.session_state.users_loaded = False
        st.session_state.fields_loaded = False

    @staticmethod
    def get_session_info() -> Dict[str, Any]:
        """Get session information for debugging."""
        user_management = st.session_state.get('user_management')
        return {
            'current_page': SessionManager.get_current_page(),
            'backend': type(st.session_state.get('backend')).__name__,
            'pending_delete': SessionManager.get_pending_delete(),
            'editor_open': bool(user_management and user_management.editor is not None),
        }
