"""
Main Streamlit application for the user forms app.
Form Builder for the global field schema and User Management for the records.
"""

import streamlit as st
import logging

from userforms.config_loader import configure_logging, get_config_value, load_config, validate_config
from userforms.session_manager import PAGE_FORM_BUILDER, PAGE_USERS, PAGES, SessionManager

# Load configuration early
config = load_config()
configure_logging(config)
logger = logging.getLogger(__name__)

config_is_valid = validate_config(config)
if not config_is_valid:
    logger.warning("Configuration is incomplete; missing values fall back to defaults")

page_title = get_config_value(config, 'ui', 'page_title', 'User Management')
app_version = get_config_value(config, 'app', 'version', 'Unknown')
logger.info(f"Starting app version: {app_version}")

# Page configuration
st.set_page_config(
    page_title=page_title,
    page_icon="👥",
    layout="wide",
    initial_sidebar_state="expanded"
)

PAGE_LABELS = {
    PAGE_USERS: '👥 Users',
    PAGE_FORM_BUILDER: '🧩 Form Builder',
}


def main():
    """Main application entry point."""
    from userforms.error_handler import ErrorHandler, ErrorType
    from userforms.ui_feedback import Notify

    try:
        SessionManager.initialize(config)
        if not config_is_valid:
            Notify.once("Configuration is incomplete, using defaults", kind="warning", key="config_warning")
        render_sidebar()
        render_main_content()
    except Exception as e:
        ErrorHandler.handle_error(e, "application startup", ErrorType.SYSTEM)


def render_sidebar():
    """Render application sidebar."""
    with st.sidebar:
        sidebar_title = get_config_value(config, 'ui', 'sidebar_title', 'Navigation')
        st.header(sidebar_title)

        current = SessionManager.get_current_page()
        page = st.radio(
            "Select View:",
            options=list(PAGES),
            format_func=lambda x: PAGE_LABELS[x],
            index=list(PAGES).index(current)
        )

        if page != current:
            SessionManager.set_current_page(page)
            st.rerun()

        st.divider()
        if st.button("🔄 Refresh Data", help="Reload users and fields from storage"):
            SessionManager.request_reload()
            st.rerun()

        st.caption(f"{get_config_value(config, 'app', 'name', 'User Forms')} v{app_version}")
        st.caption(f"Storage: {get_config_value(config, 'storage', 'backend', 'local')}")

        if get_config_value(config, 'app', 'debug', False):
            with st.expander("Session"):
                st.json(SessionManager.get_session_info())


def render_main_content():
    """Render the selected page."""
    if SessionManager.get_current_page() == PAGE_FORM_BUILDER:
        render_form_builder_view()
    else:
        render_user_management_view()


def render_form_builder_view():
    from userforms.error_handler import ErrorHandler, ErrorType
    from userforms.form_builder_view import FormBuilderView

    ErrorHandler.with_error_handling(
        FormBuilderView.render,
        "rendering form builder",
        ErrorType.SYSTEM,
        "Error loading form builder. Use Refresh Data to try again."
    )


def render_user_management_view():
    from userforms.error_handler import ErrorHandler, ErrorType
    from userforms.user_management_view import UserManagementView

    ErrorHandler.with_error_handling(
        UserManagementView.render,
        "rendering user management",
        ErrorType.SYSTEM,
        "Error loading user management. Use Refresh Data to try again."
    )



if __name__ == "__main__":
    main()
