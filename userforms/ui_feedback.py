"""
Toast notifications and loading indicators for the user forms screens.
"""

import streamlit as st
import time
from contextlib import contextmanager
from typing import Dict, Tuple
import logging

logger = logging.getLogger(__name__)

# Seconds a fallback notification stays on screen
PLACEHOLDER_SECONDS = 3

# kind -> (icon, placeholder method used when st.toast is missing)
_KINDS: Dict[str, Tuple[str, str]] = {
    'success': ('✅', 'success'),
    'info': ('ℹ️', 'info'),
    'warning': ('⚠️', 'warning'),
    'error': ('❌', 'error'),
}


class Notify:
    """
    Non-blocking notifications for store results.

    Notify.success("New user has been created successfully")
    Notify.error("Failed to delete user")
    Notify.once("Using local storage", key="storage_notice")
    """

    @staticmethod
    def _show(message: str, kind: str) -> None:
        icon, method = _KINDS.get(kind, _KINDS['info'])
        logger.debug(f"Notify[{kind}]: {message}")

        if hasattr(st, 'toast'):
            st.toast(message, icon=icon)
            return

        # Older streamlit: flash a message in a placeholder, then clear it
        placeholder = st.empty()
        getattr(placeholder, method)(f"{icon} {message}")
        time.sleep(PLACEHOLDER_SECONDS)
        placeholder.empty()

    @staticmethod
    def success(message: str) -> None:
        Notify._show(message, 'success')

    @staticmethod
    def info(message: str) -> None:
        Notify._show(message, 'info')

    @staticmethod
    def warn(message: str) -> None:
        Notify._show(message, 'warning')

    @staticmethod
    def error(message: str) -> None:
        Notify._show(message, 'error')

    @staticmethod
    def once(message: str, kind: str = 'info', key: str = 'notify_once') -> bool:
        """Show a notification at most once per session; returns whether it was shown."""
        flag = f"_notified_{key}"
        if st.session_state.get(flag, False):
            return False
        Notify._show(message, kind)
        st.session_state[flag] = True
        return True


@contextmanager
def show_loading(message: str = "Loading..."):
    with st.spinner(message):
        yield
