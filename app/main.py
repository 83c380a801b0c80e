"""
Oral Screening - Patient intake, photograph annotation and screening reports

Main application entry point with sidebar navigation.
"""
import logging

import streamlit as st

from app import config
from app.backend.state import init_session_state
from app.backend.pages import render_intake_page, render_annotation_page
from app.utils import setup_logging


def main():
    """Main application entry point"""
    # Page config
    st.set_page_config(
        page_title="Oral Screening",
        page_icon="",
        layout="wide",
    )

    # Streamlit reruns this script; configure the shared logger once per process
    if not logging.getLogger("app").handlers:
        setup_logging(config.LOG_DIR, "app", config.LOG_LEVEL)

    # Initialize session state
    init_session_state()

    # Initialize current page if not set
    if "current_page" not in st.session_state:
        st.session_state.current_page = "Intake"

    # Sidebar navigation
    st.sidebar.title("Oral Screening")
    page = st.sidebar.radio(
        "Navigation",
        ["Intake", "Annotate"],
        index=0 if st.session_state.current_page == "Intake" else 1,
        label_visibility="collapsed",
    )
    st.session_state.current_page = page
    st.sidebar.divider()

    # Render selected page
    if page == "Intake":
        render_intake_page()
    else:
        render_annotation_page()


if __name__ == "__main__":
    main()
