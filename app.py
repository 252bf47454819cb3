import streamlit as st
import sys
import os

# Add current directory to path so we can import modules if running from outside
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from okr_tracker.database import init_database
from okr_tracker.ui.import_page import render_import_page

st.set_page_config(page_title="OKR Tracker", layout="wide")


def render_workspace_sidebar():
    """Tenant and user the import runs as. Sign-in is handled upstream of this page."""
    st.sidebar.markdown("### 🏢 Workspace")
    tenant_id = st.sidebar.text_input("Tenant ID", value=st.session_state.get("tenant_id", ""))
    user_id = st.sidebar.text_input("User ID", value=st.session_state.get("user_id", ""))
    user_email = st.sidebar.text_input("User e-mail", value=st.session_state.get("user_email", ""))

    st.session_state.tenant_id = tenant_id.strip()
    st.session_state.user_id = user_id.strip()
    st.session_state.user_email = user_email.strip() or None
    return st.session_state.tenant_id, st.session_state.user_id, st.session_state.user_email


def main():
    init_database()  # Ensure tables exist

    tenant_id, user_id, user_email = render_workspace_sidebar()
    if not tenant_id or not user_id:
        st.info("👋 Enter a tenant and user in the sidebar to start an import.")
        return
    render_import_page(tenant_id, user_id, user_email)


if __name__ == "__main__":
    main()
