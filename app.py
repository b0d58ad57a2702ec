"""Streamlit UI for DinnerTableMatch with a shared in-memory store."""
from __future__ import annotations

# Add src to sys.path so dinner_table_match can be found
import sys
import os
import uuid
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "src"))

import pandas as pd
import streamlit as st
import streamlit.components.v1 as components

from dinner_table_match.config import get_config
from dinner_table_match.csv_loader import load_users, tables_to_frame
from dinner_table_match.exceptions import DinnerTableError
from dinner_table_match.logging_utils import configure_logging
from dinner_table_match.membership import TableView
from dinner_table_match.mind_map import generate_table_mind_map
from dinner_table_match.models import ROLE_ADMIN
from dinner_table_match.protocol import TableService
from dinner_table_match.session import Identity, SessionManager
from dinner_table_match.store import USERS, create_store

# -----------------------------
# Shared state
# -----------------------------

@st.cache_resource
def shared_store():
    """One store per server process so every browser tab sees the same tables."""
    configure_logging()
    return create_store()


config = get_config()
store = shared_store()
if "service" not in st.session_state:
    st.session_state["service"] = TableService(store)
service = st.session_state["service"]
sessions = SessionManager(store)


def run(action, success: str | None = None):
    """Run a store mutation and report failures instead of raising."""
    try:
        result = action()
    except DinnerTableError as e:
        st.error(e.message)
        return None
    if success:
        st.success(success)
    return result


def page(view: TableView) -> None:
    # -----------------------------
    # Sign in
    # -----------------------------

    st.title("Dinner Table Match")

    user_id = st.session_state.get("user_id")
    if user_id is None:
        name = st.text_input("Your name")
        if st.button("Join", disabled=not name.strip()):
            identity = Identity(uid=uuid.uuid4().hex)
            run(lambda: sessions.sign_in_with_name(identity, name.strip()))
            st.session_state["user_id"] = identity.uid
            st.rerun()
        st.stop()

    me = sessions.load_profile(user_id)
    if me is None:
        st.session_state.pop("user_id", None)
        st.rerun()

    # -----------------------------
    # Sidebar
    # -----------------------------

    st.sidebar.header(me.label or me.id)
    if st.sidebar.button("Leave event"):
        sessions.sign_out(user_id)
        st.session_state.pop("user_id", None)
        st.rerun()

    with st.sidebar.expander("Profile"):
        dietary = st.text_input("Dietary", value=me.preferences.get("dietary", ""))
        interests = st.text_input("Interests", value=me.preferences.get("interests", ""))
        if st.button("Save profile"):
            run(
                lambda: sessions.update_profile(
                    user_id, preferences={"dietary": dietary, "interests": interests}
                ),
                "Profile saved",
            )

    # -----------------------------
    # Dashboard
    # -----------------------------

    busy = service.pending is not None
    my_table = view.table_for(user_id)
    settings = view.settings

    if my_table is None:
        st.info("You do not have a table yet.")
        if st.button("Get a table", disabled=busy):
            run(lambda: service.assign_table(me))
            st.rerun()
    else:
        st.subheader(f"You are at {my_table.name}")
        st.dataframe(
            pd.DataFrame([{"name": m.name, "gender": m.gender} for m in my_table.members]),
            use_container_width=True,
        )
        others = [t for t in view.tables if t.id != my_table.id and len(t.members) < settings.max_people_per_table]
        if others:
            target = st.selectbox("Move to", others, format_func=lambda t: f"{t.name} ({len(t.members)})")
            if st.button("Change table", disabled=busy):
                result = run(lambda: service.change_table(me, target.id))
                if result is not None and not result.ok:
                    st.warning(result.message)
                st.rerun()

    stats = service.distribution_stats()
    st.caption(
        f"{len(view.users)} people, {len(view.tables)} tables. "
        f"Optimal: {stats.total_tables} tables of about {stats.average_per_table}."
    )

    if view.tables:
        st.subheader("All tables")
        st.dataframe(tables_to_frame(view.tables), use_container_width=True)
        st.subheader("Seating Mind Map")
        components.html(generate_table_mind_map(view.tables), height=600, scrolling=True)

    # -----------------------------
    # Admin
    # -----------------------------

    if me.is_admin:
        st.header("Admin")
        with st.form("settings"):
            max_people = st.number_input(
                "Maximum people per table", min_value=2, max_value=25, value=settings.max_people_per_table
            )
            consider_location = st.checkbox("Group people by location", value=settings.consider_location)
            if st.form_submit_button("Save settings"):
                run(lambda: service.update_settings(me, max_people, consider_location), "Settings updated")

        col1, col2, col3 = st.columns(3)
        if col1.button("Shuffle tables", disabled=busy):
            run(lambda: service.shuffle_tables(me), "Tables shuffled")
        if col2.button("Reassign everyone", disabled=busy):
            run(lambda: service.reassign_all(me), "All users reassigned")
        if col3.button("Clear all tables", disabled=busy):
            run(lambda: service.clear_all_tables(me), "All tables cleared")

        uploaded = st.file_uploader("Import users CSV", type="csv")
        if uploaded is not None and st.button("Import"):
            try:
                imported = load_users(uploaded)
            except ValueError as e:
                st.error(f"Input validation error: {e}")
                st.stop()
            for user in imported:
                if user.id:
                    store.set(USERS, user.id, user.to_dict())
            st.success(f"Imported {len(imported)} users")

    elif config.allow_self_admin and st.sidebar.checkbox("I am the organizer"):
        if st.sidebar.button("Enable admin tools"):
            sessions.update_profile(user_id, role=ROLE_ADMIN)
            st.rerun()


# st.stop() and st.rerun() raise out of the page, the view must be closed on every path
view = TableView(store)
try:
    page(view)
finally:
    view.close()
