"""Small Streamlit helpers shared by the pages."""
import streamlit as st

from . import session
from .models import UserProfile


def safe_get(d, *keys, default=None):
    cur = d
    for k in keys:
        if not isinstance(cur, dict) or k not in cur:
            return default
        cur = cur[k]
    return cur


def bullet_list(items, empty: str = "") -> None:
    items = [i for i in items or [] if i]
    if not items:
        if empty:
            st.caption(empty)
        return
    st.markdown("\n".join(f"- {i if isinstance(i, str) else safe_get(i, 'description', default=i)}" for i in items))


def require_user(expected_type: str = "") -> UserProfile:
    """Stop the page unless someone signed in (guests included) through Home."""
    session.ensure_defaults(st.session_state)
    user = session.current_user(st.session_state)
    if user is None:
        st.warning("Choose Patient or Doctor on the Home page to get started.")
        if st.button("Go to Home"):
            st.switch_page("Home.py")
        st.stop()
    if expected_type and not user.is_guest and user.type != expected_type:
        st.warning(f"You are signed in as a {user.type}. Log out to switch portals.")
        st.stop()
    return user


def top_bar(user: UserProfile) -> None:
    c1, c2, c3 = st.columns([4, 1, 1])
    c1.markdown("### MEDICREW")
    if c2.button("Account", key="nav_account"):
        session.open_account(st.session_state)
        st.switch_page(session.page_for(st.session_state))
    if c3.button("Home", key="nav_home"):
        session.go_home(st.session_state)
        st.switch_page(session.page_for(st.session_state))
    st.caption(f"Signed in as **{user.name}** ({user.type})")
