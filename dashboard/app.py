"""Streamlit staff console for the StayHub booking API."""

from __future__ import annotations

import datetime
import os
from typing import Any, Dict, List, Optional

import pandas as pd
import requests
import streamlit as st

# ==========================================
# Configuration & Constants
# ==========================================
API_BASE_URL = os.getenv("STAYHUB_API_URL", "http://127.0.0.1:8000")
CATEGORIES = ["normal", "b2b", "airbnb", "mmt", "promotion", "other"]

st.set_page_config(
    page_title="StayHub Console",
    page_icon="🏕️",
    layout="wide",
)


# ==========================================
# API Helper Functions
# ==========================================
def _auth_headers() -> Dict[str, str]:
    token = st.session_state.get("access_token")
    return {"Authorization": f"Bearer {token}"} if token else {}


def _error_detail(response: requests.Response) -> str:
    try:
        return str(response.json().get("detail", response.text))
    except ValueError:
        return response.text


def call_api(method: str, path: str, **kwargs: Any) -> Optional[Any]:
    """Call the API; a 503 is shown as a retryable outage, never as an empty result."""
    try:
        response = requests.request(
            method,
            f"{API_BASE_URL}{path}",
            headers=_auth_headers(),
            timeout=10,
            **kwargs,
        )
    except requests.exceptions.RequestException as e:
        st.error(f"Backend connection failed: {e}")
        return None

    if response.status_code == 503:
        st.error(f"Data temporarily unavailable, please retry. ({_error_detail(response)})")
        return None
    if response.status_code == 409:
        st.warning(f"Rooms are no longer available: {_error_detail(response)}")
        return None
    if response.status_code >= 400:
        st.error(f"Request failed ({response.status_code}): {_error_detail(response)}")
        return None
    if response.status_code == 204:
        return {}
    return response.json()


def login(admin_token: str) -> bool:
    result = call_api("POST", "/login", json={"admin_token": admin_token})
    if result is None:
        return False
    st.session_state["access_token"] = result["access_token"]
    return True


def logout() -> None:
    call_api("POST", "/logout")
    st.session_state.pop("access_token", None)


# ==========================================
# UI Page Functions
# ==========================================
def _date_inputs(prefix: str) -> tuple[datetime.date, datetime.date]:
    today = datetime.date.today()
    col1, col2 = st.columns(2)
    with col1:
        check_in = st.date_input("Check-in", today, key=f"{prefix}_check_in")
    with col2:
        check_out = st.date_input(
            "Check-out",
            today + datetime.timedelta(days=1),
            key=f"{prefix}_check_out",
        )
    return check_in, check_out


def render_availability_page() -> None:
    st.header("🛏️ Availability")
    check_in, check_out = _date_inputs("availability")
    if check_out <= check_in:
        st.warning("Check-out must be after check-in.")
        return

    if st.button("Search", type="primary"):
        result = call_api(
            "POST",
            "/availability",
            json={"check_in": str(check_in), "check_out": str(check_out)},
        )
        if result is None:
            return
        rows = result.get("property_types", [])
        if rows:
            st.dataframe(pd.DataFrame(rows), use_container_width=True)
        else:
            st.info("Sold out for these dates.")


def _selection_rows(prefix: str) -> List[Dict[str, int]]:
    frame = st.data_editor(
        pd.DataFrame([{"property_type_id": 1, "room_count": 1}]),
        num_rows="dynamic",
        key=f"{prefix}_selections",
    )
    return [
        {"property_type_id": int(row.property_type_id), "room_count": int(row.room_count)}
        for row in frame.itertuples(index=False)
        if int(row.room_count) > 0
    ]


def render_quote_page() -> None:
    st.header("🧾 Quote & Book")
    check_in, check_out = _date_inputs("quote")
    selections = _selection_rows("quote")

    col1, col2, col3 = st.columns(3)
    with col1:
        category = st.selectbox("Category", CATEGORIES)
        adults = st.number_input("Adults", min_value=1, value=2)
        kids = st.number_input("Kids", min_value=0, value=0)
    with col2:
        agent_id = st.number_input("Agent ID (b2b)", min_value=0, value=0)
        manual_cost = st.number_input("Manual cost (airbnb/mmt)", min_value=0.0, value=0.0)
    with col3:
        discount = st.number_input("Discount", min_value=0.0, value=0.0)
        is_percentage = st.checkbox("Discount is a percentage")
        advance = st.number_input("Advance paid", min_value=0.0, value=0.0)

    payload: Dict[str, Any] = {
        "category": category,
        "check_in": str(check_in),
        "check_out": str(check_out),
        "selections": selections,
        "number_of_adults": int(adults),
        "number_of_kids": int(kids),
        "agent_id": int(agent_id) or None,
        "discount": {"value": str(discount), "is_percentage": is_percentage},
        "advance_paid": str(advance),
        "manual_cost": str(manual_cost),
    }

    if st.button("Get Quote"):
        result = call_api("POST", "/quote", json=payload)
        if result:
            metric_col1, metric_col2, metric_col3 = st.columns(3)
            metric_col1.metric("Subtotal", result["subtotal"])
            metric_col2.metric("Total", result["total"])
            metric_col3.metric("Payable", result["amount_payable"])
            st.json(result)

    st.write("### Guest")
    guest_name = st.text_input("Guest name")
    phone = st.text_input("Phone")
    if st.button("Book", type="primary", disabled=not guest_name.strip()):
        result = call_api("POST", "/bookings", json={**payload, "guest_name": guest_name, "phone": phone})
        if result:
            st.success(f"Booked: {result['booking']['confirmation_number']}")
            st.json(result)


def render_occupancy_page() -> None:
    st.header("📊 Occupancy")
    day = st.date_input("Day", datetime.date.today(), key="occupancy_day")
    if st.button("Load", type="primary"):
        result = call_api("GET", "/dashboard/occupancy", params={"day": str(day)})
        if result is None:
            return
        summary = result["summary"]
        col_a, col_b, col_c, col_d = st.columns(4)
        col_a.metric("Booked rooms", summary["booked_rooms"])
        col_b.metric("Free rooms", summary["available_rooms"])
        col_c.metric("Occupancy", f"{summary['occupancy_rate'] * 100:.1f}%")
        col_d.metric("Pending B2B requests", summary["pending_b2b_requests"])
        st.dataframe(pd.DataFrame(result["property_types"]), use_container_width=True)

        trend = call_api(
            "GET",
            "/dashboard/occupancy/trend",
            params={"start": str(day), "days": 14},
        )
        if trend:
            frame = pd.DataFrame(trend).set_index("day")
            st.line_chart(frame["occupancy_rate"])


def render_b2b_page() -> None:
    st.header("🤝 Agent Requests")
    requests_rows = call_api("GET", "/b2b/requests", params={"status": "pending"})
    if not requests_rows:
        st.info("No pending agent requests.")
        return
    st.dataframe(pd.DataFrame(requests_rows), use_container_width=True)

    request_id = st.selectbox("Request", [row["request_id"] for row in requests_rows])
    notes = st.text_input("Admin notes")
    col1, col2 = st.columns(2)
    if col1.button("Approve", type="primary"):
        result = call_api("POST", f"/b2b/requests/{request_id}/approve", json={"admin_notes": notes or None})
        if result:
            st.success(f"Approved as booking {result['booking_id']}")
    if col2.button("Reject", disabled=not notes.strip()):
        result = call_api("POST", f"/b2b/requests/{request_id}/reject", json={"admin_notes": notes})
        if result:
            st.success("Request rejected")


# ==========================================
# Main App Router
# ==========================================
def main() -> None:
    st.sidebar.title("StayHub Console")
    st.sidebar.markdown("---")

    if "access_token" not in st.session_state:
        admin_token = st.sidebar.text_input("Staff token", type="password")
        if st.sidebar.button("Login") and login(admin_token):
            st.sidebar.success("Logged in")
    else:
        st.sidebar.caption("Logged in")
        if st.sidebar.button("Logout"):
            logout()

    page = st.sidebar.radio(
        "Navigation",
        ["Availability", "Quote & Book", "Occupancy", "Agent Requests"],
    )
    st.sidebar.markdown("---")
    st.sidebar.caption(f"API: {API_BASE_URL}")

    if page == "Availability":
        render_availability_page()
    elif page == "Quote & Book":
        render_quote_page()
    elif page == "Occupancy":
        render_occupancy_page()
    elif page == "Agent Requests":
        render_b2b_page()


if __name__ == "__main__":
    main()
