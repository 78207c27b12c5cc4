import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import requests
import pandas as pd
import streamlit as st
from dateutil import parser as dtparser

API_BASE_DEFAULT = os.getenv("API_BASE", "http://127.0.0.1:8000")
CONSUMPTION_CHOICES = [0, 25, 50, 75, 100]
LEVEL_ICONS = {"low": "🔴", "fair": "🟡", "good": "🟢"}
FLAG_ICONS = {"low-consumption": "🔴", "has-notes": "🟡", "missed-feeding": "🟠"}

logger = logging.getLogger("calf_tracker.dashboard")

st.set_page_config(page_title="Calf Tracker", layout="wide")

@dataclass
class AppState:
    """Per-browser-session state: selected operator plus the last loaded data."""
    user: Optional[dict] = None
    dashboard: dict = field(default_factory=dict)
    herd: list = field(default_factory=list)
    protocols: list = field(default_factory=list)

def app_state() -> AppState:
    if "app_state" not in st.session_state:
        st.session_state["app_state"] = AppState()
    return st.session_state["app_state"]

with st.sidebar:
    st.header("API")
    api_base = st.text_input("API Base URL", API_BASE_DEFAULT)

def admin_headers(state: AppState) -> dict:
    return {"X-User-Id": str(state.user["id"])} if state.user else {}

def get_json(url: str, params: Optional[dict] = None):
    r = requests.get(url, params=params, timeout=25)
    r.raise_for_status()
    return r.json()

def post_json(url: str, payload: dict, headers: Optional[dict] = None):
    r = requests.post(url, json=payload, headers=headers, timeout=30)
    r.raise_for_status()
    return r.json()

def put_json(url: str, payload: dict, headers: Optional[dict] = None):
    r = requests.put(url, json=payload, headers=headers, timeout=30)
    r.raise_for_status()
    return r.json()

def patch_json(url: str, payload: dict, headers: Optional[dict] = None):
    r = requests.patch(url, json=payload, headers=headers, timeout=30)
    r.raise_for_status()
    return r.json()

def delete_json(url: str, headers: Optional[dict] = None):
    r = requests.delete(url, headers=headers, timeout=30)
    r.raise_for_status()
    return r.json()

def error_detail(e: Exception) -> str:
    if isinstance(e, requests.HTTPError) and e.response is not None:
        try:
            return str(e.response.json().get("detail", e))
        except ValueError:
            pass
    return str(e)

def reload(state: AppState, herd_filter: str = "all"):
    # on failure keep whatever was loaded last
    try:
        state.dashboard = get_json(f"{api_base}/dashboard")
        state.protocols = get_json(f"{api_base}/protocols")
        state.herd = get_json(f"{api_base}/herd", params={"protocol": herd_filter})
    except Exception as e:
        logger.error("Error loading data: %s", e)
        st.error(f"Could not load data from API: {error_detail(e)}")

state = app_state()

# --------------------
# Operator selection
# --------------------
if state.user is None:
    st.title("🐮 Calf Tracker")
    st.subheader("Select User")
    try:
        users = get_json(f"{api_base}/users")
    except Exception as e:
        st.error(f"Could not fetch users from API: {error_detail(e)}")
        st.stop()

    for u in users:
        with st.container(border=True):
            st.markdown(f"**{u['name']}**" + (" (admin)" if u["role"] == "admin" else ""))
            pin = st.text_input("PIN", type="password", max_chars=4, key=f"pin_{u['id']}") if u["has_pin"] else None
            if st.button(f"Continue as {u['name']}", key=f"select_{u['id']}"):
                try:
                    state.user = post_json(f"{api_base}/users/{u['id']}/select", {"pin": pin})
                    st.rerun()
                except Exception as e:
                    st.error(error_detail(e))
    st.stop()

# --------------------
# Header
# --------------------
top1, top2 = st.columns([4, 1])
with top1:
    st.title("🐮 Calf Tracker")
    st.caption(f"Operator: {state.user['name']} ({state.user['role']})")
with top2:
    if st.button("Switch user"):
        state.user = None
        st.rerun()

is_admin = state.user["role"] == "admin"
tab_names = ["Dashboard", "Feed Entry"] + (["Admin"] if is_admin else [])
tabs = st.tabs(tab_names)

# --------------------
# Dashboard
# --------------------
with tabs[0]:
    reload(state)
    flagged = state.dashboard.get("flagged_count", 0)
    if flagged:
        st.error(f"⚠️ {flagged} calves flagged for attention")

    st.subheader("Feeding Protocols")
    cohorts = state.dashboard.get("protocols", [])
    cols = st.columns(max(1, len(cohorts)))
    for col, p in zip(cols, cohorts):
        col.metric(p["name"], p["count"], help=f"until {p['threshold_value']} {p['threshold_type']}")

    st.divider()
    st.subheader("Add New Calf")
    with st.form("calf_form"):
        name = st.text_input("Name (optional)", value="")
        c1, c2 = st.columns(2)
        with c1:
            birth_day = st.date_input("Birth date", value=datetime.now().date())
        with c2:
            birth_time = st.time_input("Birth time", value=datetime.now().time().replace(second=0, microsecond=0))
        birth_notes = st.text_area("Birth notes", value="")
        custom = st.text_input("Calf number (leave blank for next available)", value="")
        submitted = st.form_submit_button("Add calf")

    if submitted:
        payload = {
            "name": name.strip() or None,
            "birth_date": datetime.combine(birth_day, birth_time).isoformat(),
            "birth_notes": birth_notes.strip() or None,
        }
        if custom.strip():
            if not custom.strip().isdigit():
                st.error("Please enter a valid number")
                st.stop()
            payload["number"] = int(custom.strip())
        try:
            resp = post_json(f"{api_base}/calves", payload)
            st.success(f"Calf #{resp['number']} added.")
        except Exception as e:
            logger.error("Error adding calf: %s", e)
            st.error(f"Error adding calf: {error_detail(e)}")

# --------------------
# Feed Entry
# --------------------
with tabs[1]:
    st.subheader("Feed Entry")
    options = ["all", "flagged"] + [p["name"] for p in state.protocols]
    herd_filter = st.radio("Show", options, horizontal=True, format_func=lambda o: o.capitalize() if o in ("all", "flagged") else o)
    reload(state, herd_filter)

    if not state.herd:
        st.info("No calves to show.")

    for calf in state.herd:
        label = f"#{calf['number']}" + (f" ({calf['name']})" if calf["name"] else "")
        flag = calf.get("flag")
        born = dtparser.isoparse(calf["birth_date"])

        with st.container(border=True):
            st.markdown(
                f"{FLAG_ICONS.get(flag, '')} **{label}**  \n"
                f"Born: {born:%Y-%m-%d} ({calf['age_days']} days) - {calf['protocol']}"
            )
            if flag:
                st.caption(f"{calf['flag_label']}: " + " ".join(calf.get("actions", [])))

            recent = calf.get("recent_feedings", [])
            if recent:
                st.write(" ".join(f"{LEVEL_ICONS[f['level']]} {f['consumption']}%" for f in recent))
            if calf.get("latest_note"):
                st.write(f"📝 {calf['latest_note']}")

            current = calf.get("current_feeding") or {}
            bcols = st.columns(len(CONSUMPTION_CHOICES))
            for bcol, pct in zip(bcols, CONSUMPTION_CHOICES):
                kind = "primary" if current.get("consumption") == pct else "secondary"
                if bcol.button(f"{pct}%", key=f"feed_{calf['number']}_{pct}", type=kind):
                    try:
                        post_json(f"{api_base}/feedings", {
                            "calf_number": calf["number"],
                            "consumption": pct,
                            "user_id": state.user["id"],
                        })
                        st.rerun()
                    except Exception as e:
                        logger.error("Error recording feeding: %s", e)
                        st.error(f"Error recording feeding: {error_detail(e)}")

            if current:
                notes = st.text_area("Notes", value=current.get("notes") or "", key=f"notes_{calf['number']}")
                if notes != (current.get("notes") or ""):
                    try:
                        put_json(f"{api_base}/feedings/current/{calf['number']}/notes", {"notes": notes})
                    except Exception as e:
                        logger.error("Error updating notes: %s", e)

                treated = st.checkbox("Treatment given", value=bool(current.get("treatment")), key=f"treat_{calf['number']}")
                if treated != bool(current.get("treatment")):
                    try:
                        post_json(f"{api_base}/feedings/current/{calf['number']}/treatment", {})
                        st.rerun()
                    except Exception as e:
                        logger.error("Error toggling treatment: %s", e)

    if state.herd:
        st.download_button(
            "Download feed list CSV",
            pd.DataFrame(state.herd).drop(columns=["recent_feedings", "current_feeding", "actions"]).to_csv(index=False).encode("utf-8"),
            file_name="feed_list.csv",
            mime="text/csv",
        )

# --------------------
# Admin
# --------------------
if is_admin:
    with tabs[2]:
        headers = admin_headers(state)

        st.subheader("Settings")
        try:
            current_settings = get_json(f"{api_base}/settings")
        except Exception as e:
            st.error(f"Could not load settings: {error_detail(e)}")
            current_settings = {}

        with st.form("settings_form"):
            next_number = st.text_input("Next calf number", value=str(current_settings.get("next_calf_number", "")))
            feeding_count = st.text_input("Flag after (consecutive low feedings)", value=str(current_settings.get("flag_feeding_count", "")))
            percentage = st.text_input("Flag if at or below (%)", value=str(current_settings.get("flag_percentage", "")))
            missed = current_settings.get("missed_feeding_hours")
            missed_hours = st.text_input("Missed feeding after (hours, 'off' to disable)", value="off" if missed is None else str(missed))
            saved = st.form_submit_button("Save settings")

        if saved:
            try:
                put_json(f"{api_base}/settings", {
                    "next_calf_number": next_number,
                    "flag_feeding_count": feeding_count,
                    "flag_percentage": percentage,
                    "missed_feeding_hours": missed_hours,
                }, headers=headers)
                st.success("Settings saved.")
            except Exception as e:
                st.error(f"Could not save settings: {error_detail(e)}")

        st.divider()
        st.subheader("Protocols")
        st.caption("Order matters: a calf sits in the first protocol whose threshold it has not reached yet.")
        dfP = pd.DataFrame(state.protocols or [], columns=["name", "threshold_type", "threshold_value"])
        edited = st.data_editor(
            dfP[["name", "threshold_type", "threshold_value"]],
            num_rows="dynamic",
            use_container_width=True,
            column_config={
                "threshold_type": st.column_config.SelectboxColumn("Threshold type", options=["feedings", "days"]),
                "threshold_value": st.column_config.NumberColumn("Threshold value", min_value=0, step=1),
            },
            key="protocol_editor",
        )
        if st.button("Save protocols"):
            rows = edited.dropna(subset=["name", "threshold_type", "threshold_value"])
            payload = {"protocols": [
                {"name": r["name"], "threshold_type": r["threshold_type"], "threshold_value": int(r["threshold_value"])}
                for _, r in rows.iterrows()
            ]}
            try:
                put_json(f"{api_base}/protocols", payload, headers=headers)
                st.success("Protocols saved.")
            except Exception as e:
                st.error(f"Could not save protocols: {error_detail(e)}")

        st.divider()
        st.subheader("Staff")
        try:
            staff = get_json(f"{api_base}/users")
        except Exception as e:
            st.error(f"Could not load users: {error_detail(e)}")
            staff = []

        for u in staff:
            c1, c2, c3 = st.columns([3, 2, 1])
            c1.write(f"**{u['name']}**" + (" 🔒" if u["has_pin"] else ""))
            new_role = c2.selectbox("Role", ["user", "admin"], index=0 if u["role"] == "user" else 1, key=f"role_{u['id']}", label_visibility="collapsed")
            if new_role != u["role"]:
                try:
                    patch_json(f"{api_base}/users/{u['id']}", {"role": new_role}, headers=headers)
                    st.rerun()
                except Exception as e:
                    st.error(error_detail(e))
            if c3.button("Delete", key=f"del_{u['id']}", disabled=u["id"] == state.user["id"]):
                try:
                    delete_json(f"{api_base}/users/{u['id']}", headers=headers)
                    st.rerun()
                except Exception as e:
                    st.error(error_detail(e))

            with st.expander(f"Edit {u['name']}"):
                with st.form(f"edit_user_{u['id']}"):
                    edit_name = st.text_input("Name", value=u["name"])
                    edit_pin = st.text_input("New PIN (4 digits, blank keeps current)", max_chars=4)
                    clear_pin = st.checkbox("Remove PIN", value=False, disabled=not u["has_pin"])
                    edited_user = st.form_submit_button("Save")

                if edited_user:
                    changes = {}
                    if edit_name.strip() != u["name"]:
                        changes["name"] = edit_name
                    if clear_pin:
                        changes["clear_pin"] = True
                    elif edit_pin:
                        changes["pin"] = edit_pin
                    if changes:
                        try:
                            patch_json(f"{api_base}/users/{u['id']}", changes, headers=headers)
                            st.rerun()
                        except Exception as e:
                            st.error(f"Could not update user: {error_detail(e)}")

        with st.form("user_form"):
            st.markdown("#### Add staff member")
            new_name = st.text_input("Name")
            role = st.selectbox("Role", ["user", "admin"])
            pin = st.text_input("PIN (optional, 4 digits)", max_chars=4)
            added = st.form_submit_button("Add user")

        if added:
            try:
                post_json(f"{api_base}/users", {"name": new_name, "role": role, "pin": pin or None}, headers=headers)
                st.success(f"{new_name} added.")
            except Exception as e:
                st.error(f"Could not add user: {error_detail(e)}")

        st.divider()
        st.subheader("Calves")
        status = st.selectbox("Status", ["active", "archived"], key="calf_status")
        try:
            calves = get_json(f"{api_base}/calves?status={status}")
        except Exception as e:
            st.warning(f"Could not load calves: {error_detail(e)}")
            calves = []

        for c in calves:
            c1, c2 = st.columns([4, 1])
            c1.write(f"#{c['number']}" + (f" ({c['name']})" if c["name"] else ""))
            target = "archived" if status == "active" else "active"
            if c2.button("Archive" if target == "archived" else "Restore", key=f"status_{c['number']}"):
                try:
                    patch_json(f"{api_base}/calves/{c['number']}", {"status": target})
                    st.rerun()
                except Exception as e:
                    st.error(error_detail(e))
