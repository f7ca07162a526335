"""
app.py
Streamlit Community Contribution Tracker (single shared access code).
Run: streamlit run app.py
"""

from __future__ import annotations

import asyncio
from datetime import date

import pandas as pd
import streamlit as st

import assistant
import auth
import csv_io
import importer
import utils
from config import Settings
from db import SqliteGateway
from models import Frequency, Member
from store import ReconciliationStore, SyncError

st.set_page_config(page_title="Contribution Tracker", layout="wide")


def run_async(coro):
    return asyncio.run(coro)


@st.cache_resource
def get_settings() -> Settings:
    settings = Settings.from_env()
    utils.configure_logging(settings.log_level)
    return settings


@st.cache_resource
def get_gateway(db_file: str) -> SqliteGateway:
    # One gateway per process so every session hears every other session's writes
    gateway = SqliteGateway(db_file)
    gateway.init_db()
    run_async(auth.ensure_access_code(gateway, get_settings().default_access_code))
    return gateway


def get_store() -> ReconciliationStore:
    if "store" not in st.session_state:
        settings = get_settings()
        store = ReconciliationStore(
            get_gateway(str(settings.db_file)),
            rollback_on_failure=settings.rollback_on_failure,
            chunk_size=settings.import_chunk_size,
        )
        st.session_state.store = store
    return st.session_state.store


def require_login():
    if "logged_in" not in st.session_state:
        st.session_state.logged_in = False


def start_session():
    store = get_store()
    store.attach()
    run_async(store.load_all())


def logout():
    get_store().detach()
    st.session_state.logged_in = False
    st.session_state.pop("store", None)
    st.success("Logged out.")


def login_screen():
    st.title("🔐 Contribution Tracker")

    col1, col2 = st.columns([1, 1])
    with col1:
        code = st.text_input("Access code", type="password")
        if st.button("Enter", type="primary"):
            gateway = get_store().gateway
            if run_async(auth.validate_access_code(gateway, code)):
                st.session_state.logged_in = True
                start_session()
                st.rerun()
            else:
                st.error("Invalid access code.")

    with col2:
        st.info(
            "First run creates a default access code (see CONTRIB_DEFAULT_ACCESS_CODE).\n\n"
            "You will be forced to change it on first login."
        )


def change_code_form(key: str):
    c1 = st.text_input("New access code", type="password", key=f"{key}_1")
    c2 = st.text_input("Confirm new access code", type="password", key=f"{key}_2")
    if st.button("Update access code", type="primary", key=f"{key}_btn"):
        if len(c1) < 6:
            st.error("Access code must be at least 6 characters.")
            return False
        if c1 != c2:
            st.error("Access codes do not match.")
            return False
        run_async(auth.set_access_code(get_store().gateway, c1))
        st.success("Access code updated.")
        return True
    return False


def force_change_code_screen():
    st.title("⚠️ Change Access Code (Required)")
    st.warning("You must change the default access code before using the app.")
    if change_code_form("force"):
        st.rerun()


# ---------- Pages ----------

def dashboard_page():
    st.header("📊 Dashboard")

    members = get_store().members
    stats = utils.dashboard_stats(members)

    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Total members", stats.member_count)
    c2.metric("Total committed", f"${stats.total_committed:,.0f}")
    c3.metric("Total collected", f"${stats.total_collected:,.0f}")
    c4.metric("Collection rate", f"{stats.collection_rate:.1f}%")

    st.divider()

    col1, col2 = st.columns([2, 1])
    with col1:
        st.subheader("Committed vs collected")
        chart = pd.DataFrame(
            {"amount": [stats.total_committed, stats.total_collected]},
            index=["Committed", "Collected"],
        )
        st.bar_chart(chart)
    with col2:
        st.subheader("Top commitments")
        top = utils.top_commitments(members)
        if top:
            for i, m in enumerate(top, start=1):
                st.write(f"{i}. **{m.name}** - ${m.committed_amount:,.0f}")
        else:
            st.caption("No members yet.")


def member_form(existing: Member | None = None):
    store = get_store()
    if existing:
        st.subheader(f"✏️ Edit Member (ID: {existing.id})")
    else:
        st.subheader("➕ Add Member")

    key = f"form_{existing.id if existing else 'new'}"
    freqs = [f.value for f in Frequency]
    col1, col2 = st.columns(2)
    with col1:
        name = st.text_input("Full name", value=(existing.name if existing else ""), key=f"{key}_name")
        phone = st.text_input("Phone", value=(existing.phone if existing else ""), key=f"{key}_phone")
        email = st.text_input("Email", value=(existing.email if existing else ""), key=f"{key}_email")
    with col2:
        committed = st.number_input(
            "Committed amount", min_value=0.0, step=100.0,
            value=(existing.committed_amount if existing else 0.0), key=f"{key}_amount",
        )
        frequency = st.selectbox(
            "Frequency", options=freqs,
            index=freqs.index(existing.frequency.value if existing else Frequency.YEARLY.value),
            key=f"{key}_freq",
        )
        notes = st.text_input("Notes", value=(existing.notes if existing else ""), key=f"{key}_notes")

    if not name.strip():
        st.error("Full name is required.")

    if st.button("Save", type="primary", disabled=not name.strip(), key=f"{key}_save"):
        member = Member(
            id=existing.id if existing else store.next_id(),
            name=name.strip(),
            phone=phone.strip(),
            email=email.strip(),
            committed_amount=float(committed),
            frequency=Frequency(frequency),
            payments=existing.payments if existing else (),
            notes=notes.strip(),
        )
        st.session_state.edit_member = False
        try:
            run_async(store.save(member))
        except SyncError as exc:
            st.error(str(exc))
        else:
            st.rerun()


def member_detail(member: Member):
    store = get_store()
    st.subheader(f"👤 {member.name}")
    st.caption(f"{member.phone or 'No phone'} · {member.email or 'No email'} · {member.frequency.value}")
    if member.notes:
        st.caption(member.notes)

    c1, c2, c3 = st.columns(3)
    c1.metric("Committed", f"${member.committed_amount:,.2f}")
    c2.metric("Paid", f"${member.total_paid:,.2f}")
    c3.metric("Balance", f"${member.balance:,.2f}")
    st.progress(int(member.progress), text=f"{member.progress:.0f}% paid")

    with st.expander("Quick contact"):
        url = utils.whatsapp_url(member)
        if url:
            st.link_button("Open WhatsApp", url)
        else:
            st.info("No phone number available for WhatsApp.")
        st.caption("Pledge reminder")
        st.code(utils.reminder_text(member), language=None)

    st.markdown("**Add payment**")
    p1, p2, p3 = st.columns([1, 1, 2])
    with p1:
        amount = st.number_input("Amount", min_value=0.0, step=50.0, key="pay_amount")
    with p2:
        pay_date = st.date_input("Date", value=date.today(), key="pay_date").isoformat()
    with p3:
        note = st.text_input("Note", value="", key="pay_note")
    if st.button("Record payment", type="primary"):
        try:
            run_async(store.add_payment(member.id, float(amount), pay_date, note))
        except (ValueError, SyncError) as exc:
            st.error(str(exc))
        else:
            st.rerun()

    st.markdown("**Payment history**")
    if not member.payments:
        st.caption("No payments for this member yet.")
    for p in member.payments:
        r1, r2, r3, r4 = st.columns([1, 1, 3, 1])
        r1.write(p.date)
        r2.write(f"${p.amount:,.2f}")
        r3.write(p.note or "")
        if r4.button("Delete", key=f"del_pay_{p.id}"):
            try:
                run_async(store.delete_payment(member.id, p.id))
            except SyncError as exc:
                st.error(str(exc))
            else:
                st.rerun()

    st.divider()
    a1, a2 = st.columns(2)
    with a1:
        if st.button("Edit member"):
            st.session_state.edit_member = True
            st.rerun()
    with a2:
        confirm = st.checkbox("Confirm delete", value=False, key="del_confirm")
        if st.button("Delete member", type="secondary", disabled=not confirm):
            try:
                run_async(store.delete(member.id))
            except SyncError as exc:
                st.error(str(exc))
            else:
                st.rerun()


def members_page():
    st.header("👥 Members")
    store = get_store()

    with st.sidebar:
        st.subheader("Search")
        search = st.text_input("Search (name/phone)")

    rows = utils.filter_members(store.members, search)
    st.dataframe(utils.members_frame(rows), use_container_width=True, hide_index=True)

    st.divider()

    labels = {f"{m.name} ({m.phone or 'no phone'}) - ID {m.id}": m.id for m in rows}
    options = ["(none)"] + list(labels.keys())
    current = next((k for k, v in labels.items() if v == store.selected_id), "(none)")
    chosen = st.selectbox("Open member", options, index=options.index(current))
    member_id = labels.get(chosen)
    if member_id is None:
        store.clear_selection()
    else:
        store.select(member_id)

    selected = store.selected
    if selected is None:
        member_form(existing=None)
    elif st.session_state.get("edit_member"):
        member_form(existing=selected)
        if st.button("Cancel edit"):
            st.session_state.edit_member = False
            st.rerun()
    else:
        member_detail(selected)


def import_page():
    st.header("📥 Import Members")
    store = get_store()

    st.download_button(
        "Download template CSV",
        data=csv_io.template_csv_bytes(),
        file_name="members_template.csv",
        mime="text/csv",
    )

    upload = st.file_uploader("CSV file", type=["csv"])
    if upload is not None and st.button("Analyze", type="primary"):
        text = csv_io.decode_upload(upload.getvalue())
        try:
            st.session_state.staged_import = run_async(importer.stage_import(store, text))
        except csv_io.CsvFormatError as exc:
            st.error(str(exc))
            st.session_state.pop("staged_import", None)
        except SyncError as exc:
            st.error(str(exc))
            st.session_state.pop("staged_import", None)

    staged = st.session_state.get("staged_import")
    if staged is None:
        return

    for w in staged.warnings:
        st.warning(w)

    if staged.committed:
        st.success(f"Imported {len(staged.plan.clean)} new members.")
        return

    plan = staged.plan
    st.subheader(f"Duplicates detected ({len(plan.conflicts)})")
    st.caption(f"{len(plan.clean)} rows have no duplicates and will be added.")

    b1, b2, b3 = st.columns(3)
    if b1.button("Skip all"):
        plan.set_all(importer.Resolution.SKIP)
    if b2.button("Merge all"):
        plan.set_all(importer.Resolution.UPDATE)
    if b3.button("Create all"):
        plan.set_all(importer.Resolution.CREATE)

    choices = [r.value for r in importer.Resolution]
    for i, c in enumerate(plan.conflicts):
        col1, col2, col3 = st.columns([2, 2, 1])
        col1.write(f"**{c.candidate.name}** ({c.candidate.phone or 'no phone'})")
        col2.write(f"{c.reason}: existing **{c.existing.name}** (ID {c.existing.id})")
        picked = col3.selectbox(
            "Resolution", choices, index=choices.index(c.resolution.value),
            key=f"res_{i}_{c.resolution.value}", label_visibility="collapsed",
        )
        if picked != c.resolution.value:
            plan.set_resolution(i, importer.Resolution(picked))
            st.rerun()

    if st.button("Confirm import", type="primary"):
        try:
            inserted, updated = run_async(importer.commit_import(store, plan))
            st.success(f"Import complete: {inserted} added, {updated} merged.")
            st.session_state.pop("staged_import", None)
        except SyncError as exc:
            st.error(str(exc))


def assistant_page():
    st.header("💬 Assistant")
    settings = get_settings()

    if "chat" not in st.session_state:
        st.session_state.chat = []

    for role, text in st.session_state.chat:
        with st.chat_message(role):
            st.write(text)

    question = st.chat_input("Ask about members, totals, or draft a reminder")
    if question:
        answer = assistant.ask(
            question,
            get_store().members,
            api_key=settings.openai_api_key,
            model=settings.assistant_model,
        )
        st.session_state.chat.append(("user", question))
        st.session_state.chat.append(("assistant", answer))
        st.rerun()


def settings_page():
    st.header("⚙️ Settings")

    st.subheader("Change access code")
    change_code_form("settings")

    st.divider()

    st.subheader("Export members to CSV")
    members = get_store().members
    if members:
        st.download_button(
            "Download members.csv",
            data=csv_io.members_to_csv_bytes(members),
            file_name="members.csv",
            mime="text/csv",
        )
    else:
        st.caption("No members to export.")

    st.divider()

    st.subheader("Reload")
    if st.button("Reload from database"):
        run_async(get_store().load_all())
        st.rerun()


def main_app():
    store = get_store()
    st.sidebar.title("🤝 Contributions")

    if store.notice:
        st.warning(store.notice.message)

    pages = ["Dashboard", "Members", "Import", "Assistant", "Settings"]
    if "page" not in st.session_state:
        st.session_state.page = "Dashboard"
    st.session_state.page = st.sidebar.radio("Navigate", pages, index=pages.index(st.session_state.page))

    if st.sidebar.button("Logout"):
        logout()
        st.rerun()

    if st.session_state.page == "Dashboard":
        dashboard_page()
    elif st.session_state.page == "Members":
        members_page()
    elif st.session_state.page == "Import":
        import_page()
    elif st.session_state.page == "Assistant":
        assistant_page()
    elif st.session_state.page == "Settings":
        settings_page()


# --------- App entry ---------

def run():
    require_login()

    if not st.session_state.logged_in:
        login_screen()
        return

    if run_async(auth.is_force_code_change(get_store().gateway)):
        force_change_code_screen()
        return

    main_app()


if __name__ == "__main__":
    run()
