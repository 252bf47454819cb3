import streamlit as st
import pandas as pd

from okr_tracker.config import MAX_ARCHIVE_BYTES
from okr_tracker.crud import get_import_history
from okr_tracker.importer.archive import ArchiveError, preview_archive
from okr_tracker.importer.options import ImportOptions, InvalidImportOptions
from okr_tracker.models import DuplicateStrategy, ImportStatus
from okr_tracker.services.import_service import ImportRejected, run_archive_import

STATUS_BADGES = {
    ImportStatus.SUCCESS: "✅ Success",
    ImportStatus.PARTIAL: "⚠️ Partial",
    ImportStatus.FAILED: "❌ Failed",
}

STRATEGY_HELP = {
    DuplicateStrategy.SKIP: "Keep existing records and link to them",
    DuplicateStrategy.MERGE: "Update existing records with archive values",
    DuplicateStrategy.CREATE: "Always create new records",
}


def render_result(result):
    """Report of a finished import."""
    st.markdown(f"### {STATUS_BADGES[result.status]}")
    summary = result.summary
    c1, c2, c3, c4, c5 = st.columns(5)
    c1.metric("Objectives", summary.objectives_created)
    c2.metric("Key Results", summary.key_results_created)
    c3.metric("Big Rocks", summary.big_rocks_created)
    c4.metric("Check-ins", summary.check_ins_created)
    c5.metric("Teams", summary.teams_created)

    updated = summary.objectives_updated + summary.key_results_updated + summary.big_rocks_updated
    if updated:
        st.caption(
            f"Merged into existing records: {summary.objectives_updated} objectives, "
            f"{summary.key_results_updated} key results, {summary.big_rocks_updated} big rocks"
        )

    if result.errors:
        with st.expander(f"Errors ({len(result.errors)})", expanded=True):
            for message in result.errors:
                st.error(message)
    if result.warnings:
        with st.expander(f"Warnings ({len(result.warnings)})"):
            for message in result.warnings:
                st.warning(message)
    if result.skipped_items:
        with st.expander(f"Skipped items ({len(result.skipped_items)})"):
            df = pd.DataFrame([
                {"Type": item.type, "Title": item.title, "Source ID": str(item.source_id)}
                for item in result.skipped_items
            ])
            st.dataframe(df, use_container_width=True, hide_index=True)


def render_history(tenant_id):
    st.subheader("Import History")
    history = get_import_history(tenant_id)
    if not history:
        st.info("No imports yet.")
        return
    df = pd.DataFrame([
        {
            "When": h.imported_at.strftime("%Y-%m-%d %H:%M"),
            "File": h.file_name,
            "Status": h.status.value if hasattr(h.status, "value") else h.status,
            "Objectives": h.objectives_created,
            "Key Results": h.key_results_created,
            "Big Rocks": h.big_rocks_created,
            "Check-ins": h.check_ins_created,
            "Teams": h.teams_created,
            "Warnings": len(h.warnings or []),
            "Errors": len(h.errors or []),
            "By": h.imported_by,
        }
        for h in history
    ])
    st.dataframe(df, use_container_width=True, hide_index=True)


def render_import_page(tenant_id, user_id, user_email=None):
    st.markdown("## 📦 Import Goal Archive")
    st.write("Upload the zip export of a goal-tracking tool to bring its objectives, "
             "key results, projects and check-ins into this workspace.")

    uploaded = st.file_uploader(
        "Goal archive (.zip)", type=["zip"],
        help=f"Up to {MAX_ARCHIVE_BYTES // (1024 * 1024)} MB",
    )

    with st.form("import_options_form"):
        col1, col2 = st.columns(2)
        with col1:
            strategy = st.selectbox(
                "When a record already exists",
                options=list(DuplicateStrategy),
                format_func=lambda s: f"{s.value.title()}: {STRATEGY_HELP[s]}",
            )
            fiscal_start = st.selectbox(
                "Fiscal year starts in month", options=list(range(1, 13)), index=0
            )
        with col2:
            import_check_ins = st.checkbox("Import check-ins", value=True)
            import_teams = st.checkbox("Create missing teams", value=True)
        c_prev, c_run = st.columns(2)
        preview_clicked = c_prev.form_submit_button("🔍 Preview")
        run_clicked = c_run.form_submit_button("🚀 Import", type="primary")

    if not uploaded:
        render_history(tenant_id)
        return

    data = uploaded.getvalue()

    if preview_clicked:
        try:
            preview = preview_archive(data)
        except ArchiveError as e:
            st.error(str(e))
        else:
            st.json(preview)

    if run_clicked:
        try:
            options = ImportOptions.from_form(
                tenant_id=tenant_id,
                user_id=user_id,
                user_email=user_email,
                duplicate_strategy=strategy,
                fiscal_year_start_month=fiscal_start,
                import_check_ins=import_check_ins,
                import_teams=import_teams,
            )
        except InvalidImportOptions as e:
            st.error(str(e))
            return
        with st.spinner("Importing archive..."):
            try:
                result = run_archive_import(data, options, file_name=uploaded.name)
            except ImportRejected as e:
                st.error(str(e))
                return
        st.session_state.last_import_result = result

    if "last_import_result" in st.session_state:
        render_result(st.session_state.last_import_result)

    st.markdown("---")
    render_history(tenant_id)
