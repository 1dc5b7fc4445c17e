"""Streamlit front-end for the fuel reimbursement pipeline."""
from __future__ import annotations

import pandas as pd
import streamlit as st

from fuel_reimbursement.application.dto import SaveCalculationRequest, SyncRequest, TelemetryImportRequest
from fuel_reimbursement.composition import Services, build_services
from fuel_reimbursement.config import load_settings
from fuel_reimbursement.domain.corrections import CorrectionWorkflow
from fuel_reimbursement.domain.errors import ReimbursementError
from fuel_reimbursement.presentation.calculation_report import (
    aggregates_to_rows,
    daily_entries_to_rows,
    diff_items_to_rows,
    money,
    render_csv,
    render_xlsx,
    staging_to_rows,
)


st.set_page_config(page_title="Fuel Reimbursement", layout="wide")
st.title("Fuel Reimbursement")


@st.cache_resource
def get_services() -> Services:
    return build_services(load_settings())


services = get_services()
actor = st.sidebar.text_input("User", value=services.settings.actor)
view = st.sidebar.radio("View", ["Import", "Registry sync"])

if "workflow" not in st.session_state:
    st.session_state["workflow"] = None


def show_error(exc: ReimbursementError) -> None:
    st.error(str(exc))


if view == "Import":
    telemetry_file = st.file_uploader("Upload telemetry export", type=["csv", "txt", "xlsx", "xls"])
    if st.button("Process", disabled=telemetry_file is None) and telemetry_file is not None:
        try:
            with st.spinner("Matching telemetry..."):
                response = services.import_telemetry().execute(
                    TelemetryImportRequest(source=telemetry_file.read(), file_name=telemetry_file.name, actor=actor)
                )
            st.session_state["workflow"] = response.workflow
        except ReimbursementError as exc:
            show_error(exc)

    workflow: CorrectionWorkflow | None = st.session_state.get("workflow")
    if workflow is None:
        st.info("Upload a telemetry export to start.")
    else:
        session = workflow.session
        summary = session.summary()
        st.subheader(f"Period: {session.period_label}")
        cols = st.columns(5)
        cols[0].metric("Staged", summary.staged)
        cols[1].metric("Blocked", summary.blocked)
        cols[2].metric("Low distance", summary.low_distance)
        cols[3].metric("Unmatched ids", summary.ignored_ids)
        cols[4].metric("Rejected rows", summary.rejected)

        tabs = st.tabs(["Staging", "Unmatched", "Calculation"])
        with tabs[0]:
            st.dataframe(pd.DataFrame(staging_to_rows(session.records)), hide_index=True)
            with st.form("edit_form"):
                record_id = st.number_input("Record id", min_value=1, step=1)
                distance = st.number_input("Distance", min_value=0.0, step=0.1)
                reason = st.text_input("Reason")
                if st.form_submit_button("Apply edit"):
                    try:
                        workflow.edit(int(record_id), str(distance), reason)
                        st.rerun()
                    except ReimbursementError as exc:
                        show_error(exc)
            if st.button("Revalidate absences"):
                report = workflow.revalidate()
                st.success(
                    f"{len(report.newly_blocked)} newly blocked, {len(report.newly_unblocked)} unblocked"
                )
        with tabs[1]:
            ignored = session.ignored
            if not ignored:
                st.write("Every external id matched a collaborator.")
            for suggestion in workflow.suggest_merges():
                st.caption(
                    f"Suggestion: {suggestion.external_id} was {suggestion.historical_name}; "
                    f"merge into {suggestion.collaborator_name} ({suggestion.group})"
                )
            collaborators = sorted(session.collaborators.values(), key=lambda c: c.name)
            for group in ignored.values():
                with st.expander(f"{group.external_id} - {group.name} ({len(group.rows)} rows)"):
                    target = st.selectbox(
                        "Merge into",
                        collaborators,
                        format_func=lambda c: f"{c.name} ({c.group}, {c.external_id})",
                        key=f"merge_target_{group.external_id}",
                    )
                    if st.button("Merge", key=f"merge_{group.external_id}"):
                        try:
                            workflow.merge(group.external_id, target.collaborator_id if target else None)
                            st.rerun()
                        except ReimbursementError as exc:
                            show_error(exc)
        with tabs[2]:
            result = services.calculate().execute(session)
            st.metric("Grand total", f"{money(result.grand_total)}")
            st.dataframe(pd.DataFrame(aggregates_to_rows(result)), hide_index=True)
            with st.expander("Daily entries"):
                st.dataframe(pd.DataFrame(daily_entries_to_rows(result)), hide_index=True)
            st.download_button(
                "Download summary CSV",
                data=render_csv(aggregates_to_rows(result)),
                file_name="reimbursement.csv",
                mime="text/csv",
            )
            st.download_button(
                "Download workbook",
                data=render_xlsx(result, session.period_label),
                file_name="reimbursement.xlsx",
            )
            exists = services.save_calculation().period_exists(session.period_label)
            overwrite_reason = ""
            if exists:
                st.warning(f"A calculation for {session.period_label} already exists.")
                overwrite_reason = st.text_area("Overwrite reason (required)")
            if st.button("Save calculation", disabled=exists and not overwrite_reason.strip()):
                try:
                    saved = services.save_calculation().execute(
                        SaveCalculationRequest(
                            period_label=session.period_label,
                            aggregation=result,
                            actor=actor,
                            overwrite=exists,
                            overwrite_reason=overwrite_reason,
                        )
                    )
                    st.success(f"Saved calculation {saved.header_id}")
                except ReimbursementError as exc:
                    show_error(exc)
else:
    try:
        diff = services.preview_registry_sync().execute()
    except ReimbursementError as exc:
        show_error(exc)
        diff = None
    if diff is not None:
        st.caption(f"External rows: {diff.total_external}")
        items = [*diff.new, *diff.changed, *diff.conflicts]
        if diff.conflicts:
            st.warning(
                f"{len(diff.conflicts)} unknown ids share a sector with an existing record; applying relinks them."
            )
        frame = pd.DataFrame(diff_items_to_rows(items))
        if frame.empty:
            st.success("Registry is in sync with the external source.")
        else:
            frame.insert(0, "apply", False)
            edited = st.data_editor(frame, hide_index=True, disabled=[c for c in frame.columns if c != "apply"])
            if st.button("Apply selected"):
                selected_ids = set(edited.loc[edited["apply"], "external_id"])
                selected = [item for item in items if item.external_id in selected_ids]
                result = services.apply_registry_sync().execute(SyncRequest(items=selected, actor=actor))
                st.success(f"Applied {result.applied_count} of {len(selected)} changes")
                for failure in result.failures:
                    st.error(f"{failure.external_id}: {failure.error}")
