"""Streamlit widgets shared by the cost estimator, cost matrix and extra invoice pages."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import pandas as pd
import streamlit as st

from auth_tokens import AuthTokens
from catalog_items import CatalogItem, default_items
from cost_estimator import (
    AMOUNT,
    EDITABLE_FIELDS,
    PERCENTAGE,
    CostEstimateError,
    CostReport,
    add_catalog_row,
    add_custom_section,
    apply_default_items,
    apply_row_edits,
    build_package_payload,
    has_new_rows,
    remove_custom_section,
    rename_custom_section,
    report_totals,
    section_totals,
    set_overall_discount,
    set_section_discount,
)
from report_exports import build_cost_report_pdf, build_cost_report_workbook, cost_report_filename
from trek_api import (
    TrekApiConfig,
    fetch_accommodations,
    fetch_extra_services,
    fetch_permits,
    fetch_services,
    fetch_transportations,
    save_extra_invoice,
    save_group_and_package,
    update_extra_invoice,
    update_group_and_package,
)


_CATALOG_KEY_PREFIX = "_catalog__"
_DISCOUNT_LABELS = {AMOUNT: "Amount", PERCENTAGE: "Percentage"}


def load_catalog(config: TrekApiConfig, tokens: AuthTokens, trek_id: str) -> Dict[str, List[CatalogItem]]:
    """Fetch the pickable items for ``trek_id`` once per session."""

    key = f"{_CATALOG_KEY_PREFIX}{trek_id}"
    cached = st.session_state.get(key)
    if cached is not None:
        return cached

    extra_items: List[CatalogItem] = []
    for service in fetch_extra_services(config, tokens, trek_id):
        extra_items.extend(service.items())

    catalog = {
        "permits": fetch_permits(config, tokens, trek_id),
        "services": fetch_services(config, tokens, trek_id),
        "accommodation": fetch_accommodations(config, tokens, trek_id),
        "transportation": fetch_transportations(config, tokens, trek_id),
        "extra_details": extra_items,
        "extra_services": extra_items,
    }
    st.session_state[key] = catalog
    return catalog


def prefill_defaults(report: CostReport, catalog: Dict[str, List[CatalogItem]]) -> CostReport:
    for section_id in ("accommodation", "transportation"):
        if not report.section(section_id).rows and default_items(catalog.get(section_id, [])):
            report = apply_default_items(report, section_id, catalog[section_id])
    return report


def _rows_frame(report: CostReport, section_id: str) -> pd.DataFrame:
    section = report.section(section_id)
    columns = ["id", *EDITABLE_FIELDS, "total"]
    rows = [
        {
            "id": row.id,
            "description": row.description,
            "rate": row.rate,
            "no": row.no,
            "times": row.times,
            "per_person": row.per_person,
            "per_day": row.per_day,
            "one_time": row.one_time,
            "max_capacity": row.max_capacity,
            "total": row.total,
        }
        for row in section.rows
    ]
    return pd.DataFrame(rows, columns=columns)


def render_section(
    report: CostReport,
    section_id: str,
    catalog: Optional[List[CatalogItem]] = None,
    *,
    key_prefix: str,
    read_only: bool = False,
) -> CostReport:
    section = report.section(section_id)
    st.subheader(section.name)

    if catalog and not read_only:
        names = [item.name for item in catalog]
        picked = st.selectbox(
            "Add from catalog",
            ["(none)"] + names,
            key=f"{key_prefix}_{section_id}_pick",
        )
        if picked != "(none)" and st.button("Add item", key=f"{key_prefix}_{section_id}_add"):
            report = add_catalog_row(report, section_id, catalog[names.index(picked)])

    # The editor replays its edits onto the frame it was first given, so that
    # frame is kept until the rows change outside the editor.
    editor_key = f"{key_prefix}_{section_id}_rows"
    base_key = f"{editor_key}__base"
    output_key = f"{editor_key}__output"
    frame = _rows_frame(report, section_id)
    last_output = st.session_state.get(output_key)
    if base_key not in st.session_state or last_output is None or not frame.equals(last_output):
        st.session_state[base_key] = frame
        st.session_state.pop(editor_key, None)

    edited = st.data_editor(
        st.session_state[base_key],
        key=editor_key,
        num_rows="fixed" if read_only else "dynamic",
        disabled=True if read_only else ["id", "total"],
        hide_index=True,
        use_container_width=True,
        column_config={
            "id": None,
            "description": st.column_config.TextColumn("Description"),
            "rate": st.column_config.NumberColumn("Rate", min_value=0.0, format="%.2f"),
            "no": st.column_config.NumberColumn("No", min_value=0, step=1),
            "times": st.column_config.NumberColumn("Times", min_value=0, step=1),
            "per_person": st.column_config.CheckboxColumn("Per person"),
            "per_day": st.column_config.CheckboxColumn("Per day"),
            "one_time": st.column_config.CheckboxColumn("One time"),
            "max_capacity": st.column_config.NumberColumn("Max capacity", min_value=0, step=1),
            "total": st.column_config.NumberColumn("Total", format="%.2f"),
        },
    )

    if not read_only:
        records = edited.to_dict("records")
        try:
            report = apply_row_edits(report, section_id, records)
        except CostEstimateError as exc:
            st.error(str(exc))
            # Rejected edits are dropped from the editor on the next run.
            st.session_state[output_key] = None
        else:
            # Added rows get their ids once; the editor restarts from the saved rows.
            st.session_state[output_key] = None if has_new_rows(records) else _rows_frame(report, section_id)
    else:
        st.session_state[output_key] = frame

    report = render_discount(report, section_id, key_prefix=key_prefix, read_only=read_only)
    totals = section_totals(report.section(section_id))
    st.caption(
        f"Subtotal {totals.subtotal:,.2f} · Discount {totals.discount_amount:,.2f} · "
        f"Total {totals.total:,.2f}"
    )
    return report


def render_discount(report: CostReport, section_id: str, *, key_prefix: str, read_only: bool = False) -> CostReport:
    section = report.section(section_id)
    cols = st.columns([1, 1, 2])
    discount_type = cols[0].radio(
        "Discount type",
        [AMOUNT, PERCENTAGE],
        index=0 if section.discount_type == AMOUNT else 1,
        format_func=_DISCOUNT_LABELS.get,
        horizontal=True,
        key=f"{key_prefix}_{section_id}_dtype",
        disabled=read_only,
    )
    value = cols[1].number_input(
        "Discount",
        min_value=0.0,
        value=float(section.discount_value),
        key=f"{key_prefix}_{section_id}_dvalue",
        disabled=read_only,
    )
    remarks = cols[2].text_input(
        "Discount remarks",
        value=section.discount_remarks,
        key=f"{key_prefix}_{section_id}_dremarks",
        disabled=read_only,
    )
    return set_section_discount(report, section_id, discount_type=discount_type, value=value, remarks=remarks)


def render_custom_sections(report: CostReport, *, key_prefix: str) -> CostReport:
    st.subheader("Custom Sections")
    with st.form(f"{key_prefix}_new_section", clear_on_submit=True):
        name = st.text_input("New section name")
        if st.form_submit_button("Add section"):
            try:
                report = add_custom_section(report, name)
            except CostEstimateError as exc:
                st.error(str(exc))

    for section in list(report.custom_sections):
        with st.expander(section.name, expanded=True):
            new_name = st.text_input("Section name", value=section.name, key=f"{key_prefix}_{section.id}_name")
            if new_name != section.name:
                try:
                    report = rename_custom_section(report, section.id, new_name)
                except CostEstimateError as exc:
                    st.error(str(exc))
            report = render_section(report, section.id, key_prefix=key_prefix)
            if st.button("Remove section", key=f"{key_prefix}_{section.id}_remove"):
                report = remove_custom_section(report, section.id)
    return report


def render_summary(report: CostReport, *, key_prefix: str, read_only: bool = False) -> CostReport:
    st.subheader("Summary")
    cols = st.columns([1, 1, 2, 1])
    discount_type = cols[0].radio(
        "Overall discount type",
        [AMOUNT, PERCENTAGE],
        index=0 if report.overall_discount_type == AMOUNT else 1,
        format_func=_DISCOUNT_LABELS.get,
        horizontal=True,
        key=f"{key_prefix}_overall_dtype",
        disabled=read_only,
    )
    value = cols[1].number_input(
        "Overall discount",
        min_value=0.0,
        value=float(report.overall_discount_value),
        key=f"{key_prefix}_overall_dvalue",
        disabled=read_only,
    )
    remarks = cols[2].text_input(
        "Overall discount remarks",
        value=report.overall_discount_remarks,
        key=f"{key_prefix}_overall_dremarks",
        disabled=read_only,
    )
    service_charge = cols[3].number_input(
        "Service charge %",
        min_value=0.0,
        value=float(report.service_charge),
        key=f"{key_prefix}_service_charge",
        disabled=read_only,
    )
    report = set_overall_discount(report, discount_type=discount_type, value=value, remarks=remarks)
    report.service_charge = service_charge

    rows = [
        {"Section": section.name, "Total": section_totals(section).total}
        for section in report.sections()
        if section.rows
    ]
    if rows:
        st.dataframe(pd.DataFrame(rows), hide_index=True, use_container_width=True)

    totals = report_totals(report)
    metrics = st.columns(4)
    metrics[0].metric("Total", f"{totals.total_cost:,.2f}")
    metrics[1].metric("Overall discount", f"{totals.overall_discount_amount:,.2f}")
    metrics[2].metric("With service charge", f"{totals.total_with_service_charge:,.2f}")
    metrics[3].metric("Per person", f"{totals.cost_per_person_with_service_charge:,.2f}")
    return report


def render_exports(report: CostReport, *, prepared_by: str, form_url: Optional[str], key_prefix: str) -> None:
    include_charge = st.checkbox("Include service charge in PDF", value=True, key=f"{key_prefix}_pdf_charge")
    cols = st.columns(2)
    cols[0].download_button(
        "⬇️ Download PDF",
        data=build_cost_report_pdf(
            report,
            prepared_by=prepared_by,
            traveler_form_url=form_url,
            include_service_charge=include_charge,
        ),
        file_name=cost_report_filename(report, "pdf"),
        mime="application/pdf",
        key=f"{key_prefix}_pdf",
    )
    cols[1].download_button(
        "⬇️ Download Excel",
        data=build_cost_report_workbook(report),
        file_name=cost_report_filename(report, "xlsx"),
        mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        key=f"{key_prefix}_xlsx",
    )


def save_report(config: TrekApiConfig, tokens: AuthTokens, report: CostReport, *, is_update: bool) -> Any:
    """Create or update the group (or extra invoice) behind ``report``."""

    payload = build_package_payload(report)
    if report.is_extra_invoice:
        if is_update:
            return update_extra_invoice(config, tokens, report.group_id, payload)
        return save_extra_invoice(config, tokens, report.parent_group_id or report.group_id, payload)
    if is_update:
        return update_group_and_package(config, tokens, report.group_id, payload)
    return save_group_and_package(config, tokens, payload)
