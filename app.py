"""
ESL Gradebook Import Preview

Upload a CASAS export, attendance report, unit test sheet or tutoring grid and
see exactly what the importer would pick up: records, warnings and errors.
Parsed files can be imported into a scratch class to preview rankings and
retention.
"""

import logging
from datetime import date

import pandas as pd
import streamlit as st

from config.settings import get_settings
from src.data.school_year import current_academic_year
from src.data.store import get_store
from src.ingest import (
    parse_attendance_file,
    parse_casas_file,
    parse_tests_file,
    parse_tutoring_file,
)
from src.metrics import best_retention, get_class_metrics, get_students_with_ranks

settings = get_settings()
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

st.set_page_config(
    page_title="Gradebook Import Preview",
    page_icon="📋",
    layout="wide",
)

PARSERS = {
    "CASAS": parse_casas_file,
    "Attendance": parse_attendance_file,
    "Unit Tests": parse_tests_file,
    "Tutoring (ISST)": parse_tutoring_file,
}


def _records_frame(file_type: str, result) -> pd.DataFrame:
    """Flatten a parse result into a table for display."""
    if file_type == "CASAS":
        rows = [
            {"Type": test_type, "Student": r.student_name, "Date": r.date, "Form": r.form_number, "Score": r.score}
            for test_type, records in (("Reading", result.reading), ("Listening", result.listening))
            for r in records
        ]
    elif file_type == "Attendance":
        rows = [
            {"Student": r.student_name, "Total Hours": r.total_hours, "Scheduled Hours": r.scheduled_hours}
            for r in result.records
        ]
    elif file_type == "Unit Tests":
        rows = [
            {"Student": r.student_name, "Test": r.test_name, "Date": r.date, "Score": r.score}
            for r in result.records
        ]
    else:
        rows = [
            {"Sheet": sheet.sheet_name, "Student": r.student_name, "Sessions": ", ".join(d.date for d in r.dates)}
            for sheet in result.sheets
            for r in sheet.records
        ]
    return pd.DataFrame(rows)


def _show_messages(result) -> None:
    for error in result.errors:
        st.error(error)
    if result.warnings:
        with st.expander(f"{len(result.warnings)} warnings"):
            for warning in result.warnings:
                st.warning(warning)


def _import_into_scratch_class(file_type: str, result) -> None:
    store = get_store()
    classes = store.get_classes()
    school_class = classes[0] if classes else store.create_class("Preview Class")

    if file_type == "CASAS":
        summary = store.import_casas(school_class.id, result)
    elif file_type == "Attendance":
        month = st.session_state.get("attendance_month") or date.today().strftime("%Y-%m")
        summary = store.import_attendance(school_class.id, result, month)
    elif file_type == "Unit Tests":
        summary = store.import_unit_tests(
            school_class.id,
            result,
            test_name=st.session_state.get("test_name") or None,
            test_date=str(st.session_state.get("test_date") or date.today()),
        )
    else:
        summary = store.import_tutoring(school_class.id, result)

    st.success(
        f"Imported {summary.added} records ({summary.skipped} skipped, "
        f"{summary.students_created} new students)"
    )
    if summary.unmatched:
        st.warning(f"No roster match for: {', '.join(summary.unmatched)}")


def _show_class_preview() -> None:
    store = get_store()
    classes = store.get_classes()
    if not classes:
        return
    school_class = classes[0]
    students = store.get_students_by_class(school_class.id, include_dropped=True)
    records = store.records()

    ranked = get_students_with_ranks(
        [s for s in students if not s.is_dropped], school_class, records
    )
    st.subheader(f"{school_class.name} ({school_class.level_name})")
    st.dataframe(
        pd.DataFrame([
            {
                "Rank": s.rank_display,
                "Student": s.name,
                "Reading": s.casas_reading_last,
                "Listening": s.casas_listening_last,
                "Tests": s.test_average,
                "Attendance": s.attendance_average,
                "Overall": s.overall_score,
            }
            for s in ranked
        ]),
        hide_index=True,
    )

    metrics = get_class_metrics(students, records, school_class.academic_year or current_academic_year())
    col1, col2, col3 = st.columns(3)
    col1.metric("Students", metrics.student_count)
    col2.metric(
        "Attendance",
        f"{metrics.average_attendance:.1f}%" if metrics.average_attendance is not None else "-",
    )
    best = best_retention(metrics)
    col3.metric("Retention", f"{best[0]}: {best[1].display}" if best else "Not enough data")


def main():
    st.title("Gradebook Import Preview")

    file_type = st.selectbox("File type", list(PARSERS))
    if file_type == "Attendance":
        st.text_input("Month (YYYY-MM)", key="attendance_month", value=date.today().strftime("%Y-%m"))
    elif file_type == "Unit Tests":
        st.text_input("Test name (single-test files)", key="test_name")
        st.date_input("Test date (single-test files)", key="test_date")

    uploaded = st.file_uploader("Spreadsheet", type=["csv", "xlsx", "xls"])
    if uploaded is None:
        _show_class_preview()
        return

    data = uploaded.getvalue()
    if len(data) > settings.max_upload_bytes:
        st.error(f"File is larger than {settings.MAX_UPLOAD_MB} MB")
        return

    logger.info("Previewing %s file %s (%d bytes)", file_type, uploaded.name, len(data))
    result = PARSERS[file_type](data, uploaded.name)

    _show_messages(result)
    frame = _records_frame(file_type, result)
    if not frame.empty:
        st.dataframe(frame, hide_index=True)

    if result.ok and st.button("Import into preview class"):
        try:
            _import_into_scratch_class(file_type, result)
        except ValueError as e:
            st.error(str(e))

    _show_class_preview()


if __name__ == "__main__":
    main()
