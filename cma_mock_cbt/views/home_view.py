"""
views/home_view.py — 홈 / 시험 선택 화면

기능:
  - 신원(사용자 ID) 입력 / 로그아웃
  - OpenAI API 키 입력 (AI 문제 생성, 해설)
  - 카탈로그 시험 카드 + 시작 버튼
  - 최근 응시 기록
  - 문제은행 가져오기 (에세이 CSV, 객관식 PDF)
"""

import streamlit as st

from cma_mock_cbt.errors import ExamError
from cma_mock_cbt.models.session_state import ANONYMOUS_USER
from cma_mock_cbt.services.bank_importer import import_essays, import_mcqs, parse_essay_csv, parse_mcq_pdf
from cma_mock_cbt.services.exam_catalog import list_configs
from cma_mock_cbt.services.factory import ExamServices
from cma_mock_cbt.services.question_generator import make_client


def _start_exam(services: ExamServices, config_key: str) -> None:
    """출제 + 세션 생성 후 튜토리얼 화면으로 이동."""
    previous = st.session_state.get("runner")
    if previous is not None:
        previous.exit()
    try:
        with st.spinner("Preparing your exam..."):
            runner = services.prepare(config_key, st.session_state.user_id, st.session_state.api_key)
    except ExamError as e:
        st.session_state.flash_error = str(e)
        return
    for k in [k for k in st.session_state if k.startswith(("radio_", "essay_"))]:
        del st.session_state[k]
    st.session_state.runner = runner
    st.session_state.page = "intro"


def _render_identity() -> None:
    user_id = st.session_state.user_id
    if user_id == ANONYMOUS_USER:
        entered = st.text_input("User ID", placeholder="your-id", key="user_id_input")
        if st.button("Sign in", key="login_btn", disabled=not entered.strip()):
            st.session_state.user_id = entered.strip()
            st.rerun()
        st.caption("Sign in to keep your exam history.")
    else:
        st.markdown(f"Signed in as **{user_id}**")
        if st.button("Sign out", key="logout_btn"):
            runner = st.session_state.get("runner")
            if runner is not None:
                runner.exit()
            st.session_state.runner = None
            st.session_state.user_id = ANONYMOUS_USER
            st.rerun()


def _render_api_key() -> None:
    input_key = st.text_input(
        "OpenAI API Key",
        value=st.session_state.api_key,
        type="password",
        placeholder="sk-...",
        key="api_key_input",
    )
    if input_key != st.session_state.api_key:
        st.session_state.api_key = input_key.strip()
        st.rerun()
    if st.session_state.api_key:
        st.caption("API key set: AI questions and explanations are enabled.")


def _render_catalog(services: ExamServices) -> None:
    for config in list_configs():
        with st.container(border=True):
            st.markdown(f"**{config.title}**")
            parts = []
            if config.mcq_count:
                parts.append(f"{config.mcq_count} MCQ / {config.mcq_duration_minutes} min")
            if config.essay_count:
                parts.append(f"{config.essay_count} essays / {config.essay_duration_minutes} min")
            st.caption(" · ".join(parts))
            if config.is_gated:
                st.caption(f"Essay section unlocks at {config.mcq_pass_threshold:g}% or higher on the MCQ section.")
            st.button(
                "Start",
                key=f"start_{config.key}",
                type="primary",
                on_click=_start_exam,
                args=(services, config.key),
            )


def _render_history(services: ExamServices) -> None:
    items = services.recorder.history(st.session_state.user_id)
    if not items:
        st.caption("No previous sessions.")
        return
    for item in items:
        score = f"{item.mcq_score}%" if item.mcq_score is not None else "-"
        date = item.date.strftime("%Y-%m-%d %H:%M") if item.date else ""
        st.markdown(f"- {date} · {item.title} · {item.status.value} · {score}")


def _render_bank_import(services: ExamServices) -> None:
    csv_file = st.file_uploader("Essay CSV", type=["csv"], key="essay_csv_uploader")
    if csv_file is not None and st.button("Import essays", key="import_essays_btn"):
        essays = parse_essay_csv(csv_file.read().decode("utf-8-sig"))
        if essays:
            st.success(f"{import_essays(services.data_client, essays)} essays imported.")
        else:
            st.error("No valid essay rows found.")

    pdf_file = st.file_uploader("MCQ PDF", type=["pdf"], key="mcq_pdf_uploader")
    if pdf_file is not None and st.button("Import questions", key="import_pdf_btn"):
        client = make_client(st.session_state.api_key or services.default_api_key)
        if client is None:
            st.warning("Enter an OpenAI API key first.")
            return
        with st.spinner("Analyzing the PDF..."):
            try:
                questions = parse_mcq_pdf(pdf_file.read(), client)
            except ValueError as e:
                st.error(str(e))
                return
        if questions:
            st.success(f"{import_mcqs(services.data_client, questions)} questions imported.")
        else:
            st.error("No questions could be extracted.")


def render(services: ExamServices) -> None:
    """홈 화면 렌더링."""
    _, col, _ = st.columns([1, 2.2, 1])

    with col:
        st.markdown('<p class="cbt-title">CMA Exam Simulation</p>', unsafe_allow_html=True)

        error = st.session_state.pop("flash_error", None)
        if error:
            st.error(error)

        _render_identity()
        _render_api_key()
        st.markdown('<hr class="cbt-divider">', unsafe_allow_html=True)

        _render_catalog(services)

        st.markdown('<hr class="cbt-divider">', unsafe_allow_html=True)
        with st.expander("Recent sessions"):
            _render_history(services)
        with st.expander("Import question bank"):
            _render_bank_import(services)
