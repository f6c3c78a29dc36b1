"""
views/exam_view.py — 시험 풀기 화면

레이아웃:
  - st.sidebar : 섹션 타이머 + 문제 번호 네비게이터 + 섹션 종료
  - 메인 영역  : 현재 문제 카드(객관식/에세이) + 이전/다음

상태 관리:
  - st.session_state.runner (ExamRunner) 하나만 보관
  - 답안은 위젯 변경 즉시 runner에 반영 (저장은 runner 이벤트 구독자가 담당)
  - 섹션이 끝나면(시간 만료 포함) status를 보고 다음 화면으로 이동
"""

import streamlit as st

from cma_mock_cbt.errors import ExamPhaseError
from cma_mock_cbt.models.session_state import SessionStatus
from cma_mock_cbt.services.exam_session import ExamRunner
from cma_mock_cbt.views.components import essay_card
from cma_mock_cbt.views.components import question_card as qcard
from cma_mock_cbt.views.components import sidebar as nav
from cma_mock_cbt.views.components import timer as tmr


def _finish_section(runner: ExamRunner) -> None:
    if runner.status == SessionStatus.MCQ_IN_PROGRESS:
        runner.finish_mcq()
    elif runner.status == SessionStatus.ESSAY_IN_PROGRESS:
        runner.finish_essay()
    st.session_state["confirm_finish"] = False
    st.rerun()


def _render_finish(runner: ExamRunner) -> None:
    summary = runner.section_summary()
    if summary["unanswered"] > 0:
        st.markdown(
            f"<p style='font-size:0.8rem; color:#f59e0b; margin-bottom:8px;'>"
            f"⚠️ Unanswered: {summary['unanswered']}</p>",
            unsafe_allow_html=True,
        )

    if st.button("Finish Test", key="finish_sidebar", type="primary"):
        st.session_state["confirm_finish"] = True
        st.rerun()

    if st.session_state.get("confirm_finish"):
        st.warning(
            f"Answered {summary['answered']} · Unanswered {summary['unanswered']} · "
            f"Flagged {summary['flagged']}. Finishing ends this section permanently."
        )
        col_yes, col_no = st.columns(2)
        with col_yes:
            if st.button("Finish", key="confirm_yes", type="primary"):
                _finish_section(runner)
        with col_no:
            if st.button("Cancel", key="confirm_no"):
                st.session_state["confirm_finish"] = False
                st.rerun()


def render(runner: ExamRunner) -> None:
    """시험 화면 렌더링."""
    runner.tick()
    if runner.status not in (SessionStatus.MCQ_IN_PROGRESS, SessionStatus.ESSAY_IN_PROGRESS):
        st.session_state.page = "result"
        st.rerun()

    questions = runner.current_questions()
    total = len(questions)
    current_idx = max(0, min(runner.session.current_index, total - 1))
    section = "Multiple Choice" if runner.status == SessionStatus.MCQ_IN_PROGRESS else "Essay"

    # ── 사이드바 ───────────────────────────────────────────────────────────
    with st.sidebar:
        st.markdown(
            f"<h3 style='font-size:1rem; font-weight:700; color:#1a1a2e;'>{section}</h3>",
            unsafe_allow_html=True,
        )
        tmr.render(runner)
        st.markdown('<hr class="cbt-divider">', unsafe_allow_html=True)
        nav.render(runner)
        st.markdown('<hr class="cbt-divider">', unsafe_allow_html=True)
        _render_finish(runner)

    # ── 메인 영역 ──────────────────────────────────────────────────────────
    st.markdown(
        f"<h2 style='font-size:1.3rem; font-weight:700; color:#1a1a2e;'>{runner.config.title}</h2>",
        unsafe_allow_html=True,
    )
    for w in runner.warnings:
        st.warning(w)
    st.markdown('<hr class="cbt-divider">', unsafe_allow_html=True)

    try:
        if runner.status == SessionStatus.MCQ_IN_PROGRESS:
            qcard.render(runner, questions[current_idx], current_idx + 1, total)
        else:
            essay_card.render(runner, questions[current_idx], current_idx + 1, total)
    except ExamPhaseError:
        # 입력 도중 섹션이 시간 만료로 끝난 경우
        st.rerun()

    # ── 이전 / 다음 ────────────────────────────────────────────────────────
    st.markdown("<br>", unsafe_allow_html=True)
    nav_left, nav_center, nav_right = st.columns([1, 2, 1])
    with nav_left:
        if current_idx > 0 and st.button("← Back", key="prev_btn", use_container_width=True):
            runner.navigate(current_idx - 1)
            st.rerun()
    with nav_center:
        st.markdown(
            f"<p style='text-align:center; font-size:0.85rem; color:#9ca3af; "
            f"padding-top:8px;'>{current_idx + 1} / {total}</p>",
            unsafe_allow_html=True,
        )
    with nav_right:
        if current_idx < total - 1 and st.button(
            "Next →", key="next_btn", type="primary", use_container_width=True
        ):
            runner.navigate(current_idx + 1)
            st.rerun()
