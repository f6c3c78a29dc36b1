"""
views/components/sidebar.py

문제 번호 네비게이션 그리드 + 섹션 진행 현황 컴포넌트.
각 번호를 클릭하면 해당 문제로 바로 이동한다.
"""

import streamlit as st

from cma_mock_cbt.models.session_state import SessionStatus
from cma_mock_cbt.services.exam_session import ExamRunner


def _label(runner: ExamRunner, index: int, qid: str) -> str:
    """번호 버튼 표시: 현재 ▶, 플래그 ⚑, 응답 ●."""
    marks = ""
    if index == runner.session.current_index:
        marks += "▶"
    if runner.session.status == SessionStatus.MCQ_IN_PROGRESS:
        a = runner.session.mcq_answers.get(qid)
        if a is not None and a.flagged:
            marks += "⚑"
        if a is not None and a.selected is not None:
            marks += "●"
    elif runner.session.essay_answers.get(qid, "").strip():
        marks += "●"
    return f"{marks}{index + 1}"


def render(runner: ExamRunner) -> None:
    """
    사이드바에 진행 현황과 문제 번호 버튼 그리드를 렌더링한다.

    표시:
      ▶ 현재 문제 / ● 응답함 / ⚑ 플래그
    """
    summary = runner.section_summary()
    total = summary["total"]
    answered = summary["answered"]

    # ── 진행 현황 ──────────────────────────────────────────────────────────
    st.markdown(
        f"""
        <div style="display:flex; justify-content:space-between;
                    font-size:0.8rem; color:#6b7280; margin-bottom:4px;">
            <span>Answered</span>
            <span><b>{answered}</b> / {total}</span>
        </div>
        """,
        unsafe_allow_html=True,
    )
    st.progress(answered / total if total > 0 else 0)
    if summary["flagged"]:
        st.caption(f"⚑ Flagged: {summary['flagged']}")

    # ── 문제 번호 그리드 (5열) ─────────────────────────────────────────────
    ids = [q.id for q in runner.current_questions()]
    cols_per_row = 5
    for row_start in range(0, len(ids), cols_per_row):
        cols = st.columns(cols_per_row)
        for col_idx, qid in enumerate(ids[row_start:row_start + cols_per_row]):
            q_idx = row_start + col_idx
            with cols[col_idx]:
                if st.button(_label(runner, q_idx, qid), key=f"nav_{runner.session.status.value}_{q_idx}"):
                    runner.navigate(q_idx)
                    st.rerun()
