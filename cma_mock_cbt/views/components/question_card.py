"""
views/components/question_card.py

객관식 문제를 카드 형태로 렌더링하고 선택을 ExamRunner에 즉시 반영하는 컴포넌트.
"""

from typing import Optional

import streamlit as st

from cma_mock_cbt.models.question_model import OPTION_LETTERS, MCQQuestion
from cma_mock_cbt.services.exam_session import ExamRunner


def render(runner: ExamRunner, question: MCQQuestion, question_number: int, total: int) -> None:
    """
    Args:
        runner:          진행 중인 시험
        question:        렌더링할 MCQQuestion
        question_number: 1-based 표시 번호
        total:           섹션 전체 문제 수
    """
    answer = runner.session.mcq_answers.get(question.id)
    saved: Optional[int] = answer.selected if answer else None
    flagged = bool(answer and answer.flagged)

    # ── 문제 헤더 ──────────────────────────────────────────────────────────
    st.markdown(
        f"""
        <div style="display:flex; align-items:center; gap:10px; margin-bottom:12px;">
            <span class="question-number-badge">Question {question_number} / {total}</span>
            <span style="font-size:0.8rem; color:#9ca3af;">{question.section}</span>
            {'<span style="margin-left:auto;">⚑</span>' if flagged else ''}
        </div>
        """,
        unsafe_allow_html=True,
    )

    # ── 문제 본문 ──────────────────────────────────────────────────────────
    st.markdown(
        f"""
        <div class="question-card">
            <p style="font-size:1.05rem; font-weight:600; color:#1a1a2e;
                      line-height:1.7; margin:0;">
                {question.question_text}
            </p>
        </div>
        """,
        unsafe_allow_html=True,
    )

    # ── 보기 선택 (Radio) ─────────────────────────────────────────────────
    labels = [f"{letter}. {text}" for letter, text in zip(OPTION_LETTERS, question.options)]
    radio_key = f"radio_{question.id}"

    # 위젯 키가 없을 때만 저장된 답으로 초기화 (재렌더 시 기존 값 유지)
    if radio_key not in st.session_state and saved is not None:
        st.session_state[radio_key] = labels[saved]

    current_val = st.session_state.get(radio_key)
    default_index = labels.index(current_val) if current_val in labels else saved

    selected = st.radio(
        "Select an answer",
        options=labels,
        index=default_index,
        key=radio_key,
        label_visibility="collapsed",
    )
    if selected is not None:
        index = labels.index(selected)
        if index != saved:
            runner.answer_mcq(question.id, index)

    if st.button("⚑ Unflag" if flagged else "⚑ Flag", key=f"flag_{question.id}"):
        runner.toggle_flag(question.id)
        st.rerun()
