"""
views/components/essay_card.py

에세이 시나리오 + 요구사항 + 답안 입력 영역.
시나리오는 요구사항 옆에 계속 보이도록 2열로 배치한다.
"""

import streamlit as st

from cma_mock_cbt.models.question_model import EssayQuestion
from cma_mock_cbt.services.exam_service import word_count
from cma_mock_cbt.services.exam_session import ExamRunner


def render(runner: ExamRunner, essay: EssayQuestion, number: int, total: int) -> None:
    st.markdown(
        f'<span class="question-number-badge">Essay {number} / {total}</span>'
        f"<span style='font-size:0.8rem; color:#9ca3af; margin-left:10px;'>{essay.topic}</span>",
        unsafe_allow_html=True,
    )

    scenario_col, answer_col = st.columns([1, 1])
    with scenario_col:
        st.markdown(f'<div class="context-box">{essay.scenario_text}</div>', unsafe_allow_html=True)
        st.markdown("**Requirements**")
        for i, req in enumerate(essay.requirements, start=1):
            st.markdown(f"{i}. {req}")

    with answer_col:
        key = f"essay_{essay.id}"
        if key not in st.session_state:
            st.session_state[key] = runner.session.essay_answers.get(essay.id, "")
        text = st.text_area("Your response", key=key, height=420, label_visibility="collapsed")
        if text != runner.session.essay_answers.get(essay.id, ""):
            runner.answer_essay(essay.id, text)
        st.caption(f"{word_count(text)} words")
