"""
views/intro_view.py — 시험 전 튜토리얼 (16페이지)

Back / Next로만 이동하며 건너뛰기는 없다. 16페이지의 Next가 시험을 시작한다.
"""

import streamlit as st

from cma_mock_cbt.errors import ExamPhaseError
from cma_mock_cbt.services.exam_session import ExamRunner
from cma_mock_cbt.services.intro_pages import TOTAL_INTRO_PAGES


def render(runner: ExamRunner) -> None:
    page = runner.intro_page()

    st.progress(runner.tutorial.progress / 100)
    st.caption(f"{page.title} of {TOTAL_INTRO_PAGES}")

    for w in runner.warnings:
        st.warning(w)

    st.markdown(f"## {page.heading}")
    for p in page.paragraphs:
        st.markdown(p)
    for b in page.bullets:
        st.markdown(f"- {b}")
    if page.callout:
        st.info(page.callout)

    st.markdown("<br>", unsafe_allow_html=True)
    left, _, right = st.columns([1, 2, 1])
    with left:
        if st.button("← Back", key="intro_back", disabled=runner.tutorial.page == 1, use_container_width=True):
            runner.tutorial_back()
            st.rerun()
    with right:
        label = "Start the Test" if page.is_last else "Next →"
        if st.button(label, key="intro_next", type="primary", use_container_width=True):
            try:
                if runner.tutorial_next():
                    st.session_state.page = "exam"
            except ExamPhaseError:
                st.session_state.page = "home"
            st.rerun()
