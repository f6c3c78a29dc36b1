"""
views/result_view.py — 시험 결과 화면

표시 내용:
  - 객관식 점수(%) 대형 숫자
  - CHALLENGE 게이트 결과 (에세이 잠김 / 진행)
  - 통계 요약 (정답 수, 오답 수, 미응답 수)
  - 영역별 점수 분석
  - 오답 노트 (정답 + 해설, AI 튜터 해설 요청)
  - 에세이 작성 현황 (채점하지 않음)
"""

import streamlit as st

from cma_mock_cbt.models.question_model import OPTION_LETTERS
from cma_mock_cbt.services.exam_session import ExamRunner
from cma_mock_cbt.services.factory import ExamServices


def _go_home() -> None:
    runner = st.session_state.get("runner")
    if runner is not None:
        runner.exit()
    for key in ["runner", "confirm_finish"]:
        if key in st.session_state:
            del st.session_state[key]
    for k in [k for k in st.session_state if k.startswith(("radio_", "essay_", "explain_"))]:
        del st.session_state[k]
    st.session_state.page = "home"


def render(runner: ExamRunner, services: ExamServices) -> None:
    """결과 화면 렌더링."""
    results = runner.results()
    score = results["mcq_score"]
    threshold = results["pass_threshold"]
    total = results["mcq_total"]
    correct = results["mcq_correct"] or 0
    unanswered = sum(1 for q in results["incorrect_questions"] if q["selected"] is None)

    _, col, _ = st.columns([0.8, 2.5, 0.8])
    with col:
        st.markdown('<div class="cbt-card">', unsafe_allow_html=True)

        if total:
            passed = threshold is None or score >= threshold
            score_color = "#10b981" if passed else "#ef4444"
            st.markdown(
                f'<p class="score-big" style="color:{score_color};">{score}%</p>',
                unsafe_allow_html=True,
            )

        if results["essay_locked"]:
            st.error(
                f"Your MCQ score is below {threshold:g}%. "
                "The essay section is locked for this Challenge attempt."
            )
        elif threshold is not None:
            st.success("Challenge gate passed: the essay section was unlocked.")

        if total:
            s1, s2, s3 = st.columns(3)
            _stat_card(s1, "Correct", str(correct), "#10b981")
            _stat_card(s2, "Incorrect", str(total - correct - unanswered), "#ef4444")
            _stat_card(s3, "Unanswered", str(unanswered), "#f59e0b")

        st.markdown('<hr class="cbt-divider">', unsafe_allow_html=True)
        st.button("Back to exams", key="home_btn", type="primary", on_click=_go_home)
        st.markdown("</div>", unsafe_allow_html=True)  # cbt-card 닫기

    st.markdown("<br>", unsafe_allow_html=True)
    labels = []
    if total:
        labels += ["Section scores", f"Review ({len(results['incorrect_questions'])})"]
    if results["essays"]:
        labels.append("Essays")
    if not labels:
        return
    tabs = iter(st.tabs(labels))

    if total:
        with next(tabs):
            _render_section_scores(results["section_scores"])
        with next(tabs):
            _render_review(runner, services, results["incorrect_questions"])
    if results["essays"]:
        with next(tabs):
            for e in results["essays"]:
                st.markdown(f"- **{e['topic']}**: {e['words']} words (not graded)")


def _render_section_scores(section_scores: list) -> None:
    for ss in section_scores:
        bar_width = max(ss["score"], 2)  # 최소 너비
        st.markdown(
            f"""
            <div style="background:#ffffff; border-radius:12px; padding:16px 20px;
                        margin-bottom:12px; border:1px solid #e5eaf2;">
                <div style="font-size:0.95rem; font-weight:600; color:#1a1a2e; margin-bottom:8px;">
                    {ss['section']}
                </div>
                <div style="background:#e5eaf2; border-radius:6px; height:12px;
                            overflow:hidden; margin-bottom:8px;">
                    <div style="background:#4a7fcb; width:{bar_width}%; height:100%;
                                border-radius:6px;"></div>
                </div>
                <div style="display:flex; justify-content:space-between;
                            font-size:0.78rem; color:#6b7280;">
                    <span>{ss['score']:.1f}%</span>
                    <span>Correct {ss['correct']} / Incorrect {ss['incorrect']} /
                          Unanswered {ss['unanswered']} (Total {ss['total']})</span>
                </div>
            </div>
            """,
            unsafe_allow_html=True,
        )


def _render_review(runner: ExamRunner, services: ExamServices, incorrect: list) -> None:
    if not incorrect:
        st.success("All multiple-choice questions were answered correctly!")
        return

    for i, q in enumerate(incorrect, start=1):
        selected = q["selected"]
        mine = OPTION_LETTERS[selected] if selected is not None else "none"
        with st.expander(f"{i}. {q['section']} | Your answer: {mine} → Correct: {q['correct_letter']}"):
            st.markdown(f'<div class="question-card">{q["question_text"]}</div>', unsafe_allow_html=True)
            for idx, (letter, opt) in enumerate(zip(OPTION_LETTERS, q["options"])):
                if idx == q["correct_index"]:
                    st.markdown(f":green[**O {letter}. {opt}**]")
                elif idx == selected:
                    st.markdown(f":red[X {letter}. {opt}]")
                else:
                    st.markdown(f"&nbsp;&nbsp;&nbsp;{letter}. {opt}")
            if q["explanation"]:
                st.info(q["explanation"])

            explain_key = f"explain_{q['id']}"
            if explain_key in st.session_state:
                st.markdown(st.session_state[explain_key])
            elif st.button("Ask the AI tutor", key=f"btn_{explain_key}"):
                generator = services.generator_for(st.session_state.api_key)
                if generator is None:
                    st.warning("Enter an OpenAI API key on the home screen first.")
                else:
                    with st.spinner("Generating explanation..."):
                        text = generator.explain_mcq(runner.mcq_by_id(q["id"]), selected)
                    if text:
                        st.session_state[explain_key] = text
                        st.rerun()
                    st.error("The AI service is unavailable. Please try again later.")


def _stat_card(col, label: str, value: str, color: str) -> None:
    """통계 수치를 카드 형태로 렌더링하는 헬퍼."""
    with col:
        st.markdown(
            f"""
            <div style="text-align:center; background:#f7fafd; border-radius:12px;
                        padding:16px 8px; border-top:3px solid {color};">
                <p style="font-size:1.8rem; font-weight:800; color:{color};
                           margin:0 0 4px 0;">{value}</p>
                <p style="font-size:0.78rem; color:#9ca3af; margin:0;">{label}</p>
            </div>
            """,
            unsafe_allow_html=True,
        )
