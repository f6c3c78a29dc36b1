"""
views/components/timer.py

현재 섹션의 남은 시간을 렌더링하는 컴포넌트.
1초마다 fragment만 다시 그리고, 시간이 만료되면 runner.tick()으로 섹션을 종료한 뒤
전체 화면을 다시 실행한다 (사용자 클릭과 같은 종료 경로).
"""

import streamlit as st

from cma_mock_cbt.services.exam_session import ExamRunner
from cma_mock_cbt.services.timer import format_clock


@st.fragment(run_every=1.0)
def render(runner: ExamRunner) -> None:
    if runner.tick():
        st.rerun()

    remaining = runner.remaining_seconds()
    if remaining is None:
        return
    timer = runner.active_timer()
    alert = timer.alert_level() if timer else None

    css_class = "timer-display timer-warning" if alert is not None else "timer-display"
    icon = "⚠️ " if alert is not None else "⏱ "

    st.markdown(
        f'<div class="{css_class}">{icon}{format_clock(remaining)}</div>'
        "<p style='font-size:0.75rem; color:#9ca3af; margin-top:2px;'>Section Time Remaining</p>",
        unsafe_allow_html=True,
    )
    if alert is not None:
        st.warning(f"{alert} minutes or less remain in this section.")
