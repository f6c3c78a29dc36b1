"""
app.py — Streamlit 진입점

실행: streamlit run cma_mock_cbt/app.py

화면 라우팅은 st.session_state.page ("home" | "intro" | "exam" | "result") 로 한다.
백엔드 협력 객체(ExamServices)는 프로세스당 하나를 공유한다.
"""

import logging
import os
import sys

_BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _BASE_DIR not in sys.path:
    sys.path.insert(0, _BASE_DIR)

import streamlit as st

from cma_mock_cbt.models.session_state import ANONYMOUS_USER
from cma_mock_cbt.services.factory import ExamServices, build_services
from cma_mock_cbt.views import exam_view, home_view, intro_view, result_view

logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")

_CSS = """
<style>
.cbt-card { background:#ffffff; border-radius:16px; padding:28px; }
.cbt-title { text-align:center; font-size:1.6rem; font-weight:800; color:#1a1a2e; }
.cbt-divider { border:none; border-top:1px solid #e5eaf2; margin:18px 0; }
.question-card { background:#f7fafd; border-radius:12px; padding:18px 20px; margin-bottom:14px; }
.question-number-badge { background:#1a1a2e; color:#fff; border-radius:12px;
                         padding:2px 12px; font-size:0.8rem; font-weight:600; }
.context-box { background:#fffbea; border-left:4px solid #f59e0b; border-radius:8px;
               padding:12px 16px; margin-bottom:12px; line-height:1.6; }
.timer-display { font-size:1.6rem; font-weight:800; color:#1a1a2e; font-variant-numeric:tabular-nums; }
.timer-warning { color:#ef4444; }
.score-big { text-align:center; font-size:3.5rem; font-weight:900; margin:0; }
</style>
"""


@st.cache_resource
def _services() -> ExamServices:
    return build_services()


def _init_state() -> None:
    defaults = {
        "page": "home",
        "user_id": ANONYMOUS_USER,
        "api_key": "",
        "runner": None,
    }
    for key, value in defaults.items():
        if key not in st.session_state:
            st.session_state[key] = value


def main() -> None:
    st.set_page_config(page_title="CMA Mock CBT", page_icon="📝", layout="wide")
    st.markdown(_CSS, unsafe_allow_html=True)
    _init_state()

    services = _services()
    runner = st.session_state.runner
    page = st.session_state.page

    if page != "home" and (runner is None or runner.exited):
        st.session_state.page = "home"
        page = "home"

    if page == "intro":
        intro_view.render(runner)
    elif page == "exam":
        exam_view.render(runner)
    elif page == "result":
        result_view.render(runner, services)
    else:
        home_view.render(services)


main()
