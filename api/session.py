"""
api/session.py — 멀티유저 인메모리 세션 (쿠키 기반)

각 브라우저에 UUID 세션 ID를 발급하고, 세션별로 독립된 상태를 유지.
  - user_id : 신원 컨텍스트 (로그인 전에는 "anonymous")
  - api_key : 이 브라우저가 등록한 OpenAI 키
  - runner  : 진행 중인 ExamRunner (없으면 None)
TTL 경과 시 자동 만료되며, 만료/로그아웃 시 진행 중 시험은 이탈 처리된다.
"""

import logging
import threading
import time
import uuid
from typing import Any, List, Optional

from config import SESSION_TTL
from cma_mock_cbt.models.session_state import ANONYMOUS_USER

logger = logging.getLogger(__name__)

_lock = threading.Lock()
_sessions: dict[str, dict[str, Any]] = {}
_timestamps: dict[str, float] = {}


def _new_state() -> dict[str, Any]:
    return {
        "user_id": ANONYMOUS_USER,
        "api_key": "",
        "runner": None,
    }


def create_session() -> str:
    """새 세션을 생성하고 세션 ID를 반환."""
    sid = uuid.uuid4().hex
    with _lock:
        _sessions[sid] = _new_state()
        _timestamps[sid] = time.time()
    return sid


def get_session(sid: str) -> Optional[dict[str, Any]]:
    """세션 ID로 세션 데이터를 가져옴. 만료되었거나 없으면 None."""
    expired_runner = None
    with _lock:
        if sid not in _sessions:
            return None
        if time.time() - _timestamps[sid] > SESSION_TTL:
            expired_runner = _sessions.pop(sid).get("runner")
            del _timestamps[sid]
        else:
            _timestamps[sid] = time.time()  # 접근 시 갱신
            return _sessions[sid]
    if expired_runner is not None:
        expired_runner.exit()
    return None


def get(sid: str, key: str, default=None):
    """세션에서 값 읽기."""
    state = get_session(sid)
    if state is None:
        return default
    return state.get(key, default)


def put(sid: str, key: str, value) -> None:
    """세션에 값 쓰기."""
    with _lock:
        if sid in _sessions:
            _sessions[sid][key] = value
            _timestamps[sid] = time.time()


def replace_runner(sid: str, runner) -> None:
    """새 시험으로 교체. 이전 시험은 이탈 처리."""
    with _lock:
        state = _sessions.get(sid)
        if state is None:
            return
        previous = state.get("runner")
        state["runner"] = runner
        _timestamps[sid] = time.time()
    if previous is not None and previous is not runner:
        previous.exit()


# ── 신원 컨텍스트 ────────────────────────────────────────────────────────────

def login(sid: str, user_id: str) -> None:
    user_id = user_id.strip()
    if not user_id:
        raise ValueError("user_id must not be empty")
    put(sid, "user_id", user_id)
    logger.info(f"로그인: {sid[:8]} → {user_id}")


def logout(sid: str) -> None:
    """신원을 익명으로 되돌리고 진행 중 시험을 이탈 처리 (API 키는 유지)."""
    with _lock:
        state = _sessions.get(sid)
        if state is None:
            return
        runner = state.get("runner")
        saved_key = state.get("api_key", "")
        _sessions[sid] = _new_state()
        _sessions[sid]["api_key"] = saved_key
        _timestamps[sid] = time.time()
    if runner is not None:
        runner.exit()
    logger.info(f"로그아웃: {sid[:8]}")


def current_user(sid: str) -> str:
    return get(sid, "user_id", ANONYMOUS_USER) or ANONYMOUS_USER


# ── 백그라운드 루프용 ────────────────────────────────────────────────────────

def active_runners() -> List[Any]:
    with _lock:
        return [s["runner"] for s in _sessions.values() if s.get("runner") is not None]


def cleanup_expired() -> int:
    """만료된 세션을 정리. 제거된 수 반환."""
    now = time.time()
    runners = []
    with _lock:
        expired = [sid for sid, ts in _timestamps.items() if now - ts > SESSION_TTL]
        for sid in expired:
            runner = _sessions.pop(sid).get("runner")
            if runner is not None:
                runners.append(runner)
            del _timestamps[sid]
    for runner in runners:
        runner.exit()
    return len(expired)


def clear_all() -> None:
    """모든 세션 제거 (앱 종료/테스트용)."""
    with _lock:
        runners = [s["runner"] for s in _sessions.values() if s.get("runner") is not None]
        _sessions.clear()
        _timestamps.clear()
    for runner in runners:
        runner.exit()
