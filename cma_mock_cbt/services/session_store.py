"""
services/session_store.py

시험 세션 영속화 (exam_sessions 테이블).

설계 원칙:
- 세션 생성(create)만 동기 호출: 실패하면 호출자가 오프라인 세션으로 전환
- 진행 중 저장(save)은 백그라운드 단일 워커에 맡기고 기다리지 않는다 (fire-and-forget)
- 같은 세션의 대기 중 스냅샷은 최신 것 하나로 합쳐 쓴다 → 항상 최신 쓰기가 남음
- 저장 실패는 로그 + last_error 기록, 절대 예외로 올리지 않는다
- attach된 세션의 저장이 실패하면 러너를 오프라인으로 전환 (경고 표시, 이후 스냅샷은 메모리 보관)
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError

import config
from cma_mock_cbt.errors import DataClientError
from cma_mock_cbt.models.session_state import ANONYMOUS_USER, ExamSession, SessionHistoryItem
from cma_mock_cbt.services.data_client import DataClient
from cma_mock_cbt.services.events import EXITED, ExamEvent
from cma_mock_cbt.services.exam_catalog import EXAM_CONFIGS

logger = logging.getLogger(__name__)

SESSION_TABLE = "exam_sessions"


class SessionRecorder:
    def __init__(self, data_client: DataClient, max_workers: int = config.SAVE_WORKERS):
        self._client = data_client
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="exam-save")
        self._lock = threading.RLock()
        self._latest: Dict[str, Tuple[int, dict]] = {}
        self._written: Dict[str, int] = {}
        self._revision = 0
        self._futures: Dict[str, List[Future]] = {}
        self._local: Dict[str, ExamSession] = {}
        self._on_failure: Dict[str, Callable[[], None]] = {}
        self.last_error: Optional[str] = None

    # ── 생성 ─────────────────────────────────────────────────────────────────

    def create(self, session: ExamSession) -> bool:
        """세션 행을 동기 삽입. 실패하면 False (세션은 메모리에만 남는다)."""
        try:
            self._client.insert(SESSION_TABLE, session.to_record())
        except DataClientError as e:
            logger.error(f"세션 생성 저장 실패 ({session.id}), 오프라인 진행: {e}")
            self.last_error = str(e)
            return False
        logger.info(f"세션 생성: {session.id} ({session.config_key}, user={session.user_id})")
        return True

    # ── 진행 저장 ────────────────────────────────────────────────────────────

    def save(self, session: ExamSession) -> Optional[Future]:
        """스냅샷을 백그라운드로 저장. 오프라인 세션은 저장하지 않는다."""
        if session.offline:
            with self._lock:
                self._local[session.id] = session.model_copy(deep=True)
            return None

        snapshot = session.to_record()
        with self._lock:
            self._revision += 1
            self._latest[session.id] = (self._revision, snapshot)
            future = self._executor.submit(self._write, session.id)
            self._futures.setdefault(session.id, []).append(future)
            future.add_done_callback(lambda f, sid=session.id: self._forget(sid, f))
        return future

    def _forget(self, session_id: str, future: Future) -> None:
        with self._lock:
            pending = self._futures.get(session_id)
            if pending and future in pending:
                pending.remove(future)
                if not pending:
                    del self._futures[session_id]

    def _write(self, session_id: str) -> None:
        with self._lock:
            revision, snapshot = self._latest.get(session_id, (0, None))
            if snapshot is None or self._written.get(session_id, 0) >= revision:
                return
        try:
            updated = self._client.update(SESSION_TABLE, {"id": session_id}, snapshot)
            if not updated:
                raise DataClientError("갱신된 세션 행이 없습니다")
        except DataClientError as e:
            logger.warning(f"자동 저장 실패 ({session_id}): {e}")
            self.last_error = str(e)
            self._notify_failure(session_id)
            return
        with self._lock:
            self._written[session_id] = max(self._written.get(session_id, 0), revision)

    def attach(self, runner) -> Callable[[], None]:
        """
        runner의 이벤트마다 스냅샷 저장. 해지 함수를 반환.
        진행 중 이탈(exited)이면 대기 중 저장을 취소한다. 종료된 세션의 마지막 저장은 유지.
        저장이 실패하면 runner.mark_offline() 후 현재 상태를 메모리에 보관한다.
        """

        def _on_event(event: ExamEvent) -> None:
            if event.kind == EXITED:
                if not runner.session.status.is_finished:
                    self.cancel_pending(runner.session.id)
            else:
                self.save(runner.session)

        def _on_failure() -> None:
            runner.mark_offline()
            self.save(runner.session)

        session_id = runner.session.id
        with self._lock:
            self._on_failure[session_id] = _on_failure
        unsubscribe = runner.events.subscribe(_on_event)

        def _detach() -> None:
            unsubscribe()
            with self._lock:
                if self._on_failure.get(session_id) is _on_failure:
                    del self._on_failure[session_id]

        return _detach

    def _notify_failure(self, session_id: str) -> None:
        with self._lock:
            hook = self._on_failure.pop(session_id, None)
        if hook is None:
            return
        try:
            hook()
        except Exception:
            logger.exception(f"오프라인 전환 처리 실패 ({session_id})")

    def cancel_pending(self, session_id: str) -> int:
        """아직 시작하지 않은 저장 작업을 취소. 취소된 수 반환."""
        with self._lock:
            pending = list(self._futures.get(session_id, []))
        return sum(1 for f in pending if f.cancel())

    def flush(self, timeout: float = 5.0) -> None:
        """대기 중인 저장 작업이 끝날 때까지 기다린다 (종료/테스트용)."""
        with self._lock:
            pending = [f for futures in self._futures.values() for f in futures]
        for f in pending:
            if not f.cancelled():
                f.exception(timeout=timeout)

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)

    # ── 히스토리 ─────────────────────────────────────────────────────────────

    def history(self, user_id: str, limit: int = 10) -> List[SessionHistoryItem]:
        """
        최근 세션 목록 (상태, 점수, 날짜만). 익명 사용자는 공유 ID이므로 빈 목록.
        백엔드 조회 실패 시 메모리의 오프라인 세션만 반환.
        """
        if not user_id or user_id == ANONYMOUS_USER:
            return []

        rows: List[dict] = []
        try:
            rows = self._client.select(
                SESSION_TABLE,
                {"user_id": user_id},
                limit=limit,
                order_by="created_at",
                descending=True,
            )
        except DataClientError as e:
            logger.error(f"히스토리 조회 실패 ({user_id}): {e}")

        # 저장 실패로 오프라인 전환된 세션은 메모리 쪽이 최신
        with self._lock:
            local = {s.id: s.to_record() for s in self._local.values() if s.user_id == user_id}
        rows = [r for r in rows if r.get("id") not in local] + list(local.values())

        items: List[SessionHistoryItem] = []
        for row in rows:
            item = _history_item(row)
            if item is not None:
                items.append(item)
        items.sort(key=lambda i: i.date.timestamp() if i.date else 0.0, reverse=True)
        return items[:limit]


def _history_item(row: dict) -> Optional[SessionHistoryItem]:
    config_key = row.get("config_key", "")
    exam = EXAM_CONFIGS.get(config_key)
    try:
        return SessionHistoryItem(
            id=str(row.get("id")),
            config_key=config_key,
            title=exam.title if exam else config_key,
            status=row.get("status"),
            mcq_score=row.get("mcq_score"),
            date=row.get("completed_at") or row.get("started_at") or row.get("created_at"),
        )
    except ValidationError as e:
        logger.warning(f"히스토리 행 {row.get('id')!r} 무시: {e}")
        return None
