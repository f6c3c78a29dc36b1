"""
services/events.py

시험 세션 이벤트 스트림 (옵저버).
구독자는 subscribe()가 돌려준 함수로 해지한다. 핸들러 예외는 로그만 남기고
다른 핸들러와 발행자에게 전파하지 않는다.
"""

import logging
import threading
from typing import Any, Callable, Dict, List

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

STARTED = "started"
MCQ_ANSWERED = "mcq_answered"
MCQ_FLAGGED = "mcq_flagged"
NAVIGATED = "navigated"
MCQ_FINISHED = "mcq_finished"
ESSAY_ANSWERED = "essay_answered"
ESSAY_FINISHED = "essay_finished"
EXITED = "exited"


class ExamEvent(BaseModel):
    kind: str
    session_id: str
    payload: Dict[str, Any] = Field(default_factory=dict)


Handler = Callable[[ExamEvent], None]


class ExamEventBus:
    def __init__(self):
        self._lock = threading.Lock()
        self._handlers: List[Handler] = []

    def subscribe(self, handler: Handler) -> Callable[[], None]:
        """핸들러 등록. 같은 핸들러를 두 번 등록해도 한 번만 호출된다."""
        with self._lock:
            if handler not in self._handlers:
                self._handlers.append(handler)

        def unsubscribe() -> None:
            with self._lock:
                if handler in self._handlers:
                    self._handlers.remove(handler)

        return unsubscribe

    def clear(self) -> None:
        with self._lock:
            self._handlers.clear()

    @property
    def handler_count(self) -> int:
        with self._lock:
            return len(self._handlers)

    def publish(self, event: ExamEvent) -> None:
        with self._lock:
            handlers = list(self._handlers)
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception(f"이벤트 핸들러 오류 ({event.kind}, session={event.session_id})")
