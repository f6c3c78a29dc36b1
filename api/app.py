"""
api/app.py — FastAPI 앱 팩토리

  - 쿠키 세션 미들웨어 (브라우저별 신원/API 키/진행 중 시험)
  - 섹션 타이머 틱 + 만료 세션 정리 루프 (ExamTicker)
  - 종료 시 진행 중 시험 이탈 처리, 대기 중 저장 flush
"""

import logging
import threading
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from config import CLEANUP_INTERVAL_SECONDS, SESSION_TTL, TIMER_TICK_SECONDS
from api.routes import router
import api.session as session
from cma_mock_cbt.services.exam_catalog import list_configs
from cma_mock_cbt.services.factory import ExamServices, build_services

SESSION_COOKIE = "cma_session"

logger = logging.getLogger(__name__)


def _tick_all() -> int:
    """진행 중인 모든 시험의 타이머 확인. 만료로 종료된 섹션 수 반환."""
    finished = 0
    for runner in session.active_runners():
        try:
            if runner.tick():
                finished += 1
        except Exception:
            logger.exception(f"타이머 처리 실패: {runner.session.id}")
    return finished


class ExamTicker:
    """TIMER_TICK_SECONDS마다 _tick_all, CLEANUP_INTERVAL_SECONDS마다 만료 세션 정리."""

    def __init__(self, interval: float = TIMER_TICK_SECONDS, cleanup_every: float = CLEANUP_INTERVAL_SECONDS):
        self._interval = interval
        self._cleanup_every = cleanup_every
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, daemon=True, name="exam-ticker")
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _run(self) -> None:
        last_cleanup = time.time()
        while not self._stop.wait(self._interval):
            finished = _tick_all()
            if finished:
                logger.info(f"시간 만료로 {finished}개 섹션 종료")
            if time.time() - last_cleanup >= self._cleanup_every:
                last_cleanup = time.time()
                removed = session.cleanup_expired()
                if removed:
                    logger.info(f"만료 세션 {removed}개 정리")


def create_app(services: Optional[ExamServices] = None, background: bool = True) -> FastAPI:
    """
    Args:
        services:   백엔드 협력 객체 묶음 (없으면 config 값으로 조립)
        background: False면 타이머 루프를 띄우지 않는다 (테스트에서 _tick_all 직접 호출)
    """
    services = services or build_services()
    ticker = ExamTicker() if background else None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if ticker is not None:
            ticker.start()
        yield
        if ticker is not None:
            ticker.stop()
        session.clear_all()
        services.close()
        logger.info("API 서버 종료")

    app = FastAPI(title="CMA Mock CBT", docs_url=None, redoc_url=None, lifespan=lifespan)
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # 쿠키의 세션 ID가 없거나 만료됐으면 새로 발급
    @app.middleware("http")
    async def session_middleware(request: Request, call_next):
        sid = request.cookies.get(SESSION_COOKIE)
        if not sid or session.get_session(sid) is None:
            sid = session.create_session()

        request.state.session_id = sid
        response: Response = await call_next(request)
        response.set_cookie(
            key=SESSION_COOKIE,
            value=sid,
            httponly=True,
            samesite="lax",
            max_age=SESSION_TTL,
        )
        return response

    app.include_router(router)

    @app.get("/")
    async def service_info():
        return {
            "service": "cma-mock-cbt",
            "exams": [c.key for c in list_configs()],
            "backend": type(services.data_client).__name__,
        }

    return app
