"""
services/timer.py

섹션별 카운트다운 타이머.
스레드를 직접 돌리지 않는다: 주기 콜백(API 앱의 틱 루프, Streamlit 재실행)이
ExamRunner.tick()을 호출하면 그 시점의 clock 값으로 만료 여부를 판단한다.
"""

import time
from typing import Callable, Optional

# 튜토리얼 6페이지: 30분 / 15분 / 5분 남았을 때 경고
ALERT_THRESHOLDS_SECONDS = (30 * 60, 15 * 60, 5 * 60)


class PhaseTimer:
    """
    Args:
        duration_seconds: 섹션 제한 시간 (초)
        clock:            현재 시각 함수 (기본 time.time, 테스트에서 교체)
    """

    def __init__(self, duration_seconds: float, clock: Callable[[], float] = time.time):
        if duration_seconds <= 0:
            raise ValueError("duration_seconds must be positive")
        self.duration_seconds = float(duration_seconds)
        self._clock = clock
        self._started_at: Optional[float] = None
        self._cancelled = False

    @property
    def running(self) -> bool:
        return self._started_at is not None and not self._cancelled

    def start(self) -> None:
        if self._started_at is None:
            self._started_at = self._clock()

    def cancel(self) -> None:
        self._cancelled = True

    def remaining(self, now: Optional[float] = None) -> float:
        if self._started_at is None:
            return self.duration_seconds
        now = self._clock() if now is None else now
        return max(0.0, self.duration_seconds - (now - self._started_at))

    def expired(self, now: Optional[float] = None) -> bool:
        """취소된 타이머는 만료되지 않는다."""
        return self.running and self.remaining(now) <= 0

    def alert_level(self, now: Optional[float] = None) -> Optional[int]:
        """남은 시간이 걸린 가장 작은 경고 구간(분). 해당 없으면 None."""
        remaining = self.remaining(now)
        level = None
        for threshold in ALERT_THRESHOLDS_SECONDS:
            if remaining <= threshold:
                level = threshold // 60
        return level


def format_clock(seconds: float) -> str:
    """5400 → '01:30:00'."""
    total = int(max(0, seconds))
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
