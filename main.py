"""
main.py — CMA 모의고사 실행기

  1) FastAPI 서버 (JSON API + 섹션 타이머 루프) 를 데몬 스레드로 띄운다
  2) Streamlit 화면 (cma_mock_cbt/app.py) 을 하위 프로세스로 띄운다
  3) 둘 다 응답하면 브라우저로 Streamlit 화면을 연다

환경 변수:
  NO_UI=1       API 서버만 실행
  NO_BROWSER=1  브라우저를 열지 않음
"""

import logging
import os
import socket
import subprocess
import sys
import threading
import time
import webbrowser
from typing import Optional

_BASE_DIR = os.path.dirname(os.path.abspath(__file__))
if _BASE_DIR not in sys.path:
    sys.path.insert(0, _BASE_DIR)

from config import BASE_DIR, DEFAULT_HOST, DEFAULT_PORT, LOG_FILE, UI_PORT

UI_SCRIPT = os.path.join(BASE_DIR, "cma_mock_cbt", "app.py")

logger = logging.getLogger("cma_mock_cbt.launcher")


def _configure_logging() -> None:
    handlers = [logging.StreamHandler(sys.stdout)]
    try:
        handlers.append(logging.FileHandler(LOG_FILE, encoding="utf-8"))
    except OSError as e:
        # 로그 파일 점유/읽기 전용 경로 → 콘솔만
        print(f"로그 파일을 열 수 없습니다 ({e}). 콘솔에만 기록합니다.", file=sys.stderr)
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )


def _available_port(preferred: int) -> int:
    """preferred 포트가 비어 있으면 그대로, 아니면 OS가 주는 빈 포트."""
    for candidate in (preferred, 0):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            try:
                s.bind((DEFAULT_HOST, candidate))
            except OSError:
                continue
            return s.getsockname()[1]
    raise RuntimeError("사용 가능한 포트가 없습니다.")


def _port_ready(port: int, timeout: float = 15.0) -> bool:
    deadline = time.time() + timeout
    while time.time() < deadline:
        try:
            with socket.create_connection((DEFAULT_HOST, port), timeout=0.5):
                return True
        except OSError:
            time.sleep(0.2)
    return False


def _serve_api(port: int) -> None:
    import uvicorn
    from api.app import create_app

    logger.info(f"API 서버 시작 - http://{DEFAULT_HOST}:{port}")
    try:
        uvicorn.run(create_app(), host=DEFAULT_HOST, port=port, log_level="warning")
    except Exception:
        logger.exception("API 서버 오류")


def _launch_ui(port: int) -> subprocess.Popen:
    cmd = [
        sys.executable, "-m", "streamlit", "run", UI_SCRIPT,
        "--server.port", str(port),
        "--server.address", DEFAULT_HOST,
        "--server.headless", "true",
        "--browser.gatherUsageStats", "false",
    ]
    logger.info(f"Streamlit 화면 시작 - http://{DEFAULT_HOST}:{port}")
    return subprocess.Popen(cmd, cwd=BASE_DIR)


def main() -> int:
    _configure_logging()
    logger.info("=== CMA Mock CBT ===")
    os.chdir(BASE_DIR)

    api_port = _available_port(DEFAULT_PORT)
    threading.Thread(target=_serve_api, args=(api_port,), daemon=True, name="api-server").start()
    if not _port_ready(api_port):
        logger.error("API 서버 시작 제한 시간을 초과했습니다.")
        return 1

    ui: Optional[subprocess.Popen] = None
    url = f"http://{DEFAULT_HOST}:{api_port}/api/exams"
    if not os.getenv("NO_UI"):
        ui_port = _available_port(UI_PORT)
        ui = _launch_ui(ui_port)
        if not _port_ready(ui_port, timeout=30.0):
            logger.error("Streamlit 시작 제한 시간을 초과했습니다.")
            ui.terminate()
            return 1
        url = f"http://{DEFAULT_HOST}:{ui_port}"

    logger.info(f"준비 완료: {url}")
    if not os.getenv("NO_BROWSER"):
        webbrowser.open(url)

    try:
        while ui is None or ui.poll() is None:
            time.sleep(1)
        logger.info(f"Streamlit 프로세스 종료 (code={ui.returncode})")
    except KeyboardInterrupt:
        logger.info("사용자에 의해 종료되었습니다.")
    finally:
        if ui is not None and ui.poll() is None:
            ui.terminate()
            ui.wait(timeout=10)
    return 0


if __name__ == "__main__":
    sys.exit(main())
