import os

# 기본 디렉토리 설정
BASE_DIR = os.path.dirname(os.path.abspath(__file__))

# 경로 설정
LOG_FILE = os.path.join(BASE_DIR, "launch.log")

# 서버 설정
DEFAULT_HOST = os.getenv("HOST", "127.0.0.1")
DEFAULT_PORT = int(os.getenv("PORT", "8000"))
UI_PORT = int(os.getenv("UI_PORT", "8501"))       # Streamlit 화면

# 세션 설정
SESSION_TTL = int(os.getenv("SESSION_TTL", "14400"))     # 4시간 (풀 시뮬레이션 4시간 + 여유)
TIMER_TICK_SECONDS = float(os.getenv("TIMER_TICK_SECONDS", "1.0"))
CLEANUP_INTERVAL_SECONDS = 300

# 데이터 백엔드 (PostgREST / Supabase REST). 비어 있으면 인메모리 저장소 사용
DATA_API_URL = os.getenv("DATA_API_URL", "")
DATA_API_KEY = os.getenv("DATA_API_KEY", "")
DATA_API_TIMEOUT = float(os.getenv("DATA_API_TIMEOUT", "10"))
SAVE_WORKERS = 1      # 세션별 쓰기 순서 보장 (FIFO)

# OpenAI 설정
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
MODEL_NAME = os.getenv("MODEL_NAME", "gpt-4o-mini")
MAX_GENERATED_PER_EXAM = 30  # 시험 1회당 LLM으로 새로 만들 최대 문항 수

# PDF 파싱 설정 (문제은행 가져오기)
MAX_PDF_PAGES = 200
VISION_DPI = 200        # 페이지 이미지 해상도
PAGES_PER_GROUP = 3     # 비전 API 호출당 페이지 수
MIN_CHARS_PER_PAGE = 100    # 페이지당 최소 문자 수 (이하이면 스캔 PDF로 판단 → 비전 폴백)
TEXT_PAGES_PER_GROUP = 5    # 텍스트 파싱 시 그룹당 페이지 수 (비전보다 넉넉)
