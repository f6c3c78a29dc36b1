"""
api/routes.py — FastAPI 엔드포인트

도메인 예외 → HTTP 상태 코드:
  InvalidExamConfigError 400 / 세션 없음 404 / ExamPhaseError 409 /
  UnknownQuestionError 404 / 입력 검증 422 / LLM 미설정·실패 503
"""

import asyncio
from typing import Optional

from fastapi import APIRouter, File, HTTPException, Request, UploadFile
from pydantic import BaseModel, Field

import api.session as session
from cma_mock_cbt.errors import (
    ExamPhaseError,
    InvalidExamConfigError,
    QuestionShortfallError,
    UnknownQuestionError,
)
from cma_mock_cbt.services.bank_importer import import_essays, import_mcqs, parse_essay_csv, parse_mcq_pdf
from cma_mock_cbt.services.exam_catalog import get_config, list_configs
from cma_mock_cbt.services.exam_session import ExamRunner
from cma_mock_cbt.services.factory import ExamServices
from cma_mock_cbt.services.question_generator import make_client

router = APIRouter()

MAX_PDF_SIZE = 50 * 1024 * 1024  # 50 MB
MAX_CSV_SIZE = 5 * 1024 * 1024


# ── Pydantic request bodies ──────────────────────────────────────────────────

class ApiKeyBody(BaseModel):
    api_key: str

class IdentityBody(BaseModel):
    user_id: str = Field(min_length=1)

class AnswerBody(BaseModel):
    question_id: str
    option_index: Optional[int] = None

class FlagBody(BaseModel):
    question_id: str

class NavigateBody(BaseModel):
    index: int = 0

class EssayBody(BaseModel):
    question_id: str
    text: str = ""

class ExplainBody(BaseModel):
    question_id: str


# ── 헬퍼 ─────────────────────────────────────────────────────────────────────

def _sid(request: Request) -> str:
    return request.state.session_id


def _services(request: Request) -> ExamServices:
    return request.app.state.services


def _runner(request: Request) -> ExamRunner:
    runner: Optional[ExamRunner] = session.get(_sid(request), "runner")
    if runner is None or runner.exited:
        raise HTTPException(status_code=404, detail="시험 세션이 없습니다.")
    return runner


def _exam_call(fn, *args):
    """ExamRunner 호출 + 도메인 예외 변환."""
    try:
        return fn(*args)
    except ExamPhaseError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except UnknownQuestionError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


# ── 카탈로그 ─────────────────────────────────────────────────────────────────

@router.get("/api/exams")
async def list_exams():
    return [
        {**c.model_dump(mode="json"), "total_duration_minutes": c.total_duration_minutes}
        for c in list_configs()
    ]


@router.get("/api/exams/{key}")
async def get_exam(key: str):
    try:
        c = get_config(key)
    except InvalidExamConfigError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {**c.model_dump(mode="json"), "total_duration_minutes": c.total_duration_minutes}


# ── 신원 / API 키 ────────────────────────────────────────────────────────────

@router.post("/api/identity")
async def login(body: IdentityBody, request: Request):
    try:
        session.login(_sid(request), body.user_id)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return {"user_id": session.current_user(_sid(request)), "ok": True}


@router.delete("/api/identity")
async def logout(request: Request):
    session.logout(_sid(request))
    return {"user_id": session.current_user(_sid(request)), "ok": True}


@router.post("/api/set-api-key")
async def set_api_key(body: ApiKeyBody, request: Request):
    key = body.api_key.strip()
    if not key:
        raise HTTPException(status_code=400, detail="API 키가 비어 있습니다.")
    if not key.startswith("sk-"):
        raise HTTPException(status_code=400, detail="올바른 OpenAI API 키 형식이 아닙니다 (sk-... 형식).")
    session.put(_sid(request), "api_key", key)
    return {"ok": True}


@router.get("/api/session-status")
async def session_status(request: Request):
    sid = _sid(request)
    runner: Optional[ExamRunner] = session.get(sid, "runner")
    return {
        "user_id": session.current_user(sid),
        "api_key_set": bool(session.get(sid, "api_key") or _services(request).default_api_key),
        "exam_active": runner is not None and not runner.exited,
    }


# ── 시험 준비 / 튜토리얼 ─────────────────────────────────────────────────────

@router.post("/api/exams/{key}/prepare")
async def prepare(key: str, request: Request):
    sid = _sid(request)
    services = _services(request)
    try:
        runner = await asyncio.to_thread(
            services.prepare, key, session.current_user(sid), session.get(sid, "api_key", "")
        )
    except InvalidExamConfigError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except QuestionShortfallError as e:
        raise HTTPException(status_code=503, detail=f"문제를 준비하지 못했습니다: {e}")
    session.replace_runner(sid, runner)
    return {"state": runner.state(), "page": runner.intro_page().model_dump()}


@router.get("/api/intro")
async def intro(request: Request):
    runner = _runner(request)
    return {"page": _exam_call(runner.intro_page).model_dump(), "progress": runner.tutorial.progress}


@router.post("/api/intro/next")
async def intro_next(request: Request):
    runner = _runner(request)
    started = _exam_call(runner.tutorial_next)
    if started:
        return {"started": True, "state": runner.state()}
    return {"started": False, "page": runner.intro_page().model_dump(), "progress": runner.tutorial.progress}


@router.post("/api/intro/back")
async def intro_back(request: Request):
    runner = _runner(request)
    _exam_call(runner.tutorial_back)
    return {"page": runner.intro_page().model_dump(), "progress": runner.tutorial.progress}


# ── 시험 진행 ────────────────────────────────────────────────────────────────

@router.get("/api/exam/state")
async def exam_state(request: Request):
    runner = _runner(request)
    runner.tick()
    return runner.state()


@router.get("/api/exam/question/{index}")
async def get_question(index: int, request: Request):
    runner = _runner(request)
    try:
        return runner.question_view(index)
    except IndexError:
        raise HTTPException(status_code=404, detail="문제를 찾을 수 없습니다.")


@router.post("/api/exam/answer")
async def answer(body: AnswerBody, request: Request):
    runner = _runner(request)
    a = _exam_call(runner.answer_mcq, body.question_id, body.option_index)
    return {"ok": True, "answer": a.model_dump(), "summary": runner.section_summary()}


@router.post("/api/exam/flag")
async def flag(body: FlagBody, request: Request):
    runner = _runner(request)
    a = _exam_call(runner.toggle_flag, body.question_id)
    return {"ok": True, "answer": a.model_dump(), "summary": runner.section_summary()}


@router.post("/api/exam/navigate")
async def navigate(body: NavigateBody, request: Request):
    runner = _runner(request)
    idx = _exam_call(runner.navigate, body.index)
    return {"index": idx, "ok": True}


@router.post("/api/exam/finish-mcq")
async def finish_mcq(request: Request):
    runner = _runner(request)
    changed = _exam_call(runner.finish_mcq)
    return {"changed": changed, "state": runner.state()}


@router.post("/api/exam/essay")
async def save_essay(body: EssayBody, request: Request):
    runner = _runner(request)
    words = _exam_call(runner.answer_essay, body.question_id, body.text)
    return {"ok": True, "words": words}


@router.post("/api/exam/finish-essay")
async def finish_essay(request: Request):
    runner = _runner(request)
    changed = _exam_call(runner.finish_essay)
    return {"changed": changed, "state": runner.state()}


@router.post("/api/exam/exit")
async def exit_exam(request: Request):
    sid = _sid(request)
    runner: Optional[ExamRunner] = session.get(sid, "runner")
    if runner is not None:
        runner.exit()
    session.put(sid, "runner", None)
    return {"ok": True}


@router.get("/api/exam/results")
async def results(request: Request):
    runner = _runner(request)
    return _exam_call(runner.results)


@router.post("/api/exam/explain")
async def explain(body: ExplainBody, request: Request):
    runner = _runner(request)
    if runner.session.mcq_score is None:
        raise HTTPException(status_code=409, detail="해설은 객관식 섹션 종료 후 볼 수 있습니다.")
    question = _exam_call(runner.mcq_by_id, body.question_id)
    generator = _services(request).generator_for(session.get(_sid(request), "api_key", ""))
    if generator is None:
        raise HTTPException(status_code=503, detail="OpenAI API 키가 설정되지 않았습니다.")
    a = runner.session.mcq_answers.get(question.id)
    text = await asyncio.to_thread(generator.explain_mcq, question, a.selected if a else None)
    if not text:
        raise HTTPException(
            status_code=503,
            detail="AI 서비스 오류가 발생했습니다. 잠시 후 다시 시도해 주세요.",
        )
    return {"question_id": question.id, "explanation": text}


# ── 히스토리 ─────────────────────────────────────────────────────────────────

@router.get("/api/history")
async def history(request: Request, limit: int = 10):
    user_id = session.current_user(_sid(request))
    items = await asyncio.to_thread(_services(request).recorder.history, user_id, limit)
    return [i.model_dump(mode="json") for i in items]


# ── 문제은행 가져오기 ────────────────────────────────────────────────────────

@router.post("/api/bank/import-pdf")
async def import_pdf(request: Request, file: UploadFile = File(...), part: str = "Part 1"):
    client = make_client(session.get(_sid(request), "api_key", "") or _services(request).default_api_key)
    if client is None:
        raise HTTPException(status_code=503, detail="OpenAI API 키가 설정되지 않았습니다.")

    file_bytes = await file.read()
    if len(file_bytes) > MAX_PDF_SIZE:
        raise HTTPException(status_code=413, detail="PDF 파일이 너무 큽니다 (최대 50MB).")
    try:
        questions = await asyncio.to_thread(parse_mcq_pdf, file_bytes, client, part)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    if not questions:
        raise HTTPException(status_code=422, detail="문제를 추출하지 못했습니다. PDF 형식을 확인해 주세요.")

    inserted = await asyncio.to_thread(import_mcqs, _services(request).data_client, questions)
    return {"count": len(questions), "inserted": inserted, "ok": True}


@router.post("/api/bank/import-essays")
async def import_essay_csv(request: Request, file: UploadFile = File(...)):
    raw = await file.read()
    if len(raw) > MAX_CSV_SIZE:
        raise HTTPException(status_code=413, detail="CSV 파일이 너무 큽니다 (최대 5MB).")
    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise HTTPException(status_code=422, detail="CSV는 UTF-8 인코딩이어야 합니다.")
    essays = parse_essay_csv(text)
    if not essays:
        raise HTTPException(status_code=422, detail="유효한 에세이 행이 없습니다.")
    inserted = await asyncio.to_thread(import_essays, _services(request).data_client, essays)
    return {"count": len(essays), "inserted": inserted, "ok": True}
