"""
services/bank_importer.py

문제은행 가져오기 서비스.
Public API:
  - parse_mcq_pdf(file_bytes, client) -> List[MCQQuestion]  : 객관식 PDF 파싱 (텍스트 우선, 스캔본은 비전)
  - parse_essay_csv(text) -> List[EssayQuestion]            : 에세이 CSV 파싱
  - import_mcqs(data_client, questions) -> int              : mcq_questions 테이블에 삽입
  - import_essays(data_client, essays) -> int               : essay_questions 테이블에 삽입

설계 원칙:
- 텍스트가 충분한 PDF는 페이지 텍스트 그룹으로 LLM 파싱 (토큰 절약)
- 페이지당 텍스트가 MIN_CHARS_PER_PAGE 미만이면 스캔본으로 보고 이미지 → 비전 파싱
- 그룹 단위 병렬 호출, 실패한 그룹만 스킵
"""

import base64
import csv
import io
import logging
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, List, Optional, Tuple

import fitz  # PyMuPDF
from openai import OpenAI

from config import MAX_PDF_PAGES, MIN_CHARS_PER_PAGE, PAGES_PER_GROUP, TEXT_PAGES_PER_GROUP, VISION_DPI
from cma_mock_cbt.errors import DataClientError
from cma_mock_cbt.models.question_model import EssayQuestion, MCQQuestion
from cma_mock_cbt.services.payloads import (
    decode_essay,
    decode_generated_mcq,
    encode_essay_row,
    encode_mcq_row,
)
from cma_mock_cbt.services.question_generator import call_openai, parse_json_items
from cma_mock_cbt.services.question_source import ESSAY_TABLE, MCQ_TABLE

logger = logging.getLogger(__name__)

_MAX_WORKERS = 3             # 병렬 API 호출 수 (비전은 토큰 소모가 크므로 축소)
_INSERT_BATCH = 50


# ══════════════════════════════════════════════════════════════════════════════
# 객관식 PDF
# ══════════════════════════════════════════════════════════════════════════════

def parse_mcq_pdf(file_bytes: bytes, client: Optional[OpenAI], part: str = "Part 1") -> List[MCQQuestion]:
    """
    PDF 바이트 → MCQQuestion 리스트 (source=real).
    정답이 인쇄되어 있지 않은 문제는 채점할 수 없으므로 제외된다.

    Raises:
        ValueError:   빈 파일 / 열 수 없는 PDF / 페이지 수 초과
        RuntimeError: LLM 클라이언트 없음
    """
    if not file_bytes:
        raise ValueError("PDF 파일이 비어 있습니다.")
    if client is None:
        raise RuntimeError("OpenAI API 키가 설정되지 않았습니다.")

    try:
        doc = fitz.open(stream=file_bytes, filetype="pdf")
    except Exception as e:
        logger.error(f"parse_mcq_pdf: PDF 열기 실패 - {e}")
        raise ValueError("PDF 파일을 열 수 없습니다.") from e

    try:
        if len(doc) > MAX_PDF_PAGES:
            raise ValueError(
                f"PDF 페이지가 너무 많습니다 ({len(doc)}페이지). 최대 {MAX_PDF_PAGES}페이지까지 지원합니다."
            )

        texts = [doc.load_page(i).get_text() for i in range(len(doc))]
        avg_chars = sum(len(t.strip()) for t in texts) / max(len(texts), 1)

        if avg_chars >= MIN_CHARS_PER_PAGE:
            logger.info(f"parse_mcq_pdf: 텍스트 PDF ({len(doc)}페이지, 평균 {avg_chars:.0f}자)")
            groups = _group_pages([(i + 1, t) for i, t in enumerate(texts)], TEXT_PAGES_PER_GROUP)
            worker = _extract_from_text
        else:
            logger.info(f"parse_mcq_pdf: 스캔 PDF로 판단 → 비전 파싱 ({len(doc)}페이지)")
            images = []
            for i in range(len(doc)):
                png_bytes = doc.load_page(i).get_pixmap(dpi=VISION_DPI).tobytes("png")
                images.append((i + 1, base64.b64encode(png_bytes).decode("ascii")))
            groups = _group_pages(images, PAGES_PER_GROUP)
            worker = _extract_from_images
    finally:
        doc.close()

    results: Dict[int, List[dict]] = {}
    with ThreadPoolExecutor(max_workers=_MAX_WORKERS) as executor:
        future_map = {executor.submit(worker, group, client): idx for idx, group in enumerate(groups)}
        for future in as_completed(future_map):
            idx = future_map[future]
            try:
                results[idx] = future.result()
            except Exception as e:
                logger.error(f"그룹 {idx} 처리 실패: {e}")
                results[idx] = []

    questions: List[MCQQuestion] = []
    for idx in sorted(results):
        for item in results[idx]:
            q = decode_generated_mcq(item, f"bank-{uuid.uuid4().hex[:12]}", part)
            if q is not None:
                questions.append(q.model_copy(update={"source": "real"}))

    logger.info(f"parse_mcq_pdf: {len(groups)}그룹 → 총 {len(questions)}개 문제 추출")
    return questions


def _group_pages(pages: List[Tuple[int, str]], size: int) -> List[List[Tuple[int, str]]]:
    return [pages[i:i + size] for i in range(0, len(pages), size)]


def _extract_from_text(group: List[Tuple[int, str]], client: OpenAI) -> List[dict]:
    page_nums = [p[0] for p in group]
    body = "\n".join(f"[PAGE {n}]\n{text}" for n, text in group)
    raw = call_openai(_EXTRACTION_PROMPT, body, client)
    items = parse_json_items(raw, "questions")
    logger.info(f"텍스트 파싱: 페이지 {page_nums} → {len(items)}개")
    return items


def _extract_from_images(group: List[Tuple[int, str]], client: OpenAI) -> List[dict]:
    page_nums = [p[0] for p in group]
    user_content: list = [
        {"type": "text", "text": f"Exam pages {page_nums}. Extract every multiple-choice question."}
    ]
    for _, b64_img in group:
        user_content.append({
            "type": "image_url",
            "image_url": {"url": f"data:image/png;base64,{b64_img}", "detail": "high"},
        })
    items = parse_json_items(call_openai(_EXTRACTION_PROMPT, user_content, client), "questions")
    if not items:
        # 재시도
        items = parse_json_items(
            call_openai(_EXTRACTION_PROMPT + "\n\nReturn a valid JSON object only.", user_content, client),
            "questions",
        )
    logger.info(f"비전 파싱: 페이지 {page_nums} → {len(items)}개")
    return items


_EXTRACTION_PROMPT = (
    "You extract CMA exam multiple-choice questions from exam pages.\n"
    "\n"
    "[Output format]\n"
    'Respond with a JSON object only: {"questions": [...]}. No markdown.\n'
    "\n"
    "[Fields of each question]\n"
    "{\n"
    '  "question_text": (str) the stem, including any scenario or table it depends on,\n'
    '  "options": (list[str]) exactly four options, without the "a." / "A)" prefixes,\n'
    '  "correct_answer": (str) "A".."D" if the page states it, otherwise "",\n'
    '  "explanation": (str) explanation if printed, otherwise "",\n'
    '  "section": (str) CMA content area if identifiable, otherwise "General"\n'
    "}\n"
    "\n"
    "[Rules]\n"
    '1. If there are no questions return {"questions": []}.\n'
    "2. Skip questions that do not have exactly four options.\n"
    "3. Keep numbers, abbreviations and tables exactly as printed (tables as HTML <table>).\n"
    "4. If several questions share a scenario, copy the scenario into every question_text."
)


# ══════════════════════════════════════════════════════════════════════════════
# 에세이 CSV
# ══════════════════════════════════════════════════════════════════════════════

def _normalize_header(header: str) -> str:
    key = header.strip().lstrip("\ufeff").lower()
    return "".join(ch if ch.isalnum() or ch == "_" else "_" for ch in key)


def normalize_bank_part(value: str) -> str:
    """'Part1' / 'part 1' / '1' → 'Part 1'. 인식 못 하면 'Additional'."""
    if value and "1" in value:
        return "Part 1"
    if value and "2" in value:
        return "Part 2"
    return "Additional"


def parse_essay_csv(text: str) -> List[EssayQuestion]:
    """
    에세이 CSV → EssayQuestion 리스트.
    시나리오나 과제가 비어 있는 행은 건너뛴다.
    """
    content = text.lstrip("\ufeff")
    lines = content.splitlines()
    while lines and not lines[0].strip():
        lines.pop(0)
    if not lines:
        logger.warning("parse_essay_csv: 내용 없음")
        return []

    reader = csv.DictReader(io.StringIO("\n".join(lines)))
    if reader.fieldnames is None:
        return []
    reader.fieldnames = [_normalize_header(h) for h in reader.fieldnames]

    essays: List[EssayQuestion] = []
    skipped = 0
    for idx, raw in enumerate(reader):
        row = {k: (v or "").strip() for k, v in raw.items() if k}
        scenario = row.get("scenario") or row.get("scenario_description") or ""
        tasks = row.get("tasks") or row.get("requirements") or ""
        if not scenario or not tasks:
            skipped += 1
            continue
        essay = decode_essay(
            {
                "id": row.get("id") or f"essay-{idx}-{uuid.uuid4().hex[:9]}",
                "scenario_text": scenario,
                "requirements": tasks,
                "guidance": row.get("answer_guidance") or row.get("answer_summary") or None,
                "part": normalize_bank_part(row.get("part") or row.get("exam_part") or ""),
                "topic": row.get("topic") or row.get("topic_area") or "General",
            }
        )
        if essay is None:
            skipped += 1
            continue
        essays.append(essay)

    logger.info(f"parse_essay_csv: {len(essays)}개 유효, {skipped}개 건너뜀")
    return essays


# ══════════════════════════════════════════════════════════════════════════════
# 저장
# ══════════════════════════════════════════════════════════════════════════════

def _insert_batches(data_client, table: str, rows: List[dict]) -> int:
    inserted = 0
    for i in range(0, len(rows), _INSERT_BATCH):
        batch = rows[i:i + _INSERT_BATCH]
        try:
            inserted += data_client.insert_many(table, batch)
        except DataClientError as e:
            logger.error(f"{table} 배치 삽입 실패 ({i}~{i + len(batch)}): {e}")
    logger.info(f"{table}: {inserted}/{len(rows)}개 삽입")
    return inserted


def import_mcqs(data_client, questions: List[MCQQuestion]) -> int:
    return _insert_batches(data_client, MCQ_TABLE, [encode_mcq_row(q) for q in questions])


def import_essays(data_client, essays: List[EssayQuestion]) -> int:
    return _insert_batches(data_client, ESSAY_TABLE, [encode_essay_row(e) for e in essays])
