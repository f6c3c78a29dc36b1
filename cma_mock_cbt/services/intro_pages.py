"""
services/intro_pages.py

시험 시작 전 16페이지 튜토리얼 (시험장 온보딩 화면 재현).
Public API:
  - render_page(n, config, mcq_count, essay_count) -> IntroPage
  - TutorialPaginator : 페이지 상태 (Next / Back)

1페이지만 시험 설정(총 시간, 섹션별 문항 수/시간)을 반영하고 나머지는 고정 내용.
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from cma_mock_cbt.models.exam_config import ExamConfig

TOTAL_INTRO_PAGES = 16

_CONTINUE = "Click the 'Next' button to continue."


class IntroPage(BaseModel):
    number: int
    title: str
    heading: str
    paragraphs: List[str] = Field(default_factory=list)
    bullets: List[str] = Field(default_factory=list)
    callout: Optional[str] = None
    is_last: bool = False


def _section_sentences(config: ExamConfig, mcq_count: int, essay_count: int) -> List[str]:
    sentences = []
    number = 0
    if mcq_count > 0:
        number += 1
        sentences.append(
            f"Content Section {number}: This content section contains {mcq_count} multiple-choice "
            f"questions and you have {config.mcq_duration_minutes} minutes to complete this section."
        )
    if essay_count > 0:
        number += 1
        sentences.append(
            f"Content Section {number}: This content section contains {essay_count} essays and related "
            f"questions and you have {config.essay_duration_minutes} minutes to complete this section. "
            "Each essay scenario remains visible next to its related questions until you proceed "
            "to the next essay scenario."
        )
    return sentences


def _page_one(config: ExamConfig, mcq_count: int, essay_count: int) -> IntroPage:
    sections = _section_sentences(config, mcq_count, essay_count)
    total_minutes = config.total_duration_minutes
    paragraphs = [
        f"This CMA Exam Simulation has {len(sections)} content section(s) and you will have "
        f"{total_minutes} minutes to complete the exam.",
        *sections,
        "Please note that the purpose of this Exam Simulation is to give you a sense of the experience "
        "of the exam as it will be in the test center. The simulated exam experience is not indicative "
        "of the breadth and depth of the CMA exam content.",
    ]
    if config.is_gated:
        paragraphs.append(
            f"Challenge Mode: You must answer at least {config.mcq_pass_threshold:g}% of the "
            "multiple-choice questions correctly to continue to the essay section of the exam."
        )
    paragraphs.append(
        "Before you begin, it is strongly recommended that you take a few minutes to review the tutorial "
        "before attempting any exam questions. The tutorial provides an overview of the features "
        "available to you during the examination."
    )
    return IntroPage(
        number=1,
        title="Introduction page 1",
        heading=config.title,
        paragraphs=paragraphs,
        callout='To begin the tutorial, click on the "Next" button at the bottom of the screen.',
    )


# 2~16페이지: (heading, paragraphs, bullets, callout)
_STATIC_PAGES = {
    2: (
        "Welcome to the Tutorial",
        [
            "This tutorial provides a series of screens that orient you to the computer testing "
            "environment. You will be instructed on how to use the mouse and the different parts of the screen.",
            "Notice the timer at the top of the screen. A similar display will appear during the actual exam. "
            "To the left of the screen is a numbered list that shows you where you are in the series of "
            "examination questions (or in this case, screens of the tutorial).",
        ],
        [],
        _CONTINUE,
    ),
    3: (
        "Using the Mouse",
        [
            "The mouse pointer moves when you move the mouse around on a surface. To point with the mouse, "
            "move the pointer until it rests on the desired object. To click on an object, point to it and "
            "then quickly press and release the left mouse button.",
        ],
        [],
        _CONTINUE,
    ),
    4: (
        "Navigating Through the Exam",
        [
            "Click the Next button displayed at the bottom of the screen to move to the next screen or "
            "question. Click the Back button to move to the previous screen or question.",
            "In addition to the navigation buttons, you can use the numbered buttons displayed on the left "
            "side of the screen. The numbered buttons change appearance to indicate different question "
            "states: Current, Attempted, Unattempted, and Flagged.",
        ],
        [
            "The current question will be indicated by an arrow-shaped numbered button.",
            "For all attempted questions, the numbered button will appear darker in color.",
            "For all unattempted questions, the numbered button will remain the original color.",
            "Flagged questions will show a flag icon on the numbered button.",
        ],
        _CONTINUE,
    ),
    5: (
        "Using the Scroll Function",
        [
            "When a question does not fit on a single screen, a warning will appear at the bottom of the "
            "screen: \"This page requires scrolling\".",
            "To scroll through the screen contents, click and drag the scroll bar as necessary or use the "
            "scroll wheel on the mouse.",
        ],
        [],
        _CONTINUE,
    ),
    6: (
        "Time Remaining",
        [
            "The amount of time remaining is displayed at the top of the screen.",
            "Each section of this examination is allocated a specific amount of time. When the time for a "
            "section runs out, the section ends automatically and the answers entered so far are final.",
            "The most important time display for you as a test taker is the \"Section Time Remaining.\"",
            "An alert will appear below the exam clock when 30 minutes, 15 minutes, and 5 minutes remain "
            "in the current section.",
        ],
        [],
        _CONTINUE,
    ),
    7: (
        "Flagging Questions",
        [
            "You can flag a question as a reminder to go back and check your answer or attempt it later.",
            "To flag a question, click the Flag button displayed at the bottom of the exam screen. Any "
            "questions that are flagged for review will show a flag icon on the numbered button. Click the "
            "Flag button again to remove the flag.",
            "Flags are only a reminder; they do not affect your score.",
        ],
        [],
        _CONTINUE,
    ),
    8: (
        "Answering Multiple-Choice Questions",
        [
            "This examination uses multiple-choice questions. This type of question has one correct answer.",
            "To complete each multiple-choice question, click on the option that you believe to be the "
            "single best answer. Once selected, the option will appear darker in color. To change your "
            "response, click on a different option.",
        ],
        [],
        _CONTINUE,
    ),
    9: (
        "Changing Your Answers",
        [
            "You may change your answer to any question at any time during the examination, as long as "
            "time remains in the current section.",
            "To change an answer:",
        ],
        [
            "Navigate back to the question you want to change",
            "Click on a different answer option to select it",
            "Your previous answer will automatically be deselected",
        ],
        "Tip: Use the Section Review feature to quickly identify questions you may want to revisit "
        "before submitting.",
    ),
    10: (
        "Answering Essay Questions",
        [
            "Essay questions require a written analysis or explanation, usually of a specified length. An "
            "essay question contains a scenario, one or more requirements, and an answer box where the "
            "response is to be provided.",
            "Essay responses are saved as you type and are reviewed after the exam; they are not scored "
            "automatically.",
        ],
        [],
        _CONTINUE,
    ),
    11: (
        "Word Processing Features",
        ["The essay response box includes basic word processing features:"],
        [
            "Bold (B) - Make text bold",
            "Italic (I) - Make text italic",
            "Underline (U) - Underline text",
            "Text Alignment - Left, center, or right align",
            "Undo/Redo - Undo or redo recent changes",
        ],
        "Note: Copy and paste functions are disabled during the examination.",
    ),
    12: (
        "Highlighting Text",
        [
            "During the examination, you will be able to highlight question text that you feel is important "
            "to refer back to as you progress through the exam. The highlight will remain present as you "
            "navigate through the exam, unless you select to remove it.",
            "The highlight feature cannot be applied to text within the answer options.",
        ],
        [],
        _CONTINUE,
    ),
    13: (
        "Using the Calculator",
        [
            "A calculator is available during the examination. To access the calculator, click the "
            "calculator icon in the toolbar. The calculator will appear as an overlay on the screen. You can:",
        ],
        [
            "Click and drag the calculator to move it around the screen",
            "Use your mouse to click the calculator buttons",
            "Use your keyboard's number pad for faster input",
            "Click the X button to close the calculator",
        ],
        _CONTINUE,
    ),
    14: (
        "Section Review",
        [
            "During the examination, you can review the status of all questions in the current exam section "
            "using the grid icon located in the bottom left corner of the exam screen.",
            "To navigate directly to a question, click the corresponding numbered icon. You may also filter "
            "your view by unattempted, attempted, and flagged questions.",
        ],
        [],
        _CONTINUE,
    ),
    15: (
        "Finishing the Exam",
        [
            "When you are ready to finish a section of the exam, click the Finish Test button in the upper "
            "right corner of the screen.",
            "Warning: Finishing a section ends it permanently. Any questions that are incomplete will be "
            "marked as incorrect.",
            "Before finishing, you will be shown a summary of your progress:",
        ],
        [
            "Number of questions answered",
            "Number of questions unanswered",
            "Number of flagged questions",
        ],
        _CONTINUE,
    ),
    16: (
        "Tutorial Conclusion",
        [
            "This concludes the tutorial. You can review the tutorial by clicking on the \"Back\" button to "
            "back up one screen at a time.",
            "Good luck with the examination.",
        ],
        [],
        "Click the 'Start the Test' button to exit the tutorial and begin the examination.",
    ),
}


def render_page(page: int, config: ExamConfig, mcq_count: int, essay_count: int) -> IntroPage:
    """
    튜토리얼 페이지 내용을 반환한다.

    Raises:
        ValueError: page가 1..16 범위를 벗어난 경우 (호출자 오류)
    """
    if not 1 <= page <= TOTAL_INTRO_PAGES:
        raise ValueError(f"intro page must be between 1 and {TOTAL_INTRO_PAGES}, got {page}")
    if page == 1:
        return _page_one(config, mcq_count, essay_count)

    heading, paragraphs, bullets, callout = _STATIC_PAGES[page]
    return IntroPage(
        number=page,
        title=f"Introduction page {page}",
        heading=heading,
        paragraphs=list(paragraphs),
        bullets=list(bullets),
        callout=callout,
        is_last=page == TOTAL_INTRO_PAGES,
    )


class TutorialPaginator:
    """
    페이지 번호 상태 머신. 건너뛰기 없음, 세션 간 보존 없음.

    next(): 16페이지에서 호출하면 True("시험 시작")를 반환하고 페이지는 16에 머문다.
    back(): 1페이지 아래로 내려가지 않는다.
    """

    def __init__(self, total_pages: int = TOTAL_INTRO_PAGES):
        self.total_pages = total_pages
        self.page = 1

    @property
    def is_last_page(self) -> bool:
        return self.page >= self.total_pages

    @property
    def progress(self) -> int:
        return round(self.page / self.total_pages * 100)

    def next(self) -> bool:
        if self.is_last_page:
            return True
        self.page += 1
        return False

    def back(self) -> None:
        self.page = max(1, self.page - 1)
