"""Extraction of agent questions from AskUserQuestion tool input."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from cowork.bridge.messages import QuestionOption, parse_question_options


@dataclass
class AskedQuestion:
    question: str
    header: str = ""
    options: list[QuestionOption] = field(default_factory=list)
    multi_select: bool = False


def _one(raw: dict[str, Any]) -> AskedQuestion | None:
    text = str(raw.get("question", "")).strip()
    if not text:
        return None
    return AskedQuestion(
        question=text,
        header=str(raw.get("header", "") or ""),
        options=parse_question_options(raw.get("options", [])),
        multi_select=bool(raw.get("multiSelect", False)),
    )


def extract_questions(tool_input: Any) -> list[AskedQuestion]:
    """Return every question in *tool_input*.

    Handles the SDK's format::

        {questions: [{question, header, options: [{label, description}], multiSelect}]}

    and the simpler ``{question: "...", options: [...]}``.
    """
    if not isinstance(tool_input, dict):
        return []

    questions = tool_input.get("questions")
    if isinstance(questions, list):
        asked = [_one(q) for q in questions if isinstance(q, dict)]
        return [q for q in asked if q is not None]

    single = _one(tool_input)
    return [single] if single is not None else []


def format_answer(values: list[str]) -> str:
    return ", ".join(values)


def with_answers(tool_input: dict[str, Any], answers: dict[str, str]) -> dict[str, Any]:
    """Copy of *tool_input* carrying the user's answers keyed by question."""
    return {**tool_input, "answers": dict(answers)}
