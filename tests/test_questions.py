from __future__ import annotations

from cowork.agent.prompts import build_system_prompt
from cowork.agent.questions import extract_questions, format_answer, with_answers


def test_extract_questions_from_sdk_format() -> None:
    asked = extract_questions({
        "questions": [
            {
                "question": "Which format?",
                "header": "Format",
                "options": [{"label": "PDF", "description": "Portable"}, {"label": "DOCX"}],
                "multiSelect": True,
            },
            {"question": "   "},
            "not a dict",
            {"question": "Due date?"},
        ],
    })

    assert [q.question for q in asked] == ["Which format?", "Due date?"]
    assert asked[0].header == "Format"
    assert asked[0].multi_select is True
    assert [(o.label, o.value, o.description) for o in asked[0].options] == [
        ("PDF", "PDF", "Portable"),
        ("DOCX", "DOCX", None),
    ]
    assert asked[1].options == []
    assert asked[1].multi_select is False


def test_extract_questions_from_simple_format() -> None:
    [asked] = extract_questions({"question": "Proceed?", "options": ["Yes", "No"]})
    assert asked.question == "Proceed?"
    assert [o.value for o in asked.options] == ["Yes", "No"]


def test_extract_questions_ignores_unusable_input() -> None:
    assert extract_questions(None) == []
    assert extract_questions({}) == []
    assert extract_questions({"questions": []}) == []


def test_answers_are_joined_and_attached() -> None:
    tool_input = {"questions": [{"question": "Which format?"}]}
    assert format_answer(["PDF", "DOCX"]) == "PDF, DOCX"
    assert format_answer([]) == ""

    updated = with_answers(tool_input, {"Which format?": "PDF"})
    assert updated["answers"] == {"Which format?": "PDF"}
    assert updated["questions"] == tool_input["questions"]
    assert "answers" not in tool_input


def test_system_prompt_includes_workspace_and_instructions() -> None:
    prompt = build_system_prompt("/home/me/work")
    assert prompt.startswith("You are Cowork")
    assert "Current workspace: /home/me/work" in prompt
    assert "Additional Instructions" not in prompt

    extended = build_system_prompt("/w", "  Prefer bullet points.  ")
    assert extended.endswith("\n\nAdditional Instructions:\nPrefer bullet points.")
    assert build_system_prompt("/w", "   ") == build_system_prompt("/w")
