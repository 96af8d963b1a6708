"""Question files: markdown body plus optional YAML frontmatter."""

from dataclasses import dataclass, field
from pathlib import Path

import frontmatter

from quorum.errors import InvalidInput


@dataclass
class QuestionFile:
    question: str
    source: str
    rounds: int | None = None
    experts: list[str] | None = None
    mode: str | None = None
    background: str = ""
    constraints: list[str] = field(default_factory=list)
    confirm: list[str] = field(default_factory=list)
    answers: dict[str, str | list[str]] = field(default_factory=dict)


def _as_list(value: object) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    return [str(v).strip() for v in value if str(v).strip()]


def _as_answers(value: object) -> dict[str, str | list[str]]:
    if not isinstance(value, dict):
        return {}
    answers: dict[str, str | list[str]] = {}
    for key, answer in value.items():
        answers[str(key)] = [str(a) for a in answer] if isinstance(answer, list) else str(answer)
    return answers


def parse_question_file(file_path: Path) -> QuestionFile:
    """Parse a markdown question file.

    Recognized frontmatter keys: rounds (int), experts (list or comma string),
    mode, background, constraints (list or comma string), confirm (readiness
    assumption ids) and answers (mapping of readiness question id to answer).
    Unknown keys are ignored.

    Raises:
        InvalidInput: The body is empty.
    """
    post = frontmatter.load(str(file_path))
    question = post.content.strip()
    if not question:
        raise InvalidInput(f"No question text in {file_path}")
    meta = dict(post.metadata)
    experts = _as_list(meta.get("experts"))
    return QuestionFile(
        question=question,
        source=str(file_path),
        rounds=int(meta["rounds"]) if "rounds" in meta else None,
        experts=experts or None,
        mode=str(meta["mode"]) if "mode" in meta else None,
        background=str(meta.get("background", "")).strip(),
        constraints=_as_list(meta.get("constraints")),
        confirm=_as_list(meta.get("confirm")),
        answers=_as_answers(meta.get("answers")),
    )
