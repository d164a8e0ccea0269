"""
Dockerfile Editor
=================
Line-level helpers for locating and inserting Dockerfile instructions.

Only what the fix actions need:
    - split text into instructions (continuation lines joined, comments skipped)
    - find instructions by keyword
    - insert new lines before/after an instruction
    - read the base image of a FROM instruction

Deterministic and pure: every function returns new text, never edits in place.
"""
import re
from dataclasses import dataclass
from typing import List, Optional

_INSTRUCTION_RE = re.compile(r"^\s*([A-Za-z]+)\b")
_FROM_RE = re.compile(
    r"^\s*FROM\s+(?:--platform=\S+\s+)?(?P<image>\S+)(?:\s+AS\s+(?P<stage>\S+))?",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class Instruction:
    """One Dockerfile instruction spanning lines[start:end]."""
    keyword: str
    start: int
    end: int
    text: str


def split_lines(text: str) -> List[str]:
    return text.replace("\r\n", "\n").split("\n")


def join_lines(lines: List[str]) -> str:
    return "\n".join(lines)


def parse_instructions(text: str) -> List[Instruction]:
    """
    Split a Dockerfile into instructions.

    Comment and blank lines between instructions are skipped. A line ending
    in a backslash continues onto the next line.
    """
    lines = split_lines(text)
    instructions: List[Instruction] = []
    i = 0
    while i < len(lines):
        line = lines[i]
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            i += 1
            continue

        start = i
        while lines[i].rstrip().endswith("\\") and i + 1 < len(lines):
            i += 1
        end = i + 1

        match = _INSTRUCTION_RE.match(line)
        keyword = match.group(1).upper() if match else ""
        instructions.append(Instruction(
            keyword=keyword,
            start=start,
            end=end,
            text="\n".join(lines[start:end]),
        ))
        i = end
    return instructions


def find_instructions(text: str, keyword: str) -> List[Instruction]:
    keyword = keyword.upper()
    return [ins for ins in parse_instructions(text) if ins.keyword == keyword]


def first_stage(text: str) -> List[Instruction]:
    """Instructions of the first build stage (first FROM up to the next FROM)."""
    stage: List[Instruction] = []
    for ins in parse_instructions(text):
        if ins.keyword == "FROM":
            if stage:
                break
        if stage or ins.keyword == "FROM":
            stage.append(ins)
    return stage


def insert_after(text: str, instruction: Instruction, new_lines: List[str]) -> str:
    lines = split_lines(text)
    return join_lines(lines[:instruction.end] + new_lines + lines[instruction.end:])


def insert_before(text: str, instruction: Instruction, new_lines: List[str]) -> str:
    lines = split_lines(text)
    return join_lines(lines[:instruction.start] + new_lines + lines[instruction.start:])


def replace_instruction(text: str, instruction: Instruction, new_lines: List[str]) -> str:
    lines = split_lines(text)
    return join_lines(lines[:instruction.start] + new_lines + lines[instruction.end:])


def base_image(instruction: Instruction) -> Optional[str]:
    """Return the image reference of a FROM instruction."""
    match = _FROM_RE.match(instruction.text)
    return match.group("image") if match else None


def is_alpine(image: Optional[str]) -> bool:
    return bool(image) and "alpine" in image.lower()
