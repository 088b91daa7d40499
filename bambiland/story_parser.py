"""
Parse the default story markdown into numbered chapters.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

NUMBER_WORDS = {
    "One": 1,
    "Two": 2,
    "Three": 3,
    "Four": 4,
    "Five": 5,
    "Six": 6,
    "Seven": 7,
    "Eight": 8,
    "Nine": 9,
    "Ten": 10,
}

# Chapters are delimited by a rose or heart emoji, or the end of the text.
_CHAPTER_RE = re.compile(
    r"Chapter\s+(One|Two|Three|Four|Five|Six|Seven|Eight|Nine|Ten):\s*"
    r"([^\U0001F339\U0001F497]+?)(?:[\U0001F339\U0001F497]|$)",
    re.IGNORECASE,
)
_TITLE_RE = re.compile(r"^([^.!?]*[.!?]?)")


@dataclass
class ParsedChapter:
    number: int
    title: str
    content: str


def chapter_number(word: str) -> int:
    return NUMBER_WORDS.get(word.capitalize(), 1)


def parse_story(text: str) -> list[ParsedChapter]:
    """
    Split story text into chapters. The first sentence of each block becomes
    the title ("Chapter N: <sentence>"), the remainder the content.
    """
    chapters = []
    for match in _CHAPTER_RE.finditer(text):
        number = chapter_number(match.group(1))
        full_text = match.group(2).strip()
        title_match = _TITLE_RE.match(full_text)
        sentence = title_match.group(1) if title_match else ""
        title = f"Chapter {number}: {sentence.strip()}"
        content = full_text[len(sentence):].strip()
        chapters.append(ParsedChapter(number=number, title=title, content=content))
    return chapters


def parse_story_file(path: str) -> list[ParsedChapter]:
    """Parse a story file, returning an empty list when it cannot be read."""
    try:
        text = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        logger.warning("Story file %s could not be read", path)
        return []
    return parse_story(text)
