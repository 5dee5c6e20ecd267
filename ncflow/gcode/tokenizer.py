"""
G-code tokenizer

Lexes one program block into address words. Comments, block numbers and
tape markers are stripped; the original numeric spelling of every word is
kept so a block can be re-emitted without reformatting its numbers.
"""

import logging
import re
from collections.abc import Iterator
from dataclasses import dataclass, replace

from ncflow.config import TRACE

logger = logging.getLogger(__name__)

# Regex patterns for lexing
COMMENT_PATTERN = re.compile(r"\((.*?)\)|;(.*)$")
BLOCK_NUMBER_PATTERN = re.compile(r"^\s*N(\d+)", re.IGNORECASE)
WORD_PATTERN = re.compile(r"([A-Z])\s*([+-]?(?:\d+\.?\d*|\.\d+))", re.IGNORECASE)
# Fanuc chamfer/corner-radius words (",C1" / ",R0.5") attach to the block, not to R
CORNER_PATTERN = re.compile(r",\s*([RC])\s*([+-]?(?:\d+\.?\d*|\.\d+))", re.IGNORECASE)

RECOGNIZED_LETTERS = frozenset("GMXYZIJKRQPFSTDHWLA")
AXIS_LETTERS = ("X", "Y", "Z")

# Motion-class codes in dominance order
ARC_CODES = ("G2", "G3")
LINEAR_CODES = ("G1", "G0")
CYCLE_CODES = ("G73", "G76", "G81", "G82", "G83", "G84", "G85", "G86", "G87", "G88", "G89")
SHAPE_CODES = ("G12", "G13", "G13.1", "G13.2", "G13.3")
DWELL_CODES = ("G4",)

MOTION_PRIORITY = (ARC_CODES, LINEAR_CODES, CYCLE_CODES, SHAPE_CODES, DWELL_CODES)


def format_code(letter: str, value: float) -> str:
    """Canonical spelling of a code word: G00 -> G0, G13.10 -> G13.1."""
    if float(value).is_integer():
        return f"{letter}{int(value)}"
    return f"{letter}{value:g}"


@dataclass(frozen=True)
class Word:
    """One address word, e.g. ``X-10.5``."""

    letter: str
    value: float
    text: str  # numeric part as written

    @property
    def code(self) -> str:
        return format_code(self.letter, self.value)

    def render(self) -> str:
        return f"{self.letter}{self.text}"


@dataclass(frozen=True)
class ProgramLine:
    """A tokenized program block"""

    raw: str
    line_number: int
    words: tuple[Word, ...]
    comment: str | None = None
    block_number: int | None = None
    corner: str | None = None  # e.g. ",R0.5"

    def value(self, letter: str) -> float | None:
        """First occurrence of ``letter`` on the block; later repeats are ignored."""
        for word in self.words:
            if word.letter == letter:
                return word.value
        return None

    def has(self, *letters: str) -> bool:
        return any(word.letter in letters for word in self.words)

    def codes(self, letter: str = "G") -> tuple[str, ...]:
        """Every code word of ``letter`` in block order (G and M may repeat)."""
        return tuple(word.code for word in self.words if word.letter == letter)

    @property
    def letters(self) -> frozenset[str]:
        return frozenset(word.letter for word in self.words)

    @property
    def axis_words(self) -> dict[str, float]:
        found: dict[str, float] = {}
        for word in self.words:
            if word.letter in AXIS_LETTERS and word.letter not in found:
                found[word.letter] = word.value
        return found

    def dominant_code(self) -> str | None:
        """
        Motion-class code that decides how the block moves.

        Priority is Arc > Linear > Cycle > Shape > Dwell; within Linear a
        feed move wins over a rapid. Returns None for modal-only blocks.
        """
        present = set(self.codes("G"))
        for group in MOTION_PRIORITY:
            for code in group:
                if code in present:
                    return code
        return None

    def without(self, *codes_or_letters: str) -> "ProgramLine":
        """Copy of the block with matching words dropped (by letter or code)."""
        kept = tuple(
            w for w in self.words if w.letter not in codes_or_letters and w.code not in codes_or_letters
        )
        return replace(self, words=kept)

    def with_words(self, words: tuple[Word, ...]) -> "ProgramLine":
        return replace(self, words=words)

    def render(self, include_comment: bool = True) -> str:
        parts = []
        if self.block_number is not None:
            parts.append(f"N{self.block_number}")
        parts.extend(word.render() for word in self.words)
        if self.corner:
            parts.append(self.corner)
        result = " ".join(parts)
        if include_comment and self.comment:
            result = f"{result} ; {self.comment}" if result else f"; {self.comment}"
        return result


def split_comment(line: str) -> tuple[str, str | None]:
    """Separate the code part of a block from its comment text."""
    comments = []
    for match in COMMENT_PATTERN.finditer(line):
        text = match.group(1) if match.group(1) is not None else match.group(2)
        if text and text.strip():
            comments.append(text.strip())
    code = COMMENT_PATTERN.sub(" ", line)
    return code, (" ".join(comments) if comments else None)


def map_code_text(line: str, func) -> str:
    """Apply ``func`` to the code segments of a block, leaving comments untouched."""
    parts = []
    last = 0
    for match in COMMENT_PATTERN.finditer(line):
        parts.append(func(line[last : match.start()]))
        parts.append(match.group(0))
        last = match.end()
    parts.append(func(line[last:]))
    return "".join(parts)


def tokenize(line: str, line_number: int = 1) -> ProgramLine | None:
    """
    Tokenize a single block.

    Args:
        line: Raw program text for one block
        line_number: 1-based position of the block in the program

    Returns:
        ProgramLine, or None when the block is blank, comment-only or a
        ``%`` tape marker.
    """
    raw = line.rstrip("\r\n")
    code, comment = split_comment(raw)
    code = code.strip()
    if not code or code == "%":
        return None

    block_number = None
    block_match = BLOCK_NUMBER_PATTERN.match(code)
    if block_match:
        block_number = int(block_match.group(1))
        code = code[block_match.end() :]

    corner = None
    corner_match = CORNER_PATTERN.search(code)
    if corner_match:
        corner = f",{corner_match.group(1).upper()}{corner_match.group(2)}"
        code = code[: corner_match.start()] + " " + code[corner_match.end() :]

    words: list[Word] = []
    for match in WORD_PATTERN.finditer(code.upper()):
        letter = match.group(1)
        if letter not in RECOGNIZED_LETTERS:
            logger.debug(f"Line {line_number}: ignoring address letter {letter}")
            continue
        text = match.group(2)
        words.append(Word(letter, float(text), text))

    token = ProgramLine(
        raw=raw,
        line_number=line_number,
        words=tuple(words),
        comment=comment,
        block_number=block_number,
        corner=corner,
    )
    logger.log(TRACE, f"Line {line_number}: {[w.render() for w in token.words]}")
    return token


def tokenize_program(text: str) -> Iterator[ProgramLine]:
    """Lazily tokenize every block of a program, skipping blank/comment-only lines."""
    for index, line in enumerate(text.splitlines(), start=1):
        token = tokenize(line, index)
        if token is not None:
            yield token
