from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable


@dataclass(frozen=True, slots=True)
class PositionedToken:
    """One text fragment of a page, anchored at its baseline origin.

    ``has_eol`` is set when the fragment ends a line whose text continues on
    the next fragment (a cell wrapped onto another line).
    """

    text: str
    x: float
    y: float
    has_eol: bool = False
    height: float = 1.0


def round_coordinate(value: float) -> float:
    return round(float(value), 3)


class PositionedTextIndex:
    """Ordered tokens of one page with exact-position lookups."""

    def __init__(self, tokens: Iterable[PositionedToken]) -> None:
        self.tokens: list[PositionedToken] = list(tokens)

    def __len__(self) -> int:
        return len(self.tokens)

    def __iter__(self):
        return iter(self.tokens)

    def index_of(self, text: str) -> int:
        """Position of the first token whose text equals ``text``, or -1."""
        for index, token in enumerate(self.tokens):
            if token.text == text:
                return index
        return -1

    def slice(self, start: int = 0, end: int | None = None) -> PositionedTextIndex:
        return PositionedTextIndex(self.tokens[max(start, 0) : end])

    def filter(self, predicate: Callable[[PositionedToken], bool]) -> PositionedTextIndex:
        return PositionedTextIndex(token for token in self.tokens if predicate(token))

    def at_x(self, x: float) -> PositionedTextIndex:
        return self.filter(lambda token: token.x == x)

    def joined_text(self) -> str:
        return " ".join(token.text for token in self.tokens)

    def text_at(self, x: float, y: float) -> str:
        """Text anchored exactly at (x, y) plus every continuation line.

        Zero-height tokens are layout markers and never anchor a cell. Returns
        an empty string when nothing sits at the position.
        """
        start = next(
            (
                index
                for index, token in enumerate(self.tokens)
                if token.x == x and token.y == y and token.height != 0
            ),
            None,
        )
        if start is None:
            return ""

        parts = [self.tokens[start].text]
        index = start
        while self.tokens[index].has_eol:
            index += 1
            if index >= len(self.tokens):
                break
            parts.append(self.tokens[index].text)
        return " ".join(parts)
