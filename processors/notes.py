"""
Note stage: one sticky note on the first occurrence of a token.

The search walks pages, lines and words in order and compares each word
to the token with exact equality ("Q3" matches, "Q3x" and "Q3," do not).
find_first_token returns at the first hit, so later pages are never read.
"""

from dataclasses import dataclass
from typing import Optional

from engines.pdf.base import AnnotatableDocument, BoundingBox, TextWord
from utilities import Print

DEFAULT_TOKEN = "Q3"
DEFAULT_MESSAGE = "Important: Verify Q3 data."
DEFAULT_OFFSET_X = 25.0
DEFAULT_COLOR = (1.0, 1.0, 0.0)


@dataclass
class TokenMatch:
    """Where the token was found (page number is 1-based, indexes 0-based)."""
    page_number: int
    line_index: int
    word_index: int
    word: TextWord


def _find_on_page(document: AnnotatableDocument, page_number: int, token: str) -> Optional[TokenMatch]:
    for line_index, line in enumerate(document.iter_lines(page_number)):
        for word_index, word in enumerate(line.words):
            if word.text == token:
                return TokenMatch(page_number, line_index, word_index, word)
    return None


def find_first_token(document: AnnotatableDocument, token: str) -> Optional[TokenMatch]:
    """
    Find the first word equal to token in (page, line, word) order.

    Returns:
        The first match, or None when the token does not occur
    """
    for page_number in range(1, document.page_count + 1):
        match = _find_on_page(document, page_number, token)
        if match is not None:
            return match
    return None


class NotePlacer:
    """
    Place a single sticky note next to the first occurrence of a token.

    Attributes:
        enabled: Whether the stage runs
        token: Word to look for (exact match)
        message: Note body text
        offset_x: Horizontal shift applied to both x-edges of the word box
        color: Note color
    """

    def __init__(self, config: dict):
        """
        Initialize note placer with configuration.

        Args:
            config: Configuration dictionary with optional keys:
                - enabled: bool (default: True)
                - token: str (default: 'Q3')
                - message: str (default: 'Important: Verify Q3 data.')
                - offset_x: float (default: 25)
                - color: [r, g, b] (default: yellow)
        """
        self.enabled = config.get('enabled', True)
        self.token = config.get('token', DEFAULT_TOKEN)
        self.message = config.get('message', DEFAULT_MESSAGE)
        self.offset_x = config.get('offset_x', DEFAULT_OFFSET_X)
        self.color = tuple(config.get('color', DEFAULT_COLOR))

        if not self.token or ' ' in self.token:
            raise ValueError(f"Note token must be a single word, got '{self.token}'")

    def note_box(self, word_bbox: BoundingBox) -> BoundingBox:
        return word_bbox.shifted(dx=self.offset_x)

    def apply(self, document: AnnotatableDocument) -> Optional[TokenMatch]:
        """
        Add the note at the first occurrence of the token.

        Returns:
            The match the note was placed on, or None if the token is absent
        """
        if not self.enabled:
            Print("INFO", "Note stage: disabled")
            return None

        match = find_first_token(document, self.token)
        if match is None:
            Print("INFO", f"Token '{self.token}' not found, no note added")
            return None

        document.add_sticky_note(match.page_number, self.note_box(match.word.bbox), self.message, self.color)
        Print("SUCCESS", f"Added note on page {match.page_number} at '{self.token}'")
        return match

    @property
    def name(self) -> str:
        return "note_placer"
