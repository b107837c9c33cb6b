"""
PDF Engine Protocol for Marginalia

Defines the contract that all PDF annotation engines must implement, plus the
small value types (boxes, text lines, styles) that cross the engine boundary.

Coordinates are in the engine's page space: x grows to the right, y grows
downward from the top-left corner of the page.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Protocol, Sequence, Tuple


Color = Tuple[float, float, float]

HORIZONTAL_ALIGNMENTS = ('left', 'center', 'right')
VERTICAL_ALIGNMENTS = ('top', 'center', 'bottom')
TEXT_ALIGNMENTS = ('left', 'center', 'right', 'justify')
BORDER_STYLES = ('solid', 'dashed', 'beveled', 'inset', 'underline')


@dataclass
class BoundingBox:
    """Rectangle enclosing a piece of extracted text or an overlay."""
    x1: float
    y1: float
    x2: float
    y2: float

    @property
    def width(self) -> float:
        return self.x2 - self.x1

    @property
    def height(self) -> float:
        return self.y2 - self.y1

    def shifted(self, dx: float = 0.0, dy: float = 0.0) -> "BoundingBox":
        """Return a copy moved by (dx, dy) on both edges."""
        return BoundingBox(self.x1 + dx, self.y1 + dy, self.x2 + dx, self.y2 + dy)

    def merge_with(self, other: "BoundingBox") -> "BoundingBox":
        """Merge two bounding boxes into one encompassing box."""
        return BoundingBox(
            x1=min(self.x1, other.x1),
            y1=min(self.y1, other.y1),
            x2=max(self.x2, other.x2),
            y2=max(self.y2, other.y2)
        )

    def as_tuple(self) -> Tuple[float, float, float, float]:
        return (self.x1, self.y1, self.x2, self.y2)


@dataclass
class TextWord:
    """A single extracted word."""
    text: str
    bbox: BoundingBox


@dataclass
class TextLine:
    """An extracted line: its words in reading order and the box around them."""
    words: List[TextWord]
    bbox: BoundingBox

    @property
    def text(self) -> str:
        return ' '.join(word.text for word in self.words)

    @classmethod
    def from_words(cls, words: Sequence[TextWord]) -> "TextLine":
        if not words:
            raise ValueError("A text line needs at least one word")
        bbox = words[0].bbox
        for word in words[1:]:
            bbox = bbox.merge_with(word.bbox)
        return cls(words=list(words), bbox=bbox)


@dataclass
class StampStyle:
    """
    Stamper configuration shared by the text and image stamps.

    Attributes:
        scale: Stamp box size as a fraction of page (width, height)
        horizontal_alignment: 'left', 'center' or 'right'
        vertical_alignment: 'top', 'center' or 'bottom'
        offset: Distance from the aligned edges as a fraction of page (width, height)
        font: Font key ('text', 'mono', 'symbol') or engine font name
        color: RGB fill color for text, 0.0-1.0
        text_alignment: Alignment of text inside the stamp box
        as_background: Draw beneath existing page content
        opacity: 0.0 (invisible) to 1.0 (opaque)
    """
    scale: Tuple[float, float] = (0.25, 0.25)
    horizontal_alignment: str = 'right'
    vertical_alignment: str = 'top'
    offset: Tuple[float, float] = (0.05, 0.05)
    font: str = 'mono'
    color: Color = (1.0, 0.0, 0.0)
    text_alignment: str = 'right'
    as_background: bool = False
    opacity: float = 1.0

    def __post_init__(self):
        if self.horizontal_alignment not in HORIZONTAL_ALIGNMENTS:
            raise ValueError(f"Unknown horizontal alignment: '{self.horizontal_alignment}'")
        if self.vertical_alignment not in VERTICAL_ALIGNMENTS:
            raise ValueError(f"Unknown vertical alignment: '{self.vertical_alignment}'")
        if self.text_alignment not in TEXT_ALIGNMENTS:
            raise ValueError(f"Unknown text alignment: '{self.text_alignment}'")
        if not 0.0 <= self.opacity <= 1.0:
            raise ValueError(f"Opacity must be between 0 and 1, got {self.opacity}")

    @classmethod
    def from_config(cls, config: dict) -> "StampStyle":
        """Create style from a stamp configuration dictionary."""
        style = cls()
        return cls(
            scale=tuple(config.get('scale', style.scale)),
            horizontal_alignment=config.get('horizontal_alignment', style.horizontal_alignment),
            vertical_alignment=config.get('vertical_alignment', style.vertical_alignment),
            offset=tuple(config.get('offset', style.offset)),
            font=config.get('font', style.font),
            color=tuple(config.get('color', style.color)),
            text_alignment=config.get('text_alignment', style.text_alignment),
            as_background=config.get('as_background', style.as_background),
            opacity=config.get('text_opacity', style.opacity),
        )

    def placement(self, page_width: float, page_height: float) -> BoundingBox:
        """
        Compute the stamp box for a page of the given size.

        The box is scale * page size, pushed into the aligned corner and then
        moved inward by offset * page size.
        """
        box_width = self.scale[0] * page_width
        box_height = self.scale[1] * page_height
        dx = self.offset[0] * page_width
        dy = self.offset[1] * page_height

        if self.horizontal_alignment == 'left':
            x1 = dx
        elif self.horizontal_alignment == 'center':
            x1 = (page_width - box_width) / 2 + dx
        else:
            x1 = page_width - box_width - dx

        if self.vertical_alignment == 'top':
            y1 = dy
        elif self.vertical_alignment == 'center':
            y1 = (page_height - box_height) / 2 + dy
        else:
            y1 = page_height - box_height - dy

        return BoundingBox(x1, y1, x1 + box_width, y1 + box_height)


@dataclass
class LinkStyle:
    """Border and color of a link annotation."""
    border_width: float = 1.0
    border_style: str = 'underline'
    color: Color = (0.0, 0.0, 1.0)

    def __post_init__(self):
        if self.border_style not in BORDER_STYLES:
            raise ValueError(f"Unknown border style: '{self.border_style}'")


class AnnotatableDocument(Protocol):
    """
    An open PDF document that stages can read text from and annotate.

    Pages are addressed by 1-based page number. Annotations are append-only.
    """

    @property
    def page_count(self) -> int:
        ...

    def iter_lines(self, page_number: int) -> Iterator[TextLine]:
        """
        Lazily yield the text lines of a page in document order.

        Each call returns a fresh, forward-only iterator.

        Raises:
            IndexError: If page_number is outside 1..page_count
        """
        ...

    def stamp_text(self, page_numbers: Sequence[int], text: str, style: StampStyle) -> None:
        """Draw a text stamp on every listed page."""
        ...

    def stamp_image(self, page_numbers: Sequence[int], image_path: Path, style: StampStyle) -> None:
        """
        Draw an image stamp on every listed page at style.opacity.

        Raises:
            FileNotFoundError: If image_path does not exist
        """
        ...

    def add_link(self, page_number: int, bbox: BoundingBox, url: str, style: LinkStyle) -> None:
        """Append a URI link annotation covering bbox."""
        ...

    def add_sticky_note(self, page_number: int, bbox: BoundingBox, contents: str, color: Color) -> None:
        """Append a sticky-note (text) annotation anchored at bbox's top-left corner."""
        ...

    def annotation_counts(self) -> Dict[str, int]:
        """Document-wide counts of 'links' and 'notes'."""
        ...

    def save(self, output_path: Path, linearize: bool = True) -> None:
        """
        Write the document to output_path.

        The file only appears at output_path once it is completely written.
        """
        ...

    def close(self) -> None:
        ...


class PDFEngine(Protocol):
    """
    Protocol for PDF annotation engines.

    Engines own the process-wide library state: initialize() is called once
    before any document is opened and shutdown() once after all documents are
    closed (see EngineSession).
    """

    requires_license: bool

    def initialize(self, license_key: Optional[str] = None) -> None:
        """
        Prepare the underlying PDF library.

        Raises:
            RuntimeError: If the library is unusable or a required license key is missing
        """
        ...

    def open_document(self, path: Path) -> AnnotatableDocument:
        """
        Open a PDF for annotation.

        Raises:
            FileNotFoundError: If path does not exist
            ValueError: If the file is not a PDF
        """
        ...

    def shutdown(self) -> None:
        """Release library-wide resources."""
        ...

    @property
    def name(self) -> str:
        """
        Engine identifier for logging and debugging.

        Returns:
            Unique name of this engine (e.g., 'pymupdf')
        """
        ...
