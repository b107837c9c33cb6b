"""
Stamp stage: review marks over a fixed page range.

Two stamps share one StampStyle (size, alignment, offset, font, color):
a text stamp naming the reviewer, then an image stamp drawn with the
same style at low opacity.

The page range and the image are checked before either stamp is drawn,
so the usual failures (short document, missing image) leave the document
untouched. A failure inside the engine while drawing is not rolled back;
the run aborts before save in that case.
"""

from dataclasses import replace
from pathlib import Path
from typing import List

from engines.pdf.base import AnnotatableDocument, StampStyle
from utilities import Print

DEFAULT_STAMP_TEXT = "Reviewed by J.Doe"
DEFAULT_PAGE_RANGE = (1, 4)
DEFAULT_IMAGE_OPACITY = 0.1


class Stamper:
    """
    Apply a text stamp and an image stamp to an inclusive page range.

    Attributes:
        enabled: Whether the stage runs
        first_page: First stamped page (1-based, inclusive)
        last_page: Last stamped page (inclusive)
        text: Text of the text stamp
        style: Shared stamper configuration
        image_opacity: Opacity used for the image stamp
    """

    def __init__(self, config: dict):
        """
        Initialize stamper with configuration.

        Args:
            config: Configuration dictionary with optional keys:
                - enabled: bool (default: True)
                - page_range: [first, last] (default: [1, 4])
                - text: str (default: 'Reviewed by J.Doe')
                - image_opacity: float (default: 0.1)
                - any StampStyle key (scale, offset, font, color, ...)
        """
        self.enabled = config.get('enabled', True)
        self.first_page, self.last_page = config.get('page_range', DEFAULT_PAGE_RANGE)
        self.text = config.get('text', DEFAULT_STAMP_TEXT)
        self.style = StampStyle.from_config(config)
        self.image_opacity = config.get('image_opacity', DEFAULT_IMAGE_OPACITY)

        if self.first_page < 1 or self.last_page < self.first_page:
            raise ValueError(f"Invalid stamp page range: {self.first_page}-{self.last_page}")

    def page_numbers(self, page_count: int) -> List[int]:
        """
        Pages covered by the stamp range.

        Raises:
            ValueError: If the range runs past the end of the document
        """
        if self.last_page > page_count:
            raise ValueError(
                f"Stamp page range {self.first_page}-{self.last_page} exceeds "
                f"document length ({page_count} pages)"
            )
        return list(range(self.first_page, self.last_page + 1))

    def apply(self, document: AnnotatableDocument, image_path: Path) -> List[int]:
        """
        Stamp the configured page range.

        Args:
            document: Open document to stamp
            image_path: Image used for the image stamp

        Returns:
            Stamped page numbers (empty when the stage is disabled)

        Raises:
            ValueError: If the page range does not fit the document
            FileNotFoundError: If the stamp image does not exist
        """
        if not self.enabled:
            Print("INFO", "Stamp stage: disabled")
            return []

        pages = self.page_numbers(document.page_count)

        image_path = Path(image_path)
        if not image_path.exists():
            raise FileNotFoundError(f"Stamp image not found: {image_path}")

        document.stamp_text(pages, self.text, self.style)
        document.stamp_image(pages, image_path, replace(self.style, opacity=self.image_opacity))

        Print("SUCCESS", f"Stamped pages {self.first_page}-{self.last_page}")
        return pages

    @property
    def name(self) -> str:
        return "stamper"
