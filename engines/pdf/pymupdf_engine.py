"""
PyMuPDF-based PDF engine for Marginalia

PyMuPDF (fitz) provides the document model: word extraction with bounding
boxes, text and image overlays, link and text annotations with appearance
generation. pikepdf writes the final file, because it can linearize
("fast web view") and MuPDF no longer does.

Stamps are drawn into the page content (overlay=True puts them above the
existing content, overlay=False beneath it). Links and sticky notes are
real annotations appended to the page's /Annots array.

On pages with /Rotate, stamps are placed in viewer coordinates (page.rect)
and drawn in the unrotated frame with a matching rotate value, so they
appear upright in the top-right corner the viewer shows.

Image opacity is baked into the image's alpha channel with Pillow, so the
embedded image carries a soft mask and needs no extended graphics state.
"""

import io
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, Optional, Sequence

import pymupdf as fitz
import pikepdf
from PIL import Image

from . import register_pdf_engine
from .base import BoundingBox, Color, LinkStyle, StampStyle, TextLine, TextWord
from utilities import Print


@register_pdf_engine("pymupdf")
class PyMuPDFEngineFactory:
    """Factory for creating PyMuPDF engine instances."""

    @staticmethod
    def create(config: dict) -> "PyMuPDFEngine":
        return PyMuPDFEngine(config)


class PyMuPDFEngine:
    """
    Engine wrapper around the PyMuPDF library.

    PyMuPDF needs no license key; a key supplied anyway is ignored unless
    the configuration sets requires_license.

    Attributes:
        requires_license: Fail initialize() when no license key is given
        garbage: PyMuPDF garbage-collection level used when serializing
        deflate: Compress uncompressed streams when serializing
        store_shrink: Percentage of MuPDF's resource store to free on shutdown
    """

    def __init__(self, config: dict):
        """
        Initialize engine with configuration.

        Args:
            config: Configuration dictionary with optional keys:
                - requires_license: bool (default: False)
                - garbage: int - 0-4 (default: 3)
                - deflate: bool (default: True)
                - store_shrink: int - 0-100 (default: 100)
        """
        self.config = config
        self.requires_license = config.get('requires_license', False)
        self.garbage = config.get('garbage', 3)
        self.deflate = config.get('deflate', True)
        self.store_shrink = config.get('store_shrink', 100)
        self._initialized = False

    def initialize(self, license_key: Optional[str] = None) -> None:
        """
        Verify that PyMuPDF and pikepdf are usable.

        Raises:
            RuntimeError: If a required license key is missing
        """
        if self.requires_license and not license_key:
            raise RuntimeError(
                f"PDF engine '{self.name}' requires a license key but none was provided"
            )

        Print("SUCCESS", f"Found PyMuPDF {fitz.version[0]} (MuPDF {fitz.version[1]})")
        Print("DEBUG", f"Found pikepdf {pikepdf.__version__}")
        self._initialized = True

    def open_document(self, path: Path) -> "PyMuPDFDocument":
        """
        Open a PDF for annotation.

        Raises:
            RuntimeError: If the engine was not initialized
            FileNotFoundError: If path does not exist
            ValueError: If the file is not a PDF
        """
        if not self._initialized:
            raise RuntimeError("PDF engine not initialized. Call initialize() first.")

        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Input PDF not found: {path}")

        doc = fitz.open(str(path))
        if not doc.is_pdf:
            doc.close()
            raise ValueError(f"Not a PDF document: {path}")

        Print("DEBUG", f"Opened {path.name}: {doc.page_count} pages")
        return PyMuPDFDocument(doc, self)

    def shutdown(self) -> None:
        """Free MuPDF's cached resources."""
        if self.store_shrink:
            fitz.TOOLS.store_shrink(self.store_shrink)
        self._initialized = False

    @property
    def name(self) -> str:
        """Engine identifier."""
        return "pymupdf"


class PyMuPDFDocument:
    """
    An open PyMuPDF document implementing AnnotatableDocument.

    Page numbers are 1-based here and converted to PyMuPDF's 0-based
    indexes in _page().
    """

    # PDF Base 14 fonts by PyMuPDF short name
    BASE_14_FONTS = {
        'text': 'helv',
        'mono': 'cour',
        'symbol': 'symb',
    }

    TEXT_ALIGN = {
        'left': fitz.TEXT_ALIGN_LEFT,
        'center': fitz.TEXT_ALIGN_CENTER,
        'right': fitz.TEXT_ALIGN_RIGHT,
        'justify': fitz.TEXT_ALIGN_JUSTIFY,
    }

    # /BS /S values
    BORDER_STYLE_NAMES = {
        'solid': 'S',
        'dashed': 'D',
        'beveled': 'B',
        'inset': 'I',
        'underline': 'U',
    }

    # Share of the stamp box the text may fill, leaves room for glyph overhang
    TEXT_FILL_RATIO = 0.95

    # Stamp font size is reduced by this factor until the text fits, down to MIN_FONT_SIZE
    FONT_SHRINK_STEP = 0.9
    MIN_FONT_SIZE = 1.0

    def __init__(self, doc: fitz.Document, engine: PyMuPDFEngine):
        self._doc = doc
        self._engine = engine

    @property
    def page_count(self) -> int:
        return self._doc.page_count

    def _page(self, page_number: int) -> fitz.Page:
        if not 1 <= page_number <= self._doc.page_count:
            raise IndexError(
                f"Page {page_number} out of range (document has {self._doc.page_count} pages)"
            )
        return self._doc[page_number - 1]

    def iter_lines(self, page_number: int) -> Iterator[TextLine]:
        """
        Yield the page's lines, grouping words by (block, line) number.

        Word tuples from get_text("words") are
        (x0, y0, x1, y1, text, block_no, line_no, word_no) in content order.
        """
        page = self._page(page_number)
        current_key = None
        current_words = []

        for x0, y0, x1, y1, text, block_no, line_no, _word_no in page.get_text("words"):
            key = (block_no, line_no)
            if current_words and key != current_key:
                yield TextLine.from_words(current_words)
                current_words = []
            current_key = key
            current_words.append(TextWord(text=text, bbox=BoundingBox(x0, y0, x1, y1)))

        if current_words:
            yield TextLine.from_words(current_words)

    def stamp_text(self, page_numbers: Sequence[int], text: str, style: StampStyle) -> None:
        fontname = self.BASE_14_FONTS.get(style.font, style.font)
        unit_width = fitz.get_text_length(text, fontname=fontname, fontsize=1)
        if unit_width <= 0:
            raise ValueError("Stamp text is empty")

        font = fitz.Font(fontname)
        line_height = font.ascender - font.descender

        for page_number in page_numbers:
            page = self._page(page_number)
            box = style.placement(page.rect.width, page.rect.height)

            # Fill the box width without exceeding its height, then shrink until insert_textbox accepts it
            fontsize = min(box.width / unit_width, box.height / line_height) * self.TEXT_FILL_RATIO

            with self._unrotated(page) as (rotation, derotation):
                rect = fitz.Rect(*box.as_tuple()) * derotation
                while fontsize >= self.MIN_FONT_SIZE:
                    # insert_textbox writes nothing when it returns a negative value
                    remaining = page.insert_textbox(
                        rect,
                        text,
                        fontname=fontname,
                        fontsize=fontsize,
                        color=style.color,
                        align=self.TEXT_ALIGN[style.text_alignment],
                        rotate=rotation,
                        fill_opacity=style.opacity,
                        overlay=not style.as_background,
                    )
                    if remaining >= 0:
                        break
                    fontsize *= self.FONT_SHRINK_STEP
                else:
                    raise ValueError(
                        f"Text stamp does not fit on page {page_number} "
                        f"({box.width:.1f} x {box.height:.1f} box)"
                    )

        Print("DEBUG", f"Text stamp '{text}' drawn on {len(page_numbers)} pages")

    def stamp_image(self, page_numbers: Sequence[int], image_path: Path, style: StampStyle) -> None:
        image_path = Path(image_path)
        if not image_path.exists():
            raise FileNotFoundError(f"Stamp image not found: {image_path}")

        image_bytes = self._prepare_stamp_image(image_path, style.opacity)

        # Embed once, then reference the same image object from every page
        image_xref = 0
        for page_number in page_numbers:
            page = self._page(page_number)
            box = style.placement(page.rect.width, page.rect.height)

            with self._unrotated(page) as (rotation, derotation):
                rect = fitz.Rect(*box.as_tuple()) * derotation
                if image_xref:
                    page.insert_image(rect, xref=image_xref, rotate=rotation, overlay=not style.as_background)
                else:
                    image_xref = page.insert_image(
                        rect, stream=image_bytes, rotate=rotation, overlay=not style.as_background
                    )

        Print("DEBUG", f"Image stamp {image_path.name} drawn on {len(page_numbers)} pages at {style.opacity:.0%} opacity")

    @contextmanager
    def _unrotated(self, page: fitz.Page):
        """
        Draw on a page in its unrotated frame.

        Yields the page's /Rotate value and the matrix mapping viewer
        coordinates (page.rect) to unrotated ones. Content drawn with
        rotate=<that value> appears upright in a viewer. /Rotate is
        restored on exit.
        """
        rotation = page.rotation
        derotation = page.derotation_matrix
        if rotation:
            page.set_rotation(0)
        try:
            yield rotation, derotation
        finally:
            if rotation:
                page.set_rotation(rotation)

    def _prepare_stamp_image(self, image_path: Path, opacity: float) -> bytes:
        """Encode the image as PNG with its alpha channel scaled by opacity."""
        with Image.open(image_path) as source:
            img = source.convert('RGBA')

        if opacity < 1.0:
            alpha = img.getchannel('A').point(lambda a: int(round(a * opacity)))
            img.putalpha(alpha)

        buffer = io.BytesIO()
        img.save(buffer, format='PNG')
        return buffer.getvalue()

    def add_link(self, page_number: int, bbox: BoundingBox, url: str, style: LinkStyle) -> None:
        page = self._page(page_number)
        page.insert_link({
            'kind': fitz.LINK_URI,
            'from': fitz.Rect(*bbox.as_tuple()),
            'uri': url,
        })

        # insert_link appends to /Annots, so the new link is the last one
        link_xref = self._last_annot_xref(page, fitz.PDF_ANNOT_LINK)

        self._doc.xref_set_key(
            link_xref, 'BS',
            f"<</W {style.border_width:g}/S/{self.BORDER_STYLE_NAMES[style.border_style]}>>"
        )
        self._doc.xref_set_key(link_xref, 'C', f"[{self._pdf_color(style.color)}]")
        # /BS replaces the /Border entry PyMuPDF writes
        self._doc.xref_set_key(link_xref, 'Border', 'null')

    def add_sticky_note(self, page_number: int, bbox: BoundingBox, contents: str, color: Color) -> None:
        """
        Anchor a Note icon at the top-left corner of bbox.

        MuPDF sizes text-annotation icons itself when it regenerates the
        appearance, so only the anchor point of bbox is kept.
        """
        page = self._page(page_number)
        rect = fitz.Rect(*bbox.as_tuple())

        annot = page.add_text_annot(rect.tl, contents, icon="Note")
        annot.set_colors(stroke=color)
        annot.update()

    def annotation_counts(self) -> Dict[str, int]:
        counts = {'links': 0, 'notes': 0}
        for page in self._doc:
            for entry in page.annot_xrefs():
                annot_type = entry[1]
                if annot_type == fitz.PDF_ANNOT_LINK:
                    counts['links'] += 1
                elif annot_type == fitz.PDF_ANNOT_TEXT:
                    counts['notes'] += 1
        return counts

    def save(self, output_path: Path, linearize: bool = True) -> None:
        """
        Serialize with PyMuPDF, then rewrite with pikepdf.

        The file is written next to output_path and moved into place only
        after pikepdf has finished, so output_path never holds a partial file.
        """
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        pdf_bytes = self._doc.tobytes(garbage=self._engine.garbage, deflate=self._engine.deflate)

        fd, temp_name = tempfile.mkstemp(
            prefix=f".{output_path.stem}.", suffix='.pdf', dir=output_path.parent
        )
        os.close(fd)
        temp_path = Path(temp_name)

        try:
            with pikepdf.open(io.BytesIO(pdf_bytes)) as pdf:
                pdf.save(temp_path, linearize=linearize)
            os.replace(temp_path, output_path)
        finally:
            temp_path.unlink(missing_ok=True)

        Print("DEBUG", f"Wrote {output_path.stat().st_size:,} bytes (linearized={linearize})")

    def close(self) -> None:
        if not self._doc.is_closed:
            self._doc.close()

    def _last_annot_xref(self, page: fitz.Page, annot_type: int) -> int:
        """Return the xref of the last annotation of annot_type on page."""
        xrefs = [entry[0] for entry in page.annot_xrefs() if entry[1] == annot_type]
        if not xrefs:
            raise RuntimeError(f"No annotation of type {annot_type} found on page {page.number + 1}")
        return xrefs[-1]

    @staticmethod
    def _pdf_color(color: Color) -> str:
        return ' '.join(f"{component:g}" for component in color)
