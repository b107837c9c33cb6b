"""
Engine session: scoped lifetime for a PDF engine and the documents it opens.

The engine is initialized on entry and shut down exactly once on exit, after
every document opened through the session has been closed. Exit runs on both
the success and the failure path; exceptions are never suppressed.
"""

from pathlib import Path
from typing import List, Optional

from utilities import Print

from . import get_pdf_engine
from .base import AnnotatableDocument, PDFEngine


class EngineSession:
    """
    Context manager owning one PDF engine for the duration of a run.

    Usage:
        with EngineSession("pymupdf", config, license_key) as session:
            document = session.open_document(Path("report.pdf"))
            ...
            document.save(Path("report-annotated.pdf"))
    """

    def __init__(self, engine_name: str, engine_config: dict, license_key: Optional[str] = None):
        self.engine_name = engine_name
        self.engine_config = engine_config
        self.license_key = license_key
        self.engine: Optional[PDFEngine] = None
        self._documents: List[AnnotatableDocument] = []
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    def __enter__(self) -> "EngineSession":
        self.engine = get_pdf_engine(self.engine_name, self.engine_config)
        try:
            self.engine.initialize(self.license_key)
        except BaseException:
            self.engine.shutdown()
            raise
        self._active = True
        Print("SUCCESS", f"PDF engine session started: {self.engine.name}")
        return self

    def open_document(self, path: Path) -> AnnotatableDocument:
        """Open a document that will be closed when the session ends."""
        if not self._active:
            raise RuntimeError("Engine session is not active")
        document = self.engine.open_document(Path(path))
        self._documents.append(document)
        return document

    def __exit__(self, exc_type, exc, tb) -> bool:
        try:
            while self._documents:
                self._documents.pop().close()
        finally:
            self._active = False
            self.engine.shutdown()
            if exc_type is None:
                Print("DEBUG", f"PDF engine session closed: {self.engine.name}")
            else:
                Print("WARNING", f"PDF engine session closed after error: {exc_type.__name__}")
        return False
