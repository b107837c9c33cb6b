"""
PDF engines for Marginalia

An engine opens PDFs as AnnotatableDocuments: page text as lines of
positioned words, plus the drawing and annotation calls the stages need
(stamp_text, stamp_image, add_link, add_sticky_note) and a save that
never leaves a partial file. Engines are looked up by name from the
`engine.name` config key; `engine.license_env` names the environment
variable whose value is passed to PDFEngine.initialize().

Engines register a factory class under their name:
    @register_pdf_engine("pymupdf")
    class PyMuPDFEngineFactory:
        @staticmethod
        def create(config: dict) -> PDFEngine:
            return PyMuPDFEngine(config)

A run owns its engine through EngineSession, which initializes it, closes
every document opened through it and shuts the engine down on exit:
    with EngineSession("pymupdf", config, license_key) as session:
        document = session.open_document(Path("finance-report.pdf"))
"""

from typing import Dict, Callable
from .base import PDFEngine

# Engine factories by name, filled in as engine modules are imported
PDF_REGISTRY: Dict[str, Callable[[dict], PDFEngine]] = {}


def register_pdf_engine(name: str):
    """
    Decorator registering an engine factory class under name.

    The class must provide a static create(config) returning an
    uninitialized PDFEngine.
    """
    def decorator(factory_class):
        PDF_REGISTRY[name] = factory_class.create
        return factory_class
    return decorator


def get_pdf_engine(name: str, config: dict) -> PDFEngine:
    """
    Build an uninitialized engine from its pdf_engines.<name> config section.

    Raises:
        ValueError: If no engine is registered under name
    """
    if name not in PDF_REGISTRY:
        available = ', '.join(PDF_REGISTRY.keys()) if PDF_REGISTRY else 'none'
        raise ValueError(
            f"Unknown PDF engine: '{name}'. "
            f"Available engines: {available}"
        )
    return PDF_REGISTRY[name](config)


# Importing an engine module registers it
from . import pymupdf_engine  # noqa: E402,F401
from .session import EngineSession  # noqa: E402,F401
