"""
Annotation processors for Marginalia

Each processor implements one stage of the pipeline against an
AnnotatableDocument: stamping, link injection, sticky-note placement.
"""

from .stamping import Stamper
from .linking import LinkInjector, LinkRule
from .notes import NotePlacer, TokenMatch, find_first_token

__all__ = ['Stamper', 'LinkInjector', 'LinkRule', 'NotePlacer', 'TokenMatch', 'find_first_token']
