"""
Link stage: turn known reference phrases into clickable links.

Every page is scanned line by line. A line's text is its words joined by
single spaces; it matches a rule when the rule's phrase occurs anywhere in
it (case-sensitive substring). The first matching rule, in table order,
wins. The link covers the whole line's bounding box.

Pages are independent: process_page keeps no state between calls.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence

from engines.pdf.base import AnnotatableDocument, LinkStyle
from utilities import Print


@dataclass(frozen=True)
class LinkRule:
    """A phrase and the URL its lines link to."""
    phrase: str
    url: str

    def matches(self, line_text: str) -> bool:
        return self.phrase in line_text


DEFAULT_LINK_RULES = (
    LinkRule(
        "Financial Reporting Standards",
        "https://en.wikipedia.org/wiki/International_Financial_Reporting_Standards",
    ),
    LinkRule(
        "How to Interpret Financial Data",
        "https://example.com/financial-data",
    ),
    LinkRule(
        "Best Practices for Legal Compliance",
        "https://example.com/legal-compliance",
    ),
)


def rules_from_config(entries: Optional[list]) -> List[LinkRule]:
    """Build rules from [{"phrase": ..., "url": ...}, ...], keeping order."""
    if entries is None:
        return list(DEFAULT_LINK_RULES)

    rules = []
    for entry in entries:
        try:
            rules.append(LinkRule(phrase=entry['phrase'], url=entry['url']))
        except KeyError as e:
            raise ValueError(f"Link rule is missing {e}: {entry}")
    return rules


class LinkInjector:
    """
    Add URI link annotations over lines that contain a known phrase.

    Attributes:
        enabled: Whether the stage runs
        rules: Ordered phrase/URL table, first match wins
        style: Border and color of created links
    """

    def __init__(self, config: dict, rules: Optional[Sequence[LinkRule]] = None):
        """
        Initialize link injector with configuration.

        Args:
            config: Configuration dictionary with optional keys:
                - enabled: bool (default: True)
                - rules: list of {"phrase", "url"} (default: the three report references)
                - border_width: float (default: 1)
                - border_style: str (default: 'underline')
                - color: [r, g, b] (default: blue)
            rules: Explicit rule table, overrides config['rules']
        """
        self.enabled = config.get('enabled', True)
        self.rules = list(rules) if rules is not None else rules_from_config(config.get('rules'))
        self.style = LinkStyle(
            border_width=config.get('border_width', 1.0),
            border_style=config.get('border_style', 'underline'),
            color=tuple(config.get('color', (0.0, 0.0, 1.0))),
        )

    def match_line(self, line_text: str) -> Optional[LinkRule]:
        """Return the first rule whose phrase occurs in line_text."""
        for rule in self.rules:
            if rule.matches(line_text):
                return rule
        return None

    def process_page(self, document: AnnotatableDocument, page_number: int) -> int:
        """
        Link every matching line on one page.

        Returns:
            Number of links added to the page
        """
        added = 0
        for line in document.iter_lines(page_number):
            rule = self.match_line(line.text)
            if rule is None:
                continue
            document.add_link(page_number, line.bbox, rule.url, self.style)
            added += 1
            Print("DEBUG", f"Page {page_number}: linked '{rule.phrase}' -> {rule.url}")
        return added

    def process_document(self, document: AnnotatableDocument) -> int:
        """
        Link matching lines on every page, in ascending page order.

        Returns:
            Total number of links added
        """
        if not self.enabled:
            Print("INFO", "Link stage: disabled")
            return 0

        total = 0
        for page_number in range(1, document.page_count + 1):
            total += self.process_page(document, page_number)

        if total:
            Print("SUCCESS", f"Added {total} link{'s' if total != 1 else ''}")
        else:
            Print("INFO", "No reference phrases found, no links added")
        return total

    @property
    def name(self) -> str:
        return "link_injector"
