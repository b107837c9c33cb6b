#!/usr/bin/env python3
"""
Functional Test for the Link Stage

Tests the LinkInjector to verify:
1. Phrases match as case-sensitive substrings of the joined line text
2. Only the first matching rule fires for a line
3. The link covers the whole line's bounding box
4. Page processing order does not change the per-page result
5. Links in a saved PDF carry the URL, underline border and blue color

Usage:
    python tests/functional_tests/test_linking.py
"""

import sys
from pathlib import Path

import pymupdf as fitz
import pytest

# Add repo root to path for imports
repo_root = Path(__file__).resolve().parent.parent.parent
sys.path.insert(0, str(repo_root))

from annotation_fixtures import FakeDocument, build_report_pdf, run_functional_tests  # noqa: E402
from engines.pdf import EngineSession  # noqa: E402
from processors import LinkInjector, LinkRule  # noqa: E402
from processors.linking import DEFAULT_LINK_RULES, rules_from_config  # noqa: E402
from utilities import Print  # noqa: E402

IFRS_URL = "https://en.wikipedia.org/wiki/International_Financial_Reporting_Standards"
DATA_URL = "https://example.com/financial-data"
LEGAL_URL = "https://example.com/legal-compliance"


def test_substring_match_with_surrounding_text():
    Print("HEADER", "Testing Substring Matching")

    injector = LinkInjector({})

    rule = injector.match_line("See the Financial Reporting Standards (2024 edition)")
    assert rule is not None
    assert rule.url == IFRS_URL

    assert injector.match_line("Chapter 4: How to Interpret Financial Data").url == DATA_URL
    assert injector.match_line("Best Practices for Legal Compliance").url == LEGAL_URL


def test_match_is_case_sensitive():
    injector = LinkInjector({})

    assert injector.match_line("financial reporting standards") is None
    assert injector.match_line("FINANCIAL REPORTING STANDARDS") is None
    assert injector.match_line("Financial Reporting") is None


def test_first_matching_rule_wins():
    document = FakeDocument([[
        "How to Interpret Financial Data under Financial Reporting Standards"
    ]])

    added = LinkInjector({}).process_document(document)

    assert added == 1
    assert len(document.links) == 1
    assert document.links[0][2] == IFRS_URL


def test_link_covers_whole_line():
    document = FakeDocument([[
        "Quarterly overview",
        "Background: Financial Reporting Standards apply here",
    ]])
    line = document.pages[0][1]

    LinkInjector({}).process_document(document)

    assert len(document.links) == 1
    page_number, bbox, url, style = document.links[0]
    assert page_number == 1
    assert bbox == line.bbox
    assert style.border_width == 1
    assert style.border_style == 'underline'
    assert style.color == (0.0, 0.0, 1.0)


def test_pages_without_matches_get_no_links():
    document = FakeDocument([["Nothing to see"], ["Still nothing"]])

    assert LinkInjector({}).process_document(document) == 0
    assert document.links == []


def test_reverse_page_order_gives_same_links():
    Print("HEADER", "Testing Page Order Independence")

    pages = [
        ["Financial Reporting Standards", "filler"],
        ["filler"],
        ["How to Interpret Financial Data", "Best Practices for Legal Compliance"],
        ["Financial Reporting Standards again"],
    ]
    forward = FakeDocument(pages)
    backward = FakeDocument(pages)
    injector = LinkInjector({})

    for page_number in range(1, forward.page_count + 1):
        injector.process_page(forward, page_number)
    for page_number in range(backward.page_count, 0, -1):
        injector.process_page(backward, page_number)

    def by_page(links):
        result = {}
        for page_number, bbox, url, _style in links:
            result.setdefault(page_number, []).append((bbox.as_tuple(), url))
        return {page: sorted(entries) for page, entries in result.items()}

    assert by_page(forward.links) == by_page(backward.links)
    assert sorted(by_page(forward.links)) == [1, 3, 4]


def test_custom_rule_table():
    rules = [LinkRule("Audit Committee", "https://example.com/audit")]
    document = FakeDocument([["Report of the Audit Committee", "Financial Reporting Standards"]])

    LinkInjector({}, rules=rules).process_document(document)

    assert [link[2] for link in document.links] == ["https://example.com/audit"]


def test_rules_from_config_keeps_order_and_validates():
    assert rules_from_config(None) == list(DEFAULT_LINK_RULES)

    rules = rules_from_config([
        {"phrase": "B", "url": "https://b.example"},
        {"phrase": "A", "url": "https://a.example"},
    ])
    assert [rule.phrase for rule in rules] == ["B", "A"]

    with pytest.raises(ValueError):
        rules_from_config([{"phrase": "no url"}])


def test_links_in_saved_pdf(tmp_path):
    """Real PDF: links land on the right pages with the right URL and style."""
    Print("HEADER", "Testing Links on a Real PDF")

    source = build_report_pdf(tmp_path / "report.pdf", [
        ["Annual summary", "Revenue and costs"],
        ["Refer to the Financial Reporting Standards for details", "Revenue grew"],
        ["Closing notes", "Best Practices for Legal Compliance"],
    ])
    output = tmp_path / "linked.pdf"

    with EngineSession("pymupdf", {}) as session:
        document = session.open_document(source)
        expected_line = [line for line in document.iter_lines(2) if "Financial" in line.text][0]
        added = LinkInjector({}).process_document(document)
        document.save(output)

    assert added == 2

    doc = fitz.open(str(output))
    try:
        assert doc[0].get_links() == []

        page_two_links = doc[1].get_links()
        assert len(page_two_links) == 1
        link = page_two_links[0]
        assert link['uri'] == IFRS_URL
        assert link['from'].x0 == pytest.approx(expected_line.bbox.x1, abs=0.5)
        assert link['from'].x1 == pytest.approx(expected_line.bbox.x2, abs=0.5)
        assert link['from'].y0 == pytest.approx(expected_line.bbox.y1, abs=0.5)
        assert link['from'].y1 == pytest.approx(expected_line.bbox.y2, abs=0.5)

        assert doc.xref_get_key(link['xref'], 'BS/S') == ('name', '/U')
        color_type, color_value = doc.xref_get_key(link['xref'], 'C')
        assert color_type == 'array'
        assert [float(c) for c in color_value.strip('[]').split()] == [0.0, 0.0, 1.0]

        page_three_links = doc[2].get_links()
        assert [entry['uri'] for entry in page_three_links] == [LEGAL_URL]
    finally:
        doc.close()

    Print("SUCCESS", "Links verified")


def main():
    """Run all link stage tests."""
    return run_functional_tests("Link Stage Functional Test", [
        test_substring_match_with_surrounding_text,
        test_match_is_case_sensitive,
        test_first_matching_rule_wins,
        test_link_covers_whole_line,
        test_pages_without_matches_get_no_links,
        test_reverse_page_order_gives_same_links,
        test_custom_rule_table,
        test_rules_from_config_keeps_order_and_validates,
        test_links_in_saved_pdf,
    ])


if __name__ == "__main__":
    sys.exit(main())
