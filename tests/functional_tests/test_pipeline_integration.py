#!/usr/bin/env python3
"""
Integration Test for the Full Annotation Pipeline

Runs MarginaliaPipeline and the command-line entry point against a generated
six-page report to verify:
1. Stamps on pages 1-4, three links, one note on the first "Q3"
2. The saved file is linearized and reopens with the same annotation counts
3. No temporary files are left next to the output
4. Failures print "Annotation run failed:" to stderr, exit non-zero and write nothing

Usage:
    python tests/functional_tests/test_pipeline_integration.py
"""

import contextlib
import io
import sys
from pathlib import Path

import pymupdf as fitz
import pikepdf

# Add repo root to path for imports
repo_root = Path(__file__).resolve().parent.parent.parent
sys.path.insert(0, str(repo_root))

from annotation_fixtures import build_report_pdf, build_stamp_image, run_functional_tests  # noqa: E402
from marginalia import FAILURE_PREFIX, MarginaliaPipeline, main  # noqa: E402
from utilities import Print, set_verbose  # noqa: E402

REPORT_PAGES = [
    ["Finance Report 2024", "Prepared for the board"],
    ["Revenue for Q3 increased", "See Financial Reporting Standards"],
    ["How to Interpret Financial Data", "Margins held steady"],
    ["Costs", "Staffing and facilities"],
    ["Q3 outlook revisited", "Best Practices for Legal Compliance"],
    ["Appendix"],
]


def write_inputs(tmp_path: Path, pages=REPORT_PAGES):
    source = build_report_pdf(tmp_path / "finance-report.pdf", pages)
    image = build_stamp_image(tmp_path / "draft-stamp.png")
    return source, image


def count_annotations(path: Path) -> dict:
    counts = {'links': 0, 'notes': 0}
    doc = fitz.open(str(path))
    try:
        for page in doc:
            counts['links'] += len(page.get_links())
            counts['notes'] += len(list(page.annots(types=[fitz.PDF_ANNOT_TEXT])))
    finally:
        doc.close()
    return counts


def test_pipeline_annotates_report(tmp_path):
    Print("HEADER", "Testing Full Pipeline Run")

    source, image = write_inputs(tmp_path)
    output = tmp_path / "out" / "finance-report-annotated.pdf"

    pipeline = MarginaliaPipeline()
    pipeline.initialize()
    stats = pipeline.annotate_pdf(source, output, image)

    assert stats['pages'] == 6
    assert stats['stamped_pages'] == [1, 2, 3, 4]
    assert stats['links_added'] == 3
    assert stats['note_page'] == 2
    assert stats['annotations'] == {'links': 3, 'notes': 1}
    assert stats['output_size'] == output.stat().st_size

    # Counts survive the save
    assert count_annotations(output) == stats['annotations']

    with pikepdf.open(output) as pdf:
        assert pdf.is_linearized
        assert len(pdf.pages) == 6

    # Only the finished file is left in the output directory
    assert sorted(p.name for p in output.parent.iterdir()) == [output.name]

    Print("SUCCESS", "Pipeline output verified")


def test_annotate_before_initialize_rejected(tmp_path):
    source, image = write_inputs(tmp_path)
    pipeline = MarginaliaPipeline()

    try:
        pipeline.annotate_pdf(source, tmp_path / "out.pdf", image)
    except RuntimeError:
        pass
    else:
        raise AssertionError("annotate_pdf ran without initialize()")


def test_missing_config_rejected(tmp_path):
    try:
        MarginaliaPipeline(config_path=tmp_path / "nope.json")
    except FileNotFoundError:
        pass
    else:
        raise AssertionError("missing configuration was accepted")


def run_main(argv):
    stdout, stderr = io.StringIO(), io.StringIO()
    with contextlib.redirect_stdout(stdout), contextlib.redirect_stderr(stderr):
        code = main(argv)
    # main() applies --quiet for the rest of the process
    set_verbose(True)
    return code, stdout.getvalue(), stderr.getvalue()


def test_cli_success(tmp_path):
    Print("HEADER", "Testing Command Line Entry Point")

    source, image = write_inputs(tmp_path)
    output = tmp_path / "cli-annotated.pdf"

    code, stdout, stderr = run_main([
        '--input', str(source),
        '--output', str(output),
        '--stamp-image', str(image),
        '--quiet',
    ])

    assert code == 0
    assert "Saved:" in stdout
    assert FAILURE_PREFIX not in stderr
    assert output.exists()


def test_cli_missing_input(tmp_path):
    _source, image = write_inputs(tmp_path)
    output = tmp_path / "never.pdf"

    code, _stdout, stderr = run_main([
        '--input', str(tmp_path / "missing.pdf"),
        '--output', str(output),
        '--stamp-image', str(image),
        '--quiet',
    ])

    assert code == 1
    assert FAILURE_PREFIX in stderr
    assert not output.exists()


def test_cli_short_document_writes_nothing(tmp_path):
    source, image = write_inputs(tmp_path, pages=[["Only"], ["Two pages"]])
    output = tmp_path / "never.pdf"

    code, _stdout, stderr = run_main([
        '--input', str(source),
        '--output', str(output),
        '--stamp-image', str(image),
        '--quiet',
    ])

    assert code == 1
    assert FAILURE_PREFIX in stderr
    assert not output.exists()
    assert list(tmp_path.glob(".*.pdf")) == []


def test_cli_stamp_too_large_for_page(tmp_path):
    source = build_report_pdf(tmp_path / "tiny.pdf", [[] for _ in range(4)], page_size=(40, 40))
    image = build_stamp_image(tmp_path / "draft-stamp.png")
    output = tmp_path / "never.pdf"

    code, _stdout, stderr = run_main([
        '--input', str(source),
        '--output', str(output),
        '--stamp-image', str(image),
        '--quiet',
    ])

    assert code == 1
    assert "does not fit" in stderr
    assert not output.exists()


def test_cli_unknown_engine(tmp_path):
    source, image = write_inputs(tmp_path)

    code, _stdout, stderr = run_main([
        '--input', str(source),
        '--output', str(tmp_path / "never.pdf"),
        '--stamp-image', str(image),
        '--engine', 'no-such-engine',
        '--quiet',
    ])

    assert code == 2
    assert FAILURE_PREFIX in stderr


def main_tests():
    """Run all pipeline integration tests."""
    return run_functional_tests("Pipeline Integration Test", [
        test_pipeline_annotates_report,
        test_annotate_before_initialize_rejected,
        test_missing_config_rejected,
        test_cli_success,
        test_cli_missing_input,
        test_cli_short_document_writes_nothing,
        test_cli_stamp_too_large_for_page,
        test_cli_unknown_engine,
    ])


if __name__ == "__main__":
    sys.exit(main_tests())
