#!/usr/bin/env python3
"""
Marginalia v0.1: review annotations for financial PDF reports.

This is the main orchestrator that wires the annotation stages to a PDF
engine and runs them against one document.

Pipeline stages (strictly sequential, one shared document):
1. Stamp: reviewer text stamp + low-opacity image stamp on pages 1-4
2. Links: URI links over lines that mention known reference phrases
3. Note: one sticky note at the first "Q3" in the document
4. Save: linearized copy written to the output path

The engine and the open document live inside an EngineSession, which
closes the document and shuts the engine down on every exit path.

Usage:
    from marginalia import MarginaliaPipeline

    pipeline = MarginaliaPipeline()
    pipeline.initialize()
    pipeline.annotate_pdf(Path("finance-report.pdf"), Path("finance-report-annotated.pdf"))

Or from command line:
    python marginalia.py
    python marginalia.py --input report.pdf --output annotated.pdf
"""

import json
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from engines.pdf import PDF_REGISTRY, EngineSession
from processors import LinkInjector, NotePlacer, Stamper
from utilities import CPU_and_Mem_usage, Print, set_verbose

FAILURE_PREFIX = "Annotation run failed:"


class MarginaliaPipeline:
    """
    Main orchestrator for Marginalia annotation runs.

    Attributes:
        config: Loaded configuration dictionary
        engine_name: Registered PDF engine used for runs
        license_key: Engine credential read from the environment (may be None)
        stamper: Stamp stage processor
        link_injector: Link stage processor
        note_placer: Note stage processor
    """

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize pipeline with configuration.

        Args:
            config_path: Path to config.json. If None, uses default location.
        """
        self.config = self._load_config(config_path)
        self.engine_name = None
        self.license_key = None
        self.stamper = None
        self.link_injector = None
        self.note_placer = None
        self._initialized = False

    def _load_config(self, config_path: Optional[Path]) -> dict:
        """Load configuration from JSON file."""
        if config_path is None:
            config_path = Path(__file__).parent / "config" / "config.json"

        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(
                f"Configuration file not found: {config_path}\n"
                f"Create config/config.json or specify path with config_path parameter."
            )

        with open(config_path) as f:
            config = json.load(f)

        Print("DEBUG", f"Loaded configuration v{config.get('version', 'unknown')}")
        return config

    def initialize(self, engine_name: Optional[str] = None) -> None:
        """
        Resolve the PDF engine and its credential, and build the stages.

        This must be called before annotate_pdf().

        Args:
            engine_name: Registered PDF engine (default: from config, 'pymupdf')

        Raises:
            RuntimeError: If the engine is not registered
            ValueError: If a stage configuration is invalid
        """
        Print("STARTING", f"Initializing Marginalia v{self.config.get('version', '0.1.0')} pipeline")

        # Credentials may live in a .env file next to the working directory
        load_dotenv()

        engine_config = self.config.get('engine', {})
        self.engine_name = engine_name or engine_config.get('name', 'pymupdf')
        if self.engine_name not in PDF_REGISTRY:
            available = ', '.join(PDF_REGISTRY.keys()) if PDF_REGISTRY else 'none'
            raise RuntimeError(
                f"PDF engine '{self.engine_name}' is unavailable. Available engines: {available}"
            )

        license_env = engine_config.get('license_env', 'MARGINALIA_LICENSE_KEY')
        self.license_key = os.environ.get(license_env)
        if self.license_key:
            Print("DEBUG", f"License key read from ${license_env}")
        else:
            Print("DEBUG", f"No license key in ${license_env}")

        stages = self.config.get('stages', {})
        self.stamper = Stamper(stages.get('stamp', {}))
        self.link_injector = LinkInjector(stages.get('links', {}))
        self.note_placer = NotePlacer(stages.get('note', {}))
        Print("SUCCESS", f"Stages: {self.stamper.name}, {self.link_injector.name}, {self.note_placer.name}")

        self._initialized = True
        Print("SUCCESS", "Pipeline initialized")

    def _configured_path(self, key: str, override: Optional[Path]) -> Path:
        if override is not None:
            return Path(override)
        paths = self.config.get('paths', {})
        if key not in paths:
            raise ValueError(f"No '{key}' path configured")
        return Path(paths[key])

    def annotate_pdf(
        self,
        input_pdf: Optional[Path] = None,
        output_pdf: Optional[Path] = None,
        stamp_image: Optional[Path] = None
    ) -> dict:
        """
        Run all stages against one PDF and save the result.

        Args:
            input_pdf: Source PDF (default: paths.input from config)
            output_pdf: Destination PDF (default: paths.output from config)
            stamp_image: Image for the image stamp (default: paths.stamp_image)

        Returns:
            dict with run statistics:
                - pages: Number of pages in the document
                - stamped_pages: Page numbers that received stamps
                - links_added: Number of link annotations created
                - note_page: Page holding the sticky note, or None
                - annotations: Document-wide {'links', 'notes'} counts before save
                - input_size: Input file size in bytes
                - output_size: Output file size in bytes
                - processing_time: Time in seconds

        Raises:
            RuntimeError: If pipeline not initialized or the engine fails
            FileNotFoundError: If the input PDF or stamp image doesn't exist
            ValueError: If the stamp page range does not fit the document
        """
        if not self._initialized:
            raise RuntimeError("Pipeline not initialized. Call initialize() first.")

        input_pdf = self._configured_path('input', input_pdf)
        output_pdf = self._configured_path('output', output_pdf)
        stamp_image = self._configured_path('stamp_image', stamp_image)

        if not input_pdf.exists():
            raise FileNotFoundError(f"Input PDF not found: {input_pdf}")

        start_time = datetime.now()
        input_size = input_pdf.stat().st_size

        Print("STATE", f"Processing: {input_pdf.name}")
        Print("INFO", f"Input size: {input_size / (1024*1024):.2f} MB")

        engine_config = self.config.get('pdf_engines', {}).get(self.engine_name, {})
        linearize = self.config.get('save', {}).get('linearize', True)

        with EngineSession(self.engine_name, engine_config, self.license_key) as session:
            document = session.open_document(input_pdf)
            total_pages = document.page_count
            Print("INFO", f"Pages: {total_pages}")

            Print("PROGRESS", "Stage 1/4: Stamping...")
            stamped_pages = self.stamper.apply(document, stamp_image)

            Print("PROGRESS", "Stage 2/4: Adding links...")
            links_added = self.link_injector.process_document(document)

            Print("PROGRESS", "Stage 3/4: Adding sticky note...")
            note_match = self.note_placer.apply(document)

            annotations = document.annotation_counts()
            Print("DEBUG", f"Annotations before save: {annotations['links']} links, {annotations['notes']} notes")

            Print("PROGRESS", "Stage 4/4: Saving...")
            document.save(output_pdf, linearize=linearize)

        end_time = datetime.now()
        output_size = output_pdf.stat().st_size
        processing_time = (end_time - start_time).total_seconds()

        stats = {
            'pages': total_pages,
            'stamped_pages': stamped_pages,
            'links_added': links_added,
            'note_page': note_match.page_number if note_match else None,
            'annotations': annotations,
            'input_size': input_size,
            'output_size': output_size,
            'processing_time': processing_time
        }

        Print("COMPLETED", f"Saved: {output_pdf}")
        Print("INFO", f"Output size: {output_size / (1024*1024):.2f} MB")
        Print("INFO", f"Time: {processing_time:.1f} seconds")
        Print("DEBUG", CPU_and_Mem_usage())

        return stats


def main(argv: Optional[List[str]] = None) -> int:
    """Command-line entry point."""
    import argparse

    parser = argparse.ArgumentParser(
        description='Marginalia v0.1: stamps, reference links and review notes for PDF reports',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python marginalia.py
  python marginalia.py --input report.pdf --output report-annotated.pdf
  python marginalia.py --stamp-image approved.png --quiet
        """
    )

    parser.add_argument('--input', type=Path, default=None, help='Input PDF file (default: from config)')
    parser.add_argument('--output', type=Path, default=None, help='Output PDF file (default: from config)')
    parser.add_argument('--stamp-image', type=Path, default=None, help='Image stamp file (default: from config)')
    parser.add_argument('--engine', default=None, help='PDF engine (default: from config)')
    parser.add_argument('--config', type=Path, default=None, help='Path to config.json')
    parser.add_argument('--quiet', action='store_true', help='Hide DEBUG messages')

    args = parser.parse_args(argv)
    set_verbose(not args.quiet)

    try:
        pipeline = MarginaliaPipeline(config_path=args.config)
        pipeline.initialize(engine_name=args.engine)

        pipeline.annotate_pdf(
            input_pdf=args.input,
            output_pdf=args.output,
            stamp_image=args.stamp_image
        )

        return 0

    except (FileNotFoundError, ValueError) as e:
        Print("FAILURE", f"{FAILURE_PREFIX} {e}")
        return 1
    except RuntimeError as e:
        Print("FAILURE", f"{FAILURE_PREFIX} {e}")
        return 2
    except KeyboardInterrupt:
        Print("WARNING", "Interrupted by user")
        return 130
    except Exception as e:
        Print("FAILURE", f"{FAILURE_PREFIX} unexpected error: {e}")
        import traceback
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
