"""
Conversion entry points.

``convert`` turns one RenderRequest into a RenderOutcome. It never raises for
expected failures: invalid input, an unknown template and every engine
failure come back as a failed outcome with an ErrorKind.

``MarkdownToPDFConverter`` is the batch front end used by the command line:
it converts every markdown file of a directory, in parallel threads that
share one ConversionContext.
"""

import asyncio
import sys
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import List, Optional, Tuple

from colorama import Fore, Style
from tqdm import tqdm

from .config import Config
from .context import ConversionContext
from .dependencies import check_dependencies
from .errors import ConversionError, ErrorKind, InvalidRequest
from .models import PAGE_SIZES, Margins, RenderOptions, RenderOutcome, RenderRequest, StyledMarkup
from .parser import parse
from .renderer import render
from .templates import TemplateId


def _input_size(markup) -> int:
    if isinstance(markup, (bytes, bytearray)):
        return len(markup)
    return len(str(markup).encode("utf-8", errors="replace"))


def prepare(request: RenderRequest, context: ConversionContext) -> Tuple[StyledMarkup, List[str]]:
    """Parse and style the request's markup.

    Raises:
        InvalidRequest: markup larger than the configured limit
        UnknownTemplate: template id not in the registry
    """
    limit = context.config.get_max_input_bytes()
    size = _input_size(request.markup)
    if limit and size > limit:
        raise InvalidRequest(f"Markup is {size} bytes; the limit is {limit} bytes")

    template = context.registry.get(request.template)
    tree = parse(request.markup)
    warnings = [f"{ErrorKind.PARSE_DEGRADED.value}: {warning}" for warning in tree.warnings]
    for warning in warnings:
        context.logger.log_warning(warning)
    return render(tree, template, request.options), warnings


async def convert_async(request: RenderRequest, context: ConversionContext) -> RenderOutcome:
    """Convert one request on the running event loop."""
    try:
        styled, warnings = prepare(request, context)
    except ConversionError as e:
        context.logger.log_error(f"Rejected request: {e}")
        return RenderOutcome.failure(e.kind, e.message)
    return await context.controller.run(styled, request.options, warnings)


def convert(request: RenderRequest, context: ConversionContext) -> RenderOutcome:
    """Convert one request in its own event loop. Safe to call from many threads.

    The context is built once per process with ``ConversionContext.create`` and
    shared, so every caller draws from the same engine pool.
    """
    return asyncio.run(convert_async(request, context))


class MarkdownToPDFConverter:
    """Converts every markdown file in a directory to PDF."""

    def __init__(self, config: Config, context: Optional[ConversionContext] = None, max_workers: int = 4,
                 save_html: bool = False):
        self.config = config
        self.context = context or ConversionContext.create(config)
        self.logger = self.context.logger
        self.source_dir = config.get_source_dir()
        self.output_dir = config.get_output_dir()
        self.max_workers = max(1, max_workers)
        self.save_html = save_html

        # Validate once up front so a bad option fails before any file is read
        self.template = TemplateId(config.get_template())
        self.options = RenderOptions(
            page_size=config.get_page_size(),
            margins=Margins.parse(config.get_margins()),
            header_footer=config.get_header_footer(),
            overall_deadline_ms=config.get_overall_deadline_ms(),
        )

        self.pdf_dir = self.output_dir / "pdf"
        self.pdf_dir.mkdir(parents=True, exist_ok=True)
        self.html_dir = self.output_dir / "html" if save_html else None
        if self.html_dir:
            self.html_dir.mkdir(parents=True, exist_ok=True)

    def _convert_single_file(self, md_file: Path) -> Tuple[str, str]:
        """Convert a single markdown file to PDF. Returns (status, filename).

        Status is one of: 'converted', 'failed'.
        """
        filename = md_file.name
        try:
            markup = md_file.read_text(encoding="utf-8", errors="replace")
            request = RenderRequest(markup=markup, template=self.template, options=self.options)

            if self.html_dir:
                styled, _ = prepare(request, self.context)
                output_html = self.html_dir / f"{md_file.stem}.html"
                output_html.write_text(styled.html, encoding="utf-8")
                self.logger.log_debug(f"Saved HTML to {output_html}")

            outcome = convert(request, self.context)
            if not outcome.ok:
                self.logger.log_error(f"Failed to convert {filename}: {outcome.error_kind.value}: {outcome.cause}")
                return "failed", filename

            output_pdf = self.pdf_dir / f"{md_file.stem}.pdf"
            output_pdf.write_bytes(outcome.payload)
            self.logger.log_success(f"Converted {filename} to {output_pdf.name} ({outcome.strategy} tier)")
            return "converted", filename
        except (OSError, ConversionError) as e:
            self.logger.log_error(f"Error processing {filename}: {e}")
            return "failed", filename

    def convert_all(self, parallel: bool = True) -> Tuple[int, int]:
        """Convert all markdown files in the source directory. Returns (converted, failed)."""
        md_files = sorted(f for f in self.source_dir.glob("*.md") if f.name != "README.md")

        if not md_files:
            self.logger.log_warning("No markdown files found in source directory.")
            return 0, 0

        self.logger.log_info("Starting markdown to PDF conversion...")
        self.logger.log_info(f"Source directory: {self.source_dir.absolute()}")
        self.logger.log_info(f"Output directory: {self.pdf_dir.absolute()}")
        self.logger.log_info(f"Found {len(md_files)} markdown files: {[f.name for f in md_files]}")

        if parallel and len(md_files) > 1:
            self.logger.log_info(f"Using parallel processing with {self.max_workers} workers")
            counts = self._convert_all_parallel(md_files)
        else:
            self.logger.log_info("Using sequential processing")
            counts = self._convert_all_sequential(md_files)

        self.logger.log_info(f"PDF files saved to: {self.pdf_dir.absolute()}")
        return counts

    def _convert_all_parallel(self, md_files: List[Path]) -> Tuple[int, int]:
        """Convert files on a thread pool; all workers share the engine pool limits."""
        success_count = 0
        failed_count = 0

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            future_to_file = {executor.submit(self._convert_single_file, md_file): md_file for md_file in md_files}

            with tqdm(total=len(md_files), desc="Converting files", unit="file") as pbar:
                for future in as_completed(future_to_file):
                    status, filename = future.result()
                    if status == "converted":
                        success_count += 1
                        pbar.set_postfix_str(f"Converted: {filename}")
                    else:
                        failed_count += 1
                        pbar.set_postfix_str(f"Failed: {filename}")
                    pbar.update(1)

        self.logger.log_success(f"Parallel conversion complete: {success_count} files converted, "
                                f"{failed_count} files failed ({success_count + failed_count}/{len(md_files)} total)")
        return success_count, failed_count

    def _convert_all_sequential(self, md_files: List[Path]) -> Tuple[int, int]:
        success_count = 0
        failed_count = 0

        for md_file in tqdm(md_files, desc="Converting files", unit="file"):
            status, _ = self._convert_single_file(md_file)
            if status == "converted":
                success_count += 1
            else:
                failed_count += 1

        self.logger.log_success(f"Sequential conversion complete: {success_count} files converted, "
                                f"{failed_count} files failed ({success_count + failed_count}/{len(md_files)} total)")
        return success_count, failed_count


def main():
    """Main entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="Convert markdown files to PDF, falling back through render engines until one succeeds")
    parser.add_argument("--source", default=None, help="Source directory (default: from env/docs)")
    parser.add_argument("--output-dir", default=None, help="Output directory (default: from env/output). PDF files will be saved in output/pdf/ subfolder")
    parser.add_argument("--template", default=None, choices=[t.value for t in TemplateId], help="Style template (default: document)")
    parser.add_argument("--page-size", default=None, choices=list(PAGE_SIZES), help="Page size (default: A4)")
    parser.add_argument("--margins", default=None, help="Page margins in CSS format (default: '1in 0.75in'). Range: 0-3 inches. Use 1, 2, or 4 values. Units: in, cm, mm, pt, px")
    parser.add_argument("--no-header-footer", action="store_true", help="Do not print page numbers in the footer")
    parser.add_argument("--deadline-ms", type=int, default=None, help="Time budget per document across all engines, in milliseconds (default: 25000)")
    parser.add_argument("--engines", default=None, help="Comma separated engine tiers to use instead of probing: full,constrained,remote,minimal")
    parser.add_argument("--max-workers", type=int, default=4, help="Maximum number of parallel workers for PDF conversion (default: 4)")
    parser.add_argument("--no-parallel", action="store_true", help="Disable parallel processing and use sequential conversion")
    parser.add_argument("--save-html", action="store_true", help="Save the intermediate HTML files alongside PDFs (output/html/)")
    parser.add_argument("--check-deps", action="store_true", help="Report which render engines work in this environment and exit")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging for detailed output")

    args = parser.parse_args()

    # Build config from CLI args
    cli_config = {
        "source_dir": args.source,
        "output_dir": args.output_dir,
        "template": args.template,
        "page_size": args.page_size,
        "margins": args.margins,
        "overall_deadline_ms": args.deadline_ms,
        "engines": args.engines,
    }
    if args.no_header_footer:
        cli_config["header_footer"] = False
    if args.debug:
        cli_config["debug"] = True

    try:
        config = Config(cli_config)
        if args.check_deps:
            sys.exit(0 if check_dependencies(config) else 1)
        if not check_dependencies(config, check_optional=False):
            sys.exit(1)
        converter = MarkdownToPDFConverter(config, max_workers=args.max_workers, save_html=args.save_html)
    except ValueError as e:
        print(f"{Fore.RED}[ERROR]{Style.RESET_ALL} {e}")
        sys.exit(1)

    _, failed = converter.convert_all(parallel=not args.no_parallel)
    if failed:
        sys.exit(1)


if __name__ == "__main__":
    main()
