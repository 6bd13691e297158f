#!/usr/bin/env python3
"""
Markdown to PDF converter.

Renders with headless Chromium when it can and falls back to WeasyPrint, a
remote rendering service, and finally a plain-text PDF canvas, so every run
produces a document within its time budget.
"""

from markdown_pdf_engine.converter import main

if __name__ == "__main__":
    main()
