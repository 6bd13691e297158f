#!/usr/bin/env python3
"""
Install the converter and the Chromium build its full-fidelity engine needs.
"""

import subprocess
import sys


def run_command(cmd: str, description: str) -> bool:
    """Run a command and return success status."""
    print(f"Installing {description}...")
    try:
        subprocess.run(cmd, shell=True, check=True, capture_output=True, text=True)
        print(f"✓ {description} installed successfully")
        return True
    except subprocess.CalledProcessError as e:
        print(f"✗ Failed to install {description}: {e.stderr}")
        return False


def main():
    """Main setup function."""
    print("Setting up markdown to PDF engine...")

    if sys.version_info < (3, 9):
        print("Error: Python 3.9 or higher is required")
        sys.exit(1)

    print(f"✓ Python {sys.version_info.major}.{sys.version_info.minor} detected")

    print("\nInstalling Python package...")
    if not run_command(f"{sys.executable} -m pip install -e .", "markdown-pdf-engine"):
        print("Failed to install Python dependencies")
        sys.exit(1)

    # Chromium is optional: without it the constrained, remote and minimal engines still work
    print("\nInstalling Playwright browsers...")
    if not run_command(f"{sys.executable} -m playwright install chromium", "Playwright Chromium"):
        print("⚠ Chromium could not be installed; the full-fidelity engine will be skipped")

    print("\nChecking render engines...")
    from markdown_pdf_engine.dependencies import check_dependencies

    if check_dependencies():
        print("\n✓ Ready!")
        print("\nYou can now run the converter with:")
        print("python convert_md_to_pdf.py")
    else:
        print("\n⚠ No render engine is usable. Check the messages above.")


if __name__ == "__main__":
    main()
