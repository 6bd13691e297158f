"""
Colour-coded console logging shared by the pool, controller and engines.
"""

import threading

from colorama import Fore, Style, init

# Initialize colorama for cross-platform colored output
init(autoreset=True)


class ConsoleLogger:
    """Thread-safe coloured console logger."""

    def __init__(self, debug: bool = False):
        self.debug = debug
        self._lock = threading.Lock()

    def _emit(self, line: str) -> None:
        with self._lock:
            print(line)

    def log_debug(self, message: str) -> None:
        """Log debug message with color (only if debug mode is enabled)."""
        if self.debug:
            self._emit(f"{Fore.CYAN}[DEBUG]{Style.RESET_ALL} {message}")

    def log_info(self, message: str) -> None:
        """Log info message with color."""
        self._emit(f"{Fore.GREEN}[INFO]{Style.RESET_ALL} {message}")

    def log_warning(self, message: str) -> None:
        """Log warning message with color."""
        self._emit(f"{Fore.YELLOW}[WARNING]{Style.RESET_ALL} {message}")

    def log_error(self, message: str) -> None:
        """Log error message with color."""
        self._emit(f"{Fore.RED}[ERROR]{Style.RESET_ALL} {message}")

    def log_success(self, message: str) -> None:
        """Log success message with color."""
        self._emit(f"{Fore.GREEN}[OK]{Style.RESET_ALL} {message}")
