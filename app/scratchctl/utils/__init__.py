"""Utility modules for scratchctl.

This module exports commonly used utility functions.
"""

from scratchctl.utils.formatting import (
    console,
    err_console,
    format_size,
    print_error,
    print_info,
    print_success,
    print_warning,
)

__all__ = [
    "console",
    "err_console",
    "format_size",
    "print_error",
    "print_info",
    "print_success",
    "print_warning",
]
