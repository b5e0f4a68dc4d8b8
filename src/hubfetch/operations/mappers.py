"""
Error mapping and CLI utilities.

Provides centralized exception-to-exit-code mapping and CLI command wrappers
to ensure consistent error handling across all Typer commands.
"""
from __future__ import annotations

import typer
from typing import Callable, TypeVar

from ..types import DownloadResult

T = TypeVar('T')

EXIT_CODE_CANCELLED = 130

# Keyed by class name so the mapping needs no imports from lower layers
EXIT_CODES = {
    "MetadataError": 1,
    "ValidationError": 2,
    "ValueError": 2,
    "TransferError": 3,
    "FinalizationError": 4,
    "CacheLayoutError": 5,
    "CancelledError": EXIT_CODE_CANCELLED,
}


def exit_code_for(exc: BaseException) -> int:
    """
    Map exception to standardized exit code.

    Returns:
    - 1: Metadata could not be resolved (MetadataError)
    - 2: Invalid arguments or configuration (ValueError)
    - 3: Transfer failure (TransferError) or unknown error
    - 4: Promotion into the cache failed (FinalizationError)
    - 5: Cache layout could not be prepared (CacheLayoutError)
    - 130: Interrupted (CancelledError)

    Args:
        exc: Exception to map

    Returns:
        Exit code, with 3 as fallback for unknown exceptions
    """
    return EXIT_CODES.get(type(exc).__name__, 3)


def exit_code_for_result(result: DownloadResult) -> int:
    """Exit code for a download result (0 on success)."""
    if result.success:
        return 0
    if result.cancelled:
        return EXIT_CODE_CANCELLED
    return EXIT_CODES.get(result.error_type or "", 3)


def run_and_exit(func: Callable[[], T]) -> T:
    """
    Unified error wrapper for CLI commands.

    Executes the given function and maps any exceptions to appropriate
    exit codes using typer.Exit. This centralizes error handling so
    CLI commands don't need individual try/except blocks.

    Args:
        func: Function to execute

    Returns:
        Function result if successful

    Raises:
        typer.Exit: With appropriate exit code if function raises exception
    """
    try:
        return func()
    except typer.Exit:
        raise
    except KeyboardInterrupt as e:
        raise typer.Exit(code=EXIT_CODE_CANCELLED) from e
    except Exception as e:
        from .printers import print_error
        print_error(str(e))
        raise typer.Exit(code=exit_code_for(e)) from e
