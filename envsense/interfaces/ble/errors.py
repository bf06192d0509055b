"""Error types and handling utilities for BLE operations."""

import asyncio
from concurrent.futures import TimeoutError as FutureTimeoutError

from bleak.exc import BleakDBusError, BleakError

from envsense.interfaces.ble.constants import logger

__all__ = ["BLEError", "BLEErrorHandler", "DecodeError", "TRANSPORT_ERRORS"]


class BLEError(Exception):
    """An exception class for BLE errors."""


class DecodeError(ValueError):
    """Raised when a characteristic payload is too short for its sensor kind."""


# Failures that are expected while talking to a flaky peripheral.
TRANSPORT_ERRORS = (
    BLEError,
    BleakError,
    BleakDBusError,
    OSError,
    asyncio.TimeoutError,
    FutureTimeoutError,
)


class BLEErrorHandler:
    """Helper class for consistent error handling in BLE operations.

    This class provides static methods for standardized error handling patterns
    throughout the BLE interface. It centralizes error logging and recovery strategies.

    Features:
        - Safe execution with fallback return values
        - Consistent error logging and classification
        - Cleanup operations that never raise exceptions
    """

    @staticmethod
    def safe_execute(
        func,
        default_return=None,
        log_error: bool = True,
        error_msg: str = "Error in operation",
    ):
        """Execute a callable and return its result while converting handled exceptions into a default value.

        Args:
        ----
            func (callable): A zero-argument callable to execute.
            default_return: Value to return if execution fails; defaults to None.
            log_error (bool): If True, log caught exceptions; defaults to True.
            error_msg (str): Message used when logging errors; defaults to "Error in operation".

        Returns:
        -------
            The value returned by `func()` on success, or `default_return` if a handled exception occurs.

        Notes:
        -----
            Transport errors and DecodeError are logged at debug level; anything
            else is logged with a traceback.

        """
        try:
            return func()
        except (*TRANSPORT_ERRORS, DecodeError) as e:
            if log_error:
                logger.debug("%s: %s", error_msg, e)
            return default_return
        except Exception:
            if log_error:
                logger.exception("%s", error_msg)
            return default_return

    @staticmethod
    def safe_cleanup(func, cleanup_name: str = "cleanup operation"):
        """Safely execute cleanup operations without raising exceptions."""
        try:
            func()
        except Exception as e:  # noqa: BLE001 - cleanup paths must not raise
            logger.debug("Error during %s: %s", cleanup_name, e)
