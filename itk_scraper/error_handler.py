"""
Error handling and logging utilities for the Insurance Toolkits scraper
"""

import asyncio
import logging
import sys
import traceback
from datetime import datetime
from functools import wraps
from pathlib import Path
from typing import Any, Callable, Optional

from .config import LOG_FILENAME
from .errors import classify_error

LOGGER_NAME = "itk_scraper"
LOG_FORMAT = '%(asctime)s - %(levelname)s - %(name)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

logger = logging.getLogger(__name__)


def setup_logging(output_folder: str = "output", level: int = logging.INFO) -> logging.Logger:
    """Attach console and file handlers to the package logger (once)"""
    package_logger = logging.getLogger(LOGGER_NAME)
    package_logger.setLevel(level)

    if getattr(package_logger, "_itk_configured", False):
        return package_logger

    folder = Path(output_folder)
    folder.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    file_handler = logging.FileHandler(folder / LOG_FILENAME, encoding='utf-8')
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)

    package_logger.addHandler(file_handler)
    package_logger.addHandler(console_handler)
    package_logger._itk_configured = True
    return package_logger


class ErrorHandler:
    """Centralized failure logging and screenshot capture"""

    def __init__(self, output_folder: str = "output", screenshots: bool = True):
        self.output_folder = Path(output_folder)
        self.screenshots = screenshots
        self.screenshot_folder = self.output_folder / "screenshots"

    def log_error(self, error_type: str, message: str, exception: Optional[BaseException] = None) -> str:
        """Log error with full traceback"""
        error_msg = f"[{error_type}] {message}"

        if exception is not None:
            error_msg += f"\nException: {exception}"
            tb = "".join(traceback.format_exception(type(exception), exception, exception.__traceback__))
            error_msg += f"\nTraceback:\n{tb}"

        logger.error(error_msg)
        return error_msg

    async def capture_screenshot(self, page, error_type: str = "ERROR") -> Optional[str]:
        """Capture screenshot with timestamp"""
        if page is None or not self.screenshots:
            return None

        try:
            self.screenshot_folder.mkdir(parents=True, exist_ok=True)
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            filepath = self.screenshot_folder / f"error_{error_type}_{timestamp}.png"
            await page.screenshot(path=str(filepath), full_page=True)
            logger.info(f"Screenshot saved: {filepath}")
            return str(filepath)
        except Exception as e:
            self.log_error("SCREENSHOT_ERROR", f"Failed to capture screenshot: {e}")
            return None

    async def handle_failure(self, page, error: BaseException, context: str = "") -> dict:
        """Log a failed automation run and capture the page it left behind"""
        error_type = classify_error(error)
        message = f"{context}: {error}" if context else str(error)

        self.log_error(error_type, message, error)
        screenshot = await self.capture_screenshot(page, error_type)

        return {
            'error_type': error_type,
            'message': message,
            'context': context,
            'screenshot': screenshot,
            'timestamp': datetime.now().isoformat(),
        }


def retry_with_backoff(
    max_retries: int = 3,
    initial_delay: float = 1.0,
    backoff_factor: float = 2.0,
    exceptions: tuple = (Exception,),
    on_retry: Optional[Callable[[BaseException, int], Any]] = None,
):
    """
    Decorator for retrying coroutine functions with exponential backoff

    Args:
        max_retries: Maximum number of retry attempts
        initial_delay: Initial delay in seconds
        backoff_factor: Multiplier for delay after each retry
        exceptions: Tuple of exceptions to catch and retry on
        on_retry: Called with (exception, attempt) before sleeping
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            delay = initial_delay

            for attempt in range(max_retries + 1):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    if attempt >= max_retries:
                        logger.error(f"All {max_retries + 1} attempts failed: {e}")
                        raise
                    logger.warning(
                        f"Attempt {attempt + 1}/{max_retries + 1} failed: {e}. "
                        f"Retrying in {delay:.2f} seconds..."
                    )
                    if on_retry is not None:
                        on_retry(e, attempt + 1)
                    await asyncio.sleep(delay)
                    delay *= backoff_factor

        return wrapper
    return decorator
