"""Centralized error reporting and retry helpers."""

from __future__ import annotations

import asyncio
import logging
import platform
import traceback
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Protocol, TypeVar

from vcarpool.exceptions import AppError, Severity
from vcarpool.types import ErrorContext, ErrorReport

logger = logging.getLogger(__name__)

T = TypeVar("T")

USER_AGENT = f"vcarpool-client python/{platform.python_version()}"


class ErrorReporter(Protocol):
    """Sink for structured error reports."""

    async def report_error(self, report: ErrorReport) -> None: ...


class ConsoleErrorReporter:
    """Development sink: logs the whole report."""

    async def report_error(self, report: ErrorReport) -> None:
        logger.error(
            "Error report [%s] %s: %s (code=%s) context=%s",
            report.severity.value.upper(),
            report.type,
            report.message,
            report.code or "N/A",
            report.context.model_dump(exclude_none=True),
        )
        if report.stack:
            logger.error("Stack:\n%s", report.stack)


class ProductionErrorReporter:
    """Production sink. Logs one line until a telemetry backend is wired in."""

    async def report_error(self, report: ErrorReport) -> None:
        logger.error("%s: %s", report.type, report.message)


def _format_stack(error: BaseException) -> str | None:
    # A freshly classified error has no traceback of its own yet; its cause does.
    if error.__traceback__ is None and error.__cause__ is None:
        return None
    return "".join(traceback.format_exception(type(error), error, error.__traceback__))


def build_report(error: BaseException, **context: Any) -> ErrorReport:
    """Create the standard report for *error*.

    Unknown keys in *context* are dropped; ``url`` defaults to ``"n/a"``.
    """
    ctx = ErrorContext(
        timestamp=datetime.now(tz=timezone.utc).isoformat(),
        user_agent=context.pop("user_agent", USER_AGENT),
        url=context.pop("url", "n/a"),
        **{k: v for k, v in context.items() if k in ErrorContext.model_fields and k != "timestamp"},
    )
    if isinstance(error, AppError):
        return ErrorReport(
            message=error.message,
            stack=_format_stack(error),
            type=type(error).__name__,
            severity=error.severity,
            code=error.code,
            context=ctx,
        )
    return ErrorReport(
        message=str(error),
        stack=_format_stack(error),
        type=type(error).__name__,
        severity=Severity.MEDIUM,
        context=ctx,
    )


class ErrorHandler:
    """Routes errors to the configured reporter.

    Reporting is best-effort: a reporter that blows up is logged and
    otherwise ignored so it can never mask the original error.
    """

    def __init__(self, reporter: ErrorReporter | None = None, *, environment: str = "development") -> None:
        if reporter is None:
            reporter = ProductionErrorReporter() if environment == "production" else ConsoleErrorReporter()
        self.reporter = reporter

    async def handle_error(self, error: BaseException, **context: Any) -> ErrorReport:
        report = build_report(error, **context)
        try:
            await self.reporter.report_error(report)
        except Exception:  # noqa: BLE001
            logger.exception("failed to report error")
        return report

    async def with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        max_retries: int = 3,
        delay: float = 1.0,
    ) -> T:
        """Run *operation*, retrying retryable failures with linear backoff.

        Waits ``delay * attempt`` seconds between attempts. Non-retryable
        AppErrors are raised at once; the last failure is reported before it
        is raised.
        """
        for attempt in range(1, max_retries + 1):
            try:
                return await operation()
            except Exception as exc:
                if isinstance(exc, AppError) and not exc.is_retryable:
                    raise
                if attempt == max_retries:
                    await self.handle_error(
                        exc,
                        error_boundary="RetryOperation",
                        component_stack=f"Final attempt {attempt}/{max_retries}",
                    )
                    raise
                logger.debug("attempt %d/%d failed (%s); retrying", attempt, max_retries, exc)
                await asyncio.sleep(delay * attempt)
        raise ValueError("max_retries must be at least 1")

    async def safe_async(
        self,
        operation: Callable[[], Awaitable[T]],
        fallback: T | None = None,
        **context: Any,
    ) -> T | None:
        """Run *operation*; on failure report it and return *fallback*."""
        try:
            return await operation()
        except Exception as exc:
            await self.handle_error(exc, **context)
            return fallback
