"""
Structured logging setup using structlog.
Provides JSON or console output and a context-aware logger for price checks.
"""

import logging
import sys
from pathlib import Path
from typing import Optional
import structlog
from structlog.stdlib import LoggerFactory


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    log_file: Optional[str] = None,
    debug: bool = False
) -> None:
    """
    Set up structured logging with configurable output formats.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Output format (json or console)
        log_file: Optional log file path
        debug: Add call-site information to every event
    """

    # Configure standard library logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if debug:
        processors.append(structlog.processors.CallsiteParameterAdder())

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    # Set up file logging if specified
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(getattr(logging, log_level.upper()))
        file_handler.setFormatter(logging.Formatter('%(message)s'))

        logging.getLogger().addHandler(file_handler)

    logger = structlog.get_logger(__name__)
    logger.info(
        "Logging system initialized",
        level=log_level,
        format=log_format,
        file=str(log_file) if log_file else None,
        debug=debug
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


class CheckLogger:
    """
    Specialized logger for price check cycles with context management.
    """

    def __init__(self, name: str = "price_check"):
        self.logger = structlog.get_logger(name)
        self.context = {}

    def bind_context(self, **kwargs) -> 'CheckLogger':
        """
        Bind context variables to the logger.

        Args:
            **kwargs: Context variables to bind

        Returns:
            Self for method chaining
        """
        self.context.update(kwargs)
        return self

    def clear_context(self) -> 'CheckLogger':
        """Clear all context variables."""
        self.context.clear()
        return self

    def log_check_start(self, url: str, trigger: str) -> None:
        """Log the start of an extraction cycle."""
        self.logger.info(
            "Checking price",
            url=url,
            trigger=trigger,
            **self.context
        )

    def log_check_success(self, price: float, strategy: str) -> None:
        """Log a recorded price."""
        self.logger.info(
            "Recorded new price",
            price=price,
            strategy=strategy,
            **self.context
        )

    def log_check_failure(self, failure: Optional[str], error: str) -> None:
        """Log a failed extraction cycle."""
        self.logger.error(
            "Error checking price",
            failure=failure,
            error=error,
            **self.context
        )

    def log_escalation(self, url: str, status_code: Optional[int]) -> None:
        """Log a switch from the fetch strategy to browser rendering."""
        self.logger.warning(
            "Website is blocking access, retrying with browser rendering",
            url=url,
            status_code=status_code,
            **self.context
        )
