from __future__ import annotations

import os
import sys
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from loguru import Logger

from loguru import logger

DEFAULT_LOG_DIR = Path(
    os.environ.get(
        "QCOW2OVA_LOG_DIR",
        Path.home() / ".local" / "state" / "qcow2ova" / "logs",
    )
)

# Words that must never reach a sink verbatim (registration and root passwords
# travel through the setup script and the CLI options).
_SECRET_MARKERS = ("--password=", "passwd root")


def _should_log_command_output(record) -> bool:
    """Hide captured tool output below DEBUG on the console."""
    tags = record["extra"].get("tags", [])
    if "command-output" in tags:
        return record["level"].no <= logger.level("DEBUG").no
    return True


def _redact_secrets(record) -> bool:
    message = record["message"]
    for marker in _SECRET_MARKERS:
        if marker in message:
            record["message"] = message.split(marker, 1)[0] + marker + "******"
            break
    return True


def _combined_filter(record) -> bool:
    """Combined filter for all log suppression rules."""
    return _redact_secrets(record) and _should_log_command_output(record)


def setup_logging(
    *,
    debug: bool = False,
    trace: bool = False,
    log_dir: Path | None = None,
) -> Logger:
    """
    Setup console and file sinks for a conversion run.

    Log Files:
    - operations.log: INFO+ events (7 day retention)
    - debug.log: DEBUG+ events when --debug is enabled (3 day retention)
    - structured.jsonl: Structured JSON logs for analysis (7 day retention)

    Args:
        debug: Enable DEBUG level logging
        trace: Enable TRACE level logging (every command line and its output)
        log_dir: Custom log directory (defaults to ~/.local/state/qcow2ova/logs)
    """
    logger.remove()
    logger.configure(extra={"job_id": "-", "tags": [], "source": "APP"})

    if trace:
        console_level = "TRACE"
    elif debug:
        console_level = "DEBUG"
    else:
        console_level = "INFO"

    logger.add(
        sys.stderr,
        level=console_level,
        backtrace=False,
        diagnose=False,
        filter=_combined_filter,
        colorize=True,
        format=(
            "<green>{time:HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{extra[source]: <10}</cyan> | "
            "<blue>{extra[job_id]: <18}</blue> | "
            "{message}"
        ),
    )

    log_dir = log_dir or DEFAULT_LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)

    logger.add(
        log_dir / "operations.log",
        level="INFO",
        rotation="5 MB",
        retention="7 days",
        compression="zip",
        backtrace=False,
        diagnose=False,
        filter=_redact_secrets,
        format=(
            "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
            "{level: <8} | "
            "{extra[source]: <10} | "
            "{extra[job_id]: <18} | "
            "{message}"
        ),
    )

    if debug or trace:
        logger.add(
            log_dir / "debug.log",
            level="TRACE" if trace else "DEBUG",
            rotation="10 MB",
            retention="3 days",
            compression="zip",
            backtrace=True,
            diagnose=False,
            filter=_redact_secrets,
            format=(
                "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
                "{level: <8} | "
                "{extra[source]: <10} | "
                "{extra[job_id]: <18} | "
                "{extra[tags]} | "
                "{message}"
            ),
        )

    logger.add(
        log_dir / "structured.jsonl",
        level="INFO",
        rotation="10 MB",
        retention="7 days",
        compression="zip",
        serialize=True,
        filter=_redact_secrets,
        format="{message}",
    )

    return logger


def get_logger(
    *,
    job_id: str | None = None,
    tags: Iterable[str] | None = None,
    source: str | None = None,
) -> Logger:
    """
    Get a logger with bound context.

    Args:
        job_id: Job identifier for tracking a conversion
        tags: Tags for filtering (e.g., ["loop", "storage"])
        source: Source component (e.g., "prep", "ova")

    Returns:
        Logger with bound context
    """
    extras: dict[str, object] = {}
    if job_id is not None:
        extras["job_id"] = job_id
    if tags is not None:
        extras["tags"] = list(tags)
    if source is not None:
        extras["source"] = source
    return logger.bind(**extras)


def new_job_id(prefix: str = "qcow2ova") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


@contextmanager
def operation_context(operation: str, job_id: str | None = None, **details):
    """
    Context manager for tracking long-running operations with automatic timing.

    Logs operation start, completion and failure with duration tracking.

    Args:
        operation: Operation name (e.g., "qcow2ova", "package")
        job_id: Reuse an existing job id instead of generating one
        **details: Operation-specific details to log

    Yields:
        Logger bound with job_id and operation context

    Example:
        with operation_context("qcow2ova", image="centos-82") as log:
            log.debug("Converting to raw")
    """
    job_id = job_id or new_job_id(operation)

    with logger.contextualize(job_id=job_id, operation=operation):
        start_time = time.time()
        log = logger.bind(source=operation, job_id=job_id, tags=[operation])

        log.info(f"{operation.capitalize()} started", **details)

        try:
            yield log
            duration = time.time() - start_time
            log.success(
                f"{operation.capitalize()} completed", duration_seconds=round(duration, 2)
            )
        except BaseException as e:
            duration = time.time() - start_time
            log.error(
                f"{operation.capitalize()} failed",
                error=str(e),
                error_type=type(e).__name__,
                duration_seconds=round(duration, 2),
            )
            raise


class LoggerFactory:
    """
    Factory for creating domain-specific loggers with automatic context.

    Each factory method returns a logger pre-configured with appropriate
    source and tags for the pipeline stage.
    """

    @staticmethod
    def for_storage() -> Logger:
        """Logger for loop devices, partitions, filesystems and mounts."""
        return logger.bind(source="storage", tags=["storage", "block"])

    @staticmethod
    def for_image() -> Logger:
        """Logger for source acquisition, conversion and compression."""
        return logger.bind(source="image", tags=["image"])

    @staticmethod
    def for_prep(job_id: str | None = None) -> Logger:
        """Logger for guest customization."""
        extras: dict[str, object] = {"source": "prep", "tags": ["prep", "chroot"]}
        if job_id is not None:
            extras["job_id"] = job_id
        return logger.bind(**extras)

    @staticmethod
    def for_ova() -> Logger:
        """Logger for OVA packaging."""
        return logger.bind(source="ova", tags=["ova", "package"])

    @staticmethod
    def for_validate() -> Logger:
        """Logger for preflight checks."""
        return logger.bind(source="preflight", tags=["validate"])

    @staticmethod
    def for_command() -> Logger:
        """Logger for captured external command output."""
        return logger.bind(source="command", tags=["command-output"])

    @staticmethod
    def for_system() -> Logger:
        """Logger for startup, configuration and CLI handling."""
        return logger.bind(source="system", tags=["system"])
