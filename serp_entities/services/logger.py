"""Centralized logging service using loguru."""

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from loguru import logger

from serp_entities.config import settings

_configured = False


def configure_logging() -> None:
    """Install console and rotating file handlers once per process."""
    global _configured
    if _configured:
        return

    log_dir = Path(settings.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    logger.remove()

    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        level=settings.app_log_level.upper(),
        colorize=True,
    )

    logger.add(
        log_dir / "serp_entities_{time:YYYY-MM-DD}.log",
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
        level="DEBUG",
        rotation="00:00",
        retention="7 days",
        compression="zip",
    )

    # Reduce noise from network libraries
    for logger_name in (
        "httpx",
        "httpcore",
        "hpack",
        "openai._base_client",
        "trafilatura",
        "readability.readability",
        "asyncio",
    ):
        logging.getLogger(logger_name).setLevel(settings.noisy_log_level.upper())

    _configured = True


def log_pipeline_stage(
    run_id: str,
    stage: str,
    status: str,
    data: Optional[dict] = None,
) -> None:
    """Log a pipeline stage transition."""
    stage_data = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "run_id": run_id,
        "stage": stage,
        "status": status,
        "data": data,
    }
    logger.info(f"PIPELINE_STAGE: {stage_data}")


def log_provider_call(
    provider: str,
    caller: str,
    duration_ms: int = 0,
    status: str = "success",
    error: Optional[str] = None,
) -> None:
    """Log a call to an external provider."""
    call_data = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "provider": provider,
        "caller": caller,
        "duration_ms": duration_ms,
        "status": status,
        "error": error,
    }
    if error:
        logger.error(f"PROVIDER_CALL_FAILED: {call_data}")
    else:
        logger.info(f"PROVIDER_CALL: {call_data}")


def log_cache_operation(
    operation: str,
    key: str,
    status: str,
    error: Optional[str] = None,
) -> None:
    """Log a cache operation. Failures are warnings, never errors."""
    op_data = {
        "operation": operation,
        "key": key,
        "status": status,
        "error": error,
    }
    if error:
        logger.warning(f"CACHE_OPERATION_FAILED: {op_data}")
    else:
        logger.debug(f"CACHE_OPERATION: {op_data}")


def log_event(
    event_type: str,
    message: str,
    **kwargs,
) -> None:
    """Log a generic event."""
    event_data = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "event_type": event_type,
        "message": message,
        **kwargs,
    }
    logger.info(f"EVENT: {event_data}")
