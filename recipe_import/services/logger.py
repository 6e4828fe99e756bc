"""Loguru configuration and structured log helpers for the import pipeline."""

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from loguru import logger

from recipe_import.config import settings

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}"

# Third-party loggers that chatter at INFO on every request.
NOISY_LOGGERS = (
    "httpx",
    "httpcore",
    "hpack",
    "openai._base_client",
    "google",
    "google_genai",
    "urllib3",
    "asyncio",
)

log_dir = Path(settings.log_dir)
log_dir.mkdir(parents=True, exist_ok=True)

logger.remove()
logger.add(sys.stderr, format=CONSOLE_FORMAT, level=settings.app_log_level.upper(), colorize=True)
logger.add(
    log_dir / "recipe_import_{time:YYYY-MM-DD}.log",
    format=FILE_FORMAT,
    level="DEBUG",
    rotation="00:00",
    retention="14 days",
    compression="zip",
)

for name in NOISY_LOGGERS:
    logging.getLogger(name).setLevel(settings.noisy_log_level.upper())


def _payload(**fields: Any) -> dict[str, Any]:
    return {"ts": datetime.now(timezone.utc).isoformat(), **{k: v for k, v in fields.items() if v is not None}}


def log_llm_call(
    model: str,
    caller: str,
    duration_ms: int = 0,
    media: Optional[str] = None,
    status: str = "success",
    error: Optional[str] = None,
) -> None:
    """One model provider round trip; media is a short description like "video:1234b"."""
    payload = _payload(model=model, provider=caller, media=media or "text", duration_ms=duration_ms, status=status, error=error)
    if status == "success":
        logger.info(f"MODEL_CALL {payload}")
    else:
        logger.error(f"MODEL_CALL_FAILED {payload}")


def log_extraction_step(
    source_url: str,
    tier: str,
    status: str,
    data: Optional[dict] = None,
) -> None:
    payload = _payload(url=source_url, tier=tier, status=status, **(data or {}))
    level = {"ok": "INFO", "skipped": "DEBUG"}.get(status, "WARNING")
    logger.log(level, f"TIER {payload}")


def log_db_operation(
    operation: str,
    table: str,
    status: str,
    details: Optional[str] = None,
    error: Optional[str] = None,
) -> None:
    """Failures log at WARNING, successes at DEBUG."""
    payload = _payload(op=operation, table=table, status=status, details=details, error=error)
    if error:
        logger.warning(f"STORE_FAILED {payload}")
    else:
        logger.debug(f"STORE {payload}")


def log_event(event_type: str, message: str, **kwargs) -> None:
    logger.info(f"{event_type.upper()} {message} {_payload(**kwargs)}")
