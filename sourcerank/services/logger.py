"""loguru setup plus structured log helpers for model calls and pipeline steps."""

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from loguru import logger

from sourcerank.config import settings

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message} | {extra}"

NOISY_LOGGERS = (
    "uvicorn.access",
    "uvicorn.error",
    "httpx",
    "httpcore",
    "openai._base_client",
    "sse_starlette.sse",
    "trafilatura",
    "asyncio",
)

_configured = False


def configure_logging() -> None:
    """Install the sinks once per process; later calls are no-ops."""
    global _configured
    if _configured:
        return

    logger.remove()
    logger.add(sys.stderr, format=CONSOLE_FORMAT, level=settings.app_log_level.upper(), colorize=True)

    if settings.log_dir:
        log_dir = Path(settings.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_dir / "sourcerank_{time:YYYY-MM-DD}.log",
            format=FILE_FORMAT,
            level="DEBUG",
            rotation="00:00",
            retention="7 days",
            compression="zip",
            enqueue=True,
        )

    noisy_level = settings.noisy_log_level.upper()
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(noisy_level)

    _configured = True


def _emit(kind: str, payload: dict[str, Any], *, failed: bool = False) -> None:
    payload = {"timestamp": datetime.now(timezone.utc).isoformat(), **payload}
    bound = logger.bind(kind=kind)
    if failed:
        bound.error(f"{kind}_FAILED: {payload}")
    else:
        bound.info(f"{kind}: {payload}")


def log_llm_call(
    model: str,
    caller: str,
    input_tokens: int = 0,
    output_tokens: int = 0,
    duration_ms: int = 0,
    status: str = "success",
    error: Optional[str] = None,
) -> None:
    _emit(
        "LLM_CALL",
        {
            "model": model,
            "caller": caller,
            "input_tokens": input_tokens,
            "output_tokens": output_tokens,
            "duration_ms": duration_ms,
            "status": status,
            "error": error,
        },
        failed=bool(error),
    )


def log_pipeline_step(
    request_id: str,
    state: str,
    status: str,
    data: Optional[dict] = None,
) -> None:
    """One line per state transition of a request."""
    _emit(
        "PIPELINE_STEP",
        {"request_id": request_id, "state": state, "status": status, "data": data},
        failed=status == "error",
    )


def log_event(event_type: str, message: str, **kwargs) -> None:
    _emit("EVENT", {"event_type": event_type, "message": message, **kwargs})
