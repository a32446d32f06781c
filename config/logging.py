# coding: utf-8
"""
Logging configuration with loguru

Sinks:
- console (LOG_LEVEL)
- service log, daily rotation
- ledger audit trail: JSON lines of every balance change plus warnings
  and failures raised by the ledger services, kept 90 days
- Sentry for ERROR and above when SENTRY_DSN is set
"""
import logging
import sys
from pathlib import Path
from typing import List, Optional

import sentry_sdk
from loguru import logger

from config.config import LOG_LEVEL, ENVIRONMENT, SENTRY_DSN


DEFAULT_LOGS_DIR = Path(__file__).parent.parent / "logs"

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {message}"

# Modules whose warnings and failures belong in the audit trail
LEDGER_MODULES = (
    "src.services.wallet_ledger",
    "src.services.bot_lifecycle",
    "src.services.referral_service",
    "src.services.address_allocator",
)
AUDIT_MIN_LEVEL = logger.level("WARNING").no


def is_audit_record(record) -> bool:
    """
    Audit trail filter: records bound with audit=True, and WARNING or worse
    from the ledger modules
    """
    if record["extra"].get("audit"):
        return True
    return record["name"] in LEDGER_MODULES and record["level"].no >= AUDIT_MIN_LEVEL


def setup_logging(logs_dir: Optional[Path] = None, console: bool = True) -> List[int]:
    """
    Replace loguru's default handler with the service sinks

    Returns:
        Handler ids, for callers that need to remove them again
    """
    logger.remove()

    logs_dir = logs_dir or DEFAULT_LOGS_DIR
    logs_dir.mkdir(parents=True, exist_ok=True)

    handlers = []
    if console:
        handlers.append(logger.add(sys.stdout, format=CONSOLE_FORMAT, level=LOG_LEVEL, colorize=True))

    handlers.append(
        logger.add(
            logs_dir / "ledger_{time:YYYY-MM-DD}.log",
            format=FILE_FORMAT,
            level="DEBUG",
            rotation="00:00",
            retention="7 days",
            compression="zip",
            encoding="utf-8",
        )
    )

    # Balance changes are reconstructed from here when a wallet is frozen
    handlers.append(
        logger.add(
            logs_dir / "ledger_audit_{time:YYYY-MM-DD}.jsonl",
            level="INFO",
            filter=is_audit_record,
            serialize=True,
            rotation="00:00",
            retention="90 days",
            encoding="utf-8",
        )
    )

    if SENTRY_DSN:
        handlers.append(logger.add(sentry_sink, level="ERROR", format="{message}"))

    logging.getLogger("sqlalchemy.engine").setLevel(logging.ERROR)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    logger.info(f"Bot Vault logging ready | Environment: {ENVIRONMENT} | Log level: {LOG_LEVEL}")
    return handlers


def sentry_sink(message):
    """Forward ERROR/CRITICAL records to Sentry, with ledger context when bound"""
    record = message.record
    extras = {"module": record["name"], "line": record["line"]}
    extras.update({k: v for k, v in record["extra"].items() if k != "audit"})

    if record["exception"]:
        sentry_sdk.capture_exception(record["exception"].value)
        return

    level = "fatal" if record["level"].name == "CRITICAL" else "error"
    sentry_sdk.capture_message(record["message"], level=level, extras=extras)
