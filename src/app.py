"""Application entry point for the fiserelay gateway."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import os
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from typing import AsyncIterator, Iterable, Optional

import uvicorn
from art import tprint
from dotenv import load_dotenv

import settings
from adapters.backend_sync import BackendSyncClient
from adapters.directory_client import DirectoryClient
from adapters.messenger import OutboundMessenger
from adapters.sms_transports import DryRunTransport, TwilioTransport
from adapters.sms_webhook import Runtime, create_webhook_app
from adapters.sqlite_storage import SQLiteStorage
from client import build_http_client, build_twilio_client
from core.dedup import DedupCache
from core.processor import CouponProcessor
from core.roles import SenderRoleRegistry
from core.signals import RefreshSignal

NAME = "FISERELAY"
FONT = "tarty-1"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    """Mask the values of secret environment variables in every record."""

    def __init__(self, env_names: Iterable[str], fmt: str = LOG_FORMAT, datefmt: str = LOG_DATEFMT) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        values = {os.getenv(name) for name in env_names}
        # Longest first so a secret containing another is masked whole.
        self._masked = sorted((v for v in values if v), key=len, reverse=True)

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        for value in self._masked:
            text = text.replace(value, "***")
        return text


def _secret_env_names(config: dict) -> list[str]:
    redact = config.get("redact") or {}
    return list(redact.get("patterns", [])) if redact.get("enabled", False) else []


def _log_file_handler(file_cfg: dict) -> logging.Handler:
    path = file_cfg.get("path", "logs/fiserelay.log")
    if not os.path.isabs(path):
        path = os.path.join(settings.PROJECT_ROOT, path)
    os.makedirs(os.path.dirname(path), exist_ok=True)
    return RotatingFileHandler(
        path,
        maxBytes=int(file_cfg.get("max_bytes", 5 * 1024 * 1024)),
        backupCount=int(file_cfg.get("backup_count", 5)),
        encoding="utf-8",
    )


def _configure_logging(config: Optional[dict] = None) -> None:
    config = settings.LOGGING if config is None else config
    if not config or not config.get("enabled", False):
        return

    # Secrets may only be present in .env.
    load_dotenv()
    level = getattr(logging, str(config.get("level", "INFO")).upper(), logging.INFO)
    formatter = _RedactingFormatter(_secret_env_names(config))

    handlers: list[logging.Handler] = []
    if config.get("console", True):
        handlers.append(logging.StreamHandler())
    file_cfg = config.get("file") or {}
    if file_cfg.get("enabled", False):
        handlers.append(_log_file_handler(file_cfg))

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
    if handlers:
        logging.basicConfig(level=level, handlers=handlers)


def _build_transport():
    if settings.TRANSPORT_METHOD == "twilio":
        twilio_client, from_number = build_twilio_client()
        return TwilioTransport(twilio_client, from_number)
    if settings.TRANSPORT_METHOD == "dry_run":
        return DryRunTransport()
    raise RuntimeError("transport.method must be 'twilio' or 'dry_run'")


async def _dump_recent_transactions(storage: SQLiteStorage, interval: float, limit: int) -> None:
    """Log the newest ledger rows every `interval` seconds until cancelled."""

    logger = logging.getLogger(__name__)
    while True:
        await asyncio.sleep(interval)
        rows = storage.recent_transactions(limit)
        logger.info("Ledger dump: %s recent transaction(s)", len(rows))
        for tx in rows:
            logger.info(
                "  #%s %s cupon=%s dni=%s entidad=%s monto=%s",
                tx.id,
                tx.estado.value,
                tx.cupon,
                tx.dni,
                tx.entidad,
                tx.monto,
            )


@asynccontextmanager
async def build_runtime() -> AsyncIterator[Runtime]:
    """Construct every collaborator, and tear them down in reverse order."""

    logger = logging.getLogger(__name__)

    storage = SQLiteStorage(settings.DB_PATH)
    storage.init_db()

    transport = _build_transport()
    logger.info("Selected transport - %s", settings.TRANSPORT_METHOD)

    signal = RefreshSignal()
    signal.subscribe(lambda reason: logger.debug("History refreshed (%s)", reason))

    http = build_http_client(settings.API_BASE_URL, settings.DIRECTORY.timeout_seconds)
    dump_task: Optional[asyncio.Task] = None
    processor: Optional[CouponProcessor] = None
    try:
        # One limiter for the whole process: every directory call shares it.
        limiter = asyncio.Semaphore(settings.DIRECTORY.max_concurrency)
        directory = DirectoryClient(http, limiter, settings.DIRECTORY)
        processor = CouponProcessor(
            ledger=storage,
            history=storage,
            directory=directory,
            backend=BackendSyncClient(http, settings.RETRY),
            messenger=OutboundMessenger(transport, storage, signal),
            roles=SenderRoleRegistry(
                ledger=storage,
                directory=directory,
                entity_numbers=settings.ENTITY_NUMBERS,
                driver_numbers=settings.DRIVER_NUMBERS,
            ),
            dedup=DedupCache(settings.DEDUP),
            processing=settings.PROCESSING,
            signal=signal,
        )

        if settings.DUMP_INTERVAL_SECONDS > 0:
            dump_task = asyncio.create_task(
                _dump_recent_transactions(storage, settings.DUMP_INTERVAL_SECONDS, settings.DUMP_LIMIT)
            )

        logger.info("Gateway ready. Waiting for incoming messages...")
        yield Runtime(processor=processor, ledger=storage)
    finally:
        if dump_task is not None:
            dump_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await dump_task
        if processor is not None:
            await processor.aclose()
        await http.aclose()
        logger.info("Gateway stopped")


def _run() -> None:
    _print_banner()
    _configure_logging()
    logger = logging.getLogger(__name__)
    logger.info("Starting fiserelay")

    app = create_webhook_app(build_runtime)
    # Explicit server lifecycle: the runtime is built on startup and closed
    # on shutdown through the app lifespan.
    uvicorn.run(app, host=settings.SERVER_HOST, port=settings.SERVER_PORT, log_config=None)


def _recent(limit: int) -> None:
    _print_banner()
    storage = SQLiteStorage(settings.DB_PATH)
    storage.init_db()
    rows = storage.recent_transactions(limit)
    if not rows:
        print("No transactions recorded yet.")
        return

    for tx in rows:
        monto = "-" if tx.monto is None else f"{tx.monto:.2f}"
        print(
            f"{tx.id}. {tx.fecha:%Y-%m-%d %H:%M:%S} | {tx.estado.value} | "
            f"cupon {tx.cupon} | dni {tx.dni} | driver {tx.driver_phone} | "
            f"entidad {tx.entidad} | S/ {monto}"
        )


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="fiserelay")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Start the SMS webhook gateway")
    recent_parser = subparsers.add_parser("recent", help="Show the most recent ledger rows")
    recent_parser.add_argument("--limit", type=int, default=20)

    args = parser.parse_args(argv)
    if args.command == "recent":
        _recent(args.limit)
        return
    _run()


if __name__ == "__main__":
    main()
