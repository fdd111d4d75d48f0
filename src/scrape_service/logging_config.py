from __future__ import annotations

import json
import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator

correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")
scrape_serial: ContextVar[int | None] = ContextVar("scrape_serial", default=None)


def get_correlation_id() -> str:
    cid = correlation_id.get()
    if not cid:
        cid = uuid.uuid4().hex[:12]
        correlation_id.set(cid)
    return cid


@contextmanager
def bind_serial(serial: int) -> Iterator[None]:
    """Tag every record logged inside the block with the serial being scraped."""
    token = scrape_serial.set(serial)
    try:
        yield
    finally:
        scrape_serial.reset(token)


def log_extra(**data: Any) -> dict[str, Any]:
    return {"extra_data": data}


class ScrapeContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id.get("")
        serial = scrape_serial.get()
        record.serial = "-" if serial is None else serial
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": correlation_id.get(""),
        }
        serial = scrape_serial.get()
        if serial is not None:
            entry["serial"] = serial
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        if hasattr(record, "extra_data"):
            entry["data"] = record.extra_data
        return json.dumps(entry, default=str)


def configure_logging(level: str = "INFO", fmt: str = "json") -> None:
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for h in root.handlers[:]:
        root.removeHandler(h)

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(ScrapeContextFilter())
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)-8s [%(name)s] serial=%(serial)s %(message)s"
        ))
    root.addHandler(handler)
    # boto and httpx log every request at INFO
    for noisy in ("botocore", "boto3", "httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(max(root.level, logging.WARNING))
