from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import replace
from typing import Any

from fastapi import FastAPI, HTTPException, Query, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from failcat.candidates import candidates_for
from failcat.checksum import is_valid_vin
from failcat.config import DEFAULT_SCRAPE_CONFIG
from failcat.data_models import Car, ScrapeResult
from failcat.errors import (
    AlreadySaved,
    DocumentFetchFailed,
    FailcatError,
    InvalidSerial,
    InvalidVin,
    InvariantViolation,
    RateLimited,
    StorageError,
    UnsupportedYear,
)
from scrape_service.logging_config import configure_logging, correlation_id, get_correlation_id
from scrape_service.scraper import SerialScraper, is_rate_limited
from scrape_service.settings import ServiceSettings
from scrape_service.sticker_parser import StickerParser
from scrape_service.storage import PdfBucket, PostgresStore, RedisCache
from scrape_service.vinlookup import StickerClient

logger = logging.getLogger(__name__)


# ── Response Models ─────────────────────────────────────────────────

class HealthResponse(BaseModel):
    status: str


class ReadinessResponse(BaseModel):
    status: str
    checks: dict[str, bool]


class ScrapeResponse(BaseModel):
    attempted: int
    found: int | None


class CarResponse(BaseModel):
    id: int | None
    vin: str
    ext_color: str
    int_color: str
    car_model: str
    opt_code: str
    ship_to: str
    sold_to: str
    created_date: str
    serial_number: int
    model_year: str
    dead_until: str | None
    last_attempt: str | None

    @classmethod
    def from_car(cls, car: Car) -> CarResponse:
        return cls(**car.to_json())


# Order matters: subclasses before their bases.
_ERROR_STATUS: tuple[tuple[type[FailcatError], int], ...] = (
    (InvalidVin, status.HTTP_400_BAD_REQUEST),
    (InvalidSerial, status.HTTP_400_BAD_REQUEST),
    (UnsupportedYear, status.HTTP_400_BAD_REQUEST),
    (AlreadySaved, status.HTTP_409_CONFLICT),
    (RateLimited, status.HTTP_429_TOO_MANY_REQUESTS),
    (DocumentFetchFailed, status.HTTP_502_BAD_GATEWAY),
    (StorageError, status.HTTP_500_INTERNAL_SERVER_ERROR),
    (InvariantViolation, status.HTTP_500_INTERNAL_SERVER_ERROR),
)


def status_for(exc: FailcatError) -> int:
    for exc_type, code in _ERROR_STATUS:
        if isinstance(exc, exc_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _pdf_headers(vin: str, download: bool) -> dict[str, str]:
    if not download:
        return {}
    return {"Content-Disposition": f'attachment; filename="window-sticker-{vin}.pdf"'}


# ── App Factory ─────────────────────────────────────────────────────

def create_app() -> FastAPI:
    settings = ServiceSettings()
    configure_logging(level=settings.log_level, fmt=settings.log_format)

    scrape_cfg = replace(DEFAULT_SCRAPE_CONFIG, min_document_size=settings.min_document_size)
    cache = RedisCache(redis_url=settings.redis_url)
    store = PostgresStore(dsn=settings.postgres_dsn)
    bucket = PdfBucket(
        bucket=settings.pdf_bucket,
        endpoint_url=settings.s3_endpoint_url,
        region=settings.aws_region,
    )
    source = StickerClient(
        base_url=settings.sticker_base_url,
        api_key=settings.sticker_api_key,
        timeout_seconds=settings.sticker_timeout_seconds,
    )
    scraper = SerialScraper(
        store=store,
        cache=cache,
        bucket=bucket,
        source=source,
        parser=StickerParser(strict=settings.strict_sticker_parsing),
        config=scrape_cfg,
    )

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        await cache.connect()
        await store.connect()
        await bucket.connect()
        try:
            yield
        finally:
            await cache.close()
            await store.close()
            await bucket.close()

    app = FastAPI(title="Failcat Sticker Scraper", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=settings.cors_origin_regex,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next: Any) -> Response:
        correlation_id.set(request.headers.get("X-Correlation-ID", ""))
        cid = get_correlation_id()
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = cid
        return response

    @app.exception_handler(FailcatError)
    async def failcat_error_handler(_: Request, exc: FailcatError) -> JSONResponse:
        code = status_for(exc)
        if code >= 500:
            logger.error("Request failed: %s", exc, exc_info=exc)
        return JSONResponse(status_code=code, content={"detail": str(exc), "error": type(exc).__name__})

    async def _scrape(serial: int) -> ScrapeResponse:
        result: ScrapeResult = await scraper.scrape(serial)
        return ScrapeResponse(**result.to_response())

    # ── Health ──────────────────────────────────────────────────────

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.get("/ready", response_model=ReadinessResponse)
    async def ready() -> ReadinessResponse:
        checks = {
            "redis": await cache.ping(),
            "postgres": await store.ping(),
            "bucket": await bucket.ping(),
        }
        if not all(checks.values()):
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=ReadinessResponse(status="degraded", checks=checks).model_dump(),
            )
        return ReadinessResponse(status="ready", checks=checks)

    # ── Cars ────────────────────────────────────────────────────────

    @app.get("/car/{serial}", response_model=CarResponse)
    async def get_car(serial: int) -> CarResponse:
        car = await store.get_car_by_serial(serial)
        if car is None:
            raise HTTPException(status_code=404, detail=f"No car found for serial {serial}")
        return CarResponse.from_car(car)

    @app.get("/cars", response_model=list[CarResponse])
    async def list_cars(
        page: int = Query(default=1, ge=1),
        page_size: int = Query(default=50, ge=1, le=500),
    ) -> list[CarResponse]:
        cars = await store.list_cars(page=page, page_size=page_size)
        return [CarResponse.from_car(c) for c in cars]

    # ── VINs ────────────────────────────────────────────────────────

    @app.get("/serial/{serial}/candidates", response_model=list[str])
    async def serial_candidates(serial: int) -> list[str]:
        return candidates_for(serial)

    @app.get("/vinlookup/{vin}")
    async def vinlookup(vin: str, download: bool = False) -> Response:
        if not is_valid_vin(vin.upper()):
            raise HTTPException(status_code=400, detail="Invalid VIN")
        vin = vin.upper()
        document = await source.fetch(vin)
        if is_rate_limited(document, scrape_cfg):
            raise RateLimited(vin)
        return Response(content=document, media_type="application/pdf", headers=_pdf_headers(vin, download))

    # ── Scraping ────────────────────────────────────────────────────

    @app.post("/scrape/{serial}", response_model=ScrapeResponse)
    async def scrape_serial(serial: int) -> ScrapeResponse:
        return await _scrape(serial)

    @app.post("/scrape_next", response_model=ScrapeResponse)
    async def scrape_next(n: int = Query(default=1, ge=1)) -> ScrapeResponse:
        return await _scrape(await store.highest_serial() + n)

    @app.post("/scrape_above/{n}", response_model=ScrapeResponse)
    async def scrape_above(n: int) -> ScrapeResponse:
        serial = await store.first_unknown_serial_above(n)
        if serial is None:
            raise HTTPException(status_code=404, detail="No more cars to scrape")
        return await _scrape(serial)

    @app.post("/scrape_below/{n}", response_model=ScrapeResponse)
    async def scrape_below(n: int) -> ScrapeResponse:
        serial = await store.first_unknown_serial_below(n)
        if serial is None:
            raise HTTPException(status_code=404, detail="No more cars to scrape")
        return await _scrape(serial)

    return app


app = create_app()
