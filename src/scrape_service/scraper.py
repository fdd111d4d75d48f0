from __future__ import annotations

import logging
from typing import Callable

from failcat.candidates import candidates_for
from failcat.config import DEFAULT_SCRAPE_CONFIG, ScrapeConfig
from failcat.data_models import Car, ScrapeResult, SerialNumber, Vin
from failcat.errors import AlreadySaved, DocumentFetchFailed, InvariantViolation, RateLimited, StickerParseError
from scrape_service.logging_config import bind_serial, log_extra
from scrape_service.ports import DocumentParser, DocumentSource, KeyValueStore, ObjectStore, RelationalStore

logger = logging.getLogger(__name__)


def is_rate_limited(document: bytes, config: ScrapeConfig = DEFAULT_SCRAPE_CONFIG) -> bool:
    return document == config.rate_limit_sentinel


class SerialScraper:
    """Resolve a serial number into a persisted :class:`Car`.

    Candidates are tried one at a time in generator order. Each one is looked
    up in the document bucket first and only fetched from the sticker source on
    a miss. The first candidate that yields a car is persisted and ends the scan.

    No locks are taken: two runs for the same serial can both reach the sticker
    source, and the relational store's get-or-create on ``serial_number`` makes
    the slower one adopt the faster one's row.
    """

    def __init__(
        self,
        *,
        store: RelationalStore,
        cache: KeyValueStore,
        bucket: ObjectStore,
        source: DocumentSource,
        parser: DocumentParser,
        config: ScrapeConfig = DEFAULT_SCRAPE_CONFIG,
        candidates: Callable[[SerialNumber], list[Vin]] = candidates_for,
    ) -> None:
        self.store = store
        self.cache = cache
        self.bucket = bucket
        self.source = source
        self.parser = parser
        self.config = config
        self.candidates = candidates

    async def scrape(self, serial: SerialNumber) -> ScrapeResult:
        with bind_serial(serial):
            logger.debug("Checking cache for serial %s", serial)
            cached = await self.cache.get_car(serial)
            if cached is not None:
                raise AlreadySaved(serial, cached.id)

            vins = self.candidates(serial)
            for vin in vins:
                car = await self._try_candidate(vin, serial)
                if car is None:
                    continue
                saved = await self._persist(car)
                logger.info(
                    "Scraped serial %s as %s (id %s)", serial, vin, saved.id,
                    extra=log_extra(vin=vin, car_id=saved.id, broken=saved.is_broken),
                )
                return ScrapeResult(attempted=serial, car=saved)

            logger.info("No sticker found for serial %s among %d candidates", serial, len(vins))
            return ScrapeResult(attempted=serial)

    async def _try_candidate(self, vin: Vin, serial: SerialNumber) -> Car | None:
        document = await self.bucket.get(vin)
        if document is not None:
            logger.debug("Found %s in bucket (%d bytes)", vin, len(document))
            if len(document) < self.config.min_document_size:
                logger.info("Stored document for %s is a dead-VIN marker", vin)
                return Car.broken(vin, serial, placeholder=self.config.broken_placeholder)
            return self._parse(document, vin, serial)

        logger.debug("Fetching %s from sticker source", vin)
        try:
            document = await self.source.fetch(vin)
        except DocumentFetchFailed as exc:
            logger.warning("Skipping %s: %s", vin, exc.reason)
            return None

        if is_rate_limited(document, self.config):
            logger.warning("Sticker source rate limit hit on %s, aborting scan", vin)
            raise RateLimited(vin)

        await self.bucket.put(vin, document)
        return self._parse(document, vin, serial)

    def _parse(self, document: bytes, vin: Vin, serial: SerialNumber) -> Car | None:
        try:
            return self.parser.parse(document, serial)
        except StickerParseError as exc:
            logger.warning("Could not parse sticker for %s: %s", vin, exc)
            return None

    async def _persist(self, car: Car) -> Car:
        car_id = await self.store.get_or_create(car)
        # a concurrent run may own the row; mirror what was actually stored
        saved = await self.store.get_car(car_id)
        if saved is None:
            raise InvariantViolation(f"Car id {car_id} for serial {car.serial_number} vanished after get-or-create")
        await self.cache.put_car(saved, sql_id=car_id)
        return saved
