"""Interfaces the scrape orchestrator depends on.

Each port has a production adapter (``storage``, ``vinlookup``, ``sticker_parser``)
and can be replaced by a small fake in tests.
"""

from __future__ import annotations

from typing import Protocol

from failcat.data_models import Car, SerialNumber, Vin


class RelationalStore(Protocol):
    async def get_or_create(self, car: Car) -> int:
        """Return the id of the row holding ``car.serial_number``, inserting it if absent."""
        ...

    async def get_car(self, car_id: int) -> Car | None: ...

    async def highest_serial(self) -> SerialNumber: ...

    async def first_unknown_serial_above(self, lower_bound: SerialNumber) -> SerialNumber | None: ...

    async def first_unknown_serial_below(self, upper_bound: SerialNumber) -> SerialNumber | None: ...


class KeyValueStore(Protocol):
    async def get_car(self, serial: SerialNumber) -> Car | None: ...

    async def put_car(self, car: Car, sql_id: int) -> None: ...


class ObjectStore(Protocol):
    async def get(self, vin: Vin) -> bytes | None: ...

    async def put(self, vin: Vin, data: bytes) -> None: ...


class DocumentSource(Protocol):
    async def fetch(self, vin: Vin) -> bytes:
        """Return the document body, which may be the rate-limit sentinel payload."""
        ...


class DocumentParser(Protocol):
    def parse(self, document: bytes, serial: SerialNumber) -> Car: ...
