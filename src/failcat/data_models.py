from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from datetime import datetime, timezone
from typing import Any

from failcat.errors import InvalidSerial


SerialNumber = int
Vin = str


@dataclass(frozen=True)
class ModelYearCode:
    year: int
    code: str


@dataclass(frozen=True)
class Car:
    vin: Vin
    ext_color: str
    int_color: str
    car_model: str
    opt_code: str
    ship_to: str
    sold_to: str
    serial_number: SerialNumber
    model_year: str
    created_date: datetime
    id: int | None = None
    dead_until: str | None = None
    last_attempt: str | None = None

    def with_id(self, car_id: int) -> Car:
        return replace(self, id=car_id)

    @property
    def is_broken(self) -> bool:
        return self.dead_until is not None

    @classmethod
    def broken(cls, vin: Vin, serial: SerialNumber, placeholder: str = "BROKEN") -> Car:
        now = datetime.now(timezone.utc)
        return cls(
            vin=vin,
            ext_color=placeholder,
            int_color=placeholder,
            car_model=placeholder,
            opt_code=placeholder,
            ship_to=placeholder,
            sold_to=placeholder,
            serial_number=serial,
            model_year=placeholder,
            created_date=now,
            dead_until=now.isoformat(),
            last_attempt=now.isoformat(),
        )

    def to_json(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["created_date"] = self.created_date.isoformat()
        return payload

    @classmethod
    def from_json(cls, payload: dict[str, Any]) -> Car:
        data = dict(payload)
        created = data.get("created_date")
        if isinstance(created, str):
            data["created_date"] = datetime.fromisoformat(created)
        return cls(**data)


@dataclass(frozen=True)
class ScrapeResult:
    attempted: SerialNumber
    car: Car | None = None

    @property
    def found(self) -> int | None:
        return None if self.car is None else self.car.id

    def to_response(self) -> dict[str, Any]:
        return {"attempted": self.attempted, "found": self.found}


def parse_serial(text: str) -> SerialNumber:
    """Parse the trailing whitespace-delimited numeric token of ``text``."""
    tokens = str(text).split()
    if not tokens:
        raise InvalidSerial(text, "no numeric token")
    try:
        serial = int(tokens[-1])
    except ValueError as exc:
        raise InvalidSerial(text, "trailing token is not numeric") from exc
    if serial < 0:
        raise InvalidSerial(text, "must be non-negative")
    return serial


def serial_from_vin(vin: Vin) -> SerialNumber:
    # the serial is the zero-padded tail of the VIN
    return parse_serial(vin[11:])
