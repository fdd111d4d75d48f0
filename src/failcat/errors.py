"""Error taxonomy shared by the core and the scrape service."""

from __future__ import annotations


class FailcatError(Exception):
    """Base class for every error raised by failcat."""


class InvalidVin(FailcatError, ValueError):
    pass


class InvalidLength(InvalidVin):
    def __init__(self, length: int, expected: int = 17) -> None:
        self.length = length
        self.expected = expected
        super().__init__(f"Invalid length: {length} (expected {expected})")


class IllegalCharacter(InvalidVin):
    def __init__(self, char: str, position: int) -> None:
        self.char = char
        self.position = position
        super().__init__(f"Illegal character {char!r} at position {position}")


class InvalidSerial(FailcatError, ValueError):
    def __init__(self, value: object, reason: str) -> None:
        self.value = value
        super().__init__(f"Invalid serial number {value!r}: {reason}")


class UnsupportedYear(FailcatError, ValueError):
    def __init__(self, serial: int) -> None:
        self.serial = serial
        super().__init__(f"No model year configured for serial {serial}")


class AlreadySaved(FailcatError):
    def __init__(self, serial: int, car_id: int | None) -> None:
        self.serial = serial
        self.car_id = car_id
        super().__init__(f"Car already saved for serial {serial}: id={car_id}")


class RateLimited(FailcatError):
    def __init__(self, vin: str) -> None:
        self.vin = vin
        super().__init__(f"Sticker source limits exceeded while fetching {vin}")


class DocumentFetchFailed(FailcatError):
    def __init__(self, vin: str, reason: str) -> None:
        self.vin = vin
        self.reason = reason
        super().__init__(f"Could not fetch sticker for {vin}: {reason}")


class StickerParseError(FailcatError):
    pass


class AnchorNotFound(StickerParseError):
    def __init__(self, label: str) -> None:
        self.label = label
        super().__init__(f"Anchor {label!r} not found in sticker text")


class StorageError(FailcatError):
    pass


class StorageWriteFailed(StorageError):
    pass


class InvariantViolation(FailcatError):
    pass
