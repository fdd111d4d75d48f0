from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping


@dataclass(frozen=True)
class YearThreshold:
    max_serial: int | None
    year: int
    code: str


def _char_values() -> Mapping[str, int]:
    return MappingProxyType(
        {
            "A": 1, "B": 2, "C": 3, "D": 4, "E": 5, "F": 6, "G": 7, "H": 8,
            "J": 1, "K": 2, "L": 3, "M": 4, "N": 5, "P": 7, "R": 9,
            "S": 2, "T": 3, "U": 4, "V": 5, "W": 6, "X": 7, "Y": 8, "Z": 9,
            "0": 0, "1": 1, "2": 2, "3": 3, "4": 4,
            "5": 5, "6": 6, "7": 7, "8": 8, "9": 9,
        }
    )


@dataclass(frozen=True)
class VinConfig:
    vin_length: int = 17
    check_digit_index: int = 8
    position_weights: tuple[int, ...] = (8, 7, 6, 5, 4, 3, 2, 10, 0, 9, 8, 7, 6, 5, 4, 3, 2)
    char_values: Mapping[str, int] = field(default_factory=_char_values)
    # Ordered; the first threshold whose max_serial covers the serial wins.
    year_thresholds: tuple[YearThreshold, ...] = (
        YearThreshold(max_serial=411_975, year=2023, code="P"),
        YearThreshold(max_serial=None, year=2024, code="R"),
    )
    model_codes: tuple[str, ...] = ("2", "3", "5", "6")
    drive_codes: tuple[str, ...] = ("D", "4")
    prefix_template: str = "5XYP{model}{drive}GC"
    plant_code: str = "G"
    serial_width: int = 6


@dataclass(frozen=True)
class ScrapeConfig:
    rate_limit_sentinel: bytes = b"SAP API limits exceeded"
    # Stored documents shorter than this mark a VIN that was already tried and had no sticker.
    min_document_size: int = 128
    broken_placeholder: str = "BROKEN"


DEFAULT_VIN_CONFIG = VinConfig()
DEFAULT_SCRAPE_CONFIG = ScrapeConfig()
