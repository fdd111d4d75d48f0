from __future__ import annotations

from itertools import product

from failcat.checksum import with_check_digit, year_code
from failcat.config import DEFAULT_VIN_CONFIG, VinConfig
from failcat.data_models import SerialNumber, Vin
from failcat.errors import InvalidSerial


def vin_prefixes(config: VinConfig = DEFAULT_VIN_CONFIG) -> list[str]:
    return [
        config.prefix_template.format(model=model, drive=drive)
        for model, drive in product(config.model_codes, config.drive_codes)
    ]


def candidates_for(serial: SerialNumber, config: VinConfig = DEFAULT_VIN_CONFIG) -> list[Vin]:
    """Every plausible VIN for ``serial``, sorted and deduplicated.

    Only the model/drivetrain prefix is unknown; the check digit is derived,
    so one candidate is built per prefix.
    """
    if serial < 0:
        raise InvalidSerial(serial, "must be non-negative")
    padded = str(serial).zfill(config.serial_width)
    if len(padded) > config.serial_width:
        raise InvalidSerial(serial, f"wider than {config.serial_width} digits")

    year = year_code(serial, config)
    # "0" is a placeholder for the check-digit slot
    raw = [f"{prefix}0{year.code}{config.plant_code}{padded}" for prefix in vin_prefixes(config)]
    return sorted({with_check_digit(vin, config) for vin in raw})
