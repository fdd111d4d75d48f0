from __future__ import annotations

from failcat.config import DEFAULT_VIN_CONFIG, VinConfig
from failcat.data_models import ModelYearCode, SerialNumber
from failcat.errors import IllegalCharacter, InvalidLength, UnsupportedYear


def check_digit(vin: str, config: VinConfig = DEFAULT_VIN_CONFIG) -> str:
    """Compute the check digit for a 17-character VIN.

    The character already sitting in the check-digit slot has weight 0 and so
    never influences the result, but it must still be a legal VIN character.
    """
    if len(vin) < config.vin_length:
        raise InvalidLength(len(vin), config.vin_length)

    total = 0
    for position, (char, weight) in enumerate(zip(vin, config.position_weights)):
        value = config.char_values.get(char)
        if value is None:
            raise IllegalCharacter(char, position)
        total += value * weight

    remainder = total % 11
    return "X" if remainder == 10 else str(remainder)


def is_valid_vin(vin: str, config: VinConfig = DEFAULT_VIN_CONFIG) -> bool:
    if len(vin) != config.vin_length:
        return False
    return check_digit(vin, config) == vin[config.check_digit_index]


def with_check_digit(vin: str, config: VinConfig = DEFAULT_VIN_CONFIG) -> str:
    idx = config.check_digit_index
    return f"{vin[:idx]}{check_digit(vin, config)}{vin[idx + 1:]}"


def year_code(serial: SerialNumber, config: VinConfig = DEFAULT_VIN_CONFIG) -> ModelYearCode:
    for threshold in config.year_thresholds:
        if threshold.max_serial is None or serial <= threshold.max_serial:
            return ModelYearCode(year=threshold.year, code=threshold.code)
    raise UnsupportedYear(serial)
