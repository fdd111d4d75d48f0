from __future__ import annotations

import io
import logging
from datetime import datetime, timezone
from typing import Callable

from pypdf import PdfReader
from pypdf.errors import PyPdfError

from failcat.checksum import is_valid_vin, year_code
from failcat.data_models import Car, ModelYearCode, SerialNumber, serial_from_vin
from failcat.errors import AnchorNotFound, FailcatError, StickerParseError

logger = logging.getLogger(__name__)

MODEL_LABEL = "MODEL/OPT.CODE"
EXT_COLOR_LABEL = "EXTERIOR COLOR"
INT_COLOR_LABEL = "INTERIOR COLOR"
VIN_LABEL = "VEHICLE ID NUMBER"
PORT_LABEL = "PORT OF ENTRY"
SOLD_TO_LABEL = "Sold To"
SHIP_TO_LABEL = "Ship To"

# dealer codes are five characters wide on the sticker
DEALER_CODE_WIDTH = 5


def pdf_text(document: bytes) -> str:
    try:
        reader = PdfReader(io.BytesIO(document))
        text = "\n".join(page.extract_text() or "" for page in reader.pages)
    except PyPdfError as exc:
        raise StickerParseError(f"Could not read PDF: {exc}") from exc
    except Exception as exc:
        # pypdf surfaces malformed streams as assorted builtin errors
        raise StickerParseError(f"Could not extract text from document: {exc}") from exc
    if not text.strip():
        raise StickerParseError("Document contains no text")
    return text


class StickerParser:
    """Turns a window-sticker document into a :class:`Car` by slicing between labels.

    When a label is missing its position falls back to the start of the text,
    which yields an empty or misplaced field rather than an error. With
    ``strict=True`` a missing label raises :class:`AnchorNotFound` instead.
    """

    def __init__(
        self,
        extract_text: Callable[[bytes], str] = pdf_text,
        model_year_for: Callable[[SerialNumber], ModelYearCode] = year_code,
        strict: bool = False,
    ) -> None:
        self.extract_text = extract_text
        self.model_year_for = model_year_for
        self.strict = strict

    def _find(self, text: str, label: str) -> int:
        idx = text.find(label)
        if idx >= 0:
            return idx
        if self.strict:
            raise AnchorNotFound(label)
        logger.warning("Sticker label %r not found, slicing from start of document", label)
        return 0

    def parse(self, document: bytes, serial: SerialNumber) -> Car:
        text = self.extract_text(document)

        model_idx = self._find(text, MODEL_LABEL)
        ext_idx = self._find(text, EXT_COLOR_LABEL)
        int_idx = self._find(text, INT_COLOR_LABEL)
        vin_idx = self._find(text, VIN_LABEL)
        port_idx = self._find(text, PORT_LABEL)
        sold_idx = self._find(text, SOLD_TO_LABEL)
        ship_idx = self._find(text, SHIP_TO_LABEL)

        description = text[:model_idx].strip()
        codes = [part.strip() for part in text[model_idx + len(MODEL_LABEL) + 1:ext_idx].split("/")]
        opt_code = codes[1] if len(codes) > 1 else ""
        ext_color = text[ext_idx + len(EXT_COLOR_LABEL) + 1:int_idx].strip()
        int_color = text[int_idx + len(INT_COLOR_LABEL) + 1:vin_idx].strip()
        vin = text[vin_idx + len(VIN_LABEL) + 1:port_idx].strip()
        sold_to = text[sold_idx + len(SOLD_TO_LABEL) + 2:ship_idx].strip()
        ship_start = ship_idx + len(SHIP_TO_LABEL) + 2
        ship_to = text[ship_start:ship_start + DEALER_CODE_WIDTH].strip()

        self._check_serial(vin, serial)
        now = datetime.now(timezone.utc)
        return Car(
            vin=vin,
            ext_color=ext_color,
            int_color=int_color,
            car_model=description,
            opt_code=opt_code,
            ship_to=ship_to,
            sold_to=sold_to[:DEALER_CODE_WIDTH],
            serial_number=serial,
            model_year=str(self.model_year_for(serial).year),
            created_date=now,
            last_attempt=now.isoformat(),
        )

    def _check_serial(self, vin: str, serial: SerialNumber) -> None:
        try:
            if is_valid_vin(vin) and serial_from_vin(vin) != serial:
                logger.warning("Sticker VIN %s does not carry serial %s", vin, serial)
        except FailcatError:
            logger.warning("Sticker VIN %r is malformed", vin)
