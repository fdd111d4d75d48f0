import pytest

from failcat.errors import AnchorNotFound, StickerParseError
from scrape_service.sticker_parser import StickerParser, pdf_text

STICKER_TEXT = (
    "2024 TELLURIDE SX X-PRO AWD\n"
    "MODEL/OPT.CODE T8482 / GA\n"
    "EXTERIOR COLOR EVEREST GREEN\n"
    "INTERIOR COLOR BLACK\n"
    "VEHICLE ID NUMBER 5XYP5DGC9RG500123\n"
    "PORT OF ENTRY BRUNSWICK GA\n"
    "Sold To: CA123 KIA OF SOMEWHERE 90210\n"
    "Ship To: CA123 KIA OF SOMEWHERE\n"
)


def _parser(text: str, **kwargs) -> StickerParser:
    return StickerParser(extract_text=lambda _: text, **kwargs)


def test_parse_slices_fields_between_labels():
    car = _parser(STICKER_TEXT).parse(b"%PDF-1.4", 500123)
    assert car.id is None
    assert car.car_model == "2024 TELLURIDE SX X-PRO AWD"
    assert car.opt_code == "GA"
    assert car.ext_color == "EVEREST GREEN"
    assert car.int_color == "BLACK"
    assert car.vin == "5XYP5DGC9RG500123"
    assert car.sold_to == "CA123"
    assert car.ship_to == "CA123"
    assert car.serial_number == 500123


def test_model_year_comes_from_serial_not_document():
    assert _parser(STICKER_TEXT).parse(b"", 411975).model_year == "2023"
    assert _parser(STICKER_TEXT).parse(b"", 411976).model_year == "2024"


def test_missing_anchor_falls_back_to_document_start():
    text = STICKER_TEXT.replace("PORT OF ENTRY", "PORT")
    car = _parser(text).parse(b"", 500123)
    # the VIN slice now ends at index 0 and comes out empty
    assert car.vin == ""
    assert car.ext_color == "EVEREST GREEN"


def test_missing_anchor_raises_when_strict():
    text = STICKER_TEXT.replace("EXTERIOR COLOR", "EXT COLOUR")
    with pytest.raises(AnchorNotFound) as err:
        _parser(text, strict=True).parse(b"", 500123)
    assert err.value.label == "EXTERIOR COLOR"


def test_anchor_not_found_is_a_parse_error():
    assert issubclass(AnchorNotFound, StickerParseError)


def test_pdf_text_rejects_garbage():
    with pytest.raises(StickerParseError):
        pdf_text(b"definitely not a pdf document")
