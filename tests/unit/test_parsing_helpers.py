"""
Unit tests for shared parsing helpers and the cleaning pipeline
"""
import pytest

from car_listing_tracker.items import Listing
from car_listing_tracker.parsing_helpers import (
    clean_text,
    extract_year,
    normalize_name,
    parse_mileage,
    parse_price,
    safe_int,
    title_matches,
)
from car_listing_tracker.pipelines import CleanListingPipeline


class TestNumbers:
    @pytest.mark.parametrize("raw,expected", [
        ("$31,990", 31990),
        ("48714", 48714),
        ("23477.00", 23477),
        (23477.0, 23477),
        ("$34,998*", 34998),
        ("0", None),
        ("", None),
        (None, None),
    ])
    def test_parse_price(self, raw, expected):
        assert parse_price(raw) == expected

    @pytest.mark.parametrize("raw,expected", [
        ("47K mi", 47000),
        ("12.5k miles", 12500),
        ("68,203", 68203),
        ("5 mi", 5),
        ("no mileage", None),
        (None, None),
    ])
    def test_parse_mileage(self, raw, expected):
        assert parse_mileage(raw) == expected

    def test_safe_int(self):
        assert safe_int("2023") == 2023
        assert safe_int("1,204") == 1204
        assert safe_int("n/a") is None
        assert safe_int(True) is None

    def test_extract_year(self):
        assert extract_year("2023 Tesla Model 3") == 2023
        assert extract_year("Tesla Model 3 2023") is None
        assert extract_year(None) is None


class TestText:
    def test_clean_text(self):
        assert clean_text("  Ioniq \n 5  ") == "Ioniq 5"
        assert clean_text("   ") is None

    def test_normalize_name(self):
        assert normalize_name(" Ioniq 5 ") == "ioniq5"

    def test_title_matches(self):
        assert title_matches("2022 HYUNDAI  IONIQ 5 SEL", "Hyundai", "Ioniq 5")
        assert not title_matches("2022 Hyundai Ioniq 6", "Hyundai", "Ioniq 5")


class TestCleanListingPipeline:
    def test_cleans_scraped_strings(self):
        item = Listing(
            id=" 123 ", make="Hyundai", model="Ioniq  5", trim="\nSEL ", vin="km8abc",
            price="$31,990", mileage="12K mi", year="2023",
        )
        cleaned = CleanListingPipeline().process_item(item)
        assert cleaned["id"] == "123"
        assert cleaned["model"] == "Ioniq 5"
        assert cleaned["trim"] == "SEL"
        assert cleaned["vin"] == "KM8ABC"
        assert (cleaned["price"], cleaned["mileage"], cleaned["year"]) == (31990, 12000, 2023)

    def test_numbers_left_for_validator(self):
        cleaned = CleanListingPipeline().process_item({"price": 29999.0, "mileage": -1, "year": 2022})
        assert cleaned["price"] == 29999
        assert isinstance(cleaned["price"], int)
        assert cleaned["mileage"] == -1
