"""Item pipelines applied to freshly scraped listings."""

from __future__ import annotations

from car_listing_tracker.parsing_helpers import (
    clean_text,
    parse_mileage,
    parse_price,
    safe_int,
)


class CleanListingPipeline:
    """Strip whitespace and normalise text and number fields.

    Sources hand over whatever the page said; this turns ``"$31,990"``
    into ``31990`` and ``"  SEL  "`` into ``"SEL"`` so the validator and
    the metrics engine only ever see clean values. Numbers that are
    already ints are left alone, so a bad value like ``-1`` still reaches
    the validator.
    """

    TEXT_FIELDS = (
        "id",
        "make",
        "model",
        "trim",
        "location",
        "url",
        "vin",
    )

    def process_item(self, item):
        for field in self.TEXT_FIELDS:
            value = item.get(field)
            if isinstance(value, str):
                item[field] = clean_text(value)

        vin = item.get("vin")
        if isinstance(vin, str):
            item["vin"] = vin.upper()

        price = item.get("price")
        if isinstance(price, str):
            item["price"] = parse_price(price)
        elif isinstance(price, float) and price.is_integer():
            item["price"] = int(price)

        mileage = item.get("mileage")
        if isinstance(mileage, str):
            item["mileage"] = parse_mileage(mileage)
        elif isinstance(mileage, float):
            item["mileage"] = int(round(mileage))

        year = item.get("year")
        if isinstance(year, str):
            item["year"] = safe_int(year)

        return item
