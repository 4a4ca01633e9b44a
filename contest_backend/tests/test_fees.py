import math
import unittest

from contest_backend.errors import InvalidCategory, ValidationError
from contest_backend.fees import (
    CATEGORY_FEES,
    calculate_fees,
    fees_from_metadata,
    to_minor_units,
)


class FeeTests(unittest.TestCase):
    def test_every_category_adds_four_percent_rounded_up(self):
        for category, fee in CATEGORY_FEES.items():
            fees = calculate_fees(category)
            self.assertEqual(fees.entry_fee, fee)
            self.assertEqual(fees.surcharge, math.ceil(fee * 0.04))
            self.assertEqual(fees.total_amount, fee + fees.surcharge)

    def test_known_amounts(self):
        business = calculate_fees("business")
        self.assertEqual((business.entry_fee, business.surcharge, business.total_amount), (49, 2, 51))
        tech = calculate_fees("technology")
        self.assertEqual((tech.entry_fee, tech.surcharge, tech.total_amount), (99, 4, 103))

    def test_unknown_category(self):
        with self.assertRaises(InvalidCategory) as ctx:
            calculate_fees("sports")
        self.assertIsInstance(ctx.exception, ValidationError)
        self.assertEqual(ctx.exception.status_code, 400)

    def test_minor_units(self):
        self.assertEqual(to_minor_units(51), 5100)

    def test_fees_from_metadata_recomputes_total(self):
        fees = fees_from_metadata({"entryFee": "99", "surcharge": "4", "totalAmount": "1"})
        self.assertEqual(fees.total_amount, 103)

    def test_fees_from_metadata_missing_values(self):
        with self.assertRaises(ValidationError):
            fees_from_metadata({"entryFee": "49"})


if __name__ == "__main__":
    unittest.main()
