from __future__ import annotations

import unittest
from decimal import Decimal

from fieldops.services.cable_math_service import coerce_reading, total_cable


class CableMathServiceTests(unittest.TestCase):
    def test_total_is_first_leg_plus_last_leg(self) -> None:
        self.assertEqual(total_cable(100, 50, 30), Decimal('130'))

    def test_middle_reading_never_counts(self) -> None:
        self.assertEqual(total_cable(None, 20, None), Decimal('0'))
        self.assertEqual(total_cable(10, 999, 5), total_cable(10, 0, 5))

    def test_unusable_readings_count_as_zero(self) -> None:
        for bad in (None, float('nan'), float('inf'), 'abc', '', True):
            with self.subTest(value=bad):
                self.assertEqual(total_cable(bad, 1, 40), Decimal('40'))

    def test_numeric_strings_are_parsed(self) -> None:
        self.assertEqual(total_cable(' 12.5 ', None, '7.5'), Decimal('20.0'))

    def test_decimal_passes_through(self) -> None:
        self.assertEqual(coerce_reading(Decimal('3.25')), Decimal('3.25'))
        self.assertEqual(coerce_reading(Decimal('NaN')), Decimal('0'))


if __name__ == '__main__':
    unittest.main()
