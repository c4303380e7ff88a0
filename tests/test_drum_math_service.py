from __future__ import annotations

import unittest
from decimal import Decimal

from fieldops.errors import ValidationError
from fieldops.models import DrumStatus, WastageMethod
from fieldops.services.drum_math_service import (
    Segment,
    UsageInput,
    analyze_segments,
    project_drum,
    rewind_wastage,
    validate_manual_override,
)


def _usage(qty: str, wastage: str = '0', start: str | None = None, end: str | None = None) -> UsageInput:
    return UsageInput(
        quantity_used=Decimal(qty),
        wastage_calculated=Decimal(wastage),
        cable_start_point=Decimal(start) if start is not None else None,
        cable_end_point=Decimal(end) if end is not None else None,
    )


class ProjectDrumTests(unittest.TestCase):
    def assertQuantitiesBalance(self, projection) -> None:
        self.assertGreaterEqual(projection.current_quantity, Decimal('0'))
        self.assertGreaterEqual(projection.wastage, Decimal('0'))
        self.assertLessEqual(projection.current_quantity, projection.initial_quantity)
        if projection.overdrawn == 0:
            self.assertEqual(
                projection.total_used + projection.current_quantity + projection.wastage,
                projection.initial_quantity,
            )

    def test_current_quantity_is_initial_minus_usage(self) -> None:
        projection = project_drum(Decimal('1000'), [_usage('120'), _usage('80', '5')])

        self.assertEqual(projection.total_used, Decimal('200'))
        self.assertEqual(projection.current_quantity, Decimal('800'))
        self.assertEqual(projection.recorded_wastage, Decimal('5'))
        self.assertEqual(projection.wastage, Decimal('0'))
        self.assertEqual(projection.status, DrumStatus.ACTIVE)

    def test_gaps_between_segments_are_wastage(self) -> None:
        projection = project_drum(
            Decimal('1000'),
            [_usage('100', start='0', end='100'), _usage('100', start='300', end='400')],
        )

        self.assertEqual(projection.gap_wastage, Decimal('200'))
        self.assertEqual(projection.wastage, Decimal('200'))
        self.assertEqual(projection.current_quantity, Decimal('600'))
        self.assertQuantitiesBalance(projection)

    def test_head_gap_counts_and_overlaps_do_not(self) -> None:
        projection = project_drum(
            Decimal('500'),
            [_usage('50', start='20', end='70'), _usage('40', start='60', end='100')],
        )

        self.assertEqual(projection.wastage, Decimal('20'))
        self.assertEqual(projection.current_quantity, Decimal('390'))
        self.assertQuantitiesBalance(projection)

    def test_wastage_never_exceeds_what_is_left(self) -> None:
        projection = project_drum(Decimal('100'), [_usage('90', '20', start='50', end='140')])

        self.assertEqual(projection.wastage, Decimal('10'))
        self.assertEqual(projection.current_quantity, Decimal('0'))
        self.assertEqual(projection.status, DrumStatus.DEPLETED)
        self.assertQuantitiesBalance(projection)

    def test_quantities_balance_across_histories(self) -> None:
        histories = [
            [],
            [_usage('0')],
            [_usage('999.99')],
            [_usage('90', '20')],
            [_usage('100', start='0', end='100'), _usage('100', start='300', end='400')],
            [_usage('10', start='900', end='910')],
            [_usage('600'), _usage('600')],
        ]
        for usages in histories:
            for status in (DrumStatus.ACTIVE, DrumStatus.RETIRED):
                with self.subTest(usages=usages, status=status):
                    self.assertQuantitiesBalance(project_drum(Decimal('1000'), usages, stored_status=status))
            with self.subTest(usages=usages, method='manual'):
                self.assertQuantitiesBalance(
                    project_drum(
                        Decimal('1000'),
                        usages,
                        method=WastageMethod.MANUAL_OVERRIDE,
                        manual_override=Decimal('250'),
                    )
                )

    def test_overdraw_is_reported_and_drum_is_depleted(self) -> None:
        projection = project_drum(Decimal('500'), [_usage('300'), _usage('250')])

        self.assertEqual(projection.current_quantity, Decimal('0'))
        self.assertEqual(projection.overdrawn, Decimal('50'))
        self.assertEqual(projection.wastage, Decimal('0'))
        self.assertEqual(projection.status, DrumStatus.DEPLETED)

    def test_retired_drum_counts_leftover_as_wastage(self) -> None:
        projection = project_drum(
            Decimal('1000'), [_usage('700', '10')], stored_status=DrumStatus.RETIRED
        )

        self.assertEqual(projection.status, DrumStatus.RETIRED)
        self.assertEqual(projection.wastage, Decimal('300'))
        self.assertEqual(projection.current_quantity, Decimal('0'))

    def test_manual_override_is_used_verbatim(self) -> None:
        projection = project_drum(
            Decimal('1000'),
            [_usage('700', '10')],
            method=WastageMethod.MANUAL_OVERRIDE,
            manual_override=Decimal('42'),
        )

        self.assertEqual(projection.wastage, Decimal('42'))
        self.assertEqual(projection.current_quantity, Decimal('258'))
        self.assertEqual(projection.wastage_method, WastageMethod.MANUAL_OVERRIDE)

    def test_manual_override_shrinks_when_usage_outgrows_it(self) -> None:
        projection = project_drum(
            Decimal('100'),
            [_usage('95')],
            method=WastageMethod.MANUAL_OVERRIDE,
            manual_override=Decimal('20'),
        )

        self.assertEqual(projection.wastage, Decimal('5'))
        self.assertEqual(projection.current_quantity, Decimal('0'))

    def test_manual_method_without_value_falls_back_to_automatic(self) -> None:
        projection = project_drum(Decimal('100'), [_usage('10', '2')], method=WastageMethod.MANUAL_OVERRIDE)

        self.assertEqual(projection.wastage_method, WastageMethod.AUTOMATIC)
        self.assertEqual(projection.wastage, Decimal('0'))
        self.assertEqual(projection.current_quantity, Decimal('90'))


class ManualOverrideValidationTests(unittest.TestCase):
    def test_requires_value(self) -> None:
        with self.assertRaises(ValidationError):
            validate_manual_override(None, Decimal('100'), Decimal('0'))

    def test_rejects_negative(self) -> None:
        with self.assertRaises(ValidationError):
            validate_manual_override(Decimal('-1'), Decimal('100'), Decimal('0'))

    def test_rejects_more_than_remaining(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            validate_manual_override(Decimal('31'), Decimal('100'), Decimal('70'))
        self.assertEqual(ctx.exception.fields, ['manual_wastage_override'])

    def test_accepts_remaining_exactly(self) -> None:
        self.assertEqual(validate_manual_override(Decimal('30'), Decimal('100'), Decimal('70')), Decimal('30'))


class SegmentAnalysisTests(unittest.TestCase):
    def test_merges_overlaps_and_reports_gaps(self) -> None:
        report = analyze_segments(
            [
                _usage('40', start='10', end='50'),
                _usage('30', start='40', end='70'),
                _usage('20', start='100', end='80'),
                _usage('0', start='90', end='90'),
            ],
            Decimal('200'),
        )

        self.assertEqual(
            report.used_segments,
            [Segment(Decimal('10'), Decimal('70')), Segment(Decimal('80'), Decimal('100'))],
        )
        self.assertEqual(report.gaps, [Segment(Decimal('0'), Decimal('10')), Segment(Decimal('70'), Decimal('80'))])
        self.assertEqual(report.total_used, Decimal('80'))
        self.assertEqual(report.total_gap, Decimal('20'))
        self.assertEqual(report.highest_point, Decimal('100'))
        self.assertEqual(report.remaining_cable, Decimal('100'))

    def test_no_usage_leaves_whole_drum(self) -> None:
        report = analyze_segments([], Decimal('500'))

        self.assertEqual(report.used_segments, [])
        self.assertEqual(report.remaining_cable, Decimal('500'))


class RewindWastageTests(unittest.TestCase):
    def test_start_behind_previous_end_is_lost(self) -> None:
        self.assertEqual(rewind_wastage(Decimal('150'), Decimal('140')), Decimal('10'))

    def test_forward_start_or_first_usage_adds_nothing(self) -> None:
        self.assertEqual(rewind_wastage(Decimal('150'), Decimal('160')), Decimal('0'))
        self.assertEqual(rewind_wastage(None, Decimal('5')), Decimal('0'))


if __name__ == '__main__':
    unittest.main()
