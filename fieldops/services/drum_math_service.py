from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from fieldops.errors import ValidationError
from fieldops.models import DrumStatus, WastageMethod

ZERO = Decimal('0')


@dataclass(frozen=True)
class UsageInput:
    quantity_used: Decimal
    wastage_calculated: Decimal = ZERO
    cable_start_point: Decimal | None = None
    cable_end_point: Decimal | None = None
    usage_id: int | None = None
    usage_date: date | None = None


@dataclass(frozen=True)
class DrumProjection:
    initial_quantity: Decimal
    total_used: Decimal
    current_quantity: Decimal
    overdrawn: Decimal
    recorded_wastage: Decimal
    gap_wastage: Decimal
    wastage: Decimal
    wastage_method: WastageMethod
    status: DrumStatus


@dataclass(frozen=True)
class Segment:
    start: Decimal
    end: Decimal

    @property
    def length(self) -> Decimal:
        return self.end - self.start


@dataclass(frozen=True)
class SegmentReport:
    capacity: Decimal
    used_segments: list[Segment] = field(default_factory=list)
    gaps: list[Segment] = field(default_factory=list)
    total_used: Decimal = ZERO
    total_gap: Decimal = ZERO
    highest_point: Decimal = ZERO
    remaining_cable: Decimal = ZERO


def project_status(current_quantity: Decimal, stored_status: DrumStatus) -> DrumStatus:
    if stored_status == DrumStatus.RETIRED:
        return DrumStatus.RETIRED
    if current_quantity <= 0:
        return DrumStatus.DEPLETED
    return DrumStatus.ACTIVE


def project_drum(
    initial_quantity: Decimal,
    usages: Iterable[UsageInput],
    *,
    method: WastageMethod = WastageMethod.AUTOMATIC,
    manual_override: Decimal | None = None,
    stored_status: DrumStatus = DrumStatus.ACTIVE,
) -> DrumProjection:
    """Rebuild a drum's quantity and wastage from its usage history.

    The usage rows are the source of truth. Cable not drawn by any usage is
    either still on the drum or wasted, so
    ``used + current + wastage == initial`` whenever the drum is not
    overdrawn. Anything drawn past the initial quantity is reported as
    ``overdrawn`` rather than pushing the drum negative.

    Automatic wastage is the unused stretch between usage segments on the
    meter scale; once a drum is retired, everything still on it is lost too.
    A manual override replaces the computed figure, bounded by what is left.
    """
    usages = list(usages)
    total_used = sum((u.quantity_used for u in usages), ZERO)
    recorded_wastage = sum((u.wastage_calculated for u in usages), ZERO)
    unaccounted = max(initial_quantity - total_used, ZERO)
    overdrawn = max(total_used - initial_quantity, ZERO)
    gap_wastage = analyze_segments(usages, initial_quantity).total_gap

    if method == WastageMethod.MANUAL_OVERRIDE and manual_override is not None:
        wastage = min(max(manual_override, ZERO), unaccounted)
    else:
        method = WastageMethod.AUTOMATIC
        wastage = min(gap_wastage, unaccounted)
        if stored_status == DrumStatus.RETIRED:
            wastage = unaccounted
    current = unaccounted - wastage

    return DrumProjection(
        initial_quantity=initial_quantity,
        total_used=total_used,
        current_quantity=current,
        overdrawn=overdrawn,
        recorded_wastage=recorded_wastage,
        gap_wastage=gap_wastage,
        wastage=wastage,
        wastage_method=method,
        status=project_status(current, stored_status),
    )


def validate_manual_override(override: Decimal | None, initial_quantity: Decimal, total_used: Decimal) -> Decimal:
    if override is None:
        raise ValidationError('Manual wastage override is required', fields=['manual_wastage_override'])
    if override < 0:
        raise ValidationError('Wastage cannot be negative', fields=['manual_wastage_override'])
    ceiling = max(initial_quantity - total_used, ZERO)
    if override > ceiling:
        raise ValidationError(
            f'Wastage cannot exceed {ceiling} (remaining capacity after usage)',
            fields=['manual_wastage_override'],
        )
    return override


def rewind_wastage(previous_end: Decimal | None, start: Decimal) -> Decimal:
    # A start reading behind the last recorded end point means that stretch was cut off and lost.
    if previous_end is None or start >= previous_end:
        return ZERO
    return previous_end - start


def _merge(segments: list[Segment]) -> list[Segment]:
    merged: list[Segment] = []
    for seg in sorted(segments, key=lambda s: (s.start, s.end)):
        if merged and seg.start <= merged[-1].end:
            last = merged[-1]
            merged[-1] = Segment(start=last.start, end=max(last.end, seg.end))
            continue
        merged.append(seg)
    return merged


def analyze_segments(usages: Iterable[UsageInput], capacity: Decimal) -> SegmentReport:
    """Map usages onto the drum's meter scale and find the cable nobody drew.

    Each usage covers ``[min(start, end), max(start, end)]``; readings may run
    in either direction and overlapping draws are counted once. Gaps before
    the first draw and between draws are waste. Cable past the highest point
    is still on the drum.
    """
    raw: list[Segment] = []
    for usage in usages:
        start = usage.cable_start_point or ZERO
        end = usage.cable_end_point or ZERO
        seg = Segment(start=min(start, end), end=max(start, end))
        if seg.length > 0:
            raw.append(seg)
    if not raw:
        return SegmentReport(capacity=capacity, remaining_cable=capacity)

    used = _merge(raw)
    gaps: list[Segment] = []
    if used[0].start > 0:
        gaps.append(Segment(start=ZERO, end=used[0].start))
    for left, right in zip(used, used[1:]):
        gaps.append(Segment(start=left.end, end=right.start))

    highest = used[-1].end
    return SegmentReport(
        capacity=capacity,
        used_segments=used,
        gaps=gaps,
        total_used=sum((s.length for s in used), ZERO),
        total_gap=sum((g.length for g in gaps), ZERO),
        highest_point=highest,
        remaining_cable=max(capacity - highest, ZERO),
    )
