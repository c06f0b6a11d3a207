# backend/icm/engine/tiers.py
"""
Commission tier ladder: validation, progressive payout and the authoring
mutations. Mutations never touch their input; they return a new ladder.
"""
from __future__ import annotations

from enum import Enum
from typing import List, Sequence

from ..core.errors import ValidationError
from ..schemas.scheme import Tier

DEFAULT_TIER_WIDTH = 100.0


class TierField(str, Enum):
    FROM = "from"
    TO = "to"
    RATE = "rate"


# ----------------- Validation -----------------
def ladder_errors(tiers: Sequence[Tier]) -> List[str]:
    if not tiers:
        return ["at least one commission tier is required"]

    errors: List[str] = []
    if tiers[0].from_ != 0:
        errors.append(f"tier 0: ladder must start at 0, got {tiers[0].from_}")

    for i, t in enumerate(tiers):
        if not (0 <= t.rate <= 100):
            errors.append(f"tier {i}: rate {t.rate} outside [0, 100]")
        if t.to is not None and t.to <= t.from_:
            errors.append(f"tier {i}: 'to' ({t.to}) must be greater than 'from' ({t.from_})")
        if i == 0:
            continue
        prev = tiers[i - 1]
        if prev.to is None:
            errors.append(f"tier {i - 1}: only the last tier may be open-ended")
        elif t.from_ != prev.to:
            kind = "gap" if t.from_ > prev.to else "overlap"
            errors.append(f"tier {i}: {kind} - 'from' ({t.from_}) must equal previous 'to' ({prev.to})")
    return errors


def validate_ladder(tiers: Sequence[Tier]) -> None:
    errors = ladder_errors(tiers)
    if errors:
        raise ValidationError("Invalid commission tier ladder", {"tiers": errors})


# ----------------- Computation -----------------
def tiered_payout(tiers: Sequence[Tier], measure: float) -> float:
    """
    Marginal-rate payout: the slice of `measure` inside each [from, to) band
    is paid at that band's rate.

    [{0,1000,5}, {1000,open,10}] at 1500 -> 1000*5% + 500*10% = 100.
    """
    if measure <= 0:
        return 0.0
    total = 0.0
    for t in tiers:
        if measure <= t.from_:
            continue
        portion = min(measure, t.upper) - t.from_
        if portion > 0:
            total += portion * (t.rate / 100.0)
    return total


def marginal_breakdown(tiers: Sequence[Tier], measure: float) -> List[dict]:
    out: List[dict] = []
    for i, t in enumerate(tiers):
        portion = max(0.0, min(measure, t.upper) - t.from_) if measure > t.from_ else 0.0
        out.append(
            {
                "tier": i,
                "from": t.from_,
                "to": t.to,
                "rate": t.rate,
                "portion": portion,
                "payout": portion * (t.rate / 100.0),
            }
        )
    return out


# ----------------- Mutations -----------------
def _copy(tiers: Sequence[Tier]) -> List[Tier]:
    return [t.model_copy() for t in tiers]


def _check_index(tiers: Sequence[Tier], index: int) -> None:
    if not (0 <= index < len(tiers)):
        raise ValidationError(f"No tier at index {index}", {"index": index, "size": len(tiers)})


def add_tier(tiers: Sequence[Tier]) -> List[Tier]:
    out = _copy(tiers)
    if not out:
        out.append(Tier(from_=0, to=DEFAULT_TIER_WIDTH, rate=0))
        return out
    last = out[-1]
    if last.to is None:
        raise ValidationError("Close the open-ended top tier before adding another", {"index": len(out) - 1})
    start = last.to
    out.append(Tier(from_=start, to=start + DEFAULT_TIER_WIDTH, rate=0))
    return out


def remove_tier(tiers: Sequence[Tier], index: int) -> List[Tier]:
    _check_index(tiers, index)
    if index == 0:
        raise ValidationError("The first tier anchors the ladder and cannot be removed", {"index": 0})
    out = _copy(tiers)
    del out[index]
    if index < len(out):
        out[index] = out[index].model_copy(update={"from_": out[index - 1].to})
    return out


def _num(value, field: TierField) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Tier '{field.value}' must be numeric, got {value!r}")


def update_tier(tiers: Sequence[Tier], index: int, field: TierField, value) -> List[Tier]:
    _check_index(tiers, index)
    try:
        field = TierField(field)
    except ValueError:
        raise ValidationError(f"Unknown tier field {field!r}", {"allowed": [f.value for f in TierField]})
    out = _copy(tiers)
    current = out[index]

    if field is TierField.FROM:
        if index != 0:
            raise ValidationError(
                "Only the first tier's 'from' is editable; later tiers derive it from the previous 'to'",
                {"index": index},
            )
        updated = current.model_copy(update={"from_": _num(value, field)})
    elif field is TierField.TO:
        to = None if value is None else _num(value, field)
        if to is None and index + 1 < len(out):
            raise ValidationError("Only the last tier may be open-ended", {"index": index})
        updated = current.model_copy(update={"to": to})
        if index + 1 < len(out):
            out[index + 1] = out[index + 1].model_copy(update={"from_": to})
    elif field is TierField.RATE:
        updated = current.model_copy(update={"rate": _num(value, field)})
    else:  # pragma: no cover - TierField is closed
        raise ValidationError(f"Unknown tier field {field!r}")

    out[index] = updated
    errors = ladder_errors(out)
    if errors:
        raise ValidationError("Tier update would break the ladder", {"tiers": errors})
    return out
