# Overview: Pure cash reconciliation for shift close (expected vs counted cash).

from __future__ import annotations

from dataclasses import dataclass

BALANCED = "BALANCED"
SURPLUS = "SURPLUS"  # cash over
SHORTAGE = "SHORTAGE"  # cash short


@dataclass(frozen=True)
class Reconciliation:
    expected_cash: int
    actual_cash: int
    variance: int
    status: str

    @property
    def magnitude(self) -> int:
        return abs(self.variance)

    @property
    def requires_notes(self) -> bool:
        """Any non-zero variance must be explained at close."""
        return self.variance != 0

    def to_dict(self) -> dict:
        return {
            "expected_cash": self.expected_cash,
            "actual_cash": self.actual_cash,
            "variance": self.variance,
            "status": self.status,
            "magnitude": self.magnitude,
            "requires_notes": self.requires_notes,
        }


def evaluate(expected_cash: int, actual_cash: int) -> Reconciliation:
    variance = actual_cash - expected_cash
    if variance > 0:
        status = SURPLUS
    elif variance < 0:
        status = SHORTAGE
    else:
        status = BALANCED
    return Reconciliation(
        expected_cash=expected_cash,
        actual_cash=actual_cash,
        variance=variance,
        status=status,
    )
