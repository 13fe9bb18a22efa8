from __future__ import annotations
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from payroll_api.common.errors import ConfigurationError
from payroll_api.models.payroll.rate_set import RateSetConfig
from payroll_api.services.money import dec, HUNDRED


@dataclass(frozen=True)
class PTSlab:
    min: Decimal
    max: Optional[Decimal]  # None = open ended
    amount: Decimal

    def contains(self, gross: Decimal) -> bool:
        if gross < self.min:
            return False
        return self.max is None or gross <= self.max


@dataclass(frozen=True)
class RateSet:
    pf_rate: Decimal
    pf_wage_ceiling: Decimal
    esi_rate: Decimal
    esi_employer_rate: Decimal
    esi_wage_ceiling: Decimal
    pt_slabs: Tuple[PTSlab, ...] = ()
    effective_from: Optional[date] = None
    effective_to: Optional[date] = None
    source_id: Optional[int] = None

    def __post_init__(self):
        for name in ("pf_rate", "esi_rate", "esi_employer_rate"):
            v = getattr(self, name)
            if v < 0 or v > HUNDRED:
                raise ConfigurationError(f"{name} must be between 0 and 100", payload={"field": name})
        for name in ("pf_wage_ceiling", "esi_wage_ceiling"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be > 0", payload={"field": name})
        if self.effective_to and self.effective_from and self.effective_to < self.effective_from:
            raise ConfigurationError("effective_to must be >= effective_from")
        prev_min = None
        for slab in self.pt_slabs:
            if slab.min < 0 or slab.amount < 0:
                raise ConfigurationError("pt slab bounds and amounts must be >= 0")
            if slab.max is not None and slab.max < slab.min:
                raise ConfigurationError("pt slab max must be >= min")
            if prev_min is not None and slab.min < prev_min:
                raise ConfigurationError("pt slabs must be ordered by ascending lower bound")
            prev_min = slab.min

    @classmethod
    def from_values(cls, *, pf_rate, pf_wage_ceiling, esi_rate, esi_employer_rate,
                    esi_wage_ceiling, pt_slabs=None, effective_from=None,
                    effective_to=None, source_id=None) -> "RateSet":
        return cls(
            pf_rate=dec(pf_rate),
            pf_wage_ceiling=dec(pf_wage_ceiling),
            esi_rate=dec(esi_rate),
            esi_employer_rate=dec(esi_employer_rate),
            esi_wage_ceiling=dec(esi_wage_ceiling),
            pt_slabs=parse_pt_slabs(pt_slabs),
            effective_from=effective_from,
            effective_to=effective_to,
            source_id=source_id,
        )

    @classmethod
    def from_model(cls, row: RateSetConfig) -> "RateSet":
        return cls.from_values(
            pf_rate=row.pf_rate,
            pf_wage_ceiling=row.pf_wage_ceiling,
            esi_rate=row.esi_rate,
            esi_employer_rate=row.esi_employer_rate,
            esi_wage_ceiling=row.esi_wage_ceiling,
            pt_slabs=row.pt_slabs,
            effective_from=row.effective_from,
            effective_to=row.effective_to,
            source_id=row.id,
        )

    def professional_tax(self, gross: Decimal) -> Decimal:
        for slab in self.pt_slabs:
            if slab.contains(gross):
                return slab.amount
        return Decimal("0")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.source_id,
            "pf_rate": float(self.pf_rate),
            "pf_wage_ceiling": float(self.pf_wage_ceiling),
            "esi_rate": float(self.esi_rate),
            "esi_employer_rate": float(self.esi_employer_rate),
            "esi_wage_ceiling": float(self.esi_wage_ceiling),
            "pt_slabs": [
                {"min": float(s.min), "max": float(s.max) if s.max is not None else None,
                 "amount": float(s.amount)}
                for s in self.pt_slabs
            ],
            "effective_from": self.effective_from.isoformat() if self.effective_from else None,
            "effective_to": self.effective_to.isoformat() if self.effective_to else None,
        }


def parse_pt_slabs(raw) -> Tuple[PTSlab, ...]:
    if not raw:
        return ()
    if not isinstance(raw, (list, tuple)):
        raise ConfigurationError("pt_slabs must be a list")
    out: List[PTSlab] = []
    for s in raw:
        if not isinstance(s, dict):
            raise ConfigurationError("each pt slab must be an object with min/max/amount")
        try:
            out.append(PTSlab(
                min=dec(s.get("min", 0)),
                max=dec(s["max"]) if s.get("max") is not None else None,
                amount=dec(s.get("amount", 0)),
            ))
        except ArithmeticError:
            raise ConfigurationError("pt slab values must be numeric")
    return tuple(out)


# Defaults seeded by `flask seed-rates`
DEFAULT_RATES: Dict[str, Any] = {
    "pf_rate": "12",
    "pf_wage_ceiling": "15000",
    "esi_rate": "0.75",
    "esi_employer_rate": "3.25",
    "esi_wage_ceiling": "21000",
    "pt_slabs": [
        {"min": 0, "max": 25000, "amount": 0},
        {"min": 25000.01, "max": None, "amount": 200},
    ],
}


def resolve(effective_date: date) -> RateSet:
    """Rate set covering `effective_date`; latest effective_from wins, then highest id."""
    row = (
        RateSetConfig.query
        .filter(RateSetConfig.effective_from <= effective_date)
        .filter((RateSetConfig.effective_to.is_(None)) | (RateSetConfig.effective_to >= effective_date))
        .order_by(RateSetConfig.effective_from.desc(), RateSetConfig.id.desc())
        .first()
    )
    if row is None:
        raise ConfigurationError(
            f"No rate set covers {effective_date.isoformat()}",
            payload={"effective_date": effective_date.isoformat()},
        )
    return RateSet.from_model(row)
