"""
HomeCtl - Power Service
=========================
Electricity cost estimates for the power screen.

Usage is entered in kWh and the tariff in halalas per kWh; the cost comes
back in SAR. Each sector only accepts rates inside its published band.
Estimates are gated behind the member's ``power.view`` permission.
"""
import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from loguru import logger


POWER_DENIED_REPLY = "Power usage is not available for your account."


class Sector(str, Enum):
    RESIDENTIAL = "residential"
    COMMERCIAL = "commercial"


@dataclass
class SectorConfig:
    label: str
    min_rate_halala: float
    max_rate_halala: float

    def to_dict(self) -> Dict:
        return {
            "label": self.label,
            "min_rate_halala": self.min_rate_halala,
            "max_rate_halala": self.max_rate_halala,
        }


SECTOR_CONFIGS: Dict[Sector, SectorConfig] = {
    Sector.RESIDENTIAL: SectorConfig("Residential", 18, 30),
    Sector.COMMERCIAL: SectorConfig("Commercial/Industrial", 22, 32),
}


def _finite(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def compute_cost(kwh: float, rate_halala: float) -> float:
    """Cost in SAR, rounded to two decimals. Non-numeric usage counts as zero."""
    energy = kwh if _finite(kwh) else 0
    return round(energy * rate_halala / 100, 2)


def format_sar(amount: float) -> str:
    safe = amount if _finite(amount) else 0
    return f"SAR {safe:.2f}"


def validate_usage(kwh) -> Optional[str]:
    if not _finite(kwh):
        return "Enter a valid energy usage value in kWh."
    if kwh < 0:
        return "Energy usage must be zero or a positive number."
    return None


def validate_rate(rate_halala, sector: Sector) -> Optional[str]:
    config = SECTOR_CONFIGS[Sector(sector)]
    if not _finite(rate_halala):
        return "Enter a valid rate in halalas."
    if rate_halala < config.min_rate_halala or rate_halala > config.max_rate_halala:
        return (f"{config.label} rates must be between {config.min_rate_halala:g} and "
                f"{config.max_rate_halala:g} halalas per kWh.")
    return None


def validate_calculator_inputs(kwh, rate_halala, sector: Sector) -> Optional[str]:
    return validate_usage(kwh) or validate_rate(rate_halala, sector)


@dataclass
class CostEstimate:
    success: bool
    sector: Sector
    kwh: Optional[float] = None
    rate_halala: Optional[float] = None
    cost: Optional[float] = None
    error: Optional[str] = None
    denied: bool = False

    @property
    def formatted(self) -> Optional[str]:
        return format_sar(self.cost) if self.cost is not None else None

    def to_dict(self) -> Dict:
        return {
            "success": self.success,
            "sector": self.sector.value,
            "kwh": self.kwh,
            "rate_halala": self.rate_halala,
            "cost": self.cost,
            "formatted": self.formatted,
            "error": self.error,
        }


class PowerService:
    """Cost calculator for members allowed to see power usage."""

    def __init__(self, policy):
        self._policy = policy
        logger.info("Power service initialized")

    def can_view(self) -> bool:
        return self._policy.can("power.view")

    def sectors(self) -> List[Dict]:
        return [{"sector": s.value, **c.to_dict()} for s, c in SECTOR_CONFIGS.items()]

    def estimate(self, kwh, rate_halala, sector: Sector = Sector.RESIDENTIAL) -> CostEstimate:
        sector = Sector(sector)
        if not self.can_view():
            logger.warning("Power estimate denied for current member")
            return CostEstimate(False, sector, error=POWER_DENIED_REPLY, denied=True)

        problem = validate_calculator_inputs(kwh, rate_halala, sector)
        if problem:
            return CostEstimate(False, sector, kwh=kwh, rate_halala=rate_halala, error=problem)

        cost = compute_cost(kwh, rate_halala)
        logger.info(f"Power estimate: {kwh} kWh at {rate_halala} halalas ({sector.value}) = {format_sar(cost)}")
        return CostEstimate(True, sector, kwh=kwh, rate_halala=rate_halala, cost=cost)
