"""Data models for distributed solar plants and their financial assumptions.

Plants, normalized monthly billing records and the configuration
snapshots (tariffs, tax regime, projection model) that every calculation
receives explicitly. Rates are stored as decimals (0.35 for 35%).

References:
    - Ley 1715 de 2014 (Colombia), arts. 11 and 14: income-tax deduction
      of up to 50% of the investment and accelerated depreciation.
    - Decreto 829 de 2020 (deduction window of up to 15 years).
"""

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Dict, List, Optional

# Reference yield parameters used for targets and compliance
REFERENCE_DAILY_YIELD_HOURS = 4.0
REFERENCE_PERFORMANCE_RATIO = 0.90

MAX_DEDUCTION_YEARS = 15


def _parse_date(value) -> Optional[date]:
    if value in (None, ""):
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


@dataclass(frozen=True)
class Plant:
    """A commissioned (or planned) solar plant.

    Capacity and investment are fixed once the plant is operational;
    only the expected-yield parameters may be revised by an operator.

    Attributes:
        plant_id: Unique plant identifier.
        name: Display name.
        capacity_kwp: Installed DC capacity (kWp).
        investment: Total investment (currency units).
        commissioning_date: Date the plant started operating.
        daily_yield_hours: Expected equivalent full-sun hours per day (HPS).
        performance_ratio: Expected performance ratio (decimal).
        degradation_rate_pct: Annual panel degradation (% per year).
        location: Free-text location.
    """

    plant_id: str
    name: str = ""
    capacity_kwp: float = 0.0
    investment: float = 0.0
    commissioning_date: Optional[date] = None
    daily_yield_hours: float = REFERENCE_DAILY_YIELD_HOURS
    performance_ratio: float = REFERENCE_PERFORMANCE_RATIO
    degradation_rate_pct: float = 0.5
    location: str = ""

    def __post_init__(self):
        if self.capacity_kwp < 0:
            raise ValueError(f"capacity_kwp must be >= 0, got {self.capacity_kwp}")
        if self.investment < 0:
            raise ValueError(f"investment must be >= 0, got {self.investment}")
        if self.daily_yield_hours < 0 or self.daily_yield_hours > 24:
            raise ValueError(
                f"daily_yield_hours must be between 0 and 24, got {self.daily_yield_hours}"
            )
        if not 0 <= self.performance_ratio <= 1:
            raise ValueError(
                f"performance_ratio must be between 0 and 1, got {self.performance_ratio}"
            )
        if not 0 <= self.degradation_rate_pct < 100:
            raise ValueError(
                f"degradation_rate_pct must be in [0, 100), got {self.degradation_rate_pct}"
            )

    def days_in_operation(self, as_of: date) -> int:
        """Whole days since commissioning (0 if not commissioned yet)."""
        if self.commissioning_date is None or as_of < self.commissioning_date:
            return 0
        return (as_of - self.commissioning_date).days

    def daily_target_kwh(self) -> float:
        """Expected daily generation.

        Formula: target = kWp * HPS * PR
        """
        return self.capacity_kwp * self.daily_yield_hours * self.performance_ratio

    def monthly_target_kwh(self, days: int = 30) -> float:
        return self.daily_target_kwh() * days

    def annual_target_kwh(self) -> float:
        return self.daily_target_kwh() * 365

    def revise_expected_yield(
        self,
        daily_yield_hours: Optional[float] = None,
        performance_ratio: Optional[float] = None,
    ) -> "Plant":
        """Return a copy with revised expected-yield parameters."""
        changes = {}
        if daily_yield_hours is not None:
            changes["daily_yield_hours"] = daily_yield_hours
        if performance_ratio is not None:
            changes["performance_ratio"] = performance_ratio
        return replace(self, **changes)

    def to_dict(self) -> dict:
        return {
            "plant_id": self.plant_id,
            "name": self.name,
            "capacity_kwp": self.capacity_kwp,
            "investment": self.investment,
            "commissioning_date": (
                self.commissioning_date.isoformat() if self.commissioning_date else None
            ),
            "daily_yield_hours": self.daily_yield_hours,
            "performance_ratio": self.performance_ratio,
            "degradation_rate_pct": self.degradation_rate_pct,
            "location": self.location,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Plant":
        data = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        data["commissioning_date"] = _parse_date(data.get("commissioning_date"))
        data["plant_id"] = str(data.get("plant_id", ""))
        return cls(**data)


@dataclass(frozen=True)
class PeriodRecord:
    """Canonical monthly record for one plant, produced by the normalizer.

    Attributes:
        plant_id: Plant the record belongs to.
        year: Calendar year.
        month: Calendar month (1-12).
        generated_kwh: Total energy generated.
        self_consumed_kwh: Energy consumed on site.
        exported_kwh: Surplus energy injected into the grid.
        amount_paid: Amount billed by the grid operator and paid.
        export_credits: Credits/income from exported surplus.
        cumulative_balance: Running balance owed to the plant owner.
        savings: Total value produced by the plant in the period.
        self_consumption_savings: Portion of savings from self-consumption.
        other_charges: Non-energy charges on the bill.
        source: "full" for complete billing data, "legacy" for estimates.
    """

    plant_id: str
    year: int
    month: int
    generated_kwh: float = 0.0
    self_consumed_kwh: float = 0.0
    exported_kwh: float = 0.0
    amount_paid: float = 0.0
    export_credits: float = 0.0
    cumulative_balance: float = 0.0
    savings: float = 0.0
    self_consumption_savings: float = 0.0
    other_charges: float = 0.0
    source: str = "full"

    @property
    def period_key(self) -> tuple:
        return (self.plant_id, self.year, self.month)

    @property
    def cost_without_solar(self) -> float:
        """Theoretical bill had the plant not existed.

        Formula: cost_without_solar = amount_paid + savings
        """
        return self.amount_paid + self.savings

    def energy_balanced(self, tolerance_kwh: float = 1.0) -> bool:
        """True when self-consumed + exported <= generated (within tolerance)."""
        return self.self_consumed_kwh + self.exported_kwh <= self.generated_kwh + tolerance_kwh

    def to_dict(self) -> dict:
        return {
            "plant_id": self.plant_id,
            "year": self.year,
            "month": self.month,
            "generated_kwh": self.generated_kwh,
            "self_consumed_kwh": self.self_consumed_kwh,
            "exported_kwh": self.exported_kwh,
            "amount_paid": self.amount_paid,
            "export_credits": self.export_credits,
            "cumulative_balance": self.cumulative_balance,
            "savings": self.savings,
            "self_consumption_savings": self.self_consumption_savings,
            "other_charges": self.other_charges,
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PeriodRecord":
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass
class TaxBenefitConfig:
    """Renewable-incentive tax regime parameters.

    Attributes:
        deduction_years: Window over which the income deduction is taken.
        depreciation_years: Accelerated depreciation window.
        tax_rate: Corporate income tax rate (decimal).
        deduction_cap: Deductible share of the investment (decimal, canonically 0.50).
    """

    deduction_years: int = 5
    depreciation_years: int = 5
    tax_rate: float = 0.35
    deduction_cap: float = 0.50

    def __post_init__(self):
        if self.deduction_years < 0:
            raise ValueError(f"deduction_years must be >= 0, got {self.deduction_years}")
        if self.depreciation_years < 0:
            raise ValueError(
                f"depreciation_years must be >= 0, got {self.depreciation_years}"
            )
        if not 0 <= self.tax_rate <= 1:
            raise ValueError(f"tax_rate must be between 0 and 1, got {self.tax_rate}")
        if not 0 <= self.deduction_cap <= 1:
            raise ValueError(
                f"deduction_cap must be between 0 and 1, got {self.deduction_cap}"
            )

    @property
    def horizon_years(self) -> int:
        return max(self.deduction_years, self.depreciation_years)

    def to_dict(self) -> dict:
        return {
            "deduction_years": self.deduction_years,
            "depreciation_years": self.depreciation_years,
            "tax_rate": self.tax_rate,
            "deduction_cap": self.deduction_cap,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TaxBenefitConfig":
        data = dict(data)
        return cls(**{k: v for k, v in data.items()
                      if k in cls.__dataclass_fields__})


@dataclass
class TariffConfig:
    """Energy tariffs and billing heuristics (currency per kWh).

    Attributes:
        self_consumption_tariff: Value of a self-consumed kWh.
        export_tariff: Value of an exported kWh.
        average_tariff: Blended tariff used to value legacy records.
        paid_multiplier: Share of legacy savings still paid to the operator.
        opex_fraction: Operating expense as a share of revenue when no real
            OPEX is available.
        payment_drop_threshold: Fractional balance drop that marks a payout.
    """

    self_consumption_tariff: float = 750.0
    export_tariff: float = 400.0
    average_tariff: float = 757.0
    paid_multiplier: float = 0.31
    opex_fraction: float = 0.05
    payment_drop_threshold: float = 0.5

    def __post_init__(self):
        for name in ("self_consumption_tariff", "export_tariff", "average_tariff"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0, got {getattr(self, name)}")
        for name in ("paid_multiplier", "opex_fraction", "payment_drop_threshold"):
            value = getattr(self, name)
            if not 0 <= value <= 1:
                raise ValueError(f"{name} must be between 0 and 1, got {value}")

    def blended_tariff(self, self_consumption_share: float) -> float:
        """Weighted tariff for a given self-consumption share.

        Formula: share * T_self + (1 - share) * T_export
        """
        return (self_consumption_share * self.self_consumption_tariff
                + (1 - self_consumption_share) * self.export_tariff)

    def to_dict(self) -> dict:
        return {
            "self_consumption_tariff": self.self_consumption_tariff,
            "export_tariff": self.export_tariff,
            "average_tariff": self.average_tariff,
            "paid_multiplier": self.paid_multiplier,
            "opex_fraction": self.opex_fraction,
            "payment_drop_threshold": self.payment_drop_threshold,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TariffConfig":
        data = dict(data)
        return cls(**{k: v for k, v in data.items()
                      if k in cls.__dataclass_fields__})


@dataclass
class ProjectionConfig:
    """Idealized generation model for the projected indicators.

    Attributes:
        self_consumption_share: Share of generation consumed on site.
        annual_sun_hours: Equivalent full-sun hours per year.
        performance_ratio: PR applied to the projection (1.0 = nameplate).
        lifespan_years: Projection horizon for degradation tables.
    """

    self_consumption_share: float = 0.60
    annual_sun_hours: float = 1500.0
    performance_ratio: float = 1.0
    lifespan_years: int = 25

    def __post_init__(self):
        if not 0 <= self.self_consumption_share <= 1:
            raise ValueError(
                f"self_consumption_share must be between 0 and 1, "
                f"got {self.self_consumption_share}"
            )
        if self.annual_sun_hours < 0:
            raise ValueError(f"annual_sun_hours must be >= 0, got {self.annual_sun_hours}")
        if not 0 <= self.performance_ratio <= 1:
            raise ValueError(
                f"performance_ratio must be between 0 and 1, got {self.performance_ratio}"
            )
        if self.lifespan_years < 0:
            raise ValueError(f"lifespan_years must be >= 0, got {self.lifespan_years}")

    @property
    def daily_yield_hours(self) -> float:
        return self.annual_sun_hours / 365

    def to_dict(self) -> dict:
        return {
            "self_consumption_share": self.self_consumption_share,
            "annual_sun_hours": self.annual_sun_hours,
            "performance_ratio": self.performance_ratio,
            "lifespan_years": self.lifespan_years,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ProjectionConfig":
        data = dict(data)
        return cls(**{k: v for k, v in data.items()
                      if k in cls.__dataclass_fields__})


@dataclass(frozen=True)
class FinancialAssumptions:
    """Immutable snapshot of every configurable parameter for one computation."""

    tax: TaxBenefitConfig = field(default_factory=TaxBenefitConfig)
    tariffs: TariffConfig = field(default_factory=TariffConfig)
    projection: ProjectionConfig = field(default_factory=ProjectionConfig)
    name: str = "Default"

    def with_tax(self, **changes) -> "FinancialAssumptions":
        """Return a new snapshot with some tax parameters overridden."""
        tax = TaxBenefitConfig.from_dict({**self.tax.to_dict(), **changes})
        return replace(self, tax=tax)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "tax": self.tax.to_dict(),
            "tariffs": self.tariffs.to_dict(),
            "projection": self.projection.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "FinancialAssumptions":
        data = dict(data)
        # Copy nested dicts so the snapshot never aliases caller state
        return cls(
            tax=TaxBenefitConfig.from_dict(dict(data.get("tax", {}))),
            tariffs=TariffConfig.from_dict(dict(data.get("tariffs", {}))),
            projection=ProjectionConfig.from_dict(dict(data.get("projection", {}))),
            name=data.get("name", "Default"),
        )


@dataclass
class Portfolio:
    """A set of plants, their normalized history and the assumptions to apply.

    Attributes:
        name: Portfolio name.
        plants: Plants in the portfolio.
        records: Normalized monthly records for all plants.
        assumptions: Financial assumptions snapshot.
        last_seen: Latest telemetry timestamp per plant_id.
    """

    name: str = "Portfolio"
    plants: List[Plant] = field(default_factory=list)
    records: List[PeriodRecord] = field(default_factory=list)
    assumptions: FinancialAssumptions = field(default_factory=FinancialAssumptions)
    last_seen: Dict[str, datetime] = field(default_factory=dict)

    def get_plant(self, plant_id: str) -> Optional[Plant]:
        for plant in self.plants:
            if plant.plant_id == plant_id:
                return plant
        return None

    def records_for(self, plant_id: str) -> List[PeriodRecord]:
        return [r for r in self.records if r.plant_id == plant_id]

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "assumptions": self.assumptions.to_dict(),
            "plants": [p.to_dict() for p in self.plants],
            "periods": [r.to_dict() for r in self.records],
            "last_seen": {k: v.isoformat() for k, v in self.last_seen.items()},
        }
