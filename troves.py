"""
Trove and system snapshot model for Liquity.

All amounts are Decimals in whole-token units (ether for collateral, LUSD for
debt). Values read from chain are 18-decimal fixed point and go through
`decimalify` first.
"""

from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Optional

DECIMAL_PRECISION = Decimal(10**18)

# Liquity v1 protocol constants
MINIMUM_COLLATERAL_RATIO = Decimal("1.1")
CRITICAL_COLLATERAL_RATIO = Decimal("1.5")
LUSD_LIQUIDATION_RESERVE = Decimal(200)
COLLATERAL_GAS_COMPENSATION_DIVISOR = 200  # 0.5%

ZERO = Decimal(0)
ONE = Decimal(1)
INFINITY = Decimal("Infinity")


def decimalify(value) -> Decimal:
    """Convert an 18-decimal fixed point integer into a Decimal."""
    return Decimal(int(value)) / DECIMAL_PRECISION


def to_fixed_point(value) -> int:
    """Inverse of decimalify: Decimal -> 18-decimal fixed point integer."""
    return int(Decimal(value) * DECIMAL_PRECISION)


def _subtract(a: Decimal, b: Decimal) -> Decimal:
    if b > a:
        raise ValueError(f"subtraction underflow ({a} - {b})")
    return a - b


@dataclass(frozen=True)
class Trove:
    """A collateral/debt position. Immutable; arithmetic returns new Troves."""

    collateral: Decimal = ZERO
    debt: Decimal = ZERO

    def __post_init__(self):
        for name in ("collateral", "debt"):
            value = Decimal(getattr(self, name))
            if value < 0:
                raise ValueError(f"Trove {name} must not be negative (got {value})")
            object.__setattr__(self, name, value)

    def __add__(self, other: "Trove") -> "Trove":
        return Trove(self.collateral + other.collateral, self.debt + other.debt)

    def subtract(self, other: "Trove") -> "Trove":
        return Trove(
            _subtract(self.collateral, other.collateral),
            _subtract(self.debt, other.debt),
        )

    def subtract_collateral(self, collateral) -> "Trove":
        return Trove(_subtract(self.collateral, Decimal(collateral)), self.debt)

    def subtract_debt(self, debt) -> "Trove":
        return Trove(self.collateral, _subtract(self.debt, Decimal(debt)))

    @property
    def is_empty(self) -> bool:
        return self.collateral == 0 and self.debt == 0

    @property
    def nominal_collateral_ratio(self) -> Decimal:
        if self.debt == 0:
            return INFINITY
        return self.collateral / self.debt

    def collateral_ratio(self, price) -> Decimal:
        if self.debt == 0:
            return INFINITY
        return self.collateral * Decimal(price) / self.debt

    def collateral_ratio_is_below_minimum(self, price) -> bool:
        return self.collateral_ratio(price) < MINIMUM_COLLATERAL_RATIO

    def collateral_ratio_is_below_critical(self, price) -> bool:
        return self.collateral_ratio(price) < CRITICAL_COLLATERAL_RATIO

    def apply_redistribution(self, stake, snapshot: "Trove", totals: "Trove") -> "Trove":
        """
        Add pending redistribution rewards.

        `totals` holds the protocol's cumulative L_ETH / L_LUSDDebt per unit of
        stake, `snapshot` the values recorded when this Trove last changed.
        """
        stake = Decimal(stake)
        return Trove(
            self.collateral + stake * (totals.collateral - snapshot.collateral),
            self.debt + stake * (totals.debt - snapshot.debt),
        )


@dataclass(frozen=True)
class Candidate(Trove):
    """A Trove together with the address of its owner."""

    owner_address: str = ""

    @property
    def trove(self) -> Trove:
        return Trove(self.collateral, self.debt)


@dataclass(frozen=True)
class SystemState:
    """Point-in-time snapshot of the protocol used for selection."""

    total: Trove = field(default_factory=Trove)
    price: Decimal = ONE
    lusd_in_stability_pool: Decimal = ZERO
    block_number: Optional[int] = None

    def __post_init__(self):
        price = Decimal(self.price)
        if price <= 0:
            raise ValueError(f"price must be positive (got {price})")
        pool = Decimal(self.lusd_in_stability_pool)
        if pool < 0:
            raise ValueError(f"stability pool balance must not be negative (got {pool})")
        object.__setattr__(self, "price", price)
        object.__setattr__(self, "lusd_in_stability_pool", pool)

    @property
    def total_collateral_ratio(self) -> Decimal:
        return self.total.collateral_ratio(self.price)

    @property
    def recovery_mode(self) -> bool:
        return self.total.collateral_ratio_is_below_critical(self.price)

    def evolve(self, **changes) -> "SystemState":
        return replace(self, **changes)


def add_troves(troves) -> Trove:
    total = Trove()
    for trove in troves:
        total = total + trove
    return total
