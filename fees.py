"""Payment processor fee calculation.

Fee schedule (per transaction):
    - Card: 2.9% + $0.30, charge must be $0.50 - $999,999.99
    - ACH debit: 0.8%, cap $5.00, debit must be $0.00 - $1,000,000.00

All money is handled as Decimal and rounded to cents, half away from zero.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP, localcontext
from enum import Enum
from typing import Tuple, Union

AmountLike = Union[Decimal, int, float, str]

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


class Rail(str, Enum):
    CARD = "card"
    ACH = "ach"


@dataclass(frozen=True)
class FeeParameters:
    card_fee_percentage: Decimal
    card_fixed_fee: Decimal
    card_min_amount: Decimal
    card_max_amount: Decimal
    ach_fee_percentage: Decimal
    ach_max_fee: Decimal
    ach_maximum_debit_amount: Decimal


DEFAULT_PARAMETERS = FeeParameters(
    card_fee_percentage=Decimal("0.029"),
    card_fixed_fee=Decimal("0.30"),
    card_min_amount=Decimal("0.50"),
    card_max_amount=Decimal("999999.99"),
    ach_fee_percentage=Decimal("0.008"),
    ach_max_fee=Decimal("5.00"),
    ach_maximum_debit_amount=Decimal("1000000.00"),
)


@dataclass(frozen=True)
class TotalWithFee:
    total: Decimal
    fee: Decimal


@dataclass(frozen=True)
class NetWithFee:
    net: Decimal
    fee: Decimal


@dataclass(frozen=True)
class FeeBreakdown:
    total: Decimal
    percentage_portion: Decimal
    fixed_portion: Decimal


class FeeError(ValueError):
    """Base class for fee calculation errors."""


class InvalidAmountError(FeeError):
    """Raised for amounts no fee formula can accept (non-finite, non-positive net)."""


class AmountOutOfRangeError(FeeError):
    """Raised when an amount falls outside the rail's allowed bounds."""

    def __init__(self, param_name: str, value: Decimal, minimum: Decimal, maximum: Decimal, label: str):
        self.param_name = param_name
        self.value = value
        self.minimum = minimum
        self.maximum = maximum
        super().__init__(
            f"{label} must be between {format_currency(minimum)} and {format_currency(maximum)}. "
            f"({param_name}={value})"
        )


def format_currency(value: Decimal) -> str:
    """Format a dollar amount, e.g. Decimal("1000") -> "$1,000.00"."""
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.2f}"


def round_currency(value: AmountLike) -> Decimal:
    """Round to cents, ties away from zero (2.005 -> 2.01, -1.235 -> -1.24)."""
    amt = _to_decimal(value)
    with localcontext() as ctx:
        # Keep every integer digit plus the two cents digits.
        ctx.prec = max(ctx.prec, amt.adjusted() + 3)
        return amt.quantize(CENT, rounding=ROUND_HALF_UP)


def validate_range(
    amount: AmountLike,
    rail: Rail = Rail.CARD,
    param_name: str = "amount",
    params: FeeParameters = DEFAULT_PARAMETERS,
) -> None:
    """Raise AmountOutOfRangeError unless amount is within the rail's bounds (inclusive)."""
    amt = _to_finite_decimal(amount)
    minimum, maximum, label = _rail_bounds(rail, params)

    if amt < minimum or amt > maximum:
        raise AmountOutOfRangeError(param_name, amt, minimum, maximum, label)


def calculate_fee(
    amount: AmountLike,
    rail: Rail = Rail.CARD,
    params: FeeParameters = DEFAULT_PARAMETERS,
) -> Decimal:
    """Calculate the processing fee charged on amount."""
    validate_range(amount, rail, params=params)

    base = round_currency(amount)

    if Rail(rail) is Rail.ACH:
        fee = min(base * params.ach_fee_percentage, params.ach_max_fee)
    else:
        fee = base * params.card_fee_percentage + params.card_fixed_fee

    return round_currency(fee)


def calculate_net_after_fee(
    amount: AmountLike,
    rail: Rail = Rail.CARD,
    params: FeeParameters = DEFAULT_PARAMETERS,
) -> Decimal:
    """Calculate what is left of amount once the fee is deducted."""
    validate_range(amount, rail, params=params)
    fee = calculate_fee(amount, rail, params=params)
    return round_currency(_to_decimal(amount) - fee)


def calculate_gross_for_net(
    desired_net: AmountLike,
    rail: Rail = Rail.CARD,
    params: FeeParameters = DEFAULT_PARAMETERS,
) -> Decimal:
    """Calculate the gross amount to charge so that desired_net is received.

    The card inverse is exact. The ACH fee is min(percentage, cap), so the
    inverse branches: once the uncapped fee on desired_net reaches the cap,
    the cap is simply added on. Right below the cap the result can be a few
    cents off when run back through calculate_net_after_fee.

    Raises:
        InvalidAmountError: desired_net is not positive.
        AmountOutOfRangeError: the resulting gross is outside the rail's bounds.
    """
    net = _to_finite_decimal(desired_net)
    if net <= 0:
        raise InvalidAmountError(f"Net amount must be positive, got {net}")

    if Rail(rail) is Rail.ACH:
        percent_fee = net * params.ach_fee_percentage
        if percent_fee >= params.ach_max_fee:
            gross = net + params.ach_max_fee
        else:
            gross = net / (1 - params.ach_fee_percentage)
    else:
        gross = (net + params.card_fixed_fee) / (1 - params.card_fee_percentage)

    gross = round_currency(gross)

    # Range errors report the requested net, not the computed gross.
    minimum, maximum, label = _rail_bounds(rail, params)
    if gross < minimum or gross > maximum:
        raise AmountOutOfRangeError("desired_net", net, minimum, maximum, label)

    return gross


def add_fee(
    base_amount: AmountLike,
    rail: Rail = Rail.CARD,
    params: FeeParameters = DEFAULT_PARAMETERS,
) -> Decimal:
    """Return base_amount plus its processing fee."""
    return add_fee_with_breakdown(base_amount, rail, params=params).total


def add_fee_with_breakdown(
    base_amount: AmountLike,
    rail: Rail = Rail.CARD,
    params: FeeParameters = DEFAULT_PARAMETERS,
) -> TotalWithFee:
    fee = calculate_fee(base_amount, rail, params=params)
    total = round_currency(_to_decimal(base_amount) + fee)
    return TotalWithFee(total=total, fee=fee)


def calculate_net_and_fee(
    amount: AmountLike,
    rail: Rail = Rail.CARD,
    params: FeeParameters = DEFAULT_PARAMETERS,
) -> NetWithFee:
    fee = calculate_fee(amount, rail, params=params)
    net = round_currency(_to_decimal(amount) - fee)
    return NetWithFee(net=net, fee=fee)


def calculate_fee_breakdown(
    amount: AmountLike,
    rail: Rail = Rail.CARD,
    params: FeeParameters = DEFAULT_PARAMETERS,
) -> FeeBreakdown:
    """Split the fee into its percentage-based and fixed parts.

    The card percentage portion is rounded on its own while the total is
    rounded from the unrounded sum, so the parts are reported exactly as
    computed rather than forced to add up.
    """
    validate_range(amount, rail, params=params)

    base = round_currency(amount)

    if Rail(rail) is Rail.ACH:
        capped = round_currency(min(base * params.ach_fee_percentage, params.ach_max_fee))
        return FeeBreakdown(total=capped, percentage_portion=capped, fixed_portion=ZERO)

    percentage_portion = base * params.card_fee_percentage
    fixed_portion = params.card_fixed_fee
    total = round_currency(percentage_portion + fixed_portion)

    return FeeBreakdown(
        total=total,
        percentage_portion=round_currency(percentage_portion),
        fixed_portion=fixed_portion,
    )


def _rail_bounds(rail: Rail, params: FeeParameters) -> Tuple[Decimal, Decimal, str]:
    if Rail(rail) is Rail.ACH:
        return ZERO, params.ach_maximum_debit_amount, "ACH debit"
    return params.card_min_amount, params.card_max_amount, "Card charge"


def _to_decimal(value: AmountLike) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _to_finite_decimal(value: AmountLike) -> Decimal:
    amt = _to_decimal(value)
    if not amt.is_finite():
        raise InvalidAmountError("Amount cannot be NaN or infinite")
    return amt
