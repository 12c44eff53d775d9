"""Fee Calculator and platform configuration value.

Pure functions over Decimal money. Commission percent is never a constant:
callers pass the PlatformConfig loaded once for the current request or sweep
tick (see services/config_service.py).
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from gig_escrow.domain.exceptions import InvalidAmountError

CENTS = Decimal("0.01")


@dataclass(frozen=True)
class PlatformConfig:
    """Admin-editable business parameters.

    The defaults are the fail-closed fallback used whenever the config
    collaborator cannot be read.
    """

    platform_commission_percent: Decimal = Decimal("10")
    min_gig_amount: Decimal = Decimal("100")
    max_gig_amount: Decimal = Decimal("100000")
    escrow_auto_release_days: int = 7
    gig_expiry_timeout_days: int = 7
    funding_timeout_hours: int = 48

    def to_dict(self) -> dict:
        return {
            key: str(value) if isinstance(value, Decimal) else value
            for key, value in asdict(self).items()
        }


DEFAULT_PLATFORM_CONFIG = PlatformConfig()


@dataclass(frozen=True)
class FeeBreakdown:
    gross_amount: Decimal
    platform_commission: Decimal
    worker_earnings: Decimal

    def to_dict(self) -> dict:
        return {
            "gross_amount": str(self.gross_amount),
            "platform_commission": str(self.platform_commission),
            "worker_earnings": str(self.worker_earnings),
        }


def to_money(value: Decimal | int | float | str) -> Decimal:
    """Coerce an amount to a 2dp Decimal. Floats go through str() first."""
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise InvalidAmountError(f"Invalid amount: {value!r}") from exc
    if not amount.is_finite():
        raise InvalidAmountError(f"Invalid amount: {value!r}")
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def calculate_fee_breakdown(
    gig_amount: Decimal | int | str,
    config: PlatformConfig = DEFAULT_PLATFORM_CONFIG,
) -> FeeBreakdown:
    """Split a gross gig amount into platform commission and worker earnings.

    Example:
        calculate_fee_breakdown(1000, PlatformConfig(platform_commission_percent=Decimal(10)))
        -> FeeBreakdown(gross_amount=1000.00, platform_commission=100.00, worker_earnings=900.00)

    Raises:
        InvalidAmountError: If the amount is not positive.
    """
    gross = to_money(gig_amount)
    if gross <= 0:
        raise InvalidAmountError("Amount must be greater than 0")

    commission = (gross * config.platform_commission_percent / Decimal(100)).quantize(
        CENTS, rounding=ROUND_HALF_UP
    )
    return FeeBreakdown(
        gross_amount=gross,
        platform_commission=commission,
        worker_earnings=gross - commission,
    )


def validate_gig_amount(
    amount: Decimal | int | str, config: PlatformConfig = DEFAULT_PLATFORM_CONFIG
) -> Decimal:
    """Return the amount as money if it lies within the configured gig range."""
    value = to_money(amount)
    if value < config.min_gig_amount:
        raise InvalidAmountError(f"Amount must be at least R{config.min_gig_amount:,.0f}")
    if value > config.max_gig_amount:
        raise InvalidAmountError(f"Amount cannot exceed R{config.max_gig_amount:,.0f}")
    return value


# --- Admin limits for platform_config updates ---

_LIMITS: dict[str, tuple[Decimal, Decimal, str]] = {
    "platform_commission_percent": (Decimal(0), Decimal(50), "Commission must be between 0% and 50%"),
    "min_gig_amount": (Decimal(1), Decimal(10000), "Minimum gig amount must be between R1 and R10,000"),
    "max_gig_amount": (Decimal(1000), Decimal(1000000), "Maximum gig amount must be between R1,000 and R1,000,000"),
    "escrow_auto_release_days": (Decimal(1), Decimal(30), "Auto-release period must be between 1 and 30 days"),
    "gig_expiry_timeout_days": (Decimal(1), Decimal(90), "Gig expiry timeout must be between 1 and 90 days"),
    "funding_timeout_hours": (Decimal(1), Decimal(168), "Funding timeout must be between 1 and 168 hours"),
}


def validate_platform_config(values: dict) -> list[str]:
    """Check proposed config values against the admin limits.

    Unknown keys are ignored. Returns a list of error messages (empty = valid).
    """
    errors: list[str] = []
    for key, (low, high, message) in _LIMITS.items():
        if key not in values or values[key] is None:
            continue
        try:
            value = Decimal(str(values[key]))
        except InvalidOperation:
            errors.append(message)
            continue
        if not value.is_finite() or value < low or value > high:
            errors.append(message)

    min_amount = values.get("min_gig_amount")
    max_amount = values.get("max_gig_amount")
    if min_amount is not None and max_amount is not None and not errors:
        if Decimal(str(min_amount)) >= Decimal(str(max_amount)):
            errors.append("Minimum gig amount must be less than maximum gig amount")
    return errors


def build_platform_config(
    values: dict, base: PlatformConfig = DEFAULT_PLATFORM_CONFIG
) -> PlatformConfig:
    """Overlay stored values onto a base config, coercing types."""
    merged = base.to_dict()
    merged.update({k: v for k, v in values.items() if k in merged and v is not None})
    return PlatformConfig(
        platform_commission_percent=Decimal(str(merged["platform_commission_percent"])),
        min_gig_amount=Decimal(str(merged["min_gig_amount"])),
        max_gig_amount=Decimal(str(merged["max_gig_amount"])),
        escrow_auto_release_days=int(merged["escrow_auto_release_days"]),
        gig_expiry_timeout_days=int(merged["gig_expiry_timeout_days"]),
        funding_timeout_hours=int(merged["funding_timeout_hours"]),
    )
