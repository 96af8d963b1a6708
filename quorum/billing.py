"""Cost accounting: token usage to USD, and USD to billable credits.

Credits are derived at billing/presentation boundaries only. The stored
``Debate.total_cost_usd`` is never rewritten in credit terms.
"""

from dataclasses import dataclass
from decimal import ROUND_CEILING, Decimal

from config.config_loader import BillingConfig, ModelConfig
from quorum.models import Debate

_TOKENS_PER_MILLION = 1_000_000


@dataclass(frozen=True)
class CreditPolicy:
    margin_multiplier: float = 1.75
    credit_unit_price: float = 0.005

    @classmethod
    def from_config(cls, config: BillingConfig) -> "CreditPolicy":
        return cls(
            margin_multiplier=config.margin_multiplier,
            credit_unit_price=config.credit_unit_price,
        )


def _dec(value: float) -> Decimal:
    # str() keeps the decimal literal the user configured (0.005, not 0.00500000000000000010...)
    return Decimal(str(value))


def credits_for(total_cost_usd: float, policy: CreditPolicy = CreditPolicy()) -> int:
    """Credits billed for a USD execution cost: ceil(cost * margin / unit price)."""
    if total_cost_usd < 0:
        raise ValueError(f"Cost cannot be negative: {total_cost_usd}")
    if policy.credit_unit_price <= 0:
        raise ValueError("credit_unit_price must be positive")
    raw = _dec(total_cost_usd) * _dec(policy.margin_multiplier) / _dec(policy.credit_unit_price)
    return int(raw.to_integral_value(rounding=ROUND_CEILING))


def debate_credits(debate: Debate, policy: CreditPolicy = CreditPolicy()) -> int:
    return credits_for(debate.total_cost_usd, policy)


def api_cost_coverage_per_credit(policy: CreditPolicy = CreditPolicy()) -> float:
    """How much raw API spend one credit covers once the margin is applied."""
    return policy.credit_unit_price / policy.margin_multiplier


def usd_for_credits(credits: int, policy: CreditPolicy = CreditPolicy()) -> float:
    """Raw API cost a number of credits can pay for."""
    return credits * api_cost_coverage_per_credit(policy)


def estimate_cost_usd(config: ModelConfig, input_tokens: int, output_tokens: int) -> float:
    """USD cost of one call given the per-million-token prices in the model config."""
    return (
        input_tokens * config.input_usd_per_mtok
        + output_tokens * config.output_usd_per_mtok
    ) / _TOKENS_PER_MILLION
