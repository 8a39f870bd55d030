"""USD pricing and token classification tables."""

from __future__ import annotations

from decimal import Decimal
from typing import Protocol

from payout_tracker.config import PricingSettings

NATIVE_TOKEN = "ETH"
SUPPORTED_TOKENS: tuple[str, ...] = ("USDC", "USDT", "RISEPAY")

DEFAULT_ETH_USD = Decimal("2500")
DEFAULT_STABLE_USD = Decimal("1")

METHOD_CRYPTO = "crypto"
METHOD_RISE = "rise"
METHOD_WIRE = "wire"
PAYMENT_METHODS: tuple[str, ...] = (METHOD_CRYPTO, METHOD_RISE, METHOD_WIRE)

TOKEN_TO_METHOD: dict[str, str] = {
    "RISEPAY": METHOD_RISE,
    "USDC": METHOD_CRYPTO,
    "USDT": METHOD_CRYPTO,
    NATIVE_TOKEN: METHOD_CRYPTO,
}


def payment_method_for(token: str) -> str:
    """Payment method label for a token symbol (unknown symbols are crypto)."""
    return TOKEN_TO_METHOD.get(token.upper(), METHOD_CRYPTO)


class PricingProvider(Protocol):
    """Source of USD prices per token symbol."""

    def price_of(self, token: str) -> Decimal | None:
        """USD price of one whole unit, or None when the token is not priced."""
        ...


class StaticPriceTable:
    """Fixed USD prices for ETH and the supported stablecoins."""

    def __init__(
        self,
        *,
        eth_usd: Decimal = DEFAULT_ETH_USD,
        stable_usd: Decimal = DEFAULT_STABLE_USD,
        supported_tokens: tuple[str, ...] = SUPPORTED_TOKENS,
    ) -> None:
        self._prices: dict[str, Decimal] = {NATIVE_TOKEN: eth_usd}
        for token in supported_tokens:
            self._prices[token.upper()] = stable_usd

    @classmethod
    def from_settings(cls, settings: PricingSettings) -> StaticPriceTable:
        return cls(
            eth_usd=settings.eth_usd,
            stable_usd=settings.stable_usd,
            supported_tokens=settings.supported_tokens,
        )

    @property
    def tokens(self) -> frozenset[str]:
        return frozenset(self._prices)

    def price_of(self, token: str) -> Decimal | None:
        return self._prices.get(token.upper())
