"""Payouts module - normalization, pricing and month aggregation."""

from payout_tracker.payouts.aggregation import (
    DailyBucket,
    MonthBucket,
    MonthSummary,
    build_month_bucket,
    group_by_month,
    year_month_of,
)
from payout_tracker.payouts.models import (
    Direction,
    PayoutRecord,
    SubjectKind,
    TrackedWallet,
    normalize_address,
)
from payout_tracker.payouts.normalizer import TransferNormalizer, dedupe_by_tx_hash
from payout_tracker.payouts.pricing import (
    SUPPORTED_TOKENS,
    TOKEN_TO_METHOD,
    PricingProvider,
    StaticPriceTable,
    payment_method_for,
)

__all__ = [
    "SUPPORTED_TOKENS",
    "TOKEN_TO_METHOD",
    "DailyBucket",
    "Direction",
    "MonthBucket",
    "MonthSummary",
    "PayoutRecord",
    "PricingProvider",
    "StaticPriceTable",
    "SubjectKind",
    "TrackedWallet",
    "TransferNormalizer",
    "build_month_bucket",
    "dedupe_by_tx_hash",
    "group_by_month",
    "normalize_address",
    "payment_method_for",
    "year_month_of",
]
