"""Export Pydantic schemas for data validation and serialization."""

# Billing schemas
from trackpro.schemas.billing import (
    BillingStatus,
    Charge,
    ChargeRedirect,
)

# Tracking schemas
from trackpro.schemas.tracking import (
    TrackingOutcome,
    TrackingOutcomeKind,
    TrackingRecord,
)

__all__ = [
    # Billing schemas
    "BillingStatus",
    "Charge",
    "ChargeRedirect",
    # Tracking schemas
    "TrackingOutcome",
    "TrackingOutcomeKind",
    "TrackingRecord",
]
