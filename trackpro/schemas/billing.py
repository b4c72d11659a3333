from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from trackpro.models.charge import ChargeStatus, ChargeType


# Pydantic schema for reading a Charge
class Charge(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    charge_id: str
    type: ChargeType
    status: ChargeStatus
    amount: Decimal
    currency: str
    trial_days: int
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_serializer("amount")
    def serialize_amount(self, amount: Decimal) -> float:
        return float(amount)


class BillingStatus(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    has_active_billing: bool = Field(serialization_alias="hasActiveBilling")
    plan: Charge | None = None


class ChargeRedirect(BaseModel):
    """Result of creating a charge upstream: where to send the merchant."""

    charge_id: str
    confirmation_url: str
