"""Export database models for use throughout the application."""

from trackpro.models.charge import Charge, ChargeStatus, ChargeType
from trackpro.models.shop import Shop

__all__ = [
    "Shop",
    "Charge",
    "ChargeStatus",
    "ChargeType",
]
