from trackpro.crud.crud_charge import (
    acreate_charge,
    adelete_charges_for_shop,
    aget_charge_by_charge_id,
    aget_latest_charge,
    aget_latest_pending_charge,
    aupdate_charge_status,
)
from trackpro.crud.crud_shop import (
    adelete_shop,
    aget_access_token,
    aget_shop,
    aupsert_shop,
)

__all__ = [
    # Shop
    "aget_shop",
    "aget_access_token",
    "aupsert_shop",
    "adelete_shop",
    # Charge
    "acreate_charge",
    "aget_charge_by_charge_id",
    "aget_latest_pending_charge",
    "aget_latest_charge",
    "aupdate_charge_status",
    "adelete_charges_for_shop",
]
