import enum

from pydantic import BaseModel


class TrackingOutcomeKind(str, enum.Enum):
    FOUND = "found"
    NO_TRACKING = "no_tracking"
    NOT_DISPATCHED = "not_dispatched"
    ORDER_NOT_FOUND = "order_not_found"


ORDER_NOT_FOUND_MESSAGE = "Order not found"
NOT_DISPATCHED_MESSAGE = "No tracking info found. This order has not been dispatched yet."
NO_TRACKING_MESSAGE = "No tracking info found for this order yet."

_MESSAGES = {
    TrackingOutcomeKind.ORDER_NOT_FOUND: ORDER_NOT_FOUND_MESSAGE,
    TrackingOutcomeKind.NOT_DISPATCHED: NOT_DISPATCHED_MESSAGE,
    TrackingOutcomeKind.NO_TRACKING: NO_TRACKING_MESSAGE,
}


class TrackingRecord(BaseModel):
    tracking_number: str | None = None
    tracking_company: str | None = None
    tracking_url: str | None = None

    @property
    def is_empty(self) -> bool:
        return not (self.tracking_number or self.tracking_company or self.tracking_url)


class TrackingOutcome(BaseModel):
    kind: TrackingOutcomeKind
    order_id: str | None = None
    record: TrackingRecord | None = None

    def to_response(self) -> dict:
        """Body for GET /tracking. Soft outcomes carry only a message."""
        if self.kind is TrackingOutcomeKind.FOUND and self.record is not None:
            return self.record.model_dump()
        return {"message": _MESSAGES[self.kind]}
