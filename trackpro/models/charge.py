import enum
import logging

from sqlalchemy import (
    Column,
    DateTime,
    Integer,
    Numeric,
    String,
    func,
)
from sqlalchemy import (
    Enum as SQLAlchemyEnum,
)

from trackpro.database import Base, utcnow

logger = logging.getLogger(__name__)


class ChargeStatus(enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    ACTIVE = "active"
    DECLINED = "declined"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (ChargeStatus.ACTIVE, ChargeStatus.DECLINED, ChargeStatus.CANCELLED)

    @classmethod
    def from_upstream(cls, value: str | None) -> "ChargeStatus | None":
        """Maps a Shopify charge status onto the local lifecycle.

        Shopify also reports ``expired`` (merchant never answered) and
        ``frozen`` (store closed); those collapse onto declined and
        cancelled. Returns None for anything unrecognised.
        """
        if not value:
            return None
        value = value.lower()
        if value == "expired":
            return cls.DECLINED
        if value == "frozen":
            return cls.CANCELLED
        try:
            return cls(value)
        except ValueError:
            logger.warning(f"Unrecognised upstream charge status '{value}'")
            return None


class ChargeType(enum.Enum):
    RECURRING = "recurring"
    LIFETIME = "lifetime"
    # Recorded locally as active; there is no Shopify charge behind it
    FREE = "free"

    @classmethod
    def parse(cls, value: str | None) -> "ChargeType | None":
        # Older return URLs used type=subscription for the monthly plan
        if not value:
            return None
        value = value.strip().lower()
        if value == "subscription":
            return cls.RECURRING
        try:
            return cls(value)
        except ValueError:
            return None


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class Charge(Base):
    __tablename__ = "charges"

    id = Column(Integer, primary_key=True, autoincrement=True)
    # Plain column; rows are removed alongside the shop on uninstall or redact
    shop = Column(String(255), nullable=False, index=True)
    charge_id = Column(String(255), unique=True, nullable=False, index=True)
    status = Column(
        SQLAlchemyEnum(
            ChargeStatus,
            name="charge_status",
            native_enum=False,
            length=50,
            values_callable=_enum_values,
        ),
        nullable=False,
        default=ChargeStatus.PENDING,
        index=True,
    )
    type = Column(
        SQLAlchemyEnum(
            ChargeType,
            name="charge_type",
            native_enum=False,
            length=20,
            values_callable=_enum_values,
        ),
        nullable=False,
    )
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    trial_days = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
    )

    def __repr__(self):
        return f"<Charge(id={self.id}, shop='{self.shop}', charge_id='{self.charge_id}', type='{self.type.value}', status='{self.status.value}')>"
