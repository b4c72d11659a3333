from sqlalchemy import Column, DateTime, Integer, String, Text, func

from trackpro.database import Base, utcnow


class Shop(Base):
    """One live Shopify access token per shop domain."""

    __tablename__ = "shops"

    id = Column(Integer, primary_key=True, autoincrement=True)
    shop = Column(String(255), unique=True, nullable=False, index=True)
    access_token = Column(Text)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
    )

    def __repr__(self):
        return f"<Shop(id={self.id}, shop='{self.shop}')>"
