"""Postal address attached to orders as billing or shipping address."""

import uuid

from sqlalchemy import String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from tradehub.core.database import Base
from tradehub.models.base import TimestampMixin


class Address(Base, TimestampMixin):
    __tablename__ = "addresses"

    address_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    customer_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    company: Mapped[str | None] = mapped_column(String(255), nullable=True)
    address_line1: Mapped[str] = mapped_column(String(255), nullable=False)
    address_line2: Mapped[str | None] = mapped_column(String(255), nullable=True)
    city: Mapped[str] = mapped_column(String(100), nullable=False)
    state: Mapped[str | None] = mapped_column(String(100), nullable=True)
    postal_code: Mapped[str] = mapped_column(String(20), nullable=False)
    country: Mapped[str] = mapped_column(String(2), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)

    def as_vendor_payload(self) -> dict[str, str | None]:
        return {
            "firstName": self.first_name,
            "lastName": self.last_name,
            "company": self.company,
            "street": self.address_line1,
            "street2": self.address_line2,
            "city": self.city,
            "state": self.state,
            "zip": self.postal_code,
            "country": self.country,
            "phone": self.phone,
        }
