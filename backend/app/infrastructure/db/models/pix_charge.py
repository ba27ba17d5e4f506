"""
PIX Charge Database Model

Ledger of payment charges. Rows are written by the payment webhooks;
reconciliation reads them and only sets the processed_* marker.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import Column, DateTime, Numeric
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field

from app.infrastructure.db.models.base import BaseModel


class PixChargeModel(BaseModel, table=True):
    """Maps to the 'pix_charges' table."""

    __tablename__ = "pix_charges"

    txid: Optional[str] = Field(default=None, index=True, max_length=64)
    user_id: Optional[UUID] = Field(default=None, index=True)

    # Set for customer and appointment charges, null for platform charges
    customer_id: Optional[UUID] = Field(default=None)
    appointment_id: Optional[UUID] = Field(default=None)

    amount: Decimal = Field(default=Decimal("0"), sa_type=Numeric(12, 2))
    status: str = Field(default="pending", max_length=20, index=True)

    # "metadata" is reserved on declarative classes, hence the attribute name
    charge_metadata: Optional[dict] = Field(
        default=None,
        sa_column=Column("metadata", JSONB),
        description="Gateway metadata: userId, months, planName, ..."
    )

    paid_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))

    # Idempotency marker
    processed_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    processed_for: Optional[str] = Field(default=None, max_length=50)
