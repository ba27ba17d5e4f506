"""
Payment Ledger Repository

Read side of the pix_charges ledger plus the idempotency marker.
Rows are validated into PaymentEvent here; a malformed row is logged and
left out instead of failing the whole tenant.
"""

import json
import logging
from datetime import datetime
from typing import Any, List, Optional, Sequence

import pydantic
from sqlalchemy import and_, or_, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.payments import PaymentEvent, PaymentScope
from app.infrastructure.db.models.base import utcnow
from app.infrastructure.db.models.pix_charge import PixChargeModel
from app.infrastructure.db.repositories.base_repository import BaseRepository, as_uuid


logger = logging.getLogger(__name__)

PAID_STATUS = "paid"


def _parse_metadata(raw: Any) -> dict:
    """Metadata arrives as a dict, a JSON string, or nothing."""
    if raw is None:
        return {}
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            return {}
    return raw if isinstance(raw, dict) else {}


class PaymentLedgerRepository(BaseRepository[PixChargeModel]):
    """Repository over confirmed payment charges."""

    def __init__(self, session: AsyncSession):
        super().__init__(PixChargeModel, session)

    async def list_paid_platform_events(
        self,
        tenant_id: Optional[str] = None,
    ) -> List[PaymentEvent]:
        """
        Paid platform charges, oldest first by paid_at.

        Platform charges have no customer and no appointment. The tenant
        is read from metadata.userId, falling back to the user_id column.

        Args:
            tenant_id: Restrict to one tenant; all tenants when omitted
        """
        criteria = [
            PixChargeModel.status == PAID_STATUS,
            PixChargeModel.customer_id.is_(None),
            PixChargeModel.appointment_id.is_(None),
        ]
        if tenant_id:
            metadata_user = PixChargeModel.charge_metadata["userId"].astext
            criteria.append(
                or_(
                    metadata_user == str(tenant_id),
                    and_(metadata_user.is_(None), PixChargeModel.user_id == as_uuid(tenant_id)),
                )
            )

        models = await self.list_where(
            *criteria,
            order_by=PixChargeModel.paid_at.asc().nulls_last(),
        )

        events = []
        for model in models:
            event = self._to_domain(model)
            if event is None:
                continue
            if tenant_id and event.tenant_id != str(tenant_id):
                continue
            events.append(event)
        return events

    async def mark_events_processed(
        self,
        transaction_ids: Sequence[str],
        tag: str,
        now: Optional[datetime] = None,
    ) -> int:
        """
        Stamp charges as consumed by `tag`; already-stamped rows are left alone.

        Returns:
            Number of charges marked
        """
        if not transaction_ids:
            return 0

        stmt = (
            update(PixChargeModel)
            .where(
                PixChargeModel.txid.in_(list(transaction_ids)),
                PixChargeModel.processed_at.is_(None),
            )
            .values(processed_at=now or utcnow(), processed_for=tag)
        )
        result = await self._session.execute(stmt)
        marked = result.rowcount or 0
        logger.debug(f"Marked {marked} charges as processed for {tag}")
        return marked

    def _to_domain(self, model: PixChargeModel) -> Optional[PaymentEvent]:
        """Validate a ledger row; None when it cannot be trusted."""
        metadata = _parse_metadata(model.charge_metadata)
        tenant_id = metadata.get("userId") or (str(model.user_id) if model.user_id else None)

        try:
            return PaymentEvent(
                transaction_id=model.txid,
                tenant_id=tenant_id,
                amount=model.amount,
                paid_at=model.paid_at,
                created_at=model.created_at,
                period_months=metadata.get("months"),
                scope=PaymentScope.PLATFORM,
                charge_id=str(model.id),
                processed_at=model.processed_at,
                processed_for=model.processed_for,
            )
        except pydantic.ValidationError as e:
            logger.warning(f"Skipping malformed charge {model.id}: {e.error_count()} invalid field(s)")
            return None
