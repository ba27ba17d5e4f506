"""
Billing Job Routes

HTTP invocation surface for the scheduled billing jobs:
- POST /jobs/reconcile-subscriptions: rebuild billing dates from payments
- POST /jobs/check-expired-subscriptions: expire lapsed subscriptions
- POST /jobs/check-subscription-reminders: email upcoming expirations

Jobs report per-item failures inside a 200 response; only a failure of the
initial bulk query turns into a 500.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse

from app.api.dependencies import (
    get_expiry_sweep_service,
    get_reconciliation_service,
    get_reminder_sweep_service,
    verify_cron_secret,
)
from app.domain.reports import (
    ExpirySweepReport,
    ReconcileRequest,
    ReconciliationReport,
    ReminderSweepReport,
)
from app.infrastructure.services.expiry_sweep_service import ExpirySweepService
from app.infrastructure.services.reconciliation_service import ReconciliationService
from app.infrastructure.services.reminder_sweep_service import ReminderSweepService


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs")

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
}

JOB_PATHS = (
    "/reconcile-subscriptions",
    "/check-expired-subscriptions",
    "/check-subscription-reminders",
)


def job_failure(job: str, error: Exception) -> JSONResponse:
    logger.error(f"{job} failed: {error}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": str(error)},
        headers=CORS_HEADERS,
    )


# =============================================================================
# Preflight
# =============================================================================

async def job_preflight() -> Response:
    """Answer OPTIONS with permissive CORS headers."""
    return Response(status_code=200, content="ok", headers=CORS_HEADERS)


for path in JOB_PATHS:
    router.add_api_route(path, job_preflight, methods=["OPTIONS"], include_in_schema=False)


# =============================================================================
# Jobs
# =============================================================================

@router.post(
    "/reconcile-subscriptions",
    response_model=ReconciliationReport,
    dependencies=[Depends(verify_cron_secret)],
)
async def reconcile_subscriptions(
    response: Response,
    body: Optional[ReconcileRequest] = None,
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    """
    Recompute platform subscriptions from the payment ledger.

    With `tenantId`, that tenant is always reconciled. Without it, platform
    subscriptions that look corrupted are selected. `dryRun` reports
    without writing.
    """
    body = body or ReconcileRequest()
    response.headers.update(CORS_HEADERS)

    try:
        return await service.reconcile(
            tenant_id=body.tenant_id,
            dry_run=body.dry_run,
        )
    except Exception as e:
        return job_failure("Reconciliation", e)


@router.post(
    "/check-expired-subscriptions",
    response_model=ExpirySweepReport,
    dependencies=[Depends(verify_cron_secret)],
)
async def check_expired_subscriptions(
    response: Response,
    service: ExpirySweepService = Depends(get_expiry_sweep_service),
):
    """Move every lapsed subscription to expired."""
    response.headers.update(CORS_HEADERS)

    try:
        return await service.run()
    except Exception as e:
        return job_failure("Expiry sweep", e)


@router.post(
    "/check-subscription-reminders",
    response_model=ReminderSweepReport,
    response_model_exclude={"results"},
    dependencies=[Depends(verify_cron_secret)],
)
async def check_subscription_reminders(
    response: Response,
    service: ReminderSweepService = Depends(get_reminder_sweep_service),
):
    """Email tenants whose subscription lapses in a few days."""
    response.headers.update(CORS_HEADERS)

    try:
        return await service.sweep_reminders()
    except Exception as e:
        return job_failure("Reminder sweep", e)
