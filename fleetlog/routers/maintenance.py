"""
Maintenance router — GET /maintenance/alerts
"""
from fastapi import APIRouter, Depends

from fleetlog.middleware.auth import get_current_user
from fleetlog.schemas.schemas import CurrentUser, MaintenanceAlertsResponse
from fleetlog.services.maintenance import MaintenanceTracker, get_maintenance_tracker

router = APIRouter(prefix="/maintenance", tags=["Maintenance"])


@router.get("/alerts", response_model=MaintenanceAlertsResponse)
async def maintenance_alerts(
    user: CurrentUser = Depends(get_current_user),
    tracker: MaintenanceTracker = Depends(get_maintenance_tracker),
):
    """Vehicles due for an oil change, most overdue first."""
    return MaintenanceAlertsResponse(alerts=await tracker.alerts())
