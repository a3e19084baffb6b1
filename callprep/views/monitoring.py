from fastapi import APIRouter

from callprep.services.analysis_monitor import MonitoringStats, analysis_monitor

router = APIRouter()


@router.get("/monitoring/analysis")
async def monitoring_analysis() -> MonitoringStats:
    return analysis_monitor.get_stats()
