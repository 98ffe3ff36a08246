"""
Cron trigger endpoints for manual runs and external schedulers.
"""
from fastapi import APIRouter

from voicesched.services.scheduler_service import sweep_capture_sessions

router = APIRouter()


@router.post("/sweep")
async def trigger_sweep():
    """Manually expire abandoned capture sessions and purge old ones."""
    result = sweep_capture_sessions()
    return {"status": "ok", "type": "capture_session_sweep", **result}


@router.get("/status")
async def scheduler_status():
    """Get scheduler status and next run times."""
    from voicesched.services.scheduler_service import scheduler

    jobs = []
    for job in scheduler.get_jobs():
        jobs.append({
            "id": job.id,
            "next_run": str(job.next_run_time) if job.next_run_time else None
        })

    return {
        "running": scheduler.running,
        "jobs": jobs
    }
