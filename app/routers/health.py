"""
Health Router: readiness, database and scheduler status.
"""
from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
from app.services.db_service import get_db

router = APIRouter()


@router.get("/health")
async def health_check(request: Request, response: Response, db: AsyncSession = Depends(get_db)):
    """
    Check the database and the scheduler.
    Returns 503 if app is still initializing (Readiness Probe).
    """
    if not getattr(request.app.state, "is_ready", False):
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "initializing", "message": "Application is starting up"}

    health_status = {"status": "healthy", "services": {"db": "unknown", "scheduler": "unknown"}}

    try:
        await db.execute(text("SELECT 1"))
        health_status["services"]["db"] = "up"
    except Exception as e:
        health_status["services"]["db"] = f"down: {str(e)}"
        health_status["status"] = "degraded"

    try:
        from app.scheduler.cron_tasks import scheduler
        health_status["services"]["scheduler"] = "running" if scheduler.running else "stopped"
        health_status["jobs"] = {
            job.id: job.next_run_time.isoformat() if job.next_run_time else None
            for job in scheduler.get_jobs()
        }
    except ImportError:
        health_status["services"]["scheduler"] = "unavailable"

    return health_status
