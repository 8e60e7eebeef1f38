import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from toothchart.core.settings import settings, validate_settings
from toothchart.db.session import SessionLocal, engine
from toothchart.models import Base
from toothchart.routers.auth import router as auth_router
from toothchart.routers.dental_charts import patient_router as patient_chart_router
from toothchart.routers.dental_charts import router as dental_chart_router
from toothchart.routers.front_desk import router as front_desk_router
from toothchart.services.front_desk import register_front_desk_jobs
from toothchart.services.scheduler import JobScheduler
from toothchart.services.users import seed_initial_admin

logger = logging.getLogger("toothchart.startup")


def _seed_admin() -> None:
    admin_email = str(settings.admin_email)
    db: Session = SessionLocal()
    try:
        created = seed_initial_admin(db, email=admin_email, password=settings.admin_password.strip())
        if created:
            logger.info("Initial admin created for %s.", admin_email)
        else:
            logger.info("Initial admin not created (users already exist).")
    finally:
        db.close()


def build_scheduler() -> JobScheduler:
    scheduler = JobScheduler()
    register_front_desk_jobs(
        scheduler,
        SessionLocal,
        no_show_check_seconds=settings.no_show_check_seconds,
        no_show_grace_minutes=settings.no_show_grace_minutes,
        queue_refresh_seconds=settings.queue_refresh_seconds,
        queue_minutes_per_patient=settings.queue_minutes_per_patient,
    )
    return scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    validate_settings(settings)
    Base.metadata.create_all(bind=engine)
    _seed_admin()
    scheduler = build_scheduler()
    app.state.scheduler = scheduler
    if settings.enable_background_jobs:
        scheduler.start()
    else:
        logger.info("Background jobs disabled.")
    try:
        yield
    finally:
        await scheduler.stop()


app = FastAPI(title="Toothchart API", version="0.1.0", lifespan=lifespan)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    request_id = request.headers.get("x-request-id")
    logger.exception("Unhandled server error", extra={"request_id": request_id})
    payload = {"detail": "Internal server error"}
    if request_id:
        payload["request_id"] = request_id
    return JSONResponse(status_code=500, content=payload)


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(auth_router)
app.include_router(dental_chart_router)
app.include_router(patient_chart_router)
app.include_router(front_desk_router)
