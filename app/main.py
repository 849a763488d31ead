# app/main.py

from fastapi import FastAPI

from app.config import get_settings
from app.logging_config import configure_logging
from app.routers import jobs_router

settings = get_settings()
configure_logging(json_format=settings.LOG_JSON, level=settings.LOG_LEVEL)

app = FastAPI(title="Psyop Analysis Pipeline")

# Scheduler-facing run endpoints plus read-only history
app.include_router(jobs_router)


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

@app.get("/health")
def health() -> dict:
    return {"status": "ok", "service": "psyop-pipeline", "environment": settings.ENVIRONMENT}
