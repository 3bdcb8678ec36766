from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1.schedules.router import router as schedules_router
from app.api.v1.time_periods.router import router as time_periods_router
from app.api.v1.timetables.router import router as timetables_router
from app.api.v1.timetables.workflow_router import router as timetable_workflow_router
from app.core.config import settings
from app.core.logging import configure_logging


def create_app() -> FastAPI:
    configure_logging(settings.log_level)
    app = FastAPI(title="Timetable Backend")

    # CORS: allow frontend to call this API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(schedules_router)
    app.include_router(time_periods_router)
    app.include_router(timetables_router)
    app.include_router(timetable_workflow_router)

    return app


app = create_app()
