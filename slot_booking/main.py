import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from slot_booking.bootstrap import create_or_update_admin
from slot_booking.config import get_settings
from slot_booking.core.errors import register_exception_handlers
from slot_booking.core.logging import setup_logging
from slot_booking.database import create_tables
from slot_booking.limiter import limiter
from slot_booking.routers import admin, auth, bookings, health, logs, profiles, slot_management, slots, users

settings = get_settings()
logger = setup_logging(settings.log_level, json_output=settings.log_json)

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    debug=settings.debug,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
register_exception_handlers(app)


@app.on_event("startup")
def on_startup():
    create_tables()
    create_or_update_admin()
    logger.info("startup_complete", environment=settings.environment, database="sqlite" if settings.is_sqlite else "postgresql")


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(health.router, prefix="/api")
app.include_router(slots.router, prefix="/api")
app.include_router(bookings.router, prefix="/api")
app.include_router(profiles.router, prefix="/api")
app.include_router(auth.router, prefix="/api")
app.include_router(admin.router, prefix="/api")
app.include_router(slot_management.router, prefix="/api")
app.include_router(logs.router, prefix="/api")
app.include_router(users.router, prefix="/api")


if __name__ == "__main__":
    uvicorn.run("slot_booking.main:app", host="0.0.0.0", port=8000, reload=settings.is_development)
