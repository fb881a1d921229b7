from __future__ import annotations

from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from opsconsole.api.routes import credentials, devices, m365, users
from opsconsole.core.config import get_settings
from opsconsole.core.database import db
from opsconsole.core.logging import configure_logging, log_info


settings = get_settings()
configure_logging()

tags_metadata = [
    {
        "name": "Users",
        "description": "Consolidated user view merging identity, branch, credentials, and devices.",
    },
    {"name": "Credentials", "description": "Encrypted VPN and RDP credential directory."},
    {"name": "Devices", "description": "Thin client and full PC classification."},
    {"name": "Office365", "description": "Microsoft 365 directory and managed device synchronisation."},
]

app = FastAPI(
    title=settings.app_name,
    description=(
        "IT operations console API exposing consolidated user records, credential "
        "lookups, and Microsoft 365 directory synchronisation."
    ),
    openapi_tags=tags_metadata,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[str(origin) for origin in settings.allowed_origins] or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(users.router)
app.include_router(credentials.router)
app.include_router(devices.router)
app.include_router(m365.router)


@app.on_event("startup")
async def on_startup() -> None:
    await db.connect()
    await db.run_migrations()
    log_info("Application startup", environment=settings.environment, database=db.dialect)


@app.on_event("shutdown")
async def on_shutdown() -> None:
    await db.disconnect()
    log_info("Application shutdown")


@app.get("/health")
async def health_check():
    return {
        "status": "ok",
        "database": db.dialect,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
