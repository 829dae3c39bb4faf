"""FastAPI application for the referral rewards service.

Provides:
- Signup with optional referral code (multi-level attribution)
- Deposits that fan rewards out to up to three ancestors
- One-shot claiming of pending rewards
- Per-user summary and program stats

Flow:
1. POST /api/register - Create account, optionally under a referrer
2. POST /api/deposit - Record a deposit, credit ancestors
3. POST /api/rewards/claim - Move pending rewards into earnings
4. GET /api/user/{email} - Totals, referred users and rewards
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from referral_api.config import configure_logging, get_settings
from referral_api.db.database import async_session, init_db, seed_reward_levels
from referral_api.referrals.routes import router as referrals_router

settings = get_settings()
configure_logging(settings.log_level)

logger = logging.getLogger("referral-api")


# =============================================================================
# App Lifecycle
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables and seed the reward schedule when configured to."""
    if settings.auto_create_tables:
        await init_db()
        async with async_session() as session:
            await seed_reward_levels(session, settings.default_reward_levels)
        logger.info("Database tables ready")
    yield


app = FastAPI(
    title="Referral Rewards API",
    description="Multi-level referral attribution, reward distribution and claims",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware for the dashboard frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(referrals_router)


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: str


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse(
        status="OK",
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


if __name__ == "__main__":
    import uvicorn

    logger.info(f"Referral system server running on port {settings.port}")
    uvicorn.run(app, host=settings.host, port=settings.port)
