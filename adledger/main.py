"""FastAPI application entry point."""

from fastapi import FastAPI
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sqlalchemy import text

from adledger.core.config import settings
from adledger.core.error_tracking import init_error_tracking
from adledger.db.session import engine

# ============================================================================
# Sentry Integration (optional, for production error tracking)
# ============================================================================

init_error_tracking(FastApiIntegration(transaction_style="endpoint"))

# ============================================================================
# FastAPI App
# ============================================================================

app = FastAPI(
    title="adledger API",
    description="Ad platform sync and performance ledger",
    version=settings.VERSION,
    docs_url="/docs" if settings.is_dev else None,
    redoc_url="/redoc" if settings.is_dev else None,
)

# ============================================================================
# Routers
# ============================================================================

from adledger.routers import ad_accounts, sync  # noqa: E402

app.include_router(sync.router)
app.include_router(ad_accounts.router)


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health")
def health():
    """
    Health check endpoint.

    Verifies database connectivity and returns environment info.
    """
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return {"status": "ok", "env": settings.ENV, "version": settings.VERSION}
