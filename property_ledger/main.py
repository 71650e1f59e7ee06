"""
Property Ledger — FastAPI Application.

This is the entry point for the HTTP surface of the ledger.
All routers are registered here.
"""

import logging

from fastapi import FastAPI

from property_ledger.config import get_settings
from property_ledger.api.health import router as health_router
from property_ledger.api.ledger import router as ledger_router
from property_ledger.api.reports import router as reports_router

settings = get_settings()

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Double-entry ledger core for property management",
    debug=settings.DEBUG,
)

# Register routers
app.include_router(health_router)
app.include_router(ledger_router)
app.include_router(reports_router)
