"""
Chama Payments API entry point.

Run with: uvicorn src.api.main:app --reload
"""

from dotenv import load_dotenv

load_dotenv()

import logging
import os
from datetime import datetime

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.dependencies import get_db, get_mpesa_config
from src.api.endpoints.notifications import router as notifications_router
from src.api.endpoints.payments import payments_api
from src.utils.config_loader import MpesaConfig

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SERVICE_NAME = "Chama Payments API"
VERSION = "1.0.0"

app = FastAPI(
    title=SERVICE_NAME,
    description="M-PESA STK push initiation and callback handling for chama savings groups",
    version=VERSION,
)

# Comma separated; "*" when unset
_origins = [o.strip() for o in os.getenv("CORS_ALLOW_ORIGINS", "*").split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_credentials=_origins != ["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)

app.include_router(payments_api, prefix="/api/v1/payments", tags=["Payments"])
app.include_router(notifications_router, prefix="/api/v1")


@app.get("/", tags=["Health"])
async def root():
    return {"service": SERVICE_NAME, "status": "healthy", "version": VERSION}


@app.get("/health", tags=["Health"])
async def health_check(config: MpesaConfig = Depends(get_mpesa_config)):
    """Liveness plus which gateway mode the initiator will use."""
    return {
        "status": "healthy",
        "mpesa": {
            "mode": "development" if config.development_mode else "live",
            "environment": config.environment,
        },
        "timestamp": datetime.utcnow().isoformat(),
    }


@app.on_event("startup")
async def startup_event():
    config = get_mpesa_config()
    logger.info(
        "Starting %s (mpesa mode=%s, environment=%s)",
        SERVICE_NAME, "development" if config.development_mode else "live", config.environment,
    )
    try:
        get_db().create_tables()
    except Exception as e:
        logger.error(f"Error initializing database: {str(e)}")
        raise


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Shutting down %s", SERVICE_NAME)
