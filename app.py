import logging
import uuid

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import config
from core.api import ApiError, api_error_handler
from db import db_manager, init_database
from route_templates.api.routes import router as routes_router
from trips.api.lifecycle import router as trips_router

# Basic logging configuration
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Freight Trips")

# CORS Middleware Configuration
if config.CORS_ALLOWED_ORIGINS:
    origins = config.CORS_ALLOWED_ORIGINS
    logger.info("CORS configured with specific origins: %s", origins)
else:
    # Development fallback - allow localhost and common dev ports
    origins = [
        "http://localhost:3000",
        "http://localhost:8080",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:8080",
    ]
    logger.warning(
        "CORS_ALLOWED_ORIGINS not set. Using development defaults: %s",
        origins,
    )

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(trips_router)
app.include_router(routes_router)
app.add_exception_handler(ApiError, api_error_handler)


# --- Application Lifecycle Events ---
@app.on_event("startup")
async def startup_event():
    """Initialize Beanie and database indexes on application startup."""
    try:
        await db_manager.init_beanie()
        await init_database()
        transactions = await db_manager.supports_transactions()
        logger.info(
            "Application startup completed successfully (transactions=%s).",
            transactions,
        )
    except Exception as e:
        logger.critical(
            "CRITICAL: Failed to initialize application during startup: %s",
            str(e),
            exc_info=True,
        )
        raise


@app.on_event("shutdown")
async def shutdown_event():
    """Clean up resources when shutting down."""
    await db_manager.cleanup_connections()
    logger.info("Application shutdown completed successfully")


# --- Global Exception Handlers ---
@app.exception_handler(500)
async def internal_error_handler(request: Request, exc: Exception):
    """Handle 500 Internal Server Error errors."""
    error_id = str(uuid.uuid4())
    logger.error(
        "Internal Server Error (ID: %s): Request %s %s failed. Exception: %s",
        error_id,
        request.method,
        request.url,
        str(exc),
        exc_info=True,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal server error",
            "error_id": error_id,
            "detail": str(exc),
        },
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app:app", host="0.0.0.0", port=8080, reload=True)
