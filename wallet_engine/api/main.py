# wallet_engine/api/main.py

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, RedirectResponse
import uvicorn
import logging
from decimal import getcontext

from wallet_engine.api.v1.router import router as v1_router
from wallet_engine.core.config.settings import settings
from wallet_engine.core.exceptions import WalletEngineError

# Configure logging
logging.basicConfig(level=settings.LOG_LEVEL, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(settings.APP_NAME)

# Set global Decimal precision at application startup
getcontext().prec = settings.DECIMAL_PRECISION

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    debug=settings.DEBUG_MODE,
    description="API for lot-based (wallet) cost-basis accounting, P/L aggregation and trading signals."
)

app.include_router(v1_router, prefix=settings.API_V1_STR)


@app.exception_handler(WalletEngineError)
async def wallet_engine_error_handler(request: Request, exc: WalletEngineError):
    logger.warning(f"{request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.http_status,
        content={"error": type(exc).__name__, "detail": exc.message},
    )


@app.get("/", include_in_schema=False)
async def root():
    """Redirects to the API documentation."""
    return RedirectResponse(url="/docs")

# Entry point for running with Uvicorn directly (for development)
if __name__ == "__main__":
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION} in {'DEBUG' if settings.DEBUG_MODE else 'PRODUCTION'} mode...")
    uvicorn.run(
        "wallet_engine.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG_MODE,
        log_level=settings.LOG_LEVEL.lower()
    )
