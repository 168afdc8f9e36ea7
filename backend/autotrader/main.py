import asyncio
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from autotrader.config import settings
from autotrader.database import init_db
from autotrader.exceptions import AppError
from autotrader.routers import (
    auto_trader_router,
    market_data_router,
    order_history_router,
    portfolio_router,
    settings_router,
    system_router,
)
from autotrader.services.position_monitor import run_position_monitor
from autotrader.services.shutdown_manager import shutdown_manager

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Binance Auto Trader")

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"error": str(exc), "code": "internal_error"})


app.include_router(auto_trader_router.router)
app.include_router(settings_router.router)
app.include_router(portfolio_router.router)
app.include_router(market_data_router.router)
app.include_router(order_history_router)
app.include_router(system_router.router)

position_monitor_task = None


# Startup/Shutdown events
@app.on_event("startup")
async def startup_event():
    global position_monitor_task

    logger.info("Initializing database...")
    await init_db()
    logger.info("Database initialized")

    if settings.position_monitor_enabled:
        position_monitor_task = asyncio.create_task(run_position_monitor())
        logger.info(
            f"Position monitor started - checking every {settings.position_monitor_interval_seconds} seconds"
        )


@app.on_event("shutdown")
async def shutdown_event():
    global position_monitor_task

    logger.info("Shutting down - stopping position monitor...")
    if position_monitor_task:
        position_monitor_task.cancel()
        try:
            await position_monitor_task
        except asyncio.CancelledError:
            pass
        position_monitor_task = None

    logger.info("Waiting for in-flight orders...")
    shutdown_result = await shutdown_manager.prepare_shutdown(timeout=60.0)
    if shutdown_result["ready"]:
        logger.info(f"Shutdown ready after {shutdown_result['waited_seconds']:.1f}s")
    else:
        logger.warning(
            f"Shutdown timed out with {shutdown_result['in_flight_count']} orders still in-flight"
        )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
