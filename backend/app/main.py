import logging

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.v1.whatsapp_webhook import router as whatsapp_webhook_router
from app.core.config import get_settings
from app.core.errors import ConfigMissing
from app.services.rasterizer import pdftoppm_available
from app.services.recurring_jobs import start_pending_expiry_worker

settings = get_settings()
_pending_expiry_task = None

logging.basicConfig(
    level=getattr(logging, str(settings.log_level).upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Receipt Intake Bot",
    version="1.0.0",
    docs_url="/docs" if settings.docs_enabled else None,
    openapi_url="/openapi.json" if settings.docs_enabled else None,
)


@app.on_event("startup")
async def _startup_checks():
    global _pending_expiry_task
    for problem in settings.validate_required_config():
        logger.warning("%s: %s", ConfigMissing.__name__, problem)
    if not pdftoppm_available():
        logger.warning("pdftoppm not found on PATH; scanned PDFs will yield empty records")
    if _pending_expiry_task is None:
        _pending_expiry_task = start_pending_expiry_worker()


@app.on_event("shutdown")
async def _shutdown_jobs():
    global _pending_expiry_task
    if _pending_expiry_task is not None:
        _pending_expiry_task.cancel()
        _pending_expiry_task = None


app.include_router(whatsapp_webhook_router, prefix="/api/v1", tags=["webhooks"])


@app.exception_handler(StarletteHTTPException)
async def _http_exception_handler(request: Request, exc: StarletteHTTPException):
    # Hide internal details for 5xx in production unless explicitly enabled.
    if exc.status_code >= 500 and not settings.expose_error_details:
        return JSONResponse(status_code=exc.status_code, content={"detail": "Erro interno"})
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.exception_handler(Exception)
async def _unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception")
    if settings.expose_error_details:
        return JSONResponse(status_code=500, content={"detail": str(exc)})
    return JSONResponse(status_code=500, content={"detail": "Erro interno"})


@app.get("/health")
async def health_check():
    return {"status": "ok"}


@app.get("/")
async def root():
    return PlainTextResponse("BOT OK")


def run() -> None:
    uvicorn.run("app.main:app", host="0.0.0.0", port=settings.port, log_level=str(settings.log_level).lower())
