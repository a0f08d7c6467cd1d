import asyncio
import logging
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from shop_assistant.api.routes.admin import router as admin_router
from shop_assistant.api.routes.assistant import router as assistant_router
from shop_assistant.api.routes.auth import router as auth_router
from shop_assistant.api.routes.malls import router as malls_router
from shop_assistant.api.routes.membership import router as membership_router
from shop_assistant.api.routes.sub_accounts import router as sub_accounts_router
from shop_assistant.core.config import settings
from shop_assistant.db.database import SessionLocal
from shop_assistant.services.cleanup import run_maintenance

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


def run_cleanup_cycle() -> None:
    db = SessionLocal()
    try:
        report = run_maintenance(db)
        if report.expired_packages or report.purged_reset_tokens or report.evicted_cache_entries:
            logger.info(
                "Maintenance: %s packages expired, %s reset tokens purged, %s cache entries evicted",
                report.expired_packages,
                report.purged_reset_tokens,
                report.evicted_cache_entries,
            )
    except Exception:
        logger.exception("Maintenance run failed")
    finally:
        db.close()


async def _cleanup_worker() -> None:
    while True:
        run_cleanup_cycle()
        await asyncio.sleep(max(60, settings.cleanup_interval_minutes * 60))


@asynccontextmanager
async def lifespan(_: FastAPI):
    task: asyncio.Task | None = None
    if settings.cleanup_enabled:
        task = asyncio.create_task(_cleanup_worker())
    try:
        yield
    finally:
        if task:
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task


app = FastAPI(title=settings.app_name, lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(_: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.detail, "code": exc.status_code},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "success": False,
            "message": message,
            "code": status.HTTP_422_UNPROCESSABLE_ENTITY,
            "errors": jsonable_encoder(errors),
        },
    )


app.include_router(auth_router)
app.include_router(malls_router)
app.include_router(sub_accounts_router)
app.include_router(membership_router)
app.include_router(assistant_router)
app.include_router(admin_router)


@app.get("/health", tags=["System"])
def health_check():
    return {"status": "ok"}
