import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from paperworth.config import get_settings
from paperworth.data.base import create_tables
from paperworth.domain.errors import ServiceError
from paperworth.logging_config import configure_logging
from paperworth.presentation.budgets_api import router as budgets_router
from paperworth.presentation.ocr_api import router as ocr_router
from paperworth.presentation.promotions_api import router as promotions_router
from paperworth.presentation.receipts_api import router as receipts_router
from paperworth.presentation.rewards_api import router as rewards_router
from paperworth.presentation.saved_promotions_api import router as saved_promotions_router
from paperworth.presentation.user_api import router as users_router
from paperworth.presentation.user_points_api import router as user_points_router
from paperworth.presentation.user_rewards_api import router as user_rewards_router

settings = get_settings()
configure_logging(settings.log_level)
logger = logging.getLogger("paperworth.main")

app = FastAPI(title="Paperworth API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    max_age=3600,
)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(
        status_code=exc.status_code, content={"detail": exc.message}, headers=headers
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{field}: {first.get('msg')}" if field else first.get("msg")
    else:
        message = "Malformed request"
    return JSONResponse(status_code=400, content={"detail": message})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


app.include_router(users_router)
app.include_router(ocr_router)
app.include_router(receipts_router)
app.include_router(budgets_router)
app.include_router(saved_promotions_router)
app.include_router(promotions_router)
app.include_router(rewards_router)
app.include_router(user_points_router)
app.include_router(user_rewards_router)

# Ensure tables exist at startup
create_tables()
