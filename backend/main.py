import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import settings
from db.database import engine, Base
import db.models  # noqa: F401
from auth.bootstrap import ensure_admin_account
from auth.routes import router as auth_router
from api.qr import router as qr_router
from api.users import router as users_router
from api.clients import router as clients_router
from api.trainers import router as trainers_router
from api.trainer_requests import router as trainer_requests_router
from api.plans import router as plans_router
from api.notifications import router as notifications_router
from api.chat import router as chat_router
from api.stats import router as stats_router
from api.body_metrics import router as body_metrics_router
from api.realtime import router as realtime_router

logging.basicConfig(
    level=getattr(logging, (settings.LOG_LEVEL or "INFO").upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

settings.validate_security_configuration()

# Create all tables
Base.metadata.create_all(bind=engine)
ensure_admin_account()

app = FastAPI(title=settings.APP_NAME, version="1.0.0")

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def security_headers_middleware(request: Request, call_next):
    response = await call_next(request)
    if not settings.SECURITY_HEADERS_ENABLED:
        return response
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    return response


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if isinstance(exc.detail, dict):
        body = {"message": str(exc.detail.get("message") or ""), **{k: v for k, v in exc.detail.items() if k != "message"}}
    else:
        body = {"message": str(exc.detail)}
    return JSONResponse(status_code=exc.status_code, content=body, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = jsonable_encoder(exc.errors())
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path"))
    text = first.get("msg", "Invalid request")
    message = f"{location}: {text}" if location else text
    return JSONResponse(status_code=400, content={"message": message, "errors": errors})


# Routers
app.include_router(auth_router, prefix="/api")
app.include_router(qr_router, prefix="/api")
app.include_router(users_router, prefix="/api")
app.include_router(clients_router, prefix="/api")
app.include_router(trainers_router, prefix="/api")
app.include_router(trainer_requests_router, prefix="/api")
app.include_router(plans_router, prefix="/api")
app.include_router(notifications_router, prefix="/api")
app.include_router(chat_router, prefix="/api")
app.include_router(stats_router, prefix="/api")
app.include_router(body_metrics_router, prefix="/api")
app.include_router(realtime_router, prefix="/api")


@app.get("/api/health")
def health_check():
    return {"status": "ok", "app": settings.APP_NAME}
