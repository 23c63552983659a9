import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from sqlalchemy.orm import Session

from account_service import schemas, utils
from account_service.config import CORS_ALLOWED_ORIGINS, DATABASE_URL, LOG_LEVEL
from account_service.db import Database, get_db
from account_service.errors import AccountServiceError, AuthenticationError, NotFoundError, ValidationError
from account_service.store import CredentialStore

# Configura logger
logging.basicConfig(level=LOG_LEVEL, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

ERROR_RESPONSES = {
    400: {"model": schemas.ErrorResponse},
    404: {"model": schemas.ErrorResponse},
}

# --- Métricas Prometheus ---
REQUEST_COUNT = Counter(
    "account_requests_total",
    "Total requests processed by Account Service",
    ["method", "endpoint", "status_code"]
)
REQUEST_LATENCY = Histogram(
    "account_request_latency_seconds",
    "Request latency in seconds for Account Service",
    ["endpoint"]
)


def metric_endpoint(path: str) -> str:
    """Agrupa /api/users/<username> bajo una sola etiqueta."""
    parts = path.split("/")
    if len(parts) == 4 and parts[1] == "api" and parts[2] == "users" and parts[3]:
        return "/api/users/{username}"
    return path


async def metrics_middleware(request: Request, call_next):
    start_time = time.time()
    response = None
    status_code = 500

    try:
        response = await call_next(request)
        status_code = response.status_code
    except Exception as exc:
        logger.error(f"Unhandled exception during request processing: {exc}", exc_info=True)
        response = JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Internal Server Error"},
        )
    finally:
        latency = time.time() - start_time
        endpoint = metric_endpoint(request.url.path)
        final_status_code = getattr(response, 'status_code', status_code)

        REQUEST_LATENCY.labels(endpoint=endpoint).observe(latency)
        REQUEST_COUNT.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=final_status_code
        ).inc()

    return response


# --- Manejadores de errores ---

async def account_error_handler(request: Request, exc: AccountServiceError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def request_validation_handler(request: Request, exc: RequestValidationError):
    fields = sorted({str(err["loc"][-1]) for err in exc.errors() if err.get("loc")})
    logger.warning(f"Validation error on {request.url.path}: fields {fields}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": ValidationError.default_message, "fields": fields},
    )


def get_store(db: Session = Depends(get_db)) -> CredentialStore:
    return CredentialStore(db)


def clean_username(username: Optional[str]) -> str:
    """Mismo criterio que el schema de registro: sin espacios alrededor."""
    return (username or "").strip()


router = APIRouter(prefix="/api")


@router.get("/health", response_model=schemas.HealthResponse, tags=["Monitoring"])
def health_check(request: Request):
    """Liveness plus database connectivity."""
    db_ok = request.app.state.database.ping()
    return {
        "status": "ok" if db_ok else "degraded",
        "database": "ok" if db_ok else "error",
        "timestamp": datetime.now(timezone.utc),
    }


@router.post(
    "/register",
    response_model=schemas.AccountResponse,
    status_code=status.HTTP_201_CREATED,
    responses={**ERROR_RESPONSES, 409: {"model": schemas.ErrorResponse}},
    tags=["Authentication"],
)
def register(req: schemas.RegisterRequest, store: CredentialStore = Depends(get_store)):
    logger.info(f"Registration started for user: {req.username}")
    user = store.create(req.username, req.country, req.phone, req.password)
    return {"success": True, "message": "Your account is successfully created", "user": user}


@router.post(
    "/login",
    response_model=schemas.AccountResponse,
    responses={**ERROR_RESPONSES, 401: {"model": schemas.ErrorResponse}},
    tags=["Authentication"],
)
def login(req: schemas.LoginRequest, store: CredentialStore = Depends(get_store)):
    logger.info(f"Login attempt for user: {req.username}")
    try:
        account = store.authenticate(req.username, req.password)
    except (NotFoundError, AuthenticationError) as e:
        logger.warning(f"Login failed for user {req.username}: {e.message}")
        raise

    logger.info(f"Login successful for user: {req.username}")
    return {"success": True, "message": "Login successful", "user": account}


@router.post("/forgot-password", response_model=schemas.MessageResponse, tags=["Authentication"])
def forgot_password(
    req: schemas.ForgotPasswordRequest,
    background_tasks: BackgroundTasks,
    store: CredentialStore = Depends(get_store),
):
    """
    Inicia la recuperación de contraseña. Siempre responde lo mismo
    para no revelar qué usuarios están registrados.
    """
    token = store.issue_reset_token(req.username)
    if token:
        account = store.find_by_username(req.username)
        background_tasks.add_task(utils.send_reset_token, account.username, account.phone, token)
    else:
        logger.info(f"Password reset requested for unknown user: {req.username}")

    return {"success": True, "message": "If the account exists, reset instructions have been sent."}


@router.post("/reset-password", response_model=schemas.MessageResponse, responses=ERROR_RESPONSES, tags=["Authentication"])
def reset_password(req: schemas.PasswordResetConfirm, store: CredentialStore = Depends(get_store)):
    if req.new_password != req.confirm_password:
        raise ValidationError("Passwords do not match")

    store.reset_secret(req.token, req.new_password)
    return {"success": True, "message": "Your password has been reset"}


@router.get("/users", response_model=schemas.UserResponse, responses=ERROR_RESPONSES, tags=["Users"])
def get_user(username: Optional[str] = None, store: CredentialStore = Depends(get_store)):
    """Retorna la cuenta sin campos de contraseña."""
    username = clean_username(username)
    if not username:
        raise ValidationError("Username is required")

    account = store.find_by_username(username)
    if account is None:
        raise NotFoundError(username)
    return account


@router.put("/users/{username}", response_model=schemas.AccountResponse, responses=ERROR_RESPONSES, tags=["Users"])
def update_user(username: str, req: schemas.UserUpdate, store: CredentialStore = Depends(get_store)):
    username = clean_username(username)
    logger.info(f"Update requested for user: {username}")
    user = store.update(username, country=req.country, phone=req.phone, secret=req.password)
    return {"success": True, "message": "Your data is updated successfully", "user": user}


@router.delete("/users/{username}", response_model=schemas.MessageResponse, responses=ERROR_RESPONSES, tags=["Users"])
def delete_user(username: str, store: CredentialStore = Depends(get_store)):
    username = clean_username(username)
    logger.info(f"Deletion requested for user: {username}")
    if not store.delete(username):
        raise NotFoundError(username)
    return {"success": True, "message": "Your Account is deleted successfully"}


def create_app(database_url: Optional[str] = None) -> FastAPI:
    """Construye la aplicación con su propia conexión a base de datos."""
    database = Database(database_url or DATABASE_URL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        database.init()
        yield
        database.dispose()

    app = FastAPI(
        title="Account Service",
        description="Handles user registration, login and account management.",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.database = database

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ALLOWED_ORIGINS,
        allow_credentials="*" not in CORS_ALLOWED_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(metrics_middleware)

    app.add_exception_handler(AccountServiceError, account_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    @app.get("/metrics", tags=["Monitoring"])
    def metrics():
        """Exposes application metrics for Prometheus."""
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(router)
    return app


app = create_app()
