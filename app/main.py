import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import ALLOWED_ORIGINS, AUTH_DISABLED, DATA_STORE_BACKEND
from .database import Base, engine
from .domain.bookings import router as bookings_router
from .domain.errors import CompensationFailed, DomainError
from .domain.invoices import router as invoices_router
from .domain.payments import router as payments_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    logger.info(f"Data store backend: {DATA_STORE_BACKEND}")

    if DATA_STORE_BACKEND == "sql":
        try:
            Base.metadata.create_all(bind=engine, checkfirst=True)
            logger.info("Database tables created successfully")
        except Exception as e:
            # Ignore "already exists" errors from race conditions between workers
            error_msg = str(e)
            if "already exists" in error_msg or "duplicate key" in error_msg:
                logger.info("Database tables already exist (created by another worker)")
            else:
                logger.error(f"Failed to create database tables: {e}")

    if AUTH_DISABLED:
        logger.warning("Authentication DISABLED - only use in development!")

    yield
    logger.info("Application shutting down...")


app = FastAPI(title="Vendor Operations API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(DomainError)
async def domain_exception_handler(request: Request, exc: DomainError):
    """Render a domain failure with its code and the state it left behind"""
    if isinstance(exc, CompensationFailed):
        logger.critical(f"{request.method} {request.url.path} - {exc} {exc.context}")
    elif exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} - {exc}")
    else:
        logger.warning(f"{request.method} {request.url.path} - {exc}")

    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code.value, "context": exc.context},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=422, content={"detail": jsonable_errors(exc)})


def jsonable_errors(exc: RequestValidationError) -> list:
    # ctx may hold the raised exception object
    return [{k: v for k, v in error.items() if k != "ctx"} for error in exc.errors()]


@app.middleware("http")
async def log_requests(request: Request, call_next):
    try:
        response = await call_next(request)
        return response
    except Exception as e:
        logger.error(f"{request.method} {request.url.path} - Error: {str(e)}")
        raise


# CORS Configuration
logger.info(f"CORS allowed origins: {ALLOWED_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
)

# Routes
app.include_router(bookings_router)
app.include_router(invoices_router)
app.include_router(payments_router)


@app.get("/health")
def health():
    return {"status": "healthy"}
