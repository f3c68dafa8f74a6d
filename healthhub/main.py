from opentelemetry.instrumentation import auto_instrumentation

auto_instrumentation.initialize()

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi_errors_rfc9457 import RFC9457Config, setup_rfc9457_handlers

from healthhub.api import api
from healthhub.core.audit import AuditMiddleware
from healthhub.core.cache import close_redis, init_redis
from healthhub.core.config import settings
from healthhub.core.database import create_db_and_tables
from healthhub.core.exceptions import request_validation_handler
from healthhub.infrastructure.external import (
    ClinicalTrialsClient,
    NPIRegistryClient,
    OpenFDAClient,
)
from healthhub.infrastructure.fhir.client import close_fhir_client, initialize_fhir_client
from healthhub.infrastructure.llm import close_openai_client

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifecycle:
    - Initialize the local FHIR store client (httpx async).
    - Initialize the external API adapters.
    - Connect the optional Redis cache.
    - Create the database tables.
    - Close every client on shutdown.
    """
    logger.info("=== Application Startup ===")

    # 1. Local FHIR store client (migration destination)
    app.state.fhir_client = await initialize_fhir_client(
        base_url=settings.FHIR_SERVER_URL,
        timeout=settings.FHIR_TIMEOUT,
    )
    logger.info(f"FHIR client initialized: {settings.FHIR_SERVER_URL}")

    # 2. External API adapters, each with its own TTL cache
    app.state.clinical_trials_client = ClinicalTrialsClient()
    app.state.openfda_client = OpenFDAClient()
    app.state.npi_client = NPIRegistryClient()
    logger.info("External API clients initialized")

    # 3. Optional shared cache
    if settings.CACHE_ENABLED:
        try:
            await init_redis()
        except Exception as e:
            logger.warning(f"Redis unavailable, continuing with local caches only: {e}")
            await close_redis()

    # 4. Database tables
    await create_db_and_tables()
    logger.info("Database tables created")

    logger.info("=== Application Startup Complete ===")
    try:
        yield
    finally:
        logger.info("=== Application Shutdown ===")
        await app.state.clinical_trials_client.close()
        await app.state.openfda_client.close()
        await app.state.npi_client.close()
        await close_fhir_client()
        await close_openai_client()
        await close_redis()
        logger.info("=== Application Shutdown Complete ===")


logger.info("Application module loaded")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    description=settings.DESCRIPTION,
    lifespan=lifespan,
    openapi_url=f"{settings.API_PREFIX}/openapi.json",
    docs_url="/docs",
    redoc_url="/redoc",
)

# RFC 9457 Problem Details exception handlers
config_rfc9457 = RFC9457Config(
    base_url="about:blank",  # Auto-detect request domain
    include_trace_id=True,  # Include OpenTelemetry trace_id
    expose_internal_errors=settings.DEBUG,  # Show detailed errors in dev
    include_error_pages=False,
)
setup_rfc9457_handlers(app, config=config_rfc9457)

# Malformed requests answer 400 rather than 422
app.add_exception_handler(RequestValidationError, request_validation_handler)


# PHI access log
app.add_middleware(AuditMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[str(origin) for origin in settings.ALLOWED_ORIGINS],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Trusted hosts middleware
if settings.ENVIRONMENT not in ("development", "test"):
    app.add_middleware(
        TrustedHostMiddleware,
        allowed_hosts=settings.TRUSTED_HOSTS,
    )

app.include_router(api.router, prefix=settings.API_PREFIX)
