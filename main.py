from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cache_api.api.v1.router import router as v1_router
from cache_api.core.config import settings
from cache_api.core.exceptions.handlers import register_exception_handlers
from cache_api.core.lifespan import lifespan
from cache_api.core.logging import setup_early_logging
from cache_api.core.middlewares import LogRequestsMiddleware
from cache_api.core.openapi import custom_openapi
from cache_api.core.rate_limiting import setup_rate_limiting

# Setup early logging for startup errors
setup_early_logging()

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.PROJECT_VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    openapi_tags=[
        {"name": "contract", "description": "Cached smart contract reads"},
        {"name": "health", "description": "Liveness probes"},
    ],
)

# Customize OpenAPI schema
app.openapi = lambda: custom_openapi(app)

# Setup rate limiting if enabled
setup_rate_limiting(app)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "X-Api-Key"],
    max_age=86400,
)

# Add logging middleware
app.add_middleware(LogRequestsMiddleware)

# Register all exception handlers
register_exception_handlers(app)

# Include API routers
app.include_router(v1_router)
