from fastapi.openapi.utils import get_openapi
from cache_api.core.config import settings


def custom_openapi(app):
    if app.openapi_schema:
        return app.openapi_schema
    openapi_schema = get_openapi(
        title=settings.APP_NAME,
        version=settings.PROJECT_VERSION,
        description=(
            "Read-through cache for read-only smart contract calls. "
            "GET serves cached results while fresh, POST refreshes from chain."
        ),
        routes=app.routes,
        tags=app.openapi_tags,
    )
    openapi_schema["info"]["x-chain-id"] = settings.CHAIN_ID
    app.openapi_schema = openapi_schema
    return app.openapi_schema
