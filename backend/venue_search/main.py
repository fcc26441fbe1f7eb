import logging

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.docs import get_redoc_html, get_swagger_ui_html
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse

from backend.venue_search import config
from backend.venue_search.api import admin_endpoints, search_endpoints
from backend.venue_search.auth.dependencies import require_admin_user
from backend.venue_search.auth.rate_limiting import limiter, rate_limit_handler
from backend.venue_search.core.exceptions import QueryError
from backend.venue_search.dependencies import initialize_on_startup, shutdown_on_exit
from backend.venue_search.utils.observability import configure_logging, configure_metrics
from slowapi.errors import RateLimitExceeded  # type: ignore[import]
from slowapi.middleware import SlowAPIMiddleware  # type: ignore[import]

configure_logging()
logger = logging.getLogger(__name__)

# Docs are served below behind admin auth.
app = FastAPI(title="Venue Search API", docs_url=None, redoc_url=None, openapi_url=None)
configure_metrics(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
app.add_middleware(SlowAPIMiddleware)


@app.exception_handler(QueryError)
async def query_error_handler(request: Request, exc: QueryError) -> JSONResponse:
    logger.error("Search backend failure on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": "Search backend unavailable"})


app.include_router(search_endpoints.router)
app.include_router(admin_endpoints.router)


@app.get("/")
async def read_root():
    return {"message": "Venue Search API"}


@app.get("/docs", include_in_schema=False)
async def get_swagger_documentation(_=Depends(require_admin_user)):
    """Swagger UI documentation - Admin access only."""
    return get_swagger_ui_html(openapi_url="/openapi.json", title="API Documentation")


@app.get("/redoc", include_in_schema=False)
async def get_redoc_documentation(_=Depends(require_admin_user)):
    """ReDoc documentation - Admin access only."""
    return get_redoc_html(openapi_url="/openapi.json", title="API Documentation")


@app.get("/openapi.json", include_in_schema=False)
async def get_openapi_schema(_=Depends(require_admin_user)):
    """OpenAPI schema - Admin access only."""
    return JSONResponse(content=get_openapi(
        title=app.title,
        version=app.version,
        openapi_version=app.openapi_version,
        description=app.description,
        routes=app.routes,
    ))


@app.on_event("startup")
async def startup_event():
    logger.info("Application starting up, checking dependencies...")
    await initialize_on_startup()
    logger.info("Dependencies initialized successfully")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Application shutting down, releasing clients...")
    await shutdown_on_exit()
