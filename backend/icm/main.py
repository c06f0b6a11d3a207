# backend/icm/main.py
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .core.config import Settings, settings as default_settings
from .core.errors import ConflictError, ICMError, NotFound, UpstreamUnavailable, ValidationError
from .core.logging import configure_logging, get_logger
from .repositories.factory import build_stores
from .services.kpi_catalog import KpiCatalog
from .services.schemes import SchemeService

# ---- Routers ----
from .api import kpi_fields, schemes

log = get_logger()

# ---------------------------
# CORS (frontend dev servers)
# ---------------------------
DEFAULT_CORS_ORIGINS = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:8080",
    "http://127.0.0.1:8080",
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]


def _resolve_allowed_origins(raw) -> list:
    # CORS_ALLOW_ORIGINS may be a comma separated string or a list
    if not raw:
        return DEFAULT_CORS_ORIGINS
    if isinstance(raw, (list, tuple)):
        vals = [str(x).strip().rstrip("/") for x in raw if str(x).strip()]
    else:
        vals = [s.strip().rstrip("/") for s in str(raw).split(",") if s.strip()]
    # a lone "*" cannot be combined with credentials; use the dev list
    if len(vals) == 1 and vals[0] == "*":
        return DEFAULT_CORS_ORIGINS
    return vals or DEFAULT_CORS_ORIGINS


# ---------------------------
# Domain errors -> HTTP
# ---------------------------
ERROR_STATUS = {
    NotFound: 404,
    ValidationError: 422,
    ConflictError: 409,
    UpstreamUnavailable: 503,
}


async def _icm_error_handler(request: Request, exc: ICMError) -> JSONResponse:
    code = next((c for cls, c in ERROR_STATUS.items() if isinstance(exc, cls)), 400)
    if code >= 500:
        log.warning("%s %s -> %s: %s", request.method, request.url.path, code, exc.message)
    return JSONResponse(status_code=code, content=exc.to_dict())


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """App factory; serve with `uvicorn --factory icm.main:create_app`."""
    settings = settings or default_settings
    configure_logging(settings.LOG_LEVEL)

    app = FastAPI(title="Incentive Compensation API")

    stores = build_stores(settings)
    app.state.settings = settings
    app.state.stores = stores
    app.state.scheme_service = SchemeService(
        stores.schemes,
        stores.kpi_fields,
        validate_kpi_fields=settings.VALIDATE_KPI_FIELDS,
        retry_limit=settings.VERSION_RETRY_LIMIT,
    )
    app.state.kpi_catalog = KpiCatalog(stores.kpi_fields, stores.schemes)

    # CORSMiddleware before the routers
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_resolve_allowed_origins(settings.CORS_ALLOW_ORIGINS),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ICMError, _icm_error_handler)

    # ---------------------------
    # Health
    # ---------------------------
    @app.get("/health", tags=["system"])
    def health():
        return {"status": "ok", "storage": stores.schemes.kind, "fallback": stores.fallback}

    # ---------------------------
    # Routers
    # ---------------------------
    app.include_router(schemes.router)     # INCENTIVE SCHEMES (versioned)
    app.include_router(kpi_fields.router)  # KPI FIELD CATALOG

    return app

