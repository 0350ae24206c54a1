from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from slowapi.errors import RateLimitExceeded
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from role_permission_manager.core import config
from role_permission_manager.core.database.engine import init_db
from role_permission_manager.features.permissions.dependencies import limiter
from role_permission_manager.features.permissions.exceptions import RolePermissionError
from role_permission_manager.features.permissions.routes import router as role_permission_router
from role_permission_manager.utils import get_logger


log = get_logger(__name__)
log.info("Initializing server")


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Initialize database on application startup."""
    log.info("Initializing database...")
    await init_db()
    log.info("Database initialized successfully")
    yield


app = FastAPI(
    title="Role Permission Manager",
    description="Hierarchical role and scoped permission management",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if config.ENABLE_DOCS else None,
    redoc_url="/redoc" if config.ENABLE_DOCS else None,
    openapi_url="/openapi.json" if config.ENABLE_DOCS else None
)
app.state.limiter = limiter

if config.ENABLE_DOCS:
    log.warning("Docs enabled")
if config.ALLOW_ORIGIN:
    log.warning("Setting allow origin to %s", config.ALLOW_ORIGIN)
    origins = [config.ALLOW_ORIGIN]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_request: Request, exc: RequestValidationError):
    errors = dict()
    for error in exc.errors():
        if "loc" not in error or "msg" not in error:
            continue
        key = error["loc"][-1]
        if key == "__root__":
            key = "root"
        errors[key] = error["msg"]
    log.info("Request validation error %s", errors)
    return JSONResponse(status_code=400, content=jsonable_encoder(errors))


@app.exception_handler(RateLimitExceeded)
def rate_limit_exceeded_handler(_request: Request, _exc: RateLimitExceeded) -> Response:
    return JSONResponse({"error": "You are going too fast"}, status_code=429)


@app.exception_handler(RolePermissionError)
async def role_permission_error_handler(_request: Request, exc: RolePermissionError):
    if exc.status_code >= 500:
        log.error("Role permission failure: %s", exc.message)
    else:
        log.info("Role permission error %s: %s", type(exc).__name__, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.get("/")
async def root():
    """Root endpoint - API health check."""
    return {
        "message": "Role Permission Manager API",
        "version": "0.1.0",
        "status": "online",
        "docs": "/docs" if config.ENABLE_DOCS else None,
        "authentication": {
            "info": "Protected endpoints expect the authenticated user id on request.state.user_id",
            "protected_endpoints": [f"{config.ROUTE_PREFIX}/*"],
            "public_endpoints": ["/", "/health"]
        },
        "features": {
            "roles": "Roles with parent roles; permissions are inherited from every ancestor",
            "permissions": "Scoped permissions with wildcard matching ('posts.*')",
            "users": "Role assignments and direct permission grants",
            "cache": "Process-level cache of resolved roles and permissions"
        }
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


# Role and permission routes
app.include_router(role_permission_router, prefix=config.ROUTE_PREFIX, tags=["role-permissions"])
