import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import get_settings, load_settings
from .core.exceptions import ApplicationError
from .database import close_pool, init_db, init_pool
from .onboarding.middleware import RouteGuardMiddleware
from .onboarding.routes import onboarding_router
from .onboarding.services.session_cookie import clear_session_cookie

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    settings = load_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    print(f"[NPT Onboarding] Starting server on port {settings.port}")
    print(f"[NPT Onboarding] {len(settings.admin_emails)} admin email(s) allow-listed")
    if not settings.mailersend_api_key:
        print("[NPT Onboarding] MAILERSEND_API_KEY not set; onboarding emails will fail")

    await init_pool(settings.database_url)
    await init_db()

    yield

    await close_pool()
    print("[NPT Onboarding] Server shutdown complete")


app = FastAPI(
    title="NPT Onboarding API",
    description="Employee onboarding invites, sessions and HR review",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(RouteGuardMiddleware)

# CORS - allow frontend dev server
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",
        "http://localhost:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ApplicationError)
async def application_error_handler(request: Request, exc: ApplicationError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    response = JSONResponse(status_code=exc.status_code, content=exc.to_dict())
    if exc.clear_cookie:
        response.headers.append("set-cookie", clear_session_cookie())
    return response


app.include_router(onboarding_router)


@app.get("/health")
async def health_check():
    settings = get_settings()
    return {"status": "healthy", "service": "npt-onboarding", "auth_disabled": settings.disable_auth}
