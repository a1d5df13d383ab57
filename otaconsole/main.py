import logging
from contextlib import asynccontextmanager
from datetime import datetime

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.middleware.sessions import SessionMiddleware

from .config import settings
from .errors import AuthenticationRequired
from .notifications import Notifier
from .routers import auth_router, devices_router, firmware_router
from .session import NotAuthorized, clear_session

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("otaconsole")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: one pooled client for every call to the remote service
    app.state.http = httpx.AsyncClient(
        base_url=settings.api_base_url,
        timeout=settings.http_timeout_seconds,
    )
    logger.info("Remote API at %s", settings.api_base_url)
    yield
    # Shutdown: release pooled connections
    await app.state.http.aclose()


app = FastAPI(
    title="OTA Console",
    description="Admin console for devices and firmware managed by a remote OTA service",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(SessionMiddleware, secret_key=settings.session_secret, same_site="lax")

# Include routers
app.include_router(auth_router)
app.include_router(devices_router)
app.include_router(firmware_router)


def _wants_json(request: Request) -> bool:
    return "application/json" in request.headers.get("accept", "") or \
        request.headers.get("content-type", "").startswith("application/json")


@app.exception_handler(AuthenticationRequired)
async def authentication_required(request: Request, exc: AuthenticationRequired):
    """Drop the session and send the user back to the login page."""
    logger.info("Auth required for %s: %s", request.url.path, exc)
    clear_session(request.session)
    if _wants_json(request):
        return JSONResponse({"detail": str(exc)}, status_code=401)
    notifier = Notifier()
    notifier.warning(str(exc))
    notifier.flush_to(request.session)
    return RedirectResponse("/login", status_code=303)


@app.exception_handler(NotAuthorized)
async def not_authorized(request: Request, exc: NotAuthorized):
    if _wants_json(request):
        return JSONResponse({"detail": "Not allowed for this role"}, status_code=403)
    return RedirectResponse("/devices", status_code=303)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "timestamp": datetime.utcnow().isoformat()}


def run():
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    uvicorn.run("otaconsole.main:app", host="0.0.0.0", port=8000)
