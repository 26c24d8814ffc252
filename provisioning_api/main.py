from __future__ import annotations

import uvicorn
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from provisioning_api import __version__
from provisioning_api.api.routes import provisioning
from provisioning_api.config import get_settings
from provisioning_api.core.exceptions import global_exception_handler, http_exception_handler, request_validation_exception_handler
from provisioning_api.core.lifespan import lifespan
from provisioning_api.core.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware

settings = get_settings()

app = FastAPI(
  title="Provisioning API",
  description="API for provisioning external services asynchronously from Salesforce via AppLink.",
  version=__version__,
  servers=[{"url": f"http://localhost:{settings.port}", "description": "Local development server"}],
  openapi_tags=[{"name": "Provisioning", "description": "Provisioning endpoints"}],
  lifespan=lifespan,
  docs_url="/docs",
  redoc_url=None,
)

# Add exception handlers
app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)

# Add middleware
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(SecurityHeadersMiddleware)


@app.get("/health", include_in_schema=False)
async def health_check() -> dict[str, str]:
  """Return a simple health status."""
  return {"status": "ok"}


app.include_router(provisioning.router, prefix="/api", tags=["Provisioning"])


def run() -> None:
  """Serve the app on all interfaces (Heroku routes traffic to $PORT)."""
  uvicorn.run("provisioning_api.main:app", host="0.0.0.0", port=settings.port, log_level=settings.log_level)


if __name__ == "__main__":
  run()
