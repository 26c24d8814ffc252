import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from provisioning_api.config import get_settings
from provisioning_api.core.logging import _initialize_logging


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Set up logging once uvicorn has started."""
  settings = get_settings()
  _initialize_logging(settings)
  logger = logging.getLogger("provisioning_api.core.lifespan")
  logger.info("Startup complete env=%s port=%s provision_delay=%ss", settings.environment, settings.port, settings.provision_delay_seconds)
  logger.info("Swagger UI available at /docs")

  yield

  logger.info("Shutdown complete.")
