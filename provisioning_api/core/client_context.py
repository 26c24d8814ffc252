"""Decode the AppLink `x-client-context` header into a Salesforce client."""

from __future__ import annotations

import base64
import binascii
import json
import logging
from typing import Annotated

from fastapi import Depends, Header
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from provisioning_api.config import Settings, get_settings
from provisioning_api.services.salesforce import ClientContext, SalesforceClient, UserContext, build_salesforce_client

logger = logging.getLogger(__name__)

CLIENT_CONTEXT_HEADER = "x-client-context"


class ClientContextError(ValueError):
  """Raised when the client context header cannot be decoded."""


class _UserContextPayload(BaseModel):
  user_id: str | None = Field(default=None, alias="userId")
  username: str | None = None
  model_config = ConfigDict(extra="ignore")


class _ClientContextPayload(BaseModel):
  request_id: str | None = Field(default=None, alias="requestId")
  access_token: str = Field(min_length=1, alias="accessToken")
  api_version: str = Field(min_length=1, alias="apiVersion")
  namespace: str | None = None
  org_id: str | None = Field(default=None, alias="orgId")
  org_domain_url: str = Field(min_length=1, alias="orgDomainUrl")
  user_context: _UserContextPayload = Field(default_factory=_UserContextPayload, alias="userContext")
  model_config = ConfigDict(extra="ignore")


def parse_client_context(raw_header: str) -> ClientContext:
  """Decode a base64 encoded JSON client context."""
  try:
    decoded = base64.b64decode(raw_header.strip(), validate=True)
    data = json.loads(decoded)
  except (binascii.Error, ValueError) as exc:
    raise ClientContextError("Client context header is not base64 encoded JSON.") from exc

  if not isinstance(data, dict):
    raise ClientContextError("Client context header must encode a JSON object.")

  try:
    payload = _ClientContextPayload.model_validate(data)
  except ValidationError as exc:
    missing = sorted({str(error["loc"][0]) for error in exc.errors() if error.get("loc")})
    raise ClientContextError(f"Client context header is missing or has invalid fields: {', '.join(missing)}") from exc

  # The REST path expects the bare version number (v62.0 -> 62.0).
  api_version = payload.api_version.removeprefix("v")
  user = UserContext(user_id=payload.user_context.user_id, username=payload.user_context.username)
  return ClientContext(
    request_id=payload.request_id,
    access_token=payload.access_token,
    api_version=api_version,
    namespace=payload.namespace,
    org_id=payload.org_id,
    org_domain_url=payload.org_domain_url,
    user=user,
  )


async def get_salesforce_client(
  settings: Annotated[Settings, Depends(get_settings)],
  x_client_context: Annotated[str | None, Header(alias=CLIENT_CONTEXT_HEADER)] = None,
) -> SalesforceClient | None:
  """Return the request's Salesforce client, or None when no usable context was forwarded."""
  if not x_client_context:
    return None

  try:
    context = parse_client_context(x_client_context)
  except ClientContextError as exc:
    logger.warning("Rejected client context header: %s", exc)
    return None

  logger.debug("Client context decoded org_id=%s user=%s", context.org_id, context.user.username)
  return build_salesforce_client(context, timeout_seconds=settings.http_timeout_seconds)
