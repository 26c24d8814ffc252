"""httpx backed Salesforce org client built from an AppLink client context."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol
from urllib.parse import urljoin

import httpx
from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class SalesforceApiError(Exception):
  """Raised when a Salesforce REST call fails or returns a non-success status."""

  def __init__(self, message: str, *, status_code: int | None = None) -> None:
    super().__init__(message)
    self.status_code = status_code


@dataclass(frozen=True)
class UserContext:
  """The Salesforce user on whose behalf AppLink invoked the service."""

  user_id: str | None
  username: str | None


@dataclass(frozen=True)
class ClientContext:
  """Decoded AppLink `x-client-context` payload."""

  request_id: str | None
  access_token: str
  api_version: str
  namespace: str | None
  org_id: str | None
  org_domain_url: str
  user: UserContext


class QueryResult(BaseModel):
  """One page of a SOQL query response."""

  records: list[dict[str, Any]] = Field(default_factory=list)
  done: bool = True
  total_size: int | None = Field(default=None, alias="totalSize")
  next_records_url: str | None = Field(default=None, alias="nextRecordsUrl")
  model_config = ConfigDict(populate_by_name=True, extra="ignore")


class DataApi(Protocol):
  """Query capability exposed by an authenticated org."""

  async def query(self, soql: str) -> QueryResult:
    """Run a SOQL query and return its first page."""
    ...

  async def query_more(self, result: QueryResult) -> QueryResult:
    """Fetch the page following `result`."""
    ...


def _error_message(response: httpx.Response) -> str:
  """Extract the Salesforce error message list from a failed response."""
  try:
    payload = response.json()
  except ValueError:
    return response.text[:500]

  # Salesforce REST errors are a list of {"message", "errorCode"} objects.
  if isinstance(payload, list):
    messages = [f"{item.get('errorCode', 'ERROR')}: {item.get('message', '')}" for item in payload if isinstance(item, dict)]
    if messages:
      return "; ".join(messages)
  return str(payload)[:500]


class Org:
  """Authenticated access to one Salesforce org."""

  def __init__(self, context: ClientContext, *, timeout_seconds: float = 30.0, transport: httpx.AsyncBaseTransport | None = None) -> None:
    self.context = context
    self._timeout_seconds = timeout_seconds
    self._transport = transport
    self.data_api: DataApi = HttpDataApi(self)

  @property
  def id(self) -> str | None:
    return self.context.org_id

  @property
  def domain_url(self) -> str:
    return self.context.org_domain_url.rstrip("/")

  def _auth_headers(self) -> dict[str, str]:
    return {"Authorization": f"Bearer {self.context.access_token}"}

  def _build_client(self) -> httpx.AsyncClient:
    # Never trust environment proxy variables for org callouts.
    return httpx.AsyncClient(timeout=self._timeout_seconds, transport=self._transport, trust_env=False)

  def resolve_url(self, url: str) -> str:
    """Resolve org-relative paths (e.g. `/services/apexrest/...`) against the org domain."""
    return urljoin(f"{self.domain_url}/", url)

  def is_org_url(self, url: str) -> bool:
    """True when the url has the same scheme, host and port as the org domain."""
    target, org = httpx.URL(url), httpx.URL(self.domain_url)
    return (target.scheme, target.host, target.port) == (org.scheme, org.host, org.port)

  async def request(self, url: str, *, method: str = "GET", headers: dict[str, str] | None = None, body: str | bytes | None = None) -> httpx.Response:
    """Send a request and raise `SalesforceApiError` on failure.

    The bearer token is only attached for urls on the org domain; other hosts get the request without it.
    """
    target = self.resolve_url(url)
    merged_headers = dict(headers or {})
    if self.is_org_url(target):
      merged_headers.update(self._auth_headers())
    else:
      logger.info("Sending %s to %s without org credentials (not on %s)", method, target, self.domain_url)
    try:
      async with self._build_client() as client:
        response = await client.request(method, target, headers=merged_headers, content=body)
    except httpx.RequestError as exc:
      raise SalesforceApiError(f"{method} {target} failed: {exc}") from exc

    if response.is_error:
      raise SalesforceApiError(f"{method} {target} returned {response.status_code}: {_error_message(response)}", status_code=response.status_code)
    return response


class HttpDataApi:
  """SOQL query capability backed by the Salesforce REST query resource."""

  def __init__(self, org: Org) -> None:
    self._org = org

  @property
  def _query_path(self) -> str:
    return f"/services/data/v{self._org.context.api_version}/query"

  async def query(self, soql: str) -> QueryResult:
    response = await self._org.request(f"{self._query_path}?{httpx.QueryParams({'q': soql})}", headers={"Accept": "application/json"})
    return QueryResult.model_validate(response.json())

  async def query_more(self, result: QueryResult) -> QueryResult:
    if not result.next_records_url:
      raise SalesforceApiError("Query result has no nextRecordsUrl to continue from.")
    response = await self._org.request(result.next_records_url, headers={"Accept": "application/json"})
    return QueryResult.model_validate(response.json())


@dataclass(frozen=True)
class SalesforceClient:
  """Per-request Salesforce handle: the decoded context plus its org."""

  context: ClientContext
  org: Org


def build_salesforce_client(context: ClientContext, *, timeout_seconds: float = 30.0) -> SalesforceClient:
  """Build the per-request client for an already decoded context."""
  return SalesforceClient(context=context, org=Org(context, timeout_seconds=timeout_seconds))
