"""Shared fixtures: fake Salesforce collaborators and an in-process HTTP client."""

from __future__ import annotations

import base64
import json
import os
from dataclasses import replace
from typing import Any

# Keep the mock provisioner instant for every test that builds settings from the environment.
os.environ.setdefault("PROVISIONING_PROVISION_DELAY_SECONDS", "0")

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from provisioning_api.config import Settings, get_settings  # noqa: E402
from provisioning_api.core.client_context import get_salesforce_client  # noqa: E402
from provisioning_api.main import app  # noqa: E402
from provisioning_api.services.salesforce import ClientContext, QueryResult, SalesforceClient, UserContext  # noqa: E402

OPPORTUNITY_ID = "006Hs00001AbCdEIAV"
CALLBACK_URL = "https://example.test/cb"


def make_line_item(line_item_id: str, *, product_name: str | None = "Fiber 1G", product_id: str | None = "01tHs000001XyZaIAC") -> dict[str, Any]:
  return {
    "attributes": {"type": "OpportunityLineItem"},
    "Id": line_item_id,
    "Product2Id": product_id,
    "Product2": {"attributes": {"type": "Product2"}, "Name": product_name} if product_name else None,
    "Quantity": 1.0,
    "UnitPrice": 99.5,
    "PricebookEntryId": "01uHs000002AbCdIAK",
  }


def make_opportunity(opportunity_id: str, line_items: list[dict[str, Any]] | None, *, next_records_url: str | None = None) -> dict[str, Any]:
  if line_items is None:
    subquery = None
  elif next_records_url:
    subquery = {"totalSize": len(line_items) + 1, "done": False, "nextRecordsUrl": next_records_url, "records": line_items}
  else:
    subquery = {"totalSize": len(line_items), "done": True, "records": line_items}
  return {
    "attributes": {"type": "Opportunity"},
    "Id": opportunity_id,
    "Name": "Acme - Connectivity",
    "AccountId": "001Hs00001AbCdEIAV",
    "CloseDate": "2026-12-31",
    "StageName": "Closed Won",
    "Amount": 199.0,
    "OpportunityLineItems": subquery,
  }


class FakeDataApi:
  """Serves canned parameter records and opportunity pages, recording every query."""

  def __init__(self, opportunity_pages: list[QueryResult] | None = None, *, parameter_records: list[dict[str, Any]] | None = None, parameter_error: Exception | None = None, query_error: Exception | None = None, line_item_pages: dict[str, QueryResult] | None = None) -> None:
    self.opportunity_pages = opportunity_pages or [QueryResult(records=[], done=True)]
    self.line_item_pages = line_item_pages or {}
    self.parameter_records = parameter_records or []
    self.parameter_error = parameter_error
    self.query_error = query_error
    self.queries: list[str] = []
    self.continuations: list[str] = []

  async def query(self, soql: str) -> QueryResult:
    self.queries.append(soql)
    if "ProvisioningParameter__mdt" in soql:
      if self.parameter_error is not None:
        raise self.parameter_error
      return QueryResult(records=self.parameter_records, done=True)
    if self.query_error is not None:
      raise self.query_error
    return self.opportunity_pages[0]

  async def query_more(self, result: QueryResult) -> QueryResult:
    self.continuations.append(result.next_records_url or "")
    if result.next_records_url in self.line_item_pages:
      return self.line_item_pages[result.next_records_url]
    index = self.opportunity_pages.index(result)
    return self.opportunity_pages[index + 1]


class FakeOrg:
  """Records outbound requests instead of sending them."""

  def __init__(self, data_api: FakeDataApi, *, request_error: Exception | None = None) -> None:
    self.data_api = data_api
    self.request_error = request_error
    self.requests: list[dict[str, Any]] = []

  async def request(self, url: str, *, method: str = "GET", headers: dict[str, str] | None = None, body: str | bytes | None = None) -> object:
    self.requests.append({"url": url, "method": method, "headers": headers or {}, "body": body})
    if self.request_error is not None:
      raise self.request_error
    return object()

  def callback_bodies(self) -> list[dict[str, Any]]:
    return [json.loads(entry["body"]) for entry in self.requests]


def make_client_context() -> ClientContext:
  return ClientContext(
    request_id="00DHs000000AbCd-req-1",
    access_token="test-access-token",
    api_version="62.0",
    namespace=None,
    org_id="00DHs000000AbCdMAK",
    org_domain_url="https://acme.my.salesforce.com",
    user=UserContext(user_id="005Hs000001AbCdIAK", username="admin@acme.test"),
  )


def make_fake_client(data_api: FakeDataApi, **org_kwargs: Any) -> SalesforceClient:
  return SalesforceClient(context=make_client_context(), org=FakeOrg(data_api, **org_kwargs))  # type: ignore[arg-type]


def encode_client_context(payload: dict[str, Any]) -> str:
  return base64.b64encode(json.dumps(payload).encode("utf-8")).decode("ascii")


@pytest.fixture
def anyio_backend() -> str:
  return "asyncio"


@pytest.fixture
def settings() -> Settings:
  return replace(get_settings(), provision_delay_seconds=0)


@pytest.fixture
def two_item_data_api() -> FakeDataApi:
  opportunity = make_opportunity(OPPORTUNITY_ID, [make_line_item("00kHs00000AAAA1IAA"), make_line_item("00kHs00000AAAA2IAA", product_name="Static IP")])
  return FakeDataApi([QueryResult(records=[opportunity], done=True, totalSize=1)])


@pytest.fixture
async def async_client(settings):
  app.dependency_overrides[get_settings] = lambda: settings
  async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
    yield client
  app.dependency_overrides.clear()


@pytest.fixture
def override_salesforce_client():
  """Install a fake Salesforce client for the duration of a test."""

  def _install(client: SalesforceClient | None) -> None:
    app.dependency_overrides[get_salesforce_client] = lambda: client

  yield _install
  app.dependency_overrides.pop(get_salesforce_client, None)
