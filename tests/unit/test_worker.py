from __future__ import annotations

import pytest

from provisioning_api.jobs.models import ProvisioningJob, ServiceResult
from provisioning_api.jobs.worker import run_provisioning_job
from provisioning_api.services.provisioner import MockProvisioner, ProvisioningRequest
from provisioning_api.services.salesforce import QueryResult, SalesforceApiError
from tests.conftest import CALLBACK_URL, OPPORTUNITY_ID, FakeDataApi, make_fake_client, make_line_item, make_opportunity


class FlakyProvisioner(MockProvisioner):
  """Raises for the listed line items and provisions the rest."""

  def __init__(self, failing_line_items: set[str]) -> None:
    super().__init__(delay_seconds=0)
    self.failing_line_items = failing_line_items
    self.seen: list[str] = []

  async def provision(self, request: ProvisioningRequest) -> ServiceResult:
    self.seen.append(request.line_item.id)
    if request.line_item.id in self.failing_line_items:
      raise RuntimeError("upstream quota exceeded")
    return await super().provision(request)


def _job(record_ids: tuple[str, ...] = (OPPORTUNITY_ID,), callback_address: str | None = CALLBACK_URL) -> ProvisioningJob:
  return ProvisioningJob(job_id="job-1", requested_record_ids=record_ids, callback_address=callback_address)


@pytest.mark.anyio
async def test_two_line_items_produce_one_completed_callback(settings, two_item_data_api):
  client = make_fake_client(two_item_data_api)

  payload = await run_provisioning_job(_job(), client, settings)

  assert payload is not None
  assert [service.service_id for service in payload.services] == ["svc-job-1-1", "svc-job-1-2"]
  assert [service.product_reference for service in payload.services] == ["Fiber 1G", "Static IP"]
  assert all(service.opportunity_id == OPPORTUNITY_ID for service in payload.services)
  assert "(Standard, US, Compliance: General)" in payload.services[0].message
  bodies = client.org.callback_bodies()
  assert len(bodies) == 1
  assert bodies[0]["summary"] == {"total": 2, "succeeded": 2, "failed": 0}
  assert bodies[0]["status"] == "completed"


@pytest.mark.anyio
async def test_items_are_processed_in_data_source_order_across_pages(settings):
  pages = [
    QueryResult(records=[make_opportunity("006Hs00001AbCdEIAV", [make_line_item("00kHs00000AAAA1IAA"), make_line_item("00kHs00000AAAA2IAA")])], done=False, nextRecordsUrl="/services/data/v62.0/query/01g-1"),
    QueryResult(records=[make_opportunity("006Hs00001ZzZzZIAV", [make_line_item("00kHs00000BBBB1IAA")])], done=True),
  ]
  client = make_fake_client(FakeDataApi(pages))

  payload = await run_provisioning_job(_job(("006Hs00001AbCdEIAV", "006Hs00001ZzZzZIAV")), client, settings)

  assert [service.line_item_id for service in payload.services] == ["00kHs00000AAAA1IAA", "00kHs00000AAAA2IAA", "00kHs00000BBBB1IAA"]
  assert [service.service_id for service in payload.services] == ["svc-job-1-1", "svc-job-1-2", "svc-job-1-3"]
  assert payload.summary.total == 3


@pytest.mark.anyio
async def test_truncated_line_item_subquery_is_followed_to_the_end(settings):
  child_url = "/services/data/v62.0/query/01gSUB-1"
  opportunity = make_opportunity(OPPORTUNITY_ID, [make_line_item("00kHs00000AAAA1IAA")], next_records_url=child_url)
  data_api = FakeDataApi([QueryResult(records=[opportunity], done=True)], line_item_pages={child_url: QueryResult(records=[make_line_item("00kHs00000AAAA2IAA", product_name="Static IP")], done=True)})
  client = make_fake_client(data_api)

  payload = await run_provisioning_job(_job(), client, settings)

  assert data_api.continuations == [child_url]
  assert [service.line_item_id for service in payload.services] == ["00kHs00000AAAA1IAA", "00kHs00000AAAA2IAA"]
  assert client.org.callback_bodies()[0]["summary"] == {"total": 2, "succeeded": 2, "failed": 0}


@pytest.mark.anyio
async def test_malformed_line_item_does_not_drop_its_siblings(settings):
  broken = make_line_item("00kHs00000AAAA2IAA")
  del broken["Id"]
  client = make_fake_client(FakeDataApi([QueryResult(records=[make_opportunity(OPPORTUNITY_ID, [make_line_item("00kHs00000AAAA1IAA"), broken])], done=True)]))

  payload = await run_provisioning_job(_job(), client, settings)

  assert payload is not None
  assert [service.line_item_id for service in payload.services] == ["00kHs00000AAAA1IAA"]
  assert len(client.org.callback_bodies()) == 1

@pytest.mark.anyio
async def test_failed_item_is_reported_and_the_rest_continue(settings, two_item_data_api):
  client = make_fake_client(two_item_data_api)
  provisioner = FlakyProvisioner({"00kHs00000AAAA1IAA"})

  payload = await run_provisioning_job(_job(), client, settings, provisioner=provisioner)

  assert provisioner.seen == ["00kHs00000AAAA1IAA", "00kHs00000AAAA2IAA"]
  assert [service.status for service in payload.services] == ["Failed", "Provisioned"]
  body = client.org.callback_bodies()[0]
  assert body["status"] == "partial"
  assert body["summary"] == {"total": 2, "succeeded": 1, "failed": 1}
  assert body["errors"] == ["00kHs00000AAAA1IAA: Provisioning failed for product Fiber 1G: upstream quota exceeded"]


@pytest.mark.anyio
async def test_every_item_failing_marks_the_job_failed(settings, two_item_data_api):
  client = make_fake_client(two_item_data_api)

  payload = await run_provisioning_job(_job(), client, settings, provisioner=FlakyProvisioner({"00kHs00000AAAA1IAA", "00kHs00000AAAA2IAA"}))

  assert payload.status == "failed"
  assert len(client.org.callback_bodies()[0]["errors"]) == 2


@pytest.mark.anyio
async def test_no_children_means_no_callback(settings):
  pages = [QueryResult(records=[make_opportunity("006Hs00001AbCdEIAV", None), make_opportunity("006Hs00001ZzZzZIAV", [])], done=True)]
  client = make_fake_client(FakeDataApi(pages))

  payload = await run_provisioning_job(_job(("006Hs00001AbCdEIAV", "006Hs00001ZzZzZIAV")), client, settings)

  assert payload is None
  assert client.org.requests == []


@pytest.mark.anyio
async def test_empty_record_ids_do_nothing(settings, two_item_data_api):
  client = make_fake_client(two_item_data_api)

  assert await run_provisioning_job(_job(()), client, settings) is None
  assert two_item_data_api.queries == []
  assert client.org.requests == []


@pytest.mark.anyio
async def test_malformed_ids_never_reach_the_query(settings, two_item_data_api):
  client = make_fake_client(two_item_data_api)

  await run_provisioning_job(_job((OPPORTUNITY_ID, "x' OR Name != '", "short")), client, settings)

  opportunity_query = two_item_data_api.queries[-1]
  assert "WHERE Id IN ('006Hs00001AbCdEIAV')" in opportunity_query
  assert "OR Name" not in opportunity_query
  services = client.org.callback_bodies()[0]["services"]
  assert all(service["opportunityId"] == OPPORTUNITY_ID for service in services)


@pytest.mark.anyio
async def test_only_malformed_ids_skip_the_query(settings, two_item_data_api):
  client = make_fake_client(two_item_data_api)

  assert await run_provisioning_job(_job(("not-an-id",)), client, settings) is None
  assert not any("FROM Opportunity" in soql for soql in two_item_data_api.queries)
  assert client.org.requests == []


@pytest.mark.anyio
async def test_parameter_fetch_failure_uses_defaults(settings, two_item_data_api):
  two_item_data_api.parameter_error = SalesforceApiError("INVALID_TYPE", status_code=400)
  client = make_fake_client(two_item_data_api)

  payload = await run_provisioning_job(_job(), client, settings)

  assert payload.summary.succeeded == 2
  assert "(Standard, US, Compliance: General)" in payload.services[0].message


@pytest.mark.anyio
async def test_configured_parameters_flow_into_messages(settings, two_item_data_api):
  two_item_data_api.parameter_records = [{"Name__c": "DefaultTier", "Value__c": "Gold"}, {"Name__c": "Region", "Value__c": "APAC"}, {"Name__c": "Compliance", "Value__c": "SOC2"}]
  client = make_fake_client(two_item_data_api)

  payload = await run_provisioning_job(_job(), client, settings)

  assert "(Gold, APAC, Compliance: SOC2)" in payload.services[0].message


@pytest.mark.anyio
async def test_without_callback_address_nothing_is_sent(settings, two_item_data_api):
  client = make_fake_client(two_item_data_api)

  payload = await run_provisioning_job(_job(callback_address=None), client, settings)

  assert payload.summary.total == 2
  assert client.org.requests == []


@pytest.mark.anyio
async def test_callback_failure_is_absorbed(settings, two_item_data_api):
  client = make_fake_client(two_item_data_api, request_error=SalesforceApiError("503", status_code=503))

  payload = await run_provisioning_job(_job(), client, settings)

  assert payload is not None
  assert len(client.org.requests) == 1


@pytest.mark.anyio
async def test_query_failure_is_contained(settings, two_item_data_api):
  two_item_data_api.query_error = SalesforceApiError("INVALID_SESSION_ID", status_code=401)
  client = make_fake_client(two_item_data_api)

  assert await run_provisioning_job(_job(), client, settings) is None
  assert client.org.requests == []
