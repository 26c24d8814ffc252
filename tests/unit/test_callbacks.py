from __future__ import annotations

import json

import pytest

from provisioning_api.jobs.models import CallbackPayload, ProvisioningJob, ServiceResult
from provisioning_api.services.callbacks import deliver_callback
from provisioning_api.services.salesforce import SalesforceApiError
from tests.conftest import CALLBACK_URL, FakeDataApi, FakeOrg


def _payload() -> CallbackPayload:
  job = ProvisioningJob(job_id="job-1", requested_record_ids=("006Hs00001AbCdEIAV",), callback_address=CALLBACK_URL)
  services = [ServiceResult(service_id="svc-job-1-1", opportunity_id="006Hs00001AbCdEIAV", line_item_id="00kHs00000AAAA1IAA", product_reference="Fiber 1G", status="Provisioned", message="ok")]
  return CallbackPayload.build(job, services)


@pytest.mark.anyio
async def test_callback_is_a_single_json_post():
  org = FakeOrg(FakeDataApi())

  delivered = await deliver_callback(org, CALLBACK_URL, _payload())

  assert delivered is True
  assert len(org.requests) == 1
  request = org.requests[0]
  assert request["method"] == "POST"
  assert request["headers"] == {"Content-Type": "application/json"}
  assert json.loads(request["body"])["services"][0]["serviceId"] == "svc-job-1-1"


@pytest.mark.anyio
async def test_delivery_failure_is_reported_not_raised_or_retried():
  org = FakeOrg(FakeDataApi(), request_error=SalesforceApiError("POST returned 503", status_code=503))

  delivered = await deliver_callback(org, CALLBACK_URL, _payload())

  assert delivered is False
  assert len(org.requests) == 1
