"""Per line item provisioning actions."""

from __future__ import annotations

import asyncio
import datetime
from dataclasses import dataclass
from typing import Protocol

from provisioning_api.config import Settings
from provisioning_api.jobs.models import ServiceResult
from provisioning_api.services.parameters import ProvisioningParameters
from provisioning_api.services.records import LineItemRecord
from provisioning_api.utils.ids import build_service_id

_TIMESTAMP_FORMAT = "%b %d, %Y, %I:%M:%S %p"


@dataclass(frozen=True)
class ProvisioningRequest:
  """Everything a provisioner needs to provision one line item."""

  job_id: str
  opportunity_id: str
  line_item: LineItemRecord
  sequence: int
  parameters: ProvisioningParameters

  @property
  def service_id(self) -> str:
    return build_service_id(self.job_id, self.sequence)


class Provisioner(Protocol):
  """Provisioning contract; failures may be raised or returned as a Failed result."""

  async def provision(self, request: ProvisioningRequest) -> ServiceResult:
    """Provision one line item and describe the outcome."""
    ...


class MockProvisioner:
  """Simulates a slow external provisioning call."""

  def __init__(self, *, delay_seconds: float = 10.0) -> None:
    self._delay_seconds = delay_seconds

  async def provision(self, request: ProvisioningRequest) -> ServiceResult:
    if self._delay_seconds > 0:
      await asyncio.sleep(self._delay_seconds)

    timestamp = datetime.datetime.now(datetime.timezone.utc).strftime(_TIMESTAMP_FORMAT)
    parameters = request.parameters
    label = request.line_item.product_label
    return ServiceResult(
      service_id=request.service_id,
      opportunity_id=request.opportunity_id,
      line_item_id=request.line_item.id,
      product_reference=label,
      status="Provisioned",
      message=f"Provisioned service for product {label} at {timestamp} UTC ({parameters.tier}, {parameters.region}, Compliance: {parameters.compliance})",
    )


def failed_result(request: ProvisioningRequest, error: BaseException) -> ServiceResult:
  """Describe a provisioning exception as a Failed result for the same line item."""
  detail = str(error) or type(error).__name__
  return ServiceResult(
    service_id=request.service_id,
    opportunity_id=request.opportunity_id,
    line_item_id=request.line_item.id,
    product_reference=request.line_item.product_label,
    status="Failed",
    message=f"Provisioning failed for product {request.line_item.product_label}: {detail}",
  )


def build_provisioner(settings: Settings) -> Provisioner:
  """Return the provisioner configured for this process."""
  return MockProvisioner(delay_seconds=settings.provision_delay_seconds)
