"""Domain models for asynchronous provisioning jobs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

ServiceStatus = Literal["Provisioned", "Failed"]
CallbackStatus = Literal["completed", "partial", "failed"]


@dataclass(frozen=True)
class ProvisioningJob:
  """An accepted provisioning request; lives only as long as its background task."""

  job_id: str
  requested_record_ids: tuple[str, ...]
  callback_address: str | None = None


@dataclass(frozen=True)
class ServiceResult:
  """Outcome of provisioning exactly one opportunity line item."""

  service_id: str
  opportunity_id: str
  line_item_id: str
  product_reference: str
  status: ServiceStatus
  message: str

  @property
  def succeeded(self) -> bool:
    return self.status == "Provisioned"

  def to_payload(self) -> dict[str, str]:
    return {
      "serviceId": self.service_id,
      "opportunityId": self.opportunity_id,
      "lineItemId": self.line_item_id,
      "productReference": self.product_reference,
      "status": self.status,
      "message": self.message,
    }


@dataclass(frozen=True)
class JobSummary:
  """Counts derived from a job's service results."""

  total: int
  succeeded: int
  failed: int

  @classmethod
  def from_results(cls, results: list[ServiceResult] | tuple[ServiceResult, ...]) -> JobSummary:
    succeeded = sum(1 for result in results if result.succeeded)
    return cls(total=len(results), succeeded=succeeded, failed=len(results) - succeeded)

  @property
  def status(self) -> CallbackStatus:
    if self.failed == 0:
      return "completed"
    if self.succeeded == 0:
      return "failed"
    return "partial"

  def to_payload(self) -> dict[str, int]:
    return {"total": self.total, "succeeded": self.succeeded, "failed": self.failed}


@dataclass(frozen=True)
class CallbackPayload:
  """Final job result delivered to the caller's callback address."""

  job_id: str
  requested_record_ids: tuple[str, ...]
  services: tuple[ServiceResult, ...]
  summary: JobSummary
  status: CallbackStatus
  errors: tuple[str, ...] = field(default_factory=tuple)

  @classmethod
  def build(cls, job: ProvisioningJob, services: list[ServiceResult]) -> CallbackPayload:
    """Assemble the payload, deriving summary, status and errors from the results."""
    summary = JobSummary.from_results(services)
    errors = tuple(f"{result.line_item_id}: {result.message}" for result in services if not result.succeeded)
    return cls(job_id=job.job_id, requested_record_ids=job.requested_record_ids, services=tuple(services), summary=summary, status=summary.status, errors=errors)

  def to_payload(self) -> dict[str, Any]:
    return {
      "jobId": self.job_id,
      "requestedRecordIds": list(self.requested_record_ids),
      "services": [service.to_payload() for service in self.services],
      "summary": self.summary.to_payload(),
      "status": self.status,
      "errors": list(self.errors),
    }
