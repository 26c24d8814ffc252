from __future__ import annotations

from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, StrictStr


class ProvisionServicesRequest(BaseModel):
  """Request to provision services for multiple opportunities."""

  requested_record_ids: list[StrictStr] = Field(
    min_length=1,
    validation_alias=AliasChoices("requestedRecordIds", "opportunityIds"),
    serialization_alias="requestedRecordIds",
    description="Opportunity ids to provision services for.",
    examples=[["006Hs00001AbCdEIAV"]],
  )
  callback_address: StrictStr | None = Field(
    default=None,
    min_length=1,
    validation_alias=AliasChoices("callbackAddress", "callbackUrl"),
    serialization_alias="callbackAddress",
    description="Callback URL for the asynchronous result.",
  )
  model_config = ConfigDict(extra="forbid")


class ProvisionServicesResponse(BaseModel):
  """Response for service provisioning; returns the job id of the asynchronous operation."""

  job_id: str = Field(alias="jobId", description="Unique identifier for tracking the provisioning job.")
  model_config = ConfigDict(populate_by_name=True)


class ServiceResultModel(BaseModel):
  service_id: str = Field(alias="serviceId")
  opportunity_id: str = Field(alias="opportunityId")
  line_item_id: str = Field(alias="lineItemId")
  product_reference: str = Field(alias="productReference")
  status: Literal["Provisioned", "Failed"]
  message: str


class JobSummaryModel(BaseModel):
  total: int
  succeeded: int
  failed: int


class ProvisioningCallbackModel(BaseModel):
  """Body POSTed to the callback address when a job finishes."""

  job_id: str = Field(alias="jobId")
  requested_record_ids: list[str] = Field(alias="requestedRecordIds")
  services: list[ServiceResultModel]
  summary: JobSummaryModel
  status: Literal["completed", "partial", "failed"]
  errors: list[str]
