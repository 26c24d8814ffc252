import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status

from provisioning_api.api.models import ProvisioningCallbackModel, ProvisionServicesRequest, ProvisionServicesResponse
from provisioning_api.config import Settings, get_settings
from provisioning_api.core.client_context import get_salesforce_client
from provisioning_api.jobs.models import ProvisioningJob
from provisioning_api.jobs.worker import run_provisioning_job
from provisioning_api.services.salesforce import SalesforceClient
from provisioning_api.utils.ids import generate_job_id

router = APIRouter()
logger = logging.getLogger("provisioning_api.api.routes.provisioning")

_CONTEXT_REQUIRED_MSG = "Salesforce context required. Ensure x-client-context header is present."

callback_router = APIRouter()


@callback_router.post("{$request.body#/callbackAddress}", name="provisioningStatus", operation_id="provisioningStatusCallback", responses={200: {"description": "Provisioning callback received successfully"}})
def provisioning_status_callback(body: ProvisioningCallbackModel) -> None:
  """Callback with provisioning status per requested service."""


def _sfdc_extension(settings: Settings) -> dict:
  """AppLink reads the connected app and permission set to authorize callers."""
  return {"x-sfdc": {"heroku": {"authorization": {"connectedApp": settings.connected_app, "permissionSet": settings.permission_set}}}}


@router.post(
  "/provisionServices",
  status_code=status.HTTP_201_CREATED,
  response_model=ProvisionServicesResponse,
  summary="Submit Provisioning Job",
  description="Provision services for a list of Opportunity IDs based on their line items.",
  operation_id="provisionServices",
  responses={201: {"description": "Provisioning request accepted"}, 401: {"description": "Salesforce client context missing or invalid"}},
  callbacks=callback_router.routes,
  openapi_extra=_sfdc_extension(get_settings()),
)
async def provision_services(  # noqa: B008
  request: ProvisionServicesRequest,
  background_tasks: BackgroundTasks,
  settings: Settings = Depends(get_settings),  # noqa: B008
  client: SalesforceClient | None = Depends(get_salesforce_client),  # noqa: B008
) -> ProvisionServicesResponse:
  """Accept a provisioning job and run it after the response is sent."""
  if client is None or client.org.data_api is None:
    logger.error("Salesforce context not available in request")
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=_CONTEXT_REQUIRED_MSG)

  job = ProvisioningJob(job_id=generate_job_id(), requested_record_ids=tuple(request.requested_record_ids), callback_address=request.callback_address)
  # The worker has its own error boundary, so nothing it raises reaches this response.
  background_tasks.add_task(run_provisioning_job, job, client, settings)
  logger.info("Accepted provisioning job %s for %d record ids", job.job_id, len(job.requested_record_ids))
  return ProvisionServicesResponse(job_id=job.job_id)
