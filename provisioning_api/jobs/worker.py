"""Background execution of provisioning jobs."""

from __future__ import annotations

import logging

from provisioning_api.config import Settings
from provisioning_api.jobs.models import CallbackPayload, ProvisioningJob, ServiceResult
from provisioning_api.services.callbacks import deliver_callback
from provisioning_api.services.parameters import ProvisioningParameters, load_provisioning_parameters
from provisioning_api.services.provisioner import Provisioner, ProvisioningRequest, build_provisioner, failed_result
from provisioning_api.services.records import OpportunityRecord, fetch_opportunities, sanitize_record_ids
from provisioning_api.services.salesforce import SalesforceClient

logger = logging.getLogger(__name__)


async def _provision_line_items(job: ProvisioningJob, opportunities: list[OpportunityRecord], parameters: ProvisioningParameters, provisioner: Provisioner) -> list[ServiceResult]:
  """Provision every line item sequentially, in data-source order."""
  services: list[ServiceResult] = []
  sequence = 0
  for opportunity in opportunities:
    for line_item in opportunity.line_items:
      sequence += 1
      request = ProvisioningRequest(job_id=job.job_id, opportunity_id=opportunity.id, line_item=line_item, sequence=sequence, parameters=parameters)
      try:
        result = await provisioner.provision(request)
      except Exception as exc:  # noqa: BLE001
        # One failing item must not abort the rest of the job.
        logger.warning("Provisioning failed job=%s opportunity=%s line_item=%s: %s", job.job_id, opportunity.id, line_item.id, exc)
        result = failed_result(request, exc)

      logger.info("Provisioned service job=%s opportunity=%s line_item=%s product=%s service_id=%s status=%s", job.job_id, opportunity.id, line_item.id, result.product_reference, result.service_id, result.status)
      services.append(result)
  return services


async def _execute(job: ProvisioningJob, client: SalesforceClient, provisioner: Provisioner) -> CallbackPayload | None:
  if not job.requested_record_ids:
    logger.warning("No record ids provided for job %s", job.job_id)
    return None

  logger.info("Processing provisioning job %s for %d record ids", job.job_id, len(job.requested_record_ids))
  data_api = client.org.data_api
  parameters = await load_provisioning_parameters(data_api, job_id=job.job_id)

  record_ids = sanitize_record_ids(job.requested_record_ids)
  if not record_ids:
    logger.warning("No well-formed record ids left for job %s after sanitization", job.job_id)
    return None

  opportunities = await fetch_opportunities(data_api, record_ids)
  logger.info("Processing %d opportunities for job %s", len(opportunities), job.job_id)

  services = await _provision_line_items(job, opportunities, parameters, provisioner)
  if not services:
    logger.warning("No services were generated for provisioning job %s", job.job_id)
    return None

  payload = CallbackPayload.build(job, services)
  logger.info("Provisioning job %s finished status=%s total=%d succeeded=%d failed=%d", job.job_id, payload.status, payload.summary.total, payload.summary.succeeded, payload.summary.failed)

  if not job.callback_address:
    logger.warning("No callback address provided for job %s, skipping callback execution", job.job_id)
    return payload

  await deliver_callback(client.org, job.callback_address, payload)
  return payload


async def run_provisioning_job(job: ProvisioningJob, client: SalesforceClient, settings: Settings, *, provisioner: Provisioner | None = None) -> CallbackPayload | None:
  """Run a job to completion; every failure is logged with the job id and absorbed."""
  try:
    return await _execute(job, client, provisioner or build_provisioner(settings))
  except Exception:
    logger.error("Error executing provisioning job %s", job.job_id, exc_info=True)
    return None
