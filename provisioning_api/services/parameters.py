"""Provisioning tuning parameters stored as custom metadata in the org."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from provisioning_api.services.records import query_all
from provisioning_api.services.salesforce import DataApi

logger = logging.getLogger(__name__)

PARAMETERS_QUERY = "SELECT Name__c, Value__c FROM ProvisioningParameter__mdt"


@dataclass(frozen=True)
class ProvisioningParameters:
  """Named tuning values applied to every provisioned service."""

  tier: str = "Standard"
  region: str = "US"
  compliance: str = "General"

  @classmethod
  def from_mapping(cls, mapping: dict[str, str]) -> ProvisioningParameters:
    """Apply defaults for any absent or blank value."""
    defaults = cls()
    return cls(
      tier=mapping.get("DefaultTier") or defaults.tier,
      region=mapping.get("Region") or defaults.region,
      compliance=mapping.get("Compliance") or defaults.compliance,
    )


def _record_fields(record: dict[str, Any]) -> dict[str, Any]:
  # Some data sources wrap values in a "fields" object; REST returns them flat.
  fields = record.get("fields")
  return fields if isinstance(fields, dict) else record


def parameters_from_records(records: list[dict[str, Any]]) -> dict[str, str]:
  mapping: dict[str, str] = {}
  for record in records:
    fields = _record_fields(record)
    name = fields.get("Name__c")
    if not name:
      continue
    value = fields.get("Value__c")
    mapping[str(name)] = "" if value is None else str(value)
  return mapping


async def load_provisioning_parameters(data_api: DataApi, *, job_id: str) -> ProvisioningParameters:
  """Fetch the parameter mapping, degrading to defaults when the fetch fails."""
  try:
    records = await query_all(data_api, PARAMETERS_QUERY)
  except Exception as exc:  # noqa: BLE001
    logger.warning("Failed to load provisioning parameters for job %s; using defaults: %s", job_id, exc)
    return ProvisioningParameters()

  mapping = parameters_from_records(records)
  logger.debug("Loaded %d provisioning parameters for job %s", len(mapping), job_id)
  return ProvisioningParameters.from_mapping(mapping)
