"""Best-effort delivery of job results to the caller's callback address."""

from __future__ import annotations

import json
import logging
from typing import Protocol

from provisioning_api.jobs.models import CallbackPayload

logger = logging.getLogger(__name__)


class CallbackSink(Protocol):
  """Outbound authenticated call capability (an `Org`)."""

  async def request(self, url: str, *, method: str = "GET", headers: dict[str, str] | None = None, body: str | bytes | None = None) -> object:
    ...


async def deliver_callback(sink: CallbackSink, callback_address: str, payload: CallbackPayload) -> bool:
  """POST the payload once; failures are logged and reported as False, never raised or retried."""
  body = json.dumps(payload.to_payload(), ensure_ascii=False)
  try:
    await sink.request(callback_address, method="POST", headers={"Content-Type": "application/json"}, body=body)
  except Exception as exc:  # noqa: BLE001
    logger.error("Failed to execute provisioning callback for job %s: %s", payload.job_id, exc, exc_info=True)
    return False

  logger.info("Provisioning callback executed successfully for job %s. Services returned: %d", payload.job_id, len(payload.services))
  return True
