"""Identifier utilities."""

from __future__ import annotations

import uuid


def generate_job_id() -> str:
  """Return a new random (128-bit) job identifier."""
  return str(uuid.uuid4())


def build_service_id(job_id: str, sequence: int) -> str:
  """Return the job-scoped service identifier for the given sequence number."""
  return f"svc-{job_id}-{sequence}"
