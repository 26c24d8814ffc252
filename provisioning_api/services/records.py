"""Opportunity lookup: id sanitization, SOQL construction, pagination and typed records."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from provisioning_api.services.salesforce import DataApi, QueryResult

logger = logging.getLogger(__name__)

# Salesforce ids are 15 (case-sensitive) or 18 (case-insensitive) alphanumeric characters.
_RECORD_ID_RE = re.compile(r"[a-zA-Z0-9]{15,18}")
DEFAULT_PRODUCT_LABEL = "Service"


def sanitize_record_id(record_id: Any) -> str | None:
  """Return the trimmed id when it is a well-formed record id, otherwise None."""
  if not isinstance(record_id, str):
    return None
  trimmed = record_id.strip()
  if _RECORD_ID_RE.fullmatch(trimmed):
    return trimmed
  return None


def sanitize_record_ids(record_ids: Iterable[Any]) -> list[str]:
  """Keep well-formed ids in their original order, dropping duplicates."""
  sanitized: list[str] = []
  for record_id in record_ids:
    cleaned = sanitize_record_id(record_id)
    if cleaned is None:
      logger.warning("Dropping malformed record id %r", record_id)
      continue
    if cleaned not in sanitized:
      sanitized.append(cleaned)
  return sanitized


def build_opportunity_query(record_ids: list[str]) -> str:
  """Build the Opportunity + line item query; ids must already be sanitized."""
  if not record_ids:
    raise ValueError("At least one sanitized record id is required.")
  # Only ids that passed sanitize_record_id reach this point, so quoting is safe.
  id_list = ",".join(f"'{record_id}'" for record_id in record_ids)
  return (
    "SELECT Id, Name, AccountId, CloseDate, StageName, Amount, "
    "(SELECT Id, Product2Id, Product2.Name, Quantity, UnitPrice, PricebookEntryId FROM OpportunityLineItems) "
    f"FROM Opportunity WHERE Id IN ({id_list})"
  )


async def query_all(data_api: DataApi, soql: str) -> list[dict[str, Any]]:
  """Run a query and follow continuation pages until the data source reports done."""
  try:
    result = await data_api.query(soql)
    records = list(result.records)
    while not result.done and result.next_records_url:
      result = await data_api.query_more(result)
      records.extend(result.records)
  except Exception:
    logger.error("Error during query_all execution soql=%s", soql, exc_info=True)
    raise
  return records


class ProductReference(BaseModel):
  name: str | None = Field(default=None, alias="Name")
  model_config = ConfigDict(extra="ignore", populate_by_name=True)


class LineItemRecord(BaseModel):
  """An OpportunityLineItem: the unit of provisioning work."""

  id: str = Field(alias="Id")
  product_id: str | None = Field(default=None, alias="Product2Id")
  product: ProductReference | None = Field(default=None, alias="Product2")
  quantity: float | None = Field(default=None, alias="Quantity")
  unit_price: float | None = Field(default=None, alias="UnitPrice")
  price_list_entry_id: str | None = Field(default=None, alias="PricebookEntryId")
  model_config = ConfigDict(extra="ignore", populate_by_name=True)

  @property
  def product_label(self) -> str:
    if self.product and self.product.name:
      return self.product.name
    return self.product_id or DEFAULT_PRODUCT_LABEL


class OpportunityRecord(BaseModel):
  """An Opportunity with its nested line items."""

  id: str = Field(alias="Id")
  name: str | None = Field(default=None, alias="Name")
  account_id: str | None = Field(default=None, alias="AccountId")
  close_date: str | None = Field(default=None, alias="CloseDate")
  stage_name: str | None = Field(default=None, alias="StageName")
  amount: float | None = Field(default=None, alias="Amount")
  line_items: list[LineItemRecord] = Field(default_factory=list)
  # Set while the line item subquery still has pages left to fetch.
  line_items_next_url: str | None = Field(default=None, exclude=True)
  model_config = ConfigDict(extra="ignore", populate_by_name=True)

  @model_validator(mode="before")
  @classmethod
  def unwrap_line_items(cls, values: Any) -> Any:
    # Subquery results arrive as a nested query page (or null when there are no children).
    if not isinstance(values, dict) or "line_items" in values:
      return values

    data = dict(values)
    subquery = data.pop("OpportunityLineItems", None)
    if not isinstance(subquery, dict):
      data["line_items"] = []
      return data

    data["line_items"] = parse_line_items(subquery.get("records") or [], opportunity_id=data.get("Id"))
    if subquery.get("done") is False:
      next_url = subquery.get("nextRecordsUrl")
      if next_url:
        data["line_items_next_url"] = next_url
      else:
        logger.warning("Line item subquery for opportunity %s is not done but has no continuation url", data.get("Id"))
    return data


def parse_line_items(records: list[Any], *, opportunity_id: Any = None) -> list[LineItemRecord]:
  """Validate children one by one; a malformed child is skipped without touching its siblings."""
  line_items: list[LineItemRecord] = []
  for raw in records:
    try:
      line_items.append(LineItemRecord.model_validate(raw))
    except ValidationError as exc:
      logger.warning("Skipping malformed line item id=%s opportunity=%s errors=%s", raw.get("Id") if isinstance(raw, dict) else None, opportunity_id, exc.error_count())
  return line_items


def parse_opportunities(records: list[dict[str, Any]]) -> list[OpportunityRecord]:
  """Deserialize raw query records, skipping any that do not match the expected shape."""
  opportunities: list[OpportunityRecord] = []
  for raw in records:
    try:
      opportunities.append(OpportunityRecord.model_validate(raw))
    except ValidationError as exc:
      logger.warning("Skipping malformed opportunity record id=%s errors=%s", raw.get("Id") if isinstance(raw, dict) else None, exc.error_count())
  return opportunities


async def fetch_remaining_line_items(data_api: DataApi, opportunity: OpportunityRecord) -> None:
  """Follow a truncated line item subquery until the data source reports done."""
  next_url = opportunity.line_items_next_url
  while next_url:
    logger.info("Fetching more line items for opportunity %s from %s", opportunity.id, next_url)
    page = await data_api.query_more(QueryResult(records=[], done=False, next_records_url=next_url))
    opportunity.line_items.extend(parse_line_items(page.records, opportunity_id=opportunity.id))
    next_url = None if page.done else page.next_records_url
  opportunity.line_items_next_url = None


async def fetch_opportunities(data_api: DataApi, record_ids: list[str]) -> list[OpportunityRecord]:
  """Fetch every opportunity (with all of its line items) for already sanitized ids."""
  records = await query_all(data_api, build_opportunity_query(record_ids))
  opportunities = parse_opportunities(records)
  for opportunity in opportunities:
    await fetch_remaining_line_items(data_api, opportunity)
  return opportunities
