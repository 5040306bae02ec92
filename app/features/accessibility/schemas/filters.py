"""
Issue Filters

Filter object sent by the accessibility checker UI:

    {"ruleTypes": [...], "artifactTypes": [...], "workflowStates": [...],
     "fromDate": "<ISO8601>", "toDate": "<ISO8601>"}

Every key is optional. Empty lists and the "all" option mean no restriction;
unparseable dates are dropped rather than rejected.
"""
import re
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.platform.utils.clock import to_naive_utc

ALL_OPTION = "all"

# Calendar date first; bare numbers are not read as epoch timestamps
ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}(?:[T ].*)?$")


def _option_value(option: Any) -> Optional[str]:
    # The filter panel may send {"label": ..., "value": ...} options
    if isinstance(option, dict):
        option = option.get("value")
    if option is None:
        return None
    return str(option).strip()


def parse_iso_datetime(value: Any) -> Optional[datetime]:
    """Strict ISO 8601 parse to naive UTC; None for anything else."""
    if not isinstance(value, str):
        return None
    value = value.strip()
    if not ISO_DATE_RE.match(value):
        return None
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    try:
        return to_naive_utc(datetime.fromisoformat(value))
    except ValueError:
        return None


class IssueFilters(BaseModel):
    rule_types: Optional[List[str]] = Field(default=None, alias="ruleTypes")
    artifact_types: Optional[List[str]] = Field(default=None, alias="artifactTypes")
    workflow_states: Optional[List[str]] = Field(default=None, alias="workflowStates")
    from_date: Optional[datetime] = Field(default=None, alias="fromDate")
    to_date: Optional[datetime] = Field(default=None, alias="toDate")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("rule_types", "artifact_types", "workflow_states", mode="before")
    @classmethod
    def normalize_options(cls, value):
        if value is None:
            return None
        if isinstance(value, (str, dict)):
            value = [value]
        values = [_option_value(option) for option in value]
        values = [v for v in values if v]
        if not values or ALL_OPTION in (v.lower() for v in values):
            return None
        return values

    @field_validator("from_date", "to_date", mode="before")
    @classmethod
    def lenient_date(cls, value):
        if value in (None, ""):
            return None
        option = _option_value(value) if isinstance(value, dict) else value
        if isinstance(option, datetime):
            return to_naive_utc(option)
        return parse_iso_datetime(option)

    @property
    def is_empty(self) -> bool:
        return not any(
            (self.rule_types, self.artifact_types, self.workflow_states, self.from_date, self.to_date)
        )

    @classmethod
    def coerce(cls, filters) -> Optional["IssueFilters"]:
        """Accept None, a dict in wire shape, or an IssueFilters."""
        if filters is None or isinstance(filters, cls):
            return filters
        return cls.model_validate(filters)
