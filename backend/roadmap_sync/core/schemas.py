"""
Ultra Roadmap Sync - Pydantic Schemas
=====================================

Roadmap document content as received from the roadmap generator, and the
request/response contract of the API.
"""

import re
from typing import Any, Optional
from uuid import UUID

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

MONTHS_PER_PLAN = 4
WEEKS_PER_MONTH = 4
TOTAL_WEEKS = MONTHS_PER_PLAN * WEEKS_PER_MONTH

MONTH_KEY = re.compile(r"^month_(\d+)$")
WEEK_KEY = re.compile(r"^week_(\d+)$")


# ==========================================================================
# Base Schemas
# ==========================================================================

class BaseSchema(BaseModel):
    """Base schema with common configuration."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class ContentSchema(BaseSchema):
    """Roadmap documents carry many keys we do not store; ignore them."""

    model_config = ConfigDict(
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="ignore",
    )


def _text(value: Any) -> Any:
    """Accept numbers where free text is expected; null becomes empty."""
    if value is None:
        return ""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


def _optional_text(value: Any) -> Any:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


# ==========================================================================
# Roadmap Content
# ==========================================================================

class Financials(ContentSchema):
    """Locale-formatted financial snapshot (``"1 234,56 €"``, ``"12%"``)."""

    ca: Optional[str] = None
    treasury: Optional[str] = None
    collaborators: Optional[str] = None
    margin: Optional[str] = None

    coerce_text = field_validator("*", mode="before")(_optional_text)


class RoadmapHeader(ContentSchema):
    email: Optional[str] = None
    company_name: Optional[str] = None
    address: Optional[str] = None
    start_date: Optional[str] = None
    coach_email: Optional[str] = None
    coach_name: Optional[str] = None
    financials: Optional[Financials] = None

    coerce_text = field_validator(
        "email", "company_name", "address", "start_date", "coach_email", "coach_name",
        mode="before",
    )(_optional_text)


class PillarSection(ContentSchema):
    current_situation: str = ""
    actions: str = ""
    expert_suggestion: str = ""

    coerce_text = field_validator("*", mode="before")(_text)


class Vision(ContentSchema):
    """The three fixed pillar slots."""

    operations: Optional[PillarSection] = Field(
        default=None,
        validation_alias=AliasChoices("structure", "operations"),
    )
    acquisition: Optional[PillarSection] = None
    vision_pilotage: Optional[PillarSection] = None


class StrategicGoals(ContentSchema):
    goals_4_months: str = ""
    goals_12_months: str = ""

    coerce_text = field_validator("*", mode="before")(_text)


def _check_slots(data: Any, pattern: re.Pattern, limit: int, label: str) -> Any:
    if not isinstance(data, dict):
        return data
    for key in data:
        match = pattern.match(str(key))
        if match and not 1 <= int(match.group(1)) <= limit:
            raise ValueError(f"{label} must have exactly {limit} slots, got '{key}'")
    return data


class MonthPlan(ContentSchema):
    """Four weeks of newline-delimited bullet actions; an explicit null is an empty week."""

    week_1: str
    week_2: str
    week_3: str
    week_4: str

    coerce_text = field_validator("week_1", "week_2", "week_3", "week_4", mode="before")(_text)

    @model_validator(mode="before")
    @classmethod
    def check_cardinality(cls, data: Any) -> Any:
        return _check_slots(data, WEEK_KEY, WEEKS_PER_MONTH, "month")

    @property
    def weeks(self) -> tuple[str, str, str, str]:
        return (self.week_1, self.week_2, self.week_3, self.week_4)


class MonthlyPlan(ContentSchema):
    """Exactly four months of four weeks."""

    month_1: MonthPlan
    month_2: MonthPlan
    month_3: MonthPlan
    month_4: MonthPlan

    @model_validator(mode="before")
    @classmethod
    def check_cardinality(cls, data: Any) -> Any:
        return _check_slots(data, MONTH_KEY, MONTHS_PER_PLAN, "monthly_plan")

    @property
    def months(self) -> tuple[MonthPlan, MonthPlan, MonthPlan, MonthPlan]:
        return (self.month_1, self.month_2, self.month_3, self.month_4)

    def week_actions(self) -> tuple[str, ...]:
        """The 16 weekly action blocks, week 1 first."""
        return tuple(week for month in self.months for week in month.weeks)


class RoadmapContent(ContentSchema):
    header: RoadmapHeader = Field(default_factory=RoadmapHeader)
    vision: Optional[Vision] = None
    strategic_goals: Optional[StrategicGoals] = None
    monthly_plan: Optional[MonthlyPlan] = None


# ==========================================================================
# Requests
# ==========================================================================

class BlockUserRequest(BaseSchema):
    email: Optional[str] = None
    blocked: Optional[bool] = None


# ==========================================================================
# Responses
# ==========================================================================

class SuccessResponse(BaseSchema):
    success: bool = True
    message: str


class AddRoadmapResponse(SuccessResponse):
    coach_client_id: Optional[UUID] = None
    client_profile_id: UUID
    client_id: UUID
    coach_id: Optional[UUID] = None
    client_email: str
    client_name: str
    client_password: str
    coach_email: Optional[str] = None
    coach_name: Optional[str] = None


class UpdateRoadmapResponse(SuccessResponse):
    coach_client_id: UUID
    client_profile_id: UUID
    client_id: UUID
    coach_id: Optional[UUID] = None


class NewCycleResponse(SuccessResponse):
    coach_client_id: UUID
    client_profile_id: UUID
    client_id: UUID
    coach_id: UUID
    client_email: str
    client_name: str
    cycle_number: int


class BlockUserResponse(SuccessResponse):
    user_id: UUID
    email: str
    blocked: bool


class HealthResponse(BaseSchema):
    success: bool = True
    status: str
    name: str
    version: str
    environment: str


class ErrorResponse(BaseSchema):
    success: bool = False
    error: str
    details: Optional[Any] = None
