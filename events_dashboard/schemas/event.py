import json
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Mapping, Optional, Tuple

from pydantic import AnyUrl, BaseModel, ConfigDict, Field, StrictInt, TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from pydantic import ValidationInfo, field_validator, model_validator
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError

from ..core.errors import ValidationError
from ..models.event import EventStatus

DEFAULT_TIMEZONE = "GMT-6"

NonNegativeInt = Annotated[StrictInt, Field(ge=0)]

OPTIONAL_TEXT_FIELDS = (
    "description",
    "category",
    "sub_category",
    "policy",
    "organizer",
)
URL_FIELDS = ("image_url", "logo_url", "organizer_logo")
NON_NULLABLE_FIELDS = (
    "name",
    "location",
    "start_date",
    "end_date",
    "status",
    "tickets_sold",
    "total_revenue",
    "unique_attendees",
    "timezone",
)

_url_adapter = TypeAdapter(AnyUrl)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive timestamps are taken as UTC; aware ones are converted to UTC"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class Team(CamelModel):
    name: str
    logo: Optional[str] = None


def _dump_teams(teams: Optional[List[Team]]) -> Optional[List[Dict[str, Any]]]:
    if teams is None:
        return None
    return [team.model_dump(exclude_none=True) for team in teams]


class EventInput(CamelModel):
    """Normalisation shared by the create and update payloads"""

    @field_validator(
        *OPTIONAL_TEXT_FIELDS, *URL_FIELDS, mode="before", check_fields=False
    )
    @classmethod
    def empty_string_clears(cls, v: Any) -> Any:
        if isinstance(v, str) and v.strip() == "":
            return None
        return v

    @field_validator(*URL_FIELDS, check_fields=False)
    @classmethod
    def check_url_shape(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        try:
            _url_adapter.validate_python(v)
        except PydanticValidationError:
            raise ValueError("Invalid url")
        return v

    @field_validator("start_date", "end_date", mode="before", check_fields=False)
    @classmethod
    def require_date_string(cls, v: Any, info: ValidationInfo) -> Any:
        # Numbers would otherwise be read as Unix timestamps
        if v is None or isinstance(v, (str, datetime)):
            return v
        label = "start date" if info.field_name == "start_date" else "end date"
        raise ValueError(f"Invalid {label}")

    @field_validator("start_date", "end_date", check_fields=False)
    @classmethod
    def normalise_timestamp(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v)

    @model_validator(mode="after")
    def check_date_order(self) -> Any:
        start_date = getattr(self, "start_date", None)
        end_date = getattr(self, "end_date", None)
        if start_date is not None and end_date is not None and end_date < start_date:
            raise PydanticCustomError(
                "date_order", "End date must not be before start date"
            )
        return self


class EventCreate(EventInput):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    start_date: datetime
    end_date: datetime
    location: str = Field(..., min_length=1, max_length=500)
    category: Optional[str] = Field(None, max_length=100)
    sub_category: Optional[str] = Field(None, max_length=100)
    status: EventStatus = EventStatus.DRAFT
    tickets_sold: NonNegativeInt = 0
    total_revenue: NonNegativeInt = 0
    unique_attendees: NonNegativeInt = 0
    image_url: Optional[str] = None
    logo_url: Optional[str] = None
    policy: Optional[str] = Field(None, max_length=255)
    organizer: Optional[str] = Field(None, max_length=255)
    organizer_logo: Optional[str] = None
    teams: Optional[List[Team]] = None
    tags: Optional[List[str]] = None
    timezone: str = Field(DEFAULT_TIMEZONE, max_length=100)

    def to_row(self) -> Dict[str, Any]:
        """Column values for an insert"""
        row = self.model_dump(mode="python", exclude={"teams"})
        row["status"] = self.status.value
        row["teams"] = _dump_teams(self.teams)
        return row


class EventUpdate(EventInput):
    """Every field optional; only fields present in the payload are applied"""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    location: Optional[str] = Field(None, min_length=1, max_length=500)
    category: Optional[str] = Field(None, max_length=100)
    sub_category: Optional[str] = Field(None, max_length=100)
    status: Optional[EventStatus] = None
    tickets_sold: Optional[NonNegativeInt] = None
    total_revenue: Optional[NonNegativeInt] = None
    unique_attendees: Optional[NonNegativeInt] = None
    image_url: Optional[str] = None
    logo_url: Optional[str] = None
    policy: Optional[str] = Field(None, max_length=255)
    organizer: Optional[str] = Field(None, max_length=255)
    organizer_logo: Optional[str] = None
    teams: Optional[List[Team]] = None
    tags: Optional[List[str]] = None
    timezone: Optional[str] = Field(None, max_length=100)

    @field_validator(*NON_NULLABLE_FIELDS, mode="before")
    @classmethod
    def reject_explicit_null(cls, v: Any) -> Any:
        if v is None:
            raise ValueError("Field cannot be null")
        return v

    def to_changes(self) -> Dict[str, Any]:
        """Column values for the fields explicitly supplied in the payload"""
        changes = self.model_dump(mode="python", exclude_unset=True)
        if "status" in changes and self.status is not None:
            changes["status"] = self.status.value
        if "teams" in changes:
            changes["teams"] = _dump_teams(self.teams)
        return changes


class Event(CamelModel):
    id: int
    name: str
    description: Optional[str] = None
    start_date: datetime
    end_date: datetime
    location: str
    category: Optional[str] = None
    sub_category: Optional[str] = None
    status: EventStatus
    tickets_sold: int = 0
    total_revenue: int = 0
    unique_attendees: int = 0
    image_url: Optional[str] = None
    logo_url: Optional[str] = None
    policy: Optional[str] = None
    organizer: Optional[str] = None
    organizer_logo: Optional[str] = None
    teams: Optional[List[Team]] = None
    tags: Optional[List[str]] = None
    timezone: Optional[str] = DEFAULT_TIMEZONE
    nft_mint_address: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("teams", "tags", mode="before")
    @classmethod
    def decode_serialized(cls, v: Any) -> Any:
        # Older rows hold a JSON-encoded string inside the JSON column
        if isinstance(v, str):
            return json.loads(v)
        return v

    @field_validator("tickets_sold", "total_revenue", "unique_attendees", mode="before")
    @classmethod
    def missing_counter_is_zero(cls, v: Any) -> Any:
        return 0 if v is None else v

    @field_validator("start_date", "end_date", "created_at", "updated_at")
    @classmethod
    def aware_timestamp(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v)


class EventFilters(CamelModel):
    status: Optional[EventStatus] = None
    search: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @field_validator("start_date", "end_date")
    @classmethod
    def normalise_timestamp(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v)


# Keeps (page - 1) * limit within the store's integer range
MAX_PAGE = 10_000_000


class PaginationParams(BaseModel):
    page: int = Field(1, ge=1, le=MAX_PAGE)
    limit: int = Field(10, ge=1)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class EventPage(BaseModel):
    events: List[Event]
    total: int


class PaginationMeta(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int

    @classmethod
    def create(cls, total: int, pagination: PaginationParams) -> "PaginationMeta":
        total_pages = (total + pagination.limit - 1) // pagination.limit
        return cls(
            page=pagination.page,
            limit=pagination.limit,
            total=total,
            total_pages=total_pages,
        )


# Errors raised at model level are attributed to these fields
MODEL_ERROR_FIELDS = {"date_order": "endDate"}


def _error_path(error: Mapping[str, Any]) -> str:
    loc = error.get("loc") or ()
    if not loc:
        return MODEL_ERROR_FIELDS.get(str(error.get("type")), "body")
    return ".".join(str(part) for part in loc)


def _error_message(error: Mapping[str, Any]) -> str:
    message = str(error.get("msg", "Invalid value"))
    prefix = "Value error, "
    if message.startswith(prefix):
        message = message[len(prefix):]
    return message


def to_validation_error(exc: PydanticValidationError) -> ValidationError:
    """Collect every violation into a field path -> message mapping"""
    fields: Dict[str, str] = {}
    for error in exc.errors():
        fields.setdefault(_error_path(error), _error_message(error))
    return ValidationError(fields)


def _require_object(raw: Any) -> Mapping[str, Any]:
    if not isinstance(raw, Mapping):
        raise ValidationError({"body": "Expected a JSON object"})
    return raw


def parse_create_input(raw: Any) -> EventCreate:
    payload = _require_object(raw)
    try:
        return EventCreate.model_validate(payload)
    except PydanticValidationError as e:
        raise to_validation_error(e) from e


def parse_update_input(raw: Any) -> EventUpdate:
    payload = _require_object(raw)
    try:
        return EventUpdate.model_validate(payload)
    except PydanticValidationError as e:
        raise to_validation_error(e) from e


def parse_list_query(
    raw: Mapping[str, Any], default_limit: int = 10, max_limit: int = 100
) -> Tuple[EventFilters, PaginationParams]:
    """Parse list query parameters; empty values count as absent"""
    params = {key: value for key, value in raw.items() if value not in (None, "")}
    fields: Dict[str, str] = {}
    try:
        filters = EventFilters.model_validate(params)
    except PydanticValidationError as e:
        fields.update(to_validation_error(e).fields)
    try:
        pagination = PaginationParams.model_validate(
            {
                "page": params.get("page", 1),
                "limit": params.get("limit", default_limit),
            }
        )
    except PydanticValidationError as e:
        fields.update(to_validation_error(e).fields)
    if fields:
        raise ValidationError(fields)
    if pagination.limit > max_limit:
        pagination = PaginationParams(page=pagination.page, limit=max_limit)
    return filters, pagination
