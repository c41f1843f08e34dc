# exam_chat/tools.py
"""
The single function tool the assistant may call mid-run, and the typed
records its JSON arguments are validated into before anything is queried.
"""
import json
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from .errors import ToolArgumentsError

SCHOOLS = "exam_ai_schools"
SCHOOL_DETAILS = "exam_ai_school_details"
APPLICANT_SUMMARIES = "exam_ai_school_applicant_summaries"
COLLECTIONS = (SCHOOLS, SCHOOL_DETAILS, APPLICANT_SUMMARIES)

OPERATIONS = ("select", "compare", "aggregate")

TOOL_NAME = "queryDatabase"

RESERVED_QUERY_KEYS = ("filter", "sort", "limit", "fields", "groupBy", "compare")

# ----- Function-calling schema for the assistant run
QUERY_DATABASE_TOOL = {
    "type": "function",
    "function": {
        "name": TOOL_NAME,
        "description": (
            "Query the school database collections. Details and summaries "
            "collections reference the numeric id from exam_ai_schools."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "collection": {
                    "type": "string",
                    "description": (
                        "The collection to query. Start with exam_ai_schools to get "
                        "the school info before querying other collections."
                    ),
                    "enum": list(COLLECTIONS),
                },
                "operation": {
                    "type": "string",
                    "enum": list(OPERATIONS),
                    "default": "select",
                },
                "query": {
                    "type": "object",
                    "description": (
                        "Query parameters. For school details and summaries, use the "
                        "numeric id from exam_ai_schools collection."
                    ),
                    "properties": {
                        "filter": {
                            "type": "object",
                            "description": "Filter conditions; plain values match by substring (text) or equality.",
                            "properties": {
                                "name": {"type": "string", "description": "School name (only for exam_ai_schools)"},
                                "district": {"type": "string"},
                                "province": {"type": "string"},
                                "school_id": {
                                    "type": "number",
                                    "description": "Numeric id from exam_ai_schools.id for details and summaries.",
                                },
                                "program": {"type": "string"},
                                "year": {"type": "number", "description": "Academic year (for applicant summaries)"},
                            },
                        },
                        "sort": {
                            "type": "array",
                            "items": {"type": "string"},
                            "description": "Field names, prefix with '-' for descending.",
                        },
                        "fields": {"type": "array", "items": {"type": "string"}},
                        "groupBy": {"type": "array", "items": {"type": "string"}},
                        "compare": {"type": "object"},
                        "limit": {"type": "number", "default": 10, "maximum": 10},
                    },
                },
            },
            "required": ["collection", "query"],
        },
    },
}


def _as_list(value):
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return value


class SelectQuery(BaseModel):
    # bare key/value pairs next to filter are kept and treated as filters
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    filter: dict[str, Any] = Field(default_factory=dict)
    sort: list[str] = Field(default_factory=list)
    fields: list[str] = Field(default_factory=list)
    limit: int | None = None

    @field_validator("filter", mode="before")
    @classmethod
    def _filter_or_empty(cls, v):
        return {} if v is None else v

    @field_validator("sort", "fields", mode="before")
    @classmethod
    def _split_csv(cls, v):
        return _as_list(v)

    def bare_filters(self) -> dict[str, Any]:
        extra = self.model_extra or {}
        return {k: v for k, v in extra.items() if k not in RESERVED_QUERY_KEYS}


class CompareQuery(SelectQuery):
    compare: dict[str, Any] = Field(default_factory=dict)


class AggregateQuery(SelectQuery):
    group_by: list[str] = Field(default_factory=list, alias="groupBy")

    @field_validator("group_by", mode="before")
    @classmethod
    def _split_group(cls, v):
        return _as_list(v)


class SelectOperation(BaseModel):
    operation: Literal["select"] = "select"
    collection: Literal[SCHOOLS, SCHOOL_DETAILS, APPLICANT_SUMMARIES]
    query: SelectQuery = Field(default_factory=SelectQuery)


class CompareOperation(BaseModel):
    operation: Literal["compare"]
    collection: Literal[SCHOOLS, SCHOOL_DETAILS, APPLICANT_SUMMARIES]
    query: CompareQuery = Field(default_factory=CompareQuery)


class AggregateOperation(BaseModel):
    operation: Literal["aggregate"]
    collection: Literal[SCHOOLS, SCHOOL_DETAILS, APPLICANT_SUMMARIES]
    query: AggregateQuery = Field(default_factory=AggregateQuery)


Operation = Annotated[
    Union[SelectOperation, CompareOperation, AggregateOperation],
    Field(discriminator="operation"),
]

_operation_adapter = TypeAdapter(Operation)


def parse_tool_arguments(raw) -> SelectOperation | CompareOperation | AggregateOperation:
    """
    Decode the JSON argument string of a queryDatabase call into one of the
    typed operation records. Raises ToolArgumentsError on anything malformed.
    """
    if isinstance(raw, (str, bytes)):
        try:
            payload = json.loads(raw or "{}")
        except ValueError as e:
            raise ToolArgumentsError(f"Tool arguments are not valid JSON: {e}") from e
    else:
        payload = raw

    if not isinstance(payload, dict):
        raise ToolArgumentsError("Tool arguments must be a JSON object")

    payload = dict(payload)
    if not payload.get("operation"):
        payload["operation"] = "select"
    if payload.get("query") is None:
        payload.pop("query", None)

    try:
        return _operation_adapter.validate_python(payload)
    except ValidationError as e:
        raise ToolArgumentsError(f"Invalid {TOOL_NAME} arguments: {e}") from e
