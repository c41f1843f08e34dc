# exam_chat/query.py
"""
Adapter between the assistant's queryDatabase tool and the Directus item API.

Turns the loosely written filter/sort/fields the model produces into Directus
query params, caps every request at RESULT_LIMIT rows, and joins school rows
onto summaries and details in memory.
"""
import json
import logging

from .config import RESULT_LIMIT
from .errors import QueryError, UnresolvedReferenceError
from .tools import (
    APPLICANT_SUMMARIES,
    COLLECTIONS,
    SCHOOL_DETAILS,
    SCHOOLS,
    SelectQuery,
)

logger = logging.getLogger(__name__)

SCHOOL_FIELDS = ("id", "school_id", "name", "details", "district", "province")
DETAIL_FIELDS = frozenset({
    "type",
    "exam_date",
    "result_date",
    "report_date",
    "open_application_date",
    "close_application_date",
    "orientation_date",
    "exam_location",
    "programs",
    "display_order",
})


def _key(value):
    # numeric ids sometimes come back as strings
    return None if value is None else str(value)


def _is_operator(value) -> bool:
    return isinstance(value, dict) and bool(value) and all(str(k).startswith("_") for k in value)


def to_condition(value):
    """Plain value -> Directus filter rule; operator dicts pass through."""
    if _is_operator(value):
        return value
    if isinstance(value, str):
        return {"_contains": value}
    if isinstance(value, (list, tuple)):
        return {"_in": list(value)}
    return {"_eq": value}


def _looks_like_uuid(value) -> bool:
    return isinstance(value, str) and "-" in value


def describe_sql(collection: str, params: dict) -> str:
    """Rough SQL rendering of a shaped query, for the debug log only."""
    fields = ", ".join(params.get("fields") or ["*"])
    sql = f"SELECT {fields} FROM {collection}"
    if params.get("filter"):
        sql += "\nWHERE " + json.dumps(params["filter"], ensure_ascii=False)
    if params.get("sort"):
        clauses = [f"{s[1:]} DESC" if s.startswith("-") else f"{s} ASC" for s in params["sort"]]
        sql += "\nORDER BY " + ", ".join(clauses)
    if params.get("limit"):
        sql += f"\nLIMIT {params['limit']}"
    if params.get("offset"):
        sql += f"\nOFFSET {params['offset']}"
    return sql


class SchoolQueryAdapter:
    def __init__(self, directus, limit: int = RESULT_LIMIT):
        self.directus = directus
        self.limit = min(limit, RESULT_LIMIT)
        # school uuid -> numeric id
        self._school_ids = {}

    # ----- query shaping
    def _cap(self, requested) -> int:
        if not requested or requested <= 0:
            return self.limit
        return min(int(requested), self.limit)

    def resolve_school_id(self, uuid: str):
        if uuid in self._school_ids:
            return self._school_ids[uuid]
        rows = self._read(SCHOOLS, {
            "filter": {"school_id": {"_eq": uuid}},
            "fields": ["id", "school_id"],
            "limit": 1,
        })
        if not rows or rows[0].get("id") is None:
            raise UnresolvedReferenceError("school_id", uuid)
        self._school_ids[uuid] = rows[0]["id"]
        return rows[0]["id"]

    def _school_id_condition(self, value):
        if isinstance(value, dict):
            if "_eq" not in value:
                return value
            value = value["_eq"]
        if _looks_like_uuid(value):
            value = self.resolve_school_id(value)
        return {"_eq": value}

    def _translate(self, collection: str, pairs: dict) -> dict:
        out = {}
        for field, value in pairs.items():
            if field in ("_and", "_or") and isinstance(value, list):
                out[field] = [
                    self._translate(collection, part) if isinstance(part, dict) else part
                    for part in value
                ]
            elif field.startswith("_"):
                out[field] = value
            elif field == "school_id" and collection != SCHOOLS:
                out[field] = self._school_id_condition(value)
            else:
                out[field] = to_condition(value)
        return out

    def shape(self, collection: str, query: SelectQuery | None = None) -> dict:
        if collection not in COLLECTIONS:
            raise QueryError(f"Unknown collection '{collection}'")
        query = query or SelectQuery()

        # explicit filter entries win over bare pairs
        filter_ = self._translate(collection, query.bare_filters())
        filter_.update(self._translate(collection, query.filter))

        params = {"limit": self._cap(query.limit)}
        if filter_:
            params["filter"] = filter_
        if query.sort:
            params["sort"] = list(query.sort)
        if query.fields:
            params["fields"] = list(query.fields)
        return params

    # ----- execution
    def _read(self, collection: str, params: dict) -> list:
        params = dict(params)
        params["limit"] = self._cap(params.get("limit"))
        logger.debug("Directus query on %s: %s", collection, json.dumps(params, default=str))
        logger.debug("Equivalent SQL:\n%s", describe_sql(collection, params))
        return self.directus.read_items(collection, params)

    def attach_schools(self, summaries: list) -> list:
        """Nest each summary's School under school_info (None when unmatched)."""
        if not summaries:
            return summaries
        ids = []
        for item in summaries:
            sid = item.get("school_id")
            if sid is not None and sid not in ids:
                ids.append(sid)
        schools = self._read(SCHOOLS, {"filter": {"id": {"_in": ids}}}) if ids else []
        by_id = {_key(s.get("id")): s for s in schools}
        return [
            {**item, "school_info": by_id.get(_key(item.get("school_id")))}
            for item in summaries
        ]

    def _read_all(self, collection: str, params: dict) -> list:
        """Page through a read in steps of self.limit until a short page."""
        rows = []
        offset = 0
        while True:
            page = self._read(collection, {**params, "limit": self.limit, "offset": offset})
            rows.extend(page)
            if len(page) < self.limit:
                return rows
            offset += self.limit

    def _schools_with_details(self, params: dict) -> list:
        requested = params.get("fields") or []
        detail_fields = [f for f in requested if f in DETAIL_FIELDS]
        school_fields = [f for f in requested if f not in DETAIL_FIELDS]
        if school_fields and "id" not in school_fields:
            school_fields.insert(0, "id")

        school_params = dict(params)
        school_params["fields"] = school_fields or list(SCHOOL_FIELDS)
        schools = self._read(SCHOOLS, school_params)
        if not schools:
            return schools

        ids = [s["id"] for s in schools if s.get("id") is not None]
        details = self._read_all(SCHOOL_DETAILS, {
            "filter": {"school_id": {"_in": ids}},
            "fields": ["school_id", *detail_fields],
            "sort": ["display_order"],
        })
        grouped = {}
        for detail in details:
            grouped.setdefault(_key(detail.get("school_id")), []).append(detail)
        return [
            {**school, "school_details": grouped.get(_key(school.get("id")), [])}
            for school in schools
        ]

    def query(self, collection: str, query: SelectQuery | None = None) -> list:
        params = self.shape(collection, query)
        if collection == SCHOOLS and DETAIL_FIELDS.intersection(params.get("fields") or []):
            items = self._schools_with_details(params)
        else:
            items = self._read(collection, params)
            if collection == APPLICANT_SUMMARIES:
                items = self.attach_schools(items)
        logger.info("Query on %s returned %d item(s)", collection, len(items))
        return items

    def execute(self, operation):
        """Run a validated queryDatabase operation."""
        items = self.query(operation.collection, operation.query)
        if operation.operation == "select":
            return items
        # compare/aggregate: the assistant does the arithmetic on the joined rows
        result = {"type": operation.operation, "data": items}
        if operation.operation == "aggregate" and operation.query.group_by:
            result["groupBy"] = operation.query.group_by
        elif operation.operation == "compare" and operation.query.compare:
            result["compare"] = operation.query.compare
        return result
