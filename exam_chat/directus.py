# exam_chat/directus.py
import json
import logging

import requests

from .errors import UpstreamError

logger = logging.getLogger(__name__)


def _error_message(resp) -> str:
    """Directus error bodies look like {"errors": [{"message": ...}]}."""
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200] or resp.reason or f"HTTP {resp.status_code}"
    errors = body.get("errors") if isinstance(body, dict) else None
    if errors and isinstance(errors, list) and isinstance(errors[0], dict):
        return errors[0].get("message") or f"HTTP {resp.status_code}"
    return f"HTTP {resp.status_code}"


def encode_params(query: dict) -> dict:
    """Turn a shaped query into Directus REST query-string params."""
    params = {}
    if query.get("filter"):
        params["filter"] = json.dumps(query["filter"], separators=(",", ":"))
    if query.get("sort"):
        params["sort"] = ",".join(query["sort"])
    if query.get("fields"):
        params["fields"] = ",".join(query["fields"])
    if query.get("limit") is not None:
        params["limit"] = str(query["limit"])
    if query.get("offset"):
        params["offset"] = str(query["offset"])
    return params


class DirectusClient:
    def __init__(self, base_url: str, token: str, timeout: float = 20, session=None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        })

    def read_items(self, collection: str, query: dict | None = None) -> list:
        url = f"{self.base_url}/items/{collection}"
        params = encode_params(query or {})
        try:
            r = self.session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise UpstreamError("directus", str(e)) from e

        if not r.ok:
            raise UpstreamError("directus", _error_message(r), status_code=r.status_code)

        try:
            body = r.json()
        except ValueError as e:
            raise UpstreamError("directus", f"response is not JSON: {e}", status_code=r.status_code) from e
        if not isinstance(body, dict):
            raise UpstreamError("directus", "unexpected response body", status_code=r.status_code)

        data = body.get("data")
        if data is None:
            return []
        # singleton collections come back as an object
        return data if isinstance(data, list) else [data]
