"""
Shared fakes for the chat service tests.

Nothing here talks to OpenAI or Directus: the assistant client is a tree of
SimpleNamespace objects driven by a scripted list of run statuses, and
Directus is replaced either at the session level or at the client level.
"""

import json
from types import SimpleNamespace

import pytest

from exam_chat.config import Settings


@pytest.fixture
def settings():
    return Settings(
        openai_api_key="sk-test-0000000000000000",
        directus_url="https://cms.test",
        directus_token="token",
        assistant_id="asst_test",
        poll_interval=1.0,
        max_wait=30.0,
    )


# ----- Directus


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text or (json.dumps(payload) if payload is not None else "")
        self.reason = "OK" if status_code < 400 else "Error"

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class FakeSession:
    def __init__(self, responses=None):
        self.headers = {}
        self.calls = []
        self.responses = list(responses or [])

    def get(self, url, params=None, timeout=None):
        self.calls.append({"url": url, "params": params, "timeout": timeout})
        resp = self.responses.pop(0)
        if isinstance(resp, Exception):
            raise resp
        return resp


class FakeDirectus:
    """Stands in for DirectusClient; rows are served per collection."""

    def __init__(self, rows=None):
        self.rows = rows or {}
        self.calls = []

    def read_items(self, collection, query=None):
        self.calls.append((collection, query))
        rows = self.rows.get(collection, [])
        return rows(query) if callable(rows) else list(rows)


# ----- OpenAI


def text_message(value, role="assistant"):
    return SimpleNamespace(
        role=role,
        content=[SimpleNamespace(type="text", text=SimpleNamespace(value=value))],
    )


def tool_call(call_id, arguments, name="queryDatabase"):
    if not isinstance(arguments, str):
        arguments = json.dumps(arguments)
    return SimpleNamespace(
        id=call_id,
        type="function",
        function=SimpleNamespace(name=name, arguments=arguments),
    )


class FakeRuns:
    def __init__(self, statuses, tool_calls=None, last_error=None, cancel_error=None):
        # statuses: what create/retrieve/submit return, in order
        self._statuses = iter(statuses)
        self.tool_calls = tool_calls or []
        self.last_error = last_error
        self.created = []
        self.retrieved = 0
        self.submitted = []
        self.cancelled = []
        self.cancel_error = cancel_error

    def _next(self):
        try:
            status = next(self._statuses)
        except StopIteration:
            status = "in_progress"
        required = None
        if status == "requires_action":
            required = SimpleNamespace(
                type="submit_tool_outputs",
                submit_tool_outputs=SimpleNamespace(tool_calls=self.tool_calls),
            )
        return SimpleNamespace(
            id="run_1", status=status, required_action=required, last_error=self.last_error
        )

    def create(self, thread_id, assistant_id, tools=None, **kwargs):
        self.created.append({"thread_id": thread_id, "assistant_id": assistant_id, "tools": tools})
        return self._next()

    def retrieve(self, run_id, thread_id):
        self.retrieved += 1
        return self._next()

    def submit_tool_outputs(self, run_id, thread_id, tool_outputs):
        self.submitted.append(tool_outputs)
        return self._next()

    def cancel(self, run_id, thread_id):
        self.cancelled.append(run_id)
        if self.cancel_error:
            raise self.cancel_error
        return SimpleNamespace(id=run_id, status="cancelling")


class FakeMessages:
    def __init__(self, replies):
        self.replies = replies
        self.created = []

    def create(self, thread_id, role, content):
        self.created.append({"thread_id": thread_id, "role": role, "content": content})
        return SimpleNamespace(id="msg_user")

    def list(self, thread_id, order="desc"):
        return SimpleNamespace(data=list(self.replies))


class FakeThreads:
    def __init__(self, runs, messages):
        self.runs = runs
        self.messages = messages
        self.count = 0

    def create(self):
        self.count += 1
        return SimpleNamespace(id=f"thread_{self.count}")


def fake_openai(statuses, replies=(), tool_calls=None, last_error=None):
    runs = FakeRuns(statuses, tool_calls=tool_calls, last_error=last_error)
    messages = FakeMessages(list(replies))
    threads = FakeThreads(runs, messages)
    return SimpleNamespace(beta=SimpleNamespace(threads=threads))


class FakeClock:
    """Monotonic clock that only moves when the runner sleeps."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = 0

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps += 1
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()
