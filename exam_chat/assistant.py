# exam_chat/assistant.py
import json
import logging
import time

import openai

from .errors import (
    NoAssistantMessageError,
    QueryError,
    RunFailedError,
    RunTimeoutError,
    UnexpectedContentError,
    UpstreamError,
)
from .tools import QUERY_DATABASE_TOOL, TOOL_NAME, parse_tool_arguments

logger = logging.getLogger(__name__)

# Statuses that mean "ask again later"
ACTIVE_STATUSES = ("queued", "in_progress", "cancelling")


class AssistantRunner:
    """
    Runs one prompt through an OpenAI assistant: one thread per request, the
    prompt as its only message, and queryDatabase calls answered through the
    query adapter until the run reaches a terminal status.
    """

    def __init__(self, client, adapter, settings, sleep=time.sleep, clock=time.monotonic):
        self.client = client
        self.adapter = adapter
        self.assistant_id = settings.assistant_id
        self.poll_interval = settings.poll_interval
        self.max_wait = settings.max_wait
        self._sleep = sleep
        self._clock = clock

    def generate_response(self, prompt: str) -> str:
        try:
            return self._generate(prompt)
        except openai.OpenAIError as e:
            raise UpstreamError("openai", str(e), getattr(e, "status_code", None)) from e

    def _generate(self, prompt: str) -> str:
        threads = self.client.beta.threads

        thread = threads.create()
        logger.info("Thread %s created", thread.id)
        threads.messages.create(thread_id=thread.id, role="user", content=prompt)

        run = threads.runs.create(
            thread_id=thread.id,
            assistant_id=self.assistant_id,
            tools=[QUERY_DATABASE_TOOL],
        )
        logger.info("Run %s started on thread %s", run.id, thread.id)

        run = self._wait_for_run(thread.id, run)
        if run.status != "completed":
            last_error = getattr(run, "last_error", None)
            detail = getattr(last_error, "message", None) if last_error else None
            raise RunFailedError(run.status, detail)

        return self._latest_reply(thread.id)

    def _wait_for_run(self, thread_id: str, run):
        runs = self.client.beta.threads.runs
        started = self._clock()
        status = run.status

        while status in ACTIVE_STATUSES or status == "requires_action":
            if status == "requires_action":
                outputs = self.handle_tool_calls(run)
                logger.info("Submitting %d tool output(s) for run %s", len(outputs), run.id)
                run = runs.submit_tool_outputs(
                    run_id=run.id, thread_id=thread_id, tool_outputs=outputs
                )
                status = run.status
                # submission usually returns a queued run; poll it like any other
                if status not in ACTIVE_STATUSES:
                    continue

            waited = self._clock() - started
            if waited >= self.max_wait:
                self._cancel(thread_id, run.id)
                raise RunTimeoutError(run.id, waited, status)

            self._sleep(self.poll_interval)
            run = runs.retrieve(run_id=run.id, thread_id=thread_id)
            if run.status != status:
                logger.info("Run %s: %s -> %s", run.id, status, run.status)
            status = run.status

        return run

    def _cancel(self, thread_id: str, run_id: str) -> None:
        try:
            self.client.beta.threads.runs.cancel(run_id=run_id, thread_id=thread_id)
        except openai.OpenAIError as e:
            logger.warning("Could not cancel run %s: %s", run_id, e)

    def handle_tool_calls(self, run) -> list[dict]:
        """Answer every pending tool call, one output per call id."""
        required = run.required_action
        tool_calls = required.submit_tool_outputs.tool_calls if required else []

        outputs = []
        for tc in tool_calls or []:
            fn = tc.function.name
            if fn != TOOL_NAME:
                raise QueryError(f"Unknown tool '{fn}'")
            operation = parse_tool_arguments(tc.function.arguments)
            logger.info(
                "Tool call %s: %s on %s", tc.id, operation.operation, operation.collection
            )
            result = self.adapter.execute(operation)
            outputs.append({
                "tool_call_id": tc.id,
                "output": json.dumps(result, default=str, ensure_ascii=False),
            })
        return outputs

    def _latest_reply(self, thread_id: str) -> str:
        messages = self.client.beta.threads.messages.list(thread_id=thread_id, order="desc")
        reply = next((m for m in messages.data if m.role == "assistant"), None)
        if reply is None or not reply.content:
            raise NoAssistantMessageError()

        block = reply.content[0]
        if getattr(block, "type", None) != "text":
            raise UnexpectedContentError(getattr(block, "type", type(block).__name__))
        return block.text.value
