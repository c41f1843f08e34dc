# exam_chat/errors.py


class ChatServiceError(Exception):
    """Base class for everything the chat service raises on purpose."""


class ConfigurationError(ChatServiceError):
    pass


class UpstreamError(ChatServiceError):
    """An OpenAI or Directus call was rejected or could not be made."""

    def __init__(self, service: str, message: str, status_code: int | None = None):
        super().__init__(f"{service} request failed: {message}")
        self.service = service
        self.status_code = status_code


class RunStateError(ChatServiceError):
    pass


class RunFailedError(RunStateError):
    def __init__(self, status: str, detail: str | None = None):
        msg = f"Assistant run ended with status '{status}'"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)
        self.status = status


class RunTimeoutError(RunStateError):
    def __init__(self, run_id: str, waited: float, last_status: str):
        super().__init__(
            f"Assistant run {run_id} still '{last_status}' after {waited:.1f}s"
        )
        self.run_id = run_id
        self.last_status = last_status


class NoAssistantMessageError(RunStateError):
    def __init__(self):
        super().__init__("No response received from assistant")


class UnexpectedContentError(RunStateError):
    def __init__(self, content_type: str):
        super().__init__(f"Unexpected response format from assistant: {content_type}")
        self.content_type = content_type


class QueryError(ChatServiceError):
    """The queryDatabase tool could not be served."""


class ToolArgumentsError(QueryError):
    pass


class UnresolvedReferenceError(QueryError):
    def __init__(self, field: str, value):
        super().__init__(f"Could not resolve {field}={value!r} to a school id")
        self.field = field
        self.value = value
