"""
The resumable step protocol shared by every collector.

A caller drives a conversation by calling a collector operation, executing the
StepRequest it returns, and feeding the resulting StepResponse back into the
next call. The collector keeps no state between calls; anything a later step
needs travels in the response (content, headers or echoed option metadata).
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, Mapping, Optional, Sequence, TypeVar, Union

from requests.structures import CaseInsensitiveDict

from .exceptions import ProtocolViolation

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _as_headers(headers: Optional[Mapping[str, str]]) -> CaseInsensitiveDict:
    if isinstance(headers, CaseInsensitiveDict):
        return headers
    return CaseInsensitiveDict(headers or {})


@dataclass(frozen=True)
class StepOptions:
    """Transport options for one step. Metadata is echoed back on the response."""
    follow_redirects: bool = True
    metadata: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "metadata", dict(self.metadata or {}))

    def as_dict(self) -> Dict[str, Any]:
        return {"followRedirects": self.follow_redirects, "metadata": dict(self.metadata)}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "StepOptions":
        if not data:
            return cls()
        return cls(
            follow_redirects=data.get("followRedirects", True),
            metadata=data.get("metadata") or {},
        )


@dataclass(frozen=True)
class StepRequest:
    """An HTTP request the caller must execute on the collector's behalf."""
    step_id: int
    url: str
    method: str = "GET"
    headers: CaseInsensitiveDict = field(default_factory=CaseInsensitiveDict)
    body: Optional[str] = None
    options: StepOptions = field(default_factory=StepOptions)

    def __post_init__(self):
        object.__setattr__(self, "headers", _as_headers(self.headers))

    def as_dict(self) -> Dict[str, Any]:
        return {
            "requestId": self.step_id,
            "url": self.url,
            "method": self.method,
            "headers": dict(self.headers),
            "body": self.body,
            "options": self.options.as_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StepRequest":
        return cls(
            step_id=data["requestId"],
            url=data["url"],
            method=data.get("method", "GET"),
            headers=data.get("headers") or {},
            body=data.get("body"),
            options=StepOptions.from_dict(data.get("options")),
        )


@dataclass(frozen=True)
class StepResponse:
    """The caller's record of an executed StepRequest."""
    step_id: int
    content: str = ""
    headers: CaseInsensitiveDict = field(default_factory=CaseInsensitiveDict)
    status_code: int = 200
    reason_phrase: str = ""
    options: StepOptions = field(default_factory=StepOptions)

    def __post_init__(self):
        object.__setattr__(self, "headers", _as_headers(self.headers))

    @property
    def is_success_status_code(self) -> bool:
        return 200 <= self.status_code <= 299

    def as_dict(self) -> Dict[str, Any]:
        return {
            "requestId": self.step_id,
            "statusCode": self.status_code,
            "headers": dict(self.headers),
            "content": self.content,
            "reasonPhrase": self.reason_phrase,
            "options": self.options.as_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StepResponse":
        try:
            step_id = int(data["requestId"])
        except (KeyError, TypeError, ValueError) as e:
            raise ProtocolViolation(f"Step response has no valid requestId: {e}") from e
        return cls(
            step_id=step_id,
            content=data.get("content") or "",
            headers=data.get("headers") or {},
            status_code=data.get("statusCode", 200),
            reason_phrase=data.get("reasonPhrase") or "",
            options=StepOptions.from_dict(data.get("options")),
        )


@dataclass(frozen=True)
class ConversationResult(Generic[T]):
    """Exactly one of next_step_request or result is set."""
    next_step_request: Optional[StepRequest] = None
    result: Optional[T] = None

    def __post_init__(self):
        if (self.next_step_request is None) == (self.result is None):
            raise ValueError("ConversationResult needs exactly one of next_step_request or result")

    @classmethod
    def next_step(cls, request: StepRequest) -> "ConversationResult[T]":
        return cls(next_step_request=request)

    @classmethod
    def done(cls, result: T) -> "ConversationResult[T]":
        return cls(result=result)

    @property
    def is_complete(self) -> bool:
        return self.result is not None


# A step handler receives the previous response (None for the first step) and
# returns either the next request or the terminal result.
StepHandler = Callable[[Optional[StepResponse]], Union[StepRequest, Any]]


def run_step(steps: Sequence[StepHandler], response: Optional[StepResponse]) -> ConversationResult:
    """
    Dispatches a response to the handler for its step.

    Handler 0 starts the conversation and receives None; handler k receives the
    response to request k and must itself emit request k + 1 or a result.

    Raises:
        ProtocolViolation: the response's step id has no handler, or a handler
            emitted a request out of sequence.
    """
    if response is None:
        step_id = 0
    else:
        step_id = response.step_id
        if not 1 <= step_id < len(steps):
            raise ProtocolViolation(
                f"Unexpected step id {step_id}: this conversation accepts steps 1 to {len(steps) - 1}"
            )

    outcome = steps[step_id](response)

    if isinstance(outcome, StepRequest):
        if outcome.step_id != step_id + 1:
            raise ProtocolViolation(
                f"Step {step_id} produced request {outcome.step_id}, expected {step_id + 1}"
            )
        logger.debug(f"Step {step_id} -> {outcome.method} {outcome.url} (step {outcome.step_id})")
        return ConversationResult.next_step(outcome)

    if outcome is None:
        raise ProtocolViolation(f"Step {step_id} produced neither a request nor a result")

    logger.debug(f"Step {step_id} completed the conversation")
    return ConversationResult.done(outcome)
