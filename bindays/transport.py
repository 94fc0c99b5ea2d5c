"""
Caller-side execution of step requests.

Collectors never touch the network. Whoever drives a conversation executes
each StepRequest from its own network identity; this module is the driver used
by the command line tool.
"""
import logging
from typing import Any, Callable, Optional

import requests
from requests.structures import CaseInsensitiveDict

from .exceptions import ProtocolViolation
from .protocol import ConversationResult, StepRequest, StepResponse

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30
DEFAULT_MAX_STEPS = 10


class RequestsTransport:
    """Executes StepRequests with requests and records them as StepResponses."""

    def __init__(self, timeout: int = DEFAULT_TIMEOUT, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.session = session

    def send(self, step_request: StepRequest) -> StepResponse:
        headers = dict(step_request.headers)
        body = step_request.body.encode('utf-8') if step_request.body else None
        if body and not any(name.lower() == 'content-type' for name in headers):
            if step_request.body.lstrip().startswith(('{', '[')):
                headers['Content-Type'] = 'application/json'

        logger.debug(f"Step {step_request.step_id}: {step_request.method} {step_request.url}")
        request = self.session.request if self.session is not None else requests.request
        try:
            response = request(
                step_request.method,
                step_request.url,
                headers=headers,
                data=body,
                allow_redirects=step_request.options.follow_redirects,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Request for step {step_request.step_id} to {step_request.url} failed: {e}")
            raise

        if response.status_code >= 400:
            logger.warning(f"Step {step_request.step_id} returned HTTP {response.status_code} {response.reason}")

        return StepResponse(
            step_id=step_request.step_id,
            content=response.text,
            headers=CaseInsensitiveDict({name.lower(): value for name, value in response.headers.items()}),
            status_code=response.status_code,
            reason_phrase=response.reason or '',
            options=step_request.options,
        )


def run_conversation(step: Callable[[Optional[StepResponse]], ConversationResult],
                     transport: RequestsTransport, max_steps: int = DEFAULT_MAX_STEPS) -> Any:
    """
    Drives a conversation to completion and returns its result.

    Args:
        step: Calls the collector operation with the previous response, e.g.
            ``lambda response: collector.get_bin_days(address, response, today=today)``.
        transport: Executes each requested step.
        max_steps: Upper bound on round-trips before giving up.

    Raises:
        ProtocolViolation: The conversation did not finish within max_steps.
    """
    outcome = step(None)
    round_trips = 0
    while not outcome.is_complete:
        if round_trips >= max_steps:
            raise ProtocolViolation(f"Conversation did not complete within {max_steps} steps")
        response = transport.send(outcome.next_step_request)
        round_trips += 1
        outcome = step(response)
    return outcome.result
