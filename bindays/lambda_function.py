"""
AWS Lambda (API Gateway proxy) hosting layer.

Each call carries the previous StepResponse as its JSON body (or nothing to
start a conversation) and answers with the ConversationResult: the next
request for the caller to execute, or the final result.
"""
import base64
import json
import logging
import os
import sys
from datetime import date
from typing import Any, Dict, Optional

from bindays.collectors.base_collector import Collector
from bindays.collectors.collector_registry import create_collector, find_collector, get_collectors
from bindays.data_models import Address
from bindays.exceptions import (
    CollectorNotFoundError,
    DecodeError,
    GovUkIdNotFoundError,
    InvalidPostcodeError,
    ProtocolViolation,
    UpstreamDataError,
)
from bindays.processing import canonicalize_postcode, today_in
from bindays.protocol import ConversationResult, StepResponse

# --- Basic Lambda Logging Setup ---
log_level_str = os.environ.get('LOG_LEVEL', 'INFO').upper()
log_level = getattr(logging, log_level_str, logging.INFO)
logger = logging.getLogger(__name__)
if not logging.getLogger().hasHandlers():
    logging.basicConfig(level=log_level, stream=sys.stdout, format='%(levelname)s:%(name)s: %(message)s')
else:
    logger.setLevel(log_level)

JSON_HEADERS = {"Content-Type": "application/json"}


# --- Helper Functions ---
def create_error_response(status_code: int, message: str) -> Dict[str, Any]:
    logger.error(f"Returning error {status_code}: {message}")
    return {"statusCode": status_code, "headers": JSON_HEADERS, "body": json.dumps({"error": message}),
            "isBase64Encoded": False}


def create_json_response(payload: Any) -> Dict[str, Any]:
    return {"statusCode": 200, "headers": JSON_HEADERS, "body": json.dumps(payload), "isBase64Encoded": False}


def collector_as_dict(collector: Collector) -> Dict[str, str]:
    return {
        "name": collector.name,
        "websiteUrl": collector.website_url,
        "govUkId": collector.gov_uk_id,
        "govUkUrl": collector.gov_uk_url,
    }


def conversation_as_dict(outcome: ConversationResult) -> Dict[str, Any]:
    if not outcome.is_complete:
        return {"nextStepRequest": outcome.next_step_request.as_dict(), "result": None}

    result = outcome.result
    if isinstance(result, Collector):
        serialized = collector_as_dict(result)
    else:
        serialized = [item.as_dict() for item in result]
    return {"nextStepRequest": None, "result": serialized}


def parse_step_response(event: Dict[str, Any]) -> Optional[StepResponse]:
    """Reads the previous StepResponse from the request body; an empty body starts a conversation."""
    body = event.get("body")
    if not body:
        return None
    if event.get("isBase64Encoded"):
        body = base64.b64decode(body).decode('utf-8')
    try:
        data = json.loads(body)
    except ValueError as e:
        raise ProtocolViolation(f"Request body is not valid JSON: {e}") from e
    if not data:
        return None
    if not isinstance(data, dict):
        raise ProtocolViolation("Request body must be a JSON object")
    return StepResponse.from_dict(data)


def _status_for(error: Exception) -> int:
    if isinstance(error, (ProtocolViolation, DecodeError, InvalidPostcodeError)):
        return 400
    if isinstance(error, (CollectorNotFoundError, GovUkIdNotFoundError)):
        return 404
    if isinstance(error, UpstreamDataError):
        return 502
    return 500


def _require(params: Dict[str, str], name: str) -> str:
    value = (params.get(name) or "").strip()
    if not value:
        raise ProtocolViolation(f"Missing required parameter: {name}")
    return value


def _today(params: Dict[str, str]) -> date:
    """Reads the optional ISO 'today' parameter so a conversation can pin its reference date."""
    value = (params.get("today") or "").strip()
    if not value:
        return today_in()
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise ProtocolViolation(f"Parameter today must be an ISO date (YYYY-MM-DD): {e}") from e


# --- Lambda Handler ---
def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    handler_logger = logging.getLogger(f"{__name__}.lambda_handler")
    resource = event.get("resource") or ""
    query = event.get("queryStringParameters") or {}
    path_params = event.get("pathParameters") or {}
    handler_logger.info(f"Received {event.get('httpMethod', '')} {resource}")

    try:
        if resource == "/collectors":
            return create_json_response([collector_as_dict(c) for c in get_collectors()])

        response = parse_step_response(event)

        if resource == "/collector":
            outcome = find_collector(_require(query, "postcode"), response)
        elif resource == "/{govUkId}/addresses":
            collector = create_collector(_require(path_params, "govUkId"))
            outcome = collector.get_addresses(_require(query, "postcode"), response, today=_today(query))
        elif resource == "/{govUkId}/bin-days":
            collector = create_collector(_require(path_params, "govUkId"))
            address = Address(
                property=query.get("property"),
                postcode=canonicalize_postcode(_require(query, "postcode")),
                uid=_require(query, "uid"),
            )
            outcome = collector.get_bin_days(address, response, today=_today(query))
        else:
            return create_error_response(404, f"Unknown resource: {resource}")

        return create_json_response(conversation_as_dict(outcome))

    except Exception as e:
        status_code = _status_for(e)
        if status_code == 500:
            handler_logger.exception(f"Unexpected error handling {resource}")
            return create_error_response(500, "Internal server error.")
        return create_error_response(status_code, str(e))
