"""
Shared normalization used by every collector: label matching, date handling,
bin day merging and the small encoding helpers for cookies and forms.
"""
import json
import logging
import re
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union
from urllib.parse import urlencode

import pytz

from .data_models import Address, CollectionDay, Container
from .exceptions import InvalidPostcodeError, ProtocolViolation, UpstreamDataError
from .protocol import StepResponse

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "Europe/London"

# name=value at the start of the header or straight after a comma separating cookies
COOKIE_PATTERN = re.compile(r"(?:^|,)\s*([^=;\s]+=[^;]+)")
WHITESPACE_PATTERN = re.compile(r"\s+")
POSTCODE_PATTERN = re.compile(r"^[A-Z0-9]{5,7}$")


# --- Container matching ---

def match_containers(catalogue: Iterable[Container], raw_label: str) -> Tuple[Container, ...]:
    """
    Returns every container with a key contained in raw_label (case-insensitive).

    A label may match several containers, e.g. "Recycling and Food" can map to a
    box, a bag and a caddy. Unknown labels match nothing and are dropped.
    """
    label = (raw_label or "").casefold()
    matched = tuple(
        container for container in catalogue
        if any(key.casefold() in label for key in container.keys)
    )
    if not matched:
        logger.debug(f"No container matched label '{raw_label}'")
    return matched


# --- Collection days ---

def normalize_collection_days(raw_days: Iterable[CollectionDay], today: date) -> List[CollectionDay]:
    """
    Drops past days, merges days sharing a (date, address) and sorts by date.

    Containers are unioned in first-seen order, days left without containers
    are dropped and the sort is stable, so ties keep their input order.
    """
    merged: Dict[Tuple[date, Address], List[Container]] = {}
    for day in raw_days:
        if day.date < today:
            continue
        containers = merged.setdefault((day.date, day.address), [])
        for container in day.containers:
            if container not in containers:
                containers.append(container)

    days = [
        CollectionDay(date=day_date, address=address, containers=tuple(containers))
        for (day_date, address), containers in merged.items()
        if containers
    ]
    days.sort(key=lambda day: day.date)
    return days


# --- Dates ---

def today_in(timezone: str = DEFAULT_TIMEZONE) -> date:
    """The current calendar date in the given timezone (UK time by default)."""
    return datetime.now(pytz.timezone(timezone)).date()


def parse_date(text: str, date_format: str) -> date:
    """Parses text with a strptime format, raising UpstreamDataError on failure."""
    try:
        return datetime.strptime((text or "").strip(), date_format).date()
    except ValueError as e:
        raise UpstreamDataError(f"Could not parse date '{text}' with format '{date_format}': {e}") from e


def infer_year(partial_date: str, reference_date: date, date_format: str = "%d %B") -> date:
    """
    Resolves a date with no year (e.g. "8 October") against reference_date.

    The reference year is assumed; if that lands strictly before reference_date
    the date rolls forward a year. 29 February moves on to the next leap year.

    Args:
        partial_date: The date text without a year.
        reference_date: Usually today.
        date_format: strptime format of partial_date; must not contain a year.

    Raises:
        ValueError: date_format contains a year directive.
        UpstreamDataError: partial_date does not match date_format.
    """
    if "%Y" in date_format or "%y" in date_format:
        raise ValueError(f"The format '{date_format}' already contains a year, use parse_date instead")

    # 2000 is a leap year, so 29 February parses
    parsed = parse_date(f"{(partial_date or '').strip()} 2000", f"{date_format} %Y")

    year = reference_date.year
    while True:
        try:
            candidate = date(year, parsed.month, parsed.day)
        except ValueError:
            year += 1
            continue
        if candidate >= reference_date:
            return candidate
        year += 1


# --- Cookies, forms and postcodes ---

def cookie_header_from_set_cookie(raw_set_cookie: Optional[str]) -> str:
    """
    Turns a raw set-cookie header into a Cookie request header value.

    Only each cookie's name=value pair is kept; Path, Expires, HttpOnly and the
    other attributes are dropped.

    >>> cookie_header_from_set_cookie("a=1; Path=/; HttpOnly, b=2; Secure")
    'a=1; b=2'
    """
    if not raw_set_cookie or not raw_set_cookie.strip():
        return ""
    pairs = [match.strip() for match in COOKIE_PATTERN.findall(raw_set_cookie)]
    return "; ".join(pair for pair in pairs if pair)


def encode_form_body(pairs: Union[Mapping[str, str], Sequence[Tuple[str, str]]]) -> str:
    """URL-encodes pairs as application/x-www-form-urlencoded, keeping their order."""
    if not pairs:
        return ""
    items = list(pairs.items()) if isinstance(pairs, Mapping) else list(pairs)
    return urlencode(items)


def canonicalize_postcode(raw: str) -> str:
    """
    Uppercases a UK postcode and puts exactly one space before the inward code.

    >>> canonicalize_postcode(" sw1a1aa ")
    'SW1A 1AA'
    """
    compact = WHITESPACE_PATTERN.sub("", raw or "").upper()
    if not POSTCODE_PATTERN.match(compact):
        raise InvalidPostcodeError(raw)
    return f"{compact[:-3]} {compact[-3:]}"


# --- Response helpers ---

def parse_json(response: StepResponse) -> Any:
    try:
        return json.loads(response.content)
    except (TypeError, ValueError) as e:
        raise UpstreamDataError(f"Step {response.step_id} did not return valid JSON: {e}") from e


def require_field(data: Any, key: Union[str, int], context: str = "response") -> Any:
    """Returns data[key], raising UpstreamDataError if it is absent or null."""
    try:
        value = data[key]
    except (KeyError, IndexError, TypeError):
        raise UpstreamDataError(f"Required field '{key}' missing from {context}") from None
    if value is None:
        raise UpstreamDataError(f"Required field '{key}' is null in {context}")
    return value


def require_header(response: StepResponse, name: str) -> str:
    value = response.headers.get(name)
    if not value:
        raise UpstreamDataError(f"Required header '{name}' missing from step {response.step_id} response")
    return value


def require_metadata(response: StepResponse, key: str) -> str:
    """Metadata echoed by the transport; a missing key means the caller dropped it."""
    value = response.options.metadata.get(key)
    if value is None:
        raise ProtocolViolation(f"Step {response.step_id} response is missing echoed metadata '{key}'")
    return value
