"""
FCC Environment waste portal.

Councils on this platform serve the same session-token form: a landing page
hands out an fcc_session_token, and the AJAX endpoints answer in JSON.
"""
import logging
import re
from dataclasses import dataclass, field
from datetime import date
from typing import List, Sequence, Tuple

from bs4 import BeautifulSoup

from ..base_collector import Collector, CollectorConfig
from ...data_models import Address, CollectionDay, Container
from ...exceptions import UpstreamDataError
from ...processing import encode_form_body, match_containers, parse_date, parse_json, require_field
from ...protocol import StepHandler, StepRequest, StepResponse

logger = logging.getLogger(__name__)

SESSION_COOKIE_PATTERN = re.compile(r"fcc_session_cookie=([^;,\s]+)")
NEXT_COLLECTION_PATTERN = re.compile(r"Your next scheduled collection is\s*<b>\s*(.*?)\s*</b>", re.DOTALL)

AJAX_HEADERS = {
    "x-requested-with": "XMLHttpRequest",
    "content-type": "application/x-www-form-urlencoded; charset=UTF-8",
}


@dataclass(frozen=True)
class FccConfig(CollectorConfig):
    base_url: str = ""
    collection_details_endpoint: str = "ajaxprocessor/getcollectiondetails"
    containers: Tuple[Container, ...] = field(default_factory=tuple)


class FccCollector(Collector):
    """Collector for councils running the FCC session-token portal."""

    def __init__(self, config: FccConfig):
        super().__init__(config)

    def address_steps(self, postcode: str, today: date) -> Sequence[StepHandler]:
        return [
            lambda response: self._request_landing_page(),
            lambda response: self._ajax_request(
                "ajaxprocessor/getaddresses", response, {"postcode": postcode}),
            lambda response: self._parse_addresses(postcode, response),
        ]

    def bin_day_steps(self, address: Address, today: date) -> Sequence[StepHandler]:
        return [
            lambda response: self._request_landing_page(),
            lambda response: self._ajax_request(
                self.config.collection_details_endpoint, response, {"uprn": address.uid or ""}),
            lambda response: self._parse_bin_days(address, response),
        ]

    def _request_landing_page(self) -> StepRequest:
        return StepRequest(step_id=1, url=self.config.base_url, method="GET")

    def _ajax_request(self, endpoint: str, response: StepResponse, fields: dict) -> StepRequest:
        session_token = self._session_token(response)
        headers = dict(AJAX_HEADERS)
        headers["cookie"] = f"fcc_session_cookie={session_token}"
        return StepRequest(
            step_id=2,
            url=f"{self.config.base_url}{endpoint}",
            method="POST",
            headers=headers,
            body=encode_form_body([("fcc_session_token", session_token), *fields.items()]),
        )

    @staticmethod
    def _session_token(response: StepResponse) -> str:
        soup = BeautifulSoup(response.content or "", "html.parser")
        token_input = soup.find("input", {"name": "fcc_session_token"})
        if token_input is not None and token_input.get("value"):
            return token_input["value"]

        # Some deployments only hand the token out as a cookie
        cookie_match = SESSION_COOKIE_PATTERN.search(response.headers.get("set-cookie") or "")
        if cookie_match:
            return cookie_match.group(1)

        raise UpstreamDataError("FCC landing page has no fcc_session_token input or fcc_session_cookie")

    def _parse_addresses(self, postcode: str, response: StepResponse) -> List[Address]:
        addresses_json = require_field(parse_json(response), "addresses", "FCC address response")
        if isinstance(addresses_json, dict):
            entries = addresses_json.values()
        else:
            entries = addresses_json

        addresses = []
        for entry in entries:
            addresses.append(Address(
                property=str(require_field(entry, 1, "FCC address entry")).strip(),
                postcode=postcode,
                uid=str(require_field(entry, 0, "FCC address entry")),
            ))
        return addresses

    def _parse_bin_days(self, address: Address, response: StepResponse) -> List[CollectionDay]:
        data = parse_json(response)
        tiles = require_field(require_field(data, "binCollections", "FCC bin day response"), "tile",
                              "FCC binCollections")

        collection_days = []
        for tile in tiles:
            html = str(require_field(tile, 0, "FCC collection tile"))
            heading = BeautifulSoup(html, "html.parser").find("h3")
            if heading is None:
                raise UpstreamDataError("FCC collection tile has no service heading")
            date_match = NEXT_COLLECTION_PATTERN.search(html)
            if date_match is None:
                raise UpstreamDataError(f"FCC tile '{heading.get_text(strip=True)}' has no next collection date")

            # "Friday, 24 October 2025"
            date_text = date_match.group(1).split(",")[-1].strip()
            collection_days.append(CollectionDay(
                date=parse_date(date_text, "%d %B %Y"),
                address=address,
                containers=match_containers(self.config.containers, heading.get_text(strip=True)),
            ))

        return collection_days
