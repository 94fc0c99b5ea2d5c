import json
import logging
import re
from datetime import date
from typing import Dict, List, Optional, Sequence

import requests
from bs4 import BeautifulSoup

from .base_collector import Collector, CollectorConfig, USER_AGENT
from ..data_models import Address, CollectionDay, Container, ContainerColour, ContainerType
from ..exceptions import InvalidPostcodeError, UpstreamDataError
from ..processing import (
    canonicalize_postcode,
    cookie_header_from_set_cookie,
    encode_form_body,
    infer_year,
    match_containers,
    require_field,
)
from ..protocol import StepHandler, StepRequest, StepResponse
from ..uid import CompositeUid

logger = logging.getLogger(__name__)

# --- Configuration ---
BASE_URL = "https://www.gateshead.gov.uk"
BIN_CHECKER_URL = f"{BASE_URL}/article/3150/Bin-collection-day-checker"
ADDRESS_LOOKUP_URL = f"{BASE_URL}/apiserver/postcode"
PROCESS_SUBMISSION_URL = f"{BASE_URL}/apiserver/formsservice/http/processsubmission"
HEADERS = {
    'User-Agent': USER_AGENT,
    'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,image/apng,*/*;q=0.8',
    'Accept-Language': 'en-GB,en;q=0.9',
}
JSONP_CALLBACK = "getAddresses"
FORM_PREFIX = "BINCOLLECTIONCHECKER"

GATESHEAD = CollectorConfig(
    name="Gateshead Council",
    website_url="https://www.gateshead.gov.uk/",
    gov_uk_id="gateshead",
)

# Link text may be the full service name or a short form ("Household", "Garden")
CONTAINERS = (
    Container(name="Household Waste", colour=ContainerColour.GREEN, keys=("Household",)),
    Container(name="Garden Waste", colour=ContainerColour.BROWN, keys=("Garden",)),
    Container(name="Glass, Plastic and Cans Recycling", colour=ContainerColour.BLUE,
              keys=("Glass, plastic and cans",)),
    Container(name="Paper and Cardboard Recycling", colour=ContainerColour.LIGHT_BLUE,
              keys=("Paper and cardboard",), type=ContainerType.BIN),
)

# The form needs the address text back alongside the UDPRN
ADDRESS_UID = CompositeUid("udprn", "address_text", delimiter="|")

ONLY_SUFFIX = re.compile(r"\s+only$", re.IGNORECASE)


def _build_url(url: str, params: Dict[str, str]) -> str:
    return requests.Request("GET", url, params=params).prepare().url


class GatesheadCouncil(Collector):
    """Collector for the Gateshead Council bin collection day checker."""

    def __init__(self, config: CollectorConfig = GATESHEAD, containers: Sequence[Container] = CONTAINERS):
        super().__init__(config)
        self.containers = tuple(containers)

    # --- Addresses ---

    def address_steps(self, postcode: str, today: date) -> Sequence[StepHandler]:
        return [
            lambda response: self._request_addresses(postcode),
            lambda response: self._parse_addresses(postcode, response),
        ]

    def _request_addresses(self, postcode: str) -> StepRequest:
        jsonrpc_payload = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "postcodeSearch",
            "params": {"provider": "EndPoint", "postcode": postcode},
        }
        params = {'jsonrpc': json.dumps(jsonrpc_payload), 'callback': JSONP_CALLBACK}
        return StepRequest(
            step_id=1,
            url=_build_url(ADDRESS_LOOKUP_URL, params),
            method="GET",
            headers=HEADERS,
        )

    def _parse_addresses(self, postcode: str, response: StepResponse) -> List[Address]:
        json_data = self._decode_jsonp(response.content)
        results = require_field(json_data, 'result', "address lookup")
        if not isinstance(results, list):
            raise UpstreamDataError("Address lookup 'result' is not a list")

        addresses = []
        for address_obj in results:
            udprn = str(require_field(address_obj, 'udprn', "address lookup result"))
            line1 = (address_obj.get('line1') or '').strip()
            line2 = (address_obj.get('line2') or '').strip()
            addr_postcode = (address_obj.get('postcode') or '').strip() or postcode
            address_text = f"{line1} {line2}, {addr_postcode}".strip().replace(" ,", ",")
            try:
                canonical_postcode = canonicalize_postcode(addr_postcode)
            except InvalidPostcodeError as e:
                raise UpstreamDataError(f"Address lookup returned an invalid postcode for udprn {udprn}: {e}") from e
            addresses.append(Address(
                property=f"{line1} {line2}".strip(),
                street=line2 or None,
                postcode=canonical_postcode,
                uid=ADDRESS_UID.encode(udprn=udprn, address_text=address_text),
            ))

        logger.info(f"Gateshead: found {len(addresses)} addresses for {postcode}")
        return addresses

    @staticmethod
    def _decode_jsonp(text: str) -> dict:
        text = (text or "").strip().rstrip(";")
        prefix = f"{JSONP_CALLBACK}("
        if not text.startswith(prefix) or not text.endswith(")"):
            raise UpstreamDataError(f"Address lookup did not return a {JSONP_CALLBACK}(...) JSONP payload")
        try:
            return json.loads(text[len(prefix):-1])
        except ValueError as e:
            raise UpstreamDataError(f"Could not decode address lookup JSONP: {e}") from e

    # --- Bin days ---

    def bin_day_steps(self, address: Address, today: date) -> Sequence[StepHandler]:
        uid_fields = ADDRESS_UID.decode(address.uid)
        return [
            lambda response: StepRequest(step_id=1, url=BIN_CHECKER_URL, method="GET", headers=HEADERS),
            lambda response: self._request_schedule(address, uid_fields, response),
            lambda response: self._parse_bin_schedule(address, response.content, today),
        ]

    def _request_schedule(self, address: Address, uid_fields: Dict[str, str],
                          response: StepResponse) -> StepRequest:
        session_data = self._get_form_session_data(response.content)
        form_data = {
            f'{FORM_PREFIX}_PAGESESSIONID': session_data['pageSessionId'],
            f'{FORM_PREFIX}_SESSIONID': session_data['fsid'],
            f'{FORM_PREFIX}_NONCE': session_data['nonce'],
            f'{FORM_PREFIX}_VARIABLES': 'e30=',
            f'{FORM_PREFIX}_PAGENAME': 'ADDRESSSEARCH',
            f'{FORM_PREFIX}_PAGEINSTANCE': '0',
            f'{FORM_PREFIX}_ADDRESSSEARCH_ASSISTOFF': 'false',
            f'{FORM_PREFIX}_ADDRESSSEARCH_ASSISTON': 'true',
            f'{FORM_PREFIX}_ADDRESSSEARCH_STAFFLAYOUT': 'false',
            f'{FORM_PREFIX}_ADDRESSSEARCH_ADDRESSLOOKUPPOSTCODE': address.postcode or '',
            f'{FORM_PREFIX}_ADDRESSSEARCH_ADDRESSLOOKUPADDRESS': '',
            f'{FORM_PREFIX}_ADDRESSSEARCH_FIELD125': 'false',
            f'{FORM_PREFIX}_ADDRESSSEARCH_UPRN': uid_fields['udprn'],
            f'{FORM_PREFIX}_ADDRESSSEARCH_ADDRESSTEXT': uid_fields['address_text'],
            f'{FORM_PREFIX}_FORMACTION_NEXT': f'{FORM_PREFIX}_ADDRESSSEARCH_NEXTBUTTON',
        }
        params = {
            'pageSessionId': session_data['pageSessionId'],
            'fsid': session_data['fsid'],
            'fsn': session_data['nonce'],
        }
        headers = dict(HEADERS)
        headers['Content-Type'] = 'application/x-www-form-urlencoded'
        cookie = cookie_header_from_set_cookie(response.headers.get('set-cookie'))
        if cookie:
            headers['Cookie'] = cookie

        return StepRequest(
            step_id=2,
            url=_build_url(PROCESS_SUBMISSION_URL, params),
            method="POST",
            headers=headers,
            body=encode_form_body(form_data),
        )

    @staticmethod
    def _get_form_session_data(page_html: str) -> Dict[str, str]:
        soup = BeautifulSoup(page_html or "", 'html.parser')
        session_data = {}
        for key, field_name in (('pageSessionId', 'PAGESESSIONID'), ('fsid', 'SESSIONID'), ('nonce', 'NONCE')):
            field_input = soup.find('input', {'name': f'{FORM_PREFIX}_{field_name}'})
            if field_input is None or not field_input.get('value'):
                raise UpstreamDataError(f"Bin checker page is missing the {FORM_PREFIX}_{field_name} field")
            session_data[key] = field_input.get('value')
        return session_data

    def _parse_bin_schedule(self, address: Address, schedule_html: str, today: date) -> List[CollectionDay]:
        """Parses the bin collection schedule table into CollectionDay objects."""
        soup = BeautifulSoup(schedule_html or "", 'html.parser')
        table = soup.find('table', class_='bincollections__table')
        if table is None:
            if soup.find(string=lambda t: t and "no collection dates found" in t.lower()):
                logger.info(f"Gateshead: no collection dates found for uid {address.uid}")
                return []
            raise UpstreamDataError("Bin schedule page has neither a collections table nor a no-dates message")

        collection_days = []
        current_month: Optional[str] = None
        for row in table.find_all('tr'):
            month_header = row.find('th')
            if month_header:
                current_month = month_header.get_text(strip=True)
                continue
            cells = row.find_all('td')
            if len(cells) != 3 or not current_month:
                continue

            day_of_month = cells[0].get_text(strip=True)
            collection_date = infer_year(f"{day_of_month} {current_month}", today)

            containers = []
            for link in cells[2].find_all('a', class_='bincollections__link'):
                # "Recycling - Paper and cardboard only" -> "Recycling - Paper and cardboard"
                label = ONLY_SUFFIX.sub("", link.get_text(strip=True))
                containers.extend(match_containers(self.containers, label))

            collection_days.append(CollectionDay(date=collection_date, address=address, containers=tuple(containers)))

        return collection_days
