"""
Binzone eBase forms.

The form session starts with a redirect that has to be trapped (not followed)
so its Location and cookies can be read. The session cookie and the form's
ebz key then travel in the step metadata.
"""
import logging
import re
from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Sequence, Tuple

from bs4 import BeautifulSoup

from ..base_collector import Collector, CollectorConfig
from ...data_models import Address, CollectionDay, Container, ContainerColour, ContainerType
from ...exceptions import UpstreamDataError
from ...processing import (
    cookie_header_from_set_cookie,
    encode_form_body,
    infer_year,
    match_containers,
    require_header,
    require_metadata,
)
from ...protocol import StepHandler, StepOptions, StepRequest, StepResponse

logger = logging.getLogger(__name__)

FORM_ID = "BINZONE_DESKTOP"
FORM_STACK = "BINZONE_DESKTOP:f267e852-5fff-456e-96d7-83cd429c5109"
SEARCH_INPUTS = (
    "ICTRL:2:_:A,ACTRL:20:_,ACTRL:24:_,ICTRL:70:_:A,ICTRL:31:_:A,ICTRL:32:_:A,"
    "APAGE:E.h,APAGE:B.h,APAGE:N.h,APAGE:S.h,APAGE:R.h"
)
FORM_HEADERS = {"content-type": "application/x-www-form-urlencoded"}

EBZ_PATTERN = re.compile(r"ebz=([^&]+)")
ADDRESS_UID_PATTERN = re.compile(r"^CTRL:63:_:D:\d+$")
BIN_DETAILS_PATTERN = re.compile(r'class="binextra">\s*(?P<date>[^<]+?)\s*-<br>\s*(?P<bins>[\s\S]+?)<br>')
BIN_SEPARATOR_PATTERN = re.compile(r",| and ")

DEFAULT_CONTAINERS = (
    Container(name="Rubbish", colour=ContainerColour.BLACK, keys=("grey bin",)),
    Container(name="Recycling", colour=ContainerColour.GREEN, keys=("green bin",)),
    Container(name="Food Waste", colour=ContainerColour.GREEN, keys=("food bin",), type=ContainerType.CADDY),
    Container(name="Garden Waste", colour=ContainerColour.BROWN, keys=("garden waste bin",)),
    Container(name="Small Electrical Items", colour=ContainerColour.GREY, keys=("small electrical items",),
              type=ContainerType.BAG),
    Container(name="Textiles", colour=ContainerColour.GREY, keys=("textiles",), type=ContainerType.BAG),
)


@dataclass(frozen=True)
class BinzoneConfig(CollectorConfig):
    eform_base_url: str = ""
    service_id: str = ""
    containers: Optional[Tuple[Container, ...]] = None


class BinzoneCollector(Collector):
    """Collector for councils whose bin days sit behind a Binzone eBase form."""

    def __init__(self, config: BinzoneConfig):
        super().__init__(config)
        self.containers = config.containers or DEFAULT_CONTAINERS

    @property
    def _form_url(self) -> str:
        return f"{self.config.eform_base_url}/ebase/{FORM_ID}.eb"

    def address_steps(self, postcode: str, today: date) -> Sequence[StepHandler]:
        return [
            lambda response: self._request_session_redirect(),
            lambda response: self._follow_session_redirect(response),
            lambda response: self._search_postcode(postcode, response),
            lambda response: self._parse_addresses(postcode, response),
        ]

    def bin_day_steps(self, address: Address, today: date) -> Sequence[StepHandler]:
        return [
            lambda response: self._request_session_redirect(),
            lambda response: self._follow_session_redirect(response),
            lambda response: self._search_postcode(address.postcode or "", response),
            lambda response: self._select_address(address, response),
            lambda response: self._parse_bin_days(address, response, today),
        ]

    # --- Session ---

    def _request_session_redirect(self) -> StepRequest:
        return StepRequest(
            step_id=1,
            url=f"{self.config.eform_base_url}/ebase/ufsmain?formid={FORM_ID}&SOVA_TAG={self.config.service_id}",
            method="GET",
            options=StepOptions(follow_redirects=False),
        )

    def _follow_session_redirect(self, response: StepResponse) -> StepRequest:
        cookie = cookie_header_from_set_cookie(require_header(response, "set-cookie"))
        location = require_header(response, "location")
        if location.startswith("http"):
            redirect_url = location
        else:
            redirect_url = f"{self.config.eform_base_url}/ebase/{location.lstrip('/')}"

        return StepRequest(
            step_id=2,
            url=redirect_url,
            method="GET",
            headers={"cookie": cookie},
            options=StepOptions(metadata={"cookie": cookie, "referer": redirect_url}),
        )

    def _search_postcode(self, postcode: str, response: StepResponse) -> StepRequest:
        cookie = require_metadata(response, "cookie")
        referer = require_metadata(response, "referer")
        ebz_match = EBZ_PATTERN.search(referer)
        if ebz_match is None:
            raise UpstreamDataError(f"Binzone redirect '{referer}' has no ebz form key")
        ebs = ebz_match.group(1)

        body = encode_form_body({
            "formid": f"/Forms/{FORM_ID}",
            "ebs": ebs,
            "formstack": FORM_STACK,
            "pageSeq": "1",
            "pageId": "WHERE_DO_YOU_LIVE",
            "formStateId": "1",
            "CTRL:2:_:A": postcode,
            "CTRL:20:_": "Search",
            "HID:inputs": SEARCH_INPUTS,
        })
        return StepRequest(
            step_id=3,
            url=f"{self._form_url}?ebz={ebs}",
            method="POST",
            headers={**FORM_HEADERS, "cookie": cookie},
            body=body,
            options=StepOptions(metadata={"cookie": cookie, "ebs": ebs}),
        )

    # --- Addresses ---

    def _parse_addresses(self, postcode: str, response: StepResponse) -> List[Address]:
        soup = BeautifulSoup(response.content or "", "html.parser")
        addresses = []
        for link in soup.find_all("a", class_=lambda c: c and "eb-58-fieldHyperlink" in c):
            uid_control = link.find_next(attrs={"name": ADDRESS_UID_PATTERN})
            if uid_control is None:
                continue
            addresses.append(Address(
                property=link.get_text(strip=True),
                postcode=postcode,
                uid=uid_control["name"],
            ))
        return addresses

    # --- Bin days ---

    def _select_address(self, address: Address, response: StepResponse) -> StepRequest:
        cookie = require_metadata(response, "cookie")
        ebs = require_metadata(response, "ebs")
        if not address.uid:
            raise UpstreamDataError("Binzone address has no control uid to select")

        hid_input = BeautifulSoup(response.content or "", "html.parser").find("input", {"name": "HID:inputs"})
        if hid_input is None or not hid_input.get("value"):
            raise UpstreamDataError("Binzone address page has no HID:inputs value")

        body = encode_form_body({
            "formid": f"/Forms/{FORM_ID}",
            "ebs": ebs,
            "formstack": FORM_STACK,
            "pageSeq": "2",
            "pageId": "_ADDRESS",
            "formStateId": "1",
            f"{address.uid}.x": "10",
            f"{address.uid}.y": "10",
            "HID:inputs": hid_input["value"],
        })
        return StepRequest(
            step_id=4,
            url=f"{self._form_url}?ebz={ebs}",
            method="POST",
            headers={**FORM_HEADERS, "cookie": cookie},
            body=body,
        )

    def _parse_bin_days(self, address: Address, response: StepResponse, today: date) -> List[CollectionDay]:
        collection_days = []
        for match in BIN_DETAILS_PATTERN.finditer(response.content or ""):
            # e.g. "Thursday 27 November"
            collection_date = infer_year(match.group("date").strip(), today, "%A %d %B")

            # Strip markup such as the garden waste hyperlink
            bins_text = BeautifulSoup(match.group("bins"), "html.parser").get_text()

            containers = []
            for bin_name in BIN_SEPARATOR_PATTERN.split(bins_text):
                if bin_name.strip():
                    containers.extend(match_containers(self.containers, bin_name))

            collection_days.append(CollectionDay(date=collection_date, address=address, containers=tuple(containers)))
        return collection_days
