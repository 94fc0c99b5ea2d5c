"""
LocalGov Drupal waste collection schedule.

Councils on this platform look addresses up through a Drupal postcode form
and publish each property's schedule as a downloadable iCalendar file.
"""
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional, Pattern, Sequence, Tuple

from bs4 import BeautifulSoup
from icalendar import Calendar

from ..base_collector import Collector, CollectorConfig, USER_AGENT
from ...data_models import Address, CollectionDay, Container
from ...exceptions import UpstreamDataError
from ...processing import encode_form_body, match_containers
from ...protocol import StepHandler, StepRequest, StepResponse

logger = logging.getLogger(__name__)

POSTCODE_FORM_ID = "localgov_waste_collection_postcode_form"


@dataclass(frozen=True)
class IcsCalendarConfig(CollectorConfig):
    base_url: str = ""
    containers: Tuple[Container, ...] = field(default_factory=tuple)
    # When set, only events whose summary matches are kept and the "service" group is the label
    summary_pattern: Optional[Pattern] = None


class IcsCalendarCollector(Collector):
    """Collector for LocalGov Drupal sites that export bin days as iCalendar."""

    def __init__(self, config: IcsCalendarConfig):
        super().__init__(config)

    @property
    def _headers(self) -> dict:
        return {"user-agent": USER_AGENT}

    def address_steps(self, postcode: str, today: date) -> Sequence[StepHandler]:
        return [
            lambda response: StepRequest(step_id=1, url=self.config.base_url, method="GET", headers=self._headers),
            lambda response: self._submit_postcode(postcode, response),
            lambda response: self._parse_addresses(postcode, response),
        ]

    def bin_day_steps(self, address: Address, today: date) -> Sequence[StepHandler]:
        return [
            lambda response: StepRequest(
                step_id=1,
                url=f"{self.config.base_url}/download/{address.uid}",
                method="GET",
                headers=self._headers,
            ),
            lambda response: self.parse_calendar(address, response.content),
        ]

    def _submit_postcode(self, postcode: str, response: StepResponse) -> StepRequest:
        soup = BeautifulSoup(response.content or "", "html.parser")
        build_id = soup.find("input", {"name": "form_build_id"})
        if build_id is None or not build_id.get("value"):
            raise UpstreamDataError("Waste collection form has no form_build_id")

        return StepRequest(
            step_id=2,
            url=self.config.base_url,
            method="POST",
            headers={**self._headers, "content-type": "application/x-www-form-urlencoded"},
            body=encode_form_body({
                "postcode": postcode,
                "op": "Find",
                "form_build_id": build_id["value"],
                "form_id": POSTCODE_FORM_ID,
            }),
        )

    @staticmethod
    def _parse_addresses(postcode: str, response: StepResponse) -> List[Address]:
        soup = BeautifulSoup(response.content or "", "html.parser")
        addresses = []
        for option in soup.find_all("option"):
            uid = (option.get("value") or "").strip()
            if not uid:
                continue
            addresses.append(Address(property=option.get_text(strip=True), postcode=postcode, uid=uid))
        return addresses

    def parse_calendar(self, address: Address, ics_text: str) -> List[CollectionDay]:
        """Turns each VEVENT into a CollectionDay keyed on its start date."""
        try:
            calendar = Calendar.from_ical(ics_text or "")
        except ValueError as e:
            raise UpstreamDataError(f"Bin day calendar could not be parsed: {e}") from e

        pattern = self.config.summary_pattern
        collection_days = []
        for event in calendar.walk("VEVENT"):
            summary = str(event.get("summary", "")).strip()
            if pattern is not None:
                match = pattern.search(summary)
                if match is None:
                    continue
                label = match.group("service")
            else:
                label = summary

            start = event.get("dtstart")
            if start is None:
                raise UpstreamDataError(f"Calendar event '{summary}' has no DTSTART")
            try:
                start_value = start.dt
            except ValueError as e:
                raise UpstreamDataError(f"Calendar event '{summary}' has an unreadable DTSTART: {e}") from e
            collection_date = start_value.date() if isinstance(start_value, datetime) else start_value

            collection_days.append(CollectionDay(
                date=collection_date,
                address=address,
                containers=match_containers(self.config.containers, label),
            ))

        logger.debug(f"Parsed {len(collection_days)} calendar events for uid {address.uid}")
        return collection_days


def summary_pattern(expression: str) -> Pattern:
    """Compiles a summary pattern; it must define a 'service' group."""
    compiled = re.compile(expression)
    if "service" not in compiled.groupindex:
        raise ValueError(f"Summary pattern '{expression}' has no 'service' group")
    return compiled
