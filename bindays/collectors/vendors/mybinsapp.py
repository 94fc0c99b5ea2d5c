"""
MyBinsApp public API, shared by several councils and keyed by authority id.
"""
import calendar
import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, List, Sequence, Tuple

from ..base_collector import Collector, CollectorConfig
from ...data_models import Address, CollectionDay, Container
from ...exceptions import UpstreamDataError
from ...processing import match_containers, parse_json, require_field
from ...protocol import StepHandler, StepRequest, StepResponse

logger = logging.getLogger(__name__)

API_BASE_URL = "https://api.mybinsapp.co.uk"
SCHEDULE_MONTHS = 2
JSON_HEADERS = {"content-type": "application/json"}


@dataclass(frozen=True)
class MyBinsAppConfig(CollectorConfig):
    authority_id: int = 0
    containers: Tuple[Container, ...] = field(default_factory=tuple)


def add_months(start: date, months: int) -> date:
    """Adds calendar months, clamping the day to the end of shorter months."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


class MyBinsAppCollector(Collector):
    """Collector for councils using the MyBinsApp API."""

    def __init__(self, config: MyBinsAppConfig):
        super().__init__(config)

    def address_steps(self, postcode: str, today: date) -> Sequence[StepHandler]:
        return [
            lambda response: self._post(1, "general/getAddresses", {
                "authority_id": self.config.authority_id,
                "query": postcode.replace(" ", "").upper(),
            }),
            lambda response: self._parse_addresses(response),
        ]

    def bin_day_steps(self, address: Address, today: date) -> Sequence[StepHandler]:
        return [
            lambda response: self._post(1, "yourBin/getScheduler", {
                "addressId": address.uid,
                "authority_id": self.config.authority_id,
                "from": today.isoformat(),
                "to": add_months(today, SCHEDULE_MONTHS).isoformat(),
            }),
            lambda response: self._parse_bin_days(address, response),
        ]

    @staticmethod
    def _post(step_id: int, path: str, payload: dict) -> StepRequest:
        return StepRequest(
            step_id=step_id,
            url=f"{API_BASE_URL}/{path}",
            method="POST",
            headers=JSON_HEADERS,
            body=json.dumps(payload),
        )

    @staticmethod
    def _data_array(response: StepResponse) -> List[Any]:
        root = parse_json(response)
        if not require_field(root, "success", "MyBinsApp response"):
            raise UpstreamDataError(f"MyBinsApp reported failure on step {response.step_id}")
        return require_field(root, "dataArray", "MyBinsApp response")

    def _parse_addresses(self, response: StepResponse) -> List[Address]:
        addresses = []
        for item in self._data_array(response):
            addresses.append(Address(
                property=str(require_field(item, "address_line", "MyBinsApp address")).strip(),
                postcode=str(require_field(item, "postcode", "MyBinsApp address")).strip(),
                uid=str(require_field(item, "address_id", "MyBinsApp address")).strip(),
            ))
        return addresses

    def _parse_bin_days(self, address: Address, response: StepResponse) -> List[CollectionDay]:
        collection_days = []
        for item in self._data_array(response):
            title = (item.get("title") or "").strip()
            start = (item.get("start") or "").strip()
            if not title or not start:
                continue

            # e.g. "2026-01-26T16:00:00+00:00"
            try:
                collection_date = datetime.fromisoformat(start).date()
            except ValueError as e:
                raise UpstreamDataError(f"MyBinsApp start '{start}' is not an ISO date: {e}") from e

            collection_days.append(CollectionDay(
                date=collection_date,
                address=address,
                containers=match_containers(self.config.containers, title),
            ))
        return collection_days
