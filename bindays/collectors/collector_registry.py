import json
import logging
import re
from typing import Iterable, Optional, Sequence

from .base_collector import Collector, GOV_UK_BASE_URL
from .councils import ALL_COLLECTORS
from ..exceptions import CollectorNotFoundError, GovUkIdNotFoundError
from ..processing import canonicalize_postcode
from ..protocol import ConversationResult, StepOptions, StepRequest, StepResponse, run_step

logger = logging.getLogger(__name__)

GOV_UK_ID_PATTERN = re.compile(r'value="https://www\.gov\.uk/.*?/(?P<gov_uk_id>[\w-]+)"')


class CollectorRegistry:
    """Looks collectors up by their gov.uk id."""

    def __init__(self, collectors: Iterable[Collector] = ALL_COLLECTORS):
        self._collectors = {}
        for collector in collectors:
            key = collector.gov_uk_id.lower()
            if key in self._collectors:
                raise ValueError(f"Duplicate collector for gov.uk ID: {collector.gov_uk_id}")
            self._collectors[key] = collector

    def get_collectors(self) -> Sequence[Collector]:
        return tuple(sorted(self._collectors.values(), key=lambda c: c.name))

    def create_collector(self, gov_uk_id: str) -> Collector:
        """
        Returns the collector registered for a gov.uk id (case-insensitive).

        Raises:
            CollectorNotFoundError: If no collector is registered for the id.
        """
        logger.info(f"Looking up collector for gov.uk ID: '{gov_uk_id}'")
        collector = self._collectors.get((gov_uk_id or "").strip().lower())
        if collector is None:
            logger.error(f"Unknown collector requested: {gov_uk_id}")
            raise CollectorNotFoundError(gov_uk_id)
        return collector

    def find_collector(self, postcode: str, response: Optional[StepResponse] = None) -> ConversationResult:
        """
        Resolves the collector for a postcode through the gov.uk rubbish collection lookup.

        Step 1 posts the postcode to gov.uk without following redirects; the
        council's gov.uk id is the last segment of the Location header, or is
        scraped from the page when gov.uk answers with a chooser page.
        """
        postcode = canonicalize_postcode(postcode)
        steps = [
            lambda response: StepRequest(
                step_id=1,
                url=GOV_UK_BASE_URL,
                method="POST",
                headers={"content-type": "application/json"},
                body=json.dumps({"postcode": postcode}),
                options=StepOptions(follow_redirects=False),
            ),
            lambda response: self.create_collector(self._gov_uk_id(postcode, response)),
        ]
        return run_step(steps, response)

    @staticmethod
    def _gov_uk_id(postcode: str, response: StepResponse) -> str:
        location = response.headers.get("location")
        if location:
            gov_uk_id = location.rstrip("/").split("/")[-1].strip()
            if gov_uk_id:
                return gov_uk_id

        match = GOV_UK_ID_PATTERN.search(response.content or "")
        if match:
            return match.group("gov_uk_id")

        raise GovUkIdNotFoundError(postcode)


_default_registry = CollectorRegistry()


def get_collectors() -> Sequence[Collector]:
    return _default_registry.get_collectors()


def create_collector(gov_uk_id: str) -> Collector:
    return _default_registry.create_collector(gov_uk_id)


def find_collector(postcode: str, response: Optional[StepResponse] = None) -> ConversationResult:
    return _default_registry.find_collector(postcode, response)
