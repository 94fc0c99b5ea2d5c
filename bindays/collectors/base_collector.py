import abc
import logging
from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Sequence

from ..data_models import Address, CollectionDay
from ..processing import canonicalize_postcode, normalize_collection_days, today_in
from ..protocol import ConversationResult, StepHandler, StepResponse, run_step

logger = logging.getLogger(__name__)

GOV_UK_BASE_URL = "https://www.gov.uk/rubbish-collection-day"

# Some councils reject requests without a browser-like user agent
USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:137.0) Gecko/20100101 Firefox/137.0"


@dataclass(frozen=True)
class CollectorConfig:
    """Identity shared by every collector configuration."""
    name: str
    website_url: str
    gov_uk_id: str


class Collector(abc.ABC):
    """
    Abstract base class for a council collector.

    Subclasses describe each operation as an ordered list of step handlers;
    this class dispatches responses to them and normalizes bin day results.
    """

    def __init__(self, config: CollectorConfig):
        self.config = config

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def website_url(self) -> str:
        return self.config.website_url

    @property
    def gov_uk_id(self) -> str:
        return self.config.gov_uk_id

    @property
    def gov_uk_url(self) -> str:
        return f"{GOV_UK_BASE_URL}/{self.gov_uk_id}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.gov_uk_id!r})"

    def get_addresses(self, postcode: str, response: Optional[StepResponse] = None,
                      today: Optional[date] = None) -> ConversationResult:
        """
        Runs one step of the address search for a postcode.

        Args:
            postcode: The postcode to search, in any spacing or case.
            response: The response to the previously returned request, or None to start.
            today: Reference date for the conversation (defaults to today in UK time).

        Returns:
            A ConversationResult holding the next request or the list of addresses.
        """
        postcode = canonicalize_postcode(postcode)
        today = today or today_in()
        logger.debug(f"{self.name}: address step {response.step_id if response else 0} for {postcode}")
        return run_step(self.address_steps(postcode, today), response)

    def get_bin_days(self, address: Address, response: Optional[StepResponse] = None,
                     today: Optional[date] = None) -> ConversationResult:
        """
        Runs one step of the bin day lookup for an address.

        The terminal result is always future-only, merged by date and sorted.
        """
        today = today or today_in()
        logger.debug(f"{self.name}: bin day step {response.step_id if response else 0} for uid {address.uid}")
        result = run_step(self.bin_day_steps(address, today), response)
        if not result.is_complete:
            return result
        collection_days: List[CollectionDay] = normalize_collection_days(result.result, today)
        logger.info(f"{self.name}: {len(collection_days)} upcoming collection days for uid {address.uid}")
        return ConversationResult.done(collection_days)

    @abc.abstractmethod
    def address_steps(self, postcode: str, today: date) -> Sequence[StepHandler]:
        """Step handlers for the address search; the last one returns a list of Address."""
        pass

    @abc.abstractmethod
    def bin_day_steps(self, address: Address, today: date) -> Sequence[StepHandler]:
        """Step handlers for the bin day lookup; the last one returns raw CollectionDay objects."""
        pass
