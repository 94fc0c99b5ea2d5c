import pytest
import json
import os
import sys

# Update sys.path to include the project root
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.insert(0, project_root)

from bindays.collectors.base_collector import CollectorConfig, GOV_UK_BASE_URL
from bindays.collectors.collector_registry import (
    CollectorRegistry,
    create_collector,
    find_collector,
    get_collectors,
)
from bindays.collectors.councils import EAST_LOTHIAN, GATESHEAD, SOMERSET, SOUTH_OXFORDSHIRE, VALE_OF_WHITE_HORSE
from bindays.collectors.gateshead_council import GatesheadCouncil
from bindays.exceptions import CollectorNotFoundError, GovUkIdNotFoundError, InvalidPostcodeError
from bindays.protocol import StepResponse


def test_get_collectors_sorted_by_name():
    assert list(get_collectors()) == [EAST_LOTHIAN, GATESHEAD, SOMERSET, SOUTH_OXFORDSHIRE, VALE_OF_WHITE_HORSE]


@pytest.mark.parametrize("gov_uk_id", ["gateshead", "Gateshead", " GATESHEAD "])
def test_create_collector_is_case_insensitive(gov_uk_id):
    assert create_collector(gov_uk_id) is GATESHEAD


def test_create_collector_unknown():
    with pytest.raises(CollectorNotFoundError) as exc_info:
        create_collector("atlantis")
    assert exc_info.value.gov_uk_id == "atlantis"
    assert isinstance(exc_info.value, ValueError)


def test_registry_rejects_duplicate_ids():
    duplicate = GatesheadCouncil(CollectorConfig(name="Copy", website_url="x", gov_uk_id="GATESHEAD"))
    with pytest.raises(ValueError):
        CollectorRegistry([GATESHEAD, duplicate])


def test_find_collector_posts_postcode_to_gov_uk():
    request = find_collector("ne81hh").next_step_request

    assert request.step_id == 1
    assert request.method == "POST"
    assert request.url == GOV_UK_BASE_URL
    assert json.loads(request.body) == {"postcode": "NE8 1HH"}
    assert request.options.follow_redirects is False


def test_find_collector_from_redirect_location():
    response = StepResponse(step_id=1, status_code=302,
                            headers={"Location": "https://www.gov.uk/rubbish-collection-day/gateshead"})
    outcome = find_collector("NE8 1HH", response)
    assert outcome.is_complete
    assert outcome.result is GATESHEAD


def test_find_collector_from_page_markup():
    content = '<input type="radio" value="https://www.gov.uk/rubbish-collection-day/east-lothian" name="council">'
    outcome = find_collector("EH41 3HA", StepResponse(step_id=1, content=content))
    assert outcome.result is EAST_LOTHIAN


def test_find_collector_unregistered_council():
    response = StepResponse(step_id=1, headers={"location": "https://www.gov.uk/rubbish-collection-day/atlantis"})
    with pytest.raises(CollectorNotFoundError):
        find_collector("NE8 1HH", response)


def test_find_collector_no_id():
    with pytest.raises(GovUkIdNotFoundError):
        find_collector("NE8 1HH", StepResponse(step_id=1, content="<html>We could not find that postcode</html>"))


def test_find_collector_invalid_postcode():
    with pytest.raises(InvalidPostcodeError):
        find_collector("nope")
