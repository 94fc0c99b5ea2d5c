import pytest
import json
import os
import sys
from datetime import date
from urllib.parse import parse_qsl

# Update sys.path to include the project root
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))
sys.path.insert(0, project_root)

from bindays.collectors.vendors.fcc import FccCollector, FccConfig
from bindays.data_models import Address, Container, ContainerColour, ContainerType
from bindays.exceptions import UpstreamDataError
from bindays.protocol import StepResponse

GENERAL = Container(name="General Waste", colour=ContainerColour.BLACK, keys=("Refuse",))
RECYCLING = Container(name="Recycling", colour=ContainerColour.BLUE, keys=("Recycling",))
FOOD = Container(name="Food Waste", colour=ContainerColour.GREEN, keys=("Food",), type=ContainerType.CADDY)

CONFIG = FccConfig(
    name="Test District Council",
    website_url="https://www.test.gov.uk/",
    gov_uk_id="test-district",
    base_url="https://waste.test.gov.uk/",
    collection_details_endpoint="ajaxprocessor/getcollectiondetails",
    containers=(GENERAL, RECYCLING, FOOD),
)
TODAY = date(2025, 10, 8)
ADDRESS = Address(property="1 Test Street", postcode="AB1 2CD", uid="100000000001")

LANDING_PAGE = '<form><input type="hidden" name="fcc_session_token" value="tok123"/></form>'


def tile(service, collection_date):
    return [f'<div class="tile"><h3 class="title"> {service} </h3>'
            f'<p>Your next scheduled collection is <b> {collection_date} </b></p></div>']


@pytest.fixture
def collector():
    return FccCollector(CONFIG)


def test_address_steps_start_at_landing_page(collector):
    request = collector.get_addresses("AB1 2CD", today=TODAY).next_step_request
    assert request.step_id == 1
    assert request.url == "https://waste.test.gov.uk/"


def test_address_search_posts_session_token(collector):
    request = collector.get_addresses("ab12cd", StepResponse(step_id=1, content=LANDING_PAGE),
                                      today=TODAY).next_step_request

    assert request.step_id == 2
    assert request.url == "https://waste.test.gov.uk/ajaxprocessor/getaddresses"
    assert request.headers["cookie"] == "fcc_session_cookie=tok123"
    assert request.headers["x-requested-with"] == "XMLHttpRequest"
    assert parse_qsl(request.body) == [("fcc_session_token", "tok123"), ("postcode", "AB1 2CD")]


def test_session_token_falls_back_to_cookie(collector):
    response = StepResponse(step_id=1, content="<html></html>",
                            headers={"set-cookie": "fcc_session_cookie=fromcookie; path=/"})
    request = collector.get_addresses("AB1 2CD", response, today=TODAY).next_step_request
    assert request.headers["cookie"] == "fcc_session_cookie=fromcookie"


def test_missing_session_token(collector):
    with pytest.raises(UpstreamDataError):
        collector.get_addresses("AB1 2CD", StepResponse(step_id=1, content="<html></html>"), today=TODAY)


def test_addresses_parsed_from_json_object(collector):
    content = json.dumps({"addresses": {
        "0": ["100000000001", "1 Test Street, Testville"],
        "1": ["100000000002", "2 Test Street, Testville"],
    }})
    outcome = collector.get_addresses("AB1 2CD", StepResponse(step_id=2, content=content), today=TODAY)

    assert outcome.result == [
        Address(property="1 Test Street, Testville", postcode="AB1 2CD", uid="100000000001"),
        Address(property="2 Test Street, Testville", postcode="AB1 2CD", uid="100000000002"),
    ]


def test_addresses_missing_key(collector):
    with pytest.raises(UpstreamDataError, match="addresses"):
        collector.get_addresses("AB1 2CD", StepResponse(step_id=2, content="{}"), today=TODAY)


def test_bin_days_post_uprn(collector):
    request = collector.get_bin_days(ADDRESS, StepResponse(step_id=1, content=LANDING_PAGE),
                                     today=TODAY).next_step_request
    assert request.url == "https://waste.test.gov.uk/ajaxprocessor/getcollectiondetails"
    assert parse_qsl(request.body) == [("fcc_session_token", "tok123"), ("uprn", "100000000001")]


def test_bin_days_parsed_from_tiles(collector):
    content = json.dumps({"binCollections": {"tile": [
        tile("Recycling Collection Service", "Friday, 24 October 2025"),
        tile("Refuse Collection Service", "Friday, 17 October 2025"),
        tile("Food Waste Collection Service", "Friday, 17 October 2025"),
        tile("Bulky Waste", "Monday, 6 October 2025"),
    ]}})
    outcome = collector.get_bin_days(ADDRESS, StepResponse(step_id=2, content=content), today=TODAY)

    assert [(day.date, day.containers) for day in outcome.result] == [
        (date(2025, 10, 17), (GENERAL, FOOD)),
        (date(2025, 10, 24), (RECYCLING,)),
    ]


def test_bin_days_tile_without_date(collector):
    content = json.dumps({"binCollections": {"tile": [['<h3>Recycling</h3><p>No collections</p>']]}})
    with pytest.raises(UpstreamDataError, match="Recycling"):
        collector.get_bin_days(ADDRESS, StepResponse(step_id=2, content=content), today=TODAY)
