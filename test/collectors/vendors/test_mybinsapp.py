import pytest
import json
import os
import sys
from datetime import date

# Update sys.path to include the project root
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))
sys.path.insert(0, project_root)

from bindays.collectors.vendors.mybinsapp import API_BASE_URL, MyBinsAppCollector, MyBinsAppConfig, add_months
from bindays.data_models import Address, Container, ContainerColour
from bindays.exceptions import UpstreamDataError
from bindays.protocol import StepResponse

GENERAL = Container(name="General Waste", colour=ContainerColour.GREY, keys=("Refuse",))
RECYCLING = Container(name="Recycling", colour=ContainerColour.BLUE, keys=("Recycling",))

CONFIG = MyBinsAppConfig(
    name="Test Borough Council",
    website_url="https://www.test.gov.uk/",
    gov_uk_id="test-borough",
    authority_id=42,
    containers=(GENERAL, RECYCLING),
)
TODAY = date(2025, 12, 31)
ADDRESS = Address(property="1 Test Street", postcode="AB1 2CD", uid="98765")


@pytest.fixture
def collector():
    return MyBinsAppCollector(CONFIG)


@pytest.mark.parametrize("start, months, expected", [
    (date(2025, 10, 8), 2, date(2025, 12, 8)),
    (date(2025, 12, 31), 2, date(2026, 2, 28)),
    (date(2024, 1, 31), 1, date(2024, 2, 29)),
])
def test_add_months(start, months, expected):
    assert add_months(start, months) == expected


def test_address_request(collector):
    request = collector.get_addresses("ab1 2cd", today=TODAY).next_step_request

    assert request.step_id == 1
    assert request.method == "POST"
    assert request.url == f"{API_BASE_URL}/general/getAddresses"
    assert json.loads(request.body) == {"authority_id": 42, "query": "AB12CD"}


def test_addresses_parsed(collector):
    content = json.dumps({"success": True, "dataArray": [
        {"address_line": " 1 Test Street ", "postcode": "AB1 2CD", "address_id": 98765},
        {"address_line": "2 Test Street", "postcode": "AB1 2CD", "address_id": "98766"},
    ]})
    outcome = collector.get_addresses("AB1 2CD", StepResponse(step_id=1, content=content), today=TODAY)

    assert outcome.result == [
        ADDRESS,
        Address(property="2 Test Street", postcode="AB1 2CD", uid="98766"),
    ]


def test_unsuccessful_response(collector):
    content = json.dumps({"success": False, "dataArray": []})
    with pytest.raises(UpstreamDataError):
        collector.get_addresses("AB1 2CD", StepResponse(step_id=1, content=content), today=TODAY)


def test_schedule_request_covers_two_months(collector):
    request = collector.get_bin_days(ADDRESS, today=TODAY).next_step_request

    assert request.url == f"{API_BASE_URL}/yourBin/getScheduler"
    assert json.loads(request.body) == {
        "addressId": "98765",
        "authority_id": 42,
        "from": "2025-12-31",
        "to": "2026-02-28",
    }


def test_schedule_parsed(collector):
    content = json.dumps({"success": True, "dataArray": [
        {"title": "Recycling", "start": "2026-01-08T07:00:00+00:00"},
        {"title": "Refuse", "start": "2026-01-01T07:00:00+00:00"},
        {"title": "", "start": "2026-01-15T07:00:00+00:00"},
        {"title": "Refuse", "start": None},
        {"title": "Refuse", "start": "2025-12-24T07:00:00+00:00"},
    ]})
    outcome = collector.get_bin_days(ADDRESS, StepResponse(step_id=1, content=content), today=TODAY)

    assert [(day.date, day.containers) for day in outcome.result] == [
        (date(2026, 1, 1), (GENERAL,)),
        (date(2026, 1, 8), (RECYCLING,)),
    ]


def test_schedule_bad_start(collector):
    content = json.dumps({"success": True, "dataArray": [{"title": "Refuse", "start": "next week"}]})
    with pytest.raises(UpstreamDataError):
        collector.get_bin_days(ADDRESS, StepResponse(step_id=1, content=content), today=TODAY)
