import pytest
import os
import sys
from datetime import date
from urllib.parse import parse_qs

# Update sys.path to include the project root
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))
sys.path.insert(0, project_root)

from bindays.collectors.councils import EAST_LOTHIAN
from bindays.collectors.vendors.ics_calendar import IcsCalendarCollector, IcsCalendarConfig, summary_pattern
from bindays.data_models import Address, Container, ContainerColour
from bindays.exceptions import UpstreamDataError
from bindays.protocol import StepResponse

FOOD_AND_RECYCLING, NON_RECYCLABLE = EAST_LOTHIAN.config.containers

BASE_URL = "https://collectiondates.eastlothian.gov.uk/waste-collection-schedule"
TODAY = date(2025, 10, 8)
ADDRESS = Address(property="1 Test Street, Haddington", postcode="EH41 3HA", uid="123456")


def ics(*events):
    lines = ["BEGIN:VCALENDAR", "VERSION:2.0", "PRODID:-//Test//Waste//EN"]
    for uid, start, summary in events:
        lines += ["BEGIN:VEVENT", f"UID:{uid}"]
        if start:
            lines.append(start)
        lines += [f"SUMMARY:{summary}", "END:VEVENT"]
    lines.append("END:VCALENDAR")
    return "\r\n".join(lines) + "\r\n"


MOCK_POSTCODE_PAGE = """
<form id="localgov-waste-collection-postcode-form">
  <input type="hidden" name="form_build_id" value="form-abc123"/>
  <input type="text" name="postcode"/>
</form>
"""
MOCK_ADDRESS_PAGE = """
<select name="uprn">
  <option value="">Select your address</option>
  <option value="123456">1 Test Street, Haddington</option>
  <option value="123457"> 2 Test Street, Haddington </option>
</select>
"""


def test_address_steps():
    assert EAST_LOTHIAN.get_addresses("EH41 3HA", today=TODAY).next_step_request.url == BASE_URL

    request = EAST_LOTHIAN.get_addresses("eh413ha", StepResponse(step_id=1, content=MOCK_POSTCODE_PAGE),
                                         today=TODAY).next_step_request
    assert request.step_id == 2
    assert request.method == "POST"
    assert parse_qs(request.body) == {
        "postcode": ["EH41 3HA"],
        "op": ["Find"],
        "form_build_id": ["form-abc123"],
        "form_id": ["localgov_waste_collection_postcode_form"],
    }


def test_postcode_page_without_build_id():
    with pytest.raises(UpstreamDataError):
        EAST_LOTHIAN.get_addresses("EH41 3HA", StepResponse(step_id=1, content="<form></form>"), today=TODAY)


def test_addresses_parsed_from_options():
    outcome = EAST_LOTHIAN.get_addresses("EH41 3HA", StepResponse(step_id=2, content=MOCK_ADDRESS_PAGE),
                                         today=TODAY)
    assert outcome.result == [
        ADDRESS,
        Address(property="2 Test Street, Haddington", postcode="EH41 3HA", uid="123457"),
    ]


def test_bin_days_download_calendar():
    request = EAST_LOTHIAN.get_bin_days(ADDRESS, today=TODAY).next_step_request
    assert request.url == f"{BASE_URL}/download/123456"


def test_bin_days_parsed_from_calendar():
    content = ics(
        ("1", "DTSTART;VALUE=DATE:20251021", "Collection of lidded containers for Non recyclable waste"),
        ("2", "DTSTART;VALUE=DATE:20251014", "Collection of lidded containers for Food waste and recycling"),
        ("3", "DTSTART:20251028T070000Z", "Collection of lidded containers for Food waste and recycling"),
        ("4", "DTSTART;VALUE=DATE:20251001", "Collection of lidded containers for Non recyclable waste"),
        ("5", "DTSTART;VALUE=DATE:20251015", "Bank holiday: no change to collections"),
    )
    outcome = EAST_LOTHIAN.get_bin_days(ADDRESS, StepResponse(step_id=1, content=content), today=TODAY)

    assert [(day.date, day.containers) for day in outcome.result] == [
        (date(2025, 10, 14), (FOOD_AND_RECYCLING,)),
        (date(2025, 10, 21), (NON_RECYCLABLE,)),
        (date(2025, 10, 28), (FOOD_AND_RECYCLING,)),
    ]


def test_event_without_start_date():
    content = ics(("1", None, "Collection of lidded containers for Non recyclable waste"))
    with pytest.raises(UpstreamDataError, match="DTSTART"):
        EAST_LOTHIAN.get_bin_days(ADDRESS, StepResponse(step_id=1, content=content), today=TODAY)


def test_empty_calendar_download():
    with pytest.raises(UpstreamDataError):
        EAST_LOTHIAN.get_bin_days(ADDRESS, StepResponse(step_id=1, content=""), today=TODAY)


def test_summary_used_as_label_without_pattern():
    garden = Container(name="Garden Waste", colour=ContainerColour.BROWN, keys=("Garden",))
    collector = IcsCalendarCollector(IcsCalendarConfig(
        name="Test Council", website_url="https://www.test.gov.uk/", gov_uk_id="test",
        base_url="https://waste.test.gov.uk", containers=(garden,),
    ))
    content = ics(("1", "DTSTART;VALUE=DATE:20251020", "Garden waste collection"))

    outcome = collector.get_bin_days(ADDRESS, StepResponse(step_id=1, content=content), today=TODAY)
    assert [(day.date, day.containers) for day in outcome.result] == [(date(2025, 10, 20), (garden,))]


def test_summary_pattern_needs_service_group():
    assert summary_pattern(r"for (?P<service>.+)$").search("Collection for Garden").group("service") == "Garden"
    with pytest.raises(ValueError):
        summary_pattern(r"for (.+)$")


def test_event_with_unreadable_start_date():
    content = ics(("1", "DTSTART;VALUE=DATE:notadate", "Collection of lidded containers for Non recyclable waste"))
    with pytest.raises(UpstreamDataError, match="DTSTART"):
        EAST_LOTHIAN.get_bin_days(ADDRESS, StepResponse(step_id=1, content=content), today=TODAY)
