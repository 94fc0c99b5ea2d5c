"""
Per-council configuration. Councils on a shared platform are plain vendor
collector instances; only bespoke sites get their own collector class.
"""
from .gateshead_council import GatesheadCouncil
from .vendors.binzone import BinzoneCollector, BinzoneConfig
from .vendors.ics_calendar import IcsCalendarCollector, IcsCalendarConfig, summary_pattern
from .vendors.itouchvision import ITouchVisionCollector, ITouchVisionConfig
from ..data_models import Container, ContainerColour, ContainerType

EAST_LOTHIAN = IcsCalendarCollector(IcsCalendarConfig(
    name="East Lothian Council",
    website_url="https://www.eastlothian.gov.uk/",
    gov_uk_id="east-lothian",
    base_url="https://collectiondates.eastlothian.gov.uk/waste-collection-schedule",
    containers=(
        Container(name="Food waste and recycling", colour=ContainerColour.GREY, keys=("Food waste and recycling",)),
        Container(name="Non recyclable waste", colour=ContainerColour.GREEN, keys=("Non recyclable waste",)),
    ),
    summary_pattern=summary_pattern(r"lidded containers for (?P<service>.+)$"),
))

GATESHEAD = GatesheadCouncil()

SOMERSET = ITouchVisionCollector(ITouchVisionConfig(
    name="Somerset Council",
    website_url="https://www.somerset.gov.uk/bins-recycling-and-waste/check-my-collection-days/",
    gov_uk_id="somerset",
    api_base_url="https://iweb.itouchvision.com/portal/itouchvision/",
    client_id=129,
    council_id=34493,
    containers=(
        Container(name="Rubbish", colour=ContainerColour.BLACK, keys=("Rubbish",)),
        Container(name="Recycling", colour=ContainerColour.BLUE, keys=("Recycling",)),
        # Food caddies go out with the recycling
        Container(name="Food Waste", colour=ContainerColour.BROWN, keys=("Food", "Recycling"), type=ContainerType.CADDY),
        Container(name="Garden Waste", colour=ContainerColour.GREEN, keys=("Garden",)),
    ),
))

SOUTH_OXFORDSHIRE = BinzoneCollector(BinzoneConfig(
    name="South Oxfordshire District Council",
    website_url="https://www.southoxon.gov.uk/south-oxfordshire-district-council/recycling-rubbish-and-waste/when-is-your-collection-day/",
    gov_uk_id="south-oxfordshire",
    eform_base_url="https://eform.southoxon.gov.uk",
    service_id="SOUTH",
))

VALE_OF_WHITE_HORSE = BinzoneCollector(BinzoneConfig(
    name="Vale of White Horse District Council",
    website_url="https://www.whitehorsedc.gov.uk/java/support/formcall.jsp?F=BINZONE_DESKTOP",
    gov_uk_id="vale-of-white-horse",
    eform_base_url="https://eform.whitehorsedc.gov.uk",
    service_id="VALE",
))

ALL_COLLECTORS = (
    EAST_LOTHIAN,
    GATESHEAD,
    SOMERSET,
    SOUTH_OXFORDSHIRE,
    VALE_OF_WHITE_HORSE,
)
