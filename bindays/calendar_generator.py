import logging
from datetime import timedelta
from typing import Iterable

from icalendar import Alarm, Calendar, Event

from .data_models import Address, CollectionDay

logger = logging.getLogger(__name__)

DEFAULT_ICS_FILENAME = 'bin_collections.ics'


def _address_text(address: Address) -> str:
    parts = [address.property, address.street, address.town, address.postcode]
    return ", ".join(part for part in parts if part)


def generate_calendar_object(collection_days: Iterable[CollectionDay]) -> Calendar:
    """
    Generates an icalendar.Calendar object with one all-day event per collection day.
    """
    cal = Calendar()
    cal.add('prodid', '-//Bin Days//bindays//EN')
    cal.add('version', '2.0')

    collection_days = list(collection_days)
    logger.debug(f"Generating calendar for {len(collection_days)} collection days")

    for day in collection_days:
        bin_names = ", ".join(container.name for container in day.containers)
        bin_details = ", ".join(f"{container.name} ({container.colour.value})" for container in day.containers)

        event = Event()
        event.add('summary', f"Bin collection: {bin_names}")
        event.add('description', f"Bin collection day for: {bin_details}.")
        # All-Day Event
        event.add('dtstart', day.date)
        # Mark as Free Time
        event.add('transp', 'TRANSPARENT')
        event.add('location', _address_text(day.address))

        # Reminder at 7:30 PM the day before
        alarm = Alarm()
        alarm.add('action', 'DISPLAY')
        alarm.add('description', f"Put out {bin_names} tomorrow")
        alarm.add('trigger', timedelta(hours=-4.5))
        event.add_component(alarm)

        cal.add_component(event)

    return cal


def create_ics_file(collection_days: Iterable[CollectionDay], filename: str = DEFAULT_ICS_FILENAME) -> bool:
    """
    Generates and saves an .ics file for the given collection days.

    Returns:
        True if the file was written, False if writing failed.
    """
    cal = generate_calendar_object(collection_days)
    try:
        with open(filename, 'wb') as f:
            f.write(cal.to_ical())
        logger.info(f"Calendar file '{filename}' generated successfully.")
        return True
    except IOError as e:
        logger.error(f"Error writing ICS file '{filename}': {e}")
        return False
