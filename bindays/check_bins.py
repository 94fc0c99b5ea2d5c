import argparse
import json
import logging
import os
import sys
from typing import List, Optional, Sequence

import requests
from dotenv import load_dotenv

from bindays.calendar_generator import create_ics_file
from bindays.collectors.collector_registry import create_collector, find_collector, get_collectors
from bindays.data_models import Address
from bindays.exceptions import BinDaysError
from bindays.processing import DEFAULT_TIMEZONE, today_in
from bindays.transport import RequestsTransport, run_conversation

project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
load_dotenv()
DEFAULT_POSTCODE = os.environ.get("MY_POSTCODE")
DEFAULT_HOUSE_NUMBER = os.environ.get("MY_HOUSE_NUMBER")  # Can be None
DEFAULT_COLLECTOR = os.environ.get("BINDAYS_COLLECTOR")  # None means ask gov.uk
TIMEZONE = os.environ.get("BINDAYS_TIMEZONE", DEFAULT_TIMEZONE)
LOG_FILE = os.path.join(project_root, 'error.log')

logger = logging.getLogger(__name__)


def setup_logging():
    log_level = getattr(logging, os.environ.get('LOG_LEVEL', 'INFO').upper(), logging.INFO)
    root_logger = logging.getLogger('')
    if root_logger.hasHandlers():
        return
    logging.basicConfig(level=log_level, format='%(asctime)s - %(levelname)s - %(name)s - %(message)s',
                        filename=LOG_FILE, filemode='a')
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter('%(levelname)s: %(message)s'))
    root_logger.addHandler(console_handler)


def select_address(addresses: Sequence[Address], house_number: str) -> Optional[Address]:
    """Picks the address whose property starts with the house number, else the first containing it."""
    target = house_number.strip().lower()
    for address in addresses:
        words = (address.property or '').lower().split()
        if words and words[0].rstrip(',') == target:
            return address
    for address in addresses:
        if target in (address.property or '').lower():
            return address
    return None


def main(argv: Optional[List[str]] = None):
    setup_logging()
    parser = argparse.ArgumentParser(description="Check bin collection schedule.")
    parser.add_argument("--postcode", "-p", help="Postcode (Defaults to MY_POSTCODE env var).")
    parser.add_argument("--house-number", "-n", type=str, default=DEFAULT_HOUSE_NUMBER,
                        help="House number/name (Defaults to MY_HOUSE_NUMBER env var. If omitted, the addresses for the postcode are listed).")
    parser.add_argument("--collector", default=DEFAULT_COLLECTOR,
                        help="gov.uk ID of the council (Defaults to BINDAYS_COLLECTOR env var, otherwise looked up on gov.uk).")
    parser.add_argument("--save-ics", "-i", action="store_true", help="Save schedule to ICS file.")
    parser.add_argument("--list-collectors", action="store_true", help="List the supported councils and exit.")
    args = parser.parse_args(argv)

    if args.list_collectors:
        for collector in get_collectors():
            print(f"{collector.gov_uk_id}: {collector.name}")
        return

    postcode = args.postcode if args.postcode else DEFAULT_POSTCODE
    house_number: Optional[str] = args.house_number
    if not postcode:
        print("Error: Postcode required.", file=sys.stderr)
        sys.exit(1)

    transport = RequestsTransport()
    today = today_in(TIMEZONE)

    try:
        if args.collector:
            collector = create_collector(args.collector)
        else:
            logger.info(f"Looking up council for postcode '{postcode}' on gov.uk")
            collector = run_conversation(lambda response: find_collector(postcode, response), transport)
        logger.info(f"Using collector '{collector.name}'")

        addresses = run_conversation(
            lambda response: collector.get_addresses(postcode, response, today=today), transport)
        if not addresses:
            print(f"\nERROR: No addresses found for postcode '{postcode}'.", file=sys.stderr)
            sys.exit(1)

        if not house_number:
            print(json.dumps([address.as_dict() for address in addresses], indent=4))
            return

        address = select_address(addresses, house_number)
        if address is None:
            logger.error(f"No address matching house number '{house_number}' for postcode '{postcode}'")
            print(f"\nERROR: No address matching '{house_number}' in {postcode}. Run without --house-number "
                  f"to list addresses.", file=sys.stderr)
            sys.exit(1)

        collection_days = run_conversation(
            lambda response: collector.get_bin_days(address, response, today=today), transport)

        logger.info(f"--- Bin Collection Schedule for {address.property} ---")
        if collection_days:
            print(json.dumps([day.as_dict() for day in collection_days], indent=4))
        else:
            print("No upcoming collections found.")

        if args.save_ics:
            if collection_days:
                create_ics_file(collection_days)
            else:
                logger.info("Skipping ICS file generation (no collections).")

    except BinDaysError as e:
        logger.error(f"Bin day lookup failed: {e}", exc_info=True)
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)
    except requests.exceptions.RequestException as e:
        logger.error(f"Network error during lookup: {e}", exc_info=True)
        print(f"\nERROR: Could not reach the council website. Check {LOG_FILE}.", file=sys.stderr)
        sys.exit(1)

    logger.info("Check complete.")


if __name__ == "__main__":
    main()
