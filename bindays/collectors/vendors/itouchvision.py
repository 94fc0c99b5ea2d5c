"""
iTouch Vision waste portal.

Request and response bodies are AES-256-CBC encrypted with a key and IV that
are shared by every council on the platform, and travel as lowercase hex.
"""
import json
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, List, Sequence, Tuple

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from ..base_collector import Collector, CollectorConfig
from ...data_models import Address, CollectionDay, Container
from ...exceptions import UpstreamDataError
from ...processing import match_containers, parse_date, require_field
from ...protocol import StepHandler, StepRequest, StepResponse

logger = logging.getLogger(__name__)

AES_KEY = bytes.fromhex("F57E76482EE3DC3336495DEDEEF3962671B054FE353E815145E29C5689F72FEC")
AES_IV = bytes.fromhex("2CBF4FC35C69B82362D393A4F0B9971A")
JSON_HEADERS = {"content-type": "application/json; charset=UTF-8"}
DATE_FORMAT = "%d-%m-%Y"
LANG_CODE = "EN"


@dataclass(frozen=True)
class ITouchVisionConfig(CollectorConfig):
    api_base_url: str = ""
    client_id: int = 0
    council_id: int = 0
    containers: Tuple[Container, ...] = field(default_factory=tuple)


def _cipher() -> Cipher:
    return Cipher(algorithms.AES(AES_KEY), modes.CBC(AES_IV))


def encrypt_payload(plain_text: str) -> str:
    """Encrypts text the way the portal expects it: PKCS7 padded, AES-CBC, lowercase hex."""
    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    padded = padder.update(plain_text.encode("utf-8")) + padder.finalize()
    encryptor = _cipher().encryptor()
    return (encryptor.update(padded) + encryptor.finalize()).hex()


def decrypt_payload(hex_text: str) -> str:
    try:
        encrypted = bytes.fromhex((hex_text or "").strip())
        decryptor = _cipher().decryptor()
        padded = decryptor.update(encrypted) + decryptor.finalize()
        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        plain = unpadder.update(padded) + unpadder.finalize()
        return plain.decode("utf-8")
    except ValueError as e:
        raise UpstreamDataError(f"iTouch Vision response could not be decrypted: {e}") from e


class ITouchVisionCollector(Collector):
    """Collector for councils on the iTouch Vision portal."""

    def __init__(self, config: ITouchVisionConfig):
        super().__init__(config)

    def address_steps(self, postcode: str, today: date) -> Sequence[StepHandler]:
        return [
            lambda response: self._post("kmbd/address", {
                "P_POSTCODE": postcode,
                "P_LANG_CODE": LANG_CODE,
                "P_CLIENT_ID": self.config.client_id,
                "P_COUNCIL_ID": self.config.council_id,
            }),
            lambda response: self._parse_addresses(postcode, response),
        ]

    def bin_day_steps(self, address: Address, today: date) -> Sequence[StepHandler]:
        return [
            lambda response: self._post("kmbd/collectionDay", {
                "P_UPRN": address.uid,
                "P_CLIENT_ID": self.config.client_id,
                "P_COUNCIL_ID": self.config.council_id,
                "P_LANG_CODE": LANG_CODE,
            }),
            lambda response: self._parse_bin_days(address, response),
        ]

    def _post(self, path: str, payload: dict) -> StepRequest:
        return StepRequest(
            step_id=1,
            url=f"{self.config.api_base_url}{path}",
            method="POST",
            headers=JSON_HEADERS,
            body=encrypt_payload(json.dumps(payload)),
        )

    @staticmethod
    def _decrypted_json(response: StepResponse) -> Any:
        plain_text = decrypt_payload(response.content)
        try:
            data = json.loads(plain_text)
        except ValueError as e:
            raise UpstreamDataError(f"Decrypted iTouch Vision response is not JSON: {e}") from e
        if not isinstance(data, dict):
            raise UpstreamDataError("Decrypted iTouch Vision response is not a JSON object")
        return data

    def _parse_addresses(self, postcode: str, response: StepResponse) -> List[Address]:
        addresses = []
        for item in self._decrypted_json(response).get("ADDRESS") or []:
            addresses.append(Address(
                property=str(require_field(item, "FULL_ADDRESS", "iTouch Vision address")).strip(),
                postcode=postcode,
                uid=str(require_field(item, "UPRN", "iTouch Vision address")),
            ))
        logger.info(f"{self.name}: found {len(addresses)} addresses for {postcode}")
        return addresses

    def _parse_bin_days(self, address: Address, response: StepResponse) -> List[CollectionDay]:
        collection_days = []
        for item in self._decrypted_json(response).get("collectionDay") or []:
            containers = match_containers(self.config.containers,
                                          str(require_field(item, "binType", "iTouch Vision collection")))
            # The next collection and the one after it
            for key in ("collectionDay", "followingDay"):
                value = (item.get(key) or "").strip()
                if not value:
                    continue
                collection_days.append(CollectionDay(
                    date=parse_date(value, DATE_FORMAT),
                    address=address,
                    containers=containers,
                ))
        return collection_days
