"""
Relayer Gateway - authorization and decryption requests against the relayer
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import httpx
from nacl.signing import SigningKey

import client_helper as helper
from client_config import CONTRACT_CONFIG, RELAYER_CONFIG

logger = logging.getLogger(__name__)

STATUS_OK = "ok"
STATUS_NOTHING_TO_DECRYPT = "nothing_to_decrypt"
STATUS_NO_SIGNER = "no_signer"
STATUS_RELAYER_ERROR = "relayer_error"
STATUS_INVALID_REQUEST = "invalid_request"

BALANCE_FIELDS = ("balance",)
ROUND_FIELDS = ("dice", "guess", "outcome")


class RelayerError(Exception):
    """Relayer unreachable, or it refused or garbled a request"""


@dataclass
class RevealResult:
    status: str
    snapshot: Optional[helper.DecryptedSnapshot] = None
    results: Dict[str, int] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == STATUS_OK


def read_fields(ledger, address: str) -> Dict[str, str]:
    """Collect the participant's handles from the ledger views, by field name"""
    return {
        "balance": ledger.get_balance(address=address),
        "dice": ledger.get_dice_result(address=address),
        "guess": ledger.get_last_guess(address=address),
        "outcome": ledger.get_last_outcome(address=address),
    }


def _pick(fields: Dict[str, str], names) -> Dict[str, str]:
    return {name: fields[name] for name in names if name in fields}


class RelayerGateway:
    """
    Client side of the decryption protocol.

    The participant signs a time-boxed record naming an ephemeral public
    key and the contracts whose handles may be revealed. The relayer
    checks that signature and the on-chain grants, then returns each
    cleartext sealed to the ephemeral key. No ledger state is touched,
    so a failed or abandoned request has no effect beyond the caller.
    """

    def __init__(
        self,
        base_url: str = None,
        timeout: float = None,
        transport: httpx.AsyncBaseTransport = None,
        ledger_contract: str = None,
        executor_contract: str = None,
        chain_id: str = None,
    ):
        self.base_url = base_url or RELAYER_CONFIG["url"]
        self.timeout = timeout or RELAYER_CONFIG["timeout"]
        self.transport = transport
        self.ledger_contract = ledger_contract or CONTRACT_CONFIG["ledger"]
        self.domain = helper.build_domain(
            verifying_contract=executor_contract or CONTRACT_CONFIG["executor"],
            chain_id=chain_id,
        )
        self._network_key = None

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self.transport,
        )

    async def _request(self, method: str, path: str, payload: dict = None) -> dict:
        try:
            async with self._client() as client:
                response = await client.request(method, path, json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            logger.warning("Relayer %s %s rejected: %s", method, path, e.response.status_code)
            raise RelayerError(
                f"{method} {path} failed with {e.response.status_code}: {e.response.text}"
            ) from e
        except httpx.HTTPError as e:
            logger.warning("Relayer %s %s failed: %s", method, path, e)
            raise RelayerError(f"{method} {path} failed: {e}") from e
        except ValueError as e:
            raise RelayerError(f"{method} {path} returned malformed JSON") from e

        if not isinstance(data, dict):
            raise RelayerError(f"{method} {path} returned {type(data).__name__}, expected an object")
        return data

    @staticmethod
    def _require(data: dict, *keys: str) -> list:
        missing = [key for key in keys if key not in data]
        if missing:
            raise RelayerError(f"Relayer response is missing {', '.join(missing)}")
        return [data[key] for key in keys]

    # ---- Encrypted inputs ----------------------------------------------------

    async def fetch_network_key(self) -> str:
        if self._network_key is None:
            data = await self._request("GET", "/v1/keys")
            (self._network_key,) = self._require(data, "public_key")
        return self._network_key

    async def encrypt_input(
        self,
        value: int,
        user_address: str,
        contract_address: str = None,
        fhe_type: str = "euint32",
    ) -> Dict[str, str]:
        """
        Seal `value` to the network key and have the relayer register it.

        Returns:
            {'handle': ..., 'input_proof': ...} for the contract call
        """
        contract_address = contract_address or self.ledger_contract
        ciphertext = helper.seal_input(await self.fetch_network_key(), value, fhe_type)
        data = await self._request("POST", "/v1/input-proof", {
            "contract_address": contract_address,
            "user_address": user_address,
            "fhe_type": fhe_type,
            "ciphertext": ciphertext,
        })
        handle, input_proof = self._require(data, "handle", "input_proof")
        logger.debug("Registered %s input %s for %s", fhe_type, handle, user_address)
        return {"handle": handle, "input_proof": input_proof}

    async def encrypt_guess(self, guess: int, user_address: str, contract_address: str = None) -> Dict[str, str]:
        return await self.encrypt_input(helper.check_guess(guess), user_address, contract_address)

    # ---- Decryption ----------------------------------------------------------

    def authorize(
        self,
        signing_key: SigningKey,
        keypair: dict,
        contract_addresses: List[str],
        start_timestamp: int = None,
        duration_seconds: int = None,
    ):
        """Build and sign the decryption record; returns (record, signature)"""
        if start_timestamp is None:
            start_timestamp = int(time.time())
        if duration_seconds is None:
            duration_seconds = RELAYER_CONFIG["decrypt_duration_seconds"]

        record = helper.build_decrypt_record(
            keypair["public_key"], contract_addresses, start_timestamp, duration_seconds
        )
        return record, helper.sign_decrypt_record(signing_key, self.domain, record)

    async def user_decrypt(
        self,
        handle_pairs: List[Dict[str, str]],
        keypair: dict,
        signature: str,
        contract_addresses: List[str],
        user_address: str,
        start_timestamp: int,
        duration_seconds: int,
    ) -> Dict[str, int]:
        """
        Ask the relayer to reveal `handle_pairs` ({handle, contract_address})
        and open the sealed answers with the ephemeral private key.
        """
        data = await self._request("POST", "/v1/user-decrypt", {
            "handles": handle_pairs,
            "public_key": keypair["public_key"],
            "signature": signature,
            "contract_addresses": contract_addresses,
            "user_address": user_address,
            "start_timestamp": start_timestamp,
            "duration_seconds": duration_seconds,
        })

        (sealed,) = self._require(data, "results")
        if not isinstance(sealed, dict):
            raise RelayerError("Relayer results must map handles to sealed values")
        cleartexts = {}
        for pair in handle_pairs:
            handle = pair["handle"]
            if handle not in sealed:
                raise RelayerError(f"Relayer did not return {handle}")
            try:
                cleartexts[handle] = helper.open_cleartext(keypair["private_key"], sealed[handle])
            except ValueError as e:
                raise RelayerError(f"Relayer answer for {handle} is unreadable") from e
        return cleartexts

    async def reveal(
        self,
        signing_key: Optional[SigningKey],
        fields: Dict[str, str],
        start_timestamp: int = None,
        duration_seconds: int = None,
    ) -> RevealResult:
        """
        End-to-end reveal of the participant's fields (balance, dice,
        guess, outcome -> handle). Local failures come back as a status.
        """
        if signing_key is None:
            return RevealResult(status=STATUS_NO_SIGNER, error="Connect a wallet to decrypt")

        handles = helper.filter_handles(fields.values())
        if not handles:
            return RevealResult(status=STATUS_NOTHING_TO_DECRYPT, error="No encrypted data is available yet")

        keypair = helper.generate_keypair()
        contract_addresses = [self.ledger_contract]
        try:
            record, signature = self.authorize(
                signing_key, keypair, contract_addresses, start_timestamp, duration_seconds
            )
        except ValueError as e:
            return RevealResult(status=STATUS_INVALID_REQUEST, error=str(e))

        try:
            results = await self.user_decrypt(
                [{"handle": handle, "contract_address": self.ledger_contract} for handle in handles],
                keypair,
                signature,
                contract_addresses,
                helper.address_of(signing_key),
                record["start_timestamp"],
                record["duration_seconds"],
            )
        except RelayerError as e:
            return RevealResult(status=STATUS_RELAYER_ERROR, error=str(e))

        logger.info("Revealed %d handle(s) for %s", len(results), helper.address_of(signing_key))
        return RevealResult(
            status=STATUS_OK,
            snapshot=helper.DecryptedSnapshot.from_results(fields, results),
            results=results,
        )

    async def reveal_balance(self, signing_key: Optional[SigningKey], fields: Dict[str, str], **window) -> RevealResult:
        """Reveal only the points balance; available while a round is in play"""
        return await self.reveal(signing_key, _pick(fields, BALANCE_FIELDS), **window)

    async def reveal_round(self, signing_key: Optional[SigningKey], fields: Dict[str, str], **window) -> RevealResult:
        """Reveal dice, guess and outcome of the last round"""
        return await self.reveal(signing_key, _pick(fields, ROUND_FIELDS), **window)
