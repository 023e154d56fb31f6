import hashlib
import json

from nacl.exceptions import BadSignatureError, CryptoError
from nacl.public import PrivateKey, PublicKey, SealedBox
from nacl.signing import SigningKey, VerifyKey

from client_config import CONTRACT_CONFIG, GAME_CONFIG, RELAYER_CONFIG

# ---- Chain-constant parameters & helpers (mirror contract) ----

EMPTY_HANDLE = "0x" + "0" * 64

FHE_TYPES = ("ebool", "euint32", "euint64")

GUESS_BIG = 1
GUESS_SMALL = 2

def sha3_hex(s: str) -> str:
    # Matches Xian env semantics for non-hex input
    return hashlib.sha3_256(s.encode("utf-8")).hexdigest()

def domain_hash(*parts) -> str:
    return sha3_hex("FHEX:v1|" + "|".join(str(x) for x in parts))

def input_message(executor: str, contract: str, user: str, handle: str) -> str:
    # Mirrors con_fhe_executor.from_external
    return domain_hash("input", executor, contract, user, handle)

def input_handle(executor: str, contract: str, user: str, ciphertext: str) -> str:
    return "0x" + domain_hash("input-handle", executor, contract, user, ciphertext)

def is_empty_handle(handle) -> bool:
    if not handle:
        return True
    return int(handle, 16) == 0

def filter_handles(handles) -> list:
    """
    Drops missing and sentinel handles, keeping first-seen order.
    """
    eligible = []
    for handle in handles:
        if is_empty_handle(handle) or handle in eligible:
            continue
        eligible.append(handle)
    return eligible

def points_for_deposit(deposit_amount: int,
                       points_per_unit: int = None,
                       unit_scale: int = None) -> int:
    # Same floor division as con_ghost_odds.join
    if points_per_unit is None:
        points_per_unit = GAME_CONFIG["points_per_unit"]
    if unit_scale is None:
        unit_scale = GAME_CONFIG["unit_scale"]
    if deposit_amount <= 0:
        return 0
    return deposit_amount * points_per_unit // unit_scale

def check_guess(value) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value not in (GUESS_BIG, GUESS_SMALL):
        raise ValueError("Guess must be 1 (Big) or 2 (Small)")
    return int(value)

def address_of(signing_key: SigningKey) -> str:
    return signing_key.verify_key.encode().hex()

# ---- Ephemeral keys & sealing ------------------------------------------------

def generate_keypair() -> dict:
    """
    Fresh X25519 keypair for a single decryption session. The relayer
    seals every cleartext to `public_key`; only `private_key` opens it.
    """
    private_key = PrivateKey.generate()
    return {
        'public_key': private_key.public_key.encode().hex(),
        'private_key': private_key.encode().hex()
    }

def seal_to(public_key: str, payload: bytes) -> str:
    return SealedBox(PublicKey(bytes.fromhex(public_key))).encrypt(payload).hex()

def open_sealed(private_key: str, sealed: str) -> bytes:
    try:
        return SealedBox(PrivateKey(bytes.fromhex(private_key))).decrypt(bytes.fromhex(sealed))
    except (CryptoError, TypeError, ValueError) as e:
        raise ValueError("Sealed value cannot be opened with this key") from e

def seal_input(network_key: str, value: int, fhe_type: str = "euint32") -> str:
    if fhe_type not in FHE_TYPES:
        raise ValueError(f"Unsupported type {fhe_type}")
    if value < 0:
        raise ValueError("Encrypted inputs are unsigned")
    payload = json.dumps({'type': fhe_type, 'value': int(value)}, sort_keys=True)
    return seal_to(network_key, payload.encode("utf-8"))

def open_input(private_key: str, sealed: str):
    data = json.loads(open_sealed(private_key, sealed).decode("utf-8"))
    return data['type'], int(data['value'])

def seal_cleartext(public_key: str, value: int) -> str:
    return seal_to(public_key, str(int(value)).encode("utf-8"))

def open_cleartext(private_key: str, sealed: str) -> int:
    return int(open_sealed(private_key, sealed).decode("utf-8"))

# ---- Structured (domain-separated) signatures --------------------------------

DECRYPT_PRIMARY_TYPE = "UserDecryptRequestVerification"

DECRYPT_TYPES = {
    'Domain': [
        ['name', 'string'],
        ['version', 'string'],
        ['chain_id', 'string'],
        ['verifying_contract', 'string'],
    ],
    DECRYPT_PRIMARY_TYPE: [
        ['public_key', 'bytes32'],
        ['contract_addresses', 'string[]'],
        ['start_timestamp', 'uint256'],
        ['duration_seconds', 'uint256'],
    ],
}

def build_domain(verifying_contract: str = None, chain_id: str = None) -> dict:
    return {
        'name': RELAYER_CONFIG["domain_name"],
        'version': RELAYER_CONFIG["domain_version"],
        'chain_id': chain_id or RELAYER_CONFIG["chain_id"],
        'verifying_contract': verifying_contract or CONTRACT_CONFIG["executor"],
    }

def build_decrypt_record(public_key: str,
                         contract_addresses: list,
                         start_timestamp: int,
                         duration_seconds: int) -> dict:
    """
    Returns the typed message the participant signs:
        {public_key, contract_addresses, start_timestamp, duration_seconds}
    """
    if len(public_key) != 64:
        raise ValueError("public_key must be a hex encoded X25519 key")
    if not contract_addresses:
        raise ValueError("At least one contract address is required")
    if duration_seconds <= 0:
        raise ValueError("duration_seconds must be positive")
    if start_timestamp < 0:
        raise ValueError("start_timestamp must not be negative")

    return {
        'public_key': public_key,
        'contract_addresses': list(contract_addresses),
        'start_timestamp': int(start_timestamp),
        'duration_seconds': int(duration_seconds),
    }

def encode_typed_payload(domain: dict, record: dict) -> bytes:
    payload = {
        'types': DECRYPT_TYPES,
        'primaryType': DECRYPT_PRIMARY_TYPE,
        'domain': domain,
        'message': record,
    }
    return json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")

def sign_decrypt_record(signing_key: SigningKey, domain: dict, record: dict) -> str:
    return signing_key.sign(encode_typed_payload(domain, record)).signature.hex()

def verify_decrypt_signature(user_address: str, domain: dict, record: dict, signature: str) -> bool:
    try:
        VerifyKey(bytes.fromhex(user_address)).verify(
            encode_typed_payload(domain, record),
            bytes.fromhex(signature)
        )
    except (BadSignatureError, ValueError):
        return False
    return True

def window_is_open(record: dict, now: int) -> bool:
    start = record['start_timestamp']
    return start <= now < start + record['duration_seconds']

# ---- Convenience: wallet-side decrypted view --------------------------------

SNAPSHOT_FIELDS = ('balance', 'dice', 'guess', 'outcome')

class DecryptedSnapshot:
    """
    Local view of what the participant has revealed. Fields without a
    returned cleartext stay None.
    """
    def __init__(self, balance: int = None, dice: int = None, guess: int = None, outcome: int = None):
        self.balance = balance
        self.dice = dice
        self.guess = guess
        self.outcome = outcome

    @classmethod
    def from_results(cls, fields: dict, results: dict):
        # fields: semantic name -> handle it was read from
        values = {}
        for name in SNAPSHOT_FIELDS:
            handle = fields.get(name)
            if handle is not None and handle in results:
                values[name] = int(results[handle])
        return cls(**values)

    @property
    def guess_label(self):
        if self.guess == GUESS_BIG:
            return "Big"
        if self.guess == GUESS_SMALL:
            return "Small"
        return None

    @property
    def won(self):
        if self.outcome is None:
            return None
        return self.outcome == 1

    def as_dict(self) -> dict:
        return {name: getattr(self, name) for name in SNAPSHOT_FIELDS}
