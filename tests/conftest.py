import hashlib
import importlib
from pathlib import Path

import contracting
import httpx
import pytest
from contracting.client import ContractingClient
from contracting.compilation import whitelists
from nacl.public import PrivateKey
from nacl.signing import SigningKey

from fake_relayer import FakeRelayer
from relayer_gateway import RelayerGateway

PROJECT_ROOT = Path(__file__).resolve().parents[1]
EXECUTOR_PATH = PROJECT_ROOT / "con_fhe_executor.py"
LEDGER_PATH = PROJECT_ROOT / "con_ghost_odds.py"
FIXTURE_CONTRACTS = Path(__file__).resolve().parent / "contracts"
SUBMISSION_PATH = (
    Path(contracting.__file__).resolve().parent / "contracts" / "submission.s.py"
)

EXECUTOR = "con_fhe_executor"
LEDGER = "con_ghost_odds"
CURRENCY = "con_test_currency"
DICE = "con_fixed_dice"


@pytest.fixture(scope="session", autouse=True)
def enable_sha3_and_whitelist():
    whitelists.ALLOWED_BUILTINS.update({"hashlib", "decimal"})

    if not hasattr(hashlib, "sha3"):
        def _sha3(data):
            if isinstance(data, str):
                data = data.encode("utf-8")
            return hashlib.sha3_256(data).hexdigest()

        setattr(hashlib, "sha3", _sha3)


@pytest.fixture(scope="session")
def helper_module():
    return importlib.import_module("client_helper")


@pytest.fixture(scope="session")
def verifier_key():
    return SigningKey(b"\x01" * 32)


@pytest.fixture(scope="session")
def network_key():
    return PrivateKey(b"\x02" * 32)


@pytest.fixture(scope="session")
def alice_key():
    return SigningKey(b"\xa1" * 32)


@pytest.fixture(scope="session")
def bob_key():
    return SigningKey(b"\xb0" * 32)


@pytest.fixture(scope="session")
def alice(alice_key):
    return alice_key.verify_key.encode().hex()


@pytest.fixture(scope="session")
def bob(bob_key):
    return bob_key.verify_key.encode().hex()


@pytest.fixture
def client():
    client = ContractingClient(signer="operator", metering=False)
    client.flush()
    client.set_submission_contract(str(SUBMISSION_PATH))
    return client


@pytest.fixture
def executor(client, verifier_key):
    client.submit(
        EXECUTOR_PATH.read_text(),
        name=EXECUTOR,
        owner=None,
        constructor_args={"input_verifier": verifier_key.verify_key.encode().hex()},
    )
    return client.get_contract(EXECUTOR)


@pytest.fixture
def currency(client):
    client.submit((FIXTURE_CONTRACTS / "con_test_currency.py").read_text(), name=CURRENCY, owner=None)
    return client.get_contract(CURRENCY)


@pytest.fixture
def dice(client, executor):
    client.submit((FIXTURE_CONTRACTS / "con_fixed_dice.py").read_text(), name=DICE, owner=None)
    return client.get_contract(DICE)


def deploy_ledger(client, random_contract):
    client.submit(
        LEDGER_PATH.read_text(),
        name=LEDGER,
        owner=None,
        constructor_args={
            "executor_contract": EXECUTOR,
            "vault_contract": CURRENCY,
            "random_contract": random_contract,
        },
    )
    return client.get_contract(LEDGER)


@pytest.fixture
def contract(client, executor, currency, dice):
    return deploy_ledger(client, DICE)


@pytest.fixture
def relayer(executor, network_key, verifier_key):
    return FakeRelayer(executor, EXECUTOR, network_key, verifier_key)


@pytest.fixture
def gateway(relayer):
    return RelayerGateway(
        base_url="http://relayer.test",
        transport=httpx.MockTransport(relayer.handle),
        ledger_contract=LEDGER,
        executor_contract=EXECUTOR,
    )
