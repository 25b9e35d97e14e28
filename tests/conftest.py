import hashlib
import importlib.util
from pathlib import Path

import contracting
import pytest
from contracting.client import ContractingClient
from contracting.compilation import whitelists

PROJECT_ROOT = Path(__file__).resolve().parents[1]
FIXTURE_CONTRACTS = Path(__file__).resolve().parent / "contracts"
HOUSE_PATH = PROJECT_ROOT / "con_game_house.py"
VAULT_PATH = PROJECT_ROOT / "con_cipher_vault.py"
BEACON_PATH = PROJECT_ROOT / "con_outcome_beacon.py"
TOKEN_PATH = FIXTURE_CONTRACTS / "con_test_token.py"
SCRIPTED_PATH = FIXTURE_CONTRACTS / "con_scripted_outcomes.py"
HELPER_PATH = PROJECT_ROOT / "client_helper.py"
SUBMISSION_PATH = (
    Path(contracting.__file__).resolve().parent / "contracts" / "submission.s.py"
)

HOUSE = "con_game_house"
COIN = 10**18
PLAYER_FUNDS = 10 * COIN


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
    spec = importlib.util.spec_from_file_location("client_helper_tests", HELPER_PATH)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def client():
    client = ContractingClient(signer="operator", metering=False)
    client.flush()
    client.set_submission_contract(str(SUBMISSION_PATH))
    return client


def submit(client, path, name, **constructor_args):
    client.submit(path.read_text(), name=name, owner=None, constructor_args=constructor_args)
    return client.get_contract(name)


@pytest.fixture
def token(client):
    contract = submit(client, TOKEN_PATH, "con_test_token")
    for account in ("operator", "alice", "bob", "carol"):
        contract.mint(to=account, amount=PLAYER_FUNDS)
        contract.approve(amount=PLAYER_FUNDS, to=HOUSE, signer=account)
    return contract


@pytest.fixture
def vault(client):
    return submit(client, VAULT_PATH, "con_cipher_vault")


@pytest.fixture
def outcomes(client):
    return submit(client, SCRIPTED_PATH, "con_scripted_outcomes")


@pytest.fixture
def beacon(client):
    return submit(client, BEACON_PATH, "con_outcome_beacon")


@pytest.fixture
def house(client, token, vault, outcomes):
    return submit(
        client,
        HOUSE_PATH,
        HOUSE,
        token="con_test_token",
        cipher="con_cipher_vault",
        outcome_source="con_scripted_outcomes",
    )
