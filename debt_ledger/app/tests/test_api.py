import uuid

import pytest
from fastapi.testclient import TestClient
from sqlmodel import SQLModel

from ..core import db as core_db
from ..core.db import create_engine_for_url, set_engine
from ..main import app


@pytest.fixture
def client(tmp_path) -> TestClient:
    test_db = tmp_path / "test.db"
    engine = create_engine_for_url(f"sqlite:///{test_db}")
    original_engine = core_db.engine
    set_engine(engine)
    SQLModel.metadata.drop_all(engine)
    SQLModel.metadata.create_all(engine)

    with TestClient(app) as test_client:
        yield test_client

    set_engine(original_engine)
    engine.dispose()


def _create(client: TestClient, username: str) -> dict:
    response = client.post("/account/create", json={"username": username})
    assert response.status_code == 201
    return response.json()


def test_create_account_deposit_withdraw(client: TestClient) -> None:
    account = _create(client, "alice")
    assert account == {"username": "alice", "balance": 0, "debt": 0}

    deposit = client.post("/deposit", json={"username": "alice", "amount": 1000})
    assert deposit.status_code == 200
    assert deposit.json()["balance"] == 1000

    withdraw = client.post("/withdraw", json={"username": "alice", "amount": 400})
    assert withdraw.status_code == 200
    assert withdraw.json() == {"username": "alice", "balance": 600, "debt": 0}


def test_withdraw_beyond_balance_records_debt(client: TestClient) -> None:
    _create(client, "bob")
    client.post("/deposit", json={"username": "bob", "amount": 50})

    response = client.post("/withdraw", json={"username": "bob", "amount": 80})
    assert response.status_code == 200
    assert response.json() == {"username": "bob", "balance": 0, "debt": 30}


def test_deposit_settles_debt_before_balance(client: TestClient) -> None:
    _create(client, "carol")
    client.post("/withdraw", json={"username": "carol", "amount": 100})

    partial = client.post("/deposit", json={"username": "carol", "amount": 40})
    assert partial.json() == {"username": "carol", "balance": 0, "debt": 60}

    cleared = client.post("/deposit", json={"username": "carol", "amount": 100})
    assert cleared.json() == {"username": "carol", "balance": 40, "debt": 0}


def test_transfer_clears_target_debt_then_credits(client: TestClient) -> None:
    _create(client, "dave")
    _create(client, "erin")
    client.post("/deposit", json={"username": "dave", "amount": 100})
    client.post("/withdraw", json={"username": "erin", "amount": 20})

    transfer = client.post(
        "/transfer",
        json={"fromuser": "dave", "touser": "erin", "amount": 50},
    )
    assert transfer.status_code == 200
    assert transfer.json() == [
        {"username": "dave", "balance": 50, "debt": 0},
        {"username": "erin", "balance": 30, "debt": 0},
    ]


def test_transfer_accepts_camel_case_keys(client: TestClient) -> None:
    _create(client, "frank")
    _create(client, "grace")
    client.post("/deposit", json={"username": "frank", "amount": 10})

    transfer = client.post(
        "/transfer",
        json={"fromUser": "frank", "toUser": "grace", "amount": 30},
    )
    assert transfer.status_code == 200
    source, target = transfer.json()
    assert source == {"username": "frank", "balance": 0, "debt": 20}
    assert target == {"username": "grace", "balance": 30, "debt": 0}


def test_get_account_by_body_and_query(client: TestClient) -> None:
    _create(client, "heidi")
    client.post("/deposit", json={"username": "heidi", "amount": 5})

    by_body = client.request("GET", "/account", json={"username": "heidi"})
    assert by_body.status_code == 200
    assert by_body.json()["balance"] == 5

    by_query = client.get("/account", params={"username": "heidi"})
    assert by_query.status_code == 200
    assert by_query.json() == by_body.json()


def test_get_account_without_username_returns_400(client: TestClient) -> None:
    response = client.get("/account")
    assert response.status_code == 400
    assert response.json()["message"] == "failed to read input: username is required"


def test_list_accounts(client: TestClient) -> None:
    assert client.get("/account/all").json() == []
    _create(client, "zed")
    _create(client, "amy")

    response = client.get("/account/all")
    assert response.status_code == 200
    assert [account["username"] for account in response.json()] == ["amy", "zed"]


def test_create_duplicate_username_returns_400(client: TestClient) -> None:
    _create(client, "ivan")

    response = client.post("/account/create", json={"username": "ivan"})
    assert response.status_code == 400
    assert response.json() == {"message": 'user "ivan" already exists'}


def test_create_ignores_supplied_balance(client: TestClient) -> None:
    response = client.post(
        "/account/create",
        json={"username": "judy", "balance": 500, "debt": 7},
    )
    assert response.status_code == 201
    assert response.json() == {"username": "judy", "balance": 0, "debt": 0}


@pytest.mark.parametrize(
    ("path", "body", "message"),
    [
        ("/account/create", {"username": "bob!"}, 'username "bob!" is invalid'),
        ("/deposit", {"username": "bob!", "amount": 5}, 'username "bob!" is invalid'),
        ("/deposit", {"username": "kim", "amount": 0}, 'value "amount" must be greater than zero'),
        ("/withdraw", {"username": "kim", "amount": -3}, 'value "amount" must be greater than zero'),
        (
            "/transfer",
            {"fromuser": "kim", "touser": "kim", "amount": 5},
            "source and target account cannot be the same",
        ),
        ("/deposit", {"username": "nobody", "amount": 5}, "user nobody not found"),
    ],
)
def test_rejections_use_message_body(client: TestClient, path, body, message) -> None:
    _create(client, "kim")

    response = client.post(path, json=body)
    assert response.status_code == 400
    assert response.json() == {"message": message}


def test_transfer_reports_missing_target(client: TestClient) -> None:
    _create(client, "leo")

    response = client.post(
        "/transfer",
        json={"fromuser": "leo", "touser": "ghost", "amount": 5},
    )
    assert response.status_code == 400
    assert response.json()["message"] == "user ghost not found"
    assert client.get("/account", params={"username": "leo"}).json()["debt"] == 0


def test_malformed_input_returns_400(client: TestClient) -> None:
    missing = client.post("/deposit", json={"username": "mia"})
    assert missing.status_code == 400
    assert missing.json()["message"].startswith("failed to read input: ")

    not_json = client.post(
        "/deposit",
        content=b"{not json",
        headers={"Content-Type": "application/json"},
    )
    assert not_json.status_code == 400
    assert not_json.json()["message"].startswith("failed to read input: ")


@pytest.mark.parametrize("amount", [True, False, "5", 2.5])
def test_non_integer_amount_is_rejected(client: TestClient, amount) -> None:
    _create(client, "mia")

    for path in ("/deposit", "/withdraw"):
        response = client.post(path, json={"username": "mia", "amount": amount})
        assert response.status_code == 400
        assert response.json()["message"].startswith("failed to read input: amount")

    transfer = client.post(
        "/transfer",
        json={"fromuser": "mia", "touser": "kim", "amount": amount},
    )
    assert transfer.status_code == 400
    assert transfer.json()["message"].startswith("failed to read input: amount")
    assert client.get("/account", params={"username": "mia"}).json() == {
        "username": "mia",
        "balance": 0,
        "debt": 0,
    }


def test_oversized_amount_returns_400(client: TestClient) -> None:
    _create(client, "rich")

    response = client.post("/deposit", json={"username": "rich", "amount": 10**19})
    assert response.status_code == 400
    assert response.json() == {
        "message": f'value "amount" must not exceed {2**63 - 1}',
    }


def test_running_total_overflow_returns_400(client: TestClient) -> None:
    _create(client, "rich")
    _create(client, "poor")

    first = client.post("/deposit", json={"username": "rich", "amount": 2**62})
    assert first.status_code == 200
    second = client.post("/deposit", json={"username": "rich", "amount": 2**62})
    assert second.status_code == 400
    assert second.json() == {"message": f'value "balance" must not exceed {2**63 - 1}'}

    client.post("/withdraw", json={"username": "poor", "amount": 2**62})
    debt = client.post("/withdraw", json={"username": "poor", "amount": 2**62})
    assert debt.status_code == 400
    assert debt.json() == {"message": f'value "debt" must not exceed {2**63 - 1}'}

    transfer = client.post(
        "/transfer",
        json={"fromuser": "poor", "touser": "rich", "amount": 2**62 + 5},
    )
    assert transfer.status_code == 400
    assert transfer.json()["message"] == f'value "balance" must not exceed {2**63 - 1}'

    assert client.get("/account", params={"username": "rich"}).json()["balance"] == 2**62
    assert client.get("/account", params={"username": "poor"}).json()["debt"] == 2**62


def test_deposit_idempotency(client: TestClient) -> None:
    _create(client, "eve")
    key = str(uuid.uuid4())
    first = client.post(
        "/deposit",
        json={"username": "eve", "amount": 500},
        headers={"Idempotency-Key": key},
    )
    second = client.post(
        "/deposit",
        json={"username": "eve", "amount": 500},
        headers={"Idempotency-Key": key},
    )
    assert first.status_code == 200
    assert second.status_code == 200
    assert first.json() == second.json()
    snapshot = client.get("/account", params={"username": "eve"})
    assert snapshot.json()["balance"] == 500


def test_transfer_idempotency_key_reuse_with_other_amount(client: TestClient) -> None:
    _create(client, "nina")
    _create(client, "omar")
    key = str(uuid.uuid4())
    body = {"fromuser": "nina", "touser": "omar", "amount": 10}

    first = client.post("/transfer", json=body, headers={"Idempotency-Key": key})
    replay = client.post("/transfer", json=body, headers={"Idempotency-Key": key})
    assert first.json() == replay.json()
    assert client.get("/account", params={"username": "nina"}).json()["debt"] == 10

    mismatch = client.post(
        "/transfer",
        json={**body, "amount": 11},
        headers={"Idempotency-Key": key},
    )
    assert mismatch.status_code == 400
    assert mismatch.json()["message"] == (
        "idempotency key was previously used with different parameters"
    )


def test_health(client: TestClient) -> None:
    assert client.get("/health").json() == {"status": "ok"}
