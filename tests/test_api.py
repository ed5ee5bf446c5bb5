from fastapi.testclient import TestClient

from vendorpay.config import Settings
from vendorpay.core.execution.models import LedgerState
from vendorpay.core.recovery import InsufficientFundsError, NetworkError
from vendorpay.core.vendors.registry import VendorRegistry
from vendorpay.main import create_app

from ledger_fakes import FakeLedger


FAST = Settings(
    submit_base_delay_seconds=0.0,
    submit_max_delay_seconds=0.0,
    ledger_call_timeout_seconds=1.0,
    confirmation_timeout_seconds=0.05,
    confirmation_poll_interval_seconds=0.005,
    confirmation_poll_max_interval_seconds=0.01,
)


def make_client(ledger=None, registry=None) -> TestClient:
    app = create_app(
        ledger=ledger or FakeLedger(),
        registry=registry if registry is not None else VendorRegistry(),
        config=FAST,
    )
    return TestClient(app)


def whitelisted(**ledger_kwargs):
    registry = VendorRegistry()
    registry.add("1234324", "toto")
    ledger = FakeLedger(**ledger_kwargs)
    return make_client(ledger, registry), ledger


def buy_payload(**overrides):
    payload = {"lamports": 12312, "vendor": "1234324", "buyer_pair": "123234243"}
    payload.update(overrides)
    return payload


def test_add_and_list_vendors():
    client = make_client()

    resp = client.post("/vendors", json={"wallet_id": "1234324", "name": "toto"})
    assert resp.status_code == 201
    assert resp.json() == {"wallet_id": "1234324", "name": "toto", "address": "", "services": []}

    resp = client.get("/vendors")
    assert resp.status_code == 200
    assert resp.json() == [{"wallet_id": "1234324", "name": "toto", "address": "", "services": []}]


def test_duplicate_vendor_conflict():
    client = make_client()
    client.post("/vendors", json={"wallet_id": "w1", "name": "first"})

    resp = client.post("/vendors", json={"wallet_id": "w1", "name": "second"})

    assert resp.status_code == 409
    assert resp.json()["error"] == "duplicate_vendor"
    assert [v["name"] for v in client.get("/vendors").json()] == ["first"]


def test_blank_wallet_id_rejected():
    client = make_client()

    assert client.post("/vendors", json={"wallet_id": "", "name": "x"}).status_code == 422
    assert client.post("/vendors", json={"wallet_id": "   ", "name": "x"}).status_code == 422
    assert client.get("/vendors").json() == []


def test_buy_confirmed():
    client, ledger = whitelisted()

    resp = client.post("/buy", json=buy_payload())

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "confirmed"
    assert body["signature"] == "sig-1"
    assert body["attempts"] == 1
    assert ledger.submitted[0].amount == 12312


def test_buy_response_hides_buyer_pair():
    client, _ = whitelisted()

    resp = client.post("/buy", json=buy_payload(buyer_pair="very-secret"))

    assert "very-secret" not in resp.text


def test_buy_unknown_vendor():
    client, ledger = whitelisted()

    resp = client.post("/buy", json=buy_payload(vendor="nobody"))

    assert resp.status_code == 404
    assert resp.json()["error"] == "vendor_not_found"
    assert ledger.calls == 0


def test_buy_zero_lamports():
    client, ledger = whitelisted()

    resp = client.post("/buy", json=buy_payload(lamports=0))

    assert resp.status_code == 400
    assert resp.json()["error"] == "invalid_amount"
    assert ledger.calls == 0


def test_buy_malformed_body():
    client, _ = whitelisted()

    assert client.post("/buy", json=buy_payload(lamports="lots")).status_code == 422
    assert client.post("/buy", json={"vendor": "1234324"}).status_code == 422


def test_buy_ledger_errors():
    client, _ = whitelisted(submit_replies=[InsufficientFundsError()])
    resp = client.post("/buy", json=buy_payload())
    assert resp.status_code == 502
    assert resp.json()["error"] == "ledger_permanent"
    assert resp.json()["stage"] == "submit"

    client, _ = whitelisted(submit_replies=[NetworkError()] * 3)
    resp = client.post("/buy", json=buy_payload())
    assert resp.status_code == 503
    assert resp.json()["error"] == "ledger_transient"


def test_buy_timeout_returns_signature():
    client, ledger = whitelisted(confirm_replies=[LedgerState.PENDING])

    resp = client.post("/buy", json=buy_payload())

    assert resp.status_code == 504
    body = resp.json()
    assert body["error"] == "timed_out"
    assert body["signature"] == "sig-1"
    assert len(ledger.submitted) == 1


def test_buy_failed_on_ledger():
    client, _ = whitelisted(confirm_replies=[LedgerState.FAILED])

    resp = client.post("/buy", json=buy_payload())

    assert resp.status_code == 502
    assert resp.json()["status"] == "failed"
    assert resp.json()["signature"] == "sig-1"


def test_transaction_status():
    client, _ = whitelisted(confirm_replies=[LedgerState.CONFIRMED])

    resp = client.get("/transactions/sig-7")

    assert resp.status_code == 200
    assert resp.json()["signature"] == "sig-7"
    assert resp.json()["state"] == "confirmed"


def test_health_endpoint():
    client, _ = whitelisted()

    resp = client.get("/healthz")

    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["vendors"] == 1
    assert "ledger" in data


def test_lifespan_closes_ledger():
    ledger = FakeLedger()

    with make_client(ledger) as client:
        client.get("/healthz")

    assert ledger.closed


def test_request_id_echoed():
    client = make_client()

    assert client.get("/vendors", headers={"x-request-id": "abc123"}).headers["x-request-id"] == "abc123"
    assert client.get("/vendors").headers["x-request-id"]


def test_transaction_status_untyped_ledger_error():
    client, _ = whitelisted(confirm_replies=[RuntimeError("socket closed")])

    resp = client.get("/transactions/sig-7")

    assert resp.status_code == 503
    assert resp.json()["error"] == "ledger_transient"
    assert resp.json()["signature"] == "sig-7"
