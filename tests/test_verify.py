import pytest

from app.exceptions import ProviderVerificationError, StoreError
from app.models import ORDERS, QUOTES, Document
from app.store import DocumentStore


def _provider_data(**overrides):
    data = {
        "id": 288200108,
        "tx_ref": "REF1",
        "status": "successful",
        "amount": 100,
        "currency": "USD",
        "customer": {"email": "ada@example.com"},
    }
    data.update(overrides)
    return data


def _orders(session_factory):
    db = session_factory()
    try:
        return db.query(Document).filter_by(collection=ORDERS).all()
    finally:
        db.close()


def test_verify_creates_order(client, mocker, session_factory):
    verify = mocker.patch("app.routes.verify_transaction", return_value=_provider_data())

    response = client.post("/verify", json={"transaction_id": 288200108, "expectedAmount": 100, "currency": "USD"})

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "success"
    assert body["verified"] is True
    assert body["data"]["id"] == 288200108
    verify.assert_called_once_with(transaction_id="288200108", tx_ref=None)

    orders = _orders(session_factory)
    assert len(orders) == 1
    assert orders[0].id == body["orderId"]
    assert orders[0].data["status"] == "paid"
    assert orders[0].data["transaction_id"] == "288200108"
    assert orders[0].data["flutterwave_response"] == _provider_data()


def test_verify_by_reference_when_no_transaction_id(client, mocker):
    verify = mocker.patch("app.routes.verify_transaction", return_value=_provider_data())

    response = client.post("/verify", json={"tx_ref": "REF1"})

    assert response.status_code == 200
    verify.assert_called_once_with(transaction_id=None, tx_ref="REF1")


def test_already_processed_short_circuits_provider_call(client, mocker, session_factory):
    mocker.patch("app.routes.verify_transaction", return_value=_provider_data())
    first = client.post("/verify", json={"transaction_id": 288200108})

    verify = mocker.patch("app.routes.verify_transaction")
    second = client.post("/verify", json={"transaction_id": "288200108"})

    verify.assert_not_called()
    assert second.status_code == 200
    body = second.json()
    assert body["alreadyProcessed"] is True
    assert body["verified"] is True
    assert body["orderId"] == first.json()["orderId"]
    assert body["orderDoc"]["transaction_id"] == "288200108"
    assert len(_orders(session_factory)) == 1


def test_verify_by_reference_of_known_transaction_is_already_processed(client, mocker, session_factory):
    mocker.patch("app.routes.verify_transaction", return_value=_provider_data())
    client.post("/verify", json={"transaction_id": 288200108})

    response = client.post("/verify", json={"tx_ref": "REF1"})

    assert response.json()["alreadyProcessed"] is True
    assert len(_orders(session_factory)) == 1


def test_missing_identifiers_is_rejected(client):
    response = client.post("/verify", json={"expectedAmount": 100})

    assert response.status_code == 400
    assert response.json() == {"status": "error", "message": "Missing transaction_id or tx_ref"}


def test_amount_mismatch_is_rejected(client, mocker, session_factory):
    mocker.patch("app.routes.verify_transaction", return_value=_provider_data(amount=150))

    response = client.post("/verify", json={"transaction_id": 288200108, "expectedAmount": 100, "currency": "USD"})

    assert response.status_code == 400
    body = response.json()
    assert body["status"] == "failed"
    assert "100" in body["message"] and "150" in body["message"]
    assert _orders(session_factory) == []


def test_amount_comparison_ignores_representation(client, mocker):
    mocker.patch("app.routes.verify_transaction", return_value=_provider_data(amount=100.0))

    response = client.post("/verify", json={"transaction_id": 288200108, "expectedAmount": "100"})

    assert response.status_code == 200


def test_currency_mismatch_is_rejected(client, mocker, session_factory):
    mocker.patch("app.routes.verify_transaction", return_value=_provider_data(currency="NGN"))

    response = client.post("/verify", json={"transaction_id": 288200108, "currency": "USD"})

    assert response.status_code == 400
    assert response.json()["message"] == "Currency mismatch (expected USD, got NGN)"
    assert _orders(session_factory) == []


@pytest.mark.parametrize("status", ["failed", "pending", None])
def test_unsuccessful_provider_status_is_rejected(client, mocker, session_factory, status):
    mocker.patch("app.routes.verify_transaction", return_value=_provider_data(status=status))

    response = client.post("/verify", json={"transaction_id": 288200108})

    assert response.status_code == 400
    assert response.json()["status"] == "failed"
    assert response.json()["message"] == "Transaction not successful"
    assert _orders(session_factory) == []


def test_provider_failure_is_propagated(client, mocker):
    mocker.patch(
        "app.routes.verify_transaction",
        side_effect=ProviderVerificationError("No transaction was found for this id", data={"status": "error"}),
    )

    response = client.post("/verify", json={"transaction_id": 1})

    assert response.status_code == 400
    assert response.json() == {
        "status": "failed",
        "message": "No transaction was found for this id",
        "data": {"status": "error"},
    }


def test_missing_secret_key_is_a_configuration_error(client, monkeypatch):
    monkeypatch.delenv("FLW_SECRET_KEY")

    response = client.post("/verify", json={"transaction_id": 288200108})

    assert response.status_code == 500
    assert response.json() == {"status": "error", "message": "Missing Flutterwave secret key"}


def test_order_data_is_merged_without_overriding_provider_values(client, mocker, session_factory):
    mocker.patch("app.routes.verify_transaction", return_value=_provider_data())

    client.post("/verify", json={
        "transaction_id": 288200108,
        "orderData": {"trackingRef": "TRK-1", "items": [{"sku": "A1", "qty": 2}], "amount": 1},
    })

    order = _orders(session_factory)[0].data
    assert order["trackingRef"] == "TRK-1"
    assert order["items"] == [{"sku": "A1", "qty": 2}]
    assert order["amount"] == 100


def test_quote_id_is_linked_directly(client, mocker, session_factory):
    db = session_factory()
    quote_id = DocumentStore(db).add("serac", QUOTES, {"tx_ref": "SOMETHING-ELSE", "status": "Pending"})
    db.close()
    mocker.patch("app.routes.verify_transaction", return_value=_provider_data())

    response = client.post("/verify", json={"transaction_id": 288200108, "quoteId": quote_id})

    db = session_factory()
    quote = DocumentStore(db).get("serac", QUOTES, quote_id)
    db.close()
    assert quote.data["status"] == "Paid"
    assert quote.data["orderId"] == response.json()["orderId"]


def test_quote_store_failure_does_not_fail_verification(client, mocker, session_factory):
    mocker.patch("app.routes.verify_transaction", return_value=_provider_data())
    mocker.patch.object(DocumentStore, "update", side_effect=StoreError("quotes unavailable"))

    response = client.post("/verify", json={
        "transaction_id": 288200108,
        "expectedAmount": 100,
        "currency": "USD",
        "quoteId": "q1",
    })

    assert response.status_code == 200
    assert response.json()["status"] == "success"
    assert response.json()["orderId"] == _orders(session_factory)[0].id


def test_brand_can_be_selected(client, mocker, session_factory):
    mocker.patch("app.routes.verify_transaction", return_value=_provider_data())

    client.post("/verify", json={"transaction_id": 288200108, "brandId": "fleurdevie"})

    assert _orders(session_factory)[0].brand_id == "fleurdevie"


def test_wrong_method_is_rejected(client):
    assert client.get("/verify").status_code == 405
