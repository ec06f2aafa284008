from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from postgrest.exceptions import APIError

from backend.errors import InternalInconsistency, MissingMetadata
from backend.orders.repository import OrderRepository


def _unique_violation():
    return APIError({"code": "23505", "message": "duplicate key value violates unique constraint"})


def _record(repo, **overrides):
    kwargs = {
        "session_id": "cs_test_1",
        "order_fields": {"user_id": "user-1", "status": "processing", "receipt_url": "https://r", "customer_email": None},
        "items": [{"product_id": "prod-a", "product_name": "Kit", "quantity": 1, "price": "19.99"}],
        "captured_items": [{"id": "ci-1", "quantity": 1}],
    }
    kwargs.update(overrides)
    return repo.record_checkout_order(**kwargs)


def test_record_calls_rpc_with_full_payload():
    client = MagicMock()
    client.rpc.return_value.execute.return_value = SimpleNamespace(
        data=[{"order_id": "o-1", "created": True, "created_at": "2024-05-01T12:00:00+00:00"}]
    )
    result = _record(OrderRepository(client))

    assert result.order_id == "o-1" and result.created is True
    name, params = client.rpc.call_args.args
    assert name == "record_checkout_order"
    assert params["p_session_id"] == "cs_test_1"
    assert params["p_captured_items"] == [{"id": "ci-1", "quantity": 1}]
    assert params["p_items"][0]["price"] == "19.99"


def test_record_existing_session_reports_not_created():
    client = MagicMock()
    client.rpc.return_value.execute.return_value = SimpleNamespace(data=[{"order_id": "o-1", "created": False}])
    assert _record(OrderRepository(client)).created is False


def test_record_unique_violation_switches_to_refresh():
    client = MagicMock()
    client.rpc.return_value.execute.side_effect = _unique_violation()
    table = client.table.return_value
    table.update.return_value.eq.return_value.execute.return_value = SimpleNamespace(data=[{"id": "o-9"}])
    table.update.return_value.eq.return_value.eq.return_value.execute.return_value = SimpleNamespace(data=[])

    result = _record(OrderRepository(client))

    assert result.order_id == "o-9" and result.created is False
    # None ne remplace jamais une valeur existante; le statut est mis à jour séparément
    assert table.update.call_args_list[0].args[0] == {"receipt_url": "https://r"}
    assert table.update.call_args_list[1].args[0] == {"status": "processing"}


def test_record_other_errors_propagate():
    client = MagicMock()
    client.rpc.return_value.execute.side_effect = RuntimeError("connection reset")
    with pytest.raises(RuntimeError):
        _record(OrderRepository(client))


def test_record_empty_result_is_inconsistent():
    client = MagicMock()
    client.rpc.return_value.execute.return_value = SimpleNamespace(data=[])
    with pytest.raises(InternalInconsistency):
        _record(OrderRepository(client))


def test_get_order_by_session_id_builds_order():
    client = MagicMock()
    chain = client.table.return_value.select.return_value.eq.return_value.limit.return_value
    chain.execute.return_value = SimpleNamespace(data=[{
        "id": "o-1",
        "user_id": "user-1",
        "created_at": "2024-05-01T12:00:00+00:00",
        "total_amount": "44.98",
        "currency": "usd",
        "status": "processing",
        "stripe_session_id": "cs_test_1",
        "order_items": [
            {"id": "oi-1", "product_id": "prod-a", "product_name": "", "quantity": 2, "price": "19.99",
             "products": {"name": "Arduino Starter Kit", "image_url": "https://img/a.png"}},
        ],
    }])

    order = OrderRepository(client).get_order_by_session_id("cs_test_1")

    client.table.assert_called_with("orders")
    assert order.id == "o-1"
    assert order.items[0].product_name == "Arduino Starter Kit"
    assert order.items[0].image_url == "https://img/a.png"


def test_get_order_by_session_id_absent():
    client = MagicMock()
    chain = client.table.return_value.select.return_value.eq.return_value.limit.return_value
    chain.execute.return_value = SimpleNamespace(data=[])
    assert OrderRepository(client).get_order_by_session_id("cs_x") is None


@pytest.mark.parametrize("code", ["22P02", "23503"])
def test_record_invalid_reference_is_unrecoverable(code):
    client = MagicMock()
    client.rpc.return_value.execute.side_effect = APIError({"code": code, "message": "invalid input syntax for type uuid"})
    with pytest.raises(MissingMetadata):
        _record(OrderRepository(client), order_fields={"user_id": "not-a-uuid", "status": "processing"})
    client.table.assert_not_called()
