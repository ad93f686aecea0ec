import pytest


@pytest.fixture
def staff(cashier, accountant, auth_header):
    return {"cashier": auth_header(cashier), "accountant": auth_header(accountant)}


def test_health_and_unknown_route(client):
    assert client.get("/").get_json() == {"status": "ok"}
    res = client.get("/api/nope")
    assert res.status_code == 404
    assert res.get_json()["path"] == "/api/nope"


def test_login_and_me(client, cashier):
    res = client.post("/api/auth/login", json={"username": "cashier", "password": "password"})
    assert res.status_code == 200
    token = res.get_json()["token"]

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.get_json()["user"]["role"] == "cashier"

    bad = client.post("/api/auth/login", json={"username": "cashier", "password": "wrong"})
    assert bad.status_code == 401


def test_guard_rejects_missing_bad_and_wrong_role(client, staff):
    assert client.post("/api/tickets/sell", json={}).status_code == 401
    res = client.post("/api/tickets/sell", json={}, headers={"Authorization": "Bearer junk"})
    assert res.status_code == 401
    res = client.post("/api/credit", json={"name": "X"}, headers=staff["cashier"])
    assert res.status_code == 403


def test_sell_cash_over_http(client, staff, make_type, make_meal):
    adult = make_type("Adult", price="50.00")
    meal = make_meal(price="20.00")

    res = client.post(
        "/api/tickets/sell",
        json={
            "tickets": [{"ticket_type_id": adult.id, "quantity": 2}],
            "meals": [{"id": meal.id, "quantity": 1}],
            "payments": [{"method": "cash", "amount": 100}, {"method": "discount", "amount": 20}],
        },
        headers=staff["cashier"],
    )
    assert res.status_code == 201
    body = res.get_json()
    assert body["gross_total"] == "120.00"
    assert len(body["ticket_ids"]) == 2

    order = client.get(f"/api/orders/{body['order_id']}", headers=staff["cashier"]).get_json()
    assert order["user_id"] is not None
    assert len(order["payments"]) == 2


def test_typed_errors_render_as_json(client, staff, make_type, make_account):
    vip = make_type("VIP", price="200.00")
    std = make_type("Standard", price="50.00")
    make_account(name="Acme Corp", categories=["VIP"])

    res = client.post(
        "/api/tickets/sell",
        json={
            "tickets": [{"ticket_type_id": vip.id, "quantity": 1}, {"ticket_type_id": std.id, "quantity": 1}],
            "payments": [{"method": "postponed", "amount": 250}],
        },
        headers=staff["cashier"],
    )
    assert res.status_code == 400
    assert res.get_json()["type"] == "MIXED_PAYMENT_ERROR"

    res = client.post(
        "/api/tickets/sell",
        json={"tickets": [{"ticket_type_id": std.id, "quantity": 1}], "payments": [{"method": "cash", "amount": 1}]},
        headers=staff["cashier"],
    )
    assert res.status_code == 400
    assert res.get_json()["type"] == "PAYMENT_MISMATCH"

    res = client.put(
        "/api/tickets/checkout-existing",
        json={"ticket_ids": [42], "payments": [{"method": "cash", "amount": 1}]},
        headers=staff["cashier"],
    )
    assert res.status_code == 409
    assert res.get_json()["type"] == "TICKET_UNAVAILABLE"
    assert res.get_json()["missing"] == [42]

    res = client.post(
        "/api/tickets/sell",
        json={"tickets": [{"ticket_type_id": std.id, "quantity": 1}], "payments": [{"method": "CREDIT", "amount": 50}]},
        headers=staff["cashier"],
    )
    assert res.status_code == 400
    assert res.get_json()["type"] == "VALIDATION_ERROR"


def test_body_user_id_must_exist(client, staff, make_type):
    adult = make_type("Adult", price="50.00")
    res = client.post(
        "/api/tickets/sell",
        json={
            "user_id": 999,
            "tickets": [{"ticket_type_id": adult.id, "quantity": 1}],
            "payments": [{"method": "cash", "amount": 50}],
        },
        headers=staff["cashier"],
    )
    assert res.status_code == 400


def test_check_credit_status_endpoint(client, staff, make_type, make_account):
    vip = make_type("VIP", price="200.00")
    make_account(name="Acme Corp", categories=["VIP"])

    res = client.post("/api/tickets/check-credit-status", json={"ticketTypeIds": [vip.id]}, headers=staff["cashier"])
    assert res.status_code == 200
    assert res.get_json()["summary"]["payment_type"] == "CREDIT_ONLY"


def test_inventory_endpoints(client, make_user, auth_header, make_type, make_stock):
    admin = auth_header(make_user("admin", "admin"))
    adult = make_type("Adult", price="50.00")

    res = client.post("/api/tickets/generate", json={"tickets": [{"ticket_type_id": adult.id, "quantity": 2}]}, headers=admin)
    assert res.status_code == 201
    ids = res.get_json()["ticket_ids"]

    res = client.put("/api/tickets/assign", json={"assignments": [{"id": ids[0], "ticket_type_id": None}]}, headers=admin)
    assert res.get_json()["results"]["unassigned"] == 1

    res = client.patch("/api/tickets/validate", json={"ticket_ids": ids, "valid": False}, headers=admin)
    assert res.get_json()["updated"] == ids

    assert client.get(f"/api/tickets/{ids[1]}", headers=admin).get_json()["valid"] is False
    assert client.get("/api/tickets/999", headers=admin).status_code == 404
    types = client.get("/api/tickets/types", headers=admin).get_json()
    assert [t["category"] for t in types] == ["Adult"]

    res = client.put("/api/tickets/refund", json={"ticket_ids": ids}, headers=admin)
    assert res.status_code == 404


def test_credit_admin_flow(client, staff, make_type):
    make_type("VIP", price="200.00")

    res = client.post("/api/credit", json={"name": "Acme Corp", "initialBalance": 500}, headers=staff["accountant"])
    assert res.status_code == 201
    acct_id = res.get_json()["account"]["id"]

    dup = client.post("/api/credit", json={"name": "Acme Corp"}, headers=staff["accountant"])
    assert dup.status_code == 409

    res = client.post(
        f"/api/credit/{acct_id}/adjust",
        json={"amount": -50, "description": "correction"},
        headers=staff["accountant"],
    )
    assert res.get_json()["newBalance"] == "450.00"

    link = {"categoryName": "VIP", "creditAccountId": acct_id}
    assert client.post("/api/credit/link-category", json=link, headers=staff["accountant"]).status_code == 201
    assert client.post("/api/credit/link-category", json=link, headers=staff["accountant"]).status_code == 200
    linked = client.get("/api/credit/categories/linked", headers=staff["accountant"]).get_json()
    assert linked[0]["category_name"] == "VIP"
    assert client.get("/api/credit/categories/available", headers=staff["accountant"]).get_json() == ["VIP"]

    txs = client.get(f"/api/credit/{acct_id}/transactions?limit=1", headers=staff["accountant"]).get_json()
    assert txs["pagination"]["total"] == 2
    assert len(txs["transactions"]) == 1

    account = client.get(f"/api/credit/{acct_id}", headers=staff["accountant"]).get_json()
    assert account["balance"] == "450.00"
    assert account["in_sync"] is True

    res = client.delete("/api/credit/unlink-category", json=link, headers=staff["accountant"])
    assert res.status_code == 200
    assert client.get("/api/credit", headers=staff["accountant"]).get_json()[0]["linked_categories"] == []


def test_payment_methods_exclude_credit(client, staff):
    methods = client.get("/api/orders/payment-methods", headers=staff["cashier"]).get_json()
    values = [m["value"] for m in methods]
    assert "CREDIT" not in values
    assert "cash" in values and "postponed" in values


def test_out_of_range_amount_is_a_client_error(client, staff, make_type):
    adult = make_type("Adult", price="50.00")
    res = client.post(
        "/api/tickets/sell",
        json={"tickets": [{"ticket_type_id": adult.id, "quantity": 1}], "payments": [{"method": "cash", "amount": "1e30"}]},
        headers=staff["cashier"],
    )
    assert res.status_code == 400
    assert res.get_json()["type"] == "VALIDATION_ERROR"

    res = client.post("/api/credit", json={"name": "Acme Corp", "initialBalance": "1e30"}, headers=staff["accountant"])
    assert res.status_code == 400
