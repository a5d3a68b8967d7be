import re

VOUCHER = {
    "name": "Coffee voucher",
    "description": "One free coffee",
    "pointsCost": 50,
    "category": "voucher",
    "quantity": 3,
    "merchantName": "Starbucks",
}


def _add_reward(client, headers, **overrides):
    return client.post("/api/rewards/admin/add", json={**VOUCHER, **overrides}, headers=headers)


def test_welcome_bonus(client, auth_headers):
    response = client.post("/api/rewards/welcome-bonus/u1", headers=auth_headers)
    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "pointsAwarded": 100,
        "message": "Welcome bonus of 100 points has been added to your account",
    }

    again = client.post("/api/rewards/welcome-bonus/u1", headers=auth_headers)
    assert again.status_code == 409
    assert again.json() == {"detail": "Welcome bonus already claimed"}

    points = client.get("/api/user-points/u1", headers=auth_headers).json()
    assert points["totalPoints"] == 100
    assert points["lastUpdated"].endswith("Z")


def test_admin_add_requires_admin(client, auth_headers, admin_headers):
    assert _add_reward(client, auth_headers).status_code == 403

    response = _add_reward(client, admin_headers)
    assert response.status_code == 201
    reward = response.json()
    assert reward["category"] == "VOUCHER"
    assert reward["isAvailable"] is True

    fetched = client.get(f"/api/rewards/{reward['id']}", headers=auth_headers)
    assert fetched.json()["name"] == "Coffee voucher"


def test_admin_add_rejects_invalid_reward(client, admin_headers):
    assert _add_reward(client, admin_headers, pointsCost=0).status_code == 400
    assert _add_reward(client, admin_headers, quantity=-1).status_code == 400


def test_redeem_flow(client, auth_headers, admin_headers):
    reward_id = _add_reward(client, admin_headers).json()["id"]
    client.post("/api/rewards/welcome-bonus/u1", headers=auth_headers)

    response = client.post(f"/api/rewards/redeem/u1/{reward_id}", headers=auth_headers)
    assert response.status_code == 200
    redemption = response.json()
    assert redemption["status"] == "FULFILLED"
    assert re.match(r"^PW-[0-9A-F]{8}$", redemption["redemptionCode"])
    assert redemption["expiryDate"].endswith("Z")

    points = client.get("/api/rewards/points/u1", headers=auth_headers).json()
    assert (points["availablePoints"], points["spentPoints"]) == (50, 50)

    history = client.get("/api/rewards/history/u1", headers=auth_headers).json()
    assert {h["rewardName"] for h in history} == {"Coffee voucher", "Welcome Bonus"}

    spent = client.get("/api/user-points/u1/transactions/type/SPENT", headers=auth_headers).json()
    assert [t["points"] for t in spent] == [50]
    assert spent[0]["source"] == "REWARD_REDEMPTION"


def test_redeem_without_points_is_conflict(client, auth_headers, admin_headers):
    reward_id = _add_reward(client, admin_headers).json()["id"]
    response = client.post(f"/api/rewards/redeem/u1/{reward_id}", headers=auth_headers)
    assert response.status_code == 409
    assert response.json() == {"detail": "Not enough points to redeem this reward"}


def test_redeem_unknown_reward(client, auth_headers):
    assert client.post("/api/rewards/redeem/u1/missing", headers=auth_headers).status_code == 404


def test_redemption_administration(client, auth_headers, admin_headers):
    reward_id = _add_reward(client, admin_headers, category="merch", name="Mug").json()["id"]
    client.post("/api/rewards/welcome-bonus/u1", headers=auth_headers)
    redemption_id = client.post(
        f"/api/rewards/redeem/u1/{reward_id}", headers=auth_headers
    ).json()["id"]

    pending = client.get("/api/user-rewards/u1/status/pending", headers=auth_headers).json()
    assert [r["id"] for r in pending] == [redemption_id]

    response = client.put(
        f"/api/rewards/admin/redemption/{redemption_id}",
        json={"status": "SHIPPED"},
        headers=admin_headers,
    )
    assert response.status_code == 400

    response = client.put(
        f"/api/rewards/admin/redemption/{redemption_id}",
        json={"status": "FULFILLED"},
        headers=admin_headers,
    )
    assert response.json()["status"] == "FULFILLED"

    response = client.put(
        f"/api/rewards/admin/redemption/{redemption_id}/delivery",
        json={"deliveryInfo": "1 Main St"},
        headers=admin_headers,
    )
    assert response.json()["deliveryInfo"] == "1 Main St"

    response = client.put(
        f"/api/rewards/admin/redemption/{redemption_id}",
        json={"status": "CANCELLED"},
        headers=auth_headers,
    )
    assert response.status_code == 403


def test_update_and_delete_reward(client, auth_headers, admin_headers):
    reward_id = _add_reward(client, admin_headers).json()["id"]

    response = client.put(
        f"/api/rewards/admin/{reward_id}", json={**VOUCHER, "quantity": 0}, headers=admin_headers
    )
    assert response.json()["isAvailable"] is False
    assert client.get("/api/rewards/available", headers=auth_headers).json() == []

    assert client.delete(f"/api/rewards/admin/{reward_id}", headers=admin_headers).status_code == 204
    assert client.get(f"/api/rewards/{reward_id}", headers=auth_headers).status_code == 404


def test_catalog_queries(client, auth_headers, admin_headers):
    _add_reward(client, admin_headers, name="Sticker", category="merch", pointsCost=20)
    _add_reward(client, admin_headers)
    client.post("/api/rewards/welcome-bonus/u1", headers=auth_headers)

    available = client.get("/api/rewards/available", headers=auth_headers).json()
    assert [r["pointsCost"] for r in available] == [20, 50]

    vouchers = client.get("/api/rewards/category/Voucher", headers=auth_headers).json()
    assert [r["name"] for r in vouchers] == ["Coffee voucher"]

    affordable = client.get("/api/rewards/affordable/u1", headers=auth_headers).json()
    assert len(affordable) == 2
    assert client.get("/api/rewards/affordable/u2", headers=auth_headers).json() == []


def test_transactions_and_points_endpoints(client, auth_headers):
    assert client.get("/api/user-points/u1", headers=auth_headers).status_code == 404
    fresh = client.get("/api/rewards/points/u1", headers=auth_headers).json()
    assert fresh["availablePoints"] == 0

    client.post("/api/rewards/welcome-bonus/u1", headers=auth_headers)

    recent = client.get("/api/rewards/transactions/u1", params={"days": 1}, headers=auth_headers).json()
    assert [t["source"] for t in recent] == ["WELCOME_BONUS"]
    assert recent[0]["transactionDate"].endswith("Z")

    by_source = client.get(
        "/api/user-points/u1/transactions/source/welcome_bonus", headers=auth_headers
    ).json()
    assert len(by_source) == 1
    bad = client.get("/api/user-points/u1/transactions/source/LOTTERY", headers=auth_headers)
    assert bad.status_code == 400


def test_award_points_endpoint(client, auth_headers):
    receipt = client.post(
        "/api/receipts",
        json={"merchantName": "Walmart", "totalExpense": 9.99, "dateOfPurchase": "2024-03-10"},
        headers=auth_headers,
    ).json()["receipt"]
    response = client.post(f"/api/rewards/award-points/{receipt['id']}", headers=auth_headers)
    assert response.status_code == 400

    owned = client.post(
        "/api/receipts",
        json={"userId": "u1", "merchantName": "Walmart", "totalExpense": 9.99},
        headers=auth_headers,
    ).json()["receipt"]
    response = client.post(f"/api/rewards/award-points/{owned['id']}", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["points"] == 9
    assert response.json()["id"] == f"receipt-{owned['id']}"


def test_user_rewards_recent_and_expiring(client, auth_headers, admin_headers):
    reward_id = _add_reward(client, admin_headers, expiryDate="2099-01-01T00:00:00Z").json()["id"]
    client.post("/api/rewards/welcome-bonus/u1", headers=auth_headers)
    client.post(f"/api/rewards/redeem/u1/{reward_id}", headers=auth_headers)

    recent = client.get("/api/user-rewards/u1/recent", headers=auth_headers).json()
    assert len(recent) == 2
    expiring = client.get("/api/user-rewards/u1/expiring", params={"days": 30}, headers=auth_headers)
    assert expiring.json() == []
    assert client.get("/api/user-rewards/u1/recent", params={"days": 0}, headers=auth_headers).status_code == 400


def test_huge_day_windows(client, auth_headers):
    client.post("/api/rewards/welcome-bonus/u1", headers=auth_headers)
    params = {"days": 999999999}

    transactions = client.get("/api/rewards/transactions/u1", params=params, headers=auth_headers)
    assert transactions.status_code == 200
    assert len(transactions.json()) == 1
    for view in ("recent", "expiring"):
        response = client.get(f"/api/user-rewards/u1/{view}", params=params, headers=auth_headers)
        assert response.status_code == 200
