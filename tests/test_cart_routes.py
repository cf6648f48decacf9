url_prefix = "/api/v1"


def opt(group, option):
    return {"option_group_id": group, "option_id": option}


def line(product_id, quantity=1, options=None, unit_price=1000):
    return {"product_id": product_id, "quantity": quantity, "selected_options": options or [], "unit_price": unit_price}


async def test_cart_requires_session(ac_client):
    r = await ac_client.get(f"{url_prefix}/cart")

    assert r.status_code == 401
    body = r.json()
    assert body["status"] == "error"
    assert body["error"]["code"] == "INVALID_AUTH"
    assert body["request_id"]


async def test_get_cart_before_any_add_returns_null(ac_client, otp_login):
    headers, _ = await otp_login(ac_client)

    r = await ac_client.get(f"{url_prefix}/cart", headers=headers)

    assert r.status_code == 200
    assert r.json()["data"] is None


async def test_add_update_remove_flow(ac_client, otp_login, make_product):
    headers, _ = await otp_login(ac_client)
    p = await make_product()
    opts = [opt(p["color_group"], p["silver"]), opt(p["ram_group"], p["ram_8"])]

    r = await ac_client.post(f"{url_prefix}/cart/items", json=line(p["id"], 2, opts, 1100), headers=headers)
    assert r.status_code == 200, r.text
    assert r.json()["data"]["created"] is True

    r = await ac_client.post(f"{url_prefix}/cart/items", json=line(p["id"], 1, list(reversed(opts)), 1100),
                             headers=headers)
    data = r.json()["data"]
    assert data["created"] is False
    assert data["item"]["quantity"] == 3
    item_id = data["item"]["id"]

    r = await ac_client.get(f"{url_prefix}/cart", headers=headers)
    cart = r.json()["data"]
    assert len(cart["items"]) == 1
    assert cart["items"][0]["product"]["slug"] == "laptop-x"

    r = await ac_client.patch(f"{url_prefix}/cart/items/{item_id}", json={"quantity": 0}, headers=headers)
    assert r.status_code == 200
    assert r.json()["data"] == {"deleted": True, "item_id": item_id}

    r = await ac_client.get(f"{url_prefix}/cart", headers=headers)
    assert r.json()["data"]["items"] == []


async def test_add_invalid_payload_is_rejected(ac_client, otp_login):
    headers, _ = await otp_login(ac_client)

    r = await ac_client.post(f"{url_prefix}/cart/items", json={"product_id": 1, "quantity": 0, "unit_price": 1},
                             headers=headers)

    assert r.status_code == 422
    assert r.json()["error"]["code"] == "UNPROCESSABLE_ENTITY"


async def test_foreign_item_is_not_found(ac_client, otp_login, make_product):
    owner_headers, _ = await otp_login(ac_client, phone_number="09121111111")
    other_headers, _ = await otp_login(ac_client, phone_number="09122222222")
    p = await make_product()

    r = await ac_client.post(f"{url_prefix}/cart/items", json=line(p["id"], 2), headers=owner_headers)
    item_id = r.json()["data"]["item"]["id"]

    r = await ac_client.patch(f"{url_prefix}/cart/items/{item_id}", json={"quantity": 9}, headers=other_headers)
    assert r.status_code == 404
    body = r.json()
    assert body["error"]["code"] == "NOT_FOUND"
    assert body["error"]["details"]["retryable"] is False

    r = await ac_client.delete(f"{url_prefix}/cart/items/{item_id}", headers=other_headers)
    assert r.status_code == 404

    r = await ac_client.get(f"{url_prefix}/cart", headers=owner_headers)
    assert r.json()["data"]["items"][0]["quantity"] == 2


async def test_merge_endpoint(ac_client, otp_login, make_product):
    headers, _ = await otp_login(ac_client)
    p = await make_product()
    await ac_client.post(f"{url_prefix}/cart/items", json=line(p["id"], 3), headers=headers)

    local = [{**line(p["id"], 2), "timestamp": "2026-01-01T10:00:00Z"}, line(p["id"], 1, [opt(p["ram_group"], p["ram_16"])])]
    r = await ac_client.post(f"{url_prefix}/cart/merge", json={"items": local}, headers=headers)

    assert r.status_code == 200, r.text
    assert r.json()["data"]["updated"] == 1
    assert r.json()["data"]["inserted"] == 1

    r = await ac_client.get(f"{url_prefix}/cart", headers=headers)
    assert sorted(i["quantity"] for i in r.json()["data"]["items"]) == [1, 5]


async def test_merge_with_invalid_entry_changes_nothing(ac_client, otp_login, make_product):
    headers, _ = await otp_login(ac_client)
    p = await make_product()

    r = await ac_client.post(f"{url_prefix}/cart/merge", json={"items": [line(p["id"], 2), {"product_id": "x"}]},
                             headers=headers)

    assert r.status_code == 422
    assert r.json()["error"]["code"] == "VALIDATION_FAILED"

    r = await ac_client.get(f"{url_prefix}/cart", headers=headers)
    assert r.json()["data"] is None


async def test_clear_cart_endpoint(ac_client, otp_login, make_product):
    headers, _ = await otp_login(ac_client)
    p = await make_product()
    await ac_client.post(f"{url_prefix}/cart/items", json=line(p["id"], 3), headers=headers)

    r = await ac_client.delete(f"{url_prefix}/cart", headers=headers)

    assert r.status_code == 200
    assert r.json()["data"] == {"cleared": 1}


async def test_view_for_anonymous_caller_uses_local_items(ac_client):
    r = await ac_client.post(f"{url_prefix}/cart/view", json={"local_items": [line(1, 2, unit_price=1250000)]})

    assert r.status_code == 200
    view = r.json()["data"]
    assert view["source"] == "local"
    assert view["total_price"] == 2500000
    assert view["formatted_total"] == "۲٬۵۰۰٬۰۰۰ ریال"


async def test_view_prefers_persisted_cart_when_logged_in(ac_client, otp_login, make_product):
    headers, _ = await otp_login(ac_client)
    p = await make_product()
    await ac_client.post(f"{url_prefix}/cart/items", json=line(p["id"], 1), headers=headers)

    r = await ac_client.post(f"{url_prefix}/cart/view", json={"local_items": [line(p["id"], 7)]}, headers=headers)

    view = r.json()["data"]
    assert view["source"] == "persisted"
    assert view["total_items"] == 1


async def test_view_with_logged_in_user_and_no_cart_falls_back_to_local(ac_client, otp_login):
    headers, _ = await otp_login(ac_client)

    r = await ac_client.post(f"{url_prefix}/cart/view", json={"local_items": [line(1, 2)]}, headers=headers)

    assert r.json()["data"]["source"] == "local"
