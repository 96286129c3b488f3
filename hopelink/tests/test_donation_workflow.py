"""
Integration tests for the donation lifecycle.

Donor posts -> recipient claims -> volunteer delivers -> recipient confirms.
"""

import json

import pytest


@pytest.mark.asyncio
async def test_create_donation_requires_donor(client, recipient):
    _, headers = recipient
    response = await client.post("/v1/donations", json={
        "title": "Rice", "category": "food"
    }, headers=headers)
    assert response.status_code == 403
    assert response.json()["message"] == "Access denied. Required role: donor"


@pytest.mark.asyncio
async def test_new_donation_starts_available(client, donor, new_donation):
    _, headers = donor
    donation = await new_donation(client, headers)
    assert donation["status"] == "available"
    assert donation["delivery_mode"] == "volunteer"


@pytest.mark.asyncio
async def test_detail_has_view_and_allowed_moves(client, donor, recipient, new_donation):
    donor_user, donor_headers = donor
    _, recipient_headers = recipient
    donation = await new_donation(client, donor_headers, description=None)

    response = await client.get(f"/v1/donations/{donation['id']}", headers=donor_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["donor_name"] == "Dana Donor"
    assert data["display"]["description"] == "Not provided"
    assert data["display"]["pickup_location"] == "12 Main St"
    assert data["view"]["label"] == "Available"
    assert data["view"]["progress"]["percentage"] == 0
    assert data["allowed_transitions"] == ["cancelled"]

    response = await client.get(f"/v1/donations/{donation['id']}", headers=recipient_headers)
    assert response.json()["allowed_transitions"] == ["claimed"]


@pytest.mark.asyncio
async def test_list_filters_and_orders_newest_first(client, donor, new_donation):
    _, headers = donor
    first = await new_donation(client, headers, title="First")
    second = await new_donation(client, headers, title="Second")
    await client.patch(f"/v1/donations/{first['id']}/status", json={"status": "cancelled"}, headers=headers)

    response = await client.get("/v1/donations", headers=headers)
    data = response.json()
    assert data["total"] == 2
    assert [d["id"] for d in data["donations"]] == [second["id"], first["id"]]

    response = await client.get("/v1/donations?status=cancelled", headers=headers)
    assert [d["id"] for d in response.json()["donations"]] == [first["id"]]


@pytest.mark.asyncio
async def test_page_size_is_capped(client, donor):
    _, headers = donor
    response = await client.get("/v1/donations?page_size=500", headers=headers)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_full_volunteer_delivery(client, redis, donor, recipient, volunteer, new_donation):
    donor_user, donor_headers = donor
    recipient_user, recipient_headers = recipient
    volunteer_user, volunteer_headers = volunteer
    donation = await new_donation(client, donor_headers)

    # Claim opens a delivery
    response = await client.post(
        f"/v1/donations/{donation['id']}/claim", json={}, headers=recipient_headers
    )
    assert response.status_code == 200
    claim = response.json()
    assert claim["status"] == "claimed"
    assert claim["view"]["progress"]["percentage"] == 40
    delivery_id = claim["delivery_id"]
    assert delivery_id is not None

    response = await client.get(f"/v1/deliveries/{delivery_id}", headers=recipient_headers)
    assert response.json()["status"] == "pending"
    assert response.json()["recipient_name"] == "Riley Recipient"
    assert response.json()["volunteer_name"] == "Unknown"

    # Volunteer sees and takes the open delivery
    response = await client.get("/v1/deliveries?open_only=true", headers=volunteer_headers)
    assert [d["id"] for d in response.json()["deliveries"]] == [delivery_id]

    response = await client.post(f"/v1/deliveries/{delivery_id}/assign", headers=volunteer_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "assigned"

    for target in ("accepted", "picked_up"):
        response = await client.patch(
            f"/v1/deliveries/{delivery_id}/status", json={"status": target}, headers=volunteer_headers
        )
        assert response.status_code == 200, response.text

    # in_transit on the delivery moves the donation too
    response = await client.patch(
        f"/v1/deliveries/{delivery_id}/status", json={"status": "in_transit"}, headers=volunteer_headers
    )
    assert response.json()["synced"] == [
        {"entity_type": "donation", "entity_id": donation["id"], "status": "in_transit"}
    ]

    response = await client.patch(
        f"/v1/deliveries/{delivery_id}/status",
        json={"status": "delivered", "notes": "Left with reception"},
        headers=volunteer_headers
    )
    assert response.status_code == 200
    assert response.json()["view"]["progress"]["percentage"] == 100

    response = await client.get(f"/v1/donations/{donation['id']}", headers=recipient_headers)
    assert response.json()["status"] == "delivered"
    assert response.json()["allowed_transitions"] == ["completed"]

    response = await client.patch(
        f"/v1/donations/{donation['id']}/status", json={"status": "completed"}, headers=recipient_headers
    )
    assert response.status_code == 200
    assert response.json()["view"]["progress"]["percentage"] == 100

    # One event per committed change, each on its entity's channel
    donation_events = [
        json.loads(m)["status"] for c, m in redis.published if c == "hopelink:changes:donation"
    ]
    assert donation_events == ["claimed", "in_transit", "delivered", "completed"]
    delivery_events = [
        json.loads(m)["status"] for c, m in redis.published if c == "hopelink:changes:delivery"
    ]
    assert delivery_events == ["pending", "assigned", "accepted", "picked_up", "in_transit", "delivered"]

    response = await client.get("/v1/deliveries/me/stats", headers=volunteer_headers)
    assert response.json() == {
        "volunteer_id": volunteer_user.id,
        "total_deliveries": 1,
        "completed_deliveries": 1,
        "active_deliveries": 0,
    }


@pytest.mark.asyncio
async def test_direct_delivery_is_run_by_donor(client, donor, recipient, new_donation):
    _, donor_headers = donor
    _, recipient_headers = recipient
    donation = await new_donation(client, donor_headers, delivery_mode="direct")

    response = await client.post(
        f"/v1/donations/{donation['id']}/claim", json={}, headers=recipient_headers
    )
    delivery_id = response.json()["delivery_id"]

    response = await client.get(f"/v1/deliveries/{delivery_id}", headers=donor_headers)
    assert response.json()["status"] == "coordination_needed"
    assert response.json()["view"]["label"] == "Pending"
    assert response.json()["allowed_transitions"] == ["scheduled", "cancelled"]

    for target in ("scheduled", "out_for_delivery", "delivered"):
        response = await client.patch(
            f"/v1/deliveries/{delivery_id}/status", json={"status": target}, headers=donor_headers
        )
        assert response.status_code == 200, response.text

    response = await client.get(f"/v1/donations/{donation['id']}", headers=donor_headers)
    assert response.json()["status"] == "delivered"


@pytest.mark.asyncio
async def test_donor_is_notified_of_claim(client, donor, recipient, new_donation):
    _, donor_headers = donor
    _, recipient_headers = recipient
    donation = await new_donation(client, donor_headers, title="Baby stroller")

    await client.post(f"/v1/donations/{donation['id']}/claim", json={}, headers=recipient_headers)

    response = await client.get("/v1/notifications?unread_only=true", headers=donor_headers)
    notifications = response.json()
    assert len(notifications) == 1
    assert notifications[0]["message"] == "'Baby stroller' is now Claimed"
    assert notifications[0]["metadata_payload"]["status"] == "claimed"

    response = await client.patch("/v1/notifications/read-all", headers=donor_headers)
    assert response.json()["count"] == 1

    # The claimer is not notified about their own action
    response = await client.get("/v1/notifications", headers=recipient_headers)
    assert response.json() == []


@pytest.mark.asyncio
async def test_edit_only_while_available(client, donor, recipient, new_donation):
    _, donor_headers = donor
    _, recipient_headers = recipient
    donation = await new_donation(client, donor_headers)

    response = await client.put(
        f"/v1/donations/{donation['id']}", json={"quantity": 5}, headers=donor_headers
    )
    assert response.status_code == 200
    assert response.json()["quantity"] == 5

    await client.post(f"/v1/donations/{donation['id']}/claim", json={}, headers=recipient_headers)

    response = await client.put(
        f"/v1/donations/{donation['id']}", json={"quantity": 1}, headers=donor_headers
    )
    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_WORKFLOW_004"
    assert response.json()["details"]["current_status"] == "claimed"


@pytest.mark.asyncio
async def test_only_owner_can_edit(client, donor, make_user, new_donation):
    _, donor_headers = donor
    _, other_headers = await make_user(donor[0].role)
    donation = await new_donation(client, donor_headers)

    response = await client.put(
        f"/v1/donations/{donation['id']}", json={"quantity": 2}, headers=other_headers
    )
    assert response.status_code == 403
    assert response.json()["message"] == "Access denied. You do not have permission to modify this donation."


@pytest.mark.asyncio
async def test_delete_windows(client, donor, recipient, new_donation):
    _, donor_headers = donor
    _, recipient_headers = recipient
    kept = await new_donation(client, donor_headers)
    removed = await new_donation(client, donor_headers)

    await client.post(f"/v1/donations/{kept['id']}/claim", json={}, headers=recipient_headers)
    response = await client.delete(f"/v1/donations/{kept['id']}", headers=donor_headers)
    assert response.status_code == 409

    response = await client.delete(f"/v1/donations/{removed['id']}", headers=donor_headers)
    assert response.status_code == 200
    response = await client.get(f"/v1/donations/{removed['id']}", headers=donor_headers)
    assert response.status_code == 404
    assert response.json()["error_code"] == "ERR_NOT_FOUND_001"
