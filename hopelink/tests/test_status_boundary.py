"""
Integration tests for the status-update boundary error envelope.
"""

import pytest


@pytest.mark.asyncio
async def test_illegal_transition(client, donor, new_donation):
    _, headers = donor
    donation = await new_donation(client, headers)

    response = await client.patch(
        f"/v1/workflow/donation/{donation['id']}/status", json={"status": "completed"}, headers=headers
    )
    assert response.status_code == 409
    body = response.json()
    assert body["error_code"] == "ERR_WORKFLOW_001"
    assert body["details"]["current_status"] == "available"
    assert body["details"]["requested_status"] == "completed"
    assert body["details"]["allowed"] == ["cancelled"]


@pytest.mark.asyncio
async def test_unknown_status(client, donor, new_donation):
    _, headers = donor
    donation = await new_donation(client, headers)

    response = await client.patch(
        f"/v1/donations/{donation['id']}/status", json={"status": "teleported"}, headers=headers
    )
    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_WORKFLOW_002"


@pytest.mark.asyncio
async def test_stale_expected_status(client, donor, new_donation):
    _, headers = donor
    donation = await new_donation(client, headers)

    response = await client.patch(
        f"/v1/donations/{donation['id']}/status",
        json={"status": "cancelled", "expected_status": "matched"},
        headers=headers
    )
    assert response.status_code == 409
    body = response.json()
    assert body["error_code"] == "ERR_WORKFLOW_003"
    assert body["details"]["actual_status"] == "available"

    # Nothing was written
    response = await client.get(f"/v1/donations/{donation['id']}", headers=headers)
    assert response.json()["status"] == "available"


@pytest.mark.asyncio
async def test_second_claim_loses(client, donor, recipient, make_user, new_donation):
    _, donor_headers = donor
    _, first_headers = recipient
    _, second_headers = await make_user(recipient[0].role)
    donation = await new_donation(client, donor_headers)

    response = await client.post(
        f"/v1/donations/{donation['id']}/claim", json={"expected_status": "available"}, headers=first_headers
    )
    assert response.status_code == 200

    response = await client.post(
        f"/v1/donations/{donation['id']}/claim", json={"expected_status": "available"}, headers=second_headers
    )
    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_WORKFLOW_003"

    # Without a precondition the table still refuses a second claim
    response = await client.post(
        f"/v1/donations/{donation['id']}/claim", json={}, headers=second_headers
    )
    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_WORKFLOW_001"


@pytest.mark.asyncio
async def test_non_participant_is_forbidden(client, donor, make_user, new_donation):
    _, donor_headers = donor
    _, stranger_headers = await make_user(donor[0].role)
    donation = await new_donation(client, donor_headers)

    response = await client.patch(
        f"/v1/donations/{donation['id']}/status", json={"status": "cancelled"}, headers=stranger_headers
    )
    assert response.status_code == 403
    assert response.json()["error_code"] == "ERR_PERM_001"


@pytest.mark.asyncio
async def test_volunteer_cannot_move_someone_elses_delivery(
    client, donor, recipient, volunteer, make_user, new_donation
):
    _, donor_headers = donor
    _, recipient_headers = recipient
    _, volunteer_headers = volunteer
    _, other_headers = await make_user(volunteer[0].role)
    donation = await new_donation(client, donor_headers)

    response = await client.post(f"/v1/donations/{donation['id']}/claim", json={}, headers=recipient_headers)
    delivery_id = response.json()["delivery_id"]
    await client.post(f"/v1/deliveries/{delivery_id}/assign", headers=volunteer_headers)

    response = await client.patch(
        f"/v1/deliveries/{delivery_id}/status", json={"status": "accepted"}, headers=other_headers
    )
    assert response.status_code == 403

    response = await client.get(f"/v1/deliveries/{delivery_id}", headers=other_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_admin_assignment_needs_a_volunteer(client, donor, recipient, volunteer, admin, new_donation):
    _, donor_headers = donor
    _, recipient_headers = recipient
    volunteer_user, _ = volunteer
    _, admin_headers = admin
    donation = await new_donation(client, donor_headers)

    response = await client.post(f"/v1/donations/{donation['id']}/claim", json={}, headers=recipient_headers)
    delivery_id = response.json()["delivery_id"]

    response = await client.patch(
        f"/v1/deliveries/{delivery_id}/status", json={"status": "assigned"}, headers=admin_headers
    )
    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_BAD_REQUEST_001"

    response = await client.patch(
        f"/v1/deliveries/{delivery_id}/status",
        json={"status": "assigned", "volunteer_id": volunteer_user.id},
        headers=admin_headers
    )
    assert response.status_code == 200

    response = await client.get(f"/v1/deliveries/{delivery_id}", headers=admin_headers)
    assert response.json()["volunteer_id"] == volunteer_user.id


@pytest.mark.asyncio
async def test_missing_entity(client, admin):
    _, headers = admin
    response = await client.patch(
        "/v1/workflow/delivery/999/status", json={"status": "cancelled"}, headers=headers
    )
    assert response.status_code == 404
    assert response.json()["message"] == "Delivery with ID 999 not found"


@pytest.mark.asyncio
async def test_unknown_entity_type(client, admin):
    _, headers = admin
    response = await client.patch(
        "/v1/workflow/invoice/1/status", json={"status": "cancelled"}, headers=headers
    )
    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_VALIDATION"


@pytest.mark.asyncio
async def test_cancelled_delivery_releases_donation(client, donor, recipient, make_user, new_donation):
    _, donor_headers = donor
    _, recipient_headers = recipient
    _, second_headers = await make_user(recipient[0].role)
    donation = await new_donation(client, donor_headers)

    response = await client.post(f"/v1/donations/{donation['id']}/claim", json={}, headers=recipient_headers)
    delivery_id = response.json()["delivery_id"]

    response = await client.patch(
        f"/v1/deliveries/{delivery_id}/status", json={"status": "cancelled"}, headers=recipient_headers
    )
    assert response.status_code == 200
    assert response.json()["view"]["is_terminal"] is True
    assert response.json()["view"]["progress"] is None
    assert response.json()["synced"] == [
        {"entity_type": "donation", "entity_id": donation["id"], "status": "available"}
    ]

    response = await client.get(f"/v1/donations/{donation['id']}", headers=donor_headers)
    assert response.json()["status"] == "available"
    assert response.json()["allowed_transitions"] == ["cancelled"]

    # Another recipient can claim it again
    response = await client.post(f"/v1/donations/{donation['id']}/claim", json={}, headers=second_headers)
    assert response.status_code == 200
    assert response.json()["delivery_id"] != delivery_id


@pytest.mark.asyncio
async def test_admin_release_cancels_open_delivery(client, donor, recipient, admin, new_donation):
    _, donor_headers = donor
    _, recipient_headers = recipient
    _, admin_headers = admin
    donation = await new_donation(client, donor_headers)

    response = await client.post(f"/v1/donations/{donation['id']}/claim", json={}, headers=recipient_headers)
    delivery_id = response.json()["delivery_id"]

    # Only the system (or an admin) releases a claimed donation directly
    response = await client.patch(
        f"/v1/donations/{donation['id']}/status", json={"status": "available"}, headers=donor_headers
    )
    assert response.status_code == 409

    response = await client.patch(
        f"/v1/donations/{donation['id']}/status", json={"status": "available"}, headers=admin_headers
    )
    assert response.status_code == 200
    assert response.json()["synced"] == [
        {"entity_type": "delivery", "entity_id": delivery_id, "status": "cancelled"}
    ]

    response = await client.get(f"/v1/deliveries/{delivery_id}", headers=admin_headers)
    assert response.json()["status"] == "cancelled"
