import pytest

API = "/api/v1/messages"
SLOT = {"scheduled_date": "2025-03-01", "scheduled_time": "09:00:00"}


@pytest.fixture
def send(client, headers_for):
    """Send a message through the API and return its JSON."""
    def _send(sender, recipient, content="Hello", expected=201, **payload):
        body = {"recipient_id": recipient.id, "content": content}
        body.update(payload)
        response = client.post(f"{API}/", json=body, headers=headers_for(sender))
        assert response.status_code == expected, response.text
        return response.json()
    return _send


@pytest.fixture
def appointment(client, headers_for, clinician, client_user):
    body = dict(SLOT, clinician_id=clinician.id)
    response = client.post("/api/v1/appointments/", json=body, headers=headers_for(client_user))
    assert response.status_code == 201
    return response.json()


class TestSending:

    def test_send_and_read(self, client, send, headers_for, client_user, clinician):
        message = send(client_user, clinician, "Can we move to 10am?")
        assert message["sender_id"] == client_user.id
        assert message["recipient_id"] == clinician.id
        assert message["is_read"] is False
        assert message["sender_name"] == "Casey Client"
        assert message["recipient_name"] == "Pat Clinic"

        response = client.get(f"{API}/{message['id']}", headers=headers_for(clinician))
        assert response.status_code == 200
        assert response.json()["content"] == "Can we move to 10am?"

    def test_cannot_message_yourself(self, send, client_user):
        send(client_user, client_user, expected=400)

    def test_unknown_recipient(self, client, headers_for, client_user):
        response = client.post(
            f"{API}/", json={"recipient_id": 9999, "content": "Hi"}, headers=headers_for(client_user)
        )
        assert response.status_code == 404

    def test_blank_content_rejected(self, send, client_user, clinician):
        send(client_user, clinician, "   ", expected=422)

    def test_unauthenticated(self, client, clinician):
        response = client.post(f"{API}/", json={"recipient_id": clinician.id, "content": "Hi"})
        assert response.status_code == 401


class TestAccess:

    def test_outsider_cannot_read(self, client, send, headers_for, client_user, clinician, other_client):
        message = send(client_user, clinician)
        response = client.get(f"{API}/{message['id']}", headers=headers_for(other_client))
        assert response.status_code == 403

    def test_coordinator_can_read(self, client, send, headers_for, client_user, clinician, coordinator):
        message = send(client_user, clinician)
        response = client.get(f"{API}/{message['id']}", headers=headers_for(coordinator))
        assert response.status_code == 200

    def test_missing_message(self, client, headers_for, client_user):
        response = client.get(f"{API}/9999", headers=headers_for(client_user))
        assert response.status_code == 404
        assert response.json()["detail"] == "Message not found"

    def test_only_sender_deletes(self, client, send, headers_for, client_user, clinician):
        message = send(client_user, clinician)

        response = client.delete(f"{API}/{message['id']}", headers=headers_for(clinician))
        assert response.status_code == 403

        response = client.delete(f"{API}/{message['id']}", headers=headers_for(client_user))
        assert response.status_code == 204

        response = client.get(f"{API}/{message['id']}", headers=headers_for(client_user))
        assert response.status_code == 404

    def test_conversation_members_only(self, client, send, headers_for, client_user, clinician, other_client, coordinator):
        send(client_user, clinician, "First")
        send(clinician, client_user, "Reply")
        path = f"{API}/conversation/{client_user.id}/{clinician.id}"

        response = client.get(path, headers=headers_for(other_client))
        assert response.status_code == 403

        for viewer in (client_user, clinician, coordinator):
            response = client.get(path, headers=headers_for(viewer))
            assert response.status_code == 200
            data = response.json()
            assert data["total"] == 2
            assert [m["content"] for m in data["data"]] == ["First", "Reply"]


class TestReadState:

    def test_only_recipient_marks_read(self, client, send, headers_for, client_user, clinician):
        message = send(client_user, clinician)

        response = client.put(f"{API}/{message['id']}/read", headers=headers_for(client_user))
        assert response.status_code == 403

        response = client.put(f"{API}/{message['id']}/read", headers=headers_for(clinician))
        assert response.status_code == 200
        assert response.json()["is_read"] is True
        assert response.json()["read_at"] is not None

    def test_unread_and_conversation_read(self, client, send, headers_for, client_user, clinician, other_client):
        send(client_user, clinician, "One")
        send(client_user, clinician, "Two")
        send(other_client, clinician, "Three")

        response = client.get(f"{API}/unread/count", headers=headers_for(clinician))
        assert response.json() == {"unread_count": 3}

        response = client.put(f"{API}/conversation/{client_user.id}/read", headers=headers_for(clinician))
        assert response.status_code == 200
        assert response.json() == {"marked_read": 2}

        response = client.get(f"{API}/unread", headers=headers_for(clinician))
        assert [m["content"] for m in response.json()] == ["Three"]

    def test_statistics(self, client, send, headers_for, client_user, clinician):
        send(client_user, clinician, "One")
        send(clinician, client_user, "Two")
        send(clinician, client_user, "Three")

        response = client.get(f"{API}/statistics", headers=headers_for(client_user))
        assert response.status_code == 200
        assert response.json() == {"sent_messages": 1, "received_messages": 2, "unread_messages": 2}


class TestListing:

    def test_inbox_and_search(self, client, send, headers_for, client_user, clinician, other_client):
        send(client_user, clinician, "About my blood test")
        send(clinician, client_user, "Results are in")
        send(other_client, clinician, "Unrelated")

        response = client.get(f"{API}/", headers=headers_for(client_user))
        assert response.status_code == 200
        assert response.json()["total"] == 2

        response = client.get(f"{API}/search", params={"q": "blood"}, headers=headers_for(client_user))
        assert response.status_code == 200
        assert [m["content"] for m in response.json()["data"]] == ["About my blood test"]

        response = client.get(f"{API}/search", params={"q": "Unrelated"}, headers=headers_for(client_user))
        assert response.json()["total"] == 0


class TestAppointmentThread:

    def test_participants_discuss_appointment(self, client, send, headers_for, appointment, client_user, clinician):
        send(client_user, clinician, "Running late", appointment_id=appointment["id"])

        response = client.get(f"{API}/appointment/{appointment['id']}", headers=headers_for(clinician))
        assert response.status_code == 200
        assert [m["content"] for m in response.json()] == ["Running late"]

    def test_outsider_cannot_attach_or_read(
        self, client, send, headers_for, appointment, client_user, clinician, other_client
    ):
        send(other_client, clinician, "Hi", expected=403, appointment_id=appointment["id"])

        response = client.get(f"{API}/appointment/{appointment['id']}", headers=headers_for(other_client))
        assert response.status_code == 403

    def test_unknown_appointment(self, send, client_user, clinician):
        send(client_user, clinician, expected=404, appointment_id=9999)
