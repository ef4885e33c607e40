"""Tests for support tickets."""

import pytest

import support
from errors import Forbidden, NotFound, ValidationError

MESSAGE = "My order arrived without the shampoo bottle."


def open_ticket(db, user_id=None, subject="Missing item"):
    return support.submit_ticket(db, name="Ravi Kumar", email="ravi@example.com",
                                 message=MESSAGE, subject=subject, user_id=user_id)


def test_submit_defaults(db):
    ticket = open_ticket(db)
    assert ticket.status == "open"
    assert ticket.priority == "medium"
    assert ticket.user_id is None


def test_queue_is_ordered_by_priority(db):
    low = open_ticket(db, subject="low")
    medium = open_ticket(db, subject="medium")
    high = open_ticket(db, subject="high")
    support.update_ticket(db, low.id, priority="low")
    support.update_ticket(db, high.id, priority="high")

    rows, total = support.list_tickets(db)

    assert total == 3
    assert [t.id for t in rows] == [high.id, medium.id, low.id]
    rows, total = support.list_tickets(db, priority="high")
    assert [t.id for t in rows] == [high.id]


class TestAccess:
    def test_owner_and_admin(self, db, make_user):
        owner = make_user()
        admin = make_user(role="admin")
        ticket = open_ticket(db, user_id=owner.id)

        assert support.get_ticket(db, ticket.id, owner).id == ticket.id
        assert support.get_ticket(db, ticket.id, admin).id == ticket.id

    def test_other_user(self, db, make_user):
        ticket = open_ticket(db, user_id=make_user().id)
        with pytest.raises(Forbidden):
            support.get_ticket(db, ticket.id, make_user())

    def test_anonymous_ticket_is_admin_only(self, db, make_user):
        ticket = open_ticket(db)
        with pytest.raises(Forbidden):
            support.get_ticket(db, ticket.id, make_user())
        assert support.get_ticket(db, ticket.id, make_user(role="admin")).id == ticket.id

    def test_missing(self, db, make_user):
        with pytest.raises(NotFound):
            support.get_ticket(db, 404, make_user(role="admin"))


class TestUpdate:
    def test_respond_and_close(self, db):
        ticket = open_ticket(db)
        updated = support.update_ticket(db, ticket.id, status="closed",
                                        admin_response="Replacement shipped")
        assert updated.status == "closed"
        assert updated.admin_response == "Replacement shipped"
        assert updated.priority == "medium"

    def test_nothing_to_update(self, db):
        ticket = open_ticket(db)
        with pytest.raises(ValidationError, match="No valid fields"):
            support.update_ticket(db, ticket.id)


def test_stats(db):
    first = open_ticket(db)
    open_ticket(db)
    support.update_ticket(db, first.id, status="closed", priority="high")

    stats = support.stats(db)

    assert stats["total_tickets"] == 2
    assert stats["open_tickets"] == 1
    assert stats["closed_tickets"] == 1
    assert stats["pending_tickets"] == 0
    assert stats["high_priority_tickets"] == 1
    assert stats["medium_priority_tickets"] == 1
    assert stats["tickets_today"] == 2
    assert stats["tickets_this_week"] == 2


class TestSupportApi:
    def test_signed_in_ticket_flow(self, client, make_user, auth_headers):
        headers = auth_headers(make_user())
        response = client.post("/support/tickets", headers=headers, json={
            "name": "Ravi Kumar", "email": "ravi@example.com", "message": MESSAGE,
        })
        assert response.status_code == 201
        ticket_id = response.json()["ticket_id"]

        mine = client.get("/support/my-tickets", headers=headers).json()
        assert [t["id"] for t in mine] == [ticket_id]
        assert client.get(f"/support/tickets/{ticket_id}", headers=headers).status_code == 200

        admin = auth_headers(make_user(role="admin"))
        response = client.put(f"/support/tickets/{ticket_id}", headers=admin,
                              json={"status": "pending", "admin_response": "Looking into it"})
        assert response.json()["status"] == "pending"

    def test_other_user_is_forbidden(self, client, make_user, auth_headers):
        owner = auth_headers(make_user())
        ticket_id = client.post("/support/tickets", headers=owner, json={
            "name": "Ravi Kumar", "email": "ravi@example.com", "message": MESSAGE,
        }).json()["ticket_id"]

        response = client.get(f"/support/tickets/{ticket_id}", headers=auth_headers(make_user()))
        assert response.status_code == 403

    def test_empty_update_is_rejected(self, client, make_user, auth_headers):
        ticket_id = client.post("/support/tickets", json={
            "name": "Ravi Kumar", "email": "ravi@example.com", "message": MESSAGE,
        }).json()["ticket_id"]
        admin = auth_headers(make_user(role="admin"))

        assert client.put(f"/support/tickets/{ticket_id}", headers=admin, json={}).status_code == 400
        assert client.put(f"/support/tickets/{ticket_id}", headers=admin,
                          json={"priority": "urgent"}).status_code == 400

    def test_queue_needs_admin(self, client, make_user, auth_headers):
        headers = auth_headers(make_user())
        assert client.get("/support/tickets", headers=headers).status_code == 403
        assert client.get("/support/stats", headers=headers).status_code == 403
