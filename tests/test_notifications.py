"""
Notification service + API tests.
"""

import pytest

from baaseteen.core.exceptions import NotFoundError
from baaseteen.models import db as _db
from baaseteen.models.notification import Notification
from baaseteen.services.notification import NotificationService

BASE = "/api/v1/notifications"


class TestNotifyStatusChange:

    def test_recipients(self, make_user, make_case):
        dcm = make_user("dcm")
        counselor = make_user("counselor")
        admin = make_user("admin")
        executive = make_user("Executive Management")
        inactive_admin = make_user("admin", is_active=False)
        finance = make_user("finance")
        case = make_case("assigned", dcm=dcm, counselor=counselor)

        sent = NotificationService.notify_status_change(case.id, "assigned", "in_counseling")

        recipients = {n.user_id for n in sent}
        assert recipients == {dcm.id, counselor.id, admin.id, executive.id}
        assert inactive_admin.id not in recipients
        assert finance.id not in recipients
        assert all(n.type == "info" for n in sent)
        assert sent[0].title == f"Case {case.case_number} - Status Update"
        assert '"Assigned"' in sent[0].message and '"In Counseling"' in sent[0].message

    def test_actor_notified_once(self, make_user, make_case):
        admin = make_user("admin")
        case = make_case("draft", dcm=admin)

        sent = NotificationService.notify_status_change(case.id, "draft", "assigned", actor_id=admin.id)

        assert [n.user_id for n in sent] == [admin.id]

    def test_missing_case(self):
        assert NotificationService.notify_status_change(777, "draft", "assigned") == []


class TestQueries:

    def test_list_unread_and_mark(self, make_user):
        user = make_user("counselor")
        other = make_user("counselor")
        first = NotificationService.create(user_id=user.id, title="one")
        NotificationService.create(user_id=user.id, title="two")
        NotificationService.create(user_id=other.id, title="not mine")

        items, total = NotificationService.list_for_user(user.id)
        assert total == 2
        assert {n.title for n in items} == {"one", "two"}
        assert NotificationService.unread_count(user.id) == 2

        NotificationService.mark_read(first.id, user.id)
        assert NotificationService.unread_count(user.id) == 1
        assert _db.session.get(Notification, first.id).read_at is not None

        items, total = NotificationService.list_for_user(user.id, unread_only=True)
        assert total == 1
        assert items[0].title == "two"

        assert NotificationService.mark_all_read(user.id) == 1
        assert NotificationService.unread_count(user.id) == 0

    def test_cannot_mark_someone_elses(self, make_user):
        user = make_user("counselor")
        other = make_user("counselor")
        notif = NotificationService.create(user_id=other.id, title="private")
        with pytest.raises(NotFoundError):
            NotificationService.mark_read(notif.id, user.id)


class TestNotificationAPI:

    def test_list(self, client, make_user, auth_headers):
        user = make_user("counselor")
        NotificationService.create(user_id=user.id, title="hello", message="world")

        res = client.get(BASE, headers=auth_headers(user))

        assert res.status_code == 200
        body = res.get_json()
        assert body["total"] == 1
        assert body["unread_count"] == 1
        assert body["items"][0]["title"] == "hello"

    def test_mark_read_and_all(self, client, make_user, auth_headers):
        user = make_user("counselor")
        a = NotificationService.create(user_id=user.id, title="a")
        NotificationService.create(user_id=user.id, title="b")
        NotificationService.create(user_id=user.id, title="c")

        res = client.put(f"{BASE}/{a.id}/read", headers=auth_headers(user))
        assert res.status_code == 200
        assert res.get_json()["is_read"] is True

        res = client.put(f"{BASE}/read-all", headers=auth_headers(user))
        assert res.status_code == 200
        assert res.get_json()["marked_read"] == 2

    def test_requires_auth(self, client):
        res = client.get(BASE)
        assert res.status_code == 401

    def test_invalid_token(self, client):
        res = client.get(BASE, headers={"Authorization": "Bearer not-a-token"})
        assert res.status_code == 401
