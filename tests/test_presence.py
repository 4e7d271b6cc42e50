import time

from services.presence import PresenceService


class RecordingPublisher:
    def __init__(self):
        self.calls = []

    def broadcast_presence_updated(self, user_id, is_online, last_seen=None):
        self.calls.append((user_id, is_online))
        return {"delivered": 0, "failed": 0}


def test_update_tracks_viewers_and_broadcasts():
    publisher = RecordingPublisher()
    service = PresenceService(publisher=publisher, timeout_seconds=300)

    service.update_presence("u1", "Thandi", "a1")
    service.update_presence("u2", "Bongani", "a1")

    viewers = service.get_activity_presence("a1", exclude_user_id="u2")
    assert [v["userName"] for v in viewers["viewers"]] == ["Thandi"]
    assert viewers["totalViewers"] == 1
    assert publisher.calls == [("u1", True), ("u2", True)]


def test_moving_to_another_activity_leaves_the_first():
    service = PresenceService(publisher=RecordingPublisher())
    service.update_presence("u1", "Thandi", "a1")
    service.update_presence("u1", "Thandi", "a2")

    assert service.get_activity_viewers("a1") == []
    assert len(service.get_activity_viewers("a2")) == 1


def test_mark_away_and_offline():
    publisher = RecordingPublisher()
    service = PresenceService(publisher=publisher)
    service.update_presence("u1", "Thandi", "a1")

    assert service.mark_away("u1")["status"] == "away"
    assert service.get_activity_viewers("a1") == []
    assert service.mark_offline("u1")["status"] == "offline"
    assert service.stats()["trackedActivities"] == 0
    assert publisher.calls[-1] == ("u1", False)
    assert service.mark_away("unknown") is None


def test_cleanup_marks_idle_away_then_drops():
    service = PresenceService(publisher=RecordingPublisher(), timeout_seconds=10)
    now = time.time()
    service.update_presence("u1", "Thandi", "a1", now=now)

    assert service.cleanup_stale(now=now + 5) == {"markedAway": 0, "removed": 0}
    assert service.cleanup_stale(now=now + 15) == {"markedAway": 1, "removed": 0}
    assert service.get_user_presence("u1")["status"] == "away"
    assert service.cleanup_stale(now=now + 25) == {"markedAway": 0, "removed": 1}
    assert service.get_user_presence("u1") is None


def test_presence_endpoints(client):
    response = client.post("/api/presence", json={"userId": "u1", "userName": "Thandi", "activityId": "a1"})
    assert response.status_code == 200
    assert response.json()["presence"]["status"] == "active"

    viewers = client.get("/api/presence/activities/a1").json()
    assert viewers["totalViewers"] == 1

    stats = client.get("/api/presence/stats").json()
    assert stats["activeUsers"] == 1

    away = client.post("/api/presence", json={"userId": "nobody", "userName": "X", "status": "away"})
    assert away.status_code == 404
