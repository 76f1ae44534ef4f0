"""
Tests for the change feed and the /changes polling endpoint.
"""
import pytest

from app.realtime import ChangeFeed


class TestChangeFeed:

    def test_publish_assigns_increasing_sequence(self):
        feed = ChangeFeed()
        first = feed.publish("teams", "insert", 1)
        second = feed.publish("matches", "update", 4)
        assert (first.seq, second.seq) == (1, 2)
        assert feed.latest == 2

    def test_subscribers_only_see_their_table(self):
        feed = ChangeFeed()
        seen, everything = [], []
        feed.subscribe("matches", seen.append)
        feed.subscribe("*", everything.append)

        feed.publish("teams", "update", 1)
        feed.publish("matches", "update", 2)

        assert [c.row_id for c in seen] == [2]
        assert [c.table for c in everything] == ["teams", "matches"]

    def test_unsubscribe(self):
        feed = ChangeFeed()
        seen = []
        unsubscribe = feed.subscribe("teams", seen.append)
        unsubscribe()
        feed.publish("teams", "delete", 3)
        assert seen == []

    def test_failing_subscriber_does_not_block_others(self):
        feed = ChangeFeed()
        seen = []

        def broken(change):
            raise RuntimeError("boom")

        feed.subscribe("teams", broken)
        feed.subscribe("teams", seen.append)
        feed.publish("teams", "insert", 1)
        assert len(seen) == 1

    def test_unknown_action_rejected(self):
        with pytest.raises(ValueError):
            ChangeFeed().publish("teams", "upsert", 1)

    def test_since_filters_and_buffer_is_bounded(self):
        feed = ChangeFeed(max_size=3)
        for i in range(5):
            feed.publish("teams" if i % 2 else "players", "update", i)

        assert [c.seq for c in feed.since(0)] == [3, 4, 5]
        assert [c.seq for c in feed.since(3)] == [4, 5]
        assert [c.table for c in feed.since(0, tables=["teams"])] == ["teams"]


def test_changes_endpoint_reports_writes(client, admin_headers):
    since = client.get("/changes").json()["latest"]

    client.post("/teams", json={"name": "Lions", "group_name": "A"}, headers=admin_headers)

    data = client.get(f"/changes?since={since}&table=teams").json()
    assert data["latest"] > since
    assert [(c["table"], c["action"]) for c in data["changes"]] == [("teams", "insert")]
