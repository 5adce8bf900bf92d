"""Tests for node heartbeat freshness."""

from datetime import timedelta

from django.test import TestCase, override_settings
from django.utils import timezone

from apps.nodes.models import Node, NodeStatus, heartbeat_timeout


class NodeOnlineTests(TestCase):
    def setUp(self):
        self.now = timezone.now()

    def _node(self, age):
        return Node(name="n", last_heartbeat=self.now - age if age is not None else None)

    def test_default_timeout(self):
        assert heartbeat_timeout() == timedelta(seconds=120)

    def test_fresh_heartbeat_is_online(self):
        assert self._node(timedelta(seconds=119)).is_online(self.now)

    def test_heartbeat_at_timeout_is_offline(self):
        assert not self._node(timedelta(seconds=120)).is_online(self.now)

    def test_never_reported_is_offline(self):
        node = self._node(None)
        assert node.heartbeat_age(self.now) is None
        assert not node.is_online(self.now)

    @override_settings(CONTROL_PLANE_NODE_HEARTBEAT_TIMEOUT_SECONDS=600)
    def test_timeout_is_configurable(self):
        assert self._node(timedelta(minutes=5)).is_online(self.now)

    def test_explicit_timeout(self):
        assert not self._node(timedelta(seconds=30)).is_online(self.now, timeout=timedelta(seconds=10))

    def test_record_heartbeat(self):
        node = Node.objects.create(name="worker", status=NodeStatus.OFFLINE)
        node.record_heartbeat(self.now)
        node.refresh_from_db()
        assert node.last_heartbeat == self.now
        assert node.status == NodeStatus.ONLINE
