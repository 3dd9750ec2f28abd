"""
tests/test_publisher.py -- ChannelHub fan-out across role channels.
"""

from __future__ import annotations

import asyncio
import threading

from core.roles import STAFF_ROLES, Role
from notify.publisher import ChannelHub, publish_to_roles, topic_for


def test_topics_are_role_values():
    assert topic_for(Role.super_admin) == "superAdmin"
    assert topic_for(Role.moderator) == "moderator"


def test_unbound_hub_drops_events():
    hub = ChannelHub()
    hub.publish("admin", "submission.created", {"id": 1})  # must not raise


def test_fan_out_reaches_only_subscribers_of_the_topic():
    async def scenario():
        hub = ChannelHub()
        hub.bind(asyncio.get_running_loop())
        admins = hub.subscribe("admin")
        mods = hub.subscribe("moderator")

        hub.publish("admin", "invite.created", {"id": 7})
        message = await asyncio.wait_for(admins.get(), timeout=1)
        return message, mods.qsize()

    message, mod_backlog = asyncio.run(scenario())
    assert message["type"] == "invite.created"
    assert message["channel"] == "admin"
    assert message["data"] == {"id": 7}
    assert mod_backlog == 0


def test_publish_from_worker_thread():
    async def scenario():
        hub = ChannelHub()
        hub.bind(asyncio.get_running_loop())
        queues = {role: hub.subscribe(topic_for(role)) for role in STAFF_ROLES}

        worker = threading.Thread(target=publish_to_roles, args=(hub, STAFF_ROLES, "submission.deleted", {"id": 3}))
        worker.start()
        await asyncio.to_thread(worker.join)
        return {role: (await asyncio.wait_for(q.get(), timeout=1))["type"] for role, q in queues.items()}

    received = asyncio.run(scenario())
    assert received == {role: "submission.deleted" for role in STAFF_ROLES}


def test_unsubscribe_stops_delivery():
    async def scenario():
        hub = ChannelHub()
        hub.bind(asyncio.get_running_loop())
        queue = hub.subscribe("admin")
        hub.unsubscribe("admin", queue)
        hub.publish("admin", "invite.revoked", {"id": 1})
        await asyncio.sleep(0)
        return queue.qsize(), hub.subscriber_count("admin")

    assert asyncio.run(scenario()) == (0, 0)
