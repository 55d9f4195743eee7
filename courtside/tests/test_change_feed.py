"""
Tests for the in-process change feed backing live listings.
"""

import asyncio

import pytest

from courtside.services.change_feed import ChangeFeed, EVENTS, PARTICIPATIONS, FEEDBACK


def _counter_loader():
    state = {"n": 0}

    async def load():
        state["n"] += 1
        return state["n"]

    return load


@pytest.mark.asyncio
async def test_subscribe_delivers_initial_result():
    feed = ChangeFeed()
    received = []

    async def on_change(result):
        received.append(result)

    await feed.subscribe([EVENTS], _counter_loader(), on_change)
    assert received == [1]
    assert feed.subscription_count() == 1


@pytest.mark.asyncio
async def test_subscribe_without_initial_delivery():
    feed = ChangeFeed()
    received = []

    async def on_change(result):
        received.append(result)

    await feed.subscribe([EVENTS], _counter_loader(), on_change, deliver_initial=False)
    assert received == []


@pytest.mark.asyncio
async def test_publish_reaches_matching_collections_only():
    feed = ChangeFeed()
    events_seen, feedback_seen = [], []

    async def on_events(result):
        events_seen.append(result)

    async def on_feedback(result):
        feedback_seen.append(result)

    await feed.subscribe([EVENTS, PARTICIPATIONS], _counter_loader(), on_events)
    await feed.subscribe([FEEDBACK], _counter_loader(), on_feedback)

    delivered = await feed.publish(PARTICIPATIONS)
    assert delivered == 1
    assert events_seen == [1, 2]
    assert feedback_seen == [1]


@pytest.mark.asyncio
async def test_unsubscribed_listener_receives_nothing_more():
    feed = ChangeFeed()
    received = []

    async def on_change(result):
        received.append(result)

    unsubscribe = await feed.subscribe([EVENTS], _counter_loader(), on_change)
    unsubscribe()
    unsubscribe()  # Second call is harmless

    assert await feed.publish(EVENTS) == 0
    assert received == [1]
    assert feed.subscription_count() == 0


@pytest.mark.asyncio
async def test_failing_callback_does_not_affect_others():
    feed = ChangeFeed()
    received = []

    async def broken(result):
        raise RuntimeError("socket gone")

    async def healthy(result):
        received.append(result)

    await feed.subscribe([EVENTS], _counter_loader(), broken)
    await feed.subscribe([EVENTS], _counter_loader(), healthy)

    delivered = await feed.publish(EVENTS)
    assert delivered == 1
    assert received == [1, 2]


@pytest.mark.asyncio
async def test_deliveries_to_one_subscriber_are_serialized():
    """Concurrent publishes reach a subscriber one at a time, in order."""
    feed = ChangeFeed()
    active = {"now": 0, "max": 0}
    received = []

    async def slow(result):
        active["now"] += 1
        active["max"] = max(active["max"], active["now"])
        await asyncio.sleep(0.01)
        received.append(result)
        active["now"] -= 1

    await feed.subscribe([EVENTS], _counter_loader(), slow)
    await asyncio.gather(feed.publish(EVENTS), feed.publish(EVENTS), feed.publish(EVENTS))

    assert active["max"] == 1
    assert received == [1, 2, 3, 4]
