import pytest

from core.broadcast import Broadcaster, EMOTION_CHANNEL
from tests.fakes import RecordingSubscriber


@pytest.mark.asyncio
async def test_publish_wraps_payload_for_every_subscriber():
    b = Broadcaster()
    subs = [RecordingSubscriber(), RecordingSubscriber()]
    for s in subs:
        b.subscribe(EMOTION_CHANNEL, s)

    delivered = await b.publish(EMOTION_CHANNEL, {"trackId": "t"})

    assert delivered == 2
    for s in subs:
        assert s.messages == [{"event": "emotion", "data": {"trackId": "t"}}]


@pytest.mark.asyncio
async def test_publish_without_subscribers_is_dropped():
    assert await Broadcaster().publish(EMOTION_CHANNEL, {"x": 1}) == 0


@pytest.mark.asyncio
async def test_failing_subscriber_is_removed_others_still_served():
    b = Broadcaster()
    good, bad = RecordingSubscriber(), RecordingSubscriber(fail=True)
    b.subscribe(EMOTION_CHANNEL, good)
    b.subscribe(EMOTION_CHANNEL, bad)

    assert await b.publish(EMOTION_CHANNEL, {"n": 1}) == 1
    assert b.subscriber_count(EMOTION_CHANNEL) == 1
    assert len(good.messages) == 1


def test_unsubscribe_is_idempotent():
    b = Broadcaster()
    s = RecordingSubscriber()
    b.subscribe(EMOTION_CHANNEL, s)
    assert b.unsubscribe(EMOTION_CHANNEL, s) is True
    assert b.unsubscribe(EMOTION_CHANNEL, s) is False
    assert b.subscriber_count(EMOTION_CHANNEL) == 0


@pytest.mark.asyncio
async def test_channels_are_isolated():
    b = Broadcaster()
    s = RecordingSubscriber()
    b.subscribe("other", s)
    await b.publish(EMOTION_CHANNEL, {"n": 1})
    assert s.messages == []
