"""
Unit Tests for the PIN session event fan-out
"""
import pytest

from app.modules.pin_auth.notifier import PinSessionNotifier


class TestPinSessionNotifier:

    @pytest.mark.asyncio
    async def test_publish_reaches_every_listener_of_the_session(self):
        notifier = PinSessionNotifier()
        first = notifier.subscribe('s1')
        second = notifier.subscribe('s1')
        other = notifier.subscribe('s2')

        delivered = notifier.publish('s1', {'type': 'pin-verified'})

        assert delivered == 2
        assert first.get_nowait() == {'type': 'pin-verified'}
        assert second.get_nowait() == {'type': 'pin-verified'}
        assert other.empty()

    @pytest.mark.asyncio
    async def test_publish_without_listeners(self):
        assert PinSessionNotifier().publish('nobody', {'type': 'pin-verified'}) == 0

    @pytest.mark.asyncio
    async def test_unsubscribe_forgets_session(self):
        notifier = PinSessionNotifier()
        queue = notifier.subscribe('s1')

        notifier.unsubscribe('s1', queue)
        notifier.unsubscribe('s1', queue)

        assert notifier.subscriber_count('s1') == 0
        assert notifier.publish('s1', {'type': 'pin-verified'}) == 0

    @pytest.mark.asyncio
    async def test_full_queue_drops_event(self):
        notifier = PinSessionNotifier(max_queue_size=1)
        queue = notifier.subscribe('s1')

        assert notifier.publish('s1', {'n': 1}) == 1
        assert notifier.publish('s1', {'n': 2}) == 0
        assert queue.get_nowait() == {'n': 1}
