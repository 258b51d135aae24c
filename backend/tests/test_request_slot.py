import asyncio

from services.request_slot import RequestSlot, call_in_thread


def test_issue_applies_result_and_bumps_sequence():
    applied = []

    async def scenario():
        slot = RequestSlot("search")

        async def call():
            return "value"

        await slot.issue(call, applied.append)
        return slot

    slot = asyncio.run(scenario())
    assert applied == ["value"]
    assert slot.sequence == 1
    assert not slot.in_flight


def test_new_request_cancels_in_flight_one():
    applied = []

    async def scenario():
        slot = RequestSlot("preview")
        release = asyncio.Event()

        async def slow():
            await release.wait()
            return "old"

        async def fast():
            return "new"

        first = slot.issue(slow, applied.append)
        await asyncio.sleep(0)
        second = slot.issue(fast, applied.append)
        await second
        release.set()
        await asyncio.wait({first})
        return first

    first = asyncio.run(scenario())
    assert first.cancelled()
    assert applied == ["new"]


def test_stale_result_is_dropped_even_if_call_ignores_cancellation():
    applied = []

    async def scenario():
        slot = RequestSlot("directions")

        async def stubborn():
            try:
                await asyncio.sleep(0.05)
            except asyncio.CancelledError:
                pass
            return "stale"

        async def fresh():
            return "fresh"

        first = slot.issue(stubborn, applied.append)
        await asyncio.sleep(0)
        await slot.issue(fresh, applied.append)
        await asyncio.wait({first})

    asyncio.run(scenario())
    assert applied == ["fresh"]


def test_invalidate_drops_pending_result():
    applied = []

    async def scenario():
        slot = RequestSlot("preview")

        async def call():
            await asyncio.sleep(0.01)
            return "late"

        slot.issue(call, applied.append)
        slot.invalidate()
        await slot.wait()
        return slot

    slot = asyncio.run(scenario())
    assert applied == []
    assert slot.sequence == 2


def test_wait_without_request_returns():
    asyncio.run(RequestSlot("idle").wait())


def test_call_in_thread_turns_errors_into_default():
    def broken():
        raise ValueError("bad payload")

    assert asyncio.run(call_in_thread("broken", broken, default=[])) == []
    assert asyncio.run(call_in_thread("sum", sum, [1, 2, 3], default=0)) == 6
