from __future__ import annotations

import asyncio

from bridge.lifecycle import CallLifecycle, CallOptions
from bridge.session import CallState
from fakes import audio_delta, make_session, media_frame, session_created, start_frame
from realtime.protocol import ResponseConfig, ResponseCreate

OPTIONS = CallOptions(greeting=ResponseCreate(response=ResponseConfig(instructions="Say hello.")), bootstrap_timeout=2.0)


async def _until(predicate, timeout: float = 1.0) -> None:
    async def poll():
        while not predicate():
            await asyncio.sleep(0)

    await asyncio.wait_for(poll(), timeout)


def _lifecycle(options: CallOptions = OPTIONS):
    session, twilio, realtime, wire = make_session()
    return CallLifecycle(session, options), session, twilio, realtime, wire


def test_full_call_relays_and_tears_down_when_caller_hangs_up():
    async def scenario():
        lifecycle, session, twilio, realtime, _wire = _lifecycle()
        runner = asyncio.create_task(lifecycle.run())

        twilio.feed({"event": "connected", "protocol": "Call", "version": "1.0.0"})
        twilio.feed(start_frame())
        realtime.feed(session_created())
        await _until(lambda: session.is_active)

        twilio.feed(media_frame("AAAA"))
        realtime.feed(audio_delta("BBBB", response_id="resp_1"))
        await _until(lambda: len(twilio.sent) == 1 and len(realtime.sent) == 2)

        twilio.hang_up()
        await asyncio.wait_for(runner, 1.0)
        return lifecycle, session, twilio, realtime

    lifecycle, session, twilio, realtime = asyncio.run(scenario())
    assert session.state is CallState.CLOSED
    assert session.close_reason == "telephony closed"
    assert [msg["type"] for msg in realtime.sent] == ["response.create", "input_audio_buffer.append"]
    assert twilio.sent == [{"event": "media", "streamSid": "SID1", "media": {"payload": "BBBB"}}]
    assert realtime.close_calls == 1
    assert lifecycle.relay.stats.caller_frames == 1


def test_agent_disconnect_closes_caller_socket_once():
    async def scenario():
        lifecycle, session, twilio, realtime, _wire = _lifecycle()
        runner = asyncio.create_task(lifecycle.run())
        twilio.feed(start_frame())
        realtime.feed(session_created())
        await _until(lambda: session.is_active)

        realtime.hang_up()
        await asyncio.wait_for(runner, 1.0)
        assert await lifecycle.close("again") is False
        return session, twilio

    session, twilio = asyncio.run(scenario())
    assert session.close_reason == "realtime closed"
    assert twilio.close_calls == 1


def test_abnormal_drop_still_tears_down():
    async def scenario():
        lifecycle, session, twilio, realtime, _wire = _lifecycle()
        runner = asyncio.create_task(lifecycle.run())
        twilio.feed(start_frame())
        realtime.drop()
        await asyncio.wait_for(runner, 1.0)
        return session, twilio

    session, twilio = asyncio.run(scenario())
    assert session.is_closed
    assert twilio.close_calls == 1


def test_stop_event_ends_the_call():
    async def scenario():
        lifecycle, session, twilio, realtime, _wire = _lifecycle()
        runner = asyncio.create_task(lifecycle.run())
        twilio.feed(start_frame())
        realtime.feed(session_created())
        await _until(lambda: session.is_active)

        twilio.feed({"event": "stop", "streamSid": "SID1", "stop": {"accountSid": "AC1", "callSid": "CA1"}})
        await asyncio.wait_for(runner, 1.0)
        return session, twilio, realtime

    session, twilio, realtime = asyncio.run(scenario())
    assert session.close_reason == "telephony stream stopped"
    assert twilio.close_calls == 1
    assert realtime.close_calls == 1


def test_realtime_error_event_is_not_fatal():
    async def scenario():
        lifecycle, session, twilio, realtime, _wire = _lifecycle()
        runner = asyncio.create_task(lifecycle.run())
        twilio.feed(start_frame())
        realtime.feed(session_created())
        realtime.feed({"type": "error", "error": {"type": "invalid_request_error", "message": "bad item"}})
        realtime.feed(audio_delta("BBBB"))
        await _until(lambda: len(twilio.sent) == 1)
        assert not session.is_closed

        twilio.hang_up()
        await asyncio.wait_for(runner, 1.0)

    asyncio.run(scenario())


def test_bootstrap_timeout_closes_without_forwarding():
    options = CallOptions(greeting=OPTIONS.greeting, bootstrap_timeout=0.05)

    async def scenario():
        lifecycle, session, twilio, realtime, _wire = _lifecycle(options)
        runner = asyncio.create_task(lifecycle.run())
        twilio.feed(start_frame())
        twilio.feed(media_frame("AAAA"))
        await asyncio.wait_for(runner, 1.0)
        return session, twilio, realtime

    session, twilio, realtime = asyncio.run(scenario())
    assert session.close_reason == "bootstrap timeout"
    assert realtime.sent == []
    assert twilio.sent == []
    assert twilio.close_calls == 1
    assert realtime.close_calls == 1


def test_close_before_run_is_idempotent():
    async def scenario():
        lifecycle, session, twilio, realtime, _wire = _lifecycle()
        first = await lifecycle.close("shutdown")
        second = await lifecycle.close("shutdown")
        return first, second, twilio, realtime

    first, second, twilio, realtime = asyncio.run(scenario())
    assert (first, second) == (True, False)
    assert twilio.close_calls == 1
    assert realtime.close_calls == 1


def test_stalled_agent_close_does_not_hold_caller_socket():
    async def scenario():
        lifecycle, session, twilio, realtime, _wire = _lifecycle()
        release = asyncio.Event()
        original_close = realtime.close

        async def slow_close():
            await release.wait()
            await original_close()

        realtime.close = slow_close
        closing = asyncio.create_task(lifecycle.close("caller hung up"))
        await _until(lambda: twilio.close_calls == 1)
        assert not closing.done()

        release.set()
        assert await closing is True
        return realtime

    realtime = asyncio.run(scenario())
    assert realtime.close_calls == 1
