import asyncio
import logging

import pytest

from depth_monitor.config import TRADING_PAIRS
from depth_monitor.engine.session import SessionController
from depth_monitor.types import EMPTY_SNAPSHOT, ConnectionState, SessionState

from conftest import FakeSession, FakeSleep, frame_text, settle

BTC, ETH, SOL, DOGE = TRADING_PAIRS

OTHER_FRAME = frame_text(
    bids=[["2500.10", "4.0000"]],
    asks=[["2500.60", "1.0000"]],
)


def _controller(session=None, sleep=None):
    return SessionController(session or FakeSession(), sleep=sleep or FakeSleep())


def test_initial_state_is_idle():
    controller = _controller()
    view = controller.view()

    assert view.session_state is SessionState.IDLE
    assert view.connection_state is ConnectionState.CLOSED
    assert view.pair is None
    assert view.snapshot == EMPTY_SNAPSHOT
    assert view.generation == 0
    assert not view.loading


def test_switch_goes_through_switching_to_active():
    async def scenario():
        session = FakeSession()
        controller = _controller(session)

        generation = controller.select_pair(BTC)
        view = controller.view()
        assert view.session_state is SessionState.SWITCHING
        assert view.loading
        assert view.pair == BTC
        assert view.generation == generation

        await settle()
        view = controller.view()
        assert view.session_state is SessionState.ACTIVE
        assert view.connection_state is ConnectionState.OPEN
        assert not view.loading
        assert session.connects == ["wss://stream.binance.com:9443/ws/btcusdt@depth20@1000ms"]

        await controller.aclose()

    asyncio.run(scenario())


def test_frames_update_snapshot_and_histories(worked_frame):
    async def scenario():
        session = FakeSession()
        controller = _controller(session)
        controller.select_pair(BTC)
        await settle()

        session.sockets[0].send_text(worked_frame)
        await settle()

        view = controller.view()
        assert [lvl.total for lvl in view.snapshot.bids] == [2.0, 3.0]
        assert [lvl.total for lvl in view.snapshot.asks] == [1.5, 2.0]
        assert view.spread_history[-1].spread_absolute == pytest.approx(0.50)
        assert view.imbalance_history[-1].imbalance == pytest.approx(0.2)

        await controller.aclose()

    asyncio.run(scenario())


def test_malformed_frame_keeps_snapshot_and_connection(worked_frame, caplog):
    async def scenario():
        session = FakeSession()
        controller = _controller(session)
        controller.select_pair(BTC)
        await settle()
        session.sockets[0].send_text(worked_frame)
        await settle()
        before = controller.view()

        session.sockets[0].send_text(frame_text({"lastUpdateId": 2, "bids": [["1", "1"]]}))
        await settle()

        after = controller.view()
        assert after.snapshot == before.snapshot
        assert after.spread_history == before.spread_history
        assert after.imbalance_history == before.imbalance_history
        assert after.connection_state is ConnectionState.OPEN
        assert after.malformed_frames == 1

        await controller.aclose()

    with caplog.at_level(logging.WARNING, logger="depth_monitor.engine.session"):
        asyncio.run(scenario())
    assert "malformed depth frame" in caplog.text


def test_switch_clears_all_derived_state(worked_frame):
    async def scenario():
        session = FakeSession()
        controller = _controller(session)
        controller.select_pair(BTC)
        await settle()
        session.sockets[0].send_text(worked_frame)
        await settle()
        assert controller.view().spread_history

        controller.select_pair(ETH)
        view = controller.view()
        assert view.snapshot == EMPTY_SNAPSHOT
        assert view.spread_history == ()
        assert view.imbalance_history == ()
        assert view.malformed_frames == 0
        assert view.pair == ETH

        await controller.aclose()

    asyncio.run(scenario())


def test_frames_from_prior_generation_are_dropped(worked_frame):
    async def scenario():
        session = FakeSession()
        controller = _controller(session)
        old_generation = controller.select_pair(BTC)
        await settle()

        new_generation = controller.select_pair(ETH)
        await settle()
        session.sockets[1].send_text(OTHER_FRAME)
        await settle()
        assert new_generation > old_generation
        assert controller.state is SessionState.ACTIVE
        before = controller.view()

        # Late delivery from the retired BTC connection
        controller._on_frame(old_generation, worked_frame)
        # A socket of the retired connection no longer reaches the controller
        session.sockets[0].send_text(worked_frame)
        await settle()

        after = controller.view()
        assert after.snapshot == before.snapshot
        assert after.spread_history == before.spread_history
        assert after.imbalance_history == before.imbalance_history
        assert after.snapshot.best_bid.price == 2500.10

        await controller.aclose()

    asyncio.run(scenario())


def test_second_request_while_switching_supersedes_first():
    async def scenario():
        session = FakeSession()
        controller = _controller(session)

        first = controller.select_pair(BTC)
        second = controller.select_pair(SOL)
        assert second > first
        assert controller.loading

        await settle()
        view = controller.view()
        assert view.pair == SOL
        assert view.session_state is SessionState.ACTIVE
        assert view.generation == second
        # The superseded attempt was cancelled before it ever connected
        assert session.connects == ["wss://stream.binance.com:9443/ws/solusdt@depth20@1000ms"]

        await controller.aclose()

    asyncio.run(scenario())


def test_superseded_open_never_activates_session():
    async def scenario():
        session = FakeSession()
        controller = _controller(session)
        first = controller.select_pair(BTC)
        controller.select_pair(ETH)

        controller._on_state(first, ConnectionState.OPEN)
        assert controller.state is SessionState.SWITCHING

        await controller.aclose()

    asyncio.run(scenario())


def test_reconnect_keeps_last_snapshot_and_drops_old_generation(worked_frame):
    async def scenario():
        session = FakeSession()
        sleep = FakeSleep()
        controller = _controller(session, sleep)
        first = controller.select_pair(BTC)
        await settle()
        session.sockets[0].send_text(worked_frame)
        await settle()
        kept = controller.view().snapshot

        session.sockets[0].server_close()
        await settle()
        view = controller.view()
        assert view.connection_state is ConnectionState.RECONNECTING
        assert view.session_state is SessionState.ACTIVE
        assert view.snapshot == kept

        sleep.release()
        await settle()
        assert controller.connection_state is ConnectionState.OPEN
        assert controller.active_generation > first

        controller._on_frame(first, OTHER_FRAME)
        assert controller.snapshot == kept

        session.sockets[1].send_text(OTHER_FRAME)
        await settle()
        assert controller.snapshot.best_ask.price == 2500.60

        await controller.aclose()

    asyncio.run(scenario())


def test_switch_cancels_pending_reconnect():
    async def scenario():
        session = FakeSession()
        sleep = FakeSleep()
        controller = _controller(session, sleep)
        controller.select_pair(BTC)
        await settle()
        session.sockets[0].server_close()
        await settle()
        assert sleep.pending == 1

        controller.select_pair(DOGE)
        await settle()
        sleep.release()
        await settle()

        assert session.connects[-1].endswith("/dogeusdt@depth20@1000ms")
        assert sum("btcusdt" in url for url in session.connects) == 1
        assert controller.state is SessionState.ACTIVE

        await controller.aclose()

    asyncio.run(scenario())


def test_aclose_tears_down_session():
    async def scenario():
        session = FakeSession()
        sleep = FakeSleep()
        controller = _controller(session, sleep)
        controller.select_pair(BTC)
        await settle()
        session.sockets[0].server_close()
        await settle()

        await controller.aclose()
        sleep.release()
        await settle()

        assert controller.state is SessionState.IDLE
        assert controller.connection_state is ConnectionState.CLOSED
        assert len(session.connects) == 1

    asyncio.run(scenario())


def test_select_pair_by_symbol_text():
    async def scenario():
        controller = _controller()
        controller.select_pair("eth/usdt")
        assert controller.pair == ETH
        controller.select_pair("dogeusdt")
        assert controller.pair == DOGE
        with pytest.raises(KeyError):
            controller.select_pair("XRP/USDT")
        await controller.aclose()

    asyncio.run(scenario())


def test_failed_first_handshake_keeps_switch_gated_until_open():
    async def scenario():
        session = FakeSession(fail_next=1)
        sleep = FakeSleep()
        controller = _controller(session, sleep)
        controller.select_pair(ETH)
        await settle()

        view = controller.view()
        assert view.connection_state is ConnectionState.RECONNECTING
        assert view.session_state is SessionState.SWITCHING
        assert view.loading

        sleep.release()
        await settle()

        view = controller.view()
        assert view.connection_state is ConnectionState.OPEN
        assert view.session_state is SessionState.ACTIVE
        assert not view.loading

        await controller.aclose()

    asyncio.run(scenario())
