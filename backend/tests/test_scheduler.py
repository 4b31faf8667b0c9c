import threading

import pytest

from tablecast.errors import NotFound, Unauthorized
from tablecast.services.rooms import SessionBroker


def directives(transport):
    return [(m.target, m.payload['playerId'], m.payload['turn']) for m in transport.events('turnDirective')]


def test_only_host_may_start(broker, pair, transport):
    with pytest.raises(Unauthorized):
        broker.start_loop('sid-j', pair)
    broker.connect('sid-x')
    with pytest.raises(Unauthorized):
        broker.start_loop('sid-x', pair)
    assert broker.store.get(pair).loop.running is False
    assert transport.events('turnDirective') == []


def test_start_unknown_room(broker):
    broker.connect('sid-h')
    with pytest.raises(NotFound):
        broker.start_loop('sid-h', 'NOPE1')


def test_start_needs_two_players(broker, transport):
    broker.connect('sid-h')
    room_id = broker.host_room('sid-h', 'Solo', 'H')
    assert broker.start_loop('sid-h', room_id) is False
    assert broker.store.get(room_id).loop.running is False
    assert transport.tasks == []


def test_start_fires_first_tick_immediately(broker, pair, transport):
    transport.clear()
    assert broker.start_loop('sid-h', pair) is True
    room = broker.store.get(pair)
    assert room.loop.running is True
    assert room.loop.turn == 1
    assert room.loop.timer is not None
    assert directives(transport) == [('sid-h', 'H', 0)]
    assert transport.received('sid-j', 'turnDirective') == []
    assert transport.received('sid-j', 'loopStatusChanged') == [{'roomId': pair, 'loopActive': True, 'turn': 0}]
    assert transport.received('sid-j', 'readinessStatus')[-1]['loopActive'] is True
    assert len(transport.tasks) == 1


def test_second_start_is_noop(broker, pair, transport):
    broker.start_loop('sid-h', pair)
    transport.clear()
    assert broker.start_loop('sid-h', pair) is False
    assert transport.messages == []


def test_turns_alternate_one_per_interval(broker, pair, transport):
    broker.start_loop('sid-h', pair)
    for _ in range(4):
        assert transport.run_pending() == 1
    assert directives(transport) == [
        ('sid-h', 'H', 0), ('sid-j', 'J', 1), ('sid-h', 'H', 2), ('sid-j', 'J', 3), ('sid-h', 'H', 4),
    ]
    assert transport.slept == [10, 10, 10, 10]
    # Never more than one tick queued
    assert len(transport.tasks) == 1


def test_each_tick_publishes_status(broker, pair, transport):
    broker.start_loop('sid-h', pair)
    transport.clear()
    transport.run_pending()
    statuses = transport.received('sid-h', 'readinessStatus')
    assert statuses == [{'roomId': pair, 'status': {'H': False, 'J': False}, 'allReady': False, 'loopActive': True}]


def test_stop_prevents_pending_tick(broker, pair, transport):
    broker.start_loop('sid-h', pair)
    transport.run_pending()
    assert broker.stop_loop('sid-h', pair) is True
    room = broker.store.get(pair)
    assert room.loop.running is False
    assert room.loop.timer is None
    assert transport.received('sid-j', 'loopStatusChanged')[-1] == {'roomId': pair, 'loopActive': False, 'turn': 2}
    before = directives(transport)
    transport.run_pending()
    assert directives(transport) == before
    assert transport.tasks == []


def test_only_host_may_stop(broker, pair):
    broker.start_loop('sid-h', pair)
    with pytest.raises(Unauthorized):
        broker.stop_loop('sid-j', pair)
    assert broker.store.get(pair).loop.running is True


def test_restart_after_stop_resets_counter_and_ignores_old_tick(broker, pair, transport):
    broker.start_loop('sid-h', pair)
    transport.run_pending()
    broker.stop_loop('sid-h', pair)
    stale = transport.tasks
    transport.tasks = []
    broker.start_loop('sid-h', pair)
    transport.tasks = stale + transport.tasks
    transport.clear()
    # The stale tick aborts, only the new chain advances
    transport.run_pending()
    assert directives(transport) == [('sid-j', 'J', 1)]


def test_joiner_disconnect_mid_cycle_stops_loop(broker, pair, transport):
    broker.start_loop('sid-h', pair)
    transport.run_pending()
    broker.disconnect('sid-j')
    room = broker.store.get(pair)
    assert room.players == ['H']
    assert room.loop.running is False
    assert transport.received('sid-h', 'loopStatusChanged')[-1]['loopActive'] is False
    before = directives(transport)
    transport.run_pending()
    transport.run_pending()
    assert directives(transport) == before


def test_host_leaving_stops_loop(broker, pair, transport):
    broker.start_loop('sid-h', pair)
    broker.leave_room('sid-h', pair)
    room = broker.store.get(pair)
    assert room.host_id == 'J'
    assert room.loop.running is False and room.loop.timer is None
    transport.clear()
    transport.run_pending()
    assert transport.events('turnDirective') == []


def test_room_deleted_with_pending_tick(broker, pair, transport):
    broker.start_loop('sid-h', pair)
    broker.leave_room('sid-j', pair)
    broker.leave_room('sid-h', pair)
    assert pair not in broker.store
    transport.clear()
    transport.run_pending()
    assert transport.messages == []


def test_fire_revalidates_player_count(broker, pair, transport):
    broker.start_loop('sid-h', pair)
    room = broker.store.get(pair)
    # Mutate state without going through the broker: the tick must notice on its own
    room.remove_player('J')
    transport.clear()
    transport.run_pending()
    assert transport.events('turnDirective') == []
    assert room.loop.running is False
    assert transport.tasks == []


def test_fire_with_unknown_handle_is_ignored(broker, pair, transport):
    broker.start_loop('sid-h', pair)
    assert broker.scheduler.fire(pair, handle=-1) is False
    assert broker.scheduler.fire('NOPE1', handle=1) is False
    assert broker.store.get(pair).loop.turn == 1


def test_directive_goes_to_every_connection_of_the_player(broker, pair, transport):
    broker.connect('sid-j2')
    broker.join_room('sid-j2', pair, 'J')
    broker.start_loop('sid-h', pair)
    transport.run_pending()
    targets = {target for target, player, turn in directives(transport) if player == 'J'}
    assert targets == {'sid-j', 'sid-j2'}


def test_controller_debounce(transport):
    broker = SessionBroker(transport, debounce_ms=60_000)
    broker.connect('sid-h')
    broker.connect('sid-j')
    room_id = broker.host_room('sid-h', 'Duel', 'H')
    broker.join_room('sid-j', room_id, 'J')
    assert broker.start_loop('sid-h', room_id) is True
    assert broker.stop_loop('sid-h', room_id) is True
    # Second start inside the window is swallowed
    assert broker.start_loop('sid-h', room_id) is False
    assert broker.store.get(room_id).loop.running is False


def test_debounce_entries_dropped_with_room(transport):
    broker = SessionBroker(transport, debounce_ms=60_000, code_factory=lambda length: 'DUEL1')
    broker.connect('sid-h')
    broker.connect('sid-j')
    room_id = broker.host_room('sid-h', 'Duel', 'H')
    broker.join_room('sid-j', room_id, 'J')
    broker.start_loop('sid-h', room_id)
    broker.stop_loop('sid-h', room_id)
    assert len(broker.scheduler._last_controller_action) == 2
    broker.leave_room('sid-j', room_id)
    broker.leave_room('sid-h', room_id)
    assert broker.scheduler._last_controller_action == {}

    # Same code handed out again: the new room starts without waiting out the old window
    assert broker.host_room('sid-h', 'Rematch', 'H') == room_id
    broker.join_room('sid-j', room_id, 'J')
    assert broker.start_loop('sid-h', room_id) is True


def test_tick_survives_connection_churn_on_another_thread(broker, pair, transport):
    for n in range(2000):
        broker.connect(f'idle-{n}')
    broker.start_loop('sid-h', pair)
    room = broker.store.get(pair)

    errors = []
    done = threading.Event()

    def churn():
        n = 0
        try:
            while not done.is_set():
                broker.connect(f'churn-{n}')
                broker.disconnect(f'churn-{n}')
                n += 1
        except Exception as exc:
            errors.append(exc)

    worker = threading.Thread(target=churn, daemon=True)
    worker.start()
    try:
        for _ in range(200):
            transport.run_pending()
    except Exception as exc:
        errors.append(exc)
    finally:
        done.set()
        worker.join(timeout=5)

    assert errors == []
    assert room.loop.running is True
    assert room.loop.timer is not None
    assert room.loop.turn == 201
    assert len(transport.tasks) == 1


def test_trivia_scenario(broker, transport):
    broker.connect('sid-h')
    broker.connect('sid-j')
    room_id = broker.host_room('sid-h', 'Trivia', 'H', 'x1')
    from tablecast.errors import BadPassword
    with pytest.raises(BadPassword):
        broker.join_room('sid-j', room_id, 'J', 'nope')
    assert broker.store.public_rooms()[room_id]['players'] == ['H']
    broker.join_room('sid-j', room_id, 'J', 'x1')
    assert broker.store.get(room_id).players == ['H', 'J']

    broker.start_loop('sid-h', room_id)
    transport.run_pending()
    transport.run_pending()
    assert [(p, t) for _, p, t in directives(transport)] == [('H', 0), ('J', 1), ('H', 2)]

    broker.disconnect('sid-j')
    assert broker.store.public_rooms()[room_id]['players'] == ['H']
    for _ in range(3):
        transport.run_pending()
    assert len(directives(transport)) == 3
