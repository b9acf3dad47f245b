import pytest

from survive.errors import (
    CallAlreadyPending,
    NoPendingCall,
    NotCenter,
    PlayerNotFound,
    RoomNotActive,
    RoomNotFound,
    SessionNotFound,
    TargetMismatch,
    TargetNotFound,
    ValidationError,
)
from survive.services.rooms import BackgroundScheduler, RoomStatus, RoomStore
from survive.services.rooms import roster


def _players(game):
    return {p['name']: p for p in game['players']}


def _centers(game):
    return [p['name'] for p in game['players'] if p['isCenter']]


@pytest.fixture()
def duo(engine):
    room, _ = engine.create_room('Alice', 600)
    engine.join(room.id, 'Bob')
    return room.id


@pytest.fixture()
def trio(engine, duo):
    engine.join(duo, 'Carol')
    return duo


def test_create_room_seeds_center(engine):
    room, alice = engine.create_room('Alice', 600)
    game = engine.snapshot(room.id)
    assert game['status'] == 'waiting'
    assert game['timerSeconds'] == 600
    assert game['startTime'] is None
    assert game['players'] == [{
        'name': 'Alice', 'points': 20, 'animal': 'Aardvark',
        'isCenter': True, 'hasBoost': False, 'connected': True,
    }]
    assert alice.session_token
    assert alice.session_token not in str(game)


@pytest.mark.parametrize('name,timer', [('', 600), ('   ', 600), (None, 600), ('Alice', 0), ('Alice', 'soon'), ('Alice', 99999)])
def test_create_room_validation(engine, name, timer):
    with pytest.raises(ValidationError):
        engine.create_room(name, timer)


def test_store_lookup_and_delete(clock):
    store = RoomStore(clock=clock)
    ids = {store.create(f'P{i}', 60).id for i in range(50)}
    assert len(ids) == 50
    some_id = next(iter(ids))
    assert store.get(some_id).id == some_id
    assert store.delete(some_id) is True
    assert store.delete(some_id) is False
    with pytest.raises(RoomNotFound):
        store.get(some_id)
    with pytest.raises(RoomNotFound):
        store.get(None)
    with pytest.raises(RoomNotFound):
        store.get([some_id])


def test_join_assigns_animal_and_starts_round(engine, scheduler, clock):
    room, _ = engine.create_room('Alice', 600)
    outcome = engine.join(room.id, 'Bob')
    assert not outcome.already_exists
    assert outcome.started
    assert outcome.player.animal == 'Lion'
    assert outcome.player.session_token
    game = outcome.game
    assert game['status'] == 'active'
    assert game['startTime'] == clock.now
    assert game['endsAt'] == clock.now + 600
    assert game['round'] == 1
    assert _centers(game) == ['Alice']
    assert len(scheduler.active('round-end')) == 1


def test_duplicate_join_is_rejected_without_mutation(engine, duo):
    before = engine.snapshot(duo)
    outcome = engine.join(duo, 'Bob')
    assert outcome.already_exists
    assert engine.snapshot(duo) == before


def test_duplicate_of_creator_is_rejected(engine):
    room, _ = engine.create_room('Alice', 600)
    outcome = engine.join(room.id, 'Alice')
    assert outcome.already_exists
    assert [p['name'] for p in engine.snapshot(room.id)['players']] == ['Alice']
    assert engine.snapshot(room.id)['status'] == 'waiting'


def test_names_are_case_sensitive(engine, duo):
    assert not engine.join(duo, 'bob').already_exists


def test_join_errors(engine, duo):
    with pytest.raises(ValidationError):
        engine.join(duo, '')
    with pytest.raises(RoomNotFound):
        engine.join('no-such-room', 'Dave')


def test_call_then_tap_swaps_animals_and_center(engine, duo, clock):
    game = engine.call(duo, 'Alice', 'Bob')
    assert game['pendingCall'] == {'caller': 'Alice', 'target': 'Bob', 'deadline': clock.now + 10}

    game = engine.tap(duo, 'Bob', 'Bob')
    players = _players(game)
    assert _centers(game) == ['Bob']
    assert game['centerIndex'] == 1
    assert players['Bob']['animal'] == 'Aardvark'
    assert players['Alice']['animal'] == 'Lion'
    assert players['Bob']['points'] == 18
    assert players['Alice']['points'] == 20
    assert game['pendingCall'] is None
    assert game['round'] == 2
    assert game['lastCalled']['reason'] == 'tap'


def test_call_timeout_resolves_like_tap(engine, duo, scheduler, events):
    engine.call(duo, 'Alice', 'Bob')
    scheduler.advance(9.5)
    assert engine.snapshot(duo)['pendingCall'] is not None

    scheduler.advance(0.5)
    game = engine.snapshot(duo)
    players = _players(game)
    assert _centers(game) == ['Bob']
    assert players['Bob']['animal'] == 'Aardvark'
    assert players['Alice']['animal'] == 'Lion'
    assert players['Bob']['points'] == 18
    assert game['pendingCall'] is None
    assert game['lastCalled']['reason'] == 'timeout'

    switched = [payload for _, name, payload in events if name == 'animalSwitched']
    assert len(switched) == 1
    assert switched[0]['caller'] == 'Alice'
    assert switched[0]['target'] == 'Bob'


def test_tap_cancels_timeout(engine, duo, scheduler):
    engine.call(duo, 'Alice', 'Bob')
    call_id = engine.store.get(duo).pending_call.call_id
    engine.tap(duo, 'Alice', 'Bob')
    assert scheduler.active('call') == []

    # A timer that slipped through still cannot resolve twice
    assert engine.expire_call(duo, call_id) is False
    game = engine.snapshot(duo)
    assert _players(game)['Bob']['points'] == 18
    assert game['round'] == 2


def test_call_while_pending_is_rejected(engine, trio):
    engine.call(trio, 'Alice', 'Bob')
    before = engine.snapshot(trio)
    with pytest.raises(CallAlreadyPending):
        engine.call(trio, 'Alice', 'Carol')
    assert engine.snapshot(trio) == before


def test_call_validation(engine, duo):
    with pytest.raises(NotCenter):
        engine.call(duo, 'Bob', 'Alice')
    with pytest.raises(TargetNotFound):
        engine.call(duo, 'Alice', 'Zed')
    with pytest.raises(ValidationError):
        engine.call(duo, 'Alice', 'Alice')
    with pytest.raises(PlayerNotFound):
        engine.call(duo, 'Mallory', 'Bob')
    with pytest.raises(RoomNotFound):
        engine.call('gone', 'Alice', 'Bob')
    assert engine.snapshot(duo)['pendingCall'] is None


def test_call_requires_active_room(engine):
    room, _ = engine.create_room('Alice', 600)
    with pytest.raises(RoomNotActive):
        engine.call(room.id, 'Alice', 'Alice')


def test_tap_validation(engine, trio):
    with pytest.raises(NoPendingCall):
        engine.tap(trio, 'Alice', 'Bob')
    engine.call(trio, 'Alice', 'Bob')
    with pytest.raises(TargetMismatch):
        engine.tap(trio, 'Alice', 'Carol')
    with pytest.raises(TargetNotFound):
        engine.tap(trio, 'Alice', 'Zed')
    with pytest.raises(NotCenter):
        engine.tap(trio, 'Carol', 'Bob')
    assert engine.snapshot(trio)['pendingCall']['target'] == 'Bob'


def test_points_never_drop_below_zero(engine, duo):
    engine.store.get(duo).players[1].points = 1
    engine.call(duo, 'Alice', 'Bob')
    game = engine.tap(duo, 'Bob', 'Bob')
    assert _players(game)['Bob']['points'] == 0


def test_center_and_tokens_stay_consistent(engine, scheduler):
    room, _ = engine.create_room('P0', 600)
    for name in ('P1', 'P2', 'P3'):
        engine.join(room.id, name)
    animals = sorted(p['animal'] for p in engine.snapshot(room.id)['players'])

    for turn in range(8):
        game = engine.snapshot(room.id)
        center = _centers(game)[0]
        names = [p['name'] for p in game['players']]
        target = names[(names.index(center) + 1 + turn % 3) % len(names)]
        engine.call(room.id, center, target)
        if turn % 2:
            scheduler.advance(10)
        else:
            engine.tap(room.id, target, target)
        game = engine.snapshot(room.id)
        assert _centers(game) == [target]
        assert sorted(p['animal'] for p in game['players']) == animals


def test_boost_is_granted_once(engine, duo):
    first = engine.grant_boost(duo, 'Bob')
    assert first.applied and first.points == 25
    second = engine.grant_boost(duo, 'Bob')
    assert not second.applied and second.points == 25
    assert _players(engine.snapshot(duo))['Bob']['hasBoost'] is True
    with pytest.raises(PlayerNotFound):
        engine.grant_boost(duo, 'Zed')


def test_round_timer_ends_game(engine, duo, scheduler, events):
    scheduler.advance(600)
    game = engine.snapshot(duo)
    assert game['status'] == 'ended'

    ended = [payload for _, name, payload in events if name == 'gameEnded']
    assert len(ended) == 1
    assert ended[0]['reason'] == 'timer'
    assert [s['name'] for s in ended[0]['standings']] == ['Alice', 'Bob']

    with pytest.raises(RoomNotActive):
        engine.call(duo, 'Alice', 'Bob')
    with pytest.raises(RoomNotActive):
        engine.join(duo, 'Dave')

    scheduler.advance(60)
    with pytest.raises(RoomNotFound):
        engine.snapshot(duo)


def test_game_end_drops_pending_call(engine, duo, scheduler):
    engine.call(duo, 'Alice', 'Bob')
    start_time = engine.snapshot(duo)['startTime']
    assert engine.end_round(duo, start_time) is True
    game = engine.snapshot(duo)
    assert game['status'] == 'ended'
    assert game['pendingCall'] is None
    assert _centers(game) == ['Alice']
    assert scheduler.active('call') == []


def test_stale_round_timer_is_ignored(engine, duo):
    assert engine.end_round(duo, start_time=-1) is False
    assert engine.snapshot(duo)['status'] == 'active'


def test_disconnect_then_eviction(engine, duo, scheduler, events):
    game = engine.disconnect(duo, 'Bob')
    assert _players(game)['Bob']['connected'] is False
    assert _centers(game) == ['Alice']

    scheduler.advance(30)
    game = engine.snapshot(duo)
    assert [p['name'] for p in game['players']] == ['Alice']
    assert game['status'] == 'ended'
    names = [name for _, name, _ in events]
    assert names == ['playerLeft', 'gameEnded']


def test_resume_within_grace_keeps_seat(engine, duo, scheduler):
    token = engine.store.get(duo).players[1].session_token
    engine.disconnect(duo, 'Bob')
    name, game = engine.resume(duo, token)
    assert name == 'Bob'
    assert _players(game)['Bob']['connected'] is True

    scheduler.advance(30)
    assert 'Bob' in _players(engine.snapshot(duo))


def test_resume_with_unknown_token(engine, duo):
    with pytest.raises(SessionNotFound):
        engine.resume(duo, 'not-a-token')


def test_center_leaving_passes_role_and_cancels_call(engine, trio, scheduler, events):
    engine.call(trio, 'Alice', 'Bob')
    engine.leave(trio, 'Alice')
    game = engine.snapshot(trio)
    assert [p['name'] for p in game['players']] == ['Bob', 'Carol']
    assert _centers(game) == ['Bob']
    assert game['pendingCall'] is None
    assert game['status'] == 'active'
    assert scheduler.active('call') == []
    assert [name for _, name, _ in events] == ['playerLeft']


def test_removal_before_center_shifts_index(engine, trio):
    engine.call(trio, 'Alice', 'Carol')
    engine.tap(trio, 'Carol', 'Carol')
    engine.leave(trio, 'Alice')
    game = engine.snapshot(trio)
    assert game['centerIndex'] == 1
    assert _centers(game) == ['Carol']


def test_last_player_leaving_deletes_room(engine):
    room, _ = engine.create_room('Alice', 600)
    removal = engine.leave(room.id, 'Alice')
    assert removal['deleted']
    with pytest.raises(RoomNotFound):
        engine.snapshot(room.id)


def test_offline_creator_is_evicted(engine, scheduler):
    room, alice = engine.create_room('Alice', 600, connected=False)
    assert alice.connected is False
    scheduler.advance(30)
    with pytest.raises(RoomNotFound):
        engine.snapshot(room.id)


def test_remove_player_wraps_center(engine, trio):
    room = engine.store.get(trio)
    room.center_index = 2
    roster.remove_player(room, 'Carol')
    assert room.center_index == 0
    assert room.center.name == 'Alice'


def test_animals_run_out(engine):
    room, _ = engine.create_room('P0', 600)
    for i in range(1, 14):
        engine.join(room.id, f'P{i}')
    players = engine.snapshot(room.id)['players']
    assert players[11]['animal'] == 'Moose'
    assert players[12]['animal'] is None
    assert engine.store.get(room.id).status == RoomStatus.ACTIVE


class FakeSocketIO:
    """Runs background tasks on demand and records every sleep."""

    def __init__(self):
        self.tasks = []
        self.sleeps = []
        self.on_sleep = None

    def start_background_task(self, target, *args):
        self.tasks.append((target, args))

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        if self.on_sleep:
            self.on_sleep()

    def run_all(self):
        for target, args in self.tasks:
            target(*args)


def test_background_timer_fires_after_full_delay():
    sio = FakeSocketIO()
    fired = []
    BackgroundScheduler(sio, step=1.0).schedule(2.5, fired.append, 'round', label='round-end')
    sio.run_all()
    assert sio.sleeps == [1.0, 1.0, 0.5]
    assert fired == ['round']


def test_cancelled_background_timer_stops_early():
    sio = FakeSocketIO()
    fired = []
    handle = BackgroundScheduler(sio, step=1.0).schedule(600, fired.append, 'round', label='round-end')
    sio.on_sleep = handle.cancel
    sio.run_all()
    assert sio.sleeps == [1.0]
    assert fired == []
    assert handle.active is False


def test_background_timer_callback_error_is_logged():
    sio = FakeSocketIO()

    def boom():
        raise RuntimeError('boom')

    handle = BackgroundScheduler(sio).schedule(0.2, boom)
    sio.run_all()
    assert handle.fired is True
