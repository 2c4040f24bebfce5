import pytest
from unittest.mock import MagicMock

from mancala_server.common import MAX_NAME, NPEBBLES, NPITS
from mancala_server.game import MancalaGame


def sent_lines(conn):
    """Lines written to a mock connection, terminators removed"""
    data = b"".join(call.args[0] for call in conn.sendall.call_args_list)
    return data.decode("utf-8").split("\r\n")[:-1]


def snapshot(game):
    return (
        [s.board.to_list() for s in game.registry],
        game.registry.mover_id,
        [s.prompted for s in game.registry],
    )


@pytest.fixture
def game():
    return MancalaGame()


@pytest.fixture
def two_players(game):
    """ann joins and registers first, then bob; ann holds the turn"""
    ann = game.add_session(MagicMock())
    bob = game.add_session(MagicMock())
    assert game.register(ann, "ann")
    assert game.register(bob, "bob")
    return ann, bob


def test_welcome_on_admission(game):
    conn = MagicMock()
    game.add_session(conn)
    assert sent_lines(conn) == ["Welcome to Mancala. What is your name?"]


def test_first_session_gets_default_stock(game):
    session = game.add_session(MagicMock())
    assert session.board.to_list() == [NPEBBLES] * NPITS + [0]


def test_newcomer_stock_is_rounded_up_average(game):
    first = game.add_session(MagicMock())
    first.board.pits[:NPITS] = [5, 5, 5, 5, 5, 0]
    assert game.compute_average_pebbles() == 5  # ceil(25 / 6)
    first.board.pits[:NPITS] = [1, 0, 0, 0, 0, 0]
    assert game.compute_average_pebbles() == 1
    second = game.add_session(MagicMock())
    assert second.board.to_list() == [1] * NPITS + [0]


def test_newcomer_stock_counts_only_regular_pits(game):
    first = game.add_session(MagicMock())
    first.board.pits[NPITS] = 100
    assert game.compute_average_pebbles() == NPEBBLES


def test_newcomer_stock_when_table_is_empty(game):
    first = game.add_session(MagicMock())
    first.board.pits[:NPITS] = 0
    assert game.compute_average_pebbles() == 1


def test_two_player_scenario_boards(two_players):
    ann, bob = two_players
    assert ann.board.to_list() == [4, 4, 4, 4, 4, 4, 0]
    assert bob.board.to_list() == [4, 4, 4, 4, 4, 4, 0]


def test_first_registered_becomes_mover(game, two_players):
    ann, bob = two_players
    assert game.registry.mover is ann
    assert "Now it's ann's turn." in sent_lines(bob.conn)
    assert not any(line.startswith("Now it's") for line in sent_lines(ann.conn))


def test_registration_messages(game, two_players):
    ann, bob = two_players
    assert sent_lines(ann.conn) == [
        "Welcome to Mancala. What is your name?",
        "ann has joined the game.",
        "ann: [0]4 [1]4 [2]4 [3]4 [4]4 [5]4 [end pit]0",
        "bob has joined the game.",
    ]
    # status lines follow registry order, newest session first
    assert sent_lines(bob.conn) == [
        "Welcome to Mancala. What is your name?",
        "bob has joined the game.",
        "bob: [0]4 [1]4 [2]4 [3]4 [4]4 [5]4 [end pit]0",
        "ann: [0]4 [1]4 [2]4 [3]4 [4]4 [5]4 [end pit]0",
        "Now it's ann's turn.",
    ]


def test_unregistered_sessions_get_no_broadcasts(game, two_players):
    lurker = game.add_session(MagicMock())
    game.broadcaster.broadcast("hello")
    assert sent_lines(lurker.conn) == ["Welcome to Mancala. What is your name?"]


def test_empty_name_is_rejected(game):
    session = game.add_session(MagicMock())
    assert not game.register(session, "")
    assert not session.is_registered
    assert game.registry.mover is None
    assert sent_lines(session.conn)[-1] == "Empty name, try again?"


def test_duplicate_name_is_rejected(game, two_players):
    before = snapshot(game)
    session = game.add_session(MagicMock())
    assert not game.register(session, "ann")
    assert not session.is_registered
    assert sent_lines(session.conn)[-1] == "Duplicate name, try again?"
    assert [s.name for s in game.registry.registered()] == ["bob", "ann"]
    assert game.registry.mover_id == before[1]


def test_names_are_case_sensitive(game, two_players):
    session = game.add_session(MagicMock())
    assert game.register(session, "Ann")


def test_long_name_is_truncated_before_comparison(game):
    first = game.add_session(MagicMock())
    second = game.add_session(MagicMock())
    assert game.register(first, "x" * (MAX_NAME + 20))
    assert first.name == "x" * MAX_NAME
    assert not game.register(second, "x" * (MAX_NAME + 5))


def test_handle_line_routes_by_state(game):
    session = game.add_session(MagicMock())
    game.handle_line(session, "ann")
    assert session.name == "ann"
    game.handle_line(session, "0")
    assert session.board.pits[0] == 0


def test_scenario_sow_pit_zero(game, two_players):
    ann, bob = two_players
    assert game.make_move(ann, "0")
    assert ann.board.to_list() == [0, 5, 5, 5, 5, 4, 0]
    assert bob.board.to_list() == [4, 4, 4, 4, 4, 4, 0]
    assert game.registry.mover is bob


def test_move_announcement_and_status(game, two_players):
    ann, bob = two_players
    ann.conn.reset_mock()
    bob.conn.reset_mock()
    game.make_move(ann, "0")
    assert sent_lines(bob.conn) == [
        "ann's move is 0",
        "bob: [0]4 [1]4 [2]4 [3]4 [4]4 [5]4 [end pit]0",
        "ann: [0]0 [1]5 [2]5 [3]5 [4]5 [5]4 [end pit]0",
    ]
    assert "ann's move is 0" not in sent_lines(ann.conn)
    assert len(sent_lines(ann.conn)) == 2


def test_bonus_turn_when_last_pebble_hits_own_end_pit(game, two_players):
    ann, bob = two_players
    ann.prompted = True
    assert game.make_move(ann, "2")  # 4 pebbles, 4 steps to the end pit
    assert ann.board.to_list() == [4, 4, 0, 5, 5, 5, 1]
    assert game.registry.mover is ann
    assert not ann.prompted


def test_single_pebble_into_end_pit_is_bonus(game, two_players):
    ann, _ = two_players
    ann.board.pits[5] = 1
    game.make_move(ann, "5")
    assert ann.board.end_pit == 1
    assert game.registry.mover is ann


def test_sowing_spills_into_next_row(game, two_players):
    ann, bob = two_players
    game.make_move(ann, "5")
    assert ann.board.to_list() == [4, 4, 4, 4, 4, 0, 1]
    assert bob.board.to_list() == [5, 5, 5, 4, 4, 4, 0]
    assert game.registry.mover is bob


def test_wraparound_skips_end_pits_after_first_row(game, two_players):
    ann, bob = two_players
    ann.board.pits[5] = 14
    total = game.registry.total_pebbles()
    bonus = game.sow(ann, 5)
    assert not bonus
    # ann's end pit gets one pebble on the first pass only
    assert ann.board.to_list() == [5, 5, 5, 5, 5, 1, 1]
    assert bob.board.to_list() == [6, 5, 5, 5, 5, 5, 0]
    assert game.registry.total_pebbles() == total


def test_sowing_passes_through_unregistered_rows(game, two_players):
    ann, bob = two_players
    lurker = game.add_session(MagicMock())
    # order: lurker, bob, ann; after ann comes lurker
    game.make_move(ann, "5")
    assert lurker.board.to_list() == [5, 5, 5, 4, 4, 4, 0]
    assert bob.board.to_list() == [4, 4, 4, 4, 4, 4, 0]
    assert game.registry.mover is bob


@pytest.mark.parametrize("pit", range(NPITS))
def test_pebbles_are_conserved(game, two_players, pit):
    ann, _ = two_players
    ann.board.pits[pit] = 3 * NPITS + pit
    total = game.registry.total_pebbles()
    assert game.make_move(ann, str(pit))
    assert game.registry.total_pebbles() == total


def test_not_your_move(game, two_players):
    ann, bob = two_players
    before = snapshot(game)
    assert not game.make_move(bob, "0")
    assert sent_lines(bob.conn)[-1] == "It's not your move."
    assert snapshot(game) == before


@pytest.mark.parametrize("line", ["6", "-1", "99", "abc", ""])
def test_invalid_pit_changes_nothing(game, two_players, line):
    ann, _ = two_players
    ann.prompted = True
    before = snapshot(game)
    assert not game.make_move(ann, line)
    assert sent_lines(ann.conn)[-1] == "Invalid move, try again?"
    assert snapshot(game) == before


def test_empty_pit_is_invalid(game, two_players):
    ann, _ = two_players
    ann.board.pits[3] = 0
    before = snapshot(game)
    assert not game.make_move(ann, "3")
    assert snapshot(game) == before


def test_turn_order_is_circular(game):
    sessions = [game.add_session(MagicMock()) for _ in range(3)]
    for name, session in zip(["ann", "bob", "cy"], sessions):
        game.register(session, name)
    start = game.registry.mover
    assert start.name == "ann"

    seen = []
    for _ in range(3):
        mover = game.registry.mover
        seen.append(mover.name)
        assert game.make_move(mover, "0")
    assert game.registry.mover is start
    # registry order is cy, bob, ann; ann is followed by cy
    assert seen == ["ann", "cy", "bob"]


def test_turn_skips_unregistered_sessions(game, two_players):
    ann, bob = two_players
    game.add_session(MagicMock())
    game.make_move(ann, "0")
    assert game.registry.mover is bob
    game.make_move(bob, "0")
    assert game.registry.mover is ann


def test_lone_player_keeps_turn(game):
    ann = game.add_session(MagicMock())
    game.register(ann, "ann")
    game.make_move(ann, "0")
    assert game.registry.mover is ann


def test_prompt(game, two_players):
    ann, bob = two_players
    assert game.needs_prompt() is ann
    game.prompt(ann)
    assert ann.prompted
    assert game.needs_prompt() is None
    assert sent_lines(ann.conn)[-1] == "Your move?"
    assert sent_lines(bob.conn)[-1] == "It is ann's move."


def test_no_prompt_without_mover(game):
    game.add_session(MagicMock())
    assert game.needs_prompt() is None


def test_remove_registered_mover(game, two_players):
    ann, bob = two_players
    game.remove_session(ann.session_id)
    assert ann.session_id not in game.registry
    assert game.registry.mover is bob
    assert sent_lines(bob.conn)[-1] == "ann has left the game."


def test_remove_unregistered_session_is_silent(game, two_players):
    ann, bob = two_players
    lurker = game.add_session(MagicMock())
    bob.conn.reset_mock()
    game.remove_session(lurker.session_id)
    assert sent_lines(bob.conn) == []
    assert game.registry.mover is ann


def test_remove_unknown_session(game):
    assert game.remove_session(42) is None


def test_game_over_predicate(game, two_players):
    ann, bob = two_players
    assert not game.game_is_over()
    bob.board.pits[:NPITS] = [0, 0, 0, 0, 0, 1]
    assert not game.game_is_over()
    bob.board.pits[5] = 0
    bob.board.pits[NPITS] = 7
    assert game.game_is_over()


def test_no_game_over_without_sessions(game):
    assert not game.game_is_over()


def test_settle_reports_points(game, two_players):
    ann, bob = two_players
    bob.board.pits[:] = [0, 0, 0, 0, 0, 0, 3]
    ann.board.pits[:] = [1, 2, 3, 4, 5, 6, 7]
    scores = game.settle()
    assert scores == [("bob", 3), ("ann", 28)]
    assert sent_lines(ann.conn)[-3:] == [
        "Game over!",
        "bob has 3 points",
        "ann has 28 points",
    ]


def test_send_failure_marks_session(game, two_players):
    ann, bob = two_players
    bob.conn.sendall.side_effect = OSError("broken pipe")
    game.broadcaster.broadcast("hello")
    assert game.broadcaster.failed == {bob.session_id}
    assert sent_lines(ann.conn)[-1] == "hello"
    game.remove_session(bob.session_id)
    assert game.broadcaster.failed == set()
