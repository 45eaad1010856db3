import copy

import pytest

from engine import rules
from engine.config import INVALID_SEAT_MARKER
from engine.state import (
    Alignment,
    Badge,
    NightActions,
    Phase,
    RoleAbilities,
    SpeechDirection,
    WitchAction,
    WitchChoice,
)


# ============================================================================
# VOTE TALLY
# ============================================================================

def test_sheriff_vote_decides_execution(make_state):
    # Three plain votes on seat 4 beat the sheriff's 1.5 on seat 6
    state = make_state(badge=Badge(holder_seat=6))
    votes = {"p0": 4, "p1": 4, "p2": 4, "p6": 6}
    tally = rules.tally_votes(state, votes)
    assert tally.totals == {4: 3, 6: 1.5}
    assert tally.winner == 4


def test_sheriff_weight_breaks_what_would_be_a_tie(make_state):
    state = make_state(badge=Badge(holder_seat=0))
    tally = rules.tally_votes(state, {"p0": 3, "p1": 5})
    assert tally.totals == {3: 1.5, 5: 1}
    assert tally.winner == 3


def test_tie_voids_the_vote(make_state):
    state = make_state()
    tally = rules.tally_votes(state, {"p0": 3, "p1": 5, "p2": 3, "p4": 5})
    assert tally.winner is None
    assert tally.is_tie
    assert tally.leaders == (3, 5)


def test_dead_voters_and_dead_targets_are_ignored(make_state):
    state = make_state(dead=(1, 5))
    tally = rules.tally_votes(state, {"p0": 3, "p1": 4, "p2": 5, "p3": 3})
    assert tally.totals == {3: 2}
    assert tally.winner == 3


def test_no_votes_means_no_winner(make_state):
    tally = rules.tally_votes(make_state(), {})
    assert tally.winner is None
    assert tally.totals == {}


def test_badge_votes_are_unweighted_and_limited_to_candidates(make_state):
    badge = Badge(holder_seat=0, candidates=(3, 5), votes={"p0": 3, "p1": 5, "p2": 7})
    state = make_state(badge=badge)
    tally = rules.tally_badge_votes(state)
    assert tally.totals == {3: 1, 5: 1}
    assert tally.winner is None


def test_day_votes_are_limited_to_runoff_targets(make_state):
    state = make_state(pk_targets=(2, 3), votes={"p0": 2, "p1": 9, "p4": 2, "p5": 3})
    tally = rules.tally_day_votes(state)
    assert tally.totals == {2: 2, 3: 1}
    assert tally.winner == 2


def test_record_day_votes_keeps_history(make_state):
    state = rules.record_day_votes(make_state(day=2), {"p0": 3})
    assert state.votes == {"p0": 3}
    assert state.vote_history == {2: {"p0": 3}}


# ============================================================================
# WIN CONDITION
# ============================================================================

def test_village_wins_when_no_wolves_remain(make_state):
    state = make_state(dead=(0, 1, 2))
    assert rules.check_win_condition(state) == Alignment.VILLAGE


def test_wolves_win_at_parity(make_state):
    # Two wolves against two others
    state = make_state(dead=(0, 3, 4, 5, 6, 7))
    assert rules.check_win_condition(state) == Alignment.WOLF


def test_game_continues_while_village_outnumbers_wolves(make_state):
    assert rules.check_win_condition(make_state()) is None


def test_apply_win_check_ends_the_game(make_state):
    state = rules.apply_win_check(make_state(phase=Phase.DAY_RESOLVE, dead=(0, 1, 2)))
    assert state.winner == Alignment.VILLAGE
    assert state.phase == Phase.GAME_END
    assert state.messages[-1].is_system


def test_kill_player_only_touches_one_seat(make_state):
    state = make_state()
    after = rules.kill_player(state, 4)
    assert [p.seat for p in after.players if not p.alive] == [4]
    assert state.is_alive(4)


# ============================================================================
# NIGHT RESOLUTION
# ============================================================================

def _night(make_state, **actions):
    return make_state(phase=Phase.NIGHT_SEER_ACTION, night_actions=NightActions(**actions))


def test_unprotected_wolf_target_dies(make_state):
    state = rules.resolve_night(_night(make_state, wolf_target=7))
    assert state.night_actions.pending_wolf_victim == 7
    state, deaths = rules.apply_night_deaths(state)
    assert deaths == [(7, "wolf")]
    assert not state.is_alive(7)


def test_guarded_target_survives(make_state):
    state = rules.resolve_night(_night(make_state, wolf_target=7, guard_target=7))
    assert state.night_actions.pending_wolf_victim is None
    assert state.night_actions.last_guard_target == 7


def test_saved_target_survives(make_state):
    state = rules.resolve_night(_night(make_state, wolf_target=7, witch_save=True))
    assert state.night_actions.pending_wolf_victim is None


def test_guard_and_antidote_on_the_same_target_still_kills(make_state):
    state = rules.resolve_night(_night(make_state, wolf_target=7, guard_target=7, witch_save=True))
    assert state.night_actions.pending_wolf_victim == 7


def test_poison_kills_alongside_the_wolf_kill(make_state):
    state = rules.resolve_night(_night(make_state, wolf_target=7, witch_poison=8))
    state, deaths = rules.apply_night_deaths(state)
    assert deaths == [(7, "wolf"), (8, "poison")]
    assert state.night_history[1]["deaths"] == [
        {"seat": 7, "reason": "wolf"}, {"seat": 8, "reason": "poison"},
    ]
    assert state.night_actions.pending_poison_victim is None


def test_poisoned_hunter_cannot_shoot(make_state):
    state = rules.resolve_night(_night(make_state, witch_poison=5))
    state, deaths = rules.apply_night_deaths(state)
    assert deaths == [(5, "poison")]
    assert not state.role_abilities.hunter_can_shoot


def test_start_night_resets_choices_but_keeps_the_guard_lookback(make_state):
    state = make_state(
        phase=Phase.DAY_RESOLVE,
        votes={"p0": 1},
        pk_targets=(1, 2),
        night_actions=NightActions(guard_target=3, last_guard_target=3, wolf_target=4, witch_save=True),
    )
    state = rules.start_night(state)
    assert state.phase == Phase.NIGHT_START
    assert state.day == 2
    assert state.votes == {}
    assert state.pk_targets == ()
    assert state.night_actions.guard_target is None
    assert state.night_actions.wolf_target is None
    assert state.night_actions.last_guard_target == 3


def test_witch_potions_are_single_use(make_state):
    state = make_state(phase=Phase.NIGHT_WITCH_ACTION, night_actions=NightActions(wolf_target=7))
    state = rules.apply_witch_action(state, WitchAction(WitchChoice.SAVE))
    assert state.night_actions.witch_save
    assert state.role_abilities == RoleAbilities(witch_heal_used=True)
    state = rules.apply_witch_action(state, WitchAction(WitchChoice.POISON, 2))
    assert state.night_actions.witch_poison == 2
    assert state.role_abilities.witch_poison_used
    assert rules.apply_witch_action(state, WitchAction()) is state


def test_record_seer_check(make_state):
    state, check = rules.record_seer_check(make_state(phase=Phase.NIGHT_SEER_ACTION), 1)
    assert check.is_wolf
    state, check = rules.record_seer_check(state, 7)
    assert not check.is_wolf
    assert [c.target_seat for c in state.night_actions.seer_history] == [1, 7]


# ============================================================================
# WOLF VOTE AGGREGATION
# ============================================================================

def test_wolf_plurality_wins(make_state):
    state = make_state(phase=Phase.NIGHT_WOLF_ACTION)
    assert rules.aggregate_wolf_votes(state, {"p0": 7, "p1": 7, "p2": 8}) == 7


def test_wolf_tie_goes_to_the_lowest_seated_wolf(make_state):
    state = make_state(phase=Phase.NIGHT_WOLF_ACTION, dead=(2,))
    assert rules.aggregate_wolf_votes(state, {"p0": 8, "p1": 7}) == 8
    assert rules.aggregate_wolf_votes(state, {"p1": 7, "p0": 8}) == 8


def test_wolf_votes_on_dead_seats_do_not_count(make_state):
    state = make_state(phase=Phase.NIGHT_WOLF_ACTION, dead=(8,))
    assert rules.aggregate_wolf_votes(state, {"p0": 8, "p1": 7}) == 7
    assert rules.aggregate_wolf_votes(state, {}) is None


# ============================================================================
# PHASES, ROTATION AND MESSAGES
# ============================================================================

def test_transition_clears_the_speaker_where_nobody_speaks(make_state):
    state = make_state(phase=Phase.DAY_DISCUSSION, current_speaker_seat=3)
    assert rules.transition_phase(state, Phase.DAY_VOTE).current_speaker_seat is None
    state = make_state(phase=Phase.DAY_RESOLVE, current_speaker_seat=3)
    assert rules.transition_phase(state, Phase.DAY_LAST_WORDS).current_speaker_seat == 3


def test_valid_transitions():
    assert rules.is_valid_transition(Phase.LOBBY, Phase.SETUP)
    assert rules.is_valid_transition(Phase.NIGHT_START, Phase.NIGHT_WOLF_ACTION)
    assert rules.is_valid_transition(Phase.DAY_VOTE, Phase.DAY_PK_SPEECH)
    assert not rules.is_valid_transition(Phase.NIGHT_SEER_ACTION, Phase.NIGHT_GUARD_ACTION)
    assert not rules.is_valid_transition(Phase.GAME_END, Phase.NIGHT_START)


def test_invalid_transition_is_applied_anyway(make_state):
    state = rules.transition_phase(make_state(phase=Phase.GAME_END), Phase.DAY_VOTE)
    assert state.phase == Phase.DAY_VOTE


def test_next_alive_seat_wraps_and_skips_the_dead(make_state):
    state = make_state(dead=(0, 5))
    assert rules.next_alive_seat(state, 4) == 6
    assert rules.next_alive_seat(state, 9) == 1
    assert rules.next_alive_seat(state, 1, direction=SpeechDirection.COUNTERCLOCKWISE) == 9
    assert rules.next_alive_seat(state, 5) == 6


def test_next_alive_seat_can_skip_the_sheriff(make_state):
    state = make_state(badge=Badge(holder_seat=3))
    assert rules.next_alive_seat(state, 2, exclude_sheriff=True) == 4


def test_speaking_order_puts_the_sheriff_last(make_state):
    state = make_state(dead=(8,), badge=Badge(holder_seat=2))
    start = rules.resolve_speech_start_seat(state)
    assert start == 3
    assert rules.speaking_order(state, start) == [3, 4, 5, 6, 7, 9, 0, 1, 2]


def test_speech_starts_after_the_last_death_without_a_sheriff(make_state):
    state = make_state(dead=(4,))
    assert rules.resolve_speech_start_seat(state, dead_seat=4) == 5
    assert rules.resolve_speech_start_seat(state) == 0


@pytest.mark.parametrize("sheriff,start,expected", [
    (None, 3, SpeechDirection.CLOCKWISE),
    (6, 7, SpeechDirection.CLOCKWISE),
    (6, 5, SpeechDirection.COUNTERCLOCKWISE),
    (6, 1, SpeechDirection.CLOCKWISE),
    (6, 6, SpeechDirection.CLOCKWISE),
])
def test_speech_direction_reaches_the_sheriff_last(make_state, sheriff, start, expected):
    state = make_state(badge=Badge(holder_seat=sheriff))
    assert rules.resolve_speech_direction(state, start) == expected


@pytest.mark.parametrize("text,expected", [
    ("I suspect @3 and @11", f"I suspect @3 and {INVALID_SEAT_MARKER}"),
    ("Seat 12 is lying", f"{INVALID_SEAT_MARKER} is lying"),
    ("player #0 voted", f"{INVALID_SEAT_MARKER} voted"),
    ("15号是狼", f"{INVALID_SEAT_MARKER}是狼"),
    ("Seat 10 and 20 people", "Seat 10 and 20 people"),
    ("I suspect seat " + "9" * 5000, f"I suspect {INVALID_SEAT_MARKER}"),
    ("Seat 007 again", "Seat 007 again"),
])
def test_sanitize_seat_mentions(text, expected):
    assert rules.sanitize_seat_mentions(text, 10) == expected


def test_add_player_message_trims_sanitizes_and_dedupes(make_state):
    state = make_state(phase=Phase.DAY_DISCUSSION)
    state = rules.add_player_message(state, "p3", "  Seat 14 is a wolf  ")
    assert len(state.messages) == 1
    message = state.messages[0]
    assert message.content == f"{INVALID_SEAT_MARKER} is a wolf"
    assert message.player_name == "Player3"
    assert not message.is_last_words

    assert rules.add_player_message(state, "p3", "Seat 14 is a wolf") is state
    assert rules.add_player_message(state, "p3", "   ") is state
    assert rules.add_player_message(state, "nobody", "hello") is state


def test_last_words_are_flagged(make_state):
    state = rules.add_player_message(make_state(phase=Phase.DAY_LAST_WORDS), "p3", "I was the Seer")
    assert state.messages[-1].is_last_words


def test_badge_runoff_and_holder(make_state):
    state = rules.record_badge_signup(make_state(), {"p1": True, "p4": True, "p5": False})
    assert state.badge.candidates == (1, 4)
    state = rules.record_badge_votes(state, {"p0": 1, "p2": 4})
    assert state.badge.history == {1: {"p0": 1, "p2": 4}}
    state = rules.start_badge_runoff(state, (4, 1))
    assert state.badge.candidates == (1, 4)
    assert state.badge.votes == {}
    assert state.badge.revote_count == 1
    state = rules.set_badge_holder(state, 4)
    assert state.sheriff().seat == 4


def test_daily_summaries_accumulate(make_state):
    state = rules.record_daily_summary(make_state(), 1, ["a", "b"])
    state = rules.record_daily_summary(state, 1, ["c"])
    assert state.daily_summaries == {1: ("a", "b", "c")}


def test_rules_never_mutate_their_input(make_state):
    state = make_state()
    snapshot = copy.deepcopy(state)
    rules.kill_player(state, 1)
    rules.record_day_votes(state, {"p0": 1})
    rules.add_system_message(state, "hello")
    assert state == snapshot
