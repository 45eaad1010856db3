import dataclasses

from agent.view import game_view, seat_label
from engine import rules
from engine.state import AgentProfile, Badge, NightActions, Phase, RoleAbilities, SeerCheck


def test_view_marks_the_viewer_and_the_dead(make_state):
    state = make_state(dead=(7,), badge=Badge(holder_seat=3))
    view = game_view(state, state.player_by_seat(4))
    assert view["seat"] == 5
    assert view["role"] == "Witch"
    assert "Seat 5 (Player4) (You)" in view["alive_players"]
    assert view["dead_players"] == ["Seat 8 (Player7)"]
    assert view["sheriff"] == "Seat 4 (Player3)"
    assert "3 Werewolf" in view["role_counts"]


def test_dead_sheriff_is_not_shown(make_state):
    state = make_state(dead=(3,), badge=Badge(holder_seat=3))
    assert game_view(state, state.player_by_seat(0))["sheriff"] is None


def test_wolves_know_their_team(make_state):
    state = make_state()
    knowledge = game_view(state, state.player_by_seat(1))["knowledge"]
    assert knowledge == ["Your fellow Werewolves are Seat 1 (Player0), Seat 3 (Player2)."]


def test_villagers_know_nothing(make_state):
    state = make_state(night_actions=NightActions(seer_history=(SeerCheck(1, 0, True),)))
    assert game_view(state, state.player_by_seat(8))["knowledge"] == []


def test_seer_sees_her_checks(make_state):
    checks = (SeerCheck(1, 0, True), SeerCheck(2, 7, False))
    state = make_state(night_actions=NightActions(seer_history=checks))
    assert game_view(state, state.player_by_seat(3))["knowledge"] == [
        "Night 1: Seat 1 (Player0) is a Werewolf.",
        "Night 2: Seat 8 (Player7) is not a Werewolf.",
    ]


def test_witch_and_guard_knowledge(make_state):
    state = make_state(
        role_abilities=RoleAbilities(witch_heal_used=True),
        night_actions=NightActions(last_guard_target=2),
    )
    assert game_view(state, state.player_by_seat(4))["knowledge"] == [
        "Antidote: used.", "Poison: available.",
    ]
    assert "Seat 3 (Player2)" in game_view(state, state.player_by_seat(6))["knowledge"][0]


def test_messages_and_summaries(make_state):
    state = make_state(phase=Phase.DAY_LAST_WORDS, daily_summaries={1: ("Seat 4 claimed Seer",)})
    state = rules.add_system_message(state, "Seat 1 was voted out.")
    state = rules.add_player_message(state, "p0", "I was a villager.")
    view = game_view(state, state.player_by_seat(5))
    assert view["messages"] == [
        "Moderator: Seat 1 was voted out.",
        "Seat 1 (Player0) [last words]: I was a villager.",
    ]
    assert view["summaries"] == ["Day 1: Seat 4 claimed Seer"]


def test_persona_comes_from_the_profile(make_state):
    state = make_state()
    player = state.player_by_seat(0)
    player = dataclasses.replace(player, agent_profile=AgentProfile("m", "a grumpy baker"))
    assert game_view(state, player)["persona"] == "a grumpy baker"


def test_seat_label_for_unknown_seat(make_state):
    state = make_state()
    assert seat_label(state, 2) == "Seat 3 (Player2)"
    assert seat_label(state, 20) == "Seat 21"
