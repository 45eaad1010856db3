import collections

from engine.config import RECENT_MESSAGES
from engine.roles import get_role_configuration
from engine.rules import MODERATOR
from engine.state import GameState, Player, Role


def seat_label(state: GameState, seat) -> str:
    player = state.player_by_seat(seat)
    return player.label if player else f"Seat {seat + 1}"


# Formats a chat message as one transcript line
def format_message(state: GameState, message) -> str:
    if message.is_system:
        return f"{MODERATOR}: {message.content}"
    player = state.player_by_id(message.player_id)
    speaker = player.label if player else message.player_name
    if message.is_last_words:
        speaker += " [last words]"
    return f"{speaker}: {message.content}"


def _role_counts(num_players):
    counts = collections.Counter(role.value for role in get_role_configuration(num_players))
    return ", ".join(f"{count} {role}" for role, count in counts.items())


# Private knowledge of a seat, as lines the prompt can list
def _private_knowledge(state: GameState, player: Player):
    lines = []
    if player.is_wolf:
        teammates = [p.label for p in state.players if p.is_wolf and p.seat != player.seat]
        if teammates:
            lines.append(f"Your fellow Werewolves are {', '.join(teammates)}.")
    elif player.role == Role.SEER:
        for check in state.night_actions.seer_history:
            verdict = "a Werewolf" if check.is_wolf else "not a Werewolf"
            lines.append(f"Night {check.day}: {seat_label(state, check.target_seat)} is {verdict}.")
    elif player.role == Role.WITCH:
        abilities = state.role_abilities
        lines.append(f"Antidote: {'used' if abilities.witch_heal_used else 'available'}.")
        lines.append(f"Poison: {'used' if abilities.witch_poison_used else 'available'}.")
    elif player.role == Role.GUARD and state.night_actions.last_guard_target is not None:
        lines.append(
            f"Last night you protected {seat_label(state, state.night_actions.last_guard_target)}; "
            "you cannot protect them again tonight."
        )
    return lines


def game_view(state: GameState, player: Player):
    """The game as `player` sees it, as a dict for prompt rendering."""
    sheriff = state.sheriff()
    summaries = [
        f"Day {day}: {bullet}"
        for day, bullets in sorted(state.daily_summaries.items())
        for bullet in bullets
    ]
    return {
        "name": player.display_name,
        "seat": player.seat + 1,
        "role": player.role.value,
        "persona": player.agent_profile.persona if player.agent_profile else "",
        "num_players": len(state.players),
        "role_counts": _role_counts(len(state.players)),
        "day": state.day,
        "phase": state.phase.value,
        "alive_players": [
            f"{p.label} (You)" if p.seat == player.seat else p.label
            for p in state.alive_players()
        ],
        "dead_players": [p.label for p in state.players if not p.alive],
        "sheriff": sheriff.label if sheriff and sheriff.alive else None,
        "knowledge": _private_knowledge(state, player),
        "summaries": summaries,
        "messages": [format_message(state, m) for m in state.messages[-RECENT_MESSAGES:]],
    }
