import collections
import dataclasses
import re
import time
import uuid
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from absl import logging

from engine.config import INVALID_SEAT_MARKER, SHERIFF_VOTE_WEIGHT
from engine.state import (
    Alignment,
    ChatMessage,
    GameState,
    Phase,
    Role,
    SeerCheck,
    SpeechDirection,
    WitchAction,
    WitchChoice,
)

MODERATOR = "Moderator"

# ============================================================================
# PHASE TRANSITIONS
# ============================================================================

_NIGHT_ORDER = [
    Phase.NIGHT_START,
    Phase.NIGHT_GUARD_ACTION,
    Phase.NIGHT_WOLF_ACTION,
    Phase.NIGHT_WITCH_ACTION,
    Phase.NIGHT_SEER_ACTION,
    Phase.NIGHT_RESOLVE,
]

# Phases reachable after a death has been announced
_AFTER_DEATH = {
    Phase.BADGE_TRANSFER,
    Phase.HUNTER_SHOOT,
    Phase.DAY_LAST_WORDS,
    Phase.DAY_DISCUSSION,
    Phase.NIGHT_START,
    Phase.GAME_END,
}

VALID_TRANSITIONS: Dict[Phase, set] = {
    Phase.LOBBY: {Phase.SETUP},
    Phase.SETUP: {Phase.NIGHT_START},
    # Night phases may skip forward past roles that are dead
    **{
        phase: set(_NIGHT_ORDER[index + 1:])
        for index, phase in enumerate(_NIGHT_ORDER[:-1])
    },
    Phase.NIGHT_RESOLVE: {Phase.DAY_START, Phase.GAME_END},
    Phase.DAY_START: {Phase.DAY_BADGE_SIGNUP, Phase.DAY_RESOLVE},
    Phase.DAY_BADGE_SIGNUP: {Phase.DAY_BADGE_SPEECH, Phase.DAY_RESOLVE},
    Phase.DAY_BADGE_SPEECH: {Phase.DAY_BADGE_ELECTION},
    Phase.DAY_BADGE_ELECTION: {Phase.DAY_PK_SPEECH, Phase.DAY_RESOLVE},
    Phase.DAY_PK_SPEECH: {Phase.DAY_BADGE_ELECTION, Phase.DAY_VOTE},
    Phase.DAY_DISCUSSION: {Phase.DAY_VOTE},
    Phase.DAY_VOTE: {Phase.DAY_RESOLVE, Phase.DAY_PK_SPEECH},
    Phase.DAY_RESOLVE: set(_AFTER_DEATH),
    Phase.DAY_LAST_WORDS: set(_AFTER_DEATH),
    Phase.BADGE_TRANSFER: set(_AFTER_DEATH),
    Phase.HUNTER_SHOOT: set(_AFTER_DEATH),
    Phase.GAME_END: {Phase.LOBBY},
}


def is_valid_transition(current: Phase, target: Phase) -> bool:
    return target in VALID_TRANSITIONS.get(current, set())


# Moves to a new phase. Speaker-less phases drop the current speaker pointer.
def transition_phase(state: GameState, phase: Phase) -> GameState:
    if state.phase != phase and not is_valid_transition(state.phase, phase):
        logging.warning("Invalid phase transition: %s -> %s", state.phase.value, phase.value)
    clear_speaker = phase.is_night or phase in (Phase.DAY_VOTE, Phase.DAY_RESOLVE)
    return dataclasses.replace(
        state,
        phase=phase,
        current_speaker_seat=None if clear_speaker else state.current_speaker_seat,
    )


# ============================================================================
# MESSAGE LOG
# ============================================================================

_SEAT_MENTION = re.compile(
    r"(?:@|#|\bseat\s*#?|\bplayer\s*#?|\bno\.\s*)(?P<num>\d+)|(?P<cjk>\d+)\s*号",
    re.IGNORECASE,
)


# Rewrites references to seats outside [1, total_seats] so nobody can later read them as a target
def sanitize_seat_mentions(text: str, total_seats: int) -> str:
    if not text or total_seats <= 0:
        return text

    def replace(match):
        digits = (match.group("num") or match.group("cjk")).lstrip("0")
        # Very long digit runs are out of range without converting them
        if digits and len(digits) <= 3 and int(digits) <= total_seats:
            return match.group(0)
        return INVALID_SEAT_MARKER

    return _SEAT_MENTION.sub(replace, text)


def add_system_message(state: GameState, content: str) -> GameState:
    message = ChatMessage(
        id=str(uuid.uuid4()),
        player_id="system",
        player_name=MODERATOR,
        content=content,
        day=state.day,
        phase=state.phase,
        timestamp=time.time(),
        is_system=True,
    )
    return dataclasses.replace(state, messages=state.messages + (message,))


def add_player_message(state: GameState, player_id: str, content: str,
                       is_last_words: Optional[bool] = None) -> GameState:
    player = state.player_by_id(player_id)
    if player is None:
        return state
    content = sanitize_seat_mentions((content or "").strip(), len(state.players))
    if not content:
        return state
    if is_last_words is None:
        is_last_words = state.phase == Phase.DAY_LAST_WORDS

    # Identical message from the same player in the same day and phase is a replay
    for message in state.messages[-20:]:
        if (message.player_id == player_id and message.day == state.day
                and message.phase == state.phase and message.content == content
                and message.is_last_words == is_last_words):
            logging.warning("Duplicate message from %s dropped", player.label)
            return state

    message = ChatMessage(
        id=str(uuid.uuid4()),
        player_id=player_id,
        player_name=player.display_name,
        content=content,
        day=state.day,
        phase=state.phase,
        timestamp=time.time(),
        is_last_words=is_last_words,
    )
    return dataclasses.replace(state, messages=state.messages + (message,))


# ============================================================================
# SPEECH ROTATION
# ============================================================================

def next_alive_seat(state: GameState, current: int, exclude_sheriff=False,
                    direction=SpeechDirection.CLOCKWISE) -> Optional[int]:
    """Nearest alive seat strictly after (or before) `current`, wrapping around.

    Ordering is by seat index, so eliminated seats never leave gaps and
    `current` itself need not be alive.
    """
    seats = state.alive_seats()
    if exclude_sheriff and state.badge.holder_seat is not None:
        seats = [s for s in seats if s != state.badge.holder_seat]
    if not seats:
        return None
    if direction == SpeechDirection.COUNTERCLOCKWISE:
        before = [s for s in seats if s < current]
        return before[-1] if before else seats[-1]
    after = [s for s in seats if s > current]
    return after[0] if after else seats[0]


# Full speaking order from `start_seat`, with the sheriff moved to the end
def speaking_order(state: GameState, start_seat: int, sheriff_last=True,
                   direction=SpeechDirection.CLOCKWISE) -> List[int]:
    seats = state.alive_seats()
    if not seats:
        return []
    if direction == SpeechDirection.COUNTERCLOCKWISE:
        seats = list(reversed(seats))
    if start_seat in seats:
        index = seats.index(start_seat)
        seats = seats[index:] + seats[:index]

    sheriff_seat = state.badge.holder_seat
    if sheriff_last and sheriff_seat in seats:
        seats = [s for s in seats if s != sheriff_seat] + [sheriff_seat]
    return seats


# Speech starts after the sheriff, else after the most recent death, else at the lowest seat
def resolve_speech_start_seat(state: GameState, dead_seat: Optional[int] = None) -> Optional[int]:
    seats = state.alive_seats()
    if not seats:
        return None
    sheriff = state.sheriff()
    if sheriff is not None and sheriff.alive:
        return next_alive_seat(state, sheriff.seat, exclude_sheriff=True)
    if dead_seat is not None:
        return next_alive_seat(state, dead_seat)
    return seats[0]


# Goes the way that reaches the sheriff last; clockwise when there is no choice to make
def resolve_speech_direction(state: GameState, start_seat: Optional[int]) -> SpeechDirection:
    seats = state.alive_seats()
    sheriff_seat = state.badge.holder_seat
    if start_seat not in seats or sheriff_seat not in seats or start_seat == sheriff_seat:
        return SpeechDirection.CLOCKWISE
    total = len(seats)
    start, sheriff = seats.index(start_seat), seats.index(sheriff_seat)
    clockwise_steps = (sheriff - start) % total
    counter_steps = (start - sheriff) % total
    if clockwise_steps >= counter_steps:
        return SpeechDirection.CLOCKWISE
    return SpeechDirection.COUNTERCLOCKWISE


# ============================================================================
# VOTE TALLY
# ============================================================================

@dataclasses.dataclass(frozen=True)
class VoteTally:
    totals: Dict[int, float]
    winner: Optional[int]  # None when nobody voted or the top is tied
    leaders: Tuple[int, ...] = ()

    @property
    def is_tie(self):
        return len(self.leaders) > 1


def tally_votes(state: GameState, votes: Mapping[str, int], weighted=True,
                candidates: Sequence[int] = ()) -> VoteTally:
    """Counts votes of alive voters for alive targets.

    With `weighted`, an alive sheriff's vote is worth SHERIFF_VOTE_WEIGHT.
    A unique maximum wins; a tie at the maximum eliminates nobody.
    """
    alive_ids = {p.player_id for p in state.alive_players()}
    alive_seats = set(state.alive_seats())
    allowed = set(candidates)
    sheriff = state.sheriff()
    sheriff_id = sheriff.player_id if weighted and sheriff is not None and sheriff.alive else None

    totals: Dict[int, float] = {}
    for voter_id, seat in votes.items():
        if voter_id not in alive_ids or seat not in alive_seats:
            continue
        if allowed and seat not in allowed:
            continue
        weight = SHERIFF_VOTE_WEIGHT if voter_id == sheriff_id else 1
        totals[seat] = totals.get(seat, 0) + weight

    if not totals:
        return VoteTally(totals={}, winner=None)
    best = max(totals.values())
    leaders = tuple(sorted(seat for seat, total in totals.items() if total == best))
    return VoteTally(totals=totals, winner=leaders[0] if len(leaders) == 1 else None, leaders=leaders)


# Execution vote: sheriff-weighted, restricted to the runoff targets if there are any
def tally_day_votes(state: GameState) -> VoteTally:
    return tally_votes(state, state.votes, weighted=True, candidates=state.pk_targets)


# Badge election: every vote counts 1, only candidates can receive votes
def tally_badge_votes(state: GameState) -> VoteTally:
    return tally_votes(state, state.badge.votes, weighted=False, candidates=state.badge.candidates)


def record_day_votes(state: GameState, votes: Mapping[str, int]) -> GameState:
    votes = dict(votes)
    return dataclasses.replace(
        state,
        votes=votes,
        vote_history={**state.vote_history, state.day: votes},
    )


def aggregate_wolf_votes(state: GameState, wolf_votes: Mapping[str, int]) -> Optional[int]:
    """Turns individual wolf submissions into the team's kill target.

    Plurality over alive targets. On a tie the lowest-seated alive wolf
    who backed one of the leading targets decides; failing that, the
    lowest leading seat.
    """
    counts = collections.Counter(seat for seat in wolf_votes.values() if state.is_alive(seat))
    if not counts:
        return None
    best = max(counts.values())
    leaders = sorted(seat for seat, count in counts.items() if count == best)
    if len(leaders) == 1:
        return leaders[0]
    for wolf in sorted(state.alive_with_role(Role.WEREWOLF), key=lambda p: p.seat):
        choice = wolf_votes.get(wolf.player_id)
        if choice in leaders:
            return choice
    return leaders[0]


# ============================================================================
# ELIMINATION AND WIN CONDITION
# ============================================================================

# Marks exactly one seat dead; chained effects are the caller's job
def kill_player(state: GameState, seat: int) -> GameState:
    return dataclasses.replace(
        state,
        players=tuple(
            dataclasses.replace(p, alive=False) if p.seat == seat else p
            for p in state.players
        ),
    )


def check_win_condition(state: GameState) -> Optional[Alignment]:
    alive = state.alive_players()
    wolves = sum(1 for p in alive if p.alignment == Alignment.WOLF)
    others = len(alive) - wolves
    if wolves == 0:
        return Alignment.VILLAGE
    if wolves >= others:
        return Alignment.WOLF
    return None


# Re-evaluates the winner after anything that can shrink the alive set
def apply_win_check(state: GameState) -> GameState:
    winner = check_win_condition(state)
    if winner is None:
        return state
    state = dataclasses.replace(state, winner=winner)
    state = transition_phase(state, Phase.GAME_END)
    side = "Villagers" if winner == Alignment.VILLAGE else "Werewolves"
    return add_system_message(state, f"The game is over. The {side} win!")


# ============================================================================
# NIGHT
# ============================================================================

# Opens a new night: the day counter advances and per-night choices reset
def start_night(state: GameState) -> GameState:
    previous = state.night_actions
    state = dataclasses.replace(
        state,
        day=state.day + 1,
        votes={},
        pk_targets=(),
        night_actions=dataclasses.replace(
            previous,
            guard_target=None,
            wolf_votes={},
            wolf_target=None,
            witch_save=False,
            witch_poison=None,
            seer_target=None,
            pending_wolf_victim=None,
            pending_poison_victim=None,
        ),
    )
    return transition_phase(state, Phase.NIGHT_START)


def set_guard_target(state: GameState, seat: int) -> GameState:
    return dataclasses.replace(
        state, night_actions=dataclasses.replace(state.night_actions, guard_target=seat)
    )


def set_wolf_votes(state: GameState, wolf_votes: Mapping[str, int], target: Optional[int]) -> GameState:
    return dataclasses.replace(
        state,
        night_actions=dataclasses.replace(
            state.night_actions, wolf_votes=dict(wolf_votes), wolf_target=target
        ),
    )


def apply_witch_action(state: GameState, action: WitchAction) -> GameState:
    if action.choice == WitchChoice.SAVE:
        return dataclasses.replace(
            state,
            night_actions=dataclasses.replace(state.night_actions, witch_save=True),
            role_abilities=dataclasses.replace(state.role_abilities, witch_heal_used=True),
        )
    if action.choice == WitchChoice.POISON:
        return dataclasses.replace(
            state,
            night_actions=dataclasses.replace(state.night_actions, witch_poison=action.target),
            role_abilities=dataclasses.replace(state.role_abilities, witch_poison_used=True),
        )
    return state


def record_seer_check(state: GameState, target_seat: int) -> Tuple[GameState, SeerCheck]:
    target = state.player_by_seat(target_seat)
    check = SeerCheck(day=state.day, target_seat=target_seat, is_wolf=target.is_wolf)
    night_actions = dataclasses.replace(
        state.night_actions,
        seer_target=target_seat,
        seer_history=state.night_actions.seer_history + (check,),
    )
    return dataclasses.replace(state, night_actions=night_actions), check


def resolve_night(state: GameState) -> GameState:
    """Works out who dies tonight without revealing it yet.

    The wolf kill fails when the target was guarded or saved, but not
    both: guard and antidote on the same seat cancel out and the target
    still dies. The guard's target becomes next night's forbidden seat.
    """
    state = transition_phase(state, Phase.NIGHT_RESOLVE)
    actions = state.night_actions

    wolf_victim = None
    if actions.wolf_target is not None:
        guarded = actions.guard_target == actions.wolf_target
        if guarded == actions.witch_save:
            wolf_victim = actions.wolf_target

    history = {
        "guard_target": actions.guard_target,
        "wolf_target": actions.wolf_target,
        "witch_save": actions.witch_save,
        "witch_poison": actions.witch_poison,
        "seer_target": actions.seer_target,
    }
    return dataclasses.replace(
        state,
        night_actions=dataclasses.replace(
            actions,
            last_guard_target=actions.guard_target,
            pending_wolf_victim=wolf_victim,
            pending_poison_victim=actions.witch_poison,
        ),
        night_history={**state.night_history, state.day: history},
    )


# Kills the pending night victims. Returns the new state and (seat, cause) pairs in order.
def apply_night_deaths(state: GameState) -> Tuple[GameState, List[Tuple[int, str]]]:
    actions = state.night_actions
    deaths: Dict[int, str] = {}
    if actions.pending_wolf_victim is not None and state.is_alive(actions.pending_wolf_victim):
        deaths[actions.pending_wolf_victim] = "wolf"
    if actions.pending_poison_victim is not None:
        victim = state.player_by_seat(actions.pending_poison_victim)
        if victim is not None and (victim.alive or victim.seat in deaths):
            deaths[victim.seat] = "poison"
            if victim.role == Role.HUNTER:
                state = disable_hunter(state)

    for seat in deaths:
        state = kill_player(state, seat)

    history = dict(state.night_history.get(state.day, {}))
    history["deaths"] = [{"seat": seat, "reason": cause} for seat, cause in deaths.items()]
    state = dataclasses.replace(
        state,
        night_actions=dataclasses.replace(
            state.night_actions, pending_wolf_victim=None, pending_poison_victim=None
        ),
        night_history={**state.night_history, state.day: history},
    )
    return state, list(deaths.items())


# ============================================================================
# BADGE AND DAY RECORDS
# ============================================================================

def record_badge_signup(state: GameState, signup: Mapping[str, bool]) -> GameState:
    candidates = tuple(sorted(
        p.seat for p in state.alive_players() if signup.get(p.player_id)
    ))
    badge = dataclasses.replace(state.badge, signup=dict(signup), candidates=candidates, votes={})
    return dataclasses.replace(state, badge=badge)


def record_badge_votes(state: GameState, votes: Mapping[str, int]) -> GameState:
    votes = dict(votes)
    badge = dataclasses.replace(
        state.badge,
        votes=votes,
        history={**state.badge.history, state.day: votes},
    )
    return dataclasses.replace(state, badge=badge)


# Narrows a tied badge election to the leading candidates for a runoff
def start_badge_runoff(state: GameState, leaders: Sequence[int]) -> GameState:
    badge = dataclasses.replace(
        state.badge,
        candidates=tuple(sorted(leaders)),
        votes={},
        revote_count=state.badge.revote_count + 1,
    )
    return dataclasses.replace(state, badge=badge)


def set_badge_holder(state: GameState, seat: Optional[int]) -> GameState:
    return dataclasses.replace(state, badge=dataclasses.replace(state.badge, holder_seat=seat))


def disable_hunter(state: GameState) -> GameState:
    return dataclasses.replace(
        state, role_abilities=dataclasses.replace(state.role_abilities, hunter_can_shoot=False)
    )


def record_day_event(state: GameState, **event) -> GameState:
    entry = {**state.day_history.get(state.day, {}), **event}
    return dataclasses.replace(state, day_history={**state.day_history, state.day: entry})


def record_daily_summary(state: GameState, day: int, bullets: Sequence[str]) -> GameState:
    existing = state.daily_summaries.get(day, ())
    return dataclasses.replace(
        state, daily_summaries={**state.daily_summaries, day: existing + tuple(bullets)}
    )
