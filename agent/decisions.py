import enum
import random
import time
from typing import Any, List, Optional

from absl import logging

import utils
from agent.lm import (
    DecisionCancelled, DecisionRequest, DecisionSource, RetriesExhausted, format_prompt, request_with_retry,
)
from agent.prompts import ACTION_PROMPTS_AND_SCHEMAS
from agent.view import game_view, seat_label
from engine.config import ACTION_TEMPERATURE
from engine.game_logging import AuditRecord
from engine.state import GameState, Player, WitchAction, WitchChoice

# Returned by a policy's parse when the response cannot be read
UNPARSED = object()


class ActionKind(str, enum.Enum):
    VOTE = "vote"
    BADGE_SIGNUP = "badge_signup"
    BADGE_VOTE = "badge_vote"
    BADGE_TRANSFER = "badge_transfer"
    SEER_CHECK = "seer_check"
    WOLF_KILL = "wolf_kill"
    WITCH = "witch"
    GUARD = "guard"
    HUNTER_SHOOT = "hunter_shoot"


class Outcome(str, enum.Enum):
    OK = "ok"
    PASS = "pass"
    PARSE_FAILURE = "parse_failure"
    ILLEGAL = "illegal"
    ERROR = "error"
    CANCELLED = "cancelled"


def _is_pass(raw) -> bool:
    result = utils.parse_json(raw) or {}
    action = result.get("action")
    if isinstance(action, str):
        return action.strip().lower() in ("pass", "skip", "none")
    return utils.strip_code_fences(raw).strip().lower().startswith(("pass", "skip"))


# ============================================================================
# POLICIES
# ============================================================================

class SeatPolicy:
    """Decision over a set of seats.

    Subclasses define the legal seats; parsing and the random fallback
    are shared.
    """
    kind: ActionKind = None
    question = "Choose a seat"

    def options(self, state: GameState, player: Player) -> List[Any]:
        raise NotImplementedError

    def describe(self, state, option) -> str:
        return seat_label(state, option)

    def worldstate(self, state, player, options):
        return {}

    def parse(self, raw, state, player):
        seat = utils.extract_seat(raw)
        return UNPARSED if seat is None else seat

    def is_pass(self, value) -> bool:
        return False

    def fallback(self, options, rng):
        return rng.choice(options) if options else None


def _others_alive(state, player):
    return [seat for seat in state.alive_seats() if seat != player.seat]


class VotePolicy(SeatPolicy):
    kind = ActionKind.VOTE
    question = "Vote to remove a player"

    def options(self, state, player):
        seats = _others_alive(state, player)
        if state.pk_targets:
            seats = [seat for seat in seats if seat in state.pk_targets]
        return seats


class BadgeVotePolicy(SeatPolicy):
    kind = ActionKind.BADGE_VOTE
    question = "Vote for the Sheriff"

    def options(self, state, player):
        return [seat for seat in _others_alive(state, player) if seat in state.badge.candidates]


class BadgeTransferPolicy(SeatPolicy):
    kind = ActionKind.BADGE_TRANSFER
    question = "Hand the Sheriff badge to"

    def options(self, state, player):
        return _others_alive(state, player)


class SeerPolicy(SeatPolicy):
    kind = ActionKind.SEER_CHECK
    question = "Investigate a player"

    def options(self, state, player):
        return _others_alive(state, player)


class WolfKillPolicy(SeatPolicy):
    kind = ActionKind.WOLF_KILL
    question = "Choose who the Werewolves remove tonight"

    def options(self, state, player):
        return [p.seat for p in state.alive_players() if not p.is_wolf]


class GuardPolicy(SeatPolicy):
    kind = ActionKind.GUARD
    question = "Protect a player tonight"

    def options(self, state, player):
        last = state.night_actions.last_guard_target
        return [seat for seat in state.alive_seats() if seat != last]


class HunterPolicy(SeatPolicy):
    """None stands for holding fire."""
    kind = ActionKind.HUNTER_SHOOT
    question = "Shoot a player, or pass"

    def options(self, state, player):
        return [None] + _others_alive(state, player)

    def describe(self, state, option):
        return "pass" if option is None else seat_label(state, option)

    def parse(self, raw, state, player):
        if _is_pass(raw):
            return None
        return super().parse(raw, state, player)

    def is_pass(self, value):
        return value is None

    def fallback(self, options, rng):
        seats = [seat for seat in options if seat is not None]
        return rng.choice(seats) if seats else None


class WitchPolicy(SeatPolicy):
    kind = ActionKind.WITCH
    question = "Save the attacked player, poison someone, or pass"

    def options(self, state, player):
        abilities = state.role_abilities
        target = state.night_actions.wolf_target
        options = [WitchAction(WitchChoice.PASS)]
        if (not abilities.witch_heal_used and target is not None
                and target != player.seat and state.is_alive(target)):
            options.append(WitchAction(WitchChoice.SAVE))
        if not abilities.witch_poison_used:
            options.extend(
                WitchAction(WitchChoice.POISON, seat) for seat in _others_alive(state, player)
            )
        return options

    def describe(self, state, option):
        if option.choice == WitchChoice.POISON:
            return f"poison {option.target + 1} ({seat_label(state, option.target)})"
        return option.choice.value

    def worldstate(self, state, player, options):
        target = state.night_actions.wolf_target
        can_save = any(option.choice == WitchChoice.SAVE for option in options)
        # The attacked seat is only revealed while the antidote can still be used
        return {"wolf_target": seat_label(state, target) if can_save else None}

    def parse(self, raw, state, player):
        result = utils.parse_json(raw) or {}
        action = result.get("action")
        text = action if isinstance(action, str) else utils.strip_code_fences(raw)
        text = text.strip().lower()
        if text.startswith("save"):
            return WitchAction(WitchChoice.SAVE)
        if text.startswith(("pass", "skip", "none")):
            return WitchAction(WitchChoice.PASS)
        if text.startswith("poison"):
            seat = utils.extract_seat(raw)
            if seat is not None:
                return WitchAction(WitchChoice.POISON, seat)
        return UNPARSED

    def is_pass(self, value):
        return value.is_pass

    def fallback(self, options, rng):
        return WitchAction(WitchChoice.PASS)


class SignupPolicy(SeatPolicy):
    kind = ActionKind.BADGE_SIGNUP
    question = "Run for Sheriff? (yes/no)"

    def options(self, state, player):
        return [True, False]

    def describe(self, state, option):
        return "yes" if option else "no"

    def parse(self, raw, state, player):
        result = utils.parse_json(raw) or {}
        value = result.get("signup")
        if isinstance(value, bool):
            return value
        text = value if isinstance(value, str) else utils.strip_code_fences(raw)
        text = text.strip().lower()
        if text.startswith(("yes", "true")):
            return True
        if text.startswith(("no", "false")):
            return False
        return UNPARSED

    def fallback(self, options, rng):
        return False


POLICIES = {
    policy.kind: policy
    for policy in (
        VotePolicy(), BadgeVotePolicy(), BadgeTransferPolicy(), SeerPolicy(),
        WolfKillPolicy(), GuardPolicy(), HunterPolicy(), WitchPolicy(), SignupPolicy(),
    )
}


# ============================================================================
# PIPELINE
# ============================================================================

def _audit(sink, record):
    if sink is None:
        return
    try:
        sink.write(record)
    except Exception as e:
        logging.warning("Audit sink failed for %s: %s", record.kind, e)


def decide(kind: ActionKind, state: GameState, player: Player, source: DecisionSource,
           sink=None, rng=random, notes=""):
    """Elicits one decision and always returns a legal value.

    Runs request -> parse -> validate. Anything other than a legal answer
    (transport error, cancellation, unreadable or illegal response) is
    replaced by the policy's fallback. Every call leaves one audit record.
    """
    policy = POLICIES[ActionKind(kind)]
    options = policy.options(state, player)
    described = tuple(policy.describe(state, option) for option in options)
    template, schema = ACTION_PROMPTS_AND_SCHEMAS[policy.kind.value]
    worldstate = {
        **game_view(state, player),
        **policy.worldstate(state, player, options),
        "options": described,
        "notes": notes,
    }
    request = DecisionRequest(
        kind=policy.kind.value,
        player_id=player.player_id,
        seat=player.seat,
        prompt=format_prompt(template, worldstate),
        question=policy.question,
        options=described,
        response_schema=schema,
        model=player.agent_profile.model if player.agent_profile else None,
        temperature=ACTION_TEMPERATURE,
    )

    started = time.time()
    raw, parsed, error, attempts = None, None, None, 0
    try:
        raw, attempts = request_with_retry(source, request)
    except DecisionCancelled as e:
        outcome, error = Outcome.CANCELLED, str(e) or None
    except RetriesExhausted as e:
        outcome, error, attempts = Outcome.ERROR, str(e), e.attempts
    else:
        try:
            value = policy.parse(raw, state, player)
        except Exception as e:
            value, error = UNPARSED, f"{type(e).__name__}: {e}"
        if value is UNPARSED:
            outcome = Outcome.PARSE_FAILURE
        else:
            parsed = value
            if value not in options:
                outcome = Outcome.ILLEGAL
            elif policy.is_pass(value):
                outcome = Outcome.PASS
            else:
                outcome = Outcome.OK

    if outcome in (Outcome.OK, Outcome.PASS):
        final = parsed
    else:
        final = policy.fallback(options, rng)
        logging.warning("%s for %s by %s, falling back to %r",
                        outcome.value, policy.kind.value, player.label, final)

    _audit(sink, AuditRecord(
        kind=policy.kind.value,
        player_id=player.player_id,
        seat=player.seat,
        outcome=outcome.value,
        game_id=state.game_id,
        day=state.day,
        phase=state.phase.value,
        model=request.model,
        prompt=request.prompt,
        context={"options": list(described), "notes": notes},
        raw_response=raw,
        parsed=_plain(parsed),
        final=_plain(final),
        error=error,
        attempts=attempts,
        duration=time.time() - started,
    ))
    return final


# Audit records hold JSON-friendly values only
def _plain(value):
    if isinstance(value, WitchAction):
        return {"choice": value.choice.value, "target": value.target}
    return value


# ============================================================================
# PUBLIC DECISIONS
# ============================================================================

def vote(state, player, source, sink=None, rng=random, notes="") -> int:
    return decide(ActionKind.VOTE, state, player, source, sink, rng, notes)


def badge_signup(state, player, source, sink=None, rng=random) -> bool:
    return decide(ActionKind.BADGE_SIGNUP, state, player, source, sink, rng)


def badge_vote(state, player, source, sink=None, rng=random, notes="") -> int:
    return decide(ActionKind.BADGE_VOTE, state, player, source, sink, rng, notes)


def badge_transfer(state, player, source, sink=None, rng=random) -> Optional[int]:
    return decide(ActionKind.BADGE_TRANSFER, state, player, source, sink, rng)


def seer_check(state, player, source, sink=None, rng=random) -> int:
    return decide(ActionKind.SEER_CHECK, state, player, source, sink, rng)


# One wolf's submission; the team target comes from rules.aggregate_wolf_votes
def wolf_kill(state, player, source, sink=None, rng=random, notes="") -> int:
    return decide(ActionKind.WOLF_KILL, state, player, source, sink, rng, notes)


def witch_action(state, player, source, sink=None, rng=random) -> WitchAction:
    return decide(ActionKind.WITCH, state, player, source, sink, rng)


def guard_protect(state, player, source, sink=None, rng=random) -> int:
    return decide(ActionKind.GUARD, state, player, source, sink, rng)


# Returns the seat shot, or None when the Hunter holds fire
def hunter_shoot(state, player, source, sink=None, rng=random) -> Optional[int]:
    return decide(ActionKind.HUNTER_SHOOT, state, player, source, sink, rng)
