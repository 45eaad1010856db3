import time

from absl import logging

import utils
from agent.lm import DecisionCancelled, DecisionRequest, format_prompt, request_with_retry
from agent.prompts import SPEECH, SPEECH_SCHEMA
from agent.view import game_view
from engine.config import SPEECH_TEMPERATURE
from engine.game_logging import AuditRecord

OCCASIONS = ("discussion", "badge_speech", "pk_speech", "last_words")


# Raised when a seat produces no usable speech; the caller skips the speaker
class SpeechError(Exception):
    pass


def generate_speech(state, player, source, sink=None, occasion="discussion") -> str:
    """Asks `player` for a public statement.

    Unlike the decision functions there is no fallback: a failed or
    empty speech raises SpeechError and the turn is skipped.
    """
    if occasion not in OCCASIONS:
        raise ValueError(f"Unknown speech occasion {occasion}")
    request = DecisionRequest(
        kind="speech",
        player_id=player.player_id,
        seat=player.seat,
        prompt=format_prompt(SPEECH, {**game_view(state, player), "occasion": occasion}),
        question="Your turn to speak" if occasion != "last_words" else "Your last words",
        response_schema=SPEECH_SCHEMA,
        model=player.agent_profile.model if player.agent_profile else None,
        temperature=SPEECH_TEMPERATURE,
    )

    started = time.time()
    raw, speech, error, attempts = None, "", None, 0
    try:
        raw, attempts = request_with_retry(source, request)
        result = utils.parse_json(raw)
        if result is not None and isinstance(result.get("say"), str):
            speech = result["say"].strip()
        else:
            # Plain prose is the speech; an object without "say" is not
            text = utils.strip_code_fences(raw).strip()
            speech = "" if text.startswith("{") else text
        outcome = "ok" if speech else "parse_failure"
    except DecisionCancelled as e:
        outcome, error = "cancelled", str(e) or None
    except Exception as e:
        outcome, error = "error", str(e)
        attempts = getattr(e, "attempts", attempts)

    if sink is not None:
        try:
            sink.write(AuditRecord(
                kind="speech",
                player_id=player.player_id,
                seat=player.seat,
                outcome=outcome,
                game_id=state.game_id,
                day=state.day,
                phase=state.phase.value,
                model=request.model,
                prompt=request.prompt,
                context={"occasion": occasion},
                raw_response=raw,
                parsed=speech or None,
                final=speech or None,
                error=error,
                attempts=attempts,
                duration=time.time() - started,
            ))
        except Exception as e:
            logging.warning("Audit sink failed for speech: %s", e)

    if not speech:
        raise SpeechError(f"{player.label} gave no speech ({outcome}): {error or raw!r}")
    return speech
