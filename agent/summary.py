import re
import time
from typing import List

from absl import logging

import utils
from agent.lm import DecisionRequest, format_prompt, request_with_retry
from agent.prompts import SUMMARY, SUMMARY_SCHEMA
from agent.view import format_message
from engine.config import (
    MAX_SUMMARY_BULLETS,
    MIN_SUMMARY_BULLETS,
    SUMMARY_MODEL,
    SUMMARY_TEMPERATURE,
    TRANSCRIPT_LIMIT,
)
from engine.game_logging import AuditRecord

_BULLET_MARKER = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s*")


# The current day's messages as transcript lines, truncated to the limit
def day_transcript(state, day=None, limit=TRANSCRIPT_LIMIT) -> str:
    day = state.day if day is None else day
    lines = [format_message(state, m) for m in state.messages if m.day == day]
    transcript = "\n".join(lines)
    if len(transcript) > limit:
        transcript = transcript[:limit] + "\n[transcript truncated]"
    return transcript


def parse_bullets(raw) -> List[str]:
    """Reads bullets from a summary response.

    Prefers {"bullets": [...]}, then {"summary": "..."}, then splits the
    raw text into lines with list markers removed.
    """
    if not raw:
        return []
    result = utils.parse_json(raw) or {}
    text = utils.strip_code_fences(raw)
    if isinstance(result.get("bullets"), list):
        lines = [str(b) for b in result["bullets"]]
    elif isinstance(result.get("summary"), str):
        lines = result["summary"].splitlines()
    elif text.lstrip().startswith("{"):
        lines = []
    else:
        lines = text.splitlines()
    bullets = [_BULLET_MARKER.sub("", line).strip() for line in lines]
    return [b for b in bullets if b][:MAX_SUMMARY_BULLETS]


def summarize_day(state, source, sink=None, day=None) -> List[str]:
    """Compresses one day into bullets. Never raises; failures give []."""
    day = state.day if day is None else day
    transcript = day_transcript(state, day)
    if not transcript:
        return []
    request = DecisionRequest(
        kind="summary",
        player_id="system",
        seat=-1,
        prompt=format_prompt(SUMMARY, {
            "num_players": len(state.players),
            "day": day,
            "transcript": transcript,
            "min_bullets": MIN_SUMMARY_BULLETS,
            "max_bullets": MAX_SUMMARY_BULLETS,
        }),
        response_schema=SUMMARY_SCHEMA,
        model=SUMMARY_MODEL,
        temperature=SUMMARY_TEMPERATURE,
    )

    started = time.time()
    raw, bullets, error, attempts = None, [], None, 0
    try:
        raw, attempts = request_with_retry(source, request)
        bullets = parse_bullets(raw)
    except Exception as e:
        error = str(e)
        attempts = getattr(e, "attempts", attempts)
        logging.warning("Summary for day %d failed: %s", day, e)

    if sink is not None:
        try:
            sink.write(AuditRecord(
                kind="summary",
                player_id="system",
                seat=-1,
                outcome="ok" if bullets else ("error" if error else "parse_failure"),
                game_id=state.game_id,
                day=day,
                phase=state.phase.value,
                model=request.model,
                prompt=request.prompt,
                raw_response=raw,
                parsed=bullets,
                final=bullets,
                error=error,
                attempts=attempts,
                duration=time.time() - started,
            ))
        except Exception as e:
            logging.warning("Audit sink failed for summary: %s", e)
    return bullets
