import abc
import dataclasses
import random
import time
from typing import Any, Dict, Mapping, Optional, Tuple, Union

import jinja2
from absl import logging

import apis
from engine.config import BACKOFF_JITTER, BACKOFF_SECONDS, RETRIES


# ============================================================================
# DECISION REQUESTS AND SOURCES
# ============================================================================

# Everything a decision source needs to answer for one seat
@dataclasses.dataclass(frozen=True)
class DecisionRequest:
    kind: str
    player_id: str
    seat: int
    prompt: str
    question: str = ""  # short form of the prompt for people
    options: Tuple[str, ...] = ()
    response_schema: Dict[str, Any] = dataclasses.field(default_factory=dict)
    model: Optional[str] = None
    temperature: float = 1.0


# Raised by a source whose decision was withdrawn (e.g. a human typed skip)
class DecisionCancelled(Exception):
    pass


# Raised once every attempt of a request has failed; wraps the last error
class RetriesExhausted(Exception):
    def __init__(self, error, attempts):
        super().__init__(str(error))
        self.error = error
        self.attempts = attempts


class DecisionSource(abc.ABC):

    @abc.abstractmethod
    def respond(self, request: DecisionRequest) -> Union[str, Mapping[str, Any]]:
        """Returns the raw answer, text or an already structured mapping, or raises on failure."""


# Answers with an LLM served by Ollama
class ModelSource(DecisionSource):
    def __init__(self, model=None):
        self.model = model

    def respond(self, request):
        return apis.generate(
            model=self.model or request.model,
            prompt=request.prompt,
            response_schema=request.response_schema,
            temperature=request.temperature,
        )

    def __repr__(self):
        return f"ModelSource({self.model!r})"


# ============================================================================
# PROMPT FORMATTING
# ============================================================================

# Renders a Jinja2 template with game state to create the final prompt
def format_prompt(prompt_template, worldstate):
    return jinja2.Template(prompt_template).render(worldstate)


# ============================================================================
# REQUEST WITH RETRY
# ============================================================================

def backoff_delay(attempt, rng=random):
    return BACKOFF_SECONDS * (2 ** attempt) + rng.uniform(0, BACKOFF_JITTER)


def request_with_retry(source: DecisionSource, request: DecisionRequest,
                       retries=RETRIES) -> Tuple[str, int]:
    """Asks `source` until it answers, with exponential backoff in between.

    Returns the raw answer and the number of attempts it took. A
    cancellation is never retried; once all attempts are used up the last
    transport error is raised inside a RetriesExhausted carrying the count.
    """
    last_error = None
    for attempt in range(retries):
        try:
            return source.respond(request), attempt + 1
        except DecisionCancelled:
            raise
        except Exception as e:
            last_error = e
            logging.warning("Seat %d %s attempt %d failed: %s",
                            request.seat + 1, request.kind, attempt + 1, e)
        if attempt < retries - 1:
            time.sleep(backoff_delay(attempt))
            # Increase temperature for next retry to get more diverse outputs
            request = dataclasses.replace(request, temperature=min(1.0, request.temperature + 0.2))
    raise RetriesExhausted(last_error, retries) from last_error
