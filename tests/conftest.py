import random

import pytest
import requests

from agent import lm
from agent.lm import DecisionSource
from engine.game_logging import MemoryAuditSink
from engine.state import AgentProfile, GameState, Phase, Player, Role

TEN_SEATS = [
    "Werewolf", "Werewolf", "Werewolf",
    "Seer", "Witch", "Hunter", "Guard",
    "Villager", "Villager", "Villager",
]


# Answers from a per-kind script; exceptions in the script are raised, callables are called
class ScriptedSource(DecisionSource):
    def __init__(self, default="", **answers):
        self.default = default
        self.answers = {kind: list(values) for kind, values in answers.items()}
        self.requests = []

    def respond(self, request):
        self.requests.append(request)
        queue = self.answers.get(request.kind)
        answer = queue.pop(0) if queue else self.default
        if isinstance(answer, Exception):
            raise answer
        if callable(answer):
            return answer(request)
        return answer


class FailingSource(DecisionSource):
    def __init__(self):
        self.calls = 0

    def respond(self, request):
        self.calls += 1
        raise requests.ConnectionError("model endpoint unreachable")


def build_state(roles=TEN_SEATS, phase=Phase.DAY_VOTE, day=1, dead=(), **kwargs):
    players = tuple(
        Player(
            seat=seat,
            player_id=f"p{seat}",
            display_name=f"Player{seat}",
            role=Role(role),
            alive=seat not in dead,
            agent_profile=AgentProfile(model="test-model"),
        )
        for seat, role in enumerate(roles)
    )
    return GameState(phase=phase, day=day, players=players, **kwargs)


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    monkeypatch.setattr(lm.time, "sleep", lambda seconds: None)


@pytest.fixture
def make_state():
    return build_state


@pytest.fixture
def scripted():
    return ScriptedSource


@pytest.fixture
def failing():
    return FailingSource()


@pytest.fixture
def sink():
    return MemoryAuditSink()


@pytest.fixture
def rng():
    return random.Random(7)
