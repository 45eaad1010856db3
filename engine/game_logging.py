import dataclasses
import datetime
import json
import os
import threading
import time
import uuid
from typing import Any, Dict, List, Optional

from absl import logging

from engine.state import to_dict
from utils import Deserializable


# Creates a timestamped directory path for saving game logs
def log_directory():
    pacific_timezone = datetime.timezone(datetime.timedelta(hours=-8))
    timestamp = datetime.datetime.now(pacific_timezone).strftime("%Y-%m-%d_%H-%M-%S")
    session_id = f"session_{timestamp}"
    directory = f"{os.getcwd()}/output_metrics/logs/{session_id}"
    return directory


# ============================================================================
# AUDIT RECORDS
# ============================================================================

# One elicited decision: what was asked, what came back, and what the engine used
@dataclasses.dataclass
class AuditRecord(Deserializable):
    kind: str
    player_id: str
    seat: int
    outcome: str
    game_id: str = ""
    day: int = 0
    phase: str = ""
    model: Optional[str] = None
    prompt: str = ""
    context: Dict[str, Any] = dataclasses.field(default_factory=dict)
    raw_response: Optional[str] = None
    parsed: Any = None
    final: Any = None
    error: Optional[str] = None
    attempts: int = 0
    duration: float = 0.0
    id: str = dataclasses.field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: float = dataclasses.field(default_factory=time.time)

    def to_dict(self):
        return to_dict(self)

    @classmethod
    def from_json(cls, data: Dict[Any, Any]):
        return cls(**data)


# ============================================================================
# AUDIT SINKS
# ============================================================================

class MemoryAuditSink:
    """Keeps records in a list. Used by tests and by eval runs."""

    def __init__(self):
        self.records: List[AuditRecord] = []
        self._lock = threading.Lock()

    def write(self, record: AuditRecord):
        with self._lock:
            self.records.append(record)

    def by_kind(self, kind) -> List[AuditRecord]:
        return [r for r in self.records if r.kind == kind]


# Appends one JSON line per record. A failed write is logged; the game goes on.
class JsonlAuditSink:
    def __init__(self, directory, filename="audit.jsonl"):
        self.path = os.path.join(directory, filename)
        self._lock = threading.Lock()
        os.makedirs(directory, exist_ok=True)

    def write(self, record: AuditRecord):
        try:
            line = json.dumps(record.to_dict())
            with self._lock, open(self.path, "a") as file:
                file.write(line + "\n")
        except (OSError, TypeError, ValueError) as e:
            logging.warning("Could not write audit record %s: %s", record.id, e)


# Load audit records written by a JsonlAuditSink
def load_audit_log(path) -> List[AuditRecord]:
    if os.path.isdir(path):
        path = os.path.join(path, "audit.jsonl")
    records = []
    with open(path, "r") as file:
        for line in file:
            line = line.strip()
            if line:
                records.append(AuditRecord.from_json(json.loads(line)))
    return records


# Save the final state of a game next to its audit log
def save_game(state, directory):
    os.makedirs(directory, exist_ok=True)
    game_file = f"{directory}/game_complete.json" if state.winner else f"{directory}/game_partial.json"
    with open(game_file, "w") as file:
        json.dump(state.to_dict(), file, indent=4)
    return game_file
