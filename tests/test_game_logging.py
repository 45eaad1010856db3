import json
import os

from engine import game_logging
from engine.game_logging import AuditRecord, JsonlAuditSink, MemoryAuditSink
from engine.state import Alignment, Phase


def _record(**kwargs):
    fields = dict(kind="vote", player_id="p0", seat=0, outcome="ok", parsed=3, final=3)
    fields.update(kwargs)
    return AuditRecord(**fields)


def test_jsonl_sink_round_trips(tmp_path):
    sink = JsonlAuditSink(str(tmp_path / "logs"))
    first = _record(context={"options": ["Seat 4 (Player3)"]})
    second = _record(kind="witch", outcome="pass", parsed={"choice": "pass", "target": None})
    sink.write(first)
    sink.write(second)

    records = game_logging.load_audit_log(str(tmp_path / "logs"))
    assert [r.id for r in records] == [first.id, second.id]
    assert records[0].context == {"options": ["Seat 4 (Player3)"]}
    assert records[1].parsed == {"choice": "pass", "target": None}


def test_unserializable_record_is_skipped(tmp_path):
    sink = JsonlAuditSink(str(tmp_path))
    sink.write(_record(context={(1, 2): "tuple keys are not JSON"}))
    sink.write(_record())
    assert len(game_logging.load_audit_log(sink.path)) == 1


def test_memory_sink_filters_by_kind():
    sink = MemoryAuditSink()
    sink.write(_record())
    sink.write(_record(kind="guard"))
    assert [r.kind for r in sink.by_kind("guard")] == ["guard"]


def test_save_game_names_the_file_by_outcome(make_state, tmp_path):
    partial = make_state(phase=Phase.DAY_VOTE)
    path = game_logging.save_game(partial, str(tmp_path))
    assert os.path.basename(path) == "game_partial.json"

    finished = make_state(phase=Phase.GAME_END, winner=Alignment.VILLAGE)
    path = game_logging.save_game(finished, str(tmp_path))
    assert os.path.basename(path) == "game_complete.json"
    with open(path) as file:
        data = json.load(file)
    assert data["winner"] == "village"
    assert data["players"][0]["role"] == "Werewolf"
    assert data["players"][0]["alignment"] == "wolf"


def test_log_directory_is_under_output_metrics():
    assert "/output_metrics/logs/session_" in game_logging.log_directory()
