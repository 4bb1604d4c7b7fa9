# tests/test_rule_loader.py
import json

from feasibility.load_rules import RULES_DIR, deep_merge_with_array_concat, load_rules_from_folder
from feasibility.models import DEFAULT_RULES, FTL_LIMITS
from feasibility.validate_rules import main as validate_main


def write(folder, name, data):
    p = folder / name
    p.write_text(data if isinstance(data, str) else json.dumps(data), encoding="utf-8")
    return p


def test_bundled_rules_load_clean():
    ruleset, invalid = load_rules_from_folder(RULES_DIR)
    assert invalid == []
    assert ruleset.planning_rules == DEFAULT_RULES
    assert ruleset.ftl_limits == FTL_LIMITS
    assert ruleset.meta["source_files"] == ["ftl_limits.json", "planning_rules.json"]
    assert len(ruleset.meta["ruleset_hash_sha256"]) == 64
    assert ruleset.version == "2026.1"


def test_later_file_overrides_earlier(tmp_path):
    write(tmp_path, "a_base.json", {"planning_rules": {"min_turnaround_minutes": 20, "buffer_minutes": 5}})
    write(tmp_path, "z_site.json", {"planning_rules": {"min_turnaround_minutes": 30}})
    ruleset, invalid = load_rules_from_folder(tmp_path)
    assert invalid == []
    assert ruleset.planning_rules.min_turnaround_minutes == 30
    assert ruleset.planning_rules.buffer_minutes == 5


def test_bad_files_are_reported_and_skipped(tmp_path):
    write(tmp_path, "a_broken.json", "{ not json")
    write(tmp_path, "b_invalid.json", {"ftl_limits": {"max_flight_hours_per_day": -1}})
    write(tmp_path, "c_list.json", [1, 2])
    write(tmp_path, "d_good.json", {"planning_rules": {"max_daily_cycles": 6}})
    ruleset, invalid = load_rules_from_folder(tmp_path)
    assert {r["file"] for r in invalid} == {"a_broken.json", "b_invalid.json", "c_list.json"}
    assert ruleset.planning_rules.max_daily_cycles == 6
    assert ruleset.ftl_limits == FTL_LIMITS


def test_missing_folder_gives_defaults(tmp_path):
    ruleset, invalid = load_rules_from_folder(tmp_path / "nope")
    assert invalid == []
    assert ruleset.planning_rules == DEFAULT_RULES


def test_hash_is_deterministic(tmp_path):
    write(tmp_path, "rules.json", {"planning_rules": {"buffer_minutes": 10}})
    a, _ = load_rules_from_folder(tmp_path)
    b, _ = load_rules_from_folder(tmp_path)
    assert a.meta["ruleset_hash_sha256"] == b.meta["ruleset_hash_sha256"]


def test_deep_merge_concats_lists():
    out = deep_merge_with_array_concat({"a": {"x": 1}, "l": [1, 2]}, {"a": {"y": 2}, "l": [2, 3]})
    assert out == {"a": {"x": 1, "y": 2}, "l": [1, 2, 3]}


def test_validate_rules_cli(tmp_path, capsys):
    assert validate_main([str(RULES_DIR)]) == 0
    write(tmp_path, "bad.json", '{\n  "planning_rules": {\n    "buffer_minutes": 5,\n  }\n}')
    assert validate_main([str(tmp_path)]) == 2
    assert "line" in capsys.readouterr().out
    assert validate_main([str(tmp_path / "missing")]) == 1


def test_get_rules_endpoint(client):
    resp = client.get("/rules")
    assert resp.status_code == 200
    data = resp.json()
    assert data["planning_rules"]["min_turnaround_minutes"] == 20
    assert data["ftl_limits"]["max_flight_hours_7_days"] == 60
    assert data["meta"]["source_files"] == ["ftl_limits.json", "planning_rules.json"]


def test_reload_endpoint(client, tmp_path):
    from feasibility.main import app

    write(tmp_path, "rules.json", {"planning_rules": {"min_turnaround_minutes": 45}})
    app.state.rules_dir = tmp_path
    resp = client.post("/rules/reload")
    assert resp.status_code == 200
    assert resp.json()["invalid"] == []
    assert client.get("/rules").json()["planning_rules"]["min_turnaround_minutes"] == 45
