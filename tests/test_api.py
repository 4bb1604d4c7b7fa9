# tests/test_api.py
DAY = "2026-03-15"


def flight(fid, dep, arr, aircraft="F-OSBC", **extra):
    data = {
        "id": fid,
        "flight_number": f"SB{fid}",
        "aircraft": aircraft,
        "departure_time": f"{DAY}T{dep}:00Z",
        "arrival_time": f"{DAY}T{arr}:00Z",
    }
    data.update(extra)
    return data


OSBC_ROTATION = [flight("1", "06:30", "06:55"), flight("2", "07:00", "07:25")]
FLEET = [{"registration": "F-OSBC"}, {"registration": "F-OSBD"}]


def test_root(client):
    resp = client.get("/")
    assert resp.status_code == 200
    data = resp.json()
    assert data["message"] == "Feasibility Engine Ready!"
    assert data["ruleset_version"] == "2026.1"


def test_conflicts_endpoint(client):
    resp = client.post("/conflicts", json={"flights": OSBC_ROTATION, "fleet": FLEET})
    assert resp.status_code == 200
    data = resp.json()
    assert data["critical_count"] == 1
    assert len(data["conflicts"]) == 1
    c = data["conflicts"][0]
    assert c["type"] == "turnaround"
    assert c["severity"] == "critical"
    assert [s["action"] for s in c["suggestions"]] == ["swap_aircraft", "delay_flight"]
    assert c["suggestions"][0]["payload"]["new_aircraft_registration"] == "F-OSBD"
    assert list(data["index"]) == ["2"]


def test_conflicts_with_rules_override(client):
    rules = {"min_turnaround_minutes": 5, "buffer_minutes": 0}
    resp = client.post("/conflicts", json={"flights": OSBC_ROTATION, "fleet": FLEET, "rules": rules})
    assert resp.status_code == 200
    assert resp.json()["conflicts"] == []


def test_conflicts_tolerates_bad_timestamps(client):
    flights = OSBC_ROTATION + [{"id": "3", "aircraft": "F-OSBC", "departure_time": "soon", "arrival_time": None}]
    resp = client.post("/conflicts", json={"flights": flights, "fleet": FLEET})
    assert resp.status_code == 200
    assert resp.json()["critical_count"] == 1


def test_heatmap_endpoint(client):
    resp = client.post("/conflicts/heatmap", json={"flights": OSBC_ROTATION, "fleet": FLEET, "start_hour": 6, "end_hour": 8})
    assert resp.status_code == 200
    cells = resp.json()
    assert len(cells) == 4
    first = cells[0]
    assert first["aircraft"] == "F-OSBC" and first["hour"] == 6
    assert abs(first["load"] - 25 / 60) < 1e-9

    resp = client.post("/conflicts/heatmap", json={"flights": [], "fleet": FLEET, "start_hour": 9, "end_hour": 9})
    assert resp.status_code == 422


def test_ftl_endpoint(client):
    resp = client.post("/ftl", json={"logs": [], "flight_date": DAY, "new_flight_minutes": 481})
    assert resp.status_code == 200
    data = resp.json()
    assert data["compliant"] is False
    assert data["risk_level"] == "violation"
    assert data["counters_hhmm"]["flight_today"] == "08:01"

    resp = client.post("/ftl", json={"flight_date": "someday"})
    assert resp.status_code == 422


def test_crew_validate_endpoint(client):
    payload = {
        "member": {"id": "C1", "name": "A. Martin"},
        "qualifications": {
            "medical_expiry": "2026-12-01",
            "license_expiry": "2027-01-01",
            "last_sim_check": "2026-02-01",
            "type_ratings": ["ATR72"],
        },
        "ftl_logs": [],
        "flight": flight("1", "08:00", "09:30", aircraft_type="ATR72"),
    }
    resp = client.post("/crew/validate", json=payload)
    assert resp.status_code == 200
    assert resp.json() == {"valid": True, "blockers": [], "warnings": []}

    payload.pop("member")
    resp = client.post("/crew/validate", json=payload)
    assert resp.json()["blockers"] == ["Crew member not found"]


def test_planning_workflow_endpoints(client):
    resp = client.post("/planning/lock", json={"user": "ops.lead"})
    assert resp.status_code == 200
    locked = resp.json()
    assert locked["state"] == "locked"

    # a critical conflict in the plan blocks validation
    resp = client.post("/planning/validate", json={
        "rules": locked["rules"], "user": "chief.pilot", "flights": OSBC_ROTATION, "fleet": FLEET,
    })
    assert resp.status_code == 409
    assert resp.json()["detail"]["state"] == "locked"

    resp = client.post("/planning/validate", json={"rules": locked["rules"], "user": "chief.pilot"})
    assert resp.status_code == 200
    assert resp.json()["state"] == "validated"

    resp = client.post("/planning/unlock", json={"rules": locked["rules"]})
    assert resp.json()["state"] == "editable"

    assert client.post("/planning/unlock", json={}).status_code == 409
    assert client.post("/planning/publish", json={}).status_code == 404
