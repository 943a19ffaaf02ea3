from __future__ import annotations

from fastapi.testclient import TestClient

from wikiline.session import GameSession


def _rect(left: float, top: float, right: float, bottom: float) -> dict[str, float]:
    return {"left": left, "top": top, "right": right, "bottom": bottom}


def test_startup_caches_events_and_shows_intro(client_and_session: tuple[TestClient, GameSession]) -> None:
    client, session = client_and_session

    res = client.get("/game")
    assert res.status_code == 200
    data = res.json()
    assert data["phase"] == "idle"
    assert data["show_intro"] is True
    assert data["slots"] == []
    assert "deck" not in data
    assert "all_events" not in data
    assert len(session.store.state.all_events) == 5


def test_start_and_drop_scores_the_placement(client_and_session: tuple[TestClient, GameSession]) -> None:
    client, _ = client_and_session

    started = client.post("/game/start").json()
    assert started["phase"] == "active"
    assert [s["year"] for s in started["slots"]] == [1900]
    assert started["current"]["year"] == 1910

    res = client.post("/game/drop", json={"position": 1})
    assert res.status_code == 200
    data = res.json()
    assert [s["year"] for s in data["slots"]] == [1900, 1910]
    assert data["score"] == 18
    assert data["streak"] == 1
    assert data["current"]["year"] == 1920


def test_wrong_drop_reports_the_correction(client_and_session: tuple[TestClient, GameSession]) -> None:
    client, _ = client_and_session
    client.post("/game/start")

    data = client.post("/game/drop", json={"position": 0}).json()

    assert [s["year"] for s in data["slots"]] == [1900, 1910]
    assert data["incorrect_keys"] == ["1910-Event 1910"]
    assert data["incorrect_messages"]["1910-Event 1910"] == "This event was 1910 and you placed it after 1900."


def test_finished_round_lands_on_the_scoreboard(client_and_session: tuple[TestClient, GameSession]) -> None:
    client, _ = client_and_session
    client.post("/game/start")

    for position in range(1, 5):
        data = client.post("/game/drop", json={"position": position}).json()

    assert data["phase"] == "completed"
    assert data["show_completion"] is True
    assert data["current"] is None

    scores = client.get("/scores").json()["scores"]
    assert len(scores) == 1
    assert scores[0]["score"] == data["score"]
    assert scores[0]["correct"] == 4
    assert "elapsedMs" in scores[0]

    viewed = client.post("/game/view-timeline").json()
    assert viewed["show_completion"] is False

    cleared = client.delete("/scores")
    assert cleared.json() == {"scores": []}
    assert client.get("/scores").json() == {"scores": []}


def test_drop_rejects_negative_position(client_and_session: tuple[TestClient, GameSession]) -> None:
    client, _ = client_and_session
    client.post("/game/start")

    res = client.post("/game/drop", json={"position": -1})
    assert res.status_code == 422


def test_drop_before_start_is_ignored(client_and_session: tuple[TestClient, GameSession]) -> None:
    client, _ = client_and_session

    data = client.post("/game/drop", json={"position": 0}).json()
    assert data["attempts"] == 0
    assert data["phase"] == "idle"


def test_move_slot_out_of_range_is_422(client_and_session: tuple[TestClient, GameSession]) -> None:
    client, _ = client_and_session
    client.post("/game/start")
    client.post("/game/drop", json={"position": 1})

    moved = client.post("/game/slots/move", json={"from_index": 1, "to_index": 0})
    assert moved.status_code == 200
    assert [s["year"] for s in moved.json()["slots"]] == [1910, 1900]

    res = client.post("/game/slots/move", json={"from_index": 5, "to_index": 0})
    assert res.status_code == 422
    assert "from_index" in res.json()["detail"]


def test_reset_deals_a_new_round(client_and_session: tuple[TestClient, GameSession]) -> None:
    client, _ = client_and_session
    client.post("/game/start")
    client.post("/game/drop", json={"position": 1})

    data = client.post("/game/reset").json()

    assert data["phase"] == "active"
    assert data["attempts"] == 0
    assert data["score"] == 0
    assert len(data["slots"]) == 1


def test_demo_start_and_stop(client_and_session: tuple[TestClient, GameSession]) -> None:
    client, session = client_and_session

    started = client.post("/game/demo").json()
    assert started["demo_mode"] is True
    assert started["phase"] == "active"
    assert session.demo.running

    stopped = client.post("/game/demo/stop").json()
    assert stopped["demo_mode"] is False
    assert stopped["phase"] == "idle"
    assert stopped["show_intro"] is True
    assert not session.demo.running


def test_demo_layout_is_stored_for_the_script(client_and_session: tuple[TestClient, GameSession]) -> None:
    client, session = client_and_session

    body = {
        "list_rect": _rect(0, 0, 200, 300),
        "cards": [_rect(0, 20, 200, 80)],
        "source": _rect(0, 0, 200, 40),
        "viewport": {"scroll_top": 0, "client_height": 300, "scroll_height": 300},
        "card_offsets": [{"offset_top": 20, "offset_height": 60}],
    }
    res = client.post("/game/demo/layout", json=body)

    assert res.status_code == 204
    layout = session.latest_layout()
    assert layout is not None
    assert layout.list_rect.bottom == 300
    assert len(layout.cards) == 1
    assert layout.viewport is not None and layout.viewport.client_height == 300


def test_rail_geometry_endpoint(client_and_session: tuple[TestClient, GameSession]) -> None:
    client, _ = client_and_session

    inside = client.post(
        "/geometry/rail",
        json={"pointer": {"x": 10, "y": 80}, "rail": _rect(0, 0, 40, 100), "slot_count": 3},
    ).json()
    assert inside == {"index": 3, "insert_offset_pct": 87.5}

    outside = client.post(
        "/geometry/rail",
        json={"pointer": {"x": 90, "y": 80}, "rail": _rect(0, 0, 40, 100), "slot_count": 3},
    ).json()
    assert outside["index"] is None


def test_timeline_geometry_endpoint(client_and_session: tuple[TestClient, GameSession]) -> None:
    client, _ = client_and_session
    body = {
        "pointer": {"x": 50, "y": 100},
        "list_rect": _rect(0, 0, 200, 300),
        "cards": [_rect(10, 20, 190, 80), _rect(10, 120, 190, 180)],
        "card_px_height": 30,
    }

    assert client.post("/geometry/timeline", json=body).json() == {"index": 1, "top_px": 85}

    body["pointer"] = {"x": 500, "y": 100}
    assert client.post("/geometry/timeline", json=body).json()["index"] is None


def test_healthcheck(client_and_session: tuple[TestClient, GameSession]) -> None:
    client, _ = client_and_session
    assert client.get("/healthcheck").json() == {"status": "ok"}


def test_drop_is_ignored_while_the_demo_runs(client_and_session: tuple[TestClient, GameSession]) -> None:
    client, session = client_and_session
    client.post("/game/demo")

    data = client.post("/game/drop", json={"position": 1}).json()

    assert data["demo_mode"] is True
    assert data["attempts"] == 0
    assert [s["year"] for s in data["slots"]] == [1900]
    assert data["current"]["year"] == 1910
    assert session.demo.running
