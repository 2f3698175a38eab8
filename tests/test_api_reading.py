import time

import pytest

from cartoonlingo.lessons import READING_BODY


@pytest.fixture
def headers(login):
    return login()


def start(client, headers, lesson_id=4):
    r = client.post("/reading/session/start", json={"lesson_id": lesson_id}, headers=headers)
    assert r.status_code == 200, r.text
    return r.json()


def poll(client, path, headers, condition, timeout=3.0):
    deadline = time.monotonic() + timeout
    while True:
        state = client.get(path, headers=headers).json()
        if condition(state) or time.monotonic() > deadline:
            return state
        time.sleep(0.01)


def test_start_session(client, headers):
    state = start(client, headers)
    assert state["speech_supported"] is True
    assert state["title_word_count"] == 6
    assert len(state["words"]) == 6 + len(READING_BODY.split())
    assert {w["status"] for w in state["words"]} == {"unread"}
    assert state["playback"] == "idle"
    assert state["progress"] == 0.0


def test_start_session_errors(client, headers):
    assert client.post("/reading/session/start", json={"lesson_id": 1}, headers=headers).status_code == 400
    assert client.post("/reading/session/start", json={"lesson_id": 999}, headers=headers).status_code == 404


def test_sessions_are_private(client, headers, login):
    sid = start(client, headers)["session_id"]
    other = login()
    assert client.get(f"/reading/session/{sid}", headers=other).status_code == 404
    assert client.get("/reading/session/nope", headers=headers).status_code == 404


def test_transcript_needs_listening(client, headers):
    sid = start(client, headers)["session_id"]
    r = client.post(f"/reading/session/{sid}/transcript", json={"transcript": "how will"}, headers=headers)
    assert r.status_code == 409
    r = client.post(f"/reading/session/{sid}/transcript", json={}, headers=headers)
    assert r.status_code == 400


def test_listen_and_score(client, headers):
    sid = start(client, headers)["session_id"]
    r = client.post(f"/reading/session/{sid}/listen/start", json={}, headers=headers)
    assert r.json()["listening"] is True
    r = client.post(f"/reading/session/{sid}/transcript", json={"transcript": "how will we eat"}, headers=headers)
    state = r.json()
    assert [w["status"] for w in state["words"][:4]] == ["correct"] * 4
    assert state["progress"] > 0
    r = client.post(f"/reading/session/{sid}/transcript", json={"transcript": "in", "append": True}, headers=headers)
    assert r.json()["transcript"] == "how will we eat in"

    r = client.post(f"/reading/session/{sid}/reset", headers=headers)
    assert r.json()["transcript"] == ""
    assert r.json()["summary"]["unread"] == len(r.json()["words"])


def test_listening_without_any_recognizer(client, headers):
    sid = start(client, headers)["session_id"]
    r = client.post(f"/reading/session/{sid}/listen/start", json={"browser_recognition": False}, headers=headers)
    assert r.status_code == 503


def test_audio_needs_server_recognition(client, headers):
    sid = start(client, headers)["session_id"]
    client.post(f"/reading/session/{sid}/listen/start", json={}, headers=headers)
    r = client.post(f"/reading/session/{sid}/transcript", json={"audio_base64": "AAAA"}, headers=headers)
    assert r.status_code == 503


def test_reading_the_text_completes_the_lesson(client, headers):
    state = start(client, headers)
    sid = state["session_id"]
    client.post(f"/reading/session/{sid}/listen/start", json={}, headers=headers)
    text = " ".join(w["word"] for w in state["words"])
    client.post(f"/reading/session/{sid}/transcript", json={"transcript": text}, headers=headers)
    r = client.post(f"/reading/session/{sid}/listen/stop", headers=headers)
    body = r.json()
    assert body["completed"] is True
    assert body["progress"] == 100.0
    assert body["completion"]["passed"] is True
    assert body["completion"]["xp_earned"] == 25

    assert client.get("/auth/me", headers=headers).json()["total_xp"] == 25
    lesson = client.get("/lessons/4", headers=headers).json()
    assert lesson["completed"] is True

    # stopping again does not record a second completion
    client.post(f"/reading/session/{sid}/listen/start", json={}, headers=headers)
    r = client.post(f"/reading/session/{sid}/listen/stop", headers=headers)
    assert r.json()["completion"] is None


def test_playback_controls(client, headers):
    sid = start(client, headers)["session_id"]
    path = f"/reading/session/{sid}"
    r = client.post(f"{path}/playback/start", json={}, headers=headers)
    assert r.json()["playback"] == "playing"
    state = poll(client, path, headers, lambda s: s["current_word"] >= 0)
    assert state["current_word"] >= 0

    r = client.post(f"{path}/playback/pause", headers=headers)
    assert r.json()["playback"] == "paused"
    paused_at = r.json()["current_word"]
    time.sleep(0.1)
    assert client.get(path, headers=headers).json()["current_word"] == paused_at

    r = client.post(f"{path}/playback/resume", headers=headers)
    assert r.json()["playback"] == "playing"
    assert r.json()["restarted"] is False
    state = poll(client, path, headers, lambda s: s["current_word"] > paused_at)
    assert state["current_word"] > paused_at

    r = client.post(f"{path}/playback/stop", headers=headers)
    assert r.json()["playback"] == "stopped"
    r = client.post(f"{path}/playback/stop", headers=headers)
    assert r.json()["playback"] == "stopped"

    assert client.post(f"{path}/playback/start", json={"from_index": 10000}, headers=headers).status_code == 400
    assert client.delete(path, headers=headers).json() == {"ok": True}
    assert client.get(path, headers=headers).status_code == 404


def test_playback_from_word(client, headers):
    sid = start(client, headers)["session_id"]
    path = f"/reading/session/{sid}"
    client.post(f"{path}/playback/start", json={"from_index": 20}, headers=headers)
    state = poll(client, path, headers, lambda s: s["current_word"] >= 20)
    assert state["current_word"] >= 20
    client.post(f"{path}/playback/stop", headers=headers)


def test_hidden_page_stops_listening(client, headers):
    sid = start(client, headers)["session_id"]
    path = f"/reading/session/{sid}"
    client.post(f"{path}/listen/start", json={}, headers=headers)
    r = client.post(f"{path}/visibility", json={"hidden": True}, headers=headers)
    assert r.json()["listening"] is False
    assert r.json()["completion"] is None
