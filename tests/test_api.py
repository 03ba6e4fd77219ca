from __future__ import annotations


def _recv(ws, n: int) -> list[dict]:
    return [ws.receive_json() for _ in range(n)]


def test_healthcheck_and_info(client) -> None:
    assert client.get("/healthcheck").json() == {"status": "ok"}
    info = client.get("/info").json()
    assert info["name"] == "spellgrid"


def test_unknown_room_is_404(client) -> None:
    resp = client.get("/rooms/nope")
    assert resp.status_code == 404
    assert resp.json()["detail"] == "Room not found"


def test_connect_receives_room_list(client) -> None:
    with client.websocket_connect("/ws") as ws:
        msg = ws.receive_json()
        assert msg == {"type": "room_list", "rooms": []}


def test_create_room_requires_name(client) -> None:
    with client.websocket_connect("/ws") as ws:
        ws.receive_json()
        ws.send_json({"type": "create_room", "name": "Lounge"})
        msg = ws.receive_json()
        assert msg["type"] == "error"
        assert msg["code"] == "name_required"


def test_malformed_and_unknown_messages_are_rejected(client) -> None:
    with client.websocket_connect("/ws") as ws:
        ws.receive_json()
        ws.send_json({"type": "dance"})
        assert ws.receive_json()["code"] == "invalid_message"

        ws.send_json({"type": "set_name", "name": "Ann"})
        ws.send_json({"type": "join_room", "room_id": "missing"})
        assert ws.receive_json()["code"] == "room_not_found"

        ws.send_json({"type": "submit_word"})
        msg = ws.receive_json()
        assert msg["code"] == "invalid_action"
        assert msg["message"] == "Not in a room"


def test_lobby_to_game_flow_over_websocket(client) -> None:
    with client.websocket_connect("/ws") as a, client.websocket_connect("/ws") as b:
        a.receive_json()
        b.receive_json()

        a.send_json({"type": "set_name", "name": "Ann"})
        a.send_json({"type": "create_room", "name": "Lounge"})
        joined, listing = _recv(a, 2)
        assert joined["type"] == "room_joined"
        assert listing["type"] == "room_list"
        room_id = joined["room"]["id"]
        ann_id = joined["player_id"]
        assert joined["room"]["players"][0]["is_host"] is True
        assert b.receive_json() == listing

        rooms = client.get("/rooms").json()
        assert [r["id"] for r in rooms] == [room_id]

        b.send_json({"type": "set_name", "name": "Bob"})
        b.send_json({"type": "join_room", "room_id": room_id})
        b_joined, b_listing = _recv(b, 2)
        assert b_joined["type"] == "room_joined"
        assert [p["name"] for p in b_joined["room"]["players"]] == ["Ann", "Bob"]
        assert b_listing["type"] == "room_list"
        assert [m["type"] for m in _recv(a, 3)] == ["player_joined", "room_updated", "room_list"]

        # Only the host may start, and only once everyone is ready.
        b.send_json({"type": "start_game"})
        assert b.receive_json()["code"] == "invalid_action"

        for ws in (a, b):
            ws.send_json({"type": "toggle_ready"})
            for other in (a, b):
                ready, updated = _recv(other, 2)
                assert ready["type"] == "player_ready" and ready["ready"] is True
                assert updated["type"] == "room_updated"

        a.send_json({"type": "start_game"})
        for ws in (a, b):
            started, turn, update = _recv(ws, 3)
            assert started["type"] == "game_started"
            assert len(started["board"]) == 5
            assert turn == {"type": "turn_started", "player_id": ann_id, "round": 1, "turn_time_remaining": 60}
            assert update["type"] == "game_updated"
            assert update["current_player_id"] == ann_id

        board = started["board"]
        row, col = next((r, c) for r in range(5) for c in range(5) if not board[r][c]["is_frozen"])

        b.send_json({"type": "add_letter", "col": col, "row": row})
        assert b.receive_json()["code"] == "not_your_turn"

        a.send_json({"type": "add_letter", "col": col, "row": row})
        for ws in (a, b):
            update = ws.receive_json()
            assert update["type"] == "game_updated"
            assert update["chain"] == [[col, row]]
            assert update["current_word"] == board[row][col]["letter"]

        detail = client.get(f"/rooms/{room_id}").json()
        assert detail["phase"] == "chaining"
