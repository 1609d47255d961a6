import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from avalonhost.config.settings import HostConfig
from avalonhost.services.web_api import _encode, create_app


@pytest.fixture
def client():
    app = create_app(HostConfig(seed=5))
    with TestClient(app) as test_client:
        yield test_client


def open_room(client, guests=4):
    response = client.post("/api/rooms", json={"nickname": "Alice"})
    assert response.status_code == 200
    body = response.json()
    code, host = body["roomCode"], body["playerId"]
    players = [host]
    for index in range(guests):
        joined = client.post(f"/api/rooms/{code}/players", json={"nickname": f"Guest{index}"})
        assert joined.status_code == 200
        players.append(joined.json()["playerId"])
    return code, players


def act(client, code, player_id, action):
    return client.post(f"/api/rooms/{code}/actions", json={"playerId": player_id, "action": action})


class TestRest:
    def test_rulesets(self, client):
        rulesets = client.get("/api/config/rulesets").json()["rulesets"]
        assert [entry["players"] for entry in rulesets] == [5, 6, 7, 8, 9, 10]
        seven = rulesets[2]
        assert seven["missionSizes"] == [2, 3, 3, 4, 4]
        assert seven["doubleFailRound"] == 4
        assert seven["roles"].count("LoyalServant") == 2
        assert rulesets[0]["doubleFailRound"] is None

    def test_create_and_describe(self, client):
        code, _ = open_room(client, guests=1)
        view = client.get(f"/api/rooms/{code}").json()
        assert view["code"] == code
        assert view["host"] == "Alice"
        assert view["status"] == "lobby"
        assert [m["nickname"] for m in view["members"]] == ["Alice", "Guest0"]
        assert view["members"][0]["isHost"] is True

    def test_blank_nickname_rejected(self, client):
        assert client.post("/api/rooms", json={"nickname": ""}).status_code == 422

    def test_errors_map_to_status_codes(self, client):
        code, _ = open_room(client, guests=0)
        missing = client.post("/api/rooms/NOPE99/players", json={"nickname": "Bob"})
        assert missing.status_code == 404
        assert missing.json()["detail"]["kind"] == "RoomNotFound"

        taken = client.post(f"/api/rooms/{code}/players", json={"nickname": "Alice"})
        assert taken.status_code == 409
        assert taken.json()["detail"]["kind"] == "NicknameTaken"

        assert client.get("/api/rooms/NOPE99").status_code == 404

    def test_actions(self, client):
        code, players = open_room(client)
        refused = act(client, code, players[1], {"type": "startGame", "playerCount": 5})
        assert refused.status_code == 409
        assert refused.json()["ok"] is False
        assert refused.json()["error"]["kind"] == "NotHost"

        invalid = act(client, code, players[0], {"type": "startGame"})
        assert invalid.status_code == 422
        assert invalid.json()["error"]["kind"] == "InvalidPayload"

        started = act(client, code, players[0], {"type": "startGame", "playerCount": 5})
        assert started.status_code == 200
        body = started.json()
        assert body["ok"] is True
        assert body["game"]["phase"] == "team_building"
        assert body["game"]["teamSize"] == 2

        reveal = act(client, code, players[2], {"type": "viewRole"}).json()["reveal"]
        assert reveal["name"] == "Guest1"
        assert reveal["role"] in {"Merlin", "Percival", "LoyalServant", "Morgana", "Assassin"}

    def test_leave_and_delete(self, client):
        code, players = open_room(client, guests=2)
        assert client.post(f"/api/rooms/{code}/leave", json={"playerId": players[2]}).status_code == 200

        denied = client.delete(f"/api/rooms/{code}", params={"playerId": players[1]})
        assert denied.status_code == 409
        assert denied.json()["detail"]["kind"] == "NotHost"

        deleted = client.delete(f"/api/rooms/{code}", params={"playerId": players[0]})
        assert deleted.json() == {"status": "deleted", "roomCode": code}
        assert client.get(f"/api/rooms/{code}").status_code == 404


class TestWebSocket:
    def test_unknown_room_is_closed(self, client):
        with client.websocket_connect("/ws/NOPE99/someone") as ws:
            message = ws.receive_json()
            assert message["event"] == "error"
            assert message["data"]["kind"] == "RoomNotFound"
            with pytest.raises(WebSocketDisconnect) as excinfo:
                ws.receive_text()
        assert excinfo.value.code == 4404

    def test_game_flow_over_socket(self, client):
        code, players = open_room(client)
        with client.websocket_connect(f"/ws/{code}/{players[0]}") as ws:
            hello = ws.receive_json()
            assert hello["event"] == "roomUpdate"
            assert hello["data"]["code"] == code

            ws.send_text("{not json")
            assert ws.receive_json()["data"]["kind"] == "InvalidPayload"

            ws.send_json({"type": "viewRole"})
            error = ws.receive_json()
            assert error["event"] == "error"
            assert error["data"]["kind"] == "GameNotStarted"

            act(client, code, players[0], {"type": "startGame", "playerCount": 5})
            started = ws.receive_json()
            assert started["event"] == "gameStart"
            assert started["data"]["status"] == "playing"

            ws.send_json({"type": "viewRole"})
            info = ws.receive_json()
            assert info["event"] == "roleInfo"
            assert info["data"]["name"] == "Alice"
            assert len(info["data"]["roster"]) == 5


def test_encode_wraps_event_and_data():
    assert _encode("roomDeleted", {"code": "ABC123"}) == '{"event":"roomDeleted","data":{"code":"ABC123"}}'
