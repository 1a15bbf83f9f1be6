from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock, patch

import pytest
from fastapi.testclient import TestClient

from chatrelay.errors import DeliveryError
from chatrelay.main import app
from chatrelay.runtime import get_runtime
from chatrelay.services.conversation_router import RouteAction, RouteResult
from chatrelay.services.message_buffer import BufferedTurn, BufferSignal
from chatrelay.services.transcription_service import MSG_TRANSCRIPTION_FAILED

PHONE = "56911111111"


def _payload(message="Hola", message_type="text", **body):
    return {
        "body": {
            "messageType": message_type,
            "message": message,
            "metadata": {"remoteJid": f"{PHONE}@s.whatsapp.net", "messageId": "m1", "sender": "Ana"},
            **body,
        }
    }


@pytest.fixture
def runtime():
    return SimpleNamespace(
        buffer=Mock(submit=AsyncMock(return_value=BufferedTurn(combined_text="Hola", fragment_count=1))),
        router=Mock(route=AsyncMock(return_value=RouteResult(action=RouteAction.RESPONDER, reply="¡Hola!"))),
        llm=Mock(),
    )


@pytest.fixture
def client(runtime):
    app.dependency_overrides[get_runtime] = lambda: runtime
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def mock_deliver():
    with patch("chatrelay.services.chatflow_service.deliver", new_callable=AsyncMock) as deliver:
        yield deliver


class TestTextMessages:
    def test_routes_buffered_turn_and_delivers_reply(self, client, runtime, mock_deliver):
        response = client.post("/webhook", json=_payload())

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["action"] == "responder"
        assert data["bot_response"] == "¡Hola!"
        runtime.buffer.submit.assert_awaited_once()
        assert runtime.buffer.submit.call_args[0][:2] == (PHONE, "Hola")
        runtime.router.route.assert_awaited_once_with(PHONE, "Hola")
        mock_deliver.assert_awaited_once_with(PHONE, "¡Hola!", None)

    def test_superseded_fragment_is_acknowledged(self, client, runtime, mock_deliver):
        runtime.buffer.submit.return_value = BufferSignal.SUPERSEDED

        response = client.post("/webhook", json=_payload())

        assert response.json()["message"] == "Buffered"
        runtime.router.route.assert_not_called()
        mock_deliver.assert_not_called()

    def test_reply_already_sent_is_not_resent(self, client, runtime, mock_deliver):
        runtime.router.route.return_value = RouteResult(action=RouteAction.HANDOFF, reply="Un asesor", delivered=True)

        response = client.post("/webhook", json=_payload("quiero un asesor"))

        assert response.json()["action"] == "handoff"
        mock_deliver.assert_not_called()

    def test_silent_routes_send_nothing(self, client, runtime, mock_deliver):
        runtime.router.route.return_value = RouteResult(action=RouteAction.BLOCKED)

        response = client.post("/webhook", json=_payload())

        assert response.json()["action"] == "blocked"
        mock_deliver.assert_not_called()

    def test_delivery_failure_is_reported(self, client, mock_deliver):
        mock_deliver.side_effect = DeliveryError(PHONE, "rejected_by_chatflow")

        response = client.post("/webhook", json=_payload())

        assert response.status_code == 200
        assert response.json()["success"] is False

    def test_flat_payload_is_normalized(self, client, runtime, mock_deliver):
        response = client.post("/webhook", json={"remoteJid": f"{PHONE}@s.whatsapp.net", "text": "Hola"})

        assert response.json()["success"] is True
        assert runtime.buffer.submit.call_args[0][:2] == (PHONE, "Hola")

    def test_empty_text_is_ignored(self, client, runtime):
        response = client.post("/webhook", json=_payload(message="   "))

        assert response.json()["message"] == "Empty message"
        runtime.buffer.submit.assert_not_called()


class TestMalformedRequests:
    def test_invalid_json(self, client):
        response = client.post("/webhook", content=b"{not json", headers={"Content-Type": "application/json"})
        assert response.json() == {
            "success": False,
            "message": "Invalid JSON payload",
            "action": None,
            "bot_response": None,
            "fragments": None,
        }

    def test_empty_body(self, client):
        response = client.post("/webhook", content=b"", headers={"Content-Type": "application/json"})
        assert response.json()["message"] == "Empty payload"

    def test_missing_sender(self, client):
        response = client.post("/webhook", json={"body": {"message": "Hola"}})
        assert response.json()["message"] == "Missing sender"


class TestVoiceNotes:
    @patch("chatrelay.routers.webhook.transcribe_voice_note", new_callable=AsyncMock)
    def test_transcript_is_routed_without_buffering(self, mock_transcribe, client, runtime, mock_deliver):
        mock_transcribe.return_value = "quiero el catálogo"

        response = client.post("/webhook", json=_payload(message=None, message_type="audio", mediaUrl="https://x/a.ogg"))

        assert response.json()["action"] == "responder"
        assert mock_transcribe.call_args[0][1] == "https://x/a.ogg"
        runtime.buffer.submit.assert_not_called()
        runtime.router.route.assert_awaited_once_with(PHONE, "quiero el catálogo")

    @patch("chatrelay.routers.webhook.transcribe_voice_note", new_callable=AsyncMock)
    def test_failed_transcription_notifies_customer(self, mock_transcribe, client, runtime, mock_deliver):
        mock_transcribe.return_value = None

        response = client.post("/webhook", json=_payload(message=None, message_type="ptt", mediaUrl="https://x/a.ogg"))

        assert response.json()["action"] == "transcription_failed"
        mock_deliver.assert_awaited_once_with(PHONE, MSG_TRANSCRIPTION_FAILED)
        runtime.router.route.assert_not_called()
