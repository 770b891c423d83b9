import asyncio
import json

import httpx

from callsynth import main as cli
from callsynth.core.config import settings
from callsynth.services.evaluation_client import EvaluagentClient

from conftest import FakeSynthesizer

BASE_URL = "https://api.evaluagent.test/v1"

ROLES = {"data": [{"id": "r2", "attributes": {"name": "agent"}}]}
USERS = {"data": [
    {"id": 7, "attributes": {"fullname": "Ann", "email": "ann@example.com", "active": True},
     "relationships": {"roles": {"data": [{"id": "r2"}]}}},
]}


def _use_platform(monkeypatch, handler):
    monkeypatch.setattr(
        cli, "EvaluagentClient",
        lambda: EvaluagentClient("key:secret", base_url=BASE_URL, transport=httpx.MockTransport(handler)),
    )


def test_audio_command_converts_every_ticket(write_transcript, make_pipeline, monkeypatch, tmp_path):
    write_transcript([("Hello", False), ("Hi", True)], name="a.json")
    ticket = write_transcript([("Bye", False)], name="b.json")
    pipeline = make_pipeline()
    monkeypatch.setattr(cli, "build_pipeline", lambda: pipeline)
    monkeypatch.setattr(settings, "log_dir", str(tmp_path / "logs"))

    code = asyncio.run(cli.run(["--tickets", str(ticket.parent), "audio"]))

    assert code == 0
    assert sorted(p.name for p in (tmp_path / "call_stream").iterdir()) == ["a.mp3", "b.mp3"]


def test_audio_command_stops_at_first_failure(write_transcript, make_pipeline, monkeypatch, tmp_path):
    write_transcript([("Hello", False)], name="a.json")
    ticket = write_transcript([("Bye", False)], name="b.json")
    synthesizer = FakeSynthesizer(fail_at={0})
    monkeypatch.setattr(cli, "build_pipeline", lambda: make_pipeline(synthesizer=synthesizer))
    monkeypatch.setattr(settings, "log_dir", str(tmp_path / "logs"))

    code = asyncio.run(cli.run(["--tickets", str(ticket.parent), "audio"]))

    assert code == 1
    assert [call[1] for call in synthesizer.calls] == ["Hello"]


def test_audio_command_without_tickets(monkeypatch, tmp_path):
    monkeypatch.setattr(settings, "log_dir", str(tmp_path / "logs"))

    assert asyncio.run(cli.run(["--tickets", str(tmp_path / "empty"), "audio"])) == 1


def test_call_command_uploads_audio_and_sends_contact(write_transcript, make_pipeline, monkeypatch, tmp_path):
    ticket = write_transcript([("My order is late", True), ("Let me check that for you", False)])
    reference_log = tmp_path / "contact-reference-log.json"
    sent = {}

    def handler(request):
        path = request.url.path
        if path.endswith("/org/roles"):
            return httpx.Response(200, json=ROLES)
        if path.endswith("/org/users"):
            return httpx.Response(200, json=USERS)
        if path.endswith("/upload-audio"):
            sent["upload"] = request.content
            return httpx.Response(200, json={"path": "imports/ticket_001.mp3"})
        sent["contact"] = json.loads(request.content)
        return httpx.Response(200, json={"message": "Contact imported"})

    _use_platform(monkeypatch, handler)
    monkeypatch.setattr(cli, "build_pipeline", lambda: make_pipeline())
    monkeypatch.setattr(settings, "log_dir", str(tmp_path / "logs"))
    monkeypatch.setattr(settings, "reference_log_path", str(reference_log))

    code = asyncio.run(cli.run(["--tickets", str(ticket.parent), "call", "--count", "1"]))

    assert code == 0
    data = sent["contact"]["data"]
    assert data["audio_file_path"] == "imports/ticket_001.mp3"
    assert data["handling_time"] == 12.5
    assert data["agent_email"] == "ann@example.com"
    assert [r["speaker_is_customer"] for r in data["responses"]] == [True, False]
    assert b"customer:My order is late" in sent["upload"]
    assert json.loads(reference_log.read_text()) == [data["reference"]]


def test_chat_command_without_agents(write_transcript, monkeypatch, tmp_path):
    ticket = write_transcript([("Hi", True)])

    def handler(request):
        if request.url.path.endswith("/org/roles"):
            return httpx.Response(200, json=ROLES)
        return httpx.Response(200, json={"data": []})

    _use_platform(monkeypatch, handler)
    monkeypatch.setattr(settings, "log_dir", str(tmp_path / "logs"))

    assert asyncio.run(cli.run(["--tickets", str(ticket.parent), "chat"])) == 1


def test_chat_command_with_gateway_error_page(write_transcript, monkeypatch, tmp_path):
    ticket = write_transcript([("Hi", True)])
    _use_platform(monkeypatch, lambda request: httpx.Response(200, text="<html>gateway</html>"))
    monkeypatch.setattr(settings, "log_dir", str(tmp_path / "logs"))

    assert asyncio.run(cli.run(["--tickets", str(ticket.parent), "chat"])) == 1


def test_evaluations_command_writes_response(monkeypatch, tmp_path):
    body = {"data": [{"id": "e1"}], "included": []}
    _use_platform(monkeypatch, lambda request: httpx.Response(200, json=body))
    monkeypatch.setattr(settings, "log_dir", str(tmp_path / "logs"))
    output = tmp_path / "evaluations.json"

    code = asyncio.run(cli.run(["evaluations", "--hours", "12", "--output", str(output)]))

    assert code == 0
    assert json.loads(output.read_text()) == body
