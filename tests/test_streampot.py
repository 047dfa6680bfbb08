"""
Unit tests for the StreamPot backend client.
"""

from unittest.mock import MagicMock

import pytest
import requests
from tenacity import wait_none

from core.streampot import (
    BackendRequestError,
    BackendUnavailableError,
    BackendUnreachableError,
    StreamPotActions,
    StreamPotClient,
    clip_actions,
    extraction_actions,
)


def response(status_code=200, payload=None, text=""):
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = payload
    resp.text = text
    return resp


class TestActions:
    """Test the StreamPot action builder"""

    def test_extraction_job_drops_video(self):
        payload = extraction_actions("https://videos.example/v.webm").to_payload()

        assert payload == {"actions": [
            {"name": "input", "value": ["https://videos.example/v.webm"]},
            {"name": "noVideo", "value": []},
            {"name": "output", "value": ["output.mp3"]},
        ]}

    def test_clip_job_sets_start_and_duration(self):
        payload = clip_actions("https://videos.example/v.webm", 4.5, 2.25, "cut.mp4").to_payload()

        assert payload["actions"] == [
            {"name": "input", "value": ["https://videos.example/v.webm"]},
            {"name": "setStartTime", "value": [4.5]},
            {"name": "setDuration", "value": [2.25]},
            {"name": "output", "value": ["cut.mp4"]},
        ]

    def test_payload_is_a_copy(self):
        actions = StreamPotActions().input("a")
        payload = actions.to_payload()
        actions.output("b")

        assert len(payload["actions"]) == 1


class TestStreamPotClient:
    """Test HTTP calls made by the client"""

    @pytest.fixture
    def session(self):
        session = MagicMock()
        session.headers = {}
        return session

    @pytest.fixture
    def client(self, session):
        return StreamPotClient(
            base_url="http://streampot.local:3000/",
            secret_key="s3cret",
            timeout=12,
            session=session
        )

    @pytest.fixture(autouse=True)
    def no_retry_wait(self, monkeypatch):
        monkeypatch.setattr(StreamPotClient._get.retry, "wait", wait_none())
        monkeypatch.setattr(StreamPotClient._post.retry, "wait", wait_none())

    def test_secret_key_sent_as_bearer_token(self, client, session):
        assert session.headers["Authorization"] == "Bearer s3cret"

    @pytest.mark.asyncio
    async def test_submit_extraction_job(self, client, session):
        session.request.return_value = response(payload={"id": 12, "status": "queued"})

        job = await client.submit_extraction_job("https://videos.example/v.webm")

        assert job.id == "12"
        assert job.status == "queued"
        method, url = session.request.call_args.args
        assert (method, url) == ("POST", "http://streampot.local:3000/")
        assert session.request.call_args.kwargs["timeout"] == 12
        sent = session.request.call_args.kwargs["json"]["actions"]
        assert [a["name"] for a in sent] == ["input", "noVideo", "output"]

    @pytest.mark.asyncio
    async def test_submit_clip_job(self, client, session):
        session.request.return_value = response(payload={"id": "c1", "status": "queued"})

        await client.submit_clip_job("https://videos.example/v.webm", 3.0, 7.5)

        sent = session.request.call_args.kwargs["json"]["actions"]
        assert {"name": "setStartTime", "value": [3.0]} in sent
        assert {"name": "setDuration", "value": [7.5]} in sent
        assert sent[-1] == {"name": "output", "value": ["clip.mp4"]}

    @pytest.mark.asyncio
    async def test_check_status(self, client, session):
        session.request.return_value = response(payload={
            "id": 12,
            "status": "completed",
            "output_url": [{"publicUrl": "https://cdn.example/output.mp3"}],
        })

        job = await client.check_status("12")

        assert session.request.call_args.args == ("GET", "http://streampot.local:3000/jobs/12")
        assert job.output_url[0].public_url == "https://cdn.example/output.mp3"

    @pytest.mark.asyncio
    async def test_server_errors_are_retried(self, client, session):
        session.request.side_effect = [
            response(status_code=502),
            requests.ConnectionError("reset"),
            response(payload={"id": 1, "status": "running"}),
        ]

        job = await client.check_status("1")

        assert job.status == "running"
        assert session.request.call_count == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self, client, session):
        session.request.side_effect = requests.Timeout("slow")

        with pytest.raises(BackendUnavailableError):
            await client.check_status("1")

        assert session.request.call_count == StreamPotClient._get.retry.stop.max_attempt_number

    @pytest.mark.asyncio
    async def test_client_errors_are_not_retried(self, client, session):
        session.request.return_value = response(status_code=404, text="no such job")

        with pytest.raises(BackendRequestError, match="404"):
            await client.check_status("missing")

        assert session.request.call_count == 1

    @pytest.mark.asyncio
    async def test_unexpected_payload(self, client, session):
        session.request.return_value = response(payload=["not", "a", "job"])

        with pytest.raises(BackendRequestError):
            await client.check_status("1")

    @pytest.mark.asyncio
    async def test_null_job_id_rejected(self, client, session):
        session.request.return_value = response(payload={"id": None, "status": "queued"})

        with pytest.raises(BackendRequestError):
            await client.submit_extraction_job("https://videos.example/v.webm")


class TestSubmitRetries:
    """Test that a job is never created twice"""

    @pytest.fixture
    def session(self):
        session = MagicMock()
        session.headers = {}
        return session

    @pytest.fixture
    def client(self, session):
        return StreamPotClient(base_url="http://streampot.local:3000", session=session)

    @pytest.fixture(autouse=True)
    def no_retry_wait(self, monkeypatch):
        monkeypatch.setattr(StreamPotClient._post.retry, "wait", wait_none())

    @pytest.mark.asyncio
    async def test_read_timeout_is_not_resent(self, client, session):
        session.request.side_effect = [
            requests.ReadTimeout("no answer"),
            response(payload={"id": 5, "status": "queued"}),
        ]

        with pytest.raises(BackendUnavailableError):
            await client.submit_extraction_job("https://videos.example/v.webm")

        assert session.request.call_count == 1

    @pytest.mark.asyncio
    async def test_server_error_is_not_resent(self, client, session):
        session.request.return_value = response(status_code=503)

        with pytest.raises(BackendUnavailableError):
            await client.submit_clip_job("https://videos.example/v.webm", 0.0, 5.0)

        assert session.request.call_count == 1

    @pytest.mark.asyncio
    async def test_connect_timeout_is_resent(self, client, session):
        session.request.side_effect = [
            requests.ConnectTimeout("no route"),
            response(payload={"id": 5, "status": "queued"}),
        ]

        job = await client.submit_extraction_job("https://videos.example/v.webm")

        assert job.id == "5"
        assert session.request.call_count == 2

    @pytest.mark.asyncio
    async def test_gives_up_when_never_connected(self, client, session):
        session.request.side_effect = requests.ConnectTimeout("no route")

        with pytest.raises(BackendUnreachableError):
            await client.submit_extraction_job("https://videos.example/v.webm")

        assert session.request.call_count == StreamPotClient._post.retry.stop.max_attempt_number
