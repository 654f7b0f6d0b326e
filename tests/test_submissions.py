"""
Client-side intake: size preflight, single image compression, offline capture.
"""
import httpx
import pytest

from archive_client.api import ApiClient
from archive_client.config import ClientSettings
from archive_client.errors import ApiError
from archive_client.offline_queue import OfflineQueue
from archive_client.submissions import SAVED_OFFLINE, SubmissionService

MB = 1024 * 1024


class StubApi:
    def __init__(self):
        self.created = []

    def create_item(self, actor_id, data):
        self.created.append((actor_id, data))
        return {"id": "item-1", "status": "submitted_for_review"}


def _image(size):
    return {
        "type": "image",
        "journey_id": "j1",
        "payload": {"filename": "team.jpg", "content_type": "image/jpeg", "size_bytes": size},
    }


@pytest.fixture
def queue(tmp_path):
    return OfflineQueue(str(tmp_path / "queue.sqlite3"))


class TestPreflight:
    def test_image_is_compressed_once(self, queue):
        calls = []

        def shrink(payload):
            calls.append(payload["size_bytes"])
            return dict(payload, size_bytes=2 * MB)

        api = StubApi()
        service = SubmissionService(api, queue, settings=ClientSettings(), shrink_image=shrink)
        outcome = service.submit_contribution("contributor-1", _image(12 * MB))

        assert not outcome.queued
        assert calls == [12 * MB]
        assert api.created[0][1]["payload"]["size_bytes"] == 2 * MB

    def test_image_still_too_large_after_compression(self, queue):
        calls = []

        def shrink(payload):
            calls.append(1)
            return dict(payload, size_bytes=9 * MB)

        service = SubmissionService(StubApi(), queue, settings=ClientSettings(), shrink_image=shrink)
        with pytest.raises(ApiError) as exc:
            service.submit_contribution("contributor-1", _image(12 * MB))
        assert exc.value.kind == "size_exceeded"
        assert calls == [1]
        assert queue.count() == 0

    def test_oversized_document_is_refused_without_queueing(self, queue):
        data = {
            "type": "document",
            "journey_id": "j1",
            "payload": {"filename": "minutes.pdf", "content_type": "application/pdf", "size_bytes": 40 * MB},
        }
        service = SubmissionService(StubApi(), queue, settings=ClientSettings())
        with pytest.raises(ApiError) as exc:
            service.submit_contribution("contributor-1", data)
        assert exc.value.kind == "size_exceeded"
        assert "8.0MB" in exc.value.detail
        assert queue.count() == 0


class TestOfflineCapture:
    def test_transient_failure_is_queued(self, queue):
        def refuse(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        api = ApiClient(client=httpx.Client(base_url="http://archive.test", transport=httpx.MockTransport(refuse)))
        service = SubmissionService(api, queue, settings=ClientSettings())
        outcome = service.submit_contribution("contributor-1", _image(1 * MB))

        assert outcome.queued
        assert outcome.message == SAVED_OFFLINE
        assert queue.get(outcome.record.id).actor_id == "contributor-1"

    def test_gateway_errors_are_transient(self, queue):
        api = ApiClient(
            client=httpx.Client(
                base_url="http://archive.test",
                transport=httpx.MockTransport(lambda request: httpx.Response(503)),
            )
        )
        outcome = SubmissionService(api, queue, settings=ClientSettings()).send_message(
            None, "join", {"name": "Sam", "email": "sam@example.org", "body": "Hi"}
        )
        assert outcome.queued
        assert queue.list()[0].kind == "join"

    def test_server_refusal_is_not_queued(self, queue):
        def forbid(request):
            return httpx.Response(403, json={"success": False, "error": "permission_denied", "detail": "No."})

        api = ApiClient(client=httpx.Client(base_url="http://archive.test", transport=httpx.MockTransport(forbid)))
        with pytest.raises(ApiError) as exc:
            SubmissionService(api, queue, settings=ClientSettings()).submit_contribution("c", _image(MB))
        assert exc.value.kind == "permission_denied"
        assert exc.value.status_code == 403
        assert queue.count() == 0
