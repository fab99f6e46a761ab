# Copyright (c) Syntropy Systems
"""Tests for the httpx collaborator clients."""

import base64
import json

import httpx
import pytest

from schemasmith.clients import ChatClient, GitHubClient, MetricsClient, PlatformClient, extract_json
from schemasmith.errors import LLMError, MetricsError, PlatformError, PollTimeoutError, SourceControlError
from schemasmith.models import QueryWindow, RepositoryRef

REPO = RepositoryRef(owner="acme", name="demo-scraper")


class Recorder:
    """A MockTransport handler that answers from a route table and records requests."""

    def __init__(self, routes):
        self.routes = routes
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)
        answer = self.routes.get(key)
        if answer is None:
            return httpx.Response(404, json={"error": {"message": f"No route for {key}"}})
        if callable(answer):
            answer = answer(request)
        if isinstance(answer, httpx.Response):
            return answer
        return httpx.Response(200, json=answer)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def paths(self) -> list[str]:
        return [request.url.path for request in self.requests]


def run_data(status: str, dataset: str | None = "ds-1") -> dict:
    """A run envelope as the platform returns it."""
    return {"data": {"id": "run-1", "status": status, "defaultDatasetId": dataset}}


class TestPlatformClient:
    """Tests for PlatformClient."""

    def test_run_workload_polls_until_finished(self):
        """Test that a started run is polled to a terminal status."""
        statuses = iter(["RUNNING", "SUCCEEDED"])
        recorder = Recorder(
            {
                ("POST", "/v2/acts/acme~demo-scraper/runs"): run_data("READY"),
                ("GET", "/v2/actor-runs/run-1"): lambda _: run_data(next(statuses)),
            }
        )
        client = PlatformClient("tok", transport=recorder.transport())

        run = client.run_workload("acme/demo-scraper", {"q": 1}, timeout=300, memory=2048)

        assert run.succeeded
        assert run.output_handle == "ds-1"
        start = recorder.requests[0]
        assert json.loads(start.content) == {"q": 1}
        assert start.url.params["timeout"] == "300"
        assert start.url.params["memory"] == "2048"
        assert start.headers["Authorization"] == "Bearer tok"
        assert recorder.requests[1].url.params["waitForFinish"] == "60"

    def test_run_that_never_finishes(self):
        """Test that the poll budget is bounded."""
        recorder = Recorder(
            {
                ("POST", "/v2/acts/wid/runs"): run_data("READY"),
                ("GET", "/v2/actor-runs/run-1"): run_data("RUNNING"),
            }
        )
        client = PlatformClient("tok", transport=recorder.transport())

        with pytest.raises(PollTimeoutError, match="did not finish after 3 status polls"):
            _ = client.run_workload("wid", {}, timeout=60)

        assert len(recorder.requests) == 4

    def test_on_start_sees_run_before_waiting(self):
        """Test that the start callback gets the run before any status poll."""
        recorder = Recorder(
            {
                ("POST", "/v2/acts/wid/runs"): run_data("READY"),
                ("GET", "/v2/actor-runs/run-1"): run_data("SUCCEEDED"),
            }
        )
        client = PlatformClient("tok", transport=recorder.transport())
        seen = []

        def on_start(run):
            seen.append((run.run_id, len(recorder.requests)))

        _ = client.run_workload("wid", {}, timeout=60, on_start=on_start)

        assert seen == [("run-1", 1)]

    def test_non_object_input_is_refused(self):
        """Test that a run input that is not an object is never sent."""
        recorder = Recorder({("POST", "/v2/acts/wid/runs"): run_data("READY")})
        client = PlatformClient("tok", transport=recorder.transport())

        with pytest.raises(PlatformError, match="must be a JSON object, got list"):
            _ = client.start_run("wid", ["a", "b"])

        assert recorder.requests == []

    def test_dataset_reads(self):
        """Test item count and paged item reads."""
        recorder = Recorder(
            {
                ("GET", "/v2/datasets/ds-1"): {"data": {"id": "ds-1", "itemCount": 42}},
                ("GET", "/v2/datasets/ds-1/items"): [{"a": 1}, {"a": 2}],
            }
        )
        client = PlatformClient("tok", transport=recorder.transport())

        assert client.get_dataset_item_count("ds-1") == 42
        assert client.list_dataset_items("ds-1", limit=2) == [{"a": 1}, {"a": 2}]
        params = recorder.requests[1].url.params
        assert params["clean"] == "true"
        assert params["limit"] == "2"
        assert params["offset"] == "0"

    def test_resolve_workload_id(self):
        """Test resolving a technical name."""
        recorder = Recorder({("GET", "/v2/acts/acme~demo-scraper"): {"data": {"id": "Xy7"}}})
        client = PlatformClient("tok", transport=recorder.transport())

        assert client.resolve_workload_id("acme/demo-scraper") == "Xy7"

    def test_http_error(self):
        """Test that an error status becomes a PlatformError with the status code."""
        recorder = Recorder(
            {("GET", "/v2/acts/nope"): httpx.Response(404, json={"error": {"message": "Actor not found"}})}
        )
        client = PlatformClient("tok", transport=recorder.transport())

        with pytest.raises(PlatformError) as excinfo:
            _ = client.resolve_workload_id("nope")

        assert excinfo.value.status_code == 404
        assert str(excinfo.value) == "Platform error (404): Actor not found"

    def test_unexpected_payload(self):
        """Test that a malformed envelope is a PlatformError."""
        recorder = Recorder({("GET", "/v2/datasets/x/items"): {"not": "a list"}})
        client = PlatformClient("tok", transport=recorder.transport())

        with pytest.raises(PlatformError, match="not a list"):
            _ = client.list_dataset_items("x")


class TestChatClient:
    """Tests for ChatClient."""

    def test_complete(self):
        """Test a chat completion round trip."""
        recorder = Recorder(
            {("POST", "/api/v1/chat/completions"): {"choices": [{"message": {"content": "hello"}}]}}
        )
        client = ChatClient("tok", model="m", transport=recorder.transport())

        assert client.complete("hi", temperature=0.1, max_tokens=10) == "hello"
        body = json.loads(recorder.requests[0].content)
        assert body == {
            "model": "m",
            "messages": [{"role": "user", "content": "hi"}],
            "temperature": 0.1,
            "max_tokens": 10,
        }

    def test_empty_choices(self):
        """Test that a reply without content is an LLMError."""
        recorder = Recorder({("POST", "/api/v1/chat/completions"): {"choices": []}})
        client = ChatClient("tok", transport=recorder.transport())

        with pytest.raises(LLMError, match="Invalid response structure"):
            _ = client.complete("hi")

    def test_connection_error(self):
        """Test that transport failures become LLMError."""

        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = ChatClient("tok", transport=httpx.MockTransport(refuse))

        with pytest.raises(LLMError, match="Connection error"):
            _ = client.complete("hi")


class TestExtractJson:
    """Tests for pulling JSON out of model replies."""

    def test_fenced_block(self):
        """Test a fenced json block."""
        assert extract_json('Text\n```json\n{"a": 1}\n```\nmore') == {"a": 1}

    def test_bare_reply(self):
        """Test a reply that is only JSON."""
        assert extract_json(' {"a": [1, 2]} ') == {"a": [1, 2]}

    def test_embedded_object_with_braces_in_strings(self):
        """Test a balanced object whose strings contain braces."""
        assert extract_json('Result: {"a": "}{", "b": {"c": 1}} done') == {"a": "}{", "b": {"c": 1}}

    def test_no_json(self):
        """Test a reply with nothing to parse."""
        with pytest.raises(ValueError, match="No JSON document"):
            _ = extract_json("nothing here")


class TestMetricsClient:
    """Tests for MetricsClient."""

    def make_client(self, recorder: Recorder, attempts: int = 5) -> tuple[MetricsClient, list[float]]:
        sleeps: list[float] = []
        client = MetricsClient(
            "key",
            query_id=7,
            poll_interval=2.0,
            poll_attempts=attempts,
            transport=recorder.transport(),
            sleep=sleeps.append,
        )
        return client, sleeps

    def test_cached_results(self):
        """Test that cached results avoid execution."""
        rows = [{"default_dataset_id": "a"}]
        recorder = Recorder(
            {("GET", "/api/queries/7/results.json"): {"query_result": {"data": {"rows": rows}}}}
        )
        client, sleeps = self.make_client(recorder)

        assert client.execute("Xy7", QueryWindow(days_back=3)) == rows
        params = recorder.requests[0].url.params
        assert params["actor_id"] == "Xy7"
        assert params["days_back"] == "3"
        assert recorder.requests[0].headers["Authorization"] == "Key key"
        assert sleeps == []

    def test_execute_and_poll(self):
        """Test execution followed by job polling."""
        statuses = iter([{"id": "j1", "status": 2}, {"id": "j1", "status": 3, "query_result_id": 99}])
        rows = [{"dataset_id": "b"}]
        recorder = Recorder(
            {
                ("GET", "/api/queries/7/results.json"): httpx.Response(404, json={"message": "No cached result"}),
                ("POST", "/api/queries/7/results"): {"job": {"id": "j1", "status": 1}},
                ("GET", "/api/jobs/j1"): lambda _: {"job": next(statuses)},
                ("GET", "/api/query_results/99.json"): {"query_result": {"data": {"rows": rows}}},
            }
        )
        client, sleeps = self.make_client(recorder)

        assert client.execute("Xy7", QueryWindow()) == rows
        body = json.loads(recorder.requests[1].content)
        assert body["max_age"] == 0
        assert body["parameters"]["actor_id"] == "Xy7"
        assert sleeps == [2.0, 2.0]

    def test_failed_job(self):
        """Test that a failed job is a MetricsError."""
        recorder = Recorder(
            {
                ("POST", "/api/queries/7/results"): {"job": {"id": "j1"}},
                ("GET", "/api/jobs/j1"): {"job": {"id": "j1", "status": 4, "error": "syntax error"}},
            }
        )
        client, _ = self.make_client(recorder)

        with pytest.raises(MetricsError, match="Query job j1 failed: syntax error"):
            _ = client.execute("Xy7", QueryWindow())

    def test_poll_budget(self):
        """Test that polling stops after the configured attempts."""
        recorder = Recorder(
            {
                ("POST", "/api/queries/7/results"): {"job": {"id": "j1"}},
                ("GET", "/api/jobs/j1"): {"job": {"id": "j1", "status": 2}},
            }
        )
        client, sleeps = self.make_client(recorder, attempts=3)

        with pytest.raises(PollTimeoutError, match="did not finish after 3 attempts"):
            _ = client.execute("Xy7", QueryWindow())

        assert len(sleeps) == 3
        assert recorder.paths().count("/api/jobs/j1") == 3


class TestGitHubClient:
    """Tests for GitHubClient."""

    def test_get_file_decodes_content(self):
        """Test reading a base64-encoded file."""
        encoded = base64.b64encode(b'{"name": "demo"}').decode()
        recorder = Recorder(
            {
                ("GET", "/repos/acme/demo-scraper/contents/.actor/actor.json"): {
                    "name": "actor.json",
                    "path": ".actor/actor.json",
                    "type": "file",
                    "sha": "abc",
                    "content": encoded,
                    "encoding": "base64",
                }
            }
        )
        client = GitHubClient("tok", transport=recorder.transport())

        found = client.get_file(REPO, ".actor/actor.json", "main")

        assert found is not None
        assert found.content == '{"name": "demo"}'
        assert recorder.requests[0].url.params["ref"] == "main"

    @pytest.mark.parametrize(
        "content",
        [base64.b64encode(b"\xff\xfe not utf-8").decode(), "abc"],
        ids=["invalid-utf8", "bad-padding"],
    )
    def test_undecodable_file(self, content):
        """Test that content that cannot be decoded is a SourceControlError."""
        recorder = Recorder(
            {
                ("GET", "/repos/acme/demo-scraper/contents/actor.json"): {
                    "name": "actor.json",
                    "path": "actor.json",
                    "type": "file",
                    "content": content,
                    "encoding": "base64",
                }
            }
        )
        client = GitHubClient("tok", transport=recorder.transport())

        with pytest.raises(SourceControlError, match="Cannot decode actor.json"):
            _ = client.get_file(REPO, "actor.json", "main")

    def test_malformed_contents_entry(self):
        """Test that a contents entry missing its fields is a SourceControlError."""
        recorder = Recorder(
            {("GET", "/repos/acme/demo-scraper/contents/actor.json"): {"type": "file"}}
        )
        client = GitHubClient("tok", transport=recorder.transport())

        with pytest.raises(SourceControlError, match="Unexpected GitHub contents response"):
            _ = client.get_file(REPO, "actor.json", "main")

    def test_missing_file_and_directory(self):
        """Test that 404 means absent rather than an error."""
        client = GitHubClient("tok", transport=Recorder({}).transport())

        assert client.get_file(REPO, "actor.json", "main") is None
        assert client.list_directory(REPO, "actors", "main") == []

    def test_list_directory(self):
        """Test a directory listing."""
        recorder = Recorder(
            {
                ("GET", "/repos/acme/demo-scraper/contents/actors"): [
                    {"name": "demo-scraper", "path": "actors/demo-scraper", "type": "dir"},
                    {"name": "README.md", "path": "actors/README.md", "type": "file"},
                ]
            }
        )
        client = GitHubClient("tok", transport=recorder.transport())

        entries = client.list_directory(REPO, "actors", "main")

        assert [(e.name, e.type) for e in entries] == [("demo-scraper", "dir"), ("README.md", "file")]

    def test_commit_sequence(self):
        """Test the git object calls used to publish."""
        recorder = Recorder(
            {
                ("POST", "/repos/acme/demo-scraper/git/blobs"): {"sha": "blob1"},
                ("GET", "/repos/acme/demo-scraper/git/commits/c0"): {"sha": "c0", "tree": {"sha": "t0"}},
                ("POST", "/repos/acme/demo-scraper/git/trees"): {"sha": "t1"},
                ("POST", "/repos/acme/demo-scraper/git/commits"): {"sha": "c1"},
                ("PATCH", "/repos/acme/demo-scraper/git/refs/heads/feature"): {"object": {"sha": "c1"}},
            }
        )
        client = GitHubClient("tok", transport=recorder.transport())

        blob = client.create_blob(REPO, "content")
        tree = client.create_tree(REPO, client.get_commit_tree(REPO, "c0"), {"a/b.json": blob})
        commit = client.create_commit(REPO, "msg", tree, ["c0"])
        client.update_branch(REPO, "feature", commit)

        tree_body = json.loads(recorder.requests[2].content)
        assert tree_body == {
            "base_tree": "t0",
            "tree": [{"path": "a/b.json", "mode": "100644", "type": "blob", "sha": "blob1"}],
        }
        assert json.loads(recorder.requests[3].content)["parents"] == ["c0"]
        assert json.loads(recorder.requests[4].content) == {"sha": "c1"}

    def test_create_pull_request(self):
        """Test opening a pull request."""
        recorder = Recorder(
            {
                ("POST", "/repos/acme/demo-scraper/pulls"): {
                    "number": 5,
                    "html_url": "https://github.com/acme/demo-scraper/pull/5",
                    "title": "t",
                }
            }
        )
        client = GitHubClient("tok", transport=recorder.transport())

        pull = client.create_pull_request(REPO, title="t", body="b", head="feature", base="main")

        assert pull.url == "https://github.com/acme/demo-scraper/pull/5"
        assert json.loads(recorder.requests[0].content)["head"] == "feature"

    def test_existing_branch(self):
        """Test that an API error carries its message and status."""
        recorder = Recorder(
            {
                ("POST", "/repos/acme/demo-scraper/git/refs"): httpx.Response(
                    422, json={"message": "Reference already exists"}
                )
            }
        )
        client = GitHubClient("tok", transport=recorder.transport())

        with pytest.raises(SourceControlError) as excinfo:
            client.create_branch(REPO, "feature", "c0")

        assert excinfo.value.status_code == 422
        assert str(excinfo.value) == "GitHub error (422): Reference already exists"
