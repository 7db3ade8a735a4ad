"""
Unit tests for the tool surface.
"""

import shutil
import tempfile
import unittest
from pathlib import Path

import httpx

from repodigest.core.config import DigestConfig
from repodigest.core.exceptions import (
    AuthRequired,
    InvalidArgumentError,
    InvalidRepositoryError,
    NotFound,
    RateLimited,
    ReferenceNotFound,
    UnknownToolError,
)
from repodigest.core.models import BlobContent, EntryKind, TreeEntry
from repodigest.ingestion.filters import is_binary
from repodigest.providers import GitHubProvider, GitLabProvider
from repodigest.tools import ToolSurface, error_payload


class StubProvider:
    """Provider for a hosted repository, recording the tokens it was built with."""

    name = "stub"
    supports_recursive_listing = True

    def __init__(self, files, resolve_error=None):
        self.files = files
        self.resolve_error = resolve_error
        self.closed = False

    async def resolve(self, reference):
        if self.resolve_error is not None:
            raise self.resolve_error
        return "c0ffee"

    async def list_tree(self, root, path="", recursive=False):
        return [TreeEntry(p, EntryKind.FILE, len(d)) for p, d in self.files.items()]

    async def fetch_blob(self, root, path):
        if path not in self.files:
            raise NotFound(path, backend=self.name)
        data = self.files[path]
        return BlobContent(data=data, is_text=not is_binary(data), size=len(data))

    async def aclose(self):
        self.closed = True

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()


class TestToolSurfaceWithStub(unittest.IsolatedAsyncioTestCase):
    """Tests for argument handling and tool dispatch."""

    def setUp(self):
        self.files = {
            "README.md": b"# Widgets\n",
            "src/app.py": b"print('app')\n",
            "tests/test_app.py": b"assert True\n",
            "assets/logo.png": b"\x89PNG\x00\x00",
        }
        self.calls = []
        self.providers = []

        def factory(reference, config, github_token=None, gitlab_token=None):
            self.calls.append((reference, github_token, gitlab_token))
            provider = StubProvider(self.files)
            self.providers.append(provider)
            return provider

        self.surface = ToolSurface(DigestConfig(), provider_factory=factory)

    async def test_tool_names(self):
        self.assertEqual(
            self.surface.tool_names,
            ["find_repositories", "repository_digest", "repository_read", "repository_tree_view"],
        )

    async def test_unknown_tool(self):
        with self.assertRaises(UnknownToolError) as ctx:
            await self.surface.call("search_code", {})

        self.assertIn("repository_digest", ctx.exception.details["available"])

    async def test_missing_repo(self):
        with self.assertRaises(InvalidArgumentError):
            await self.surface.call("repository_digest", {})

    async def test_malformed_repo(self):
        with self.assertRaises(InvalidRepositoryError):
            await self.surface.call("repository_digest", {"repo": "github:only-owner"})

    async def test_bad_size_argument(self):
        with self.assertRaises(InvalidArgumentError):
            await self.surface.call(
                "repository_digest", {"repo": "github:octo/widgets", "max_file_size": "big"}
            )

        with self.assertRaises(InvalidArgumentError):
            await self.surface.call(
                "repository_digest", {"repo": "github:octo/widgets", "max_total_size": -5}
            )

    async def test_digest(self):
        response = await self.surface.call("repository_digest", {
            "repo": "github:octo/widgets",
            "git_ref": "tag:v1.0",
            "exclude_patterns": "tests, *.png",
            "github_token": "ghp_call",
        })

        summary = response["summary"]
        self.assertEqual(summary["repository"], "github:octo/widgets@v1.0")
        self.assertEqual(summary["root"], "c0ffee")
        self.assertEqual(summary["files_included"], 2)
        self.assertEqual(summary["files_skipped"]["skipped-excluded"], 2)
        self.assertIn("FILE: src/app.py", response["digest"])
        self.assertNotIn("FILE: tests/test_app.py", response["digest"])
        self.assertTrue(response["tree"].startswith("widgets/"))

        reference, github_token, gitlab_token = self.calls[0]
        self.assertEqual(reference.revision, "v1.0")
        self.assertEqual(github_token, "ghp_call")
        self.assertIsNone(gitlab_token)
        self.assertTrue(self.providers[0].closed)

    async def test_digest_include_list(self):
        response = await self.surface.call("repository_digest", {
            "repo": "https://github.com/octo/widgets",
            "include_patterns": ["*.py"],
            "max_total_size": 13,
        })

        summary = response["summary"]
        self.assertEqual(summary["files_included"], 1)
        self.assertEqual(summary["files_skipped"]["skipped-digest-full"], 1)
        self.assertEqual(summary["files_skipped"]["skipped-not-included"], 2)

    async def test_tree_view(self):
        response = await self.surface.call("repository_tree_view", {
            "repo": "gitlab:group/widgets",
            "exclude_patterns": ["assets"],
        })

        self.assertEqual(response["file_count"], 3)
        self.assertIn("└── app.py", response["tree"])
        self.assertNotIn("logo.png", response["tree"])

    async def test_read(self):
        response = await self.surface.call("repository_read", {
            "repo": "github:octo/widgets",
            "path": "/src/app.py",
        })

        self.assertEqual(response["path"], "src/app.py")
        self.assertEqual(response["content"], "```py\nprint('app')\n\n```")
        self.assertFalse(response["binary"])

    async def test_read_binary(self):
        response = await self.surface.call("repository_read", {
            "repo": "github:octo/widgets",
            "path": "assets/logo.png",
        })

        self.assertTrue(response["binary"])
        self.assertIsNone(response["content"])

    async def test_read_missing(self):
        with self.assertRaises(NotFound):
            await self.surface.call("repository_read", {
                "repo": "github:octo/widgets",
                "path": "nope.py",
            })
        self.assertTrue(self.providers[0].closed)

    async def test_read_requires_path(self):
        with self.assertRaises(InvalidArgumentError):
            await self.surface.call("repository_read", {"repo": "github:octo/widgets"})

    async def test_resolve_error_surfaces(self):
        def failing(reference, config, github_token=None, gitlab_token=None):
            return StubProvider(self.files, resolve_error=AuthRequired("private"))

        surface = ToolSurface(DigestConfig(), provider_factory=failing)

        with self.assertRaises(AuthRequired):
            await surface.call("repository_digest", {"repo": "github:octo/private"})


class TestToolSurfaceLocal(unittest.IsolatedAsyncioTestCase):
    """End-to-end tests against a local directory."""

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        root = Path(self.tmpdir)
        (root / "pkg").mkdir()
        (root / "pkg" / "core.py").write_text("VALUE = 1\n")
        (root / "pkg" / "__pycache__").mkdir()
        (root / "pkg" / "__pycache__" / "core.cpython-312.pyc").write_bytes(b"\x00\x01")
        (root / "notes.txt").write_text("remember\n")
        self.surface = ToolSurface(DigestConfig())

    def tearDown(self):
        shutil.rmtree(self.tmpdir)

    async def test_digest_local_directory(self):
        response = await self.surface.call("repository_digest", {"repo": self.tmpdir})

        summary = response["summary"]
        self.assertEqual(summary["root"], "worktree")
        self.assertEqual(summary["files_included"], 2)
        self.assertEqual(summary["files_skipped"]["skipped-excluded"], 1)
        self.assertIn("VALUE = 1", response["digest"])

    async def test_revision_on_plain_directory(self):
        with self.assertRaises(ReferenceNotFound):
            await self.surface.call(
                "repository_digest", {"repo": self.tmpdir, "git_ref": "main"}
            )

    async def test_read_local_file(self):
        response = await self.surface.call(
            "repository_read", {"repo": self.tmpdir, "path": "notes.txt"}
        )

        self.assertEqual(response["content"], "remember\n")


class TestFindRepositoriesTool(unittest.IsolatedAsyncioTestCase):
    """Tests for repository search across GitHub and GitLab."""

    async def asyncSetUp(self):
        self.github_routes = {}
        self.gitlab_routes = {}
        self.tokens = []
        self.providers = []

        def router(routes):
            def handler(request: httpx.Request) -> httpx.Response:
                route = routes.get(request.url.path)
                if route is None:
                    return httpx.Response(404, json={"message": "Not Found"})
                return route
            return httpx.AsyncClient(transport=httpx.MockTransport(handler))

        self.clients = [router(self.github_routes), router(self.gitlab_routes)]

        def factory(config, github_token=None, gitlab_token=None):
            self.tokens.append((github_token, gitlab_token))
            self.providers = [
                GitHubProvider("", token=github_token, client=self.clients[0]),
                GitLabProvider("", token=gitlab_token, client=self.clients[1]),
            ]
            return self.providers

        self.surface = ToolSurface(DigestConfig(), search_factory=factory)

    async def asyncTearDown(self):
        for client in self.clients:
            await client.aclose()

    async def test_merged_results(self):
        self.github_routes["/search/repositories"] = httpx.Response(200, json={"items": [
            {"full_name": "octo/widgets", "stargazers_count": 30, "description": "Widgets"},
        ]})
        self.gitlab_routes["/api/v4/projects"] = httpx.Response(200, json=[
            {"path_with_namespace": "group/widgets", "star_count": 90, "description": "More"},
        ])

        response = await self.surface.call(
            "find_repositories", {"query": "widgets", "limit": "5", "github_token": "ghp_call"}
        )

        self.assertEqual(response["count"], 2)
        self.assertEqual(
            [r["repository"] for r in response["repositories"]],
            ["gitlab:group/widgets", "github:octo/widgets"],
        )
        self.assertIn("- gitlab:group/widgets (90 stars)", response["text"])
        self.assertEqual(self.tokens, [("ghp_call", None)])

    async def test_failing_provider_dropped(self):
        self.github_routes["/search/repositories"] = httpx.Response(
            422, json={"message": "Validation Failed"}
        )
        self.gitlab_routes["/api/v4/projects"] = httpx.Response(200, json=[
            {"path_with_namespace": "group/widgets", "star_count": 1},
        ])

        response = await self.surface.call("find_repositories", {"query": "widgets"})

        self.assertEqual(
            [r["repository"] for r in response["repositories"]], ["gitlab:group/widgets"]
        )

    async def test_no_results(self):
        self.github_routes["/search/repositories"] = httpx.Response(200, json={"items": []})
        self.gitlab_routes["/api/v4/projects"] = httpx.Response(200, json=[])

        response = await self.surface.call("find_repositories", {"query": "nothing-here"})

        self.assertEqual(response["count"], 0)
        self.assertEqual(
            response["text"], 'No repositories found matching query: "nothing-here"'
        )

    async def test_query_required(self):
        with self.assertRaises(InvalidArgumentError):
            await self.surface.call("find_repositories", {"query": "  "})

    async def test_bad_limit(self):
        with self.assertRaises(InvalidArgumentError):
            await self.surface.call("find_repositories", {"query": "x", "limit": 0})


class TestErrorPayload(unittest.TestCase):
    """Tests for structured error rendering."""

    def test_rate_limited(self):
        payload = error_payload(RateLimited("slow down", retry_after=4.0, backend="github"))

        self.assertEqual(payload["error"]["type"], "RateLimited")
        self.assertEqual(payload["error"]["retry_after"], 4.0)
        self.assertEqual(payload["error"]["message"], "[github] slow down")

    def test_not_found(self):
        payload = error_payload(NotFound("a.txt"))

        self.assertEqual(payload["error"]["details"], {"path": "a.txt"})
        self.assertIsNone(payload["error"]["retry_after"])

    def test_foreign_exception(self):
        payload = error_payload(ValueError("bad"))

        self.assertEqual(payload["error"]["type"], "ValueError")
        self.assertEqual(payload["error"]["details"], {})


if __name__ == "__main__":
    unittest.main()
