"""
Unit tests for the GitHub provider against a mocked HTTP transport.
"""

import base64
import json
import time
import unittest

import httpx

from repodigest.core.exceptions import (
    AuthRequired,
    BackendUnavailable,
    NotFound,
    RateLimited,
    ReferenceNotFound,
)
from repodigest.core.models import BackendKind, EntryKind, RepositoryReference
from repodigest.providers.github import GitHubProvider

API = "https://api.github.com"
SHA = "4f1b2c3d4e5f60718293a4b5c6d7e8f901234567"


def _json(data, status=200, headers=None):
    return httpx.Response(status, json=data, headers=headers)


class GitHubProviderTestCase(unittest.IsolatedAsyncioTestCase):
    """Base class wiring a provider to a route table."""

    token = None

    async def asyncSetUp(self):
        self.routes = {}
        self.requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            route = self.routes.get(request.url.path)
            if route is None:
                return _json({"message": "Not Found"}, status=404)
            return route(request) if callable(route) else route

        self.client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        self.provider = GitHubProvider("octo/widgets", token=self.token, client=self.client)
        self.reference = RepositoryReference.create(BackendKind.GITHUB, "octo/widgets")

    async def asyncTearDown(self):
        await self.provider.aclose()
        await self.client.aclose()


class TestGitHubResolve(GitHubProviderTestCase):
    """Tests for revision resolution."""

    token = "ghp_example"

    async def test_default_branch(self):
        self.routes["/repos/octo/widgets"] = _json({"default_branch": "trunk"})
        self.routes["/repos/octo/widgets/commits/heads/trunk"] = _json({"sha": SHA})

        root = await self.provider.resolve(self.reference)

        self.assertEqual(root, SHA)

    async def test_tag(self):
        self.routes["/repos/octo/widgets/commits/tags/v1.2.0"] = _json({"sha": SHA})

        root = await self.provider.resolve(self.reference.with_revision("tag:v1.2.0"))

        self.assertEqual(root, SHA)

    async def test_bare_revision(self):
        self.routes["/repos/octo/widgets/commits/main"] = _json({"sha": SHA})

        root = await self.provider.resolve(self.reference.with_revision("main"))

        self.assertEqual(root, SHA)

    async def test_unknown_revision(self):
        with self.assertRaises(ReferenceNotFound):
            await self.provider.resolve(self.reference.with_revision("nope"))

    async def test_unprocessable_revision(self):
        self.routes["/repos/octo/widgets/commits/bad..ref"] = _json({}, status=422)

        with self.assertRaises(ReferenceNotFound):
            await self.provider.resolve(self.reference.with_revision("bad..ref"))

    async def test_sends_token(self):
        self.routes["/repos/octo/widgets/commits/main"] = _json({"sha": SHA})

        await self.provider.resolve(self.reference.with_revision("main"))

        self.assertEqual(self.requests[0].headers["Authorization"], "Bearer ghp_example")
        self.assertEqual(self.requests[0].headers["X-GitHub-Api-Version"], "2022-11-28")


class TestGitHubErrors(GitHubProviderTestCase):
    """Tests for status-to-error mapping."""

    async def test_primary_rate_limit(self):
        reset = int(time.time()) + 30
        self.routes["/repos/octo/widgets/commits/main"] = _json(
            {"message": "API rate limit exceeded"},
            status=403,
            headers={"x-ratelimit-remaining": "0", "x-ratelimit-reset": str(reset)},
        )

        with self.assertRaises(RateLimited) as ctx:
            await self.provider.resolve(self.reference.with_revision("main"))

        self.assertIsNotNone(ctx.exception.retry_after)
        self.assertLessEqual(ctx.exception.retry_after, 30)
        self.assertGreater(ctx.exception.retry_after, 20)

    async def test_retry_after(self):
        self.routes["/repos/octo/widgets/commits/main"] = _json(
            {"message": "slow down"}, status=429, headers={"Retry-After": "7"}
        )

        with self.assertRaises(RateLimited) as ctx:
            await self.provider.resolve(self.reference.with_revision("main"))

        self.assertEqual(ctx.exception.retry_after, 7.0)

    async def test_secondary_rate_limit_without_hint(self):
        self.routes["/repos/octo/widgets/commits/main"] = _json(
            {"message": "You have exceeded a secondary rate limit."}, status=403
        )

        with self.assertRaises(RateLimited) as ctx:
            await self.provider.resolve(self.reference.with_revision("main"))

        self.assertIsNone(ctx.exception.retry_after)

    async def test_forbidden(self):
        self.routes["/repos/octo/widgets/commits/main"] = _json(
            {"message": "Resource not accessible"}, status=403
        )

        with self.assertRaises(AuthRequired) as ctx:
            await self.provider.resolve(self.reference.with_revision("main"))

        self.assertIn("token", str(ctx.exception))

    async def test_unauthorized(self):
        self.routes["/repos/octo/widgets/commits/main"] = _json({}, status=401)

        with self.assertRaises(AuthRequired):
            await self.provider.resolve(self.reference.with_revision("main"))

    async def test_server_error(self):
        self.routes["/repos/octo/widgets/commits/main"] = _json({}, status=502)

        with self.assertRaises(BackendUnavailable):
            await self.provider.resolve(self.reference.with_revision("main"))

    async def test_transport_error(self):
        def fail(request):
            raise httpx.ConnectError("connection refused", request=request)

        self.routes["/repos/octo/widgets/commits/main"] = fail

        with self.assertRaises(BackendUnavailable):
            await self.provider.resolve(self.reference.with_revision("main"))


class TestGitHubListing(GitHubProviderTestCase):
    """Tests for tree listing."""

    async def test_recursive_listing_follows_pages(self):
        tree_path = f"/repos/octo/widgets/git/trees/{SHA}"

        def tree(request):
            if request.url.params.get("page") == "2":
                return _json({"tree": [
                    {"path": "src/b.py", "type": "blob", "size": 20},
                ], "truncated": False})
            return _json(
                {"tree": [
                    {"path": "README.md", "type": "blob", "size": 10},
                    {"path": "src", "type": "tree"},
                    {"path": "vendor/lib", "type": "commit"},
                ], "truncated": False},
                headers={"Link": f'<{API}{tree_path}?recursive=1&page=2>; rel="next"'},
            )

        self.routes[tree_path] = tree

        entries = await self.provider.list_tree(SHA, recursive=True)

        self.assertEqual(
            [(e.path, e.kind, e.size) for e in entries],
            [
                ("README.md", EntryKind.FILE, 10),
                ("src", EntryKind.DIRECTORY, None),
                ("src/b.py", EntryKind.FILE, 20),
            ],
        )
        self.assertEqual(self.requests[0].url.params["recursive"], "1")

    async def test_truncated_listing_falls_back_to_walk(self):
        self.routes[f"/repos/octo/widgets/git/trees/{SHA}"] = _json(
            {"tree": [{"path": "README.md", "type": "blob", "size": 10}], "truncated": True}
        )
        self.routes["/repos/octo/widgets/contents"] = _json([
            {"path": "README.md", "type": "file", "size": 10},
            {"path": "src", "type": "dir"},
        ])
        self.routes["/repos/octo/widgets/contents/src"] = _json([
            {"path": "src/a.py", "type": "file", "size": 5},
            {"path": "src/sub", "type": "dir"},
        ])
        self.routes["/repos/octo/widgets/contents/src/sub"] = _json([
            {"path": "src/sub/c.py", "type": "file", "size": 7},
        ])

        entries = await self.provider.list_tree(SHA, recursive=True)
        files = sorted(e.path for e in entries if e.is_file)

        self.assertEqual(files, ["README.md", "src/a.py", "src/sub/c.py"])

    async def test_children_listing(self):
        self.routes["/repos/octo/widgets/contents/src"] = _json([
            {"path": "src/a.py", "type": "file", "size": 5},
            {"path": "src/sub", "type": "dir"},
        ])

        entries = await self.provider.list_tree(SHA, "src")

        self.assertEqual([e.path for e in entries], ["src/a.py", "src/sub"])
        self.assertEqual(self.requests[0].url.params["ref"], SHA)

    async def test_listing_a_file(self):
        self.routes["/repos/octo/widgets/contents/README.md"] = _json(
            {"type": "file", "path": "README.md"}
        )

        with self.assertRaises(NotFound):
            await self.provider.list_tree(SHA, "README.md")


class TestGitHubFetch(GitHubProviderTestCase):
    """Tests for blob fetching."""

    async def test_raw_content(self):
        self.routes["/repos/octo/widgets/contents/src/a.py"] = httpx.Response(
            200, content=b"x = 1\n", headers={"Content-Type": "application/vnd.github.raw"}
        )

        blob = await self.provider.fetch_blob(SHA, "src/a.py")

        self.assertEqual(blob.data, b"x = 1\n")
        self.assertTrue(blob.is_text)
        self.assertEqual(self.requests[0].headers["Accept"], "application/vnd.github.raw+json")

    async def test_json_envelope_decoded(self):
        encoded = base64.b64encode(b"hello world\n").decode()
        self.routes["/repos/octo/widgets/contents/notes.txt"] = httpx.Response(
            200,
            content=json.dumps({
                "type": "file",
                "encoding": "base64",
                "content": encoded[:8] + "\n" + encoded[8:],
            }).encode(),
            headers={"Content-Type": "application/json; charset=utf-8"},
        )

        blob = await self.provider.fetch_blob(SHA, "notes.txt")

        self.assertEqual(blob.data, b"hello world\n")

    async def test_directory_is_not_found(self):
        self.routes["/repos/octo/widgets/contents/src"] = _json([{"path": "src/a.py", "type": "file"}])

        with self.assertRaises(NotFound):
            await self.provider.fetch_blob(SHA, "src")

    async def test_missing_file(self):
        with self.assertRaises(NotFound):
            await self.provider.fetch_blob(SHA, "missing.txt")

    async def test_binary_content(self):
        self.routes["/repos/octo/widgets/contents/logo.png"] = httpx.Response(
            200, content=b"\x89PNG\r\n\x1a\n\x00\x00", headers={"Content-Type": "image/png"}
        )

        blob = await self.provider.fetch_blob(SHA, "logo.png")

        self.assertFalse(blob.is_text)
        self.assertEqual(blob.size, 10)



class TestGitHubSearch(GitHubProviderTestCase):
    """Tests for repository search."""

    async def test_search(self):
        def search(request):
            self.assertEqual(request.url.params["q"], "widgets lang:python")
            self.assertEqual(request.url.params["per_page"], "2")
            return _json({"items": [
                {"full_name": "octo/widgets", "stargazers_count": 42, "description": "Widgets"},
                {"full_name": "acme/widgets", "stargazers_count": 7, "description": None},
            ]})

        self.routes["/search/repositories"] = search

        matches = await self.provider.search_repositories("widgets lang:python", limit=2)

        self.assertEqual([m.identifier for m in matches], ["github:octo/widgets", "github:acme/widgets"])
        self.assertEqual(matches[0].stars, 42)
        self.assertEqual(matches[1].to_dict()["description"], "")

    async def test_limit_capped_at_page_size(self):
        def search(request):
            self.assertEqual(request.url.params["per_page"], "100")
            return _json({"items": []})

        self.routes["/search/repositories"] = search

        self.assertEqual(await self.provider.search_repositories("x", limit=500), [])

    async def test_search_rate_limited(self):
        self.routes["/search/repositories"] = _json(
            {"message": "API rate limit exceeded"},
            status=403,
            headers={"x-ratelimit-remaining": "0", "x-ratelimit-reset": str(int(time.time()) + 30)},
        )

        with self.assertRaises(RateLimited):
            await self.provider.search_repositories("widgets")


if __name__ == "__main__":
    unittest.main()
