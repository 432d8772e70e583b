#!/usr/bin/env python3
"""
test_client.py
--------------
Unit tests for RepositoryClient against the in-memory GitHub fake.

Key areas tested:
    - Reads: files, directories, not-found, large-file blob fallback
    - Single-file writes with sha conflicts absorbed by retry
    - Batch commits, including a moving branch tip
    - Create-only image uploads with name disambiguation
    - URL helpers and filename sanitizing
"""
# --- Standard library imports ---
import base64
import json

# --- Third party imports ---
import httpx
import pytest

# --- Local imports ---
from midweave.core.exceptions import RemoteConflictError, RemoteStoreError
from midweave.remote import FileUpdate, RepositoryClient, sanitize_filename


class TestReads:
    """get_file / list_tree / list_directory / current_sha."""

    async def test_get_file(self, remote, github):
        github.seed("data/entries/1.json", {"title": "x"})
        remote_file = await remote.get_file("data/entries/1.json")
        assert json.loads(remote_file.text) == {"title": "x"}
        assert remote_file.sha == await remote.current_sha("data/entries/1.json")

    async def test_missing_file_is_none(self, remote):
        assert await remote.get_file("data/entries/404.json") is None
        assert await remote.current_sha("data/entries/404.json") is None

    async def test_directory_is_not_a_file(self, remote, github):
        github.seed("data/entries/1.json", "{}")
        with pytest.raises(RemoteStoreError, match="not a file"):
            await remote.get_file("data/entries")

    async def test_list_directory(self, remote, github):
        github.seed("data/entries/1.json", "{}")
        github.seed("data/entries/2.json", "{}")
        github.seed("data/entries/archive/old.json", "{}")
        items = await remote.list_directory("data/entries")
        assert [(i.name, i.is_file) for i in items] == [
            ("1.json", True),
            ("2.json", True),
            ("archive", False),
        ]

    async def test_missing_directory_is_empty(self, remote):
        assert await remote.list_directory("images/originals") == []

    async def test_listing_is_not_capped_by_contents_api(self, remote, github):
        github.listing_limit = 2
        for n in range(5):
            github.seed(f"images/originals/IMG_{n}.PNG", b"x")
        items = await remote.list_directory("images/originals")
        assert len(items) == 5
        assert github.count("GET", "/contents/") == 0

    async def test_list_tree_reports_files_and_dirs(self, remote, github):
        github.seed("data/entries/1.json", "{}")
        items = {item.path: item.type for item in await remote.list_tree()}
        assert items == {
            "data": "dir",
            "data/entries": "dir",
            "data/entries/1.json": "file",
        }

    async def test_truncated_tree_raises(self, remote, github):
        github.seed("data/entries/1.json", "{}")
        github.tree_limit = 1
        with pytest.raises(RemoteStoreError, match="truncated"):
            await remote.list_directory("data/entries")

    async def test_large_file_uses_blob_api(self, remote_config):
        payload = base64.b64encode(b"big contents").decode("ascii")

        def handler(request):
            if "/contents/" in request.url.path:
                return httpx.Response(
                    200,
                    json={"type": "file", "path": "big.bin", "sha": "b1", "size": 12, "content": ""},
                )
            assert request.url.path.endswith("/git/blobs/b1")
            return httpx.Response(200, json={"sha": "b1", "content": payload})

        async with RepositoryClient(
            remote_config, transport=httpx.MockTransport(handler)
        ) as client:
            remote_file = await client.get_file("big.bin")
        assert remote_file.content == b"big contents"

    async def test_network_error_is_remote_error(self, remote_config):
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        async with RepositoryClient(
            remote_config, transport=httpx.MockTransport(handler)
        ) as client:
            with pytest.raises(RemoteStoreError, match="failed"):
                await client.get_file("data/entries/1.json")


class TestPutFile:
    """Single-file create / update with revision checks."""

    async def test_create_then_update(self, remote, github):
        await remote.put_file("notes/a.txt", "one")
        await remote.put_file("notes/a.txt", "two")
        assert github.files["notes/a.txt"] == b"two"
        assert github.messages == ["Create notes/a.txt", "Update notes/a.txt"]

    async def test_stale_sha_is_retried_with_fresh_sha(self, remote, github):
        github.seed("notes/a.txt", "one")
        await remote.put_file("notes/a.txt", "two", expected_sha="stale")
        assert github.files["notes/a.txt"] == b"two"
        assert github.count("PUT") == 2

    async def test_conflict_absorbed(self, remote, github):
        github.fail("PUT", "notes/a.txt", status=409, times=2)
        await remote.put_file("notes/a.txt", "v")
        assert github.files["notes/a.txt"] == b"v"
        assert github.count("PUT") == 3

    async def test_conflict_exhausts_attempts(self, remote, github):
        github.fail("PUT", "notes/a.txt", status=409, times=10)
        with pytest.raises(RemoteConflictError, match="after 3 attempts"):
            await remote.put_file("notes/a.txt", "v")
        assert github.count("PUT") == 3

    async def test_sha_hint_on_422_is_conflict(self, remote, github):
        github.fail("PUT", "notes/a.txt", status=422, message="sha does not match", times=1)
        await remote.put_file("notes/a.txt", "v")
        assert github.count("PUT") == 2

    async def test_other_422_is_not_retried(self, remote, github):
        github.fail("PUT", "notes/a.txt", status=422, message="Invalid path", times=1)
        with pytest.raises(RemoteStoreError) as exc_info:
            await remote.put_file("notes/a.txt", "v")
        assert not isinstance(exc_info.value, RemoteConflictError)
        assert exc_info.value.status_code == 422
        assert github.count("PUT") == 1


class TestDeleteFile:
    """Deletes are idempotent."""

    async def test_delete_existing(self, remote, github):
        github.seed("notes/a.txt", "x")
        assert await remote.delete_file("notes/a.txt") is True
        assert "notes/a.txt" not in github.files
        assert github.messages[-1] == "Delete notes/a.txt"

    async def test_delete_absent(self, remote):
        assert await remote.delete_file("notes/none.txt") is False

    async def test_delete_conflict_retried(self, remote, github):
        github.seed("notes/a.txt", "x")
        github.fail("DELETE", "notes/a.txt", status=409, times=1)
        assert await remote.delete_file("notes/a.txt") is True
        assert github.count("DELETE") == 2


class TestBatchCommit:
    """Multi-path commits through the git data API."""

    async def test_writes_and_deletes_in_one_commit(self, remote, github):
        github.seed("images/originals/OLD.PNG", b"old")
        commit = await remote.batch_commit(
            [
                FileUpdate("data/entries/5.json", '{"id": "5"}'),
                FileUpdate("images/originals/NEW.PNG", b"\x89PNG"),
                FileUpdate("images/originals/OLD.PNG", None),
            ],
            "Create entry 5",
        )
        assert commit == github.head
        assert github.files["images/originals/NEW.PNG"] == b"\x89PNG"
        assert "images/originals/OLD.PNG" not in github.files
        assert github.messages == ["Create entry 5"]
        assert github.count("PATCH") == 1

    async def test_moved_tip_restarts_sequence(self, remote, github):
        github.fail(
            "PATCH", "/git/refs/heads/main", status=422,
            message="Update is not a fast forward", times=1,
        )
        await remote.batch_commit([FileUpdate("a.json", "{}")], "Create a")
        assert "a.json" in github.files
        assert github.count("GET", "/git/ref/heads/main") == 2
        assert github.count("PATCH") == 2

    async def test_persistent_conflict_raises(self, remote, github):
        github.fail("PATCH", "/git/refs/heads/main", status=409, times=10)
        with pytest.raises(RemoteConflictError, match="Batch commit rejected"):
            await remote.batch_commit([FileUpdate("a.json", "{}")], "Create a")
        assert "a.json" not in github.files

    async def test_empty_batch_is_noop(self, remote, github):
        assert await remote.batch_commit([], "nothing") is None
        assert github.calls == []


class TestUploadImage:
    """Create-only uploads never overwrite an existing file."""

    async def test_plain_name(self, remote, github):
        url = await remote.upload_image(b"img", "my photo.png")
        assert url == remote.raw_url("images/originals/MY_PHOTO.PNG")
        assert github.files["images/originals/MY_PHOTO.PNG"] == b"img"
        assert github.messages == ["Upload image: MY_PHOTO.PNG"]

    async def test_taken_name_gets_timestamp_prefix(self, remote, github):
        github.seed("images/originals/PHOTO.PNG", b"existing")
        url = await remote.upload_image(b"new", "photo.png")
        path = RepositoryClient.path_from_url(url)
        assert path != "images/originals/PHOTO.PNG"
        assert path.endswith("_PHOTO.PNG")
        assert github.files["images/originals/PHOTO.PNG"] == b"existing"
        assert github.files[path] == b"new"

    async def test_all_candidates_taken(self, remote, github):
        github.fail("PUT", "images/originals/", status=409, times=3)
        with pytest.raises(RemoteConflictError, match="No free name"):
            await remote.upload_image(b"img", "photo.png")

    def test_candidate_paths_order(self, remote):
        plain, stamped, hashed = remote.candidate_paths(b"data", "a.png")
        assert plain == "images/originals/A.PNG"
        stamp = stamped.rsplit("/", 1)[-1].split("_")[0]
        assert stamped == f"images/originals/{stamp}_A.PNG"
        assert hashed.startswith(f"images/originals/{stamp}_")
        assert len(hashed.rsplit("/", 1)[-1].split("_")[1]) == 8


class TestDeploymentMarker:
    async def test_writes_marker(self, remote, github):
        path = await remote.write_deployment_marker()
        assert path.startswith("data/.deployment/")
        assert github.json_file(path)["source"] == "midweave"


class TestHelpers:
    """Pure URL and filename helpers."""

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("photo.png", "PHOTO.PNG"),
            ("../../etc/My Photo (1).png", "MY_PHOTO__1_.PNG"),
            ("C:\\Users\\me\\pic.jpg", "PIC.JPG"),
            (".hidden.webp", "HIDDEN.WEBP"),
            ("", "IMAGE"),
        ],
    )
    def test_sanitize_filename(self, name, expected):
        assert sanitize_filename(name) == expected

    @pytest.mark.parametrize(
        "url,expected",
        [
            (
                "https://raw.githubusercontent.com/o/r/main/images/originals/A.PNG",
                "images/originals/A.PNG",
            ),
            ("https://raw.githubusercontent.com/o/r/images/originals/B.PNG", "images/originals/B.PNG"),
            ("images/originals/C%20D.PNG?v=2", "images/originals/C D.PNG"),
            ("/images/originals/E.PNG", "images/originals/E.PNG"),
            ("https://example.com/pics/F.PNG", None),
            ("https://example.com/images/originals/", None),
            ("", None),
        ],
    )
    def test_path_from_url(self, url, expected):
        assert RepositoryClient.path_from_url(url) == expected

    def test_raw_url(self, remote):
        assert remote.raw_url("/images/originals/A.PNG") == (
            "https://raw.githubusercontent.com/curator/gallery/main/images/originals/A.PNG"
        )
