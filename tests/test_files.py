"""Unit tests for the files namespace."""

import io
import json
from datetime import datetime
from unittest.mock import MagicMock

import pytest
import requests

from dbox import files
from dbox.client import Response
from dbox.exceptions import ClientError
from dbox.metrics import RequestMetrics
from dbox.structs import DeletedMetadata, FileMetadata, FolderMetadata

FILE_ENTRY = {
    ".tag": "file",
    "name": "photo.jpg",
    "path_lower": "/photos/photo.jpg",
    "path_display": "/Photos/photo.jpg",
    "id": "id:abc",
    "client_modified": "2015-05-12T15:50:38Z",
    "server_modified": "2015-05-12T15:50:38Z",
    "rev": "a1c10ce0dd78",
    "size": 7212,
    "content_hash": "e3b0c442",
}

FOLDER_ENTRY = {
    ".tag": "folder",
    "name": "Photos",
    "path_lower": "/photos",
    "path_display": "/Photos",
    "id": "id:folder",
}


def file_entry(name, **overrides):
    entry = dict(FILE_ENTRY, name=name, path_lower=f"/photos/{name.lower()}", path_display=f"/Photos/{name}")
    entry.update(overrides)
    return entry


class TestNormalizePath:
    @pytest.mark.parametrize(
        "path, expected",
        [
            (None, ""),
            ("", ""),
            ("/", ""),
            ("Photos", "/Photos"),
            ("/Photos/", "/Photos"),
            ("/Photos/2020", "/Photos/2020"),
            ("id:a4ayc_80_OEAAAAAAAAAXw", "id:a4ayc_80_OEAAAAAAAAAXw"),
            ("rev:a1c10ce0dd78", "rev:a1c10ce0dd78"),
            ("ns:123/Photos", "ns:123/Photos"),
        ],
    )
    def test_normalize(self, path, expected):
        assert files.normalize_path(path) == expected


class TestRelocation:
    def test_copy(self, api_client):
        api_client.api.return_value = {"metadata": FILE_ENTRY}

        metadata = files.copy_(api_client, "/Photos/photo.jpg", "Backup/photo.jpg")

        api_client.api.assert_called_once_with(
            "files/copy_v2",
            {"from_path": "/Photos/photo.jpg", "to_path": "/Backup/photo.jpg", "autorename": False},
        )
        assert isinstance(metadata, FileMetadata)
        assert metadata.size == 7212

    def test_move_folder(self, api_client):
        api_client.api.return_value = {"metadata": FOLDER_ENTRY}

        metadata = files.move_(api_client, "/Old", "/Photos", autorename=True)

        assert api_client.api.call_args[0][0] == "files/move_v2"
        assert api_client.api.call_args[0][1]["autorename"] is True
        assert isinstance(metadata, FolderMetadata)

    def test_create_folder(self, api_client):
        api_client.api.return_value = {"metadata": {"name": "Photos", "id": "id:folder", "path_display": "/Photos"}}

        metadata = files.create_folder(api_client, "/Photos/")

        api_client.api.assert_called_once_with("files/create_folder_v2", {"path": "/Photos", "autorename": False})
        assert isinstance(metadata, FolderMetadata)
        assert metadata.path_display == "/Photos"

    def test_delete(self, api_client):
        api_client.api.return_value = {"metadata": FILE_ENTRY}

        metadata = files.delete(api_client, "/Photos/photo.jpg")

        api_client.api.assert_called_once_with("files/delete_v2", {"path": "/Photos/photo.jpg"})
        assert metadata.name == "photo.jpg"

    def test_permanently_delete(self, api_client):
        api_client.api.return_value = None

        assert files.permanently_delete(api_client, "/Photos/photo.jpg") is None
        api_client.api.assert_called_once_with("files/permanently_delete", {"path": "/Photos/photo.jpg"})

    def test_restore(self, api_client):
        api_client.api.return_value = file_entry("photo.jpg", rev="abc123")

        metadata = files.restore(api_client, "/Photos/photo.jpg", "abc123")

        api_client.api.assert_called_once_with("files/restore", {"path": "/Photos/photo.jpg", "rev": "abc123"})
        assert metadata.rev == "abc123"


class TestListing:
    def test_get_metadata(self, api_client):
        api_client.api.return_value = FOLDER_ENTRY

        metadata = files.get_metadata(api_client, "/Photos")

        api_client.api.assert_called_once_with("files/get_metadata", {"path": "/Photos", "include_media_info": False})
        assert isinstance(metadata, FolderMetadata)

    def test_list_folder_root(self, api_client):
        api_client.api.return_value = {"entries": [FOLDER_ENTRY, FILE_ENTRY], "cursor": "c1", "has_more": False}

        result = files.list_folder(api_client, "/")

        api_client.api.assert_called_once_with(
            "files/list_folder",
            {"path": "", "recursive": False, "include_media_info": False, "include_deleted": False},
        )
        assert [type(e) for e in result.entries] == [FolderMetadata, FileMetadata]
        assert result.cursor == "c1"
        assert result.has_more is False

    def test_list_folder_with_options(self, api_client):
        api_client.api.return_value = {"entries": [], "cursor": "c", "has_more": False}

        files.list_folder(api_client, "/Photos", files.ListFolderOptions(recursive=True, include_deleted=True))

        arg = api_client.api.call_args[0][1]
        assert arg["recursive"] is True
        assert arg["include_deleted"] is True

    def test_list_folder_continue(self, api_client):
        api_client.api.return_value = {
            "entries": [{".tag": "deleted", "name": "gone.txt", "path_lower": "/gone.txt"}],
            "cursor": "c2",
            "has_more": False,
        }

        result = files.list_folder_continue(api_client, "c1")

        api_client.api.assert_called_once_with("files/list_folder/continue", {"cursor": "c1"})
        assert isinstance(result.entries[0], DeletedMetadata)

    def test_get_latest_cursor(self, api_client):
        api_client.api.return_value = {"cursor": "latest"}

        assert files.list_folder_get_latest_cursor(api_client, "/Photos") == "latest"
        assert api_client.api.call_args[0][0] == "files/list_folder/get_latest_cursor"

    def test_list_folder_recursive_follows_pages_and_filters(self, api_client):
        api_client.api.side_effect = [
            {"entries": [FOLDER_ENTRY, file_entry("a.JPG"), file_entry("notes.txt")], "cursor": "c1", "has_more": True},
            {"entries": [file_entry("b.png")], "cursor": "c2", "has_more": False},
        ]

        names = [f.name for f in files.list_folder_recursive(api_client, "/Photos", [".jpg", ".png"])]

        assert names == ["a.JPG", "b.png"]
        assert api_client.api.call_args_list[0][0][1]["recursive"] is True
        assert api_client.api.call_args_list[1][0] == ("files/list_folder/continue", {"cursor": "c1"})

    def test_list_folder_recursive_without_filter(self, api_client):
        api_client.api.return_value = {"entries": [file_entry("a.jpg"), file_entry("b.txt")], "has_more": False}

        assert len(list(files.list_folder_recursive(api_client, "/Photos"))) == 2

    def test_list_revisions(self, api_client):
        api_client.api.return_value = {
            "is_deleted": True,
            "server_deleted": "2016-01-01T00:00:00Z",
            "entries": [file_entry("a.txt", rev="r2"), file_entry("a.txt", rev="r1")],
        }

        revisions = files.list_revisions(api_client, "/a.txt", limit=2)

        api_client.api.assert_called_once_with("files/list_revisions", {"path": "/a.txt", "mode": "path", "limit": 2})
        assert revisions.is_deleted is True
        assert revisions.server_deleted == datetime(2016, 1, 1)
        assert [e.rev for e in revisions.entries] == ["r2", "r1"]


class TestLongpoll:
    def test_longpoll(self, api_client):
        api_client.notify.return_value = {"changes": True}

        result = files.list_folder_longpoll(api_client, "cursor", timeout=60)

        api_client.notify.assert_called_once_with(
            "files/list_folder/longpoll", {"cursor": "cursor", "timeout": 60}, timeout=150
        )
        assert result.changes is True
        assert result.backoff is None

    @pytest.mark.parametrize("timeout, expected", [(5, 30), (1000, 480)])
    def test_longpoll_timeout_clamped(self, api_client, timeout, expected):
        api_client.notify.return_value = {"changes": False, "backoff": 60}

        result = files.list_folder_longpoll(api_client, "cursor", timeout=timeout)

        assert api_client.notify.call_args[0][1]["timeout"] == expected
        assert result.backoff == 60


class TestSearch:
    def test_search(self, api_client):
        api_client.api.return_value = {
            "matches": [
                {
                    "match_type": {".tag": "filename"},
                    "metadata": {".tag": "metadata", "metadata": FILE_ENTRY},
                }
            ],
            "has_more": True,
            "cursor": "s1",
        }

        result = files.search(api_client, "/Photos", "photo")

        api_client.api.assert_called_once_with(
            "files/search_v2",
            {
                "query": "photo",
                "options": {"max_results": 100, "file_status": "active", "filename_only": True, "path": "/Photos"},
            },
        )
        assert result.more is True
        assert result.cursor == "s1"
        assert result.matches[0].match_type is files.SearchMatchType.FILENAME
        assert result.matches[0].metadata.name == "photo.jpg"

    def test_search_root_content_mode(self, api_client):
        api_client.api.return_value = {"matches": [], "has_more": False}

        files.search(api_client, "", "report", files.SearchOptions(max_results=5, mode=files.SearchMode.FILENAME_AND_CONTENT))

        options = api_client.api.call_args[0][1]["options"]
        assert options == {"max_results": 5, "file_status": "active", "filename_only": False}

    def test_search_deleted(self, api_client):
        api_client.api.return_value = {"matches": []}

        files.search(api_client, "/", "old", files.SearchOptions(mode=files.SearchMode.DELETED_FILENAME))

        assert api_client.api.call_args[0][1]["options"]["file_status"] == "deleted"

    def test_search_continue(self, api_client):
        api_client.api.return_value = {
            "matches": [{"match_type": {".tag": "something_new"}, "metadata": {".tag": "metadata", "metadata": FOLDER_ENTRY}}],
            "has_more": False,
        }

        result = files.search_continue(api_client, "s1")

        api_client.api.assert_called_once_with("files/search/continue_v2", {"cursor": "s1"})
        assert result.matches[0].match_type is files.SearchMatchType.OTHER

    def test_search_skips_unrecognized_metadata(self, api_client):
        api_client.api.return_value = {
            "matches": [
                {"match_type": {".tag": "filename"}, "metadata": {".tag": "other"}},
                {"match_type": {".tag": "filename"}, "metadata": {".tag": "metadata", "metadata": FILE_ENTRY}},
            ],
            "has_more": False,
        }

        result = files.search(api_client, "/Photos", "photo")

        assert [m.metadata.name for m in result.matches] == ["photo.jpg"]

    def test_search_unknown_entry_tag_raises_client_error(self, api_client):
        entry = dict(FILE_ENTRY, **{".tag": "symlink"})
        api_client.api.return_value = {"matches": [{"metadata": {".tag": "metadata", "metadata": entry}}]}

        with pytest.raises(ClientError, match="symlink"):
            files.search(api_client, "/Photos", "photo")


class TestDownloads:
    def test_download(self, api_client):
        api_client.content_download.return_value = Response(status=200, body=b"jpegdata", api_result=FILE_ENTRY)

        metadata, resp = files.download(api_client, "/Photos/photo.jpg")

        api_client.content_download.assert_called_once_with("files/download", {"path": "/Photos/photo.jpg"})
        assert metadata.name == "photo.jpg"
        assert resp.body == b"jpegdata"

    def test_download_to_file(self, api_client, tmp_path):
        api_client.content_download.return_value = Response(status=200, body=b"x" * 100, api_result=FILE_ENTRY)
        dest = tmp_path / "nested" / "photo.jpg"

        metadata, _ = files.download_to_file(api_client, str(dest), "/Photos/photo.jpg")

        assert api_client.content_download.call_args[1] == {"stream": True}
        assert dest.read_bytes() == b"x" * 100
        assert metadata.content_hash == "e3b0c442"

    def test_get_preview(self, api_client):
        api_client.content_download.return_value = Response(status=200, body=b"%PDF", api_result=FILE_ENTRY)

        _, resp = files.get_preview(api_client, "/doc.docx")

        assert api_client.content_download.call_args[0] == ("files/get_preview", {"path": "/doc.docx"})
        assert resp.body == b"%PDF"

    def test_get_preview_to_file(self, api_client, tmp_path):
        api_client.content_download.return_value = Response(status=200, body=b"<html>", api_result=FILE_ENTRY)
        dest = tmp_path / "preview.html"

        files.get_preview_to_file(api_client, str(dest), "/doc.docx")

        assert dest.read_bytes() == b"<html>"

    def test_get_thumbnail_defaults(self, api_client):
        api_client.content_download.return_value = Response(
            status=200, body=b"thumb", api_result={"file_metadata": FILE_ENTRY}
        )

        metadata, resp = files.get_thumbnail(api_client, "/Photos/photo.jpg")

        api_client.content_download.assert_called_once_with(
            "files/get_thumbnail_v2",
            {"resource": {".tag": "path", "path": "/Photos/photo.jpg"}, "format": "jpeg", "size": "w64h64"},
        )
        assert metadata.name == "photo.jpg"
        assert resp.body == b"thumb"

    def test_get_thumbnail_to_file(self, api_client, tmp_path):
        api_client.content_download.return_value = Response(
            status=200, body=b"png", api_result={"file_metadata": FILE_ENTRY}
        )
        options = files.ThumbnailOptions(format=files.ThumbnailFormat.PNG, size=files.ThumbnailSize.from_dimensions(256, 256))
        dest = tmp_path / "thumb.png"

        files.get_thumbnail_to_file(api_client, str(dest), "/Photos/photo.jpg", options)

        arg = api_client.content_download.call_args[0][1]
        assert arg["format"] == "png"
        assert arg["size"] == "w256h256"
        assert dest.read_bytes() == b"png"

    def test_unsupported_thumbnail_size(self):
        with pytest.raises(ValueError, match="Unsupported thumbnail size: 100x100"):
            files.ThumbnailSize.from_dimensions(100, 100)


class TestUploads:
    def test_upload_bytes(self, api_client):
        api_client.content_upload.return_value = file_entry("a.txt")

        metadata = files.upload(api_client, b"hello", "/Photos/a.txt")

        api_client.content_upload.assert_called_once_with(
            "files/upload",
            {"path": "/Photos/a.txt", "mode": "add", "autorename": False, "mute": False},
            b"hello",
        )
        assert metadata.name == "a.txt"

    def test_upload_text_and_options(self, api_client):
        api_client.content_upload.return_value = file_entry("a.txt")
        options = files.UploadOptions(
            mode=files.WriteMode.OVERWRITE,
            autorename=True,
            client_modified=datetime(2020, 1, 2, 3, 4, 5),
            mute=True,
        )

        files.upload(api_client, "héllo", "a.txt", options)

        route, arg, data = api_client.content_upload.call_args[0]
        assert arg == {
            "path": "/a.txt",
            "mode": "overwrite",
            "autorename": True,
            "mute": True,
            "client_modified": "2020-01-02T03:04:05Z",
        }
        assert data == "héllo".encode("utf-8")

    def test_upload_file_object(self, api_client):
        api_client.content_upload.return_value = file_entry("a.bin")

        files.upload(api_client, io.BytesIO(b"\x00\x01"), "/a.bin")

        assert api_client.content_upload.call_args[0][2] == b"\x00\x01"

    def test_update_mode_requires_rev(self, api_client):
        with pytest.raises(ValueError, match="requires the rev"):
            files.upload(api_client, b"x", "/a.txt", files.UploadOptions(mode=files.WriteMode.UPDATE))

        api_client.content_upload.assert_not_called()

    def test_update_mode(self, api_client):
        api_client.content_upload.return_value = file_entry("a.txt")

        files.upload(api_client, b"x", "/a.txt", files.UploadOptions(mode=files.WriteMode.UPDATE, rev="r1"))

        assert api_client.content_upload.call_args[0][1]["mode"] == {".tag": "update", "update": "r1"}

    def test_upload_session_start(self, api_client):
        api_client.content_upload.return_value = {"session_id": "sid"}

        assert files.upload_session_start(api_client, b"chunk") == "sid"
        api_client.content_upload.assert_called_once_with("files/upload_session/start", {"close": False}, b"chunk")

    def test_upload_session_append_returns_next_offset(self, api_client):
        api_client.content_upload.return_value = None

        offset = files.upload_session_append(api_client, b"12345", "sid", 10)

        assert offset == 15
        api_client.content_upload.assert_called_once_with(
            "files/upload_session/append_v2",
            {"cursor": {"session_id": "sid", "offset": 10}, "close": False},
            b"12345",
        )

    def test_upload_session_finish(self, api_client):
        api_client.content_upload.return_value = file_entry("big.bin")

        metadata = files.upload_session_finish(
            api_client, b"end", files.UploadSessionCursor("sid", 20), files.CommitInfo("/big.bin")
        )

        api_client.content_upload.assert_called_once_with(
            "files/upload_session/finish",
            {
                "cursor": {"session_id": "sid", "offset": 20},
                "commit": {"path": "/big.bin", "mode": "add", "autorename": False, "mute": False},
            },
            b"end",
        )
        assert metadata.name == "big.bin"


class TestUploadLarge:
    @staticmethod
    def _route_results(route, arg, data):
        if route == "files/upload_session/start":
            return {"session_id": "sid"}
        if route == "files/upload_session/append_v2":
            return None
        return file_entry("big.bin")

    def test_small_file_uses_single_upload(self, api_client):
        api_client.content_upload.side_effect = self._route_results

        files.upload_large(api_client, b"abc", "/big.bin", chunk_size=4)

        api_client.content_upload.assert_called_once()
        assert api_client.content_upload.call_args[0][0] == "files/upload"

    def test_chunked_upload(self, api_client):
        api_client.content_upload.side_effect = self._route_results

        metadata = files.upload_large(api_client, io.BytesIO(b"abcdefghij"), "/big.bin", chunk_size=4)

        calls = [(c[0][0], c[0][2]) for c in api_client.content_upload.call_args_list]
        assert calls == [
            ("files/upload_session/start", b"abcd"),
            ("files/upload_session/append_v2", b"efgh"),
            ("files/upload_session/finish", b"ij"),
        ]
        append_arg = api_client.content_upload.call_args_list[1][0][1]
        finish_arg = api_client.content_upload.call_args_list[2][0][1]
        assert append_arg["cursor"] == {"session_id": "sid", "offset": 4}
        assert finish_arg["cursor"] == {"session_id": "sid", "offset": 8}
        assert finish_arg["commit"]["path"] == "/big.bin"
        assert metadata.name == "big.bin"

    def test_exact_multiple_finishes_with_empty_chunk(self, api_client):
        api_client.content_upload.side_effect = self._route_results

        files.upload_large(api_client, b"abcdefgh", "/big.bin", files.UploadOptions(mode=files.WriteMode.OVERWRITE), chunk_size=4)

        route, arg, data = api_client.content_upload.call_args_list[-1][0]
        assert route == "files/upload_session/finish"
        assert data == b""
        assert arg["cursor"]["offset"] == 8
        assert arg["commit"]["mode"] == "overwrite"


class TestStreamedDownloadTransport:
    """download_to_file against a real client whose session is mocked."""

    @pytest.fixture
    def metered_client(self, client):
        client.metrics = RequestMetrics()
        return client

    def _serve(self, client, make_response, content):
        r = make_response(content=content, headers={"Dropbox-API-Result": json.dumps(FILE_ENTRY)})
        client.session.post.return_value = r
        return r

    def test_counts_downloaded_bytes(self, metered_client, make_response, tmp_path):
        self._serve(metered_client, make_response, b"abcdef")
        dest = tmp_path / "photo.jpg"

        files.download_to_file(metered_client, str(dest), "/Photos/photo.jpg")

        assert dest.read_bytes() == b"abcdef"
        assert metered_client.metrics.bytes_downloaded == 6
        assert not (tmp_path / "photo.jpg.part").exists()

    def test_dropped_connection_raises_client_error(self, metered_client, make_response, tmp_path):
        r = self._serve(metered_client, make_response, b"abcdef")
        r.iter_content = MagicMock(side_effect=requests.exceptions.ChunkedEncodingError("connection broken"))
        dest = tmp_path / "photo.jpg"

        with pytest.raises(ClientError, match="interrupted"):
            files.download_to_file(metered_client, str(dest), "/Photos/photo.jpg")

        assert metered_client.metrics.errors == {"files/download": 1}
        assert not dest.exists()
        assert not (tmp_path / "photo.jpg.part").exists()

    def test_failed_download_keeps_existing_file(self, client, make_response, tmp_path):
        r = self._serve(client, make_response, b"new")
        r.iter_content = MagicMock(side_effect=requests.exceptions.ConnectionError("reset"))
        dest = tmp_path / "photo.jpg"
        dest.write_bytes(b"previous")

        with pytest.raises(ClientError):
            files.download_to_file(client, str(dest), "/Photos/photo.jpg")

        assert dest.read_bytes() == b"previous"
