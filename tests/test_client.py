import json
from unittest.mock import Mock, patch
from urllib.parse import parse_qs, urlsplit

import pytest

from todo_sync.core.client import (
    API_URL,
    CONTENT_URL,
    TOKEN_URL,
    DropboxClient,
)
from todo_sync.exceptions import DropboxApiError


def _response(status_code=200, body=None, content=b"", headers=None, text=""):
    response = Mock()
    response.status_code = status_code
    response.content = content
    response.headers = headers or {}
    response.text = text
    if body is None:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = body
    return response


# Authorization URL
def test_authorize_url_contains_pkce_parameters(mock_config):
    """Test that the authorization URL requests an offline PKCE code."""
    client = DropboxClient(mock_config)
    url = client.authorize_url("challenge123")

    query = parse_qs(urlsplit(url).query)
    assert url.startswith("https://www.dropbox.com/oauth2/authorize?")
    assert query["client_id"] == ["test-app-key"]
    assert query["response_type"] == ["code"]
    assert query["code_challenge"] == ["challenge123"]
    assert query["code_challenge_method"] == ["S256"]
    assert query["token_access_type"] == ["offline"]
    assert query["redirect_uri"] == ["http://localhost:8765/"]


def test_session_is_thread_local(mock_config):
    """Test that one thread reuses its session."""
    client = DropboxClient(mock_config)
    assert client._get_session() is client._get_session()


# Token endpoint
@patch("todo_sync.core.client.requests.Session.post")
def test_exchange_code_posts_form(mock_post, mock_config):
    """Test code exchange sends verifier and app key."""
    mock_post.return_value = _response(
        body={"access_token": "a", "refresh_token": "r", "expires_in": 14400}
    )

    client = DropboxClient(mock_config)
    data = client.exchange_code("code1", "verifier1")

    assert data["refresh_token"] == "r"
    args, kwargs = mock_post.call_args
    assert args[0] == TOKEN_URL
    assert kwargs["data"] == {
        "grant_type": "authorization_code",
        "code": "code1",
        "code_verifier": "verifier1",
        "redirect_uri": "http://localhost:8765/",
        "client_id": "test-app-key",
    }


@patch("todo_sync.core.client.requests.Session.post")
def test_refresh_error_uses_oauth_error_fields(mock_post, mock_config):
    """Test OAuth errors become DropboxApiError with description."""
    mock_post.return_value = _response(
        status_code=400,
        body={"error": "invalid_grant", "error_description": "refresh token is malformed"},
    )

    client = DropboxClient(mock_config)
    with pytest.raises(DropboxApiError) as exc_info:
        client.refresh_access_token("bad")

    assert exc_info.value.status_code == 400
    assert exc_info.value.error_summary == "invalid_grant"
    assert str(exc_info.value) == "refresh token is malformed"


# RPC endpoints
@patch("todo_sync.core.client.requests.Session.post")
def test_get_metadata_sends_bearer_and_json(mock_post, mock_config):
    """Test metadata request shape."""
    mock_post.return_value = _response(
        body={".tag": "file", "server_modified": "2024-05-01T10:00:00Z"}
    )

    client = DropboxClient(mock_config)
    meta = client.get_metadata("tok", "/todo.txt")

    assert meta["server_modified"] == "2024-05-01T10:00:00Z"
    args, kwargs = mock_post.call_args
    assert args[0] == f"{API_URL}/files/get_metadata"
    assert kwargs["headers"]["Authorization"] == "Bearer tok"
    assert json.loads(kwargs["data"]) == {"path": "/todo.txt"}


@patch("todo_sync.core.client.requests.Session.post")
def test_not_found_error_summary(mock_post, mock_config):
    """Test 409 responses carry Dropbox's error_summary."""
    mock_post.return_value = _response(
        status_code=409,
        body={"error_summary": "path/not_found/..", "error": {".tag": "path"}},
    )

    client = DropboxClient(mock_config)
    with pytest.raises(DropboxApiError) as exc_info:
        client.get_metadata("tok", "/missing.txt")

    assert exc_info.value.is_not_found
    assert not exc_info.value.is_invalid_token


@patch("todo_sync.core.client.requests.Session.post")
def test_unauthorized_plain_text_body(mock_post, mock_config):
    """Test non-JSON 401 bodies still produce an invalid-token error."""
    mock_post.return_value = _response(status_code=401, text="Invalid token\n")

    client = DropboxClient(mock_config)
    with pytest.raises(DropboxApiError) as exc_info:
        client.delete("tok", "/a.txt")

    assert exc_info.value.is_invalid_token
    assert exc_info.value.error_summary == "Invalid token"


@patch("todo_sync.core.client.requests.Session.post")
def test_list_folder_follows_cursor(mock_post, mock_config):
    """Test list_folder collects every page."""
    mock_post.side_effect = [
        _response(body={"entries": [{"name": "a.txt"}], "has_more": True, "cursor": "c1"}),
        _response(body={"entries": [{"name": "b.txt"}], "has_more": False}),
    ]

    client = DropboxClient(mock_config)
    entries = client.list_folder("tok")

    assert [e["name"] for e in entries] == ["a.txt", "b.txt"]
    second_args, second_kwargs = mock_post.call_args_list[1]
    assert second_args[0] == f"{API_URL}/files/list_folder/continue"
    assert json.loads(second_kwargs["data"]) == {"cursor": "c1"}


@patch("todo_sync.core.client.requests.Session.post")
def test_move_disables_autorename(mock_post, mock_config):
    mock_post.return_value = _response(body={"metadata": {}})

    DropboxClient(mock_config).move("tok", "/a.txt", "/b.txt")

    payload = json.loads(mock_post.call_args[1]["data"])
    assert payload == {"from_path": "/a.txt", "to_path": "/b.txt", "autorename": False}


# Content endpoints
@patch("todo_sync.core.client.requests.Session.post")
def test_download_decodes_text_and_metadata(mock_post, mock_config):
    """Test download returns text plus the Dropbox-API-Result header."""
    mock_post.return_value = _response(
        content="(A) Café\n".encode("utf-8"),
        headers={"Dropbox-API-Result": json.dumps({"server_modified": "2024-05-01T10:00:00Z"})},
    )

    client = DropboxClient(mock_config)
    text, meta = client.download("tok", "/todo.txt")

    assert text == "(A) Café\n"
    assert meta["server_modified"] == "2024-05-01T10:00:00Z"
    args, kwargs = mock_post.call_args
    assert args[0] == f"{CONTENT_URL}/files/download"
    assert json.loads(kwargs["headers"]["Dropbox-API-Arg"]) == {"path": "/todo.txt"}


@patch("todo_sync.core.client.requests.Session.post")
def test_download_non_utf8_is_decoded(mock_post, mock_config):
    """Test download falls back to detection for non-UTF-8 files."""
    text = "Réunion à préparer avec l'équipe\nCafé acheter pour le bureau\n" * 5
    mock_post.return_value = _response(
        content=text.encode("latin-1"), headers={"Dropbox-API-Result": "{}"}
    )

    content, meta = DropboxClient(mock_config).download("tok", "/todo.txt")

    assert "Caf" in content
    assert meta == {}


@patch("todo_sync.core.client.requests.Session.post")
def test_upload_overwrites(mock_post, mock_config):
    """Test upload sends UTF-8 bytes in overwrite mode."""
    mock_post.return_value = _response(body={"server_modified": "2024-05-01T10:00:05Z"})

    client = DropboxClient(mock_config)
    meta = client.upload("tok", "/todo.txt", "x Done")

    assert meta["server_modified"] == "2024-05-01T10:00:05Z"
    _, kwargs = mock_post.call_args
    arg = json.loads(kwargs["headers"]["Dropbox-API-Arg"])
    assert arg["mode"] == "overwrite"
    assert arg["autorename"] is False
    assert kwargs["headers"]["Content-Type"] == "application/octet-stream"
    assert kwargs["data"] == b"x Done"


@patch("todo_sync.core.client.requests.Session.post")
def test_non_ascii_path_header_is_ascii_safe(mock_post, mock_config):
    mock_post.return_value = _response(body={})

    DropboxClient(mock_config).upload("tok", "/Einkäufe.txt", "")

    header = mock_post.call_args[1]["headers"]["Dropbox-API-Arg"]
    header.encode("ascii")
