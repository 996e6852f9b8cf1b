import pytest

from docshell.shell_http import ShellApiClient, normalize_response_mode, http_request


class DummyResp:
    def __init__(self, status, content, headers):
        self.status_code = status
        self._content = content
        self.headers = headers
        self.text = content.decode("utf-8", errors="ignore")

    @property
    def content(self):
        return self._content


def install_client(monkeypatch, handler):
    """Replace httpx.AsyncClient with a stub whose request() is answered by `handler`."""
    seen = []

    class DummyAsyncClient:
        def __init__(self, *args, **kwargs):
            pass

        async def __aenter__(self):
            return self

        async def __aexit__(self, exc_type, exc, tb):
            return False

        async def request(self, method, url, headers=None, params=None, content=None):
            seen.append({"method": method, "url": url, "headers": headers, "content": content})
            return handler(method, url, headers, content)

    import docshell.shell_http as shell_http_mod
    monkeypatch.setattr(shell_http_mod, "httpx", type("X", (), {"AsyncClient": DummyAsyncClient}))
    return seen


@pytest.mark.asyncio
async def test_http_request_default_success_and_modes(monkeypatch):
    install_client(monkeypatch, lambda *a: DummyResp(200, b'{"hello":"world"}', {"Content-Type": "application/json"}))

    out = await http_request("GET", "http://example/api")
    assert out == {"hello": "world"}

    status, value, headers = await http_request("GET", "http://example/api", config={"response-mode": "lite"})
    assert status == 200
    assert value == {"hello": "world"}
    assert headers == {"content-type": "application/json"}


@pytest.mark.asyncio
async def test_http_request_raises_on_non_2xx_without_retry(monkeypatch):
    seen = install_client(monkeypatch, lambda *a: DummyResp(503, b"busy", {"Content-Type": "text/plain"}))
    with pytest.raises(RuntimeError, match="HTTP 503"):
        await http_request("GET", "http://example/api")
    assert len(seen) == 1


@pytest.mark.asyncio
async def test_http_request_opt_in_retries(monkeypatch):
    seen = install_client(monkeypatch, lambda *a: DummyResp(503, b"busy", {"Content-Type": "text/plain"}))
    with pytest.raises(RuntimeError):
        await http_request("GET", "http://example/api", config={"retries": 2, "backoff": 0})
    assert len(seen) == 3


@pytest.mark.asyncio
async def test_http_request_body_encoding(monkeypatch):
    seen = install_client(monkeypatch, lambda *a: DummyResp(200, b"{}", {"Content-Type": "application/json"}))
    await http_request("POST", "http://example/api", data={"q": 1})
    await http_request("POST", "http://example/api", data="raw")
    assert seen[0]["headers"]["Content-Type"] == "application/json"
    assert seen[0]["content"] == b'{"q": 1}'
    assert seen[1]["headers"]["Content-Type"] == "text/plain; charset=utf-8"
    assert seen[1]["content"] == b"raw"


def test_normalize_response_mode():
    assert normalize_response_mode({}) is None
    assert normalize_response_mode({"response-mode": " Lite "}) == "lite"
    assert normalize_response_mode({"response-mode": "other"}) is None
    assert normalize_response_mode({"response-mode": 3}) is None


@pytest.mark.asyncio
async def test_api_client_endpoints(monkeypatch):
    replies = {
        ("GET", "http://ui/databases"): (200, b'{"databases": ["shop", "admin"]}'),
        ("GET", "http://ui/databases/shop/collections"): (200, b'{"collections": ["users"]}'),
        ("POST", "http://ui/convert"): (400, b'{"error": "unsupported operator $where"}'),
        ("POST", "http://ui/run"): (200, b'{"rows": [{"n": 1}]}'),
    }

    def handler(method, url, headers, content):
        status, body = replies[(method, url)]
        return DummyResp(status, body, {"Content-Type": "application/json"})

    seen = install_client(monkeypatch, handler)
    api = ShellApiClient("http://ui/")
    assert await api.databases() == ["shop", "admin"]
    assert await api.collections("shop") == ["users"]
    assert await api.convert({"$where": "1"}) == {"error": "unsupported operator $where"}
    assert await api.run("SELECT 1") == [{"n": 1}]
    assert seen[3]["content"] == b'{"query": "SELECT 1"}'
