import asyncio
import json
from typing import Optional, Dict, Any

import httpx

from docshell.shell_serialize import deserialize


def normalize_response_mode(cfg: dict) -> Optional[str]:
    """
    Returns one of 'lite' | 'full' | 'none' | None based on cfg['response-mode'].
    """
    mode = cfg.get('response-mode')
    if mode is None:
        return None
    match mode:
        case str():
            s = mode.strip().lower()
            return s if s in ('lite', 'full', 'none') else None
        case _:
            return None


async def http_request(method: str, url: str, *, config: Optional[Dict] = None, data: Any = None,
                       client: Optional[httpx.AsyncClient] = None) -> Any:
    """
    Core HTTP helper.

    response-mode (enum):
      - `lite`  -> return (status: int, value: Any, headers: dict[str,str]) without raising on non-2xx
      - `full`  -> same tuple; callers package into a dict with meta
      - `none`/unset -> default behavior: return deserialized body on 2xx; raise on non-2xx

    `data` that is not str/bytes is sent as JSON. Retries are opt-in (`retries`, default 0).
    """
    cfg = dict(config or {})
    timeout = float(cfg.pop('timeout', 5.0))
    retries = int(cfg.pop('retries', 0))
    backoff = float(cfg.pop('backoff', 0.2))
    headers = dict(cfg.pop('headers', {}))
    params = dict(cfg.pop('params', {}))

    mode = normalize_response_mode(cfg)

    body = None
    if data is not None:
        if isinstance(data, (str, bytes, bytearray)):
            body = data.encode('utf-8') if isinstance(data, str) else bytes(data)
            headers.setdefault("Content-Type", "text/plain; charset=utf-8")
        else:
            body = json.dumps(data, ensure_ascii=False).encode('utf-8')
            headers.setdefault("Content-Type", "application/json")

    async def _send(c: httpx.AsyncClient):
        last_exc = None
        for attempt in range(retries + 1):
            try:
                resp = await c.request(
                    method.upper(),
                    url,
                    headers=headers,
                    params=params,
                    content=body,
                )
                ct = resp.headers.get("Content-Type")
                if mode in ('lite', 'full'):
                    value = deserialize(resp.content, content_type=ct)
                    # Lower-case header keys for consistent lookups
                    headers_map = {str(k).lower(): v for k, v in resp.headers.items()}
                    return (int(resp.status_code), value, headers_map)
                if 200 <= resp.status_code < 300:
                    return deserialize(resp.content, content_type=ct)
                preview = (resp.text or "")[:200]
                raise RuntimeError(f"HTTP {resp.status_code} for {url}: {preview}")
            except Exception as e:
                last_exc = e
                if attempt < retries:
                    await asyncio.sleep(backoff * (2 ** attempt))
                    continue
                raise last_exc

    if client is not None:
        return await _send(client)
    async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as c:
        return await _send(c)


async def http_get(url: str, config: Optional[Dict] = None, **kwargs) -> Any:
    return await http_request('GET', url, config=config, **kwargs)


async def http_post(url: str, data: Any, config: Optional[Dict] = None, **kwargs) -> Any:
    return await http_request('POST', url, config=config, data=data, **kwargs)


class ShellApiClient:
    """Client for the web front end's HTTP surface.

    GET  /databases                  -> {"databases": [name...]}
    GET  /databases/:db/collections  -> {"collections": [name...]}
    POST /convert <filter-document>  -> {"sql": ...} | {"error": ...}
    POST /run {"query": ...}         -> {"rows": [...]}
    """

    def __init__(self, base_url: str, config: Optional[Dict] = None):
        self.base_url = base_url.rstrip('/')
        self.config = dict(config or {})

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    async def databases(self) -> list:
        out = await http_get(self._url("/databases"), self.config)
        return list(out.get("databases", []))

    async def collections(self, db: str) -> list:
        out = await http_get(self._url(f"/databases/{db}/collections"), self.config)
        return list(out.get("collections", []))

    async def convert(self, filter_doc: dict) -> dict:
        """Translate a filter document; returns {"sql": ...} or {"error": ...} as sent."""
        cfg = {**self.config, 'response-mode': 'lite'}
        _status, value, _headers = await http_post(self._url("/convert"), filter_doc, cfg)
        return value

    async def run(self, query: str) -> list:
        out = await http_post(self._url("/run"), {"query": query}, self.config)
        return list(out.get("rows", []))
