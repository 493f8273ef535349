import asyncio
import json
from typing import Optional, Dict, Any
import httpx


def _encode_body(data: Any, headers: Dict[str, str]) -> Optional[bytes]:
    """Strings go out verbatim; mappings and lists are JSON-encoded."""
    if data is None:
        return None
    if isinstance(data, (bytes, bytearray)):
        return bytes(data)
    if isinstance(data, str):
        headers.setdefault("Content-Type", "text/plain; charset=utf-8")
        return data.encode("utf-8")
    headers.setdefault("Content-Type", "application/json")
    return json.dumps(data).encode("utf-8")


async def http_request(method: str, url: str, *,
                       config: Optional[Dict] = None,
                       headers: Optional[Dict[str, str]] = None,
                       data: Any = None,
                       raise_for_status: bool = False) -> httpx.Response:
    """
    Core HTTP helper.

    config keys:
      - timeout (5.0 seconds)
      - retries (0): extra attempts after a transport failure
      - backoff (0.2): base delay, doubled on each retry
    Non-2xx responses are returned as-is unless raise_for_status is set.
    """
    cfg = dict(config or {})
    timeout = float(cfg.pop('timeout', 5.0))
    retries = int(cfg.pop('retries', 0))
    backoff = float(cfg.pop('backoff', 0.2))
    hdrs = {str(k): str(v) for k, v in dict(headers or {}).items()}
    body = _encode_body(data, hdrs)

    async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
        last_exc = None
        for attempt in range(retries + 1):
            try:
                resp = await client.request(
                    method.upper(),
                    url,
                    headers=hdrs,
                    content=body,
                )
                if raise_for_status and not (200 <= resp.status_code < 300):
                    preview = (resp.text or "")[:200]
                    raise RuntimeError(f"HTTP {resp.status_code} for {url}: {preview}")
                return resp
            except Exception as e:
                last_exc = e
                if attempt < retries:
                    await asyncio.sleep(backoff * (2 ** attempt))
                    continue
                raise last_exc


async def fetch_text(url: str, *, method: str = "GET",
                     headers: Optional[Dict[str, str]] = None,
                     body: Any = None,
                     config: Optional[Dict] = None) -> str:
    """Pass-through fetch: returns the response body as text, whatever the status."""
    resp = await http_request(method, url, config=config, headers=headers, data=body)
    return resp.text


async def fetch_handler(args: Dict[str, Any], context) -> str:
    url = args.get('url')
    if not isinstance(url, str) or not url:
        raise ValueError("fetch requires a 'url'")
    return await fetch_text(
        url,
        method=args.get('method') or 'GET',
        headers=args.get('headers') or {},
        body=args.get('body'),
        config=getattr(context, 'http', None),
    )
