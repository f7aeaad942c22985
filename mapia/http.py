# --- thin requests wrappers shared by every upstream client ---
from urllib.parse import urlsplit

import requests

from mapia import config


class UpstreamError(Exception):
    def __init__(self, message, status=None):
        super().__init__(message)
        self.status = status


def _error_from(response):
    text = response.text or ""
    return UpstreamError(
        f"HTTP {response.status_code} {response.reason} :: {text[:300]}",
        status=response.status_code,
    )


# requests puts the full URL (query string, appid included) in its messages; keep only the host
def _request_failed(url, exc):
    return UpstreamError(f"request failed: {type(exc).__name__} ({urlsplit(url).netloc})")


# GET/POST a JSON endpoint; any non-2xx is an UpstreamError
def fetch_json(url, method="GET", params=None, data=None, headers=None, timeout=None):
    try:
        r = requests.request(method, url, params=params, data=data, headers=headers,
                             timeout=timeout or config.http_timeout())
    except requests.RequestException as e:
        raise _request_failed(url, e) from e
    if not r.ok:
        raise _error_from(r)
    try:
        return r.json()
    except ValueError as e:
        raise UpstreamError(f"invalid JSON from upstream: {e}", status=r.status_code) from e


# fetch a text body without judging the status (WMS negotiation inspects it itself)
def fetch_text(url, params=None, headers=None, timeout=None):
    try:
        r = requests.request("GET", url, params=params, headers=headers,
                             timeout=timeout or config.http_timeout())
    except requests.RequestException as e:
        raise _request_failed(url, e) from e
    return r.status_code, r.headers.get("content-type", ""), r.text or ""


def fetch_bytes(url, params=None, headers=None, timeout=None):
    try:
        r = requests.request("GET", url, params=params, headers=headers,
                             timeout=timeout or config.http_timeout())
    except requests.RequestException as e:
        raise _request_failed(url, e) from e
    return r.status_code, r.headers.get("content-type", ""), r.content


# shape shared by the "tool" style fetchers (ok/data/source/limitations/error)
def tool_result(ok, data=None, source=None, limitations=None, error=None):
    result = {"ok": ok, "data": data, "source": source, "limitations": list(limitations or [])}
    if error:
        result["error"] = error
    return result


def source_ref(name, url, note=None):
    ref = {"name": name, "url": url}
    if note:
        ref["note"] = note
    return ref
