import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple


@dataclass(frozen=True)
class Header:
    name: str
    value: str


@dataclass(frozen=True)
class Cookie:
    name: str
    value: str
    path: Optional[str] = None
    domain: Optional[str] = None
    expires: Optional[str] = None
    http_only: Optional[bool] = None
    secure: Optional[bool] = None


def _lookup(headers, name):
    wanted = name.lower()
    for header in headers:
        if header.name.lower() == wanted:
            return header.value
    return None


@dataclass(frozen=True)
class Request:
    method: str
    url: str
    headers: Tuple[Header, ...] = ()
    cookies: Tuple[Cookie, ...] = ()
    body: Optional[str] = None
    content_type: Optional[str] = None

    def header(self, name: str) -> Optional[str]:
        return _lookup(self.headers, name)

    def has_header(self, name: str) -> bool:
        return self.header(name) is not None

    def all_cookies(self) -> Tuple[Cookie, ...]:
        """Recorded cookies, or those parsed from the Cookie header."""
        if self.cookies:
            return self.cookies
        value = self.header("cookie")
        if not value:
            return ()
        return _parse_cookie_header(value)


@dataclass(frozen=True)
class Response:
    status: int
    headers: Tuple[Header, ...] = ()
    cookies: Tuple[Cookie, ...] = ()
    body: Optional[str] = None
    content_type: Optional[str] = None

    def header(self, name: str) -> Optional[str]:
        return _lookup(self.headers, name)

    def has_header(self, name: str) -> bool:
        return self.header(name) is not None

    def all_cookies(self) -> Tuple[Cookie, ...]:
        """Recorded cookies, or those parsed from Set-Cookie headers."""
        if self.cookies:
            return self.cookies
        return tuple(
            _parse_set_cookie(header.value)
            for header in self.headers
            if header.name.lower() == "set-cookie" and "=" in header.value
        )


@dataclass(frozen=True)
class Transaction:
    """One recorded request/response pair and the time it started."""

    started: str
    request: Request
    response: Response = field(default_factory=lambda: Response(status=0))


# -------------------------------------------------------
# HAR decoding
# -------------------------------------------------------


def load_har(path):
    har_path = Path(path)

    if not har_path.is_file():
        raise FileNotFoundError("HAR file not found: {}".format(har_path))

    with har_path.open("r", encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as exc:
            raise ValueError("HAR file is not valid JSON: {}".format(exc))

    return transactions_from_har(data)


def transactions_from_har(data: Dict[str, Any]) -> List[Transaction]:
    """
    Convert a decoded HAR document into Transactions, in recorded order.
    Missing optional fields fall back to empty values.
    """
    if not isinstance(data, dict) or not isinstance(data.get("log"), dict):
        raise ValueError("HAR document must be an object with a 'log' object")

    entries = data["log"].get("entries") or []
    if not isinstance(entries, list):
        raise ValueError("HAR 'log.entries' must be a list")

    transactions = []
    for idx, entry in enumerate(entries):
        if not isinstance(entry, dict):
            continue
        transactions.append(_entry_to_transaction(entry, idx))

    return transactions


def _entry_to_transaction(entry, idx):
    request = _section(entry, "request", idx)
    response = _section(entry, "response", idx)

    post_data = _section(request, "postData", idx)
    content = _section(response, "content", idx)

    return Transaction(
        started=str(entry.get("startedDateTime") or ""),
        request=Request(
            method=str(request.get("method") or "").upper(),
            url=str(request.get("url") or ""),
            headers=_headers(request.get("headers")),
            cookies=_cookies(request.get("cookies")),
            body=_post_body(post_data),
            content_type=_text(post_data.get("mimeType")),
        ),
        response=Response(
            status=_status(response.get("status")),
            headers=_headers(response.get("headers")),
            cookies=_cookies(response.get("cookies")),
            body=_text(content.get("text")),
            content_type=_text(content.get("mimeType")),
        ),
    )


def _section(parent, key, idx):
    value = parent.get(key) or {}
    if not isinstance(value, dict):
        raise ValueError("HAR entry {}: '{}' must be an object".format(idx, key))
    return value


def _list(raw):
    return raw if isinstance(raw, list) else []


def _text(raw):
    if raw is None:
        return None
    return str(raw)


def _headers(raw):
    headers = []
    for item in _list(raw):
        if isinstance(item, dict) and "name" in item:
            headers.append(Header(str(item["name"]), str(item.get("value") or "")))
    return tuple(headers)


def _cookies(raw):
    cookies = []
    for item in _list(raw):
        if not isinstance(item, dict) or "name" not in item:
            continue
        cookies.append(
            Cookie(
                name=str(item["name"]),
                value=str(item.get("value") or ""),
                path=item.get("path"),
                domain=item.get("domain"),
                expires=item.get("expires"),
                http_only=item.get("httpOnly"),
                secure=item.get("secure"),
            )
        )
    return tuple(cookies)


def _parse_cookie_header(value):
    cookies = []
    for pair in value.split(";"):
        name, sep, cookie_value = pair.strip().partition("=")
        if sep and name:
            cookies.append(Cookie(name=name, value=cookie_value))
    return tuple(cookies)


def _post_body(post_data):
    text = post_data.get("text")
    if text is not None:
        return str(text)

    params = post_data.get("params")
    if isinstance(params, list) and params:
        pairs = []
        for param in params:
            if isinstance(param, dict) and "name" in param:
                pairs.append("{}={}".format(param["name"], param.get("value") or ""))
        return "&".join(pairs)

    return None


def _status(raw):
    try:
        return int(raw)
    except (TypeError, ValueError):
        return 0


def _parse_set_cookie(value):
    pair, _, attributes = value.partition(";")
    name, _, cookie_value = pair.strip().partition("=")

    fields = {"http_only": False, "secure": False}
    for attribute in attributes.split(";"):
        key, _, attr_value = attribute.strip().partition("=")
        key = key.lower()
        if key == "httponly":
            fields["http_only"] = True
        elif key == "secure":
            fields["secure"] = True
        elif key in ("path", "domain", "expires"):
            fields[key] = attr_value

    return Cookie(name=name, value=cookie_value, **fields)
