from dataclasses import replace

from har_sentinel.har import Cookie, Header, Request, Response, Transaction


def ts(seconds):
    return "2024-03-01T10:{:02d}:{:02d}.000Z".format(seconds // 60, seconds % 60)


def headers(pairs):
    if pairs is None:
        return ()
    if isinstance(pairs, dict):
        pairs = pairs.items()
    return tuple(Header(name, value) for name, value in pairs)


def tx(
    url,
    method="GET",
    request_headers=None,
    cookies=None,
    body=None,
    content_type=None,
    status=200,
    response_headers=None,
    response_cookies=None,
    response_body=None,
    response_type=None,
    at=0,
):
    return Transaction(
        started=ts(at),
        request=Request(
            method=method,
            url=url,
            headers=headers(request_headers),
            cookies=tuple(cookies or ()),
            body=body,
            content_type=content_type,
        ),
        response=Response(
            status=status,
            headers=headers(response_headers),
            cookies=tuple(response_cookies or ()),
            body=response_body,
            content_type=response_type,
        ),
    )


def timeline(*transactions, step=1):
    """Re-stamp transactions so entry i starts i * step seconds in."""
    return [replace(t, started=ts(i * step)) for i, t in enumerate(transactions)]


def bearer(token):
    return {"Authorization": "Bearer {}".format(token)}


def cookie(name, value="abc123", **attrs):
    return Cookie(name=name, value=value, **attrs)
