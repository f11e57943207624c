"""Helpers for recognising HTTP traffic."""

_METHOD_PREFIXES = (
    "GET ",
    "POST ",
    "PUT ",
    "DELETE ",
    "HEAD ",
    "OPTIONS ",
    "PATCH ",
)


def is_http_request(request: str) -> bool:
    """Return True if the text starts like an HTTP/1.x request line."""
    if len(request) < 5:  # shortest is "GET /"
        return False
    return request.startswith(_METHOD_PREFIXES)