"""Scripted stand-ins for ``requests.Session`` used by the registry client tests."""

import json

import requests


class FakeResponse:
    def __init__(self, status_code=200, payload=None, raw=None):
        self.status_code = status_code
        if raw is not None:
            self.content = raw.encode("utf-8")
        elif payload is None:
            self.content = b""
        else:
            self.content = json.dumps(payload).encode("utf-8")

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return json.loads(self.content.decode("utf-8"))


class FakeSession:
    """Answers requests from ``routes`` and records every call.

    ``routes`` maps ``(METHOD, url)`` to a :class:`FakeResponse`, a list of
    responses consumed in order, or an exception instance to raise. Unknown
    routes answer 404.
    """

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.headers = {}
        self.requests = []
        self.closed = False

    def request(self, method, url, timeout=None, **kwargs):
        self.requests.append({"method": method, "url": url, "timeout": timeout, **kwargs})
        answer = self.routes.get((method, url), FakeResponse(404))
        if isinstance(answer, list):
            answer = answer.pop(0) if answer else FakeResponse(404)
        if isinstance(answer, Exception):
            raise answer
        return answer

    def close(self):
        self.closed = True
