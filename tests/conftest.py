import json
from typing import Any, Callable, Dict, List, Optional
from unittest.mock import MagicMock

import jwt
import pytest
import requests

from ffclient.config import Options
from ffclient.streaming import PushTransport

BASE_URL = "https://ff.test/api/1.0"
ENVIRONMENT = "env-123"
TARGET = {"identifier": "user-1", "name": "User One", "attributes": {"email": "u1@example.com", "tier": "gold"}}
EVALUATIONS_URL = f"{BASE_URL}/client/env/{ENVIRONMENT}/target/user-1/evaluations"


def make_response(status: int = 200, body: Any = None, text: Optional[str] = None) -> requests.Response:
    resp = requests.Response()
    resp.status_code = status
    resp.encoding = "utf-8"
    if text is not None:
        resp._content = text.encode("utf-8")
    else:
        resp._content = json.dumps(body).encode("utf-8")
        resp.headers["Content-Type"] = "application/json"
    return resp


def make_token(environment: Optional[str] = ENVIRONMENT, **claims) -> str:
    payload = dict(claims)
    if environment is not None:
        payload["environment"] = environment
    return jwt.encode(payload, "signature-is-not-checked-by-the-client-0123", algorithm="HS256")


class FakeHttp:
    """requests.Session stand-in; each url maps to a queue of responses or exceptions."""

    def __init__(self):
        self.routes: Dict[tuple, List[Any]] = {}
        self.post = MagicMock(side_effect=lambda url, **kw: self._reply("POST", url))
        self.get = MagicMock(side_effect=lambda url, **kw: self._reply("GET", url))

    def route(self, method: str, url: str, *replies: Any):
        self.routes[(method, url)] = list(replies)

    def _reply(self, method: str, url: str):
        queue = self.routes.get((method, url))
        if not queue:
            return make_response(404, {"message": "not found"})
        reply = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(reply, BaseException):
            raise reply
        return reply

    def get_urls(self) -> List[str]:
        return [c.args[0] for c in self.get.call_args_list]


class ManualRunner:
    """TaskRunner stand-in with a hand-cranked clock."""

    def __init__(self):
        self.now = 0.0
        self.queued: List[tuple] = []
        self.delayed: List[tuple] = []
        self.closed = False

    def submit(self, fn: Callable, *args):
        if self.closed:
            return None
        task = (fn, args)
        self.queued.append(task)
        return task

    def submit_later(self, delay: float, fn: Callable, *args):
        if self.closed:
            return None
        task = (self.now + delay, fn, args)
        self.delayed.append(task)
        return task

    def advance(self, seconds: float):
        self.now += seconds
        due = [t for t in self.delayed if t[0] <= self.now]
        self.delayed = [t for t in self.delayed if t[0] > self.now]
        for _, fn, args in due:
            self.submit(fn, *args)

    def run(self, index: int = 0):
        fn, args = self.queued.pop(index)
        return fn(*args)

    def run_all(self):
        while self.queued:
            self.run(0)

    def pending(self) -> int:
        return len(self.queued) + len(self.delayed)

    def close(self):
        self.closed = True
        self.queued.clear()
        self.delayed.clear()


class FakeTransport(PushTransport):
    def __init__(self, fail: Optional[Exception] = None):
        self.fail = fail
        self.url = None
        self.headers = None
        self.dispatcher = None
        self.close_calls = 0

    def connect(self, url, headers, dispatcher):
        if self.fail is not None:
            raise self.fail
        self.url = url
        self.headers = headers
        self.dispatcher = dispatcher

    def close(self):
        self.close_calls += 1


class Recorder:
    def __init__(self):
        self.calls: List[tuple] = []

    def __call__(self, *payload):
        self.calls.append(payload)

    @property
    def payloads(self) -> List[Any]:
        return [c[0] if c else None for c in self.calls]


@pytest.fixture
def options() -> Options:
    return Options(base_url=BASE_URL)


@pytest.fixture
def http() -> FakeHttp:
    return FakeHttp()


@pytest.fixture
def runner() -> ManualRunner:
    return ManualRunner()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()
