"""Test doubles for sessions, clocks and threads."""

from __future__ import annotations

from collections import deque


class FakeResponse:
    """Minimal stand-in for ``requests.Response``; ``iter_content`` yields ``chunks``."""

    def __init__(self, status_code: int, chunks=(b"ok",), on_chunk=None):
        self.status_code = status_code
        self.chunks = list(chunks)
        self.on_chunk = on_chunk
        self.closed = False

    def iter_content(self, chunk_size=1):
        for chunk in self.chunks:
            if self.on_chunk is not None:
                self.on_chunk(chunk)
            if isinstance(chunk, BaseException):
                raise chunk
            yield chunk

    def close(self):
        self.closed = True


class FakeSession:
    """
    Scripted replacement for ``requests.Session``.

    Each script entry is a status code, a ready-made ``FakeResponse`` or an
    exception instance (raised). The last entry repeats once the script
    runs out.
    """

    def __init__(self, script):
        self.script = deque(script)
        self.calls = []
        self.closed = False

    def get(self, url, timeout=None, stream=False):
        self.calls.append((url, timeout))
        step = self.script.popleft() if len(self.script) > 1 else self.script[0]
        if isinstance(step, BaseException):
            raise step
        if isinstance(step, FakeResponse):
            return step
        return FakeResponse(step)

    def close(self):
        self.closed = True


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeThread:
    """Records what would have been started instead of starting a thread."""

    started = []

    def __init__(self, target=None, args=(), name=None, daemon=None):
        self.target = target
        self.args = args
        self.name = name
        self.daemon = daemon
        self.alive = False

    def start(self):
        self.alive = True
        FakeThread.started.append(self)

    def is_alive(self):
        return self.alive

    def join(self, timeout=None):
        self.alive = False
