"""Fixtures that run a real HTTP target for workers to load."""

from __future__ import annotations

import socketserver
import threading
import time

import pytest
from flask import Flask
from werkzeug.serving import make_server


def create_target_app() -> Flask:
    app = Flask("target")

    @app.route("/ok")
    def ok():
        return "ok"

    @app.route("/teapot")
    def teapot():
        return "short and stout", 418

    @app.route("/slow")
    def slow():
        time.sleep(0.5)
        return "late"

    return app


@pytest.fixture
def target_server():
    """A threaded target server on an ephemeral port; yields its base URL."""
    server = make_server("127.0.0.1", 0, create_target_app(), threaded=True)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://127.0.0.1:{server.socket.getsockname()[1]}"
    finally:
        server.shutdown()
        server.server_close()
        thread.join(5)


class _TricklingHandler(socketserver.BaseRequestHandler):
    """Sends headers at once, then one body byte every 150 ms."""

    body_length = 10

    def handle(self):
        self.request.recv(4096)
        try:
            self.request.sendall(
                b"HTTP/1.1 200 OK\r\n"
                + f"Content-Length: {self.body_length}\r\n".encode()
                + b"Connection: close\r\n\r\n"
            )
            for _ in range(self.body_length):
                time.sleep(0.15)
                self.request.sendall(b"x")
        except OSError:
            # client gave up
            pass


@pytest.fixture
def trickling_server():
    """A raw socket server whose response body trickles in; yields its URL."""
    server = socketserver.ThreadingTCPServer(("127.0.0.1", 0), _TricklingHandler)
    server.daemon_threads = True
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://127.0.0.1:{server.server_address[1]}/"
    finally:
        server.shutdown()
        server.server_close()
        thread.join(5)
