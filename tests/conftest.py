import json
import secrets
import threading
from http.cookies import SimpleCookie
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import parse_qs, urlparse

import pytest
import requests


USERNAME = "admin"
PASSWORD = "adminadmin"


def make_response(status_code=200, body="", json_body=None):
    """Build a requests.Response without touching the network."""
    if json_body is not None:
        body = json.dumps(json_body)
    response = requests.Response()
    response.status_code = status_code
    response._content = body.encode("utf-8")
    response.encoding = "utf-8"
    return response


class FakeQBittorrent:
    """
    In-process stand-in for the qBittorrent WebUI API.

    Implements auth/login, app/preferences and app/setPreferences with SID
    cookies and the Referer check, and records every request it receives.
    """

    def __init__(self, username=USERNAME, password=PASSWORD, listen_port=6881):
        self.username = username
        self.password = password
        self.prefs = {"listen_port": listen_port, "upnp": True, "save_path": "/downloads"}
        self.sessions = set()
        self.requests = []
        self.set_payloads = []
        self.base_url = None
        self._server = None
        self._thread = None

    def expire_sessions(self):
        self.sessions.clear()

    def paths(self):
        return [f"{method} {path}" for method, path in self.requests]

    def start(self):
        self._server = ThreadingHTTPServer(("127.0.0.1", 0), self._handler())
        host, port = self._server.server_address
        self.base_url = f"http://{host}:{port}"
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()

    def stop(self):
        self._server.shutdown()
        self._server.server_close()
        self._thread.join()

    def _handler(self):
        fake = self

        class Handler(BaseHTTPRequestHandler):
            def log_message(self, format, *args):
                pass

            def _reply(self, status, body="", headers=None):
                data = body.encode("utf-8")
                self.send_response(status)
                self.send_header("Content-Length", str(len(data)))
                for name, value in (headers or {}).items():
                    self.send_header(name, value)
                self.end_headers()
                self.wfile.write(data)

            def _form(self):
                length = int(self.headers.get("Content-Length", 0))
                return parse_qs(self.rfile.read(length).decode("utf-8"))

            def _authorized(self):
                cookie = SimpleCookie(self.headers.get("Cookie", ""))
                return "SID" in cookie and cookie["SID"].value in fake.sessions

            def _referer_ok(self):
                return self.headers.get("Referer", "").startswith(fake.base_url)

            def do_GET(self):
                path = urlparse(self.path).path
                fake.requests.append(("GET", path))

                if path != "/api/v2/app/preferences":
                    return self._reply(404, "Not Found")
                if not self._authorized():
                    return self._reply(403, "Forbidden")
                self._reply(200, json.dumps(fake.prefs), {"Content-Type": "application/json"})

            def do_POST(self):
                path = urlparse(self.path).path
                fake.requests.append(("POST", path))
                form = self._form()

                if not self._referer_ok():
                    return self._reply(401, "Unauthorized")

                if path == "/api/v2/auth/login":
                    username = form.get("username", [""])[0]
                    password = form.get("password", [""])[0]
                    if username != fake.username or password != fake.password:
                        return self._reply(200, "Fails.")
                    sid = secrets.token_hex(16)
                    fake.sessions.add(sid)
                    return self._reply(200, "Ok.", {"Set-Cookie": f"SID={sid}; HttpOnly; path=/"})

                if path == "/api/v2/app/setPreferences":
                    if not self._authorized():
                        return self._reply(403, "Forbidden")
                    payload = json.loads(form["json"][0])
                    fake.set_payloads.append(payload)
                    fake.prefs.update(payload)
                    return self._reply(200)

                self._reply(404, "Not Found")

        return Handler


@pytest.fixture
def qbittorrent():
    server = FakeQBittorrent()
    server.start()
    yield server
    server.stop()


@pytest.fixture
def port_file(tmp_path):
    return tmp_path / "forwarded_port"
