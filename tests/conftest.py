import os
from typing import Callable, List, Optional

import httpx
import pytest

from media_relay.config.settings import Settings
from media_relay.main import create_app
from media_relay.services.ytdlp import CompletedProcess, SubprocessExecutor


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        logging={"level": "DEBUG", "enable_rich": False},
        security={"enable_ssrf_protection": False},
        download={"scratch_dir": str(tmp_path / "scratch"), "chunk_size": 1024},
    )


def _unreachable(request: httpx.Request) -> httpx.Response:
    raise AssertionError(f"unexpected outbound request to {request.url}")


@pytest.fixture
def upstream_handler():
    """Replace .handler in a test to answer outbound httpx calls"""
    class Upstream:
        handler: Callable[[httpx.Request], httpx.Response] = staticmethod(_unreachable)
        requests: List[httpx.Request] = []

    upstream = Upstream()
    upstream.requests = []
    return upstream


@pytest.fixture
def app(settings, upstream_handler):
    def dispatch(request: httpx.Request) -> httpx.Response:
        upstream_handler.requests.append(request)
        return upstream_handler.handler(request)

    outbound = httpx.AsyncClient(transport=httpx.MockTransport(dispatch))
    return create_app(settings, http_client=outbound)


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


class FakeExecutor:
    """Stands in for SubprocessExecutor.run and records every command"""

    def __init__(self):
        self.calls: List[List[str]] = []
        self.result = CompletedProcess(returncode=0, stdout=b"", stderr=b"")
        self.exc: Optional[BaseException] = None
        self.on_call: Optional[Callable[[List[str]], None]] = None

    async def run(self, cmd, timeout, max_output=None, cancel_check=None, poll_interval=1.0):
        self.calls.append(list(cmd))
        if self.on_call:
            self.on_call(list(cmd))
        if self.exc:
            raise self.exc
        return self.result


@pytest.fixture
def fake_executor(monkeypatch) -> FakeExecutor:
    fake = FakeExecutor()
    monkeypatch.setattr(SubprocessExecutor, "run", staticmethod(fake.run))
    return fake


def output_path_of(cmd: List[str]) -> str:
    return cmd[cmd.index("-o") + 1]


def write_output(content: bytes) -> Callable[[List[str]], None]:
    def _write(cmd: List[str]) -> None:
        path = output_path_of(cmd)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "wb") as f:
            f.write(content)
    return _write
