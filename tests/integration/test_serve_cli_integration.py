"""Integration tests for 'buildstamp serve'.

Starts the real server in a subprocess and talks to it over HTTP, then
points the build monitor at it.
"""

from __future__ import annotations

import json
import os
import socket
import subprocess
import sys
import time
from pathlib import Path
from typing import Generator, Tuple
from urllib.request import Request, urlopen

import pytest

from buildstamp.clock import parse_timestamp
from buildstamp.config import HostItem, MonitorConfig
from buildstamp.monitor import BuildMonitor, check_host


PROJECT_ROOT = Path(__file__).parent.parent.parent


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def _wait_for_health(url: str, timeout: float = 15.0) -> bool:
    start_time = time.time()
    while (time.time() - start_time) < timeout:
        if check_host(url, timeout=1.0).is_healthy:
            return True
        time.sleep(0.2)
    return False


@pytest.fixture
def running_server(temp_dir: Path) -> Generator[Tuple[str, subprocess.Popen], None, None]:
    """Launch 'buildstamp serve <port>' and yield its base URL."""
    port = _free_port()
    env = dict(os.environ)
    env.pop("BUILDSTAMP_CONFIG", None)
    env["PYTHONPATH"] = str(PROJECT_ROOT) + os.pathsep + env.get("PYTHONPATH", "")

    process = subprocess.Popen(
        [sys.executable, "-c", "from buildstamp.cli import main; main()", "serve", str(port),
         "--log-level", "warning"],
        cwd=temp_dir,
        env=env,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
    )
    url = f"http://127.0.0.1:{port}/"
    try:
        if not _wait_for_health(url):
            process.kill()
            out, err = process.communicate()
            pytest.fail(f"server did not start:\n{out}\n{err}")
        yield url, process
    finally:
        if process.poll() is None:
            process.terminate()
            try:
                process.wait(timeout=10)
            except subprocess.TimeoutExpired:
                process.kill()
                process.wait()


@pytest.mark.integration
class TestServeOverHttp:
    """Integration tests against a live server."""

    def test_get_returns_rounded_stamp(self, running_server):
        url, _ = running_server

        with urlopen(url, timeout=5) as response:
            assert response.status == 200
            assert response.headers["Content-Type"].startswith("application/json")
            body = json.loads(response.read())

        assert list(body.keys()) == ["buildAt"]
        value = parse_timestamp(body["buildAt"])
        assert value.minute % 5 == 0
        assert value.second == 0
        assert value.microsecond == 0

    @pytest.mark.parametrize("method", ["POST", "PUT", "DELETE", "TRACE"])
    def test_other_methods_and_paths(self, running_server, method):
        url, _ = running_server

        request = Request(url + "some/deep/path?x=1", data=b"ignored", method=method)
        with urlopen(request, timeout=5) as response:
            assert response.status == 200
            body = json.loads(response.read())

        assert list(body.keys()) == ["buildAt"]

    def test_startup_line_names_port(self, running_server):
        url, process = running_server
        process.terminate()
        out, _ = process.communicate(timeout=10)

        assert f"Listening on {url}" in out

    def test_monitor_reads_live_server(self, running_server):
        url, _ = running_server
        monitor = BuildMonitor(MonitorConfig(hosts=[HostItem(name="local", url=url)]))

        assert monitor.poll_once() == []
        status = monitor.get_status()["local"]

        assert status.is_healthy is True
        assert status.build_at is not None
        assert status.build_at.minute % 5 == 0


@pytest.mark.integration
class TestServeCommandParsing:
    """Integration tests for argument parsing through a fresh interpreter."""

    def test_serve_accepts_valid_port(self, temp_dir: Path):
        result = subprocess.run(
            [sys.executable, "-c", """
import sys
sys.path.insert(0, sys.argv[1])
from buildstamp.cli import build_parser, resolve_port

parser = build_parser()
args = parser.parse_args(['serve', '9090'])
assert resolve_port(args.port) == 9090
args = parser.parse_args(['serve', 'abc'])
assert resolve_port(args.port) == 8000
args = parser.parse_args(['serve'])
assert resolve_port(args.port) == 8000
print('OK')
""", str(PROJECT_ROOT)],
            capture_output=True,
            text=True,
            cwd=temp_dir,
        )

        assert result.returncode == 0, result.stderr
        assert "OK" in result.stdout

    def test_missing_config_file(self, temp_dir: Path):
        env = dict(os.environ)
        env["PYTHONPATH"] = str(PROJECT_ROOT) + os.pathsep + env.get("PYTHONPATH", "")
        result = subprocess.run(
            [sys.executable, "-c", "from buildstamp.cli import main; main()",
             "-c", str(temp_dir / "missing.yml"), "serve"],
            capture_output=True,
            text=True,
            cwd=temp_dir,
            env=env,
        )

        assert result.returncode == 2
        assert "Configuration file not found" in result.stderr
