"""Build monitor for buildstamp hosts.

Polls every configured host's timestamp endpoint, keeps the latest health
status per host and reports when a host starts serving a new ``buildAt``
that stays unchanged for ``stability_window`` consecutive checks.
"""

from __future__ import annotations

import json
import logging
import sys
import time
from dataclasses import dataclass
from datetime import datetime
from http.client import HTTPException
from typing import Any, Callable, Dict, List, Optional
from urllib.error import HTTPError, URLError
from urllib.request import urlopen

from .clock import TIMESTAMP_FIELD, format_timestamp, parse_timestamp, utc_now
from .config import HostItem, MonitorConfig


logger = logging.getLogger(__name__)


@dataclass
class HealthStatus:
    """Result of the latest check against one host."""
    last_check: datetime
    is_healthy: bool
    build_at: Optional[datetime] = None
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "last_check": format_timestamp(self.last_check),
            "is_healthy": self.is_healthy,
            "build_at": format_timestamp(self.build_at) if self.build_at else None,
            "error_message": self.error_message,
        }


@dataclass
class BuildChange:
    """A new build timestamp that held for the whole stability window."""
    host: str
    previous: Optional[datetime]
    current: datetime


@dataclass
class _BuildTracker:
    baseline: Optional[datetime] = None
    candidate: Optional[datetime] = None
    streak: int = 0


def _extract_build_at(body: bytes) -> Optional[datetime]:
    try:
        document = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        logger.debug("Failed to parse JSON: %s", e)
        return None
    if not isinstance(document, dict):
        return None
    value = document.get(TIMESTAMP_FIELD)
    if not isinstance(value, str):
        return None
    try:
        return parse_timestamp(value)
    except ValueError:
        return None


def check_host(url: str, timeout: float = 5.0) -> HealthStatus:
    """Fetch one host's timestamp endpoint.

    Never raises for transport problems; they are reported through
    ``HealthStatus.error_message``.
    """
    try:
        with urlopen(url, timeout=timeout) as response:
            status_code = response.status
            body = response.read()
    except HTTPError as e:
        return HealthStatus(
            last_check=utc_now(),
            is_healthy=False,
            error_message=f"HTTP {e.code}",
        )
    except (URLError, OSError, ValueError) as e:
        return HealthStatus(
            last_check=utc_now(),
            is_healthy=False,
            error_message=str(getattr(e, "reason", e)),
        )
    except HTTPException as e:
        # Malformed status line, truncated body and similar protocol errors
        return HealthStatus(
            last_check=utc_now(),
            is_healthy=False,
            error_message=f"{type(e).__name__}: {e}",
        )

    now = utc_now()
    if not 200 <= status_code < 300:
        return HealthStatus(last_check=now, is_healthy=False, error_message=f"HTTP {status_code}")

    return HealthStatus(last_check=now, is_healthy=True, build_at=_extract_build_at(body))


Checker = Callable[[str, float], HealthStatus]


class BuildMonitor:
    """Polls hosts and tracks their build timestamps."""

    def __init__(
        self,
        config: MonitorConfig,
        checker: Checker = check_host,
        on_change: Optional[Callable[[BuildChange], None]] = None,
    ) -> None:
        self.config = config
        self._checker = checker
        self._on_change = on_change
        self._status: Dict[str, HealthStatus] = {}
        self._trackers: Dict[str, _BuildTracker] = {}
        self._stopped = False

    @property
    def hosts(self) -> List[HostItem]:
        return self.config.hosts

    def get_status(self) -> Dict[str, HealthStatus]:
        return dict(self._status)

    def _track(self, host: HostItem, status: HealthStatus) -> Optional[BuildChange]:
        tracker = self._trackers.setdefault(host.name, _BuildTracker())

        if not status.is_healthy or status.build_at is None:
            tracker.candidate = None
            tracker.streak = 0
            return None

        if tracker.baseline is None:
            tracker.baseline = status.build_at
            return None

        if status.build_at == tracker.baseline:
            tracker.candidate = None
            tracker.streak = 0
            return None

        if status.build_at != tracker.candidate:
            tracker.candidate = status.build_at
            tracker.streak = 0
        tracker.streak += 1

        if tracker.streak < self.config.stability_window:
            return None

        change = BuildChange(host=host.name, previous=tracker.baseline, current=status.build_at)
        tracker.baseline = status.build_at
        tracker.candidate = None
        tracker.streak = 0
        return change

    def _announce(self, change: BuildChange) -> None:
        previous = format_timestamp(change.previous) if change.previous else "-"
        logger.info("New build on %s: %s -> %s", change.host, previous,
                    format_timestamp(change.current))
        bell = "\a" if self.config.enable_bell else ""
        print(f"{bell}[{change.host}] new build {format_timestamp(change.current)} (was {previous})")
        sys.stdout.flush()

    def poll_once(self) -> List[BuildChange]:
        """Check every host once and return the builds that became stable."""
        changes: List[BuildChange] = []
        for host in self.hosts:
            status = self._checker(host.url, self.config.timeout)
            self._status[host.name] = status
            if not status.is_healthy:
                logger.warning("Host %s unhealthy: %s", host.name, status.error_message)

            change = self._track(host, status)
            if change is not None:
                changes.append(change)
                if self._on_change is not None:
                    self._on_change(change)
                else:
                    self._announce(change)
        return changes

    def run(self, iterations: Optional[int] = None) -> None:
        """Poll every ``interval`` milliseconds until stopped.

        Polls start at a fixed rate; time spent checking hosts is taken out
        of the following sleep.
        """
        self._stopped = False
        period = self.config.interval / 1000.0
        count = 0
        while not self._stopped:
            started = time.monotonic()
            self.poll_once()
            count += 1
            if iterations is not None and count >= iterations:
                break
            elapsed = time.monotonic() - started
            time.sleep(max(0.0, period - elapsed))

    def stop(self) -> None:
        self._stopped = True
