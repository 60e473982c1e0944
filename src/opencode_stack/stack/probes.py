"""Liveness and reachability probes.

Port checks are used to observe a freshly started daemon; HTTP probes back
the verification report. Probes never raise: failures are returned as
values.
"""

from __future__ import annotations

import asyncio
import socket
import time
from dataclasses import dataclass
from datetime import datetime

import httpx

DEFAULT_PROBE_TIMEOUT = 5.0


def is_port_open(port: int, host: str = "127.0.0.1", timeout: float = 1.0) -> bool:
    """Check if something is listening on a local port."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.settimeout(timeout)
            return sock.connect_ex((host, port)) == 0
    except OSError:
        return False


def wait_for_port(
    port: int,
    attempts: int = 10,
    interval_seconds: float = 0.5,
    host: str = "127.0.0.1",
) -> bool:
    """Poll a port until it accepts connections or the attempts run out."""
    for attempt in range(1, attempts + 1):
        if is_port_open(port, host):
            return True
        if attempt < attempts:
            time.sleep(interval_seconds)
    return False


@dataclass
class ProbeResult:
    """Result of one HTTP reachability probe."""

    url: str
    reachable: bool
    status_code: int | None = None
    elapsed_seconds: float = 0.0
    error: str | None = None


class EndpointProber:
    """Probe HTTP endpoints concurrently, each with a bounded timeout."""

    def __init__(self, timeout_seconds: float = DEFAULT_PROBE_TIMEOUT):
        """Initialize prober.

        Args:
            timeout_seconds: Upper bound for each probe, connect included.
        """
        self.timeout_seconds = timeout_seconds

    async def probe(self, url: str) -> ProbeResult:
        """Probe one URL. Any HTTP answer below 500 counts as reachable."""
        start = datetime.now()
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await asyncio.wait_for(client.get(url), self.timeout_seconds)
            elapsed = (datetime.now() - start).total_seconds()
            if response.status_code < 500:
                return ProbeResult(url, True, response.status_code, elapsed)
            return ProbeResult(
                url,
                False,
                response.status_code,
                elapsed,
                error=f"HTTP {response.status_code}",
            )
        except httpx.ConnectError:
            error = "Connection refused"
        except (httpx.TimeoutException, asyncio.TimeoutError):
            error = "Request timeout"
        except Exception as e:
            error = str(e) or type(e).__name__

        elapsed = (datetime.now() - start).total_seconds()
        return ProbeResult(url, False, elapsed_seconds=elapsed, error=error)

    async def probe_all(self, urls: list[str]) -> list[ProbeResult]:
        """Probe every URL concurrently; returns once all probes have settled."""
        return list(await asyncio.gather(*(self.probe(url) for url in urls)))

    def probe_all_sync(self, urls: list[str]) -> list[ProbeResult]:
        """Synchronous wrapper for probe_all."""
        if not urls:
            return []
        return asyncio.run(self.probe_all(urls))
