#!/usr/bin/env python3
"""
Snapshot Fetcher for MeshSentry

This module polls the traffic graph endpoint for topology snapshots. It owns
the timeout and retry policy and guarantees that at most one refresh cycle
(including its retries) is in flight at any time.
"""

import time
import logging
import threading
import requests
import jsonschema
from dataclasses import dataclass
from typing import Callable, Optional

from ..common.errors import FetchError, NetworkError, HttpError, ParseError, EmptyDataError
from ..common.models import GraphSnapshot

logger = logging.getLogger("SnapshotFetcher")

GRAPH_PATH = "/api/traffic/graph"

# Top-level shape only; individual entries are validated leniently while parsing
SNAPSHOT_SCHEMA = {
    "type": "object",
    "properties": {
        "nodes": {"type": ["array", "null"]},
        "edges": {"type": ["array", "null"]},
        "clusters": {"type": ["array", "null"]},
        "clusterStatus": {"type": ["object", "null"]},
    },
    "required": ["nodes"],
}


class SnapshotFetcher:
    """Fetches graph snapshots over HTTP"""

    def __init__(self, api_url: str, timeout: float = 8.0,
                 session: Optional[requests.Session] = None):
        """
        Initialize the fetcher

        Args:
            api_url: Base URL of the dashboard API
            timeout: Per-attempt timeout in seconds
            session: Optional requests session to reuse
        """
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.validator = jsonschema.Draft7Validator(SNAPSHOT_SCHEMA)

    def fetch(self, deployment_name: str, namespace: str) -> GraphSnapshot:
        """
        Fetch one snapshot

        Args:
            deployment_name: Deployment the graph is centered on
            namespace: Namespace to query

        Returns:
            Parsed graph snapshot

        The timeout bounds the connect and each read separately, as requests
        applies it; a server trickling its body can keep one attempt open longer.

        Raises:
            NetworkError: Connection failure or timeout
            HttpError: Non-success response
            ParseError: Body is not a valid graph snapshot
        """
        url = f"{self.api_url}{GRAPH_PATH}"
        params = {"deployment": deployment_name, "namespace": namespace}

        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except requests.Timeout as e:
            raise NetworkError(f"Request to {url} timed out after {self.timeout}s", e) from e
        except requests.RequestException as e:
            raise NetworkError(f"Request to {url} failed: {e}", e) from e

        if not response.ok:
            raise HttpError(response.status_code, response.reason)

        try:
            body = response.json()
        except ValueError as e:
            raise ParseError(f"Response body is not valid JSON: {e}", e) from e

        errors = list(self.validator.iter_errors(body))
        if errors:
            raise ParseError(f"Response body is not a graph snapshot: {errors[0].message}")

        return GraphSnapshot.from_dict(body)

    def close(self):
        """Close the underlying HTTP session, aborting pooled connections"""
        self.session.close()


@dataclass
class FetchSession:
    """Retry bookkeeping for one refresh cycle"""
    initial: bool
    max_attempts: int
    attempts: int = 0
    last_error: Optional[FetchError] = None

    @property
    def is_last_attempt(self) -> bool:
        return self.attempts >= self.max_attempts

    def record_failure(self, error: FetchError):
        self.last_error = error


class SnapshotPoller:
    """
    Drives a SnapshotFetcher on a fixed period.

    The first refresh cycle runs immediately on start. A cycle retries failed
    or empty fetches after a fixed delay; exhausting the attempts of the
    first-ever cycle surfaces the error, later exhaustion keeps the last good
    snapshot.
    """

    def __init__(self, fetcher: SnapshotFetcher, deployment_name: str, namespace: str,
                 on_snapshot: Callable[[GraphSnapshot], None],
                 on_error: Optional[Callable[[FetchError], None]] = None,
                 poll_interval: float = 10.0, retry_delay: float = 2.0,
                 max_attempts: int = 3):
        self.fetcher = fetcher
        self.deployment_name = deployment_name
        self.namespace = namespace
        self.on_snapshot = on_snapshot
        self.on_error = on_error
        self.poll_interval = poll_interval
        self.retry_delay = retry_delay
        self.max_attempts = max_attempts

        # Shared by periodic ticks, retries and manual refreshes
        self.in_flight = threading.Lock()
        self.stopped = threading.Event()

        self.initial_cycle_done = False
        self.load_error: Optional[FetchError] = None
        self.last_snapshot: Optional[GraphSnapshot] = None

        self.running = False
        self.poll_thread = None

    @property
    def is_loading(self) -> bool:
        return not self.initial_cycle_done

    def start(self):
        """Start the polling thread"""
        if self.running:
            logger.warning("Snapshot poller is already running")
            return

        self.running = True
        self.stopped.clear()

        self.poll_thread = threading.Thread(target=self._poll_loop, daemon=True)
        self.poll_thread.start()

        logger.info(f"Snapshot poller started for {self.namespace}/{self.deployment_name}")

    def stop(self):
        """Cancel the timer and any in-flight request"""
        if not self.running:
            logger.warning("Snapshot poller is not running")
            return

        self.running = False
        self.stopped.set()
        self.fetcher.close()

        if self.poll_thread and self.poll_thread.is_alive():
            self.poll_thread.join(timeout=5.0)

        logger.info("Snapshot poller stopped")

    def _poll_loop(self):
        logger.info("Poll loop started")
        next_tick = time.monotonic()

        while not self.stopped.is_set():
            try:
                self.refresh()
            except Exception as e:
                logger.error(f"Error in poll loop: {e}")

            next_tick += self.poll_interval
            now = time.monotonic()
            if next_tick <= now:
                # The cycle overran one or more periods; drop the missed ticks
                missed = int((now - next_tick) // self.poll_interval) + 1
                next_tick += missed * self.poll_interval

            self.stopped.wait(next_tick - now)

        logger.info("Poll loop stopped")

    def refresh(self) -> Optional[GraphSnapshot]:
        """
        Run one refresh cycle unless one is already in flight

        Returns:
            The accepted snapshot, or None if the cycle was skipped, failed or
            was cancelled
        """
        if not self.in_flight.acquire(blocking=False):
            logger.debug("Refresh skipped, a fetch is already in flight")
            return None

        try:
            return self._run_cycle(FetchSession(initial=not self.initial_cycle_done,
                                                max_attempts=self.max_attempts))
        finally:
            self.in_flight.release()

    def _run_cycle(self, session: FetchSession) -> Optional[GraphSnapshot]:
        while True:
            if self.stopped.is_set():
                return None

            session.attempts += 1
            try:
                snapshot = self.fetcher.fetch(self.deployment_name, self.namespace)
                if snapshot.is_empty and not session.is_last_attempt:
                    raise EmptyDataError(snapshot)
                break
            except FetchError as e:
                session.record_failure(e)
                if self.stopped.is_set():
                    # Failed because stop() closed the session; nothing is reported
                    return None
                if session.is_last_attempt:
                    return self._handle_exhausted(session)

                logger.info(f"Fetch attempt {session.attempts}/{session.max_attempts} failed: {e}; "
                            f"retrying in {self.retry_delay}s")
                if self.stopped.wait(self.retry_delay):
                    return None

        if self.stopped.is_set():
            # Completed after cancellation; the result must not be applied
            return None

        if snapshot.is_empty:
            logger.warning(f"Accepting empty snapshot after {session.attempts} attempts")

        self.initial_cycle_done = True
        self.load_error = None
        self.last_snapshot = snapshot
        self.on_snapshot(snapshot)
        return snapshot

    def _handle_exhausted(self, session: FetchSession) -> None:
        error = session.last_error
        self.initial_cycle_done = True

        if session.initial:
            self.load_error = error
            logger.error(f"Initial snapshot load failed after {session.attempts} attempts: {error}")
            if self.on_error:
                self.on_error(error)
        else:
            logger.warning(f"Refresh failed after {session.attempts} attempts, "
                           f"keeping last snapshot: {error}")
        return None
