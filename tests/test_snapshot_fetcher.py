import threading
import unittest
from unittest.mock import MagicMock

import requests

from meshsentry.common.errors import HttpError, NetworkError, ParseError
from meshsentry.common.models import GraphSnapshot
from meshsentry.monitoring.snapshot_fetcher import SnapshotFetcher, SnapshotPoller
from snapshot_factory import federation, federation_body


def response(body=None, status_code=200, reason="OK", json_error=None):
    mock = MagicMock()
    mock.ok = status_code < 400
    mock.status_code = status_code
    mock.reason = reason
    if json_error:
        mock.json.side_effect = json_error
    else:
        mock.json.return_value = body
    return mock


class TestSnapshotFetcher(unittest.TestCase):
    def setUp(self):
        self.session = MagicMock()
        self.fetcher = SnapshotFetcher("http://dashboard:8080/", timeout=8.0, session=self.session)

    def test_fetch_parses_snapshot(self):
        self.session.get.return_value = response(federation_body())

        snapshot = self.fetcher.fetch("frontend", "iot-platform")

        self.assertIsInstance(snapshot, GraphSnapshot)
        self.assertEqual(len(snapshot.nodes), 8)
        self.session.get.assert_called_once_with(
            "http://dashboard:8080/api/traffic/graph",
            params={"deployment": "frontend", "namespace": "iot-platform"},
            timeout=8.0,
        )

    def test_timeout_is_network_error(self):
        self.session.get.side_effect = requests.Timeout("slow")
        with self.assertRaises(NetworkError):
            self.fetcher.fetch("frontend", "iot-platform")

    def test_connection_failure_is_network_error(self):
        self.session.get.side_effect = requests.ConnectionError("refused")
        with self.assertRaises(NetworkError):
            self.fetcher.fetch("frontend", "iot-platform")

    def test_error_status_is_http_error(self):
        self.session.get.return_value = response(status_code=503, reason="Service Unavailable")

        with self.assertRaises(HttpError) as ctx:
            self.fetcher.fetch("frontend", "iot-platform")
        self.assertEqual(ctx.exception.status_code, 503)

    def test_invalid_json_is_parse_error(self):
        self.session.get.return_value = response(json_error=ValueError("Expecting value"))
        with self.assertRaises(ParseError):
            self.fetcher.fetch("frontend", "iot-platform")

    def test_wrong_shape_is_parse_error(self):
        self.session.get.return_value = response({"edges": []})
        with self.assertRaises(ParseError):
            self.fetcher.fetch("frontend", "iot-platform")

    def test_close_closes_session(self):
        self.fetcher.close()
        self.session.close.assert_called_once()


class TestSnapshotPoller(unittest.TestCase):
    def setUp(self):
        self.fetcher = MagicMock()
        self.on_snapshot = MagicMock()
        self.on_error = MagicMock()
        self.poller = SnapshotPoller(self.fetcher, "frontend", "iot-platform",
                                     on_snapshot=self.on_snapshot, on_error=self.on_error,
                                     poll_interval=60.0, retry_delay=0, max_attempts=3)

    def test_successful_cycle(self):
        snapshot = federation()
        self.fetcher.fetch.return_value = snapshot

        self.assertTrue(self.poller.is_loading)
        self.assertIs(self.poller.refresh(), snapshot)

        self.on_snapshot.assert_called_once_with(snapshot)
        self.assertFalse(self.poller.is_loading)
        self.assertIs(self.poller.last_snapshot, snapshot)

    def test_retry_then_success(self):
        snapshot = federation()
        self.fetcher.fetch.side_effect = [NetworkError("down"), snapshot]

        self.assertIs(self.poller.refresh(), snapshot)
        self.assertEqual(self.fetcher.fetch.call_count, 2)
        self.on_error.assert_not_called()

    def test_initial_failure_surfaces_once(self):
        self.fetcher.fetch.side_effect = NetworkError("down")

        self.assertIsNone(self.poller.refresh())

        self.assertEqual(self.fetcher.fetch.call_count, 3)
        self.on_error.assert_called_once()
        self.assertIsInstance(self.poller.load_error, NetworkError)
        self.assertFalse(self.poller.is_loading)
        self.on_snapshot.assert_not_called()

        self.poller.refresh()
        self.assertEqual(self.fetcher.fetch.call_count, 6)
        self.on_error.assert_called_once()

    def test_later_failures_keep_last_snapshot(self):
        snapshot = federation()
        self.fetcher.fetch.return_value = snapshot
        self.poller.refresh()

        self.fetcher.fetch.side_effect = HttpError(500, "Internal Server Error")
        self.assertIsNone(self.poller.refresh())

        self.on_error.assert_not_called()
        self.assertIsNone(self.poller.load_error)
        self.assertIs(self.poller.last_snapshot, snapshot)

    def test_success_clears_load_error(self):
        self.fetcher.fetch.side_effect = NetworkError("down")
        self.poller.refresh()

        self.fetcher.fetch.side_effect = None
        self.fetcher.fetch.return_value = federation()
        self.poller.refresh()

        self.assertIsNone(self.poller.load_error)

    def test_empty_snapshot_is_retried(self):
        snapshot = federation()
        self.fetcher.fetch.side_effect = [GraphSnapshot(), snapshot]

        self.assertIs(self.poller.refresh(), snapshot)
        self.assertEqual(self.fetcher.fetch.call_count, 2)

    def test_empty_snapshot_accepted_on_last_attempt(self):
        self.fetcher.fetch.return_value = GraphSnapshot()

        result = self.poller.refresh()

        self.assertTrue(result.is_empty)
        self.assertEqual(self.fetcher.fetch.call_count, 3)
        self.on_snapshot.assert_called_once()
        self.on_error.assert_not_called()
        self.assertIsNone(self.poller.load_error)

    def test_refresh_skipped_while_in_flight(self):
        self.poller.in_flight.acquire()
        try:
            self.assertIsNone(self.poller.refresh())
        finally:
            self.poller.in_flight.release()

        self.fetcher.fetch.assert_not_called()

    def test_result_discarded_after_stop(self):
        def fetch_and_stop(*args):
            self.poller.stopped.set()
            return federation()

        self.fetcher.fetch.side_effect = fetch_and_stop

        self.assertIsNone(self.poller.refresh())
        self.on_snapshot.assert_not_called()

    def test_failure_after_stop_is_not_reported(self):
        poller = SnapshotPoller(self.fetcher, "frontend", "iot-platform",
                                on_snapshot=self.on_snapshot, on_error=self.on_error,
                                retry_delay=0, max_attempts=1)

        def fail_during_stop(*args):
            poller.stopped.set()
            raise NetworkError("session closed by stop")

        self.fetcher.fetch.side_effect = fail_during_stop

        self.assertIsNone(poller.refresh())
        self.on_error.assert_not_called()
        self.assertIsNone(poller.load_error)
        self.assertTrue(poller.is_loading)

    def test_start_runs_first_cycle_immediately(self):
        applied = threading.Event()
        self.fetcher.fetch.return_value = federation()
        self.on_snapshot.side_effect = lambda snapshot: applied.set()

        self.poller.start()
        try:
            self.assertTrue(applied.wait(timeout=5.0))
        finally:
            self.poller.stop()

        self.assertFalse(self.poller.poll_thread.is_alive())
        self.fetcher.close.assert_called_once()


if __name__ == "__main__":
    unittest.main()
