#!/usr/bin/env python3
"""
Topology Viewer for MeshSentry

Wires the snapshot poller, availability classifier, layout planner, edge
classifier and reconciliation engine together and hands every reconciled
frame to a render surface.
"""

import sys
import time
import json
import logging
import argparse
import threading
import redis
from typing import Any, Callable, Dict, List, Optional

from .common.configuration import (
    configure_logging, create_default_config, load_configuration, members_from_config,
)
from .common.errors import ConfigurationError, FetchError
from .common.models import GraphSnapshot
from .monitoring.availability import Availability, AvailabilityClassifier
from .monitoring.snapshot_fetcher import SnapshotFetcher, SnapshotPoller
from .topology.edge_classifier import EdgeClassifier
from .topology.layout_planner import LayoutPlanner
from .topology.reconciliation import ReconciliationEngine, ReconciliationResult
from .topology.render_surface import LoggingRenderSurface, RedisRenderSurface, RenderSurface
from .topology.service_graph import TopologySummary, summarize_topology

logger = logging.getLogger("TopologyViewer")

EVENT_LAYOUT_APPLIED = "layout_applied"
EVENT_LOAD_FAILED = "load_failed"
EVENT_AVAILABILITY_CHANGED = "availability_changed"

EVENT_TYPES = (EVENT_LAYOUT_APPLIED, EVENT_LOAD_FAILED, EVENT_AVAILABILITY_CHANGED)


class TopologyViewer:
    """
    Keeps a render surface in sync with the live federation topology.

    Features:
    - Periodic snapshot polling with retries
    - Cluster availability inference
    - Stable, incrementally updated layout
    - Drag positions preserved across data-only refreshes
    """

    def __init__(self, config: Dict[str, Any],
                 fetcher: Optional[SnapshotFetcher] = None,
                 surface: Optional[RenderSurface] = None):
        """
        Initialize the viewer

        Args:
            config: Validated configuration (see load_configuration)
            fetcher: Optional snapshot fetcher to use instead of the HTTP default
            surface: Optional render surface; built from configuration when omitted
        """
        self.config = config
        self.members = members_from_config(config)

        self.classifier = AvailabilityClassifier(self.members)
        self.engine = ReconciliationEngine(
            LayoutPlanner(members=self.members),
            EdgeClassifier(self.members, exclude_cross_cluster=config.get("exclude_cross_cluster", True)),
        )

        self.fetcher = fetcher or SnapshotFetcher(config["api_url"],
                                                  timeout=config.get("request_timeout", 8.0))
        self.surface = surface or self._create_surface()

        self.poller = SnapshotPoller(
            self.fetcher,
            config["deployment"],
            config["namespace"],
            on_snapshot=self.apply_snapshot,
            on_error=self._on_load_failed,
            poll_interval=config.get("poll_interval", 10.0),
            retry_delay=config.get("retry_delay", 2.0),
            max_attempts=config.get("max_attempts", 3),
        )

        self.availability: Optional[Availability] = None
        self.summary: Optional[TopologySummary] = None
        self.last_result: Optional[ReconciliationResult] = None

        # Event listeners, one list per EVENT_TYPES entry
        self.listeners = {event_type: [] for event_type in EVENT_TYPES}
        self.listeners_lock = threading.RLock()

        self.running = False

        logger.info("Topology viewer initialized")

    def _create_surface(self) -> RenderSurface:
        if self.config.get("redis_enabled"):
            try:
                return RedisRenderSurface.from_config(self.config, on_drag=self.engine.record_drag)
            except redis.RedisError as e:
                logger.error(f"Failed to connect to Redis: {e}; frames will only be logged")
        return LoggingRenderSurface()

    def start(self):
        """Start polling and rendering"""
        if self.running:
            logger.warning("Topology viewer is already running")
            return

        self.running = True
        self.surface.start()
        self.poller.start()

        logger.info("Topology viewer started")

    def stop(self):
        """Stop polling and discard the layout state"""
        if not self.running:
            logger.warning("Topology viewer is not running")
            return

        self.running = False
        self.poller.stop()
        self.surface.stop()
        self.engine.reset()

        logger.info("Topology viewer stopped")

    def refresh(self) -> Optional[GraphSnapshot]:
        """Run one refresh cycle now"""
        return self.poller.refresh()

    @property
    def load_error(self) -> Optional[FetchError]:
        return self.poller.load_error

    def apply_snapshot(self, snapshot: GraphSnapshot) -> ReconciliationResult:
        """Classify, lay out, reconcile and render one accepted snapshot"""
        availability = self.classifier.classify_all(snapshot)
        self._check_availability_changes(availability)
        self.availability = availability

        result = self.engine.reconcile(snapshot, availability)
        self.summary = summarize_topology(snapshot, self.members)
        self.last_result = result

        self.surface.render(result.nodes, result.edges)
        if result.fit_view:
            self.surface.fit_view()

        self._notify_listeners(EVENT_LAYOUT_APPLIED, {
            "relayout": result.relayout,
            "node_count": len(result.nodes),
            "edge_count": len(result.edges),
        })
        return result

    def _check_availability_changes(self, availability: Availability):
        if self.availability is None:
            return

        for member in self.members:
            was_available = self.availability.get(member.key)
            is_available = availability.get(member.key)
            if was_available == is_available:
                continue

            if is_available:
                logger.info(f"{member.display_name} RECOVERED")
            else:
                logger.warning(f"{member.display_name} is DOWN")

            self._notify_listeners(EVENT_AVAILABILITY_CHANGED, {
                "member": member.key,
                "available": is_available,
            })

    def _on_load_failed(self, error: FetchError):
        self._notify_listeners(EVENT_LOAD_FAILED, {"error": str(error)})

    def _notify_listeners(self, event_type: str, data: Dict[str, Any]):
        """Notify event listeners"""
        with self.listeners_lock:
            callbacks = list(self.listeners.get(event_type, []))

        for callback in callbacks:
            try:
                callback(event_type, data)
            except Exception as e:
                logger.error(f"Error in event listener: {e}")

    def add_listener(self, event_type: str, callback: Callable[[str, Dict[str, Any]], None]) -> bool:
        """
        Subscribe to viewer events

        Args:
            event_type: One of EVENT_TYPES (layout_applied, load_failed, availability_changed)
            callback: Called as callback(event_type, data)

        Returns:
            False if the event type is unknown or the callback is already registered
        """
        if event_type not in EVENT_TYPES:
            logger.warning(f"Ignoring listener for unknown event type {event_type!r}")
            return False

        with self.listeners_lock:
            callbacks = self.listeners[event_type]
            if callback in callbacks:
                return False

            callbacks.append(callback)
            logger.debug(f"Added {event_type} listener")
            return True

    def remove_listener(self, event_type: str, callback: Callable[[str, Dict[str, Any]], None]) -> bool:
        """Unsubscribe a callback; returns False if it was not registered"""
        with self.listeners_lock:
            callbacks = self.listeners.get(event_type, [])
            if callback not in callbacks:
                return False

            callbacks.remove(callback)
            logger.debug(f"Removed {event_type} listener")
            return True


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="MeshSentry Topology Viewer")
    parser.add_argument("--config", help="Path to configuration file")
    parser.add_argument("--create-config", help="Create default configuration file")
    parser.add_argument("--deployment", help="Deployment the graph is centered on")
    parser.add_argument("--namespace", help="Namespace to query")
    parser.add_argument("--once", action="store_true", help="Run one refresh cycle and print the summary")
    parser.add_argument("--log-level", help="Logging level")
    args = parser.parse_args(argv)

    if args.create_config:
        create_default_config(args.create_config)
        print(f"Created default configuration at {args.create_config}")
        return 0

    try:
        config = load_configuration(args.config)
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    if args.deployment:
        config["deployment"] = args.deployment
    if args.namespace:
        config["namespace"] = args.namespace

    configure_logging(args.log_level or config.get("log_level", "INFO"), config.get("log_file"))

    viewer = TopologyViewer(config)

    if args.once:
        viewer.refresh()
        viewer.fetcher.close()

        if viewer.load_error:
            print(f"Failed to load traffic topology: {viewer.load_error}", file=sys.stderr)
            return 1

        print(json.dumps(viewer.summary.to_dict(), indent=2))
        return 0

    try:
        viewer.start()
        print("Topology viewer running. Press Ctrl+C to stop.")
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        print("Stopping topology viewer...")
    finally:
        viewer.stop()

    return 0


if __name__ == "__main__":
    sys.exit(main())
