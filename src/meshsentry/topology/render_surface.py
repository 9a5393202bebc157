#!/usr/bin/env python3
"""
Render surfaces for MeshSentry

A render surface receives reconciled nodes and edges and is told when to
re-fit its viewport. The Redis surface publishes frames for an external
renderer and listens for the positions users drag nodes to.
"""

import time
import json
import logging
import threading
import redis
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

from ..common.models import Position, PositionedNode, StyledEdge

logger = logging.getLogger("RenderSurface")

DragCallback = Callable[[str, Position], Any]


class RenderSurface(ABC):
    """Interface of the external drawing collaborator"""

    @abstractmethod
    def render(self, nodes: List[PositionedNode], edges: List[StyledEdge]):
        """Draw the given nodes and edges"""

    @abstractmethod
    def fit_view(self):
        """Re-fit the viewport to the drawn content"""

    def start(self):
        pass

    def stop(self):
        pass


class LoggingRenderSurface(RenderSurface):
    """Logs a summary of each frame; used when no renderer is attached"""

    def __init__(self):
        self.frames = 0

    def render(self, nodes: List[PositionedNode], edges: List[StyledEdge]):
        self.frames += 1
        logger.info(f"Frame {self.frames}: {len(nodes)} nodes, {len(edges)} edges")

    def fit_view(self):
        logger.info("Viewport re-fit requested")


class RedisRenderSurface(RenderSurface):
    """
    Publishes frames on ``<namespace>:topology_frames`` and reads drag reports
    from ``<namespace>:layout_drags``.

    A drag report is a JSON object ``{"node_id": ..., "x": ..., "y": ...}``.
    """

    def __init__(self, redis_client: redis.Redis, namespace: str = "meshsentry",
                 on_drag: Optional[DragCallback] = None):
        """
        Initialize the surface

        Args:
            redis_client: Connected Redis client
            namespace: Prefix for channel names
            on_drag: Called with (node_id, (x, y)) for every drag report
        """
        self.redis_client = redis_client
        self.namespace = namespace
        self.on_drag = on_drag

        self.frames_channel = f"{namespace}:topology_frames"
        self.drags_channel = f"{namespace}:layout_drags"

        self.running = False
        self.pubsub = None
        self.pubsub_thread = None

    @classmethod
    def from_config(cls, config: Dict[str, Any],
                    on_drag: Optional[DragCallback] = None) -> "RedisRenderSurface":
        """Create a surface from viewer configuration; raises redis.RedisError if unreachable"""
        client = redis.Redis(
            host=config.get("redis_host", "localhost"),
            port=config.get("redis_port", 6379),
            password=config.get("redis_password"),
            db=config.get("redis_db", 0),
            decode_responses=True
        )

        # Test connection
        client.ping()
        logger.info("Connected to Redis")

        return cls(client, namespace=config.get("redis_namespace", "meshsentry"), on_drag=on_drag)

    def start(self):
        """Subscribe to drag reports"""
        if self.running:
            logger.warning("Redis render surface is already running")
            return

        self.running = True
        self.pubsub = self.redis_client.pubsub()
        self.pubsub.subscribe(self.drags_channel)

        self.pubsub_thread = threading.Thread(target=self._drag_listener, daemon=True)
        self.pubsub_thread.start()

        logger.info(f"Listening for drag reports on {self.drags_channel}")

    def stop(self):
        if not self.running:
            return

        self.running = False

        if self.pubsub_thread and self.pubsub_thread.is_alive():
            self.pubsub_thread.join(timeout=5.0)

        if self.pubsub:
            self.pubsub.unsubscribe()
            self.pubsub.close()

        self.redis_client.close()
        logger.info("Redis render surface stopped")

    def render(self, nodes: List[PositionedNode], edges: List[StyledEdge]):
        self._publish({
            "type": "layout",
            "timestamp": time.time(),
            "nodes": [node.to_dict() for node in nodes],
            "edges": [edge.to_dict() for edge in edges],
        })

    def fit_view(self):
        self._publish({"type": "fit_view", "timestamp": time.time()})

    def _publish(self, frame: Dict[str, Any]):
        try:
            self.redis_client.publish(self.frames_channel, json.dumps(frame))
        except redis.RedisError as e:
            logger.error(f"Error publishing {frame['type']} frame: {e}")

    def _drag_listener(self):
        logger.info("Drag listener started")

        while self.running:
            try:
                message = self.pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
            except redis.RedisError as e:
                logger.error(f"Error reading drag reports: {e}")
                time.sleep(1.0)
                continue

            if message:
                self.handle_drag_message(message.get("data"))

        logger.info("Drag listener stopped")

    def handle_drag_message(self, data: Any) -> bool:
        """
        Apply one drag report

        Returns:
            True if the report was valid and forwarded
        """
        try:
            report = json.loads(data)
            node_id = str(report["node_id"])
            position = (float(report["x"]), float(report["y"]))
        except (TypeError, ValueError, KeyError) as e:
            logger.warning(f"Received invalid drag report: {e}")
            return False

        if self.on_drag:
            try:
                self.on_drag(node_id, position)
            except Exception as e:
                logger.error(f"Error in drag callback: {e}")
                return False

        return True
