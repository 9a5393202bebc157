#!/usr/bin/env python3
"""
Reconciliation Engine for MeshSentry

Decides, for every new snapshot, whether the rendered layout is recomputed
or whether fresh data is merged into the existing positions.

A change of the node-id set (a service deployed or removed, a placeholder
replaced, gateway markers appearing) triggers a full relayout and a viewport
re-fit. An unchanged id set keeps every remembered position, including
positions the user dragged, and only refreshes the node data.
"""

import logging
import threading
from enum import Enum
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from ..common.models import GraphSnapshot, Position, PositionedNode, StyledEdge
from .layout_planner import LayoutPlanner
from .edge_classifier import EdgeClassifier

logger = logging.getLogger("ReconciliationEngine")


class EngineState(Enum):
    EMPTY = "empty"    # no layout applied yet
    STABLE = "stable"  # previous ids and positions are known


@dataclass
class LayoutState:
    """Positions remembered between reconciliation cycles"""
    previous_node_ids: Set[str] = field(default_factory=set)
    previous_positions: Dict[str, Position] = field(default_factory=dict)


@dataclass
class ReconciliationResult:
    """Outcome of one reconciliation cycle"""
    nodes: List[PositionedNode]
    edges: List[StyledEdge]
    relayout: bool
    added_ids: Set[str] = field(default_factory=set)
    removed_ids: Set[str] = field(default_factory=set)

    @property
    def fit_view(self) -> bool:
        return self.relayout


class ReconciliationEngine:
    """
    Merges each new layout candidate against the previously rendered state.

    The engine is the only owner of LayoutState. Reconciliation cycles are
    serialized by the snapshot poller; drag reports may arrive from another
    thread, so state access is guarded by a lock.
    """

    def __init__(self, planner: Optional[LayoutPlanner] = None,
                 edge_classifier: Optional[EdgeClassifier] = None):
        self.planner = planner or LayoutPlanner()
        self.edge_classifier = edge_classifier or EdgeClassifier()

        self.state = EngineState.EMPTY
        self.layout_state = LayoutState()
        self.state_lock = threading.RLock()

    def reconcile(self, snapshot: GraphSnapshot,
                  availability: Optional[Dict[str, bool]] = None) -> ReconciliationResult:
        """
        Reconcile a snapshot against the previous layout

        Args:
            snapshot: Newly accepted snapshot
            availability: Member key -> reachable flag

        Returns:
            Nodes and edges to render, and whether the viewport should be re-fit
        """
        nodes = self.planner.plan(snapshot, availability)
        edges = self.edge_classifier.classify(snapshot, availability)
        current_ids = {node.id for node in nodes}

        with self.state_lock:
            previous_ids = self.layout_state.previous_node_ids

            if self.state == EngineState.EMPTY or current_ids != previous_ids:
                added = current_ids - previous_ids
                removed = previous_ids - current_ids

                self.layout_state = LayoutState(
                    previous_node_ids=set(current_ids),
                    previous_positions={node.id: node.position for node in nodes},
                )
                self.state = EngineState.STABLE

                logger.info(f"Full relayout of {len(nodes)} nodes "
                            f"({len(added)} added, {len(removed)} removed)")
                return ReconciliationResult(nodes, edges, relayout=True,
                                            added_ids=added, removed_ids=removed)

            for node in nodes:
                remembered = self.layout_state.previous_positions.get(node.id)
                if remembered is not None:
                    node.position = remembered

            logger.debug(f"Merged data-only update for {len(nodes)} nodes")
            return ReconciliationResult(nodes, edges, relayout=False)

    def record_drag(self, node_id: str, position: Position) -> bool:
        """
        Remember a position the user dragged a node to

        Args:
            node_id: Id of the dragged node
            position: New (x, y) position in the node's coordinate space

        Returns:
            True if the node is part of the current layout
        """
        with self.state_lock:
            if node_id not in self.layout_state.previous_node_ids:
                logger.debug(f"Ignoring drag of unknown node {node_id}")
                return False

            self.layout_state.previous_positions[node_id] = (float(position[0]), float(position[1]))
            return True

    def reset(self):
        """Forget the previous layout; the next snapshot is laid out from scratch"""
        with self.state_lock:
            self.state = EngineState.EMPTY
            self.layout_state = LayoutState()
