#!/usr/bin/env python3
"""
Layout Planner for MeshSentry

Assigns coordinates to every node of a snapshot. The layout is a pure
function of the snapshot and the cluster availability: a load balancer on
top, two cluster boxes side by side below it, and inside each box the
api-gateway strip, the frontend and a grid of backend services.

Children of a cluster box are positioned relative to the box.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from ..common.models import (
    ClusterMember, GraphSnapshot, NodeKind, NodeStatus, PlaceholderKind, PositionedNode,
    RenderHint, ServiceNode, ServiceRole, DEFAULT_MEMBERS, INGRESS_NODE_ID, member_for,
)
from .service_graph import rendered_services

logger = logging.getLogger("LayoutPlanner")

STATUS_CLASSES = {
    NodeStatus.HEALTHY: "status-healthy",
    NodeStatus.DEGRADED: "status-degraded",
    NodeStatus.UNHEALTHY: "status-unhealthy",
}


@dataclass
class LayoutConfig:
    """Dimensions used by the layout planner"""
    group_width: float = 520
    group_gap: float = 160
    group_top: float = 140
    base_height: float = 420
    header_height: float = 210  # gateway strip and frontend row
    row_height: float = 110
    margin: float = 40
    padding: float = 20
    gateway_top: float = 50
    gateway_height: float = 56
    frontend_top: float = 122
    node_width: float = 200
    node_height: float = 80
    column_gap: float = 40
    ingress_width: float = 180
    ingress_height: float = 60
    marker_size: float = 48
    placeholder_height: float = 120

    @property
    def canvas_width(self) -> float:
        return 2 * self.group_width + self.group_gap


def backend_rows(count: int) -> List[int]:
    """
    Split backend services into rows

    Up to two services share a single row, three or four use a row of two
    followed by the remainder, and five or more fill a strict two-column grid.
    """
    if count <= 0:
        return []
    if count <= 2:
        return [count]
    if count <= 4:
        return [2, count - 2]
    return [2] * (count // 2) + [1] * (count % 2)


def group_height(backend_count: int, config: LayoutConfig) -> float:
    rows = len(backend_rows(backend_count))
    return max(config.base_height,
               config.header_height + rows * config.row_height + config.margin)


def _is_available(availability: Optional[Dict[str, bool]], member: ClusterMember) -> bool:
    if not availability:
        return True
    return availability.get(member.key, True)


def service_hint(node: ServiceNode) -> RenderHint:
    return RenderHint(
        role=node.role.value,
        status_class=STATUS_CLASSES[node.status],
        lines=[node.name, f"{node.ready_replicas}/{node.replicas} ready", node.status.value],
    )


class LayoutPlanner:
    """Deterministically positions nodes and cluster groups"""

    def __init__(self, config: Optional[LayoutConfig] = None,
                 members: Tuple[ClusterMember, ClusterMember] = DEFAULT_MEMBERS):
        self.config = config or LayoutConfig()
        self.members = members

    def plan(self, snapshot: GraphSnapshot,
             availability: Optional[Dict[str, bool]] = None) -> List[PositionedNode]:
        """
        Plan the layout of a snapshot

        Args:
            snapshot: Snapshot to lay out
            availability: Member key -> reachable flag

        Returns:
            Positioned entries; every group precedes its children
        """
        cfg = self.config
        by_member = rendered_services(snapshot, self.members)

        kept_ids = {node.id for nodes in by_member.values() for node in nodes}
        for node in snapshot.nodes:
            if node.id in kept_ids:
                continue
            if member_for(node.cluster, self.members) is None:
                logger.warning(f"Skipping node {node.id}: cluster {node.cluster} is not a federation member")
            else:
                logger.warning(f"Skipping node {node.id}: its cluster already shows a {node.role.value}")

        heights = {}
        for member in self.members:
            backends = [n for n in by_member[member.key] if n.role == ServiceRole.BACKEND]
            heights[member.key] = group_height(len(backends), cfg)

        # An empty cluster mirrors the other box so the two stay balanced
        first, second = self.members
        if not by_member[first.key] and by_member[second.key]:
            heights[first.key] = heights[second.key]
        elif not by_member[second.key] and by_member[first.key]:
            heights[second.key] = heights[first.key]

        show_eastwest = snapshot.has_eastwest_traffic()

        planned = [self._ingress()]
        for index, member in enumerate(self.members):
            nodes = by_member[member.key]
            available = _is_available(availability, member)
            planned.append(self._group(member, index, heights[member.key], len(nodes), available))

            if not nodes:
                planned.append(self._placeholder(member, available))
            else:
                planned.extend(self._cluster_children(member, nodes))

            if show_eastwest:
                planned.append(self._eastwest_marker(member, index))

        return planned

    def _ingress(self) -> PositionedNode:
        cfg = self.config
        return PositionedNode(
            id=INGRESS_NODE_ID,
            kind=NodeKind.INGRESS,
            position=((cfg.canvas_width - cfg.ingress_width) / 2, 0.0),
            width=cfg.ingress_width,
            height=cfg.ingress_height,
            hint=RenderHint(role="ingress", status_class="ingress", lines=["Load Balancer"]),
        )

    def _group(self, member: ClusterMember, index: int, height: float,
               service_count: int, available: bool) -> PositionedNode:
        cfg = self.config
        return PositionedNode(
            id=member.group_id,
            kind=NodeKind.CLUSTER_GROUP,
            position=(index * (cfg.group_width + cfg.group_gap), cfg.group_top),
            width=cfg.group_width,
            height=height,
            cluster=member.key,
            hint=RenderHint(
                role="cluster",
                status_class="cluster-available" if available else "cluster-unavailable",
                lines=[member.display_name, f"{service_count} services", member.role],
            ),
        )

    def _placeholder(self, member: ClusterMember, available: bool) -> PositionedNode:
        cfg = self.config
        if available:
            kind = PlaceholderKind.NO_SERVICES
            hint = RenderHint(role="placeholder", status_class="placeholder-info",
                              lines=["No services deployed"])
        else:
            kind = PlaceholderKind.UNAVAILABLE
            hint = RenderHint(role="placeholder", status_class="placeholder-error",
                              lines=["Cluster unavailable", member.display_name])

        return PositionedNode(
            id=member.placeholder_id,
            kind=NodeKind.PLACEHOLDER,
            position=(cfg.padding, cfg.gateway_top),
            width=cfg.group_width - 2 * cfg.padding,
            height=cfg.placeholder_height,
            parent_group=member.group_id,
            cluster=member.key,
            placeholder=kind,
            hint=hint,
        )

    def _cluster_children(self, member: ClusterMember,
                          nodes: List[ServiceNode]) -> List[PositionedNode]:
        cfg = self.config
        children = []

        gateway = next((n for n in nodes if n.role == ServiceRole.API_GATEWAY), None)
        frontend = next((n for n in nodes if n.role == ServiceRole.FRONTEND), None)
        backends = sorted((n for n in nodes if n.role == ServiceRole.BACKEND), key=lambda n: n.name)

        if gateway:
            children.append(self._service(member, gateway, (cfg.padding, cfg.gateway_top),
                                          cfg.group_width - 2 * cfg.padding, cfg.gateway_height))
        if frontend:
            children.append(self._service(member, frontend,
                                          ((cfg.group_width - cfg.node_width) / 2, cfg.frontend_top),
                                          cfg.node_width, cfg.node_height))

        strict_grid = len(backends) > 4
        grid_left = (cfg.group_width - (2 * cfg.node_width + cfg.column_gap)) / 2
        centered_left = (cfg.group_width - cfg.node_width) / 2

        remaining = iter(backends)
        for row, columns in enumerate(backend_rows(len(backends))):
            y = cfg.header_height + row * cfg.row_height
            for column in range(columns):
                if columns == 1 and not strict_grid:
                    x = centered_left
                else:
                    x = grid_left + column * (cfg.node_width + cfg.column_gap)
                children.append(self._service(member, next(remaining), (x, y),
                                              cfg.node_width, cfg.node_height))

        return children

    def _service(self, member: ClusterMember, node: ServiceNode, position: Tuple[float, float],
                 width: float, height: float) -> PositionedNode:
        return PositionedNode(
            id=node.id,
            kind=NodeKind.SERVICE,
            position=position,
            width=width,
            height=height,
            parent_group=member.group_id,
            cluster=member.key,
            service=node,
            hint=service_hint(node),
        )

    def _eastwest_marker(self, member: ClusterMember, index: int) -> PositionedNode:
        cfg = self.config
        # Markers sit on the inner edge of each box, facing the other cluster
        if index == 0:
            x = cfg.group_width - cfg.marker_size - cfg.padding
        else:
            x = cfg.padding
        y = cfg.frontend_top + (cfg.node_height - cfg.marker_size) / 2

        return PositionedNode(
            id=member.eastwest_id,
            kind=NodeKind.EASTWEST_GATEWAY,
            position=(x, y),
            width=cfg.marker_size,
            height=cfg.marker_size,
            parent_group=member.group_id,
            cluster=member.key,
            hint=RenderHint(role="eastwest-gateway", status_class="eastwest",
                            lines=["East-West", "Gateway"]),
        )
