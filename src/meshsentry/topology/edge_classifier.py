#!/usr/bin/env python3
"""
Edge Classifier for MeshSentry

Sorts snapshot edges into internal flows, cross-cluster (East-West) links and
everything else, attaches the visual treatment for each category and adds
the synthetic ingress edges from the load balancer to every api-gateway.
"""

import logging
from typing import Dict, List, Optional, Tuple

from ..common.models import (
    ClusterMember, EdgeCategory, EdgeHint, GraphSnapshot, ServiceEdge, ServiceRole, StyledEdge,
    DEFAULT_MEMBERS, INGRESS_NODE_ID, PROTOCOL_EASTWEST, PROTOCOL_HTTP,
)
from .service_graph import build_service_graph, rendered_services

logger = logging.getLogger("EdgeClassifier")

ANCHOR_BOTTOM = "bottom"
ANCHOR_SIDE = "side"


def edge_hint(category: EdgeCategory, available: bool = True) -> EdgeHint:
    """Visual treatment for a category of edge"""
    if category == EdgeCategory.INTERNAL_FLOW:
        return EdgeHint(color="#3b82f6", animated=True)
    if category == EdgeCategory.CROSS_CLUSTER:
        return EdgeHint(color="#9333ea", animated=True, dashed=True)
    if category == EdgeCategory.INGRESS:
        if available:
            return EdgeHint(color="#007aff", animated=True)
        return EdgeHint(color="#ef4444", animated=False, dashed=True, muted=True)
    return EdgeHint(color="#9ca3af", animated=False, muted=True)


def categorize(edge: ServiceEdge) -> EdgeCategory:
    if edge.protocol == PROTOCOL_EASTWEST:
        return EdgeCategory.CROSS_CLUSTER
    if edge.protocol == PROTOCOL_HTTP:
        return EdgeCategory.INTERNAL_FLOW
    return EdgeCategory.OTHER


class EdgeClassifier:
    """
    Produces the styled edge set for a snapshot.

    In the active/standby variant (the default) cross-cluster edges are left
    out entirely; the standby cluster receives no live cross-cluster traffic
    and the East-West gateway markers stand in for those links.
    """

    def __init__(self, members: Tuple[ClusterMember, ClusterMember] = DEFAULT_MEMBERS,
                 exclude_cross_cluster: bool = True):
        self.members = members
        self.exclude_cross_cluster = exclude_cross_cluster

    def classify(self, snapshot: GraphSnapshot,
                 availability: Optional[Dict[str, bool]] = None) -> List[StyledEdge]:
        """
        Classify the edges of a snapshot

        Args:
            snapshot: Snapshot whose edges are classified
            availability: Member key -> reachable flag, used for ingress styling

        Returns:
            Styled edges, ingress edges last
        """
        graph = build_service_graph(snapshot, self.members)
        styled = []
        seen = set()

        for edge in snapshot.edges:
            category = categorize(edge)
            if category == EdgeCategory.CROSS_CLUSTER and self.exclude_cross_cluster:
                continue

            if not (self._is_rendered(graph, edge.source) and self._is_rendered(graph, edge.target)):
                logger.debug(f"Dropping edge {edge.source} -> {edge.target}: endpoint not rendered")
                continue

            edge_id = f"{edge.source}->{edge.target}:{edge.protocol or 'other'}"
            if edge_id in seen:
                continue
            seen.add(edge_id)

            anchor = ANCHOR_SIDE
            if (category == EdgeCategory.INTERNAL_FLOW
                    and graph.nodes[edge.source].get("role") == ServiceRole.API_GATEWAY.value):
                anchor = ANCHOR_BOTTOM

            label = ""
            if edge.metrics.request_rate > 0:
                label = f"{edge.metrics.request_rate:.1f} req/s"

            styled.append(StyledEdge(
                id=edge_id,
                source=edge.source,
                target=edge.target,
                category=category,
                hint=edge_hint(category),
                source_anchor=anchor,
                label=label,
            ))

        styled.extend(self._ingress_edges(snapshot, availability))
        return styled

    @staticmethod
    def _is_rendered(graph, node_id: str) -> bool:
        return node_id in graph and graph.nodes[node_id].get("rendered", False)

    def _ingress_edges(self, snapshot: GraphSnapshot,
                       availability: Optional[Dict[str, bool]]) -> List[StyledEdge]:
        edges = []
        services = rendered_services(snapshot, self.members)
        for member in self.members:
            gateway = next((node for node in services[member.key]
                            if node.role == ServiceRole.API_GATEWAY), None)
            if gateway is None:
                continue

            available = availability.get(member.key, True) if availability else True
            edges.append(StyledEdge(
                id=f"ingress-{member.key}",
                source=INGRESS_NODE_ID,
                target=gateway.id,
                category=EdgeCategory.INGRESS,
                hint=edge_hint(EdgeCategory.INGRESS, available),
                source_anchor=ANCHOR_BOTTOM,
            ))
        return edges
