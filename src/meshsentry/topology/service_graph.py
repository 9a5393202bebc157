#!/usr/bin/env python3
"""
Service graph construction for MeshSentry

Loads a snapshot into a networkx graph so that edge classification and the
topology summary can query roles, clusters and protocols by node id.
"""

import logging
import networkx as nx
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from ..common.models import (
    ClusterMember, GraphSnapshot, NodeStatus, ServiceNode, ServiceRole, PROTOCOL_EASTWEST, DEFAULT_MEMBERS,
    member_for,
)

logger = logging.getLogger("ServiceGraph")

EASTWEST_ROLE = "eastwest-gateway"


def rendered_services(snapshot: GraphSnapshot,
                      members: Tuple[ClusterMember, ClusterMember] = DEFAULT_MEMBERS) -> Dict[str, List[ServiceNode]]:
    """
    Group snapshot services by member, keeping only those that are laid out

    Nodes outside both members are left out. Each member shows at most one
    api-gateway and one frontend; the first in snapshot order wins.
    """
    by_member = {member.key: [] for member in members}
    for node in snapshot.nodes:
        member = member_for(node.cluster, members)
        if member is None:
            continue

        kept = by_member[member.key]
        if node.role != ServiceRole.BACKEND and any(other.role == node.role for other in kept):
            continue
        kept.append(node)

    return by_member


@dataclass
class TopologySummary:
    """Headline figures shown next to the topology"""
    total_services: int = 0
    services_per_member: Dict[str, int] = field(default_factory=dict)
    cross_cluster_links: int = 0
    degraded_services: int = 0
    unhealthy_services: int = 0
    dangling_edges: int = 0

    def to_dict(self) -> Dict[str, object]:
        return {
            "totalServices": self.total_services,
            "servicesPerMember": dict(self.services_per_member),
            "crossClusterLinks": self.cross_cluster_links,
            "degradedServices": self.degraded_services,
            "unhealthyServices": self.unhealthy_services,
            "danglingEdges": self.dangling_edges,
        }


def build_service_graph(snapshot: GraphSnapshot,
                        members: Tuple[ClusterMember, ClusterMember] = DEFAULT_MEMBERS) -> nx.DiGraph:
    """
    Build a directed graph of the snapshot

    Service nodes carry ``role``, ``cluster``, ``member``, ``status`` and
    ``rendered`` attributes; ``rendered`` is false for nodes the layout leaves
    out (see rendered_services). East-West gateway nodes are added when the
    snapshot has cross-cluster traffic. Edges whose endpoints are unknown are counted in
    ``graph.graph["dangling_edges"]`` instead of being added.
    """
    graph = nx.DiGraph()
    graph.graph["dangling_edges"] = 0

    rendered_ids = {node.id for nodes in rendered_services(snapshot, members).values() for node in nodes}

    for node in snapshot.nodes:
        member = member_for(node.cluster, members)
        graph.add_node(
            node.id,
            name=node.name,
            cluster=node.cluster,
            member=member.key if member else None,
            role=node.role.value,
            status=node.status.value,
            replicas=node.replicas,
            ready_replicas=node.ready_replicas,
            rendered=node.id in rendered_ids,
        )

    if snapshot.has_eastwest_traffic():
        for member in members:
            graph.add_node(member.eastwest_id, name=EASTWEST_ROLE, member=member.key,
                           role=EASTWEST_ROLE, synthetic=True, rendered=True)

    for edge in snapshot.edges:
        if edge.source not in graph or edge.target not in graph:
            graph.graph["dangling_edges"] += 1
            logger.debug(f"Edge {edge.source} -> {edge.target} references an unknown node")
            continue
        graph.add_edge(edge.source, edge.target, protocol=edge.protocol,
                       request_rate=edge.metrics.request_rate,
                       error_rate=edge.metrics.error_rate)

    return graph


def summarize_topology(snapshot: GraphSnapshot,
                       members: Tuple[ClusterMember, ClusterMember] = DEFAULT_MEMBERS) -> TopologySummary:
    """Compute the headline figures for a snapshot"""
    graph = build_service_graph(snapshot, members)
    summary = TopologySummary(dangling_edges=graph.graph["dangling_edges"])
    summary.services_per_member = {member.key: 0 for member in members}

    for _, attrs in graph.nodes(data=True):
        if attrs.get("synthetic"):
            continue

        summary.total_services += 1
        if attrs.get("member") in summary.services_per_member:
            summary.services_per_member[attrs["member"]] += 1

        if attrs.get("status") == NodeStatus.DEGRADED.value:
            summary.degraded_services += 1
        elif attrs.get("status") == NodeStatus.UNHEALTHY.value:
            summary.unhealthy_services += 1

    # Cross-cluster links are counted on the snapshot, gateway hops included
    summary.cross_cluster_links = sum(
        1 for edge in snapshot.edges if edge.protocol == PROTOCOL_EASTWEST
    )

    return summary
