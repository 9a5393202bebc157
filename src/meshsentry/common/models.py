#!/usr/bin/env python3
"""
Data model for MeshSentry

Snapshot types mirror the JSON served by the traffic graph endpoint. Layout
types (PositionedNode, StyledEdge, RenderHint) are what the render surface
consumes; they carry no presentation-library vocabulary.
"""

import re
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Any

logger = logging.getLogger("GraphSnapshot")

Position = Tuple[float, float]

PROTOCOL_HTTP = "http"
PROTOCOL_EASTWEST = "istio-eastwest"

INGRESS_NODE_ID = "ingress"


class NodeStatus(Enum):
    """Health of a service as reported by the snapshot"""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"

    @classmethod
    def from_wire(cls, value: Any, replicas: int, ready_replicas: int) -> "NodeStatus":
        """Map a reported status string, deriving one from replicas when absent"""
        if value is None or value == "":
            return cls.from_replicas(replicas, ready_replicas)

        normalized = str(value).strip().lower()
        if normalized in ("healthy", "running"):
            return cls.HEALTHY
        if normalized == "degraded":
            return cls.DEGRADED
        return cls.UNHEALTHY

    @classmethod
    def from_replicas(cls, replicas: int, ready_replicas: int) -> "NodeStatus":
        # Zero desired replicas means an intentional scale-down
        if replicas == 0:
            return cls.HEALTHY
        if ready_replicas == 0:
            return cls.UNHEALTHY
        if ready_replicas < replicas:
            return cls.DEGRADED
        return cls.HEALTHY


class ServiceRole(Enum):
    """Role of a service inside its cluster, inferred from its name"""
    API_GATEWAY = "api-gateway"
    FRONTEND = "frontend"
    BACKEND = "backend"


def service_role(name: str) -> ServiceRole:
    if name == ServiceRole.API_GATEWAY.value:
        return ServiceRole.API_GATEWAY
    if name == ServiceRole.FRONTEND.value:
        return ServiceRole.FRONTEND
    return ServiceRole.BACKEND


@dataclass(frozen=True)
class ClusterMember:
    """One of the two federation members"""
    key: str  # member1, member2
    context: str  # kubeconfig context reported as ServiceNode.cluster
    display_name: str
    role: str = "active"  # active, standby

    def matches(self, cluster_name: Optional[str]) -> bool:
        """Check whether a cluster name reported by the backend refers to this member"""
        if not cluster_name:
            return False
        if cluster_name in (self.key, self.context):
            return True
        # The key must appear as a whole dash-separated token: member1-ctx, not member10
        return re.search(rf"(^|-){re.escape(self.key)}(-|$)", cluster_name) is not None

    @property
    def group_id(self) -> str:
        return f"group-{self.key}"

    @property
    def placeholder_id(self) -> str:
        return f"{self.key}-placeholder"

    @property
    def eastwest_id(self) -> str:
        # Matches the gateway ids used by istio-eastwest edges
        return f"eastwest-{self.key}"


def member_for(cluster_name: Optional[str], members) -> Optional[ClusterMember]:
    """Find the member a reported cluster name belongs to"""
    for member in members:
        if member.matches(cluster_name):
            return member
    return None


DEFAULT_MEMBERS = (
    ClusterMember("member1", "karmada-member1-ctx", "Member1 Cluster", "active"),
    ClusterMember("member2", "karmada-member2-ctx", "Member2 Cluster", "standby"),
)


@dataclass(frozen=True)
class TrafficMetrics:
    """Traffic metadata attached to an edge"""
    protocol: str = ""  # http, istio-eastwest, tcp, grpc
    source_workload: str = ""
    destination_workload: str = ""
    source_cluster: str = ""
    destination_cluster: str = ""
    request_rate: float = 0.0  # requests/sec
    error_rate: float = 0.0  # percentage

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "TrafficMetrics":
        if not isinstance(data, dict):
            return cls()
        return cls(
            protocol=str(data.get("protocol") or ""),
            source_workload=str(data.get("sourceWorkload") or ""),
            destination_workload=str(data.get("destinationWorkload") or ""),
            source_cluster=str(data.get("sourceCluster") or ""),
            destination_cluster=str(data.get("destinationCluster") or ""),
            request_rate=float(data.get("requestRate") or 0.0),
            error_rate=float(data.get("errorRate") or 0.0),
        )


@dataclass(frozen=True)
class ServiceNode:
    """A deployed service in one member cluster"""
    name: str
    cluster: str
    status: NodeStatus = NodeStatus.HEALTHY
    replicas: int = 0
    ready_replicas: int = 0
    namespace: str = ""
    node_type: str = "deployment"

    @property
    def id(self) -> str:
        return f"{self.cluster}-{self.name}"

    @property
    def role(self) -> ServiceRole:
        return service_role(self.name)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ServiceNode":
        """Build a node from its wire form; raises ValueError on malformed input"""
        if not isinstance(data, dict):
            raise ValueError(f"node entry is not an object: {data!r}")

        name = data.get("name")
        cluster = data.get("cluster")
        if not name or not cluster:
            raise ValueError(f"node entry is missing name or cluster: {data!r}")

        replicas = max(0, int(data.get("replicas") or 0))
        ready_replicas = max(0, int(data.get("readyReplicas") or 0))

        return cls(
            name=str(name),
            cluster=str(cluster),
            status=NodeStatus.from_wire(data.get("status"), replicas, ready_replicas),
            replicas=replicas,
            ready_replicas=ready_replicas,
            namespace=str(data.get("namespace") or ""),
            node_type=str(data.get("type") or "deployment"),
        )


@dataclass(frozen=True)
class ServiceEdge:
    """Observed or inferred traffic path between two nodes"""
    source: str
    target: str
    metrics: TrafficMetrics = field(default_factory=TrafficMetrics)

    @property
    def protocol(self) -> str:
        return self.metrics.protocol

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ServiceEdge":
        if not isinstance(data, dict):
            raise ValueError(f"edge entry is not an object: {data!r}")

        source = data.get("source")
        target = data.get("target")
        if not source or not target:
            raise ValueError(f"edge entry is missing source or target: {data!r}")

        return cls(
            source=str(source),
            target=str(target),
            metrics=TrafficMetrics.from_dict(data.get("metrics")),
        )


@dataclass(frozen=True)
class ClusterInfo:
    """Cluster status entry reported alongside the graph"""
    name: str
    ready: Optional[bool] = None
    status: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClusterInfo":
        if not isinstance(data, dict) or not data.get("name"):
            raise ValueError(f"cluster entry is missing a name: {data!r}")

        ready = data.get("ready")
        status = data.get("status")
        return cls(
            name=str(data["name"]),
            ready=ready if isinstance(ready, bool) else None,
            status=str(status) if status is not None else None,
        )


@dataclass(frozen=True)
class GraphSnapshot:
    """One fetched, immutable graph state"""
    nodes: Tuple[ServiceNode, ...] = ()
    edges: Tuple[ServiceEdge, ...] = ()
    cluster_status: Optional[Dict[str, Any]] = None
    clusters: Optional[Tuple[ClusterInfo, ...]] = None

    @property
    def is_empty(self) -> bool:
        return not self.nodes

    def nodes_in(self, member: ClusterMember) -> List[ServiceNode]:
        return [node for node in self.nodes if member.matches(node.cluster)]

    def has_eastwest_traffic(self) -> bool:
        return any(edge.protocol == PROTOCOL_EASTWEST for edge in self.edges)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GraphSnapshot":
        """
        Build a snapshot from the decoded response body

        Malformed nodes, edges and cluster entries are skipped individually;
        only the top-level shape is expected to be valid already.
        """
        nodes = []
        seen_ids = set()
        for raw in data.get("nodes") or []:
            try:
                node = ServiceNode.from_dict(raw)
            except (ValueError, TypeError) as e:
                logger.warning(f"Skipping malformed node: {e}")
                continue

            if node.id in seen_ids:
                logger.warning(f"Skipping duplicate node id: {node.id}")
                continue

            seen_ids.add(node.id)
            nodes.append(node)

        edges = []
        for raw in data.get("edges") or []:
            try:
                edges.append(ServiceEdge.from_dict(raw))
            except (ValueError, TypeError) as e:
                logger.warning(f"Skipping malformed edge: {e}")

        cluster_status = data.get("clusterStatus")
        if not isinstance(cluster_status, dict):
            cluster_status = None

        clusters = None
        if isinstance(data.get("clusters"), list):
            parsed = []
            for raw in data["clusters"]:
                try:
                    parsed.append(ClusterInfo.from_dict(raw))
                except ValueError as e:
                    logger.warning(f"Skipping malformed cluster entry: {e}")
            clusters = tuple(parsed)

        return cls(
            nodes=tuple(nodes),
            edges=tuple(edges),
            cluster_status=cluster_status,
            clusters=clusters,
        )


class NodeKind(Enum):
    """Kinds of entries produced by the layout planner"""
    INGRESS = "ingress"
    CLUSTER_GROUP = "cluster-group"
    SERVICE = "service"
    PLACEHOLDER = "placeholder"
    EASTWEST_GATEWAY = "eastwest-gateway"


class PlaceholderKind(Enum):
    """Why a cluster box has no services to show"""
    UNAVAILABLE = "unavailable"
    NO_SERVICES = "no-services"


@dataclass
class RenderHint:
    """Presentation descriptor consumed by the render surface"""
    role: str
    status_class: str
    lines: List[str] = field(default_factory=list)


@dataclass
class PositionedNode:
    """A node, group, placeholder or marker with a position on the canvas"""
    id: str
    kind: NodeKind
    position: Position
    width: float
    height: float
    hint: RenderHint
    parent_group: Optional[str] = None  # group-relative position when set
    cluster: Optional[str] = None  # member key
    service: Optional[ServiceNode] = None
    placeholder: Optional[PlaceholderKind] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "kind": self.kind.value,
            "position": {"x": self.position[0], "y": self.position[1]},
            "width": self.width,
            "height": self.height,
            "parentGroup": self.parent_group,
            "cluster": self.cluster,
            "hint": {
                "role": self.hint.role,
                "statusClass": self.hint.status_class,
                "lines": list(self.hint.lines),
            },
        }
        if self.service:
            data["service"] = {
                "name": self.service.name,
                "cluster": self.service.cluster,
                "status": self.service.status.value,
                "replicas": self.service.replicas,
                "readyReplicas": self.service.ready_replicas,
            }
        if self.placeholder:
            data["placeholder"] = self.placeholder.value
        return data


class EdgeCategory(Enum):
    INTERNAL_FLOW = "internal-flow"
    CROSS_CLUSTER = "cross-cluster"
    INGRESS = "ingress"
    OTHER = "other"


@dataclass
class EdgeHint:
    """Visual treatment for an edge"""
    color: str
    animated: bool = False
    dashed: bool = False
    muted: bool = False


@dataclass
class StyledEdge:
    """An edge ready for the render surface"""
    id: str
    source: str
    target: str
    category: EdgeCategory
    hint: EdgeHint
    source_anchor: str = "side"  # bottom: emanates downward from a gateway strip
    label: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "source": self.source,
            "target": self.target,
            "category": self.category.value,
            "sourceAnchor": self.source_anchor,
            "label": self.label,
            "hint": {
                "color": self.hint.color,
                "animated": self.hint.animated,
                "dashed": self.hint.dashed,
                "muted": self.hint.muted,
            },
        }
