"""Builders for graph snapshots used across the test suite"""

from meshsentry.common.models import GraphSnapshot

MEMBER1 = "karmada-member1-ctx"
MEMBER2 = "karmada-member2-ctx"


def node(name, cluster=MEMBER1, replicas=2, ready=2, status="healthy"):
    return {
        "name": name,
        "namespace": "iot-platform",
        "cluster": cluster,
        "type": "deployment",
        "replicas": replicas,
        "readyReplicas": ready,
        "status": status,
    }


def edge(source, target, protocol="http", **metrics):
    data = {"protocol": protocol}
    data.update(metrics)
    return {"source": source, "target": target, "metrics": data}


def cluster_nodes(cluster, backends, replicas=2, ready=2):
    nodes = [node("api-gateway", cluster, replicas, ready), node("frontend", cluster, replicas, ready)]
    nodes.extend(node(name, cluster, replicas, ready) for name in backends)
    return nodes


def gateway_edges(cluster, backends):
    return [edge(f"{cluster}-api-gateway", f"{cluster}-{name}") for name in backends]


def federation_body(backends1=("data-api-service", "data-collector"),
                    backends2=("data-api-service", "data-collector"),
                    replicas=2, ready=2, **extra):
    nodes = cluster_nodes(MEMBER1, backends1, replicas, ready) + cluster_nodes(MEMBER2, backends2, replicas, ready)
    edges = gateway_edges(MEMBER1, backends1) + gateway_edges(MEMBER2, backends2)
    body = {"nodes": nodes, "edges": edges}
    body.update(extra)
    return body


def federation(**kwargs) -> GraphSnapshot:
    return GraphSnapshot.from_dict(federation_body(**kwargs))


def snapshot(nodes, edges=(), **extra) -> GraphSnapshot:
    body = {"nodes": list(nodes), "edges": list(edges)}
    body.update(extra)
    return GraphSnapshot.from_dict(body)


def eastwest_edges():
    """Cross-cluster path the backend reports for member1 frontend -> member2 data-api-service"""
    return [
        edge(f"{MEMBER1}-frontend", "eastwest-member1", "istio-eastwest"),
        edge("eastwest-member1", "eastwest-member2", "istio-eastwest"),
        edge("eastwest-member2", f"{MEMBER2}-data-api-service", "istio-eastwest"),
    ]
