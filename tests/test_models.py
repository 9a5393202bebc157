import unittest

from meshsentry.common.models import (
    ClusterMember, GraphSnapshot, NodeStatus, ServiceRole, DEFAULT_MEMBERS, member_for, service_role,
)
from snapshot_factory import MEMBER1, MEMBER2, edge, node


class TestServiceNodeParsing(unittest.TestCase):
    def test_id_is_cluster_and_name(self):
        snap = GraphSnapshot.from_dict({"nodes": [node("frontend")]})
        self.assertEqual(snap.nodes[0].id, f"{MEMBER1}-frontend")

    def test_status_strings(self):
        snap = GraphSnapshot.from_dict({"nodes": [
            node("a", status="healthy"),
            node("b", status="Running"),
            node("c", status="degraded"),
            node("d", status="failed"),
        ]})
        statuses = [n.status for n in snap.nodes]
        self.assertEqual(statuses, [NodeStatus.HEALTHY, NodeStatus.HEALTHY,
                                    NodeStatus.DEGRADED, NodeStatus.UNHEALTHY])

    def test_missing_status_is_derived_from_replicas(self):
        self.assertEqual(NodeStatus.from_wire(None, 0, 0), NodeStatus.HEALTHY)
        self.assertEqual(NodeStatus.from_wire(None, 3, 0), NodeStatus.UNHEALTHY)
        self.assertEqual(NodeStatus.from_wire("", 3, 1), NodeStatus.DEGRADED)
        self.assertEqual(NodeStatus.from_wire(None, 3, 3), NodeStatus.HEALTHY)

    def test_malformed_nodes_are_skipped(self):
        snap = GraphSnapshot.from_dict({"nodes": [
            node("frontend"),
            {"cluster": MEMBER1},
            "not-a-node",
            node("collector", replicas="many"),
        ]})
        self.assertEqual([n.name for n in snap.nodes], ["frontend"])

    def test_duplicate_ids_keep_first(self):
        snap = GraphSnapshot.from_dict({"nodes": [
            node("frontend", replicas=1, ready=1),
            node("frontend", replicas=5, ready=5),
        ]})
        self.assertEqual(len(snap.nodes), 1)
        self.assertEqual(snap.nodes[0].replicas, 1)

    def test_negative_replicas_are_clamped(self):
        snap = GraphSnapshot.from_dict({"nodes": [node("frontend", replicas=-1, ready=-4)]})
        self.assertEqual(snap.nodes[0].replicas, 0)
        self.assertEqual(snap.nodes[0].ready_replicas, 0)


class TestSnapshotParsing(unittest.TestCase):
    def test_edges_and_metrics(self):
        snap = GraphSnapshot.from_dict({
            "nodes": [node("api-gateway"), node("data-collector")],
            "edges": [
                edge(f"{MEMBER1}-api-gateway", f"{MEMBER1}-data-collector",
                     sourceWorkload="api-gateway", requestRate=12.5),
                {"source": f"{MEMBER1}-api-gateway"},
            ],
        })
        self.assertEqual(len(snap.edges), 1)
        self.assertEqual(snap.edges[0].protocol, "http")
        self.assertEqual(snap.edges[0].metrics.source_workload, "api-gateway")
        self.assertEqual(snap.edges[0].metrics.request_rate, 12.5)

    def test_optional_cluster_fields(self):
        snap = GraphSnapshot.from_dict({
            "nodes": [],
            "clusterStatus": {"member1": True},
            "clusters": [{"name": "member2-ctx", "ready": False, "status": "NotReady"}, {"ready": True}],
        })
        self.assertEqual(snap.cluster_status, {"member1": True})
        self.assertEqual(len(snap.clusters), 1)
        self.assertEqual(snap.clusters[0].name, "member2-ctx")
        self.assertFalse(snap.clusters[0].ready)

    def test_absent_cluster_fields(self):
        snap = GraphSnapshot.from_dict({"nodes": [node("frontend")], "edges": None})
        self.assertIsNone(snap.cluster_status)
        self.assertIsNone(snap.clusters)
        self.assertEqual(snap.edges, ())

    def test_nodes_in_member(self):
        snap = GraphSnapshot.from_dict({"nodes": [node("frontend", MEMBER1), node("frontend", MEMBER2)]})
        member1, member2 = DEFAULT_MEMBERS
        self.assertEqual([n.cluster for n in snap.nodes_in(member1)], [MEMBER1])
        self.assertEqual([n.cluster for n in snap.nodes_in(member2)], [MEMBER2])


class TestRolesAndMembers(unittest.TestCase):
    def test_role_from_name(self):
        self.assertEqual(service_role("api-gateway"), ServiceRole.API_GATEWAY)
        self.assertEqual(service_role("frontend"), ServiceRole.FRONTEND)
        self.assertEqual(service_role("data-processor"), ServiceRole.BACKEND)

    def test_member_matching(self):
        member = ClusterMember("member1", "karmada-member1-ctx", "Member1 Cluster")
        self.assertTrue(member.matches("member1"))
        self.assertTrue(member.matches("karmada-member1-ctx"))
        self.assertTrue(member.matches("member1-ctx"))
        self.assertFalse(member.matches("member2-ctx"))
        self.assertFalse(member.matches(None))

    def test_member_matching_respects_name_boundaries(self):
        member = ClusterMember("member1", "karmada-member1-ctx", "Member1 Cluster")
        self.assertFalse(member.matches("member10"))
        self.assertFalse(member.matches("member10-ctx"))
        self.assertFalse(member.matches("nonmember1"))
        self.assertTrue(member.matches("prod-member1"))

    def test_member_for(self):
        self.assertEqual(member_for(MEMBER2, DEFAULT_MEMBERS).key, "member2")
        self.assertIsNone(member_for("other-ctx", DEFAULT_MEMBERS))


if __name__ == "__main__":
    unittest.main()
