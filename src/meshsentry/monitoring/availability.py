#!/usr/bin/env python3
"""
Cluster availability inference for MeshSentry

The graph endpoint does not always report cluster state. Availability is
taken from the first signal present, in this order:

1. ``clusterStatus[<member>]`` when present and not null
2. the matching entry of ``clusters`` (``ready`` or ``status == "Ready"``)
3. whether the snapshot holds any node for the member
"""

import logging
from typing import Optional, Tuple, Any

from ..common.models import ClusterMember, ClusterInfo, GraphSnapshot, DEFAULT_MEMBERS

logger = logging.getLogger("AvailabilityClassifier")


class Availability(dict):
    """Mapping of member key -> reachable flag"""

    def is_available(self, member: ClusterMember) -> bool:
        # Unknown members are treated as reachable
        return self.get(member.key, True)


def _explicit_status(value: Any) -> Optional[bool]:
    """Interpret a clusterStatus value; None means no signal"""
    if value is None:
        return None
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized == "":
            return None
        return normalized != "false"
    return value is not False


class AvailabilityClassifier:
    """Derives per-cluster reachability from a graph snapshot"""

    def __init__(self, members: Tuple[ClusterMember, ClusterMember] = DEFAULT_MEMBERS):
        self.members = members

    def classify(self, snapshot: GraphSnapshot, member: ClusterMember) -> bool:
        """
        Decide whether a member cluster is reachable

        Args:
            snapshot: Snapshot to inspect
            member: Member cluster to classify

        Returns:
            True if the cluster is considered available
        """
        if snapshot.cluster_status:
            for key in (member.key, member.context):
                status = _explicit_status(snapshot.cluster_status.get(key))
                if status is not None:
                    return status

        if snapshot.clusters:
            entry = self._find_cluster_entry(snapshot.clusters, member)
            if entry is not None:
                if entry.ready is None and entry.status is None:
                    logger.debug(f"Cluster entry {entry.name} carries no status, assuming available")
                    return True
                return entry.ready is True or entry.status == "Ready"

        return len(snapshot.nodes_in(member)) > 0

    def classify_all(self, snapshot: GraphSnapshot) -> Availability:
        """Classify both members"""
        return Availability(
            (member.key, self.classify(snapshot, member)) for member in self.members
        )

    @staticmethod
    def _find_cluster_entry(clusters, member: ClusterMember) -> Optional[ClusterInfo]:
        for entry in clusters:
            if member.matches(entry.name):
                return entry
        return None
