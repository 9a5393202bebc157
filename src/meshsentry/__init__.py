"""
MeshSentry

Topology reconciliation and layout core for visualizing an active/standby
two-cluster service federation.
"""

__version__ = "0.1.0"
