"""Docker Swarm membership queries and node availability changes."""

import re
from typing import List

from dockerupgrader.models import ClusterState, Membership

_REPLICAS_RE = re.compile(r"^(\d+)/(\d+)")


class SwarmService:
    """Reads and changes the local node's swarm availability."""

    INFO_FORMAT = "{{.Swarm.LocalNodeState}}|{{.Swarm.NodeID}}|{{.Swarm.ControlAvailable}}"

    def __init__(self, runner, logger):
        self.runner = runner
        self.logger = logger

    def state(self) -> ClusterState:
        result = self.runner.run(["docker", "info", "--format", self.INFO_FORMAT], check=False)
        if result.returncode != 0:
            self.logger.warning("Could not query swarm membership; assuming the node is not a member.")
            return ClusterState()

        fields = (result.stdout or "").strip().split("|")
        if len(fields) != 3 or fields[0] != "active":
            return ClusterState()

        _, node_id, control = fields
        is_manager = control.strip().lower() == "true"

        if not is_manager:
            # workers cannot inspect themselves; availability is only known to managers
            return ClusterState(
                membership=Membership.ACTIVE,
                node_id=node_id or None,
                is_manager=False,
                availability=None,
            )

        availability = self.availability(node_id)
        membership = Membership.DRAINED if availability == "drain" else Membership.ACTIVE
        return ClusterState(
            membership=membership,
            node_id=node_id,
            is_manager=True,
            availability=availability,
        )

    def availability(self, node_id: str) -> str:
        result = self.runner.run(
            ["docker", "node", "inspect", node_id, "--format", "{{.Spec.Availability}}"]
        )
        return (result.stdout or "").strip().lower()

    def set_availability(self, node_id: str, availability: str):
        self.runner.run(
            ["docker", "node", "update", "--availability", availability, node_id],
            echo=True,
        )

    def running_tasks(self, node_id: str) -> List[str]:
        result = self.runner.run(
            [
                "docker",
                "node",
                "ps",
                node_id,
                "--filter",
                "desired-state=running",
                "--format",
                "{{.Name}} {{.CurrentState}}",
            ]
        )
        return [line.strip() for line in (result.stdout or "").splitlines() if line.strip()]

    def unsettled_services(self) -> List[str]:
        """Return ``name running/desired`` for services below their desired replica count."""
        result = self.runner.run(
            ["docker", "service", "ls", "--format", "{{.Name}} {{.Replicas}}"]
        )
        pending = []
        for line in (result.stdout or "").splitlines():
            parts = line.split()
            if len(parts) < 2:
                continue
            match = _REPLICAS_RE.match(parts[1])
            if match and int(match.group(1)) < int(match.group(2)):
                pending.append(f"{parts[0]} {parts[1]}")
        return pending
