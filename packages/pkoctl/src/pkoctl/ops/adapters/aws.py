from __future__ import annotations

from dataclasses import dataclass

from ._base import CliAdapter


@dataclass(frozen=True)
class Aws(CliAdapter):
    """Read-only AWS queries used to validate and verify provisioned resources."""

    bin_name: str = "aws"

    def _query(self, *args: str) -> list[str]:
        result = self.run(*args, "--output", "text", timeout_seconds=60)
        if not result.ok:
            return []
        return [item for item in result.stdout.split() if item and item != "None"]

    def buckets_matching(self, fragment: str) -> list[str]:
        return self._query("s3api", "list-buckets", "--query", f"Buckets[?contains(Name, '{fragment}')].Name")

    def vpcs_tagged(self, project: str, region: str) -> list[str]:
        return self._query(
            "ec2", "describe-vpcs", "--region", region,
            "--filters", f"Name=tag:Project,Values={project}",
            "--query", "Vpcs[].VpcId",
        )

    def roles_matching(self, fragment: str) -> list[str]:
        return self._query("iam", "list-roles", "--query", f"Roles[?contains(RoleName, '{fragment}')].RoleName")
