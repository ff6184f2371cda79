"""
Resource group operations.

Resource groups only exist on servers recent enough to implement the
Connect handshake, so every operation passes the compatibility check first
and fails with `IncompatibilityError` against older servers.
"""

from typing import Any

from vectordb_rpc.protocol.schema import message_to_dict


def _require_group(name: str, argument: str = "resource_group") -> None:
    if not name:
        raise ValueError(f"{argument} is required")


class ResourceGroupOperations:
    """Resource group RPCs, mixed into `VectorDBClient`."""

    async def create_resource_group(self, resource_group: str, *, timeout: float | None = None) -> dict[str, Any]:
        _require_group(resource_group)
        await self.check_compatibility()
        response = await self.call("CreateResourceGroup", {"resource_group": resource_group}, timeout=timeout)
        return message_to_dict(response)

    async def drop_resource_group(self, resource_group: str, *, timeout: float | None = None) -> dict[str, Any]:
        _require_group(resource_group)
        await self.check_compatibility()
        response = await self.call("DropResourceGroup", {"resource_group": resource_group}, timeout=timeout)
        return message_to_dict(response)

    async def list_resource_groups(self, *, timeout: float | None = None) -> dict[str, Any]:
        await self.check_compatibility()
        return message_to_dict(await self.call("ListResourceGroups", timeout=timeout))

    async def describe_resource_group(self, resource_group: str, *, timeout: float | None = None) -> dict[str, Any]:
        """Return capacity, available nodes and per-collection replica counts of a group."""
        _require_group(resource_group)
        await self.check_compatibility()
        response = await self.call("DescribeResourceGroup", {"resource_group": resource_group}, timeout=timeout)
        return message_to_dict(response)

    async def transfer_node(
        self,
        source_resource_group: str,
        target_resource_group: str,
        num_node: int,
        *,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        _require_group(source_resource_group, "source_resource_group")
        _require_group(target_resource_group, "target_resource_group")
        if num_node < 1:
            raise ValueError(f"num_node must be at least 1, got {num_node}")
        await self.check_compatibility()
        request = {
            "source_resource_group": source_resource_group,
            "target_resource_group": target_resource_group,
            "num_node": num_node,
        }
        return message_to_dict(await self.call("TransferNode", request, timeout=timeout))

    async def transfer_replica(
        self,
        source_resource_group: str,
        target_resource_group: str,
        collection_name: str,
        num_replica: int,
        *,
        db_name: str | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        _require_group(source_resource_group, "source_resource_group")
        _require_group(target_resource_group, "target_resource_group")
        _require_group(collection_name, "collection_name")
        if num_replica < 1:
            raise ValueError(f"num_replica must be at least 1, got {num_replica}")
        await self.check_compatibility()
        request: dict[str, Any] = {
            "source_resource_group": source_resource_group,
            "target_resource_group": target_resource_group,
            "collection_name": collection_name,
            "num_replica": num_replica,
        }
        if db_name:
            request["db_name"] = db_name
        return message_to_dict(await self.call("TransferReplica", request, timeout=timeout))

# 🐍🏗️🔌
