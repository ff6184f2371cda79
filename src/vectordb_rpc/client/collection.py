"""
Collection operations.

Thin wrappers over the collection RPCs. Each validates its arguments before
any channel is leased and returns the response as a dict keyed by the proto
field names. Server-side failures are reported in the returned `status`,
as the service does; only transport failures raise.
"""

import base64
from collections.abc import Iterable, Mapping
from typing import Any

from pyvider.telemetry import logger

from vectordb_rpc.protocol.schema import message_to_dict


def _require(value: Any, message: str) -> None:
    if not value:
        raise ValueError(message)


def _with_db(request: dict[str, Any], db_name: str | None) -> dict[str, Any]:
    if db_name:
        request["db_name"] = db_name
    return request


class CollectionOperations:
    """Collection RPCs, mixed into `VectorDBClient`."""

    async def create_collection(
        self,
        collection_name: str,
        fields: Iterable[Mapping[str, Any]],
        *,
        description: str = "",
        auto_id: bool = True,
        enable_dynamic_field: bool = False,
        shards_num: int | None = None,
        consistency_level: str | None = None,
        properties: Mapping[str, str] | None = None,
        db_name: str | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """
        Create a collection.

        The collection schema travels as an encoded `CollectionSchema` inside
        the request, so `fields` is encoded here with the loaded schema types.
        Each field is a mapping such as
        ``{"name": "vector", "data_type": "FloatVector", "type_params": {"dim": 8}}``.

        Raises:
            ValueError: If the name or the fields are missing.
            ProtocolError: If a field does not fit the schema.
        """
        fields = list(fields or [])
        _require(collection_name and fields, "fields and collection_name is needed")

        schema_bytes = self.encode_collection_schema(
            {
                "name": collection_name,
                "description": description,
                "autoID": auto_id,
                "enable_dynamic_field": enable_dynamic_field,
                "fields": fields,
            }
        )
        request: dict[str, Any] = {
            "collection_name": collection_name,
            "schema": base64.b64encode(schema_bytes).decode("ascii"),
        }
        if shards_num is not None:
            request["shards_num"] = shards_num
        if consistency_level is not None:
            request["consistency_level"] = consistency_level
        if properties:
            request["properties"] = [{"key": str(k), "value": str(v)} for k, v in properties.items()]

        logger.debug(f"🗂️ Creating collection {collection_name} with {len(fields)} field(s)")
        response = await self.call("CreateCollection", _with_db(request, db_name), timeout=timeout)
        return message_to_dict(response)

    async def has_collection(
        self, collection_name: str, *, db_name: str | None = None, timeout: float | None = None
    ) -> dict[str, Any]:
        _require(collection_name, "Collection name is empty")
        request = _with_db({"collection_name": collection_name}, db_name)
        return message_to_dict(await self.call("HasCollection", request, timeout=timeout))

    async def show_collections(
        self,
        collection_names: Iterable[str] | None = None,
        *,
        db_name: str | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """List collections, or report on `collection_names` only when given."""
        request: dict[str, Any] = {}
        if collection_names:
            request["collection_names"] = list(collection_names)
        return message_to_dict(await self.call("ShowCollections", _with_db(request, db_name), timeout=timeout))

    async def describe_collection(
        self, collection_name: str, *, db_name: str | None = None, timeout: float | None = None
    ) -> dict[str, Any]:
        _require(collection_name, "Collection name is empty")
        request = _with_db({"collection_name": collection_name}, db_name)
        return message_to_dict(await self.call("DescribeCollection", request, timeout=timeout))

    async def get_collection_statistics(
        self, collection_name: str, *, db_name: str | None = None, timeout: float | None = None
    ) -> dict[str, Any]:
        _require(collection_name, "Collection name is empty")
        request = _with_db({"collection_name": collection_name}, db_name)
        return message_to_dict(await self.call("GetCollectionStatistics", request, timeout=timeout))

    async def load_collection(
        self,
        collection_name: str,
        *,
        replica_number: int | None = None,
        resource_groups: Iterable[str] | None = None,
        db_name: str | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        _require(collection_name, "Collection name is empty")
        request: dict[str, Any] = {"collection_name": collection_name}
        if replica_number is not None:
            request["replica_number"] = replica_number
        if resource_groups:
            request["resource_groups"] = list(resource_groups)
        return message_to_dict(await self.call("LoadCollection", _with_db(request, db_name), timeout=timeout))

    async def release_collection(
        self, collection_name: str, *, db_name: str | None = None, timeout: float | None = None
    ) -> dict[str, Any]:
        _require(collection_name, "Collection name is empty")
        request = _with_db({"collection_name": collection_name}, db_name)
        return message_to_dict(await self.call("ReleaseCollection", request, timeout=timeout))

    async def drop_collection(
        self, collection_name: str, *, db_name: str | None = None, timeout: float | None = None
    ) -> dict[str, Any]:
        _require(collection_name, "Collection name is empty")
        logger.debug(f"🗂️ Dropping collection {collection_name}")
        request = _with_db({"collection_name": collection_name}, db_name)
        return message_to_dict(await self.call("DropCollection", request, timeout=timeout))

# 🐍🏗️🔌
