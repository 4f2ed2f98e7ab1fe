from typing import Final
from .endpoint_client import EndpointClient
from .object import Object


class Endpoint:
    def __init__(self, client: EndpointClient) -> None:
        self.client = client


class CollectionsEndpoint(Endpoint):
    async def get(self, id: str) -> Object:
        return await self.client.getObject(self.client.url("collections/%s", id))

    async def createFromRawText(self, name: str, text: str) -> Object:
        """
        Creates a collection from free text, the server extracts the domains,
        URLs, IP addresses and file hashes found in it.
        """

        if not name:
            raise ValueError("collection name can't be empty")
        obj: Final = Object("collection")
        obj.setData("raw_items", text)
        obj.setString("name", name)
        await self.client.postObject(self.client.url("collections"), obj)
        return obj
