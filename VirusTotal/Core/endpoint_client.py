from dataclasses import dataclass, field
from decimal import Decimal
import json
import re
import uuid
from typing import (
    Any,
    AsyncIterator,
    BinaryIO,
    Dict,
    List,
    Literal,
    Optional,
    Tuple,
    Final,
)
import asyncio
import contextlib
from urllib.parse import urljoin

import aiohttp
from .authenticator import AbstractAuthenticator, HttpClientHeaders
from .errors import APIError, DecodeError, TransportError
from .object import Object
from .pagination import Iterator, IteratorOptions, withQuery
from .types import Links
from copy import copy
import logging

HttpClientMethod = Literal[
    "get", "GET", "post", "POST", "patch", "PATCH", "delete", "DELETE"
]

VERSION: Final = "0.1.0"


@dataclass
class VirusTotalURLProvider:
    baseURL: str


defaultVirusTotalURLProvider: Final = VirusTotalURLProvider(
    baseURL="https://www.virustotal.com/api/v3/",
)


@dataclass
class EndpointClientConfig:
    authenticator: AbstractAuthenticator
    urlProvider: Optional[VirusTotalURLProvider] = None
    version: Optional[str] = None
    headers: Optional[HttpClientHeaders] = None
    # Caller owned session, it's never closed by the client.
    session: Optional[aiohttp.ClientSession] = None
    timeout: Optional[float] = None


@dataclass
class Response:
    """Envelope of an API response, errors are raised before one is built."""

    data: Any = None
    links: Links = field(default_factory=Links)


@dataclass
class RelationshipMeta:
    name: str
    description: str


@dataclass
class Metadata:
    engines: Dict[str, Any]
    relationships: Dict[str, List[RelationshipMeta]]
    privileges: List[str]


def _dumps(body: Any) -> str:
    """
    Serializes a request body. Decimal values are written with their exact
    text, so numbers decoded from a response go back to the server unchanged.
    """

    marker: Final = uuid.uuid4().hex

    def default(value: Any) -> Any:
        if isinstance(value, Decimal) and value.is_finite():
            return f"{marker}{value}"
        raise TypeError(f"{type(value).__name__} is not JSON serializable")

    encoded: Final = json.dumps(
        body, sort_keys=True, separators=(",", ":"), default=default
    )
    return re.sub(f'"{marker}([-+.0-9Ee]+)"', r"\1", encoded)


class EndpointClient:
    logger = logging.getLogger("VirusTotal.EndpointClient")

    def __init__(self, config: EndpointClientConfig) -> None:
        self.config = config

    def setHeader(self, name: str, value: str) -> "EndpointClient":
        if not self.config.headers:
            self.config.headers = {}

        self.config.headers[name] = value
        return self

    def removeHeader(self, name: str) -> "EndpointClient":
        if self.config.headers:
            self.config.headers.pop(name, None)
        return self

    def url(self, pathFmt: str, *args: Any) -> str:
        """
        Returns the full URL for a path relative to the API prefix, formatting
        it first with args, e.g. url("files/%s/comments", sha256). Absolute
        URLs, like the pagination links returned by the API, are kept as is.
        """

        if not self.config.urlProvider:
            raise ValueError("No URL provider specified")

        path: Final = pathFmt % args if args else pathFmt
        if path.startswith("https://") or path.startswith("http://"):
            return path
        baseURL = self.config.urlProvider.baseURL
        if not baseURL.endswith("/"):
            baseURL += "/"
        return urljoin(baseURL, path.lstrip("/"))

    @contextlib.asynccontextmanager
    async def _session(self) -> AsyncIterator[aiohttp.ClientSession]:
        if self.config.session:
            yield self.config.session
        else:
            async with aiohttp.ClientSession() as session:
                yield session

    async def _headers(
        self, headers: Optional[HttpClientHeaders]
    ) -> HttpClientHeaders:
        result: HttpClientHeaders = {
            # Compressed responses are only served to user agents that
            # mention gzip.
            "User-Agent": f"vtpy {self.config.version or VERSION}; gzip",
            "Accept-Encoding": "gzip",
        }
        if self.config.headers:
            result.update(copy(self.config.headers))
        if headers:
            result.update(headers)
        return await self.config.authenticator.authenticate(result)

    @contextlib.asynccontextmanager
    async def _send(
        self,
        method: HttpClientMethod,
        url: str,
        body: Any = None,
        headers: Optional[HttpClientHeaders] = None,
    ) -> AsyncIterator[aiohttp.ClientResponse]:
        headers = dict(headers or {})
        data: Optional[str] = None
        if body is not None:
            data = _dumps(body)
            headers.setdefault("Content-Type", "application/json")

        requestHeaders: Final = await self._headers(headers)
        kwargs: Dict[str, Any] = {}
        if self.config.timeout:
            kwargs["timeout"] = aiohttp.ClientTimeout(total=self.config.timeout)

        self.logger.debug("%s %s", method.upper(), url)
        try:
            async with self._session() as session:
                async with session.request(
                    method.upper(), url, headers=requestHeaders, data=data, **kwargs
                ) as resp:
                    yield resp
        except (aiohttp.ClientError, asyncio.TimeoutError) as err:
            raise TransportError(f"{method.upper()} {url}: {err!r}") from err

    async def _parseResponse(self, resp: aiohttp.ClientResponse) -> Response:
        body: Final = await resp.read()
        if not body:
            if resp.status >= 400:
                raise TransportError(
                    f"unexpected status {resp.status} from {resp.method} {resp.url}",
                    resp.status,
                )
            return Response()

        if not resp.content_type.startswith("application/json"):
            raise TransportError(
                f"expecting JSON response from {resp.method} {resp.url}, "
                f"got {resp.content_type}",
                resp.status,
            )

        try:
            envelope = json.loads(body, parse_float=Decimal)
        except ValueError as err:
            raise TransportError(
                f"malformed JSON response from {resp.method} {resp.url}", resp.status
            ) from err
        if not isinstance(envelope, dict):
            raise TransportError(
                f"malformed response envelope from {resp.method} {resp.url}",
                resp.status,
            )

        error = envelope.get("error")
        if isinstance(error, dict) and error.get("code"):
            raise APIError(str(error["code"]), str(error.get("message") or ""))

        if resp.status >= 400:
            raise TransportError(
                f"unexpected status {resp.status} from {resp.method} {resp.url}",
                resp.status,
            )

        return Response(
            data=envelope.get("data"), links=Links.fromDict(envelope.get("links"))
        )

    async def request(
        self,
        method: HttpClientMethod,
        url: str,
        body: Any = None,
        headers: Optional[HttpClientHeaders] = None,
    ) -> Response:
        async with self._send(method, url, body, headers) as resp:
            return await self._parseResponse(resp)

    async def get(self, url: str) -> Response:
        return await self.request("GET", url)

    async def post(self, url: str, data: Any = None) -> Response:
        return await self.request(
            "POST", url, {"data": data} if data is not None else None
        )

    async def patch(self, url: str, data: Any = None) -> Response:
        return await self.request(
            "PATCH", url, {"data": data} if data is not None else None
        )

    async def delete(self, url: str) -> Response:
        return await self.request("DELETE", url)

    async def getData(self, url: str) -> Any:
        return (await self.get(url)).data

    async def fetchPage(self, url: str) -> Tuple[List[Object], Links]:
        """
        Fetches one page of a collection. Endpoints returning a single object
        are treated as a collection with one item.
        """

        response: Final = await self.get(url)
        data = response.data
        if data is None:
            objects = []
        elif isinstance(data, dict):
            objects = [Object.fromDict(data)]
        elif isinstance(data, list):
            objects = [Object.fromDict(o, f"data.[{i}]") for i, o in enumerate(data)]
        else:
            raise DecodeError("expecting an object or a list of objects", "data")

        self.logger.debug(
            "fetched %d objects from %s, next: %r",
            len(objects),
            url,
            response.links.next,
        )
        return objects, response.links

    async def getObject(self, url: str) -> Object:
        return Object.fromDict(await self.getData(url))

    async def postObject(self, url: str, obj: Object) -> None:
        """
        Creates an object in a collection. On success obj is updated with the
        object returned by the server, including its new identifier.
        """

        response: Final = await self.post(url, obj.modifiedView())
        obj._update(Object.fromDict(response.data))

    async def patchObject(self, url: str, obj: Object) -> None:
        """
        Sends the attributes modified since obj was fetched, then updates obj
        with the object returned by the server.
        """

        response: Final = await self.patch(url, obj.modifiedView())
        obj._update(Object.fromDict(response.data))

    async def deleteObject(self, url: str) -> None:
        await self.delete(url)

    async def downloadFile(self, hash: str, writer: BinaryIO) -> int:
        """Downloads the file with the given hash into writer, returns the
        number of bytes written."""

        written = 0
        async with self._send("GET", self.url("files/%s/download", hash)) as resp:
            if resp.status >= 400:
                await self._parseResponse(resp)
            async for chunk in resp.content.iter_chunked(64 * 1024):
                writer.write(chunk)
                written += len(chunk)
        return written

    def iterator(
        self, url: str, options: Optional[IteratorOptions] = None
    ) -> Iterator:
        return Iterator.start(self, url, options or IteratorOptions())

    def search(
        self,
        query: str,
        options: Optional[IteratorOptions] = None,
        descriptorsOnly: bool = False,
    ) -> Iterator:
        """Iterates over the results of an Intelligence search query."""

        params: Final = {"query": query}
        if descriptorsOnly:
            params["descriptors_only"] = "true"
        return self.iterator(
            withQuery(self.url("intelligence/search"), params), options
        )

    async def getMetadata(self) -> Metadata:
        data: Final = await self.getData(self.url("metadata"))
        if not isinstance(data, dict):
            raise DecodeError("expecting an object", "data")

        relationships: Dict[str, List[RelationshipMeta]] = {}
        for objType, rels in (data.get("relationships") or {}).items():
            if not isinstance(rels, list):
                raise DecodeError("expecting a list", f"data.relationships.{objType}")
            relationships[objType] = [
                RelationshipMeta(
                    name=r.get("name", ""), description=r.get("description", "")
                )
                for r in rels
                if isinstance(r, dict)
            ]
        return Metadata(
            engines=data.get("engines") or {},
            relationships=relationships,
            privileges=list(data.get("privileges") or []),
        )
