from typing import Any, Final

from .Core.authenticator import APIKeyAuthenticator
from .Core.endpoint import CollectionsEndpoint
from .Core.endpoint_client import (
    EndpointClient,
    EndpointClientConfig,
    defaultVirusTotalURLProvider,
)


class VirusTotalClient:
    """
    Entry point of the library. Any EndpointClientConfig field other than the
    authenticator can be overridden through keyword arguments, for instance
    urlProvider for pointing the client to a test server.
    """

    def __init__(self, apiKey: str, **config: Any) -> None:
        config.setdefault("urlProvider", defaultVirusTotalURLProvider)
        clientConfig: Final = EndpointClientConfig(
            authenticator=APIKeyAuthenticator(apiKey), **config
        )
        self.client = EndpointClient(clientConfig)
        self.collections = CollectionsEndpoint(self.client)
