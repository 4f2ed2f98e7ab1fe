from abc import ABC, abstractmethod
from typing import Dict

HttpClientHeaders = Dict[str, str]


class AbstractAuthenticator(ABC):
    """
    Implement this interface to implement a process for handling authentication.
    This is not meant to be a "service" in the traditional sense because
    implementors are not expected to be stateless.
    """

    @abstractmethod
    async def authenticate(self, headers: HttpClientHeaders) -> HttpClientHeaders:
        """
        Performs required authentication steps to add credentials to the headers,
        returning a new header mapping. The given mapping is left untouched.
        """

        raise NotImplementedError


class NoOpAuthenticator(AbstractAuthenticator):
    """
    For use in tests or on endpoints that don't need any authentication.
    """

    async def authenticate(self, headers: HttpClientHeaders) -> HttpClientHeaders:
        return headers


class APIKeyAuthenticator(AbstractAuthenticator):
    """
    Sends a static API key in the X-Apikey header. There is nothing to refresh,
    if the key is revoked requests simply fail with an API error.
    """

    def __init__(self, apiKey: str) -> None:
        if not apiKey:
            raise ValueError("API key can't be empty")
        self.apiKey = apiKey

    async def authenticate(self, headers: HttpClientHeaders) -> HttpClientHeaders:
        return {**headers, "X-Apikey": self.apiKey}
