import base64
import binascii
import json
import zlib
from dataclasses import dataclass
from typing import Final

from .errors import InvalidCursor


@dataclass(frozen=True)
class Cursor:
    """Position inside a collection: the page to fetch and how many of its
    items were already handed out."""

    link: str = ""
    offset: int = 0

    def encode(self) -> str:
        if not self.link:
            return ""
        payload: Final = json.dumps(
            {"link": self.link, "offset": self.offset}, separators=(",", ":")
        ).encode()
        compressor = zlib.compressobj(zlib.Z_BEST_COMPRESSION, zlib.DEFLATED, -15)
        raw: Final = compressor.compress(payload) + compressor.flush()
        return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")

    @classmethod
    def decode(cls, s: str) -> "Cursor":
        if not s:
            return cls()
        try:
            raw = base64.urlsafe_b64decode(s + "=" * (-len(s) % 4))
            decompressor = zlib.decompressobj(-15)
            data = json.loads(decompressor.decompress(raw) + decompressor.flush())
        except (binascii.Error, ValueError, zlib.error) as err:
            raise InvalidCursor(f"invalid cursor: {err}") from err

        if not isinstance(data, dict):
            raise InvalidCursor("invalid cursor: not an object")
        link = data.get("link")
        offset = data.get("offset", 0)
        if (
            not isinstance(link, str)
            or not link
            or not isinstance(offset, int)
            or isinstance(offset, bool)
            or offset < 0
        ):
            raise InvalidCursor("invalid cursor: bad link or offset")
        return cls(link=link, offset=offset)
