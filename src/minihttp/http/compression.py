"""
=============================================================================
RESPONSE COMPRESSION
=============================================================================

Negotiates a content encoding with the client and applies it to the
response body before serialization.

=============================================================================
CONTENT NEGOTIATION
=============================================================================

The client lists the encodings it understands, in order of preference:

    Request:
    ┌───────────────────────────────────────────────────────────────┐
    │ GET /echo/abc HTTP/1.1                                        │
    │ Accept-Encoding: br, gzip                                     │
    │                  │   │                                        │
    │                  │   └── supported → used                     │
    │                  └── not supported → skipped                  │
    └───────────────────────────────────────────────────────────────┘

    Response:
    ┌───────────────────────────────────────────────────────────────┐
    │ HTTP/1.1 200 OK                                               │
    │ Content-Encoding: gzip                                        │
    │ Content-Length: 23        (compressed size!)                  │
    │ Vary: Accept-Encoding     (caching hint)                      │
    │                                                               │
    │ [gzip compressed body]                                        │
    └───────────────────────────────────────────────────────────────┘

We walk the client's tokens in order and apply the FIRST one we support.
If its transform fails we log it and try the next token. If nothing
applies the response goes out unmodified. Exactly one encoding is ever
applied.

q-values ("gzip;q=0.5") are not interpreted: such a token simply does
not match.

=============================================================================
FRAMING AFTER COMPRESSION
=============================================================================

Compression changes the body length, so Content-Length is rewritten to
the compressed size. Leaving the original length in place would make the
client read too many bytes and desynchronize the connection.

=============================================================================
"""

from typing import Callable, Dict, Optional
import gzip
import logging

from .request import HTTPRequest
from .response import HTTPResponse


logger = logging.getLogger(__name__)


Transform = Callable[[bytes], bytes]


def gzip_transform(body: bytes, level: int = 6) -> bytes:
    """Compress a body with gzip (DEFLATE + gzip framing)."""
    return gzip.compress(body, compresslevel=level)


class CompressionNegotiator:
    """
    Chooses and applies at most one content encoding per response.

        negotiator = CompressionNegotiator()
        negotiator.negotiate(request, response)   # mutates response

    Stateless after construction, so one instance is shared by every
    connection.

    Args:
        transforms: Mapping of encoding token → transform(body) -> bytes.
                    Tokens are matched lowercase. Defaults to {"gzip"}.
    """

    def __init__(self, transforms: Optional[Dict[str, Transform]] = None):
        if transforms is None:
            transforms = {"gzip": gzip_transform}
        self.transforms = {token.lower(): fn for token, fn in transforms.items()}

    @property
    def supported(self) -> frozenset:
        return frozenset(self.transforms)

    def negotiate(self, request: HTTPRequest, response: HTTPResponse) -> Optional[str]:
        """
        Apply the first supported encoding from the request's Accept-Encoding.

        Returns:
            The token applied, or None if the response was left unmodified.
        """
        accept_encoding = request.get_header("accept-encoding", "")
        if not accept_encoding or not accept_encoding.strip():
            return None

        # Don't double-encode
        if "content-encoding" in response.headers:
            return None

        for raw_token in accept_encoding.split(","):
            token = raw_token.strip().lower()
            transform = self.transforms.get(token)
            if transform is None:
                continue

            try:
                encoded = transform(response.body)
            except Exception as e:
                logger.debug(f"{token} encoding failed, trying next: {e}")
                continue

            response.body = encoded
            response.headers["Content-Encoding"] = token
            response.headers["Content-Length"] = str(len(encoded))
            self._add_vary(response)
            return token

        return None

    @staticmethod
    def _add_vary(response: HTTPResponse) -> None:
        """
        Add Accept-Encoding to Vary.

        Tells caches that this response depends on the request's
        Accept-Encoding, so a gzipped copy is never served to a client
        that cannot decode it.
        """
        vary = response.headers.get("vary", "")
        if "accept-encoding" in vary.lower():
            return
        response.headers["Vary"] = f"{vary}, Accept-Encoding".lstrip(", ")
