"""
Unit tests for compression negotiation.
"""

import gzip

import pytest

from minihttp.http.compression import CompressionNegotiator, gzip_transform
from minihttp.http.request import HTTPRequest
from minihttp.http.response import HTTPResponse, ok


def make_request(accept_encoding=None) -> HTTPRequest:
    headers = {}
    if accept_encoding is not None:
        headers["Accept-Encoding"] = accept_encoding
    return HTTPRequest(method="GET", path="/echo/abc", headers=headers)


def broken_transform(body: bytes) -> bytes:
    raise RuntimeError("encoder exploded")


class TestCompressionNegotiator:
    """Tests for CompressionNegotiator."""

    def test_gzip_applied(self):
        response = ok("abc")
        token = CompressionNegotiator().negotiate(make_request("gzip"), response)

        assert token == "gzip"
        assert gzip.decompress(response.body) == b"abc"
        assert response.headers["content-encoding"] == "gzip"
        assert response.headers["content-length"] == str(len(response.body))
        assert response.headers["vary"] == "Accept-Encoding"

    def test_first_supported_token_in_client_order(self):
        response = ok("abc")
        token = CompressionNegotiator().negotiate(make_request("br, deflate, gzip"), response)

        assert token == "gzip"

    def test_tokens_trimmed_and_case_insensitive(self):
        response = ok("abc")

        assert CompressionNegotiator().negotiate(make_request("  GZip  "), response) == "gzip"
        assert response.headers["content-encoding"] == "gzip"

    @pytest.mark.parametrize("accept_encoding", [None, "", "   ", "br, deflate", "gzip;q=1.0"])
    def test_unmodified_when_nothing_matches(self, accept_encoding):
        response = ok("abc")
        token = CompressionNegotiator().negotiate(make_request(accept_encoding), response)

        assert token is None
        assert response.body == b"abc"
        assert "content-encoding" not in response.headers
        assert "vary" not in response.headers

    def test_already_encoded_response_untouched(self):
        response = HTTPResponse(headers={"Content-Encoding": "br"}, body=b"opaque")
        token = CompressionNegotiator().negotiate(make_request("gzip"), response)

        assert token is None
        assert response.body == b"opaque"

    def test_failed_transform_falls_back_to_next(self):
        negotiator = CompressionNegotiator({"broken": broken_transform, "gzip": gzip_transform})
        response = ok("abc")

        assert negotiator.negotiate(make_request("broken, gzip"), response) == "gzip"
        assert gzip.decompress(response.body) == b"abc"

    def test_all_transforms_failing_leaves_response(self):
        negotiator = CompressionNegotiator({"broken": broken_transform})
        response = ok("abc")

        assert negotiator.negotiate(make_request("broken"), response) is None
        assert response.body == b"abc"
        assert "content-encoding" not in response.headers

    def test_vary_is_appended(self):
        response = ok("abc").set_header("Vary", "Origin")
        CompressionNegotiator().negotiate(make_request("gzip"), response)

        assert response.headers["vary"] == "Origin, Accept-Encoding"

    def test_empty_body_still_encoded(self):
        response = ok()
        CompressionNegotiator().negotiate(make_request("gzip"), response)

        assert gzip.decompress(response.body) == b""
        assert response.headers["content-length"] == str(len(response.body))

    def test_supported_set(self):
        assert CompressionNegotiator().supported == frozenset({"gzip"})
        assert CompressionNegotiator({"GZIP": gzip_transform}).supported == frozenset({"gzip"})
