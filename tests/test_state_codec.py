"""Tests for carrying the authorization request through the `state` parameter."""

import base64
import string

import pytest

from authproxy import state_codec
from authproxy.errors import BadRequestError, RequestTooLargeError, StateDecodeError
from authproxy.models import AuthorizationRequest


class TestRoundTrip:
    """decode(encode(request)) returns the original request."""

    def test_full_request_round_trips(self, auth_request):
        assert state_codec.decode(state_codec.encode(auth_request)) == auth_request

    def test_minimal_request_round_trips(self):
        request = AuthorizationRequest(client_id="c", redirect_uri="http://localhost/cb")
        assert state_codec.decode(state_codec.encode(request)) == request

    def test_unicode_and_reserved_characters_round_trip(self):
        request = AuthorizationRequest(
            client_id="client with spaces & ü",
            redirect_uri="https://example.com/cb?x=1&y=2#frag",
            scope=["read", "write:all"],
            state="=?&/+",
        )
        assert state_codec.decode(state_codec.encode(request)) == request

    def test_encoded_value_is_url_safe(self, auth_request):
        value = state_codec.encode(auth_request)
        allowed = set(string.ascii_letters + string.digits + "-_=")
        assert set(value) <= allowed


class TestDecodeFailures:
    """Malformed state is rejected, never partially recovered."""

    @pytest.mark.parametrize("value", [None, ""])
    def test_missing_state(self, value):
        with pytest.raises(StateDecodeError):
            state_codec.decode(value)

    def test_truncated_state(self, auth_request):
        value = state_codec.encode(auth_request)
        with pytest.raises(StateDecodeError):
            state_codec.decode(value[: len(value) // 2 + 1])

    def test_not_base64(self):
        with pytest.raises(StateDecodeError):
            state_codec.decode("!!!not base64!!!")

    def test_valid_base64_but_not_json(self):
        with pytest.raises(StateDecodeError):
            state_codec.decode(base64.urlsafe_b64encode(b"hello world").decode())

    def test_json_without_client_id(self):
        value = base64.urlsafe_b64encode(b'{"redirect_uri": "http://localhost/cb"}').decode()
        with pytest.raises(StateDecodeError):
            state_codec.decode(value)

    def test_blank_client_id_rejected(self):
        value = base64.urlsafe_b64encode(b'{"client_id": "  ", "redirect_uri": "http://localhost/cb"}').decode()
        with pytest.raises(StateDecodeError):
            state_codec.decode(value)

    def test_unknown_fields_rejected(self):
        value = base64.urlsafe_b64encode(
            b'{"client_id": "c", "redirect_uri": "http://localhost/cb", "admin": true}'
        ).decode()
        with pytest.raises(StateDecodeError):
            state_codec.decode(value)

    def test_oversized_state(self):
        with pytest.raises(StateDecodeError):
            state_codec.decode("A" * (state_codec.MAX_STATE_LENGTH + 4))

    def test_decode_error_is_a_bad_request(self):
        """Callers map decode failures to a 400."""
        with pytest.raises(BadRequestError) as exc_info:
            state_codec.decode("%%%")
        assert exc_info.value.status_code == 400

    def test_encode_refuses_oversized_request(self):
        request = AuthorizationRequest(client_id="c", redirect_uri="http://localhost/cb", state="x" * 10000)
        with pytest.raises(RequestTooLargeError) as exc_info:
            state_codec.encode(request)
        assert exc_info.value.status_code == 400
