"""Tests for TOTP helpers."""

from __future__ import annotations

import base64
import time
from urllib.parse import parse_qs, urlparse

import pyotp

from cqrs_ddd_mfa.totp import (
    TotpParameters,
    current_code,
    format_manual_key,
    generate_secret,
    provisioning_uri,
    render_qr_data_url,
    verify_code,
)


class TestTotpHelpers:
    def test_generate_secret_is_base32(self) -> None:
        secret = generate_secret()
        assert len(secret) == 32
        base64.b32decode(secret)

    def test_provisioning_uri_contains_issuer_and_account(self) -> None:
        secret = generate_secret()
        uri = provisioning_uri(secret, "user@example.com", TotpParameters(issuer="Acme"))

        parsed = urlparse(uri)
        assert parsed.scheme == "otpauth"
        assert parsed.netloc == "totp"
        query = parse_qs(parsed.query)
        assert query["secret"] == [secret]
        assert query["issuer"] == ["Acme"]

    def test_verify_current_code(self) -> None:
        secret = generate_secret()
        params = TotpParameters()
        assert verify_code(secret, current_code(secret, params), params)

    def test_verify_rejects_empty_inputs(self) -> None:
        assert not verify_code("", "123456", TotpParameters())
        assert not verify_code(generate_secret(), "", TotpParameters())

    def test_verify_tolerates_one_step_of_drift(self) -> None:
        secret = generate_secret()
        totp = pyotp.TOTP(secret)
        earlier = totp.at(int(time.time()) - 30)
        assert verify_code(secret, earlier, TotpParameters(valid_window=1))
        assert not verify_code(
            secret, totp.at(int(time.time()) - 120), TotpParameters(valid_window=1)
        )

    def test_format_manual_key_groups_of_four(self) -> None:
        assert format_manual_key("ABCDEFGHIJKL") == "ABCD EFGH IJKL"
        assert format_manual_key("ABCDEF==") == "ABCD EF"

    def test_render_qr_data_url(self) -> None:
        data_url = render_qr_data_url("otpauth://totp/Acme:user?secret=ABC")
        assert data_url.startswith("data:image/png;base64,")
        png = base64.b64decode(data_url.split(",", 1)[1])
        assert png[:8] == b"\x89PNG\r\n\x1a\n"
