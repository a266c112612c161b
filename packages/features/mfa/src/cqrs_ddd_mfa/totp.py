"""TOTP (Time-based One-Time Password) helpers.

Works with any RFC 6238 authenticator app:
- Google Authenticator
- Microsoft Authenticator
- Authy
- 1Password

Uses pyotp for secrets, provisioning URIs and verification, and qrcode to
render the provisioning URI as a scannable image.
"""

from __future__ import annotations

import base64
import io
from dataclasses import dataclass

import pyotp
import qrcode
import qrcode.constants


@dataclass(frozen=True)
class TotpParameters:
    """TOTP parameters shared by enrollment and verification.

    Attributes:
        issuer: Application name shown in authenticator app.
        digits: Number of digits in code.
        interval: Time step in seconds.
        valid_window: Accept codes ±N intervals for clock drift.
    """

    issuer: str = "MyApp"
    digits: int = 6
    interval: int = 30
    valid_window: int = 1


def generate_secret() -> str:
    """Generate a new Base32 TOTP secret (160 bits)."""
    return pyotp.random_base32()


def provisioning_uri(secret: str, account_name: str, params: TotpParameters) -> str:
    """Build the otpauth:// URI for an authenticator app.

    Args:
        secret: Base32-encoded secret.
        account_name: Label shown in the app (usually the email).
        params: TOTP parameters.

    Returns:
        otpauth:// URI string.
    """
    totp = pyotp.TOTP(secret, digits=params.digits, interval=params.interval)
    return totp.provisioning_uri(name=account_name, issuer_name=params.issuer)


def verify_code(secret: str, code: str, params: TotpParameters) -> bool:
    """Check a code against the secret, tolerating clock drift."""
    if not secret or not code:
        return False
    totp = pyotp.TOTP(secret, digits=params.digits, interval=params.interval)
    return bool(totp.verify(code, valid_window=params.valid_window))


def current_code(secret: str, params: TotpParameters | None = None) -> str:
    """Current code for *secret* (tests and debugging only)."""
    params = params or TotpParameters()
    return pyotp.TOTP(secret, digits=params.digits, interval=params.interval).now()


def format_manual_key(secret: str) -> str:
    """Format secret for manual entry as groups of 4 characters."""
    secret = secret.rstrip("=")
    return " ".join(secret[i : i + 4] for i in range(0, len(secret), 4))


def render_qr_data_url(uri: str) -> str:
    """Render *uri* as a base64 PNG data URL for embedding in HTML."""
    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode.constants.ERROR_CORRECT_L,
        box_size=10,
        border=4,
    )
    qr.add_data(uri)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")

    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    b64 = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/png;base64,{b64}"


__all__: list[str] = [
    "TotpParameters",
    "generate_secret",
    "provisioning_uri",
    "verify_code",
    "current_code",
    "format_manual_key",
    "render_qr_data_url",
]
