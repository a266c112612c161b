"""Built-in email templates."""

from __future__ import annotations

from .ports import EmailTemplate

RECOVERY_SUBJECT = "Recover your MFA setup"

_RECOVERY_HTML = """\
<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{{ subject }}</title></head>
<body style="background-color:#f5f7fa;padding:20px 0;">
  <div style="background-color:#ffffff;border-radius:8px;margin:0 auto;padding:40px 20px;max-width:600px;font-family:-apple-system,BlinkMacSystemFont,'Segoe UI',Roboto,Helvetica,Arial,sans-serif;">
    {% if logo_url %}
    <img src="{{ logo_url }}" alt="{{ app_name }}" width="48" height="48" style="display:block;margin:0 auto 20px;">
    {% endif %}
    <p style="font-size:24px;font-weight:bold;text-align:center;margin-bottom:20px;">Recover Your MFA Setup</p>
    {% if qr_code_or_link.startswith("data:image/") %}
    <p style="font-size:16px;line-height:1.5;margin:20px 0;">
      We received a request to reset your multi-factor authentication for {{ app_name }}.
      Scan the QR code below with your authenticator app (e.g. Google Authenticator, Authy) to finish setup.
    </p>
    <div style="text-align:center;margin:30px 0;">
      <img src="{{ qr_code_or_link }}" alt="MFA QR Code" width="200" height="200" style="border-radius:4px;">
    </div>
    {% else %}
    <p style="font-size:16px;line-height:1.5;margin:20px 0;">
      We received a request to reset your multi-factor authentication for {{ app_name }}.
      Open the link below to set up a new authenticator.
    </p>
    <div style="text-align:center;margin:30px 0;">
      <a href="{{ qr_code_or_link }}" style="display:inline-block;padding:12px 20px;background-color:#000000;color:#ffffff;border-radius:4px;text-decoration:none;font-weight:500;">Reset MFA</a>
    </div>
    {% endif %}
    {% if expires_minutes %}
    <p style="font-size:14px;color:#444444;text-align:center;">This link expires in {{ expires_minutes }} minutes and can be used once.</p>
    {% endif %}
    {% if login_url %}
    <p style="text-align:center;"><a href="{{ login_url }}" style="color:#1a0dab;text-decoration:none;">Go to Your Dashboard</a></p>
    {% endif %}
    <p style="font-size:12px;line-height:1.4;color:#666666;margin-top:30px;text-align:center;">
      If you didn't request this, you can ignore this email or contact us at
      <a href="mailto:{{ support_email }}" style="color:#1a0dab;text-decoration:none;">{{ support_email }}</a>.
    </p>
  </div>
</body>
</html>
"""

_RECOVERY_TEXT = """\
We received a request to reset your multi-factor authentication for {{ app_name }}.

{% if qr_code_or_link.startswith("data:image/") %}Open this email in an HTML capable client to scan the QR code.{% else %}Set up a new authenticator here:
{{ qr_code_or_link }}{% endif %}
{% if expires_minutes %}
This link expires in {{ expires_minutes }} minutes and can be used once.
{% endif %}
If you didn't request this, you can ignore this email or contact us at {{ support_email }}.
"""

RECOVERY_EMAIL = EmailTemplate(
    template_id="mfa.recovery",
    subject=RECOVERY_SUBJECT,
    html=_RECOVERY_HTML,
    text=_RECOVERY_TEXT,
)

__all__: list[str] = ["RECOVERY_SUBJECT", "RECOVERY_EMAIL"]
