# -*- coding: utf-8 -*-
"""
Email utilities: parsing, body extraction, construction.
Uses the modern EmailMessage API (Python 3.6+).
"""

import email
import email.message
import email.policy
import email.utils

import html_utils

EMAIL_POLICY = email.policy.EmailPolicy(utf8=True)


# ============================================================================
# Email parsing
# ============================================================================


def parse_message(raw):
    """Parse raw message bytes (or text) into an EmailMessage"""
    match raw:
        case bytes() | bytearray():
            return email.message_from_bytes(bytes(raw), policy=EMAIL_POLICY)
        case _:
            return email.message_from_string(raw, policy=EMAIL_POLICY)


def decode_part(part):
    """
    Decode a single MIME part to string.

    Args:
        part: MIME part

    Returns:
        Decoded string or None when the part has no payload
    """
    payload = part.get_payload(decode=True)
    if payload is None:
        return None

    charset = part.get_content_charset() or "utf-8"

    for encoding in [charset, "utf-8", "iso-8859-1"]:
        try:
            return payload.decode(encoding)
        except (UnicodeDecodeError, LookupError):
            continue

    return payload.decode("utf-8", errors="replace")


def get_decoded_email_body(msg):
    """
    Decode email body.
    Extract text/plain, fallback to text/html converted to text.

    Args:
        msg: Parsed email message

    Returns:
        Message body as unicode string
    """
    text_part = None
    html_part = None

    for part in msg.walk():
        if part.is_multipart() or part.get_content_disposition() == "attachment":
            continue
        content_type = part.get_content_type()

        if content_type == "text/plain" and text_part is None:
            text_part = decode_part(part)
        elif content_type == "text/html" and html_part is None:
            html_part = decode_part(part)

    if text_part:
        return text_part.strip()
    if html_part:
        return html_utils.html_to_text(html_part).strip()
    return ""


# ============================================================================
# Email construction
# ============================================================================


def build_message(
    *,
    subject,
    from_addr,
    to_addr,
    body,
    cc_addr=None,
    message_id=None,
    html_body=None,
):
    """
    Build an email message.

    Args:
        subject: Email subject
        from_addr: Sender address
        to_addr: Recipient address
        body: Plain text body
        cc_addr: Optional Cc address
        message_id: Optional explicit Message-ID
        html_body: Optional HTML alternative

    Returns:
        EmailMessage object
    """
    msg = email.message.EmailMessage(policy=EMAIL_POLICY)
    msg["Subject"] = subject
    msg["From"] = from_addr
    msg["To"] = to_addr

    if cc_addr:
        msg["Cc"] = cc_addr

    msg["Message-ID"] = message_id or email.utils.make_msgid()
    msg["Date"] = email.utils.formatdate(localtime=True)

    if body is not None:
        msg.set_content(body)
        if html_body is not None:
            msg.add_alternative(html_body, subtype="html")
    elif html_body is not None:
        msg.set_content(html_body, subtype="html")

    return msg
