import re

JID_SUFFIX = "@s.whatsapp.net"


def normalize_phone(value) -> str:
    """Canonical conversation key: the digits of a phone number or WhatsApp JID."""
    if not value or isinstance(value, (dict, list, tuple)):
        return ""
    text = str(value).strip()
    if "@" in text:
        text = text.split("@", 1)[0]
    return re.sub(r"\D", "", text)


def to_jid(value) -> str | None:
    digits = normalize_phone(value)
    if not digits:
        return None
    return f"{digits}{JID_SUFFIX}"
