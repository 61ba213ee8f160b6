"""Request host normalization.

Hosts are compared in their ASCII-compatible (punycode) form because that
is what clients and proxies transmit. Normalization is pure string work:
no DNS, no registry access. Anything that cannot be normalized yields
None, which callers treat exactly like an unknown host.
"""

from __future__ import annotations

from urllib.parse import urlsplit

import idna

_MAX_HOST_LENGTH = 253


def normalize_host(raw: str | None) -> str | None:
    """Return the lowercase punycode hostname for a Host header, authority or URL.

    Strips userinfo, port and one trailing dot. Returns None for empty,
    malformed or IP-literal (bracketed IPv6) input.
    """
    if not raw or not isinstance(raw, str):
        return None

    value = raw.strip()
    if "://" in value:
        try:
            value = urlsplit(value).netloc
        except ValueError:
            return None

    # Authority only: drop any path/query that slipped through, then userinfo.
    value = value.split("/", 1)[0].split("?", 1)[0]
    value = value.rsplit("@", 1)[-1]

    if not value or value.startswith("["):
        return None

    if ":" in value:
        host, _, port = value.partition(":")
        if not port.isdigit():
            return None
        value = host

    if value.endswith("."):
        value = value[:-1]
    if not value:
        return None

    try:
        ascii_host = idna.encode(value, uts46=True).decode("ascii")
    except UnicodeError:
        # idna.IDNAError is a UnicodeError subclass
        return None

    if len(ascii_host) > _MAX_HOST_LENGTH:
        return None
    return ascii_host.lower()


def subdomain_label(host: str, base_domain: str) -> str | None:
    """Return the tenant label for ``<label>.<base_domain>``, else None.

    Only a single label directly under the base domain counts; deeper
    names such as ``a.b.<base_domain>`` and the apex itself do not.
    """
    suffix = "." + base_domain
    if not host.endswith(suffix):
        return None
    label = host[: -len(suffix)]
    if not label or "." in label:
        return None
    return label
