"""Client address helpers for provider callbacks."""
from __future__ import annotations

import ipaddress
from typing import Iterable, Optional


def ip_allowed(remote_ip: Optional[str], allowlist: Iterable[str]) -> bool:
    """Check ``remote_ip`` against plain addresses and CIDR entries.

    An empty allowlist permits every caller. Unparseable entries are skipped;
    an unparseable or missing remote address is rejected.
    """
    entries = [e.strip() for e in allowlist if e and e.strip()]
    if not entries:
        return True
    if not remote_ip:
        return False
    try:
        rip = ipaddress.ip_address(remote_ip)
    except ValueError:
        return False

    for entry in entries:
        try:
            if "/" in entry:
                if rip in ipaddress.ip_network(entry, strict=False):
                    return True
            elif rip == ipaddress.ip_address(entry):
                return True
        except ValueError:
            continue
    return False
