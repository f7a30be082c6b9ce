from __future__ import annotations

import re
from typing import Any, Iterable

DELEGATE_EMAIL = "access@setforgetgrow.com"

KNOWN_REGISTRARS: dict[str, dict[str, Any]] = {
    "godaddy": {
        "id": "godaddy",
        "name": "GoDaddy",
        "supportsDelegation": True,
        "delegationInstructions": (
            f"Go to your GoDaddy account > Domain Settings > Contacts > Add Delegate Access. Add the email: {DELEGATE_EMAIL}"
        ),
        "credentialsRequired": False,
        "loginUrl": "https://sso.godaddy.com/",
    },
    "cloudflare": {
        "id": "cloudflare",
        "name": "Cloudflare",
        "supportsDelegation": True,
        "delegationInstructions": (
            f"Go to Cloudflare Dashboard > Manage Account > Members > Invite. Add {DELEGATE_EMAIL} as Administrator."
        ),
        "credentialsRequired": False,
        "loginUrl": "https://dash.cloudflare.com/",
    },
    "namecheap": {
        "id": "namecheap",
        "name": "Namecheap",
        "supportsDelegation": False,
        "credentialsRequired": True,
        "loginUrl": "https://www.namecheap.com/myaccount/login/",
    },
    "squarespace": {
        "id": "squarespace",
        "name": "Squarespace",
        "supportsDelegation": True,
        "delegationInstructions": (
            f"Go to Settings > Permissions > Invite Contributor. Add {DELEGATE_EMAIL} with Website Manager permissions."
        ),
        "credentialsRequired": False,
        "loginUrl": "https://account.squarespace.com/",
    },
    "wix": {
        "id": "wix",
        "name": "Wix",
        "supportsDelegation": False,
        "credentialsRequired": True,
        "loginUrl": "https://users.wix.com/signin",
    },
    "bluehost": {
        "id": "bluehost",
        "name": "Bluehost",
        "supportsDelegation": False,
        "credentialsRequired": True,
        "loginUrl": "https://my.bluehost.com/cgi/home",
    },
    "hostgator": {
        "id": "hostgator",
        "name": "HostGator",
        "supportsDelegation": False,
        "credentialsRequired": True,
        "loginUrl": "https://portal.hostgator.com/",
    },
    "hover": {
        "id": "hover",
        "name": "Hover",
        "supportsDelegation": True,
        "delegationInstructions": f"Contact Hover support to add {DELEGATE_EMAIL} as an authorized user.",
        "credentialsRequired": False,
        "loginUrl": "https://www.hover.com/signin",
    },
    "netlify": {
        "id": "netlify",
        "name": "Netlify",
        "supportsDelegation": True,
        "delegationInstructions": f"Go to Team Settings > Members > Invite. Add {DELEGATE_EMAIL} as a team member.",
        "credentialsRequired": False,
        "loginUrl": "https://app.netlify.com/",
    },
    "vercel": {
        "id": "vercel",
        "name": "Vercel",
        "supportsDelegation": True,
        "delegationInstructions": f"Go to Team Settings > Members. Invite {DELEGATE_EMAIL} as a team member.",
        "credentialsRequired": False,
        "loginUrl": "https://vercel.com/login",
    },
    "ionos": {
        "id": "ionos",
        "name": "IONOS (1&1)",
        "supportsDelegation": False,
        "credentialsRequired": True,
        "loginUrl": "https://my.ionos.com/",
    },
    "networksolutions": {
        "id": "networksolutions",
        "name": "Network Solutions",
        "supportsDelegation": False,
        "credentialsRequired": True,
        "loginUrl": "https://www.networksolutions.com/manage-it/index.jsp",
    },
    "googledomains": {
        "id": "googledomains",
        "name": "Google Domains (Squarespace)",
        "supportsDelegation": True,
        "delegationInstructions": (
            "Google Domains was transferred to Squarespace. Go to Squarespace > Settings > Permissions "
            f"and add {DELEGATE_EMAIL} as a delegate."
        ),
        "credentialsRequired": False,
        "loginUrl": "https://domains.squarespace.com/",
    },
    "dynadot": {
        "id": "dynadot",
        "name": "Dynadot",
        "supportsDelegation": False,
        "credentialsRequired": True,
        "loginUrl": "https://www.dynadot.com/account/signin.html",
    },
    "porkbun": {
        "id": "porkbun",
        "name": "Porkbun",
        "supportsDelegation": False,
        "credentialsRequired": True,
        "loginUrl": "https://porkbun.com/account/login",
    },
}

_NAMESERVER_PATTERNS: list[tuple[str, str]] = [
    (r"domaincontrol\.com$", "godaddy"),
    (r"cloudflare\.com$", "cloudflare"),
    (r"registrar-servers\.com$", "namecheap"),
    (r"squarespace\.com$", "squarespace"),
    (r"wixdns\.net$", "wix"),
    (r"bluehost\.com$", "bluehost"),
    (r"hostgator\.com$", "hostgator"),
    (r"hover\.com$", "hover"),
    (r"netlify\.com$", "netlify"),
    (r"vercel-dns\.com$", "vercel"),
    (r"ui-dns\.(com|org|biz)$", "ionos"),
    (r"worldnic\.com$", "networksolutions"),
    (r"googledomains\.com$", "googledomains"),
    (r"dynadot\.com$", "dynadot"),
    (r"porkbun\.com$", "porkbun"),
]

# Order matters: "google" is broad, keep it after the specific names.
_NAME_PATTERNS: list[tuple[str, str]] = [
    (r"godaddy|go\s+daddy", "godaddy"),
    (r"cloudflare", "cloudflare"),
    (r"namecheap", "namecheap"),
    (r"squarespace", "squarespace"),
    (r"\bwix\b", "wix"),
    (r"bluehost", "bluehost"),
    (r"hostgator", "hostgator"),
    (r"\bhover\b", "hover"),
    (r"netlify", "netlify"),
    (r"vercel", "vercel"),
    (r"ionos|1&1", "ionos"),
    (r"network\s+solutions", "networksolutions"),
    (r"dynadot", "dynadot"),
    (r"porkbun", "porkbun"),
    (r"google", "googledomains"),
]


def get_registrar(registrar_id: str | None) -> dict[str, Any] | None:
    if not registrar_id:
        return None
    return KNOWN_REGISTRARS.get(str(registrar_id).strip().lower().replace(" ", ""))


def registrar_from_text(text: str | None) -> str | None:
    lowered = (text or "").lower()
    if not lowered:
        return None
    for pattern, registrar_id in _NAME_PATTERNS:
        if re.search(pattern, lowered):
            return registrar_id
    return None


def detect_registrar(registrar_name: str | None = None, nameservers: Iterable[str] = ()) -> dict[str, Any] | None:
    """Match a WHOIS registrar name first, then fall back to nameserver suffixes."""
    by_name = registrar_from_text(registrar_name)
    if by_name:
        return KNOWN_REGISTRARS[by_name]

    for ns in nameservers or ():
        host = str(ns or "").strip().lower().rstrip(".")
        for pattern, registrar_id in _NAMESERVER_PATTERNS:
            if re.search(pattern, host):
                return KNOWN_REGISTRARS[registrar_id]
    return None


def access_method_for(registrar_id: str | None) -> str | None:
    registrar = get_registrar(registrar_id)
    if registrar is None:
        return None
    return "delegation" if registrar["supportsDelegation"] else "credentials"
