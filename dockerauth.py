#
# (C) 2024, Nicolai Langfeldt, Schibsted Products and Technology
#
# Pick registry credentials out of the docker CLI config file.
#

import os
import json
import socket
import ipaddress
from urllib.parse import urlsplit

"""The docker CLI keeps its logins in ~/.docker/config.json:

   { "auths": { "localhost:5000": { "auth": "<base64 user:password>" } } }

Usage:
   import dockerauth

   store = dockerauth.load_docker_config("~/.docker/config.json")
   headers = dockerauth.select_auth_header(store, "http://localhost:5000")

Both functions are intentionally lossy: a missing or broken config
file, a URL that won't parse or a host that won't resolve all just
mean that no credentials are sent.
"""

DEFAULT_DOCKER_CONFIG = "~/.docker/config.json"


def load_docker_config(path=DEFAULT_DOCKER_CONFIG):
    """Load the auths section of the docker config file into a
    dict of host -> auth token.  Returns an empty dict if the file is
    missing, unreadable or not the shape we expect."""

    try:
        with open(os.path.expanduser(path), "r") as f:
            config = json.loads(f.read())

    except (OSError, json.decoder.JSONDecodeError, UnicodeDecodeError):
        return {}

    if not isinstance(config, dict):
        return {}

    auths = config.get("auths")
    if not isinstance(auths, dict):
        return {}

    store = {}
    for host, entry in auths.items():
        if isinstance(entry, dict) and isinstance(entry.get("auth"), str):
            store[host] = entry["auth"]

    return store


def _all_loopback(host):
    """True if every address host resolves to is a loopback address.
    A host that doesn't resolve is not loopback."""

    try:
        infos = socket.getaddrinfo(host, None)
    except (OSError, UnicodeError):
        return False

    if not infos:
        return False

    for info in infos:
        # Strip any IPv6 scope id, ip_address won't take it
        addr = ipaddress.ip_address(info[4][0].split("%")[0])
        if isinstance(addr, ipaddress.IPv6Address) and addr.ipv4_mapped:
            addr = addr.ipv4_mapped
        if not addr.is_loopback:
            return False

    return True


def select_auth_header(store, url):
    """Return the headers to decorate registry requests with, or None.

    Credentials are never sent over plain http unless the registry
    host resolves to loopback addresses only.  A host with both a
    loopback and a public address does not qualify.
    """

    try:
        u = urlsplit(url)
        hostname = u.hostname
    except ValueError:
        return None

    if not hostname:
        return None

    if u.scheme == "http" and not _all_loopback(hostname):
        return None

    # Keyed by host[:port], without any user@ part
    token = store.get(u.netloc.rpartition("@")[2])
    if token is None:
        return None

    return {"Authorization": "Basic " + token}
