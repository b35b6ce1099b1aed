#
# Docker registry API for python - because the internet failed me!
#
# (C) 2024, Nicolai Langfeldt, Schibsted Products and Technology
#
#
# Docker registry API:
# https://docs.docker.com/registry/spec/api/
#

import sys
import requests
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

# The list of mime types was hard to get. I found it in a stackexchange
# posting where the author had found it by proxying the docker requests
# and looking at the headers.
MANIFEST_ACCEPT = ",".join([
    "application/vnd.docker.distribution.manifest.v2+json",
    "application/vnd.docker.distribution.manifest.list.v2+json",
    "application/vnd.oci.image.index.v1+json",
    "application/vnd.docker.distribution.manifest.v1+prettyjws",
    "application/json",
    "application/vnd.oci.image.manifest.v1+json",
])


class RegistryError(Exception):
    """A registry request that came back with a non 2xx status."""

    def __init__(self, status_code, url, message=""):
        self.status_code = status_code
        self.url = url
        self.message = message
        super().__init__("Error: %s getting %s%s" %
                         (status_code, url, ": %s" % message if message else ""))

    @property
    def is_auth_error(self):
        """True for unauthenticated (401) and permission denied (403)"""
        return self.status_code in (401, 403)


@dataclass
class Layer:
    digest: str
    size: int
    media_type: str = ""


@dataclass
class Manifest:
    media_type: str
    digest: str = ""
    layers: List[Layer] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data, digest=""):
        layers = [Layer(digest=l.get("digest", ""),
                        size=int(l.get("size") or 0),
                        media_type=l.get("mediaType", ""))
                  for l in data.get("layers") or []]
        return cls(media_type=data.get("mediaType", ""), digest=digest, layers=layers)


def registry_url(url):
    """A plain host name is taken to mean https."""

    if "://" not in url:
        url = "https://%s" % url

    return url.rstrip("/")


def _get_link(headers):
    """Get URL from the Link header if rel is "next" and return it.
    Return none if no next link is found."""

    if 'Link' not in headers:
        return None

    links = headers['Link'].split(',')
    for link in links:
        if 'rel="next"' in link:
            return link.split('<')[1].split('>')[0]

    return None


def _error_message(r):
    """Dig the error text out of a registry error response.  The
    registry sends {"errors": [{"code": ..., "message": ...}]} but
    proxies in front of it send whatever they like."""

    try:
        errors = r.json().get("errors") or []
        if errors:
            return "; ".join("%s: %s" % (e.get("code", ""), e.get("message", ""))
                             for e in errors)
    except (ValueError, AttributeError):
        pass

    return (r.text or r.reason or "").rstrip()


class Registry:
    """Class to handle the docker registry API.

    Example:

       from Registry import Registry

       reg = Registry("http://localhost:5000")
       reg.check_api()

       for repo_name in reg.get_repositories():
           print("Repo: %s" % repo_name)

           _, tags = reg.get_tags(repo_name)

           for tag in tags:
               manifest = reg.get_manifest(repo_name, tag)
               print("  Tag: %s (%d layers)" % (tag, len(manifest.layers)))

    Every method does exactly one round trip to the registry (plus one
    per page for the paginated listings).  Nothing is retried and any
    non 2xx answer is raised as RegistryError.  Connection problems
    come out as the requests exceptions they are.
    """

    def __init__(self, url, headers=None):
        """Initialize the registry object with the registry URL.  A
        plain host name is taken to mean https.

        headers is the request decoration to put on every request,
        typically the Authorization header picked by dockerauth.

        The registry object has a debug flag which you can set
        directly to get the requests traced on stderr.
        """

        self.url = registry_url(url)
        self.debug = False

        self.session = requests.Session()
        if headers:
            self.session.headers.update(headers)


    def _request(self, method, url, **kwargs):
        r = self.session.request(method, url, **kwargs)

        if self.debug:
            print("-- %s %s: %s" % (method, url, r.status_code), file=sys.stderr)

        if not 200 <= r.status_code < 300:
            raise RegistryError(r.status_code, url, _error_message(r))

        return r


    def _json_get(self, path, tl_key):
        """Get path and return the result as a list, supporting
        pagination.

        tl_key is the top level key in the json document, this is
        needed to easily know what to extend as the pages are
        retrieved.  A null list in a page counts as an empty one.

        Returning a itterable instead would keep the network
        connection open for a longer time placing unneeded load on
        the server.  So no.
        """

        r = self._request("GET", "%s%s" % (self.url, path))

        all_data = []

        while l := _get_link(r.headers):
            all_data.extend(r.json().get(tl_key) or [])
            if "://" not in l:
                l = "%s/%s" % (self.url, l.lstrip("/"))
            r = self._request("GET", l)

        data = r.json()
        all_data.extend(data.get(tl_key) or [])

        return data, all_data


    def check_api(self):
        """Check that the registry is there and speaks version 2."""

        self._request("GET", "%s/v2/" % self.url)


    def get_repositories(self) -> List[str]:
        """Returns a list of repositories in the registry."""

        _, repositories = self._json_get("/v2/_catalog", "repositories")
        return repositories


    def get_tags(self, repo) -> Tuple[str, List[str]]:
        """Get all tags for a repo.  Returns the repository name as
        the registry reports it and the list of tags."""

        data, tags = self._json_get("/v2/%s/tags/list" % repo, "tags")
        return data.get("name", repo), tags


    def get_manifest(self, repo, reference) -> Manifest:
        """Get the manifest for a tag or digest.

        Manifest lists and OCI indexes have no layers of their own, so
        they come back with an empty layer list.
        """

        r = self._request("GET", "%s/v2/%s/manifests/%s" % (self.url, repo, reference),
                          headers={"Accept": MANIFEST_ACCEPT})

        return Manifest.from_dict(r.json(), r.headers.get("Docker-Content-Digest", ""))


    def get_digest(self, repo, reference) -> str:
        """Resolve a tag (or digest) to the content digest of the
        manifest.  The digest is what delete_image needs."""

        url = "%s/v2/%s/manifests/%s" % (self.url, repo, reference)
        r = self._request("HEAD", url, headers={"Accept": MANIFEST_ACCEPT})

        digest: Optional[str] = r.headers.get("Docker-Content-Digest")
        if not digest:
            raise RegistryError(r.status_code, url, "no Docker-Content-Digest in response")

        return digest


    ## Delete functions

    def delete_image(self, repo, reference):
        """Delete the manifest for a given digest in a repo.  The API
        does not support deleting by repository:tag only by
        repository:digest, use get_digest first.
        """

        self._request("DELETE", "%s/v2/%s/manifests/%s" % (self.url, repo, reference))
