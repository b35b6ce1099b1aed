"""Tests for the registry client."""

from unittest import mock

import pytest
import requests

from Registry import MANIFEST_ACCEPT, Manifest, Registry, RegistryError, registry_url


def _response(status=200, json=None, headers=None, text="", reason="OK"):
    r = mock.Mock()
    r.status_code = status
    r.headers = headers or {}
    r.text = text
    r.reason = reason
    if json is None:
        r.json.side_effect = ValueError("no json")
    else:
        r.json.return_value = json
    return r


def _registry(*responses, url="http://localhost:5000"):
    reg = Registry(url)
    reg.session = mock.Mock()
    reg.session.request.side_effect = list(responses)
    return reg


def test_plain_host_means_https():
    assert Registry("registry.example.com").url == "https://registry.example.com"
    assert Registry("http://localhost:5000/").url == "http://localhost:5000"


def test_headers_go_on_the_session():
    reg = Registry("https://registry.example.com", headers={"Authorization": "Basic abc"})
    assert reg.session.headers["Authorization"] == "Basic abc"


def test_check_api():
    reg = _registry(_response(json={}))
    reg.check_api()
    reg.session.request.assert_called_once_with("GET", "http://localhost:5000/v2/")


def test_check_api_unauthorized():
    reg = _registry(_response(
        status=401,
        json={"errors": [{"code": "UNAUTHORIZED", "message": "authentication required"}]}))

    with pytest.raises(RegistryError) as exc:
        reg.check_api()

    assert exc.value.status_code == 401
    assert exc.value.is_auth_error
    assert "UNAUTHORIZED: authentication required" in str(exc.value)


def test_error_without_json_body():
    reg = _registry(_response(status=502, text="Bad Gateway\n", reason="Bad Gateway"))

    with pytest.raises(RegistryError) as exc:
        reg.check_api()

    assert not exc.value.is_auth_error
    assert exc.value.message == "Bad Gateway"


def test_connection_error_propagates():
    reg = Registry("http://localhost:5000")
    reg.session = mock.Mock()
    reg.session.request.side_effect = requests.exceptions.ConnectionError("refused")

    with pytest.raises(requests.exceptions.ConnectionError):
        reg.get_repositories()


def test_get_repositories_follows_pagination():
    reg = _registry(
        _response(json={"repositories": ["a", "b"]},
                  headers={"Link": '</v2/_catalog?last=b&n=2>; rel="next"'}),
        _response(json={"repositories": ["c"]}),
    )

    assert reg.get_repositories() == ["a", "b", "c"]

    urls = [c.args[1] for c in reg.session.request.call_args_list]
    assert urls == ["http://localhost:5000/v2/_catalog",
                    "http://localhost:5000/v2/_catalog?last=b&n=2"]


def test_get_tags():
    reg = _registry(_response(json={"name": "myapp", "tags": ["v2", "v1"]}))

    assert reg.get_tags("myapp") == ("myapp", ["v2", "v1"])
    reg.session.request.assert_called_once_with("GET", "http://localhost:5000/v2/myapp/tags/list")


def test_get_tags_null_is_empty():
    reg = _registry(_response(json={"name": "myapp", "tags": None}))

    assert reg.get_tags("myapp") == ("myapp", [])


def test_get_tags_unknown_repository():
    reg = _registry(_response(
        status=404,
        json={"errors": [{"code": "NAME_UNKNOWN", "message": "repository name not known to registry"}]}))

    with pytest.raises(RegistryError) as exc:
        reg.get_tags("nope")

    assert exc.value.status_code == 404


def test_get_manifest():
    reg = _registry(_response(
        json={
            "schemaVersion": 2,
            "mediaType": "application/vnd.docker.distribution.manifest.v2+json",
            "layers": [
                {"mediaType": "application/vnd.docker.image.rootfs.diff.tar.gzip",
                 "size": 10, "digest": "sha256:aaa"},
                {"mediaType": "application/vnd.docker.image.rootfs.diff.tar.gzip",
                 "size": 20, "digest": "sha256:bbb"},
            ],
        },
        headers={"Docker-Content-Digest": "sha256:mmm"}))

    manifest = reg.get_manifest("myapp", "v1")

    assert manifest.digest == "sha256:mmm"
    assert [l.size for l in manifest.layers] == [10, 20]
    assert manifest.layers[1].digest == "sha256:bbb"
    reg.session.request.assert_called_once_with(
        "GET", "http://localhost:5000/v2/myapp/manifests/v1",
        headers={"Accept": MANIFEST_ACCEPT})


def test_manifest_list_has_no_layers():
    manifest = Manifest.from_dict({
        "mediaType": "application/vnd.oci.image.index.v1+json",
        "manifests": [{"digest": "sha256:aaa", "size": 500}],
    })

    assert manifest.layers == []


def test_get_digest():
    reg = _registry(_response(headers={"Docker-Content-Digest": "sha256:abc"}))

    assert reg.get_digest("myapp", "latest") == "sha256:abc"
    reg.session.request.assert_called_once_with(
        "HEAD", "http://localhost:5000/v2/myapp/manifests/latest",
        headers={"Accept": MANIFEST_ACCEPT})


def test_get_digest_without_header():
    reg = _registry(_response())

    with pytest.raises(RegistryError):
        reg.get_digest("myapp", "latest")


def test_get_digest_not_found():
    reg = _registry(_response(status=404, reason="Not Found"))

    with pytest.raises(RegistryError) as exc:
        reg.get_digest("myapp", "gone")

    assert exc.value.message == "Not Found"


def test_delete_image():
    reg = _registry(_response(status=202))

    reg.delete_image("myapp", "sha256:abc")
    reg.session.request.assert_called_once_with(
        "DELETE", "http://localhost:5000/v2/myapp/manifests/sha256:abc")


def test_delete_image_unsupported():
    reg = _registry(_response(
        status=405,
        json={"errors": [{"code": "UNSUPPORTED", "message": "The operation is unsupported."}]}))

    with pytest.raises(RegistryError) as exc:
        reg.delete_image("myapp", "sha256:abc")

    assert exc.value.status_code == 405


def test_debug_traces_requests(capsys):
    reg = _registry(_response(json={}))
    reg.debug = True

    reg.check_api()

    assert "-- GET http://localhost:5000/v2/: 200" in capsys.readouterr().err


def test_layer_with_null_size_counts_as_zero():
    manifest = Manifest.from_dict({
        "mediaType": "application/vnd.oci.image.manifest.v1+json",
        "layers": [{"digest": "sha256:aaa", "size": None}, {"digest": "sha256:bbb", "size": 7}],
    })

    assert [l.size for l in manifest.layers] == [0, 7]


def test_registry_url():
    assert registry_url("registry.example.com") == "https://registry.example.com"
    assert registry_url("http://localhost:5000/") == "http://localhost:5000"
