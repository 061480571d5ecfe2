"""Fetching plugin binaries from OCI registries, with optional signature checks."""

from __future__ import annotations

import base64
import binascii
import hashlib
import io
import json
import logging
import os
import platform
import re
import tarfile
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import requests

log = logging.getLogger(__name__)

REQUEST_TIMEOUT = 60

IMAGE_MANIFEST_MEDIA_TYPE = "application/vnd.oci.image.manifest.v1+json"
IMAGE_INDEX_MEDIA_TYPE = "application/vnd.oci.image.index.v1+json"
DOCKER_MANIFEST_MEDIA_TYPE = "application/vnd.docker.distribution.manifest.v2+json"
DOCKER_MANIFEST_LIST_MEDIA_TYPE = "application/vnd.docker.distribution.manifest.list.v2+json"
IMAGE_DOCKER_LAYER_GZIP_MEDIA_TYPE = "application/vnd.docker.image.rootfs.diff.tar.gzip"
IMAGE_LAYER_GZIP_MEDIA_TYPE = "application/vnd.oci.image.layer.v1.tar+gzip"
SIMPLE_SIGNING_MEDIA_TYPE = "application/vnd.dev.cosign.simplesigning.v1+json"
SIGNATURE_ANNOTATION = "dev.cosignproject.cosign/signature"

ACCEPTED_LAYER_TYPES = (
    IMAGE_MANIFEST_MEDIA_TYPE,
    IMAGE_DOCKER_LAYER_GZIP_MEDIA_TYPE,
    IMAGE_LAYER_GZIP_MEDIA_TYPE,
)
_MANIFEST_ACCEPT = (
    IMAGE_MANIFEST_MEDIA_TYPE,
    DOCKER_MANIFEST_MEDIA_TYPE,
    IMAGE_INDEX_MEDIA_TYPE,
    DOCKER_MANIFEST_LIST_MEDIA_TYPE,
)
_INDEX_TYPES = (IMAGE_INDEX_MEDIA_TYPE, DOCKER_MANIFEST_LIST_MEDIA_TYPE)

DOCKER_HUB = "docker.io"
DOCKER_HUB_RESOLVED = "index.docker.io"

_EMPTY = ""

_COMPONENT = r"[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*"
_REPOSITORY_RE = re.compile(rf"^{_COMPONENT}(?:/{_COMPONENT})*$")
_TAG_RE = re.compile(r"^\w[\w.-]{0,127}$")
_DIGEST_RE = re.compile(r"^[a-z0-9]+(?:[+._-][a-z0-9]+)*:[0-9a-fA-F]{32,}$")
_CHALLENGE_PARAM_RE = re.compile(r'(\w+)="([^"]*)"')
_ARCHITECTURES = {"x86_64": "amd64", "amd64": "amd64", "aarch64": "arm64", "arm64": "arm64"}


class OciError(Exception):
    """Raised when an image cannot be resolved, pulled or verified."""


@dataclass(frozen=True)
class Reference:
    """A parsed image reference: registry, repository and tag or digest."""

    registry: str
    repository: str
    tag: str | None = None
    digest: str | None = None

    @classmethod
    def parse(cls, image_reference: str) -> Reference:
        if not image_reference:
            raise OciError("invalid reference format: empty reference")
        name, digest = image_reference, None
        if "@" in name:
            name, digest = name.split("@", 1)
            if not _DIGEST_RE.match(digest):
                raise OciError(f"invalid digest in reference: {image_reference}")

        tag = None
        colon, slash = name.rfind(":"), name.rfind("/")
        if colon > slash:
            name, tag = name[:colon], name[colon + 1:]
            if not _TAG_RE.match(tag):
                raise OciError(f"invalid tag in reference: {image_reference}")

        first, sep, rest = name.partition("/")
        if sep and ("." in first or ":" in first or first == "localhost"):
            registry, repository = first, rest
        else:
            registry, repository = DOCKER_HUB, name
        if registry in (DOCKER_HUB, DOCKER_HUB_RESOLVED) and "/" not in repository:
            repository = f"library/{repository}"

        if not repository or len(repository) > 255 or not _REPOSITORY_RE.match(repository):
            raise OciError(f"invalid repository name in reference: {image_reference}")
        if tag is None and digest is None:
            tag = "latest"
        return cls(registry=registry, repository=repository, tag=tag, digest=digest)

    def resolve_registry(self) -> str:
        """The host actually contacted for this registry."""
        if self.registry in ("", DOCKER_HUB):
            return DOCKER_HUB_RESOLVED
        return self.registry

    @property
    def target(self) -> str:
        """The tag or digest used to address the manifest."""
        return self.digest or self.tag or "latest"

    def __str__(self) -> str:
        text = f"{self.registry}/{self.repository}"
        if self.tag is not None:
            text += f":{self.tag}"
        if self.digest is not None:
            text += f"@{self.digest}"
        return text


@dataclass(frozen=True)
class RegistryAuth:
    """Credentials for a registry; anonymous when no username is set."""

    username: str | None = None
    password: str | None = None

    @property
    def anonymous(self) -> bool:
        return self.username is None

    @property
    def basic_auth(self) -> tuple[str, str] | None:
        """The pair handed to HTTP basic auth, or None when anonymous."""
        if self.username is None:
            return None
        return self.username, self.password or _EMPTY


class _CredentialError(Exception):
    pass


def _docker_config_file(path: str | Path | None) -> Path:
    if path is not None:
        return Path(path)
    directory = os.environ.get("DOCKER_CONFIG")
    base = Path(directory) if directory else Path.home() / ".docker"
    return base / "config.json"


def _credential_keys(server: str) -> list[str]:
    keys = [server, f"https://{server}", f"http://{server}"]
    if server in (DOCKER_HUB, DOCKER_HUB_RESOLVED):
        keys.append("https://index.docker.io/v1/")
    return keys


def _lookup_credential(server: str, config_file: Path) -> tuple[str, ...] | None:
    if not config_file.exists():
        return None
    try:
        data = json.loads(config_file.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise _CredentialError(f"cannot read {config_file}: {exc}") from exc
    if not isinstance(data, dict):
        raise _CredentialError(f"{config_file} is not a JSON object")

    auths = data.get("auths") or {}
    for key in _credential_keys(server):
        entry = auths.get(key) if isinstance(auths, dict) else None
        if not isinstance(entry, dict):
            continue
        if entry.get("identitytoken"):
            return ("identity",)
        encoded = entry.get("auth")
        if encoded:
            try:
                decoded = base64.b64decode(encoded).decode("utf-8")
            except (binascii.Error, UnicodeDecodeError) as exc:
                raise _CredentialError(f"invalid auth entry for {key}") from exc
            username, sep, remainder = decoded.partition(":")
            if not sep:
                raise _CredentialError(f"invalid auth entry for {key}")
            return ("basic", username, remainder)

    helpers = data.get("credHelpers") or {}
    helper = (helpers.get(server) if isinstance(helpers, dict) else None) or data.get("credsStore")
    if helper:
        raise _CredentialError(f"credential helper `{helper}` is not supported")
    return None


def build_auth(reference: Reference, docker_config_path: str | Path | None = None) -> RegistryAuth:
    """Look up registry credentials in the docker configuration file."""
    server = reference.resolve_registry().removesuffix("/")
    try:
        credential = _lookup_credential(server, _docker_config_file(docker_config_path))
    except _CredentialError as exc:
        log.info("Error retrieving docker credentials: %s. Using anonymous auth", exc)
        return RegistryAuth()
    if credential is None:
        return RegistryAuth()
    if credential[0] == "identity":
        log.info(
            "Cannot use contents of docker config, identity token not supported. "
            "Using anonymous auth"
        )
        return RegistryAuth()
    log.info("Found docker credentials")
    return RegistryAuth(username=credential[1], password=credential[2])


class _Registry:
    """The few distribution API calls needed to pull one repository."""

    def __init__(self, reference: Reference, auth: RegistryAuth, session: requests.Session) -> None:
        self.reference = reference
        self.auth = auth
        self.session = session
        self.base = f"https://{reference.resolve_registry()}/v2/{reference.repository}"
        self._bearer: str | None = None
        self._use_basic = False

    def _send(self, url: str, headers: dict[str, str]) -> requests.Response:
        headers = dict(headers)
        basic = None
        if self._bearer is not None:
            headers["Authorization"] = f"Bearer {self._bearer}"
        elif self._use_basic:
            basic = self.auth.basic_auth
        try:
            return self.session.get(url, headers=headers, auth=basic, timeout=REQUEST_TIMEOUT)
        except requests.RequestException as exc:
            raise OciError(f"request to {url} failed: {exc}") from exc

    def _authenticate(self, challenge: str) -> None:
        scheme = challenge.split(" ", 1)[0].lower()
        params = dict(_CHALLENGE_PARAM_RE.findall(challenge))
        if scheme == "basic" and not self.auth.anonymous:
            self._use_basic = True
            return
        if scheme != "bearer" or "realm" not in params:
            raise OciError("registry requires authentication")
        query = {"scope": params.get("scope", f"repository:{self.reference.repository}:pull")}
        if "service" in params:
            query["service"] = params["service"]
        try:
            response = self.session.get(
                params["realm"], params=query, auth=self.auth.basic_auth, timeout=REQUEST_TIMEOUT
            )
        except requests.RequestException as exc:
            raise OciError(f"token request failed: {exc}") from exc
        if response.status_code != 200:
            raise OciError(f"token request failed with status {response.status_code}")
        try:
            body = response.json()
        except ValueError as exc:
            raise OciError("token response is not JSON") from exc
        issued = body.get("token") or body.get("access_token") if isinstance(body, dict) else None
        if not isinstance(issued, str):
            raise OciError("token response holds no token")
        self._bearer = issued

    def _get(self, url: str, accept: tuple[str, ...] = ()) -> requests.Response:
        headers = {"Accept": ", ".join(accept)} if accept else {}
        response = self._send(url, headers)
        if response.status_code == 401:
            self._authenticate(response.headers.get("WWW-Authenticate", ""))
            response = self._send(url, headers)
        if response.status_code != 200:
            raise OciError(f"request to {url} failed with status {response.status_code}")
        return response

    def fetch_manifest(self, target: str) -> tuple[dict[str, Any], str]:
        """Return a manifest as stored, with its digest."""
        response = self._get(f"{self.base}/manifests/{target}", _MANIFEST_ACCEPT)
        try:
            manifest = json.loads(response.content)
        except ValueError as exc:
            raise OciError(f"manifest {target} is not valid JSON") from exc
        if not isinstance(manifest, dict):
            raise OciError(f"manifest {target} is not a JSON object")
        digest = response.headers.get("Docker-Content-Digest")
        if not digest:
            digest = "sha256:" + hashlib.sha256(response.content).hexdigest()
        return manifest, digest

    def image_manifest(self) -> dict[str, Any]:
        """Return the image manifest, resolving an index to this platform."""
        manifest, _ = self.fetch_manifest(self.reference.target)
        if manifest.get("mediaType") in _INDEX_TYPES:
            manifest, _ = self.fetch_manifest(_select_platform(manifest))
        return manifest

    def blob(self, digest: str) -> bytes:
        content = self._get(f"{self.base}/blobs/{digest}").content
        algorithm, _, expected = digest.partition(":")
        if algorithm == "sha256" and hashlib.sha256(content).hexdigest() != expected.lower():
            raise OciError(f"digest mismatch for blob {digest}")
        return content


def _select_platform(index: dict[str, Any]) -> str:
    machine = platform.machine().lower()
    arch = _ARCHITECTURES.get(machine, machine)
    for entry in index.get("manifests") or []:
        plat = entry.get("platform") or {} if isinstance(entry, dict) else {}
        if plat.get("os") == "linux" and plat.get("architecture") == arch and "digest" in entry:
            return entry["digest"]
    raise OciError("no manifest in the image index matches this platform")


def _layers(manifest: dict[str, Any]) -> list[dict[str, Any]]:
    layers = manifest.get("layers")
    if not isinstance(layers, list) or not all(
        isinstance(layer, dict) and isinstance(layer.get("digest"), str) for layer in layers
    ):
        raise OciError("manifest has no valid `layers` list")
    return layers


@contextmanager
def _session_scope(session: requests.Session | None) -> Iterator[requests.Session]:
    if session is not None:
        yield session
        return
    with requests.Session() as own:
        yield own


def _signature_matches(payload: bytes, source_digest: str) -> bool:
    try:
        document = json.loads(payload)
        digest = document["critical"]["image"]["docker-manifest-digest"]
    except (ValueError, KeyError, TypeError):
        return False
    return digest == source_digest


def verify_image_signature(
    image_reference: str, session: requests.Session | None = None
) -> bool:
    """Check that the image has a cosign signature for its manifest digest."""
    log.info("Verifying signature for %s", image_reference)
    try:
        reference = Reference.parse(image_reference)
    except OciError as exc:
        raise OciError(f"Invalid image reference: {exc}") from exc

    with _session_scope(session) as active:
        registry = _Registry(reference, RegistryAuth(), active)
        try:
            source_digest = reference.digest or registry.fetch_manifest(reference.target)[1]
            signature_tag = source_digest.replace(":", "-") + ".sig"
        except OciError as exc:
            log.warning("Failed to triangulate image: %s", exc)
            return False

        try:
            signature_manifest, _ = registry.fetch_manifest(signature_tag)
            trusted = [
                layer
                for layer in _layers(signature_manifest)
                if layer.get("mediaType") == SIMPLE_SIGNING_MEDIA_TYPE
                and SIGNATURE_ANNOTATION in (layer.get("annotations") or {})
                and _signature_matches(registry.blob(layer["digest"]), source_digest)
            ]
        except OciError as exc:
            log.warning("Failed to get trusted signature layers: %s", exc)
            return False

    if not trusted:
        log.warning("No valid signatures found for %s", image_reference)
        return False
    log.info("Signature verification successful for %s", image_reference)
    return True


def extract_from_layer(
    blob: bytes, target_file_path: str, local_output_path: str | Path
) -> bool:
    """Write the plugin file found in a gzipped tar layer; False if it holds none."""
    try:
        archive = tarfile.open(fileobj=io.BytesIO(blob), mode="r:gz")
    except (tarfile.TarError, OSError, EOFError) as exc:
        raise OciError(f"invalid layer archive: {exc}") from exc

    output = Path(local_output_path)
    with archive:
        while True:
            try:
                member = archive.next()
            except (tarfile.TarError, OSError, EOFError) as exc:
                log.info("Error during extraction: %s", exc)
                break
            if member is None:
                break
            name = member.name
            if not member.isfile() or not (
                name.endswith(target_file_path) or name.endswith("plugin.wasm")
            ):
                continue
            source = archive.extractfile(member)
            if source is None:
                continue
            output.parent.mkdir(parents=True, exist_ok=True)
            output.write_bytes(source.read())
            log.info("Successfully extracted to: %s", output)
            return True
    return False


def pull_and_extract_oci_image(
    image_reference: str,
    target_file_path: str,
    local_output_path: str | Path,
    verify_signature: bool,
) -> None:
    """Pull an image and save its plugin file, unless it is already cached."""
    output = Path(local_output_path)
    if output.exists():
        log.info(
            "Plugin %s already cached at: %s. Skipping downloading.", image_reference, output
        )
        return

    log.info("Pulling %s ...", image_reference)
    reference = Reference.parse(image_reference)
    auth = build_auth(reference)

    with requests.Session() as session:
        if verify_signature:
            log.info("Signature verification enabled for %s", image_reference)
            try:
                verified = verify_image_signature(image_reference, session)
            except OciError as exc:
                raise OciError(f"Image signature verification failed: {exc}") from exc
            if not verified:
                raise OciError(f"No valid signatures found for the image {image_reference}")
        else:
            log.warning("Signature verification disabled for %s", image_reference)

        registry = _Registry(reference, auth, session)
        layers = _layers(registry.image_manifest())
        for layer in layers:
            media_type = layer.get("mediaType")
            if media_type not in ACCEPTED_LAYER_TYPES:
                raise OciError(f"Incompatible layer media type: {media_type}")

        for layer in layers:
            if extract_from_layer(registry.blob(layer["digest"]), target_file_path, output):
                return

    raise OciError("Target file not found in any layer")