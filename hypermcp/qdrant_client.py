"""Minimal client for the Qdrant vector database REST API."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

import requests

DEFAULT_URL = "http://localhost:6333"
REQUEST_TIMEOUT = 30

_INVALID = "[qdrant] Invalid response format"

PointId = str | int


class QdrantError(Exception):
    """Raised when a Qdrant request fails or returns an unexpected answer."""


def _point_id(value: Any) -> PointId:
    if isinstance(value, str):
        return value
    if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
        return value
    raise QdrantError(f"[qdrant] invalid point id: {value!r}")


def _vector(value: Any) -> list[float]:
    if not isinstance(value, list) or not all(
        isinstance(item, (int, float)) and not isinstance(item, bool) for item in value
    ):
        raise QdrantError("[qdrant] vector must be an array of numbers")
    return [float(item) for item in value]


def _payload(value: Any) -> dict[str, Any] | None:
    if value is None:
        return None
    if not isinstance(value, dict):
        raise QdrantError("[qdrant] payload must be a JSON object")
    return value


def _object(value: Any, what: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise QdrantError(f"[qdrant] {what} must be a JSON object")
    return value


def _required(data: dict[str, Any], key: str, what: str) -> Any:
    if key not in data:
        raise QdrantError(f"[qdrant] missing field `{key}` in {what}")
    return data[key]


def _get(value: Any, key: str) -> Any:
    """Look up ``key`` in a JSON object; anything else yields None."""
    return value.get(key) if isinstance(value, dict) else None


def _as_bool(value: Any) -> bool:
    if not isinstance(value, bool):
        raise QdrantError(_INVALID)
    return value


def _as_u64(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise QdrantError(_INVALID)
    return value


@dataclass
class Point:
    """A record made of a vector and an optional payload."""

    id: PointId
    vector: list[float]
    payload: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "vector": list(self.vector), "payload": self.payload}

    @classmethod
    def from_dict(cls, data: Any) -> Point:
        data = _object(data, "point")
        return cls(
            id=_point_id(_required(data, "id", "point")),
            vector=_vector(_required(data, "vector", "point")),
            payload=_payload(data.get("payload")),
        )


@dataclass
class ScoredPoint:
    """A point returned by a search, with its distance score to the query."""

    id: PointId
    score: float
    vector: list[float] | None = None
    payload: dict[str, Any] | None = None

    @classmethod
    def from_dict(cls, data: Any) -> ScoredPoint:
        data = _object(data, "scored point")
        score = _required(data, "score", "scored point")
        if isinstance(score, bool) or not isinstance(score, (int, float)):
            raise QdrantError("[qdrant] score must be a number")
        vector = data.get("vector")
        return cls(
            id=_point_id(_required(data, "id", "scored point")),
            score=float(score),
            vector=None if vector is None else _vector(vector),
            payload=_payload(data.get("payload")),
        )


class QdrantClient:
    """Talks to a Qdrant server over its REST API."""

    def __init__(self, url_base: str = DEFAULT_URL, api_key: str | None = None) -> None:
        self.url_base = url_base
        self.api_key = api_key

    # Shortcut functions

    def collection_info(self, collection_name: str) -> int:
        """Return the number of points in a collection."""
        info = self.collection_info_api(collection_name)
        return _as_u64(_get(_get(info, "result"), "points_count"))

    def create_collection(self, collection_name: str, size: int) -> None:
        if self.collection_exists(collection_name):
            raise QdrantError(f"Collection '{collection_name}' already exists")
        params = {"vectors": {"size": size, "distance": "Cosine", "on_disk": True}}
        if not self.create_collection_api(collection_name, params):
            raise QdrantError(f"Failed to create collection '{collection_name}'")

    def list_collections(self) -> list[str]:
        return self.list_collections_api()

    def collection_exists(self, collection_name: str) -> bool:
        return collection_name in self.list_collections()

    def delete_collection(self, collection_name: str) -> None:
        if not self.collection_exists(collection_name):
            raise QdrantError(f"Not found collection '{collection_name}'")
        if not self.delete_collection_api(collection_name):
            raise QdrantError(f"Failed to delete collection '{collection_name}'")

    def upsert_points(self, collection_name: str, points: list[Point]) -> None:
        self.upsert_points_api(collection_name, {"points": [p.to_dict() for p in points]})

    def search_points(
        self,
        collection_name: str,
        vector: list[float],
        limit: int,
        score_threshold: float | None = None,
    ) -> list[ScoredPoint]:
        """Search for the nearest points; request failures yield an empty list."""
        params = {
            "vector": list(vector),
            "limit": limit,
            "with_payload": True,
            "with_vector": True,
            "score_threshold": 0.0 if score_threshold is None else score_threshold,
        }
        try:
            response = self.search_points_api(collection_name, params)
        except QdrantError:
            return []
        if not isinstance(response, dict) or "result" not in response:
            return []
        result = response["result"]
        if not isinstance(result, list):
            raise QdrantError(
                "[qdrant] The value corresponding to the 'result' key is not an array."
            )
        return [ScoredPoint.from_dict(item) for item in result]

    def get_points(self, collection_name: str, ids: list[PointId]) -> list[Point]:
        params = {"ids": list(ids), "with_payload": True, "with_vector": True}
        result = _get(self.get_points_api(collection_name, params), "result")
        if not isinstance(result, list):
            raise QdrantError(_INVALID)
        return [Point.from_dict(item) for item in result]

    def get_point(self, collection_name: str, point_id: PointId) -> Point:
        response = self.get_point_api(collection_name, point_id)
        if not isinstance(response, dict) or "result" not in response:
            raise QdrantError(_INVALID)
        return Point.from_dict(response["result"])

    def delete_points(self, collection_name: str, ids: list[PointId]) -> None:
        self.delete_points_api(collection_name, {"points": list(ids)})

    # REST API functions

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key is not None:
            headers["api-key"] = self.api_key
        return headers

    def _send(self, method: str, url: str, params: Any = None) -> requests.Response:
        body = None
        if params is not None:
            body = json.dumps(params, separators=(",", ":")).encode("utf-8")
        try:
            return requests.request(
                method, url, headers=self._headers(), data=body, timeout=REQUEST_TIMEOUT
            )
        except requests.RequestException as exc:
            raise QdrantError(f"[qdrant] request to {url} failed: {exc}") from exc

    def _request(self, method: str, url: str, params: Any = None) -> Any:
        response = self._send(method, url, params)
        try:
            return json.loads(response.content)
        except ValueError as exc:
            raise QdrantError(f"[qdrant] invalid JSON in response from {url}: {exc}") from exc

    def _collection_url(self, collection_name: str) -> str:
        return f"{self.url_base}/collections/{collection_name}"

    def collection_info_api(self, collection_name: str) -> Any:
        return self._request("GET", self._collection_url(collection_name))

    def create_collection_api(self, collection_name: str, params: Any) -> bool:
        response = self._request("PUT", self._collection_url(collection_name), params)
        return _as_bool(_get(response, "result"))

    def list_collections_api(self) -> list[str]:
        response = self._request("GET", f"{self.url_base}/collections")
        if not isinstance(response, dict) or "result" not in response:
            raise QdrantError("[qdrant] The given key 'result' does not exist.")
        result = response["result"]
        if not isinstance(result, dict) or "collections" not in result:
            raise QdrantError("[qdrant] The given key 'collections' does not exist.")
        collections = result["collections"]
        if not isinstance(collections, list):
            raise QdrantError(
                "[qdrant] The value corresponding to the 'collections' key is not an array."
            )
        return [
            name
            for name in (_get(collection, "name") for collection in collections)
            if isinstance(name, str)
        ]

    def collection_exists_api(self, collection_name: str) -> bool:
        response = self._request("GET", f"{self._collection_url(collection_name)}/exists")
        if not isinstance(response, dict) or "result" not in response:
            raise QdrantError("[qdrant] Failed to check collection existence")
        return _as_bool(_get(response["result"], "exists"))

    def delete_collection_api(self, collection_name: str) -> bool:
        response = self._request("DELETE", self._collection_url(collection_name))
        return _as_bool(_get(response, "result"))

    def upsert_points_api(self, collection_name: str, params: Any) -> None:
        url = f"{self._collection_url(collection_name)}/points?wait=true"
        status = _get(self._request("PUT", url, params), "status")
        if not isinstance(status, str):
            raise QdrantError(_INVALID)
        if status != "ok":
            raise QdrantError(f"[qdrant] Failed to upsert points. Status = {status}")

    def search_points_api(self, collection_name: str, params: Any) -> Any:
        url = f"{self._collection_url(collection_name)}/points/search"
        return self._request("POST", url, params)

    def get_points_api(self, collection_name: str, params: Any) -> Any:
        return self._request("POST", f"{self._collection_url(collection_name)}/points", params)

    def get_point_api(self, collection_name: str, point_id: PointId) -> Any:
        url = f"{self._collection_url(collection_name)}/points/{point_id}"
        return self._request("GET", url)

    def delete_points_api(self, collection_name: str, params: Any) -> None:
        url = f"{self._collection_url(collection_name)}/points/delete?wait=true"
        self._send("POST", url, params)