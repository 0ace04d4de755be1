# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.
from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Tuple

import requests
from ad_test_harness.constants import SECURITY_INDEX
from ad_test_harness.helper_time import parse_timestamp, to_epoch_millis
from ad_test_harness.opensearch_exceptions import OpenSearchHttpError


def make_response(
    status_code: int = 200, body: Any = None, headers: Optional[Dict[str, str]] = None
) -> requests.Response:
    """Build a real requests response, without any connection behind it."""
    response = requests.Response()
    response.status_code = status_code
    response.encoding = "utf-8"
    if body is None:
        response._content = b""
    elif isinstance(body, bytes):
        response._content = body
    elif isinstance(body, str):
        response._content = body.encode()
    else:
        response._content = json.dumps(body).encode()
    response.headers.update(headers or {})
    return response


class FakeCluster:
    """In memory stand-in for the REST client of a single node cluster.

    Bulk writes only become searchable after `visible_after_refreshes` refresh calls,
    mimicking the near real time visibility of the search backend.
    """

    def __init__(
        self, visible_after_refreshes: int = 0, indices: Tuple[str, ...] = (SECURITY_INDEX,)
    ):
        self.visible_after_refreshes = visible_after_refreshes
        self.indices: Dict[str, Dict[str, Any]] = {name: self._new_index({}) for name in indices}
        self.persistent: Dict[str, Any] = {}
        self.calls: List[Tuple[str, str, Optional[Dict[str, Any]]]] = []

    @staticmethod
    def _new_index(mapping: Dict[str, Any]) -> Dict[str, Any]:
        return {"mapping": mapping, "docs": {}, "visible": {}, "pending_refreshes": 0}

    def calls_to(self, method: str, endpoint: str) -> int:
        return len([call for call in self.calls if call[:2] == (method, endpoint)])

    def request(
        self,
        method: str,
        endpoint: str,
        payload: Any = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        resp_status_code: bool = False,
        json_resp: bool = True,
        strict_deprecation_mode: Optional[bool] = None,
        timeout: Optional[float] = None,
    ):
        method, endpoint = method.upper(), endpoint.lstrip("/")
        self.calls.append((method, endpoint, params))
        status, body = self._dispatch(method, endpoint, payload, params or {})
        if resp_status_code:
            return status
        if status >= 300:
            raise OpenSearchHttpError(response_body=body, response_code=status)
        return body

    def _dispatch(self, method, endpoint, payload, params):  # noqa: C901
        if endpoint == "_bulk":
            return self._bulk(payload, params)
        if endpoint == "_cat/indices":
            rows = [{"index": name, "health": "green"} for name in self.indices]
            return 200, rows[0] if len(rows) == 1 else rows
        if endpoint == "_cluster/settings":
            if method == "GET":
                return 200, {"persistent": dict(self.persistent), "transient": {}}
            for key, value in payload["persistent"].items():
                if value is None:
                    self.persistent.pop(key, None)
                else:
                    self.persistent[key] = value
            return 200, {"acknowledged": True, "persistent": payload["persistent"]}

        name, _, action = endpoint.partition("/")
        index = self.indices.get(name)
        if action == "_search":
            if index is None:
                return 404, {"error": {"type": "index_not_found_exception"}}
            return 200, self._search(index, payload)
        if action == "_refresh":
            if index is None:
                return 404, {"error": {"type": "index_not_found_exception"}}
            if index["pending_refreshes"] > 0:
                index["pending_refreshes"] -= 1
            if index["pending_refreshes"] == 0:
                index["visible"] = dict(index["docs"])
            return 200, {"_shards": {"total": 1, "successful": 1, "failed": 0}}
        if method == "PUT":
            if index is not None:
                return 400, {"error": {"type": "resource_already_exists_exception"}}
            self.indices[name] = self._new_index(payload)
            return 200, {"acknowledged": True, "index": name}
        if method == "DELETE":
            if index is None:
                return 404, {"error": {"type": "index_not_found_exception"}}
            del self.indices[name]
            return 200, {"acknowledged": True}
        if method == "HEAD":
            return (200 if index is not None else 404), None

        return 400, {"error": {"type": "unsupported_operation"}}

    def _bulk(self, payload: str, params: Dict[str, Any]):
        lines = [line for line in payload.split("\n") if line]
        items = []
        for action_line, source_line in zip(lines[::2], lines[1::2]):
            action = json.loads(action_line)["index"]
            index = self.indices.setdefault(action["_index"], self._new_index({}))
            index["docs"][action["_id"]] = json.loads(source_line)
            result = {"_index": action["_index"], "_id": action["_id"], "status": 201}
            items.append({"index": result})

        for index in self.indices.values():
            if params.get("refresh") == "true" and self.visible_after_refreshes == 0:
                index["visible"] = dict(index["docs"])
            else:
                index["pending_refreshes"] = self.visible_after_refreshes
        return 200, {"took": 1, "errors": False, "items": items}

    @staticmethod
    def _search(index: Dict[str, Any], query: Dict[str, Any]):
        def _sort_key(item):
            doc_id, source = item
            return to_epoch_millis(parse_timestamp(source["timestamp"])), int(doc_id)

        docs = sorted(index["visible"].items(), key=_sort_key, reverse=True)
        hits = [{"_id": doc_id, "_source": source} for doc_id, source in docs[: query["size"]]]
        return {"hits": {"total": {"value": len(docs)}, "hits": hits}}
