"""
Executors that sit behind the operation bridge.

A backend receives OperationRequest values and either returns the result
payload or raises. The bridge treats it as a black box.
"""

import asyncio
import functools
import json
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Tuple

import httpx
from bson import json_util
from pymongo import MongoClient
from pymongo.errors import PyMongoError

from docshell.shell_datatypes import DispatchFailure, OperationRequest
from docshell.shell_http import http_request


class Backend(ABC):
    """The required base class for anything the bridge can dispatch to."""

    @abstractmethod
    async def execute(self, request: OperationRequest) -> Any:
        raise NotImplementedError

    async def aclose(self):
        return None


# ===================================================================
# HTTP executor
# ===================================================================

class HttpBackend(Backend):
    """POSTs each request to `<base_url>/ops/<op>` and unwraps `{"result": ...}`."""

    def __init__(self, base_url: str, config: Optional[Dict] = None):
        self.base_url = base_url.rstrip('/')
        self.config = dict(config or {})
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        # Created lazily so it binds to the bridge's worker loop.
        if self._client is None:
            timeout = float(self.config.get('timeout', 5.0))
            self._client = httpx.AsyncClient(timeout=timeout, follow_redirects=True)
        return self._client

    async def execute(self, request: OperationRequest) -> Any:
        wire = request.to_wire()
        cfg = {**self.config, 'response-mode': 'lite', 'retries': 0}
        status, value, _headers = await http_request(
            'POST',
            f"{self.base_url}/ops/{request.op}",
            config=cfg,
            data={"target": wire["target"], "args": wire["args"]},
            client=self._get_client(),
        )
        if isinstance(value, dict) and "error" in value:
            raise DispatchFailure(request.op, str(value["error"]), payload=value)
        if not 200 <= status < 300:
            raise DispatchFailure(request.op, f"HTTP {status}", payload=value)
        if not isinstance(value, dict) or "result" not in value:
            raise DispatchFailure(request.op, "malformed response", payload=value)
        return value["result"]

    async def aclose(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None


# ===================================================================
# MongoDB executor
# ===================================================================

def to_bson(value: Any) -> Any:
    """Extended JSON ({"$oid": ...}) -> BSON-native values."""
    return json_util.loads(json.dumps(value))


def from_bson(value: Any) -> Any:
    """BSON-native values -> relaxed extended JSON."""
    return json.loads(json_util.dumps(value, json_options=json_util.RELAXED_JSON_OPTIONS))


def _write_result(result, **extra) -> Dict[str, Any]:
    out = {"acknowledged": result.acknowledged}
    out.update(extra)
    return out


def _update_result(result) -> Dict[str, Any]:
    return _write_result(
        result,
        matchedCount=result.matched_count,
        modifiedCount=result.modified_count,
        upsertedId=from_bson(result.upserted_id),
    )


class MongoBackend(Backend):
    """Runs each request against MongoDB with pymongo.

    Driver calls are blocking, so they run on the loop's default executor.
    One MongoClient is kept per (address, port).
    """

    def __init__(self, client_factory: Optional[Callable[..., Any]] = None, **client_options):
        self._client_factory = client_factory or MongoClient
        self._client_options = client_options
        self._clients: Dict[Tuple[str, int], Any] = {}
        self._lock = threading.Lock()

    def _client(self, db: Dict[str, Any]):
        key = (db["address"], int(db["port"]))
        with self._lock:
            client = self._clients.get(key)
            if client is None:
                client = self._client_factory(host=key[0], port=key[1], **self._client_options)
                self._clients[key] = client
            return client

    def _database(self, db: Dict[str, Any]):
        return self._client(db)[db["name"]]

    def _collection(self, target: Dict[str, Any]):
        return self._database(target["db"])[target["name"]]

    async def execute(self, request: OperationRequest) -> Any:
        handler = getattr(self, f"_{request.op}", None)
        if handler is None:
            raise DispatchFailure(request.op, "unknown operation")
        loop = asyncio.get_running_loop()
        call = functools.partial(handler, request.target, *request.args)
        try:
            return await loop.run_in_executor(None, call)
        except PyMongoError as e:
            raise DispatchFailure(request.op, str(e), payload=getattr(e, "details", None)) from e

    async def aclose(self):
        with self._lock:
            clients = list(self._clients.values())
            self._clients.clear()
        for client in clients:
            client.close()

    # --- Operations ---
    def _op_find(self, target, filter):
        return from_bson(list(self._collection(target).find(to_bson(filter))))

    def _op_insert_one(self, target, doc):
        result = self._collection(target).insert_one(to_bson(doc))
        return _write_result(result, insertedId=from_bson(result.inserted_id))

    def _op_insert_many(self, target, docs):
        result = self._collection(target).insert_many(to_bson(docs))
        return _write_result(result, insertedIds=from_bson(result.inserted_ids))

    def _op_update_one(self, target, filter, update):
        return _update_result(self._collection(target).update_one(to_bson(filter), to_bson(update)))

    def _op_update_many(self, target, filter, update):
        return _update_result(self._collection(target).update_many(to_bson(filter), to_bson(update)))

    def _op_delete_one(self, target, filter):
        result = self._collection(target).delete_one(to_bson(filter))
        return _write_result(result, deletedCount=result.deleted_count)

    def _op_delete_many(self, target, filter):
        result = self._collection(target).delete_many(to_bson(filter))
        return _write_result(result, deletedCount=result.deleted_count)

    def _op_aggregate(self, target, pipeline):
        return from_bson(list(self._collection(target).aggregate(to_bson(pipeline))))

    def _op_drop(self, target):
        self._collection(target).drop()
        return True

    def _op_save(self, target, doc):
        coll = self._collection(target)
        doc = to_bson(doc)
        if "_id" in doc:
            return _update_result(coll.replace_one({"_id": doc["_id"]}, doc, upsert=True))
        result = coll.insert_one(doc)
        return _write_result(result, insertedId=from_bson(result.inserted_id))

    def _op_list_collections(self, target):
        return sorted(self._database(target).list_collection_names())

    def _op_list_databases(self, target):
        return sorted(self._client(target).list_database_names())
