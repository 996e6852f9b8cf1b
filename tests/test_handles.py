import copy

import pytest

from docshell.shell_datatypes import ResolutionMisuse
from docshell.shell_handles import CollectionHandle, DatabaseHandle, shell_api_method, shell_name, ShellHost


DB_DESC = {"name": "shop", "address": "db.local", "port": 27018}


@pytest.fixture
def db(bridge):
    return DatabaseHandle("shop", "db.local", 27018, bridge)


@pytest.mark.parametrize("name", ["users", "orders", "find", "drop", "insertOne", "my_coll"])
def test_undeclared_names_resolve_to_collections(db, name):
    coll = getattr(db, name)
    assert isinstance(coll, CollectionHandle)
    assert coll.name == name
    assert coll.database == db


@pytest.mark.parametrize("name", ["bridge", "api_names"])
def test_internal_members_do_not_shadow_collections(db, name):
    coll = getattr(db, name)
    assert isinstance(coll, CollectionHandle)
    assert coll.name == name


def test_subscript_always_yields_a_collection(db):
    coll = db["listCollections"]
    assert isinstance(coll, CollectionHandle)
    assert coll.name == "listCollections"


def test_explicit_methods_and_fields_are_never_shadowed(db):
    assert db.name == "shop"
    assert db.address == "db.local"
    assert db.port == 27018
    assert not isinstance(db.listCollections, CollectionHandle)
    assert not isinstance(db.getCollection, CollectionHandle)
    assert db.getCollection("listCollections") == CollectionHandle(db, "listCollections")
    assert db.getName() == "shop"


def test_private_and_protocol_names_do_not_fall_back(db):
    with pytest.raises(AttributeError):
        db._secret
    with pytest.raises(AttributeError):
        db.__wrapped__
    # copy machinery probes dunder names through __getattr__
    assert copy.deepcopy(DatabaseHandle("shop", "db.local", 27018)) == DatabaseHandle("shop", "db.local", 27018)


def test_collection_identity_is_database_and_name(db):
    other = DatabaseHandle("shop", "db.local", 27018, None)
    assert db.users == other.users
    assert hash(db.users) == hash(other.users)
    assert db.users != db.orders
    assert db.users != db.getSiblingDB("admin").users


def test_handles_are_immutable(db):
    with pytest.raises(AttributeError):
        db.name = "other"
    with pytest.raises(AttributeError):
        db.users.name = "other"


def test_descriptors(db):
    assert db.descriptor() == DB_DESC
    assert db.users.descriptor() == {"db": DB_DESC, "name": "users"}
    assert db.users.getFullName() == "shop.users"
    assert str(db) == "shop"
    assert str(db.users) == "shop.users"


@pytest.mark.parametrize("method, args, op", [
    ("find", ({"a": 1},), "op_find"),
    ("insertOne", ({"name": "a"},), "op_insert_one"),
    ("insertMany", ([{"a": 1}, {"a": 2}],), "op_insert_many"),
    ("updateOne", ({"a": 1}, {"$set": {"b": 2}}), "op_update_one"),
    ("updateMany", ({"a": {"$gt": 1}}, {"$set": {"b": 2}}), "op_update_many"),
    ("deleteOne", ({"a": 1},), "op_delete_one"),
    ("deleteMany", ({"$or": [{"a": 1}, {"b": 2}]},), "op_delete_many"),
    ("aggregate", ([{"$match": {}}, {"$count": "n"}],), "op_aggregate"),
    ("drop", (), "op_drop"),
    ("save", ({"_id": {"$oid": "abc"}, "a": 1},), "op_save"),
])
def test_each_collection_method_is_one_request(db, backend, method, args, op):
    backend.responses[op] = {"ok": op}
    result = getattr(db.users, method)(*args)
    assert result == {"ok": op}
    assert len(backend.requests) == 1
    request = backend.requests[0]
    assert request.op == op
    assert request.target == {"db": DB_DESC, "name": "users"}
    assert request.args == list(args)


def test_find_defaults_to_empty_filter(db, backend):
    backend.responses["op_find"] = []
    assert db.users.find() == []
    assert backend.requests[0].args == [{}]


def test_database_operations(db, backend):
    backend.responses["op_list_collections"] = ["orders", "users"]
    backend.responses["op_list_databases"] = ["admin", "shop"]
    assert db.listCollections() == ["orders", "users"]
    assert db.listDatabases() == ["admin", "shop"]
    assert [r.op for r in backend.requests] == ["op_list_collections", "op_list_databases"]
    assert backend.requests[0].target == DB_DESC
    assert backend.requests[0].args == []


def test_missing_collection_method_is_resolution_misuse(db):
    with pytest.raises(ResolutionMisuse) as exc:
        db.users.findOneAndFrobnicate({})
    assert exc.value.name == "findOneAndFrobnicate"
    assert "shop.users" in str(exc.value)
    # Still a plain attribute error for callers that expect one
    assert isinstance(exc.value, AttributeError)


def test_detached_handle_refuses_to_dispatch():
    with pytest.raises(RuntimeError):
        DatabaseHandle("shop", "h", 1).users.find({})


def test_shell_names():
    assert shell_name("insert_one") == "insertOne"
    assert shell_name("find") == "find"
    assert shell_name("get_full_name") == "getFullName"
    assert "getSiblingDB" in DatabaseHandle._api_names()
    assert "insertMany" in CollectionHandle._api_names()


def test_api_table_is_per_class():
    class Host(ShellHost):
        @shell_api_method
        def do_thing(self):
            return 1

        @shell_api_method(name="RAW")
        def raw(self):
            return 2

        def hidden(self):
            return 3

    assert Host._api_names() == ["RAW", "doThing"]
    assert "doThing" not in DatabaseHandle._api_names()
