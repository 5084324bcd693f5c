"""End-to-end oplog tailing against a single-member replica set."""

import time

import pytest
import pymongo

from oplog_tailer.connectors.cdc.errors import AlreadyTailingError, TopologyError
from oplog_tailer.connectors.cdc.oplog_tailer import Tailer
from oplog_tailer.connectors.cdc.query import Namespace
from oplog_tailer.mongodb.connection import ConnectionMode

testcontainers_core = pytest.importorskip("testcontainers.core.container")

pytestmark = pytest.mark.integration


@pytest.fixture(scope="module")
def replica_set():
    """mongod started with --replSet and initiated as a one member set."""
    container = (
        testcontainers_core.DockerContainer("mongo:6.0")
        .with_command("--replSet rs0 --bind_ip_all")
        .with_exposed_ports(27017)
    )
    try:
        container.start()
    except Exception as e:
        pytest.skip(f"Docker not available: {e}")
    
    try:
        host = container.get_container_host_ip()
        port = int(container.get_exposed_port(27017))
        client = pymongo.MongoClient(host, port, directConnection=True, serverSelectionTimeoutMS=30000)
        client.admin.command(
            "replSetInitiate",
            {"_id": "rs0", "members": [{"_id": 0, "host": "localhost:27017"}]}
        )
        deadline = time.time() + 60
        while not client.admin.command("hello").get("isWritablePrimary"):
            if time.time() > deadline:
                pytest.fail("replica set did not elect a primary")
            time.sleep(0.5)
        
        yield f"{host}:{port}", client
        client.close()
    finally:
        container.stop()


@pytest.fixture
def tailer(replica_set):
    upstream, _ = replica_set
    with Tailer([upstream], ConnectionMode.DIRECT_SLAVE) as tailer:
        yield tailer


def test_secondary_mode_rejects_single_member_primary(replica_set):
    upstream, _ = replica_set
    with pytest.raises(TopologyError, match="is the primary"):
        Tailer([upstream], ConnectionMode.SECONDARY)


def test_tails_new_writes_in_order(tailer, replica_set):
    _, client = replica_set
    collection = client["app"]["users"]
    start = tailer.most_recent_position()
    assert start is not None
    
    collection.insert_many([{"_id": 1}, {"_id": 2}])
    collection.update_one({"_id": 1}, {"$set": {"name": "ada"}})
    
    seen = []
    tailer.tail(from_position=start, namespace=Namespace("app", "users"), dont_wait=True)
    while tailer.stream(seen.append):
        pass
    
    assert [r["op"] for r in seen] == ["i", "i", "u"]
    assert all(r["ns"] == "app.users" for r in seen)
    assert [r["ts"] for r in seen] == sorted(r["ts"] for r in seen)
    assert all(r["ts"] > start for r in seen)
    
    with pytest.raises(AlreadyTailingError):
        tailer.tail(from_position=start)


def test_resume_from_last_position(tailer, replica_set):
    _, client = replica_set
    collection = client["app"]["orders"]
    start = tailer.most_recent_position()
    collection.insert_many([{"_id": n} for n in range(3)])
    
    first = []
    tailer.tail(from_position=start, namespace=("app", "orders"), dont_wait=True)
    tailer.stream(first.append, limit=1)
    tailer.close()
    
    rest = []
    tailer.tail(from_position=first[-1]["ts"], namespace=("app", "orders"), dont_wait=True)
    while tailer.stream(rest.append):
        pass
    
    assert [r["o"]["_id"] for r in first + rest] == [0, 1, 2]
