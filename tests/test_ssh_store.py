"""Tests for the SSH-backed CONFIG_DB store, with the transport faked."""
import json
import shlex

import pytest

from sonic_intent.config_db import tables
from sonic_intent.config_db.entry import ConfigEntry
from sonic_intent.errors import DeviceLockedError, StoreConnectionError, StoreError
from sonic_intent.spec.inventory import DeviceProfile
from sonic_intent.store import SSHRedisStore
from sonic_intent.utils.connection import CommandResult


class FakeShell:
    """Stands in for the SSH session; replies are queued per call."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.commands = []

    async def __call__(self, command):
        self.commands.append(command)
        reply = self.replies.pop(0) if self.replies else ""
        if isinstance(reply, CommandResult):
            return reply
        return CommandResult(True, reply, "", command)


class FakeStream:
    def __init__(self, data, exit_code=0):
        self.data = data
        self.channel = self
        self.exit_code = exit_code

    def read(self):
        return self.data

    def recv_exit_status(self):
        return self.exit_code


class FakeSSHClient:
    """Just enough of paramiko.SSHClient for ``execute``."""

    def __init__(self, out, err=b"", exit_code=0):
        self.out, self.err, self.exit_code = out, err, exit_code

    def exec_command(self, command, timeout=None):
        return None, FakeStream(self.out, self.exit_code), FakeStream(self.err)


@pytest.fixture
def store():
    return SSHRedisStore(DeviceProfile(name="leaf1", mgmt_ip="192.0.2.11"))


def shell(store, *replies):
    fake = FakeShell(*replies)
    store.execute = fake
    return fake


class TestRedisCommands:
    """Tests for how redis-cli is invoked and its output read."""

    @pytest.mark.asyncio
    async def test_not_connected(self, store):
        with pytest.raises(StoreConnectionError, match="not connected"):
            await store.execute("true")

    @pytest.mark.asyncio
    async def test_command_is_quoted(self, store):
        fake = shell(store, "{}")
        await store.get(tables.VLAN, "Vlan100")
        command = shlex.split(fake.commands[0])
        assert command[:5] == ["redis-cli", "-n", "4", "--raw", "EVAL"]
        assert command[6:] == ["1", "VLAN|Vlan100"]
        assert "'VLAN|Vlan100'" in fake.commands[0]

    @pytest.mark.asyncio
    async def test_get(self, store):
        shell(store, json.dumps(["vlanid", "100", "mtu", "9100"]))
        assert await store.get(tables.VLAN, "Vlan100") == {"vlanid": "100", "mtu": "9100"}

    @pytest.mark.asyncio
    async def test_get_keeps_empty_values(self, store):
        """A trailing empty field survives the read."""
        shell(store, json.dumps(["type", "L3", "ports", ""]))
        assert await store.get(tables.ACL_TABLE, "old-in") == {"type": "L3", "ports": ""}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("reply", ["{}", "[]", ""])
    async def test_get_missing(self, store, reply):
        shell(store, reply)
        assert await store.get(tables.VLAN, "Vlan100") is None

    @pytest.mark.asyncio
    async def test_get_strips_null_sentinel(self, store):
        """Field-less keys come back as an empty map, not as missing."""
        shell(store, json.dumps(["NULL", "NULL"]))
        assert await store.get(tables.VRF, "Vrf_a") == {}

    @pytest.mark.asyncio
    async def test_get_unreadable(self, store):
        shell(store, "vlanid\n100")
        with pytest.raises(StoreError, match=r"unreadable VLAN\|Vlan100"):
            await store.get(tables.VLAN, "Vlan100")

    @pytest.mark.asyncio
    async def test_execute_strips_one_newline(self, store):
        store._ssh = FakeSSHClient(b"vlanid\n100\nports\n\n\n")
        result = await store.execute("redis-cli -n 4 --raw HGETALL 'ACL_TABLE|old-in'")
        assert result.success
        assert result.output == "vlanid\n100\nports\n\n"

    @pytest.mark.asyncio
    async def test_exists(self, store):
        shell(store, "1", "0")
        assert await store.exists(tables.VRF, "Vrf_a")
        assert not await store.exists(tables.VRF, "Vrf_b")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("reply", [
        "ERR unknown command",
        "WRONGTYPE Operation against a key holding the wrong kind of value",
        CommandResult(False, "", "redis-cli: not found", "redis-cli"),
    ])
    async def test_errors(self, store, reply):
        shell(store, reply)
        with pytest.raises(StoreError):
            await store.get(tables.VLAN, "Vlan100")


class TestBulk:
    """Tests for the dump and write scripts."""

    @pytest.mark.asyncio
    async def test_get_all(self, store):
        dump = {
            "VLAN|Vlan100": ["vlanid", "100"],
            "VRF|Vrf_a": ["NULL", "NULL"],
            "BGP_NEIGHBOR|default|10.0.0.2": ["asn", "65002"],
        }
        shell(store, json.dumps(dump))

        snapshot = await store.get_all()

        assert snapshot.get(tables.VLAN, "Vlan100") == {"vlanid": "100"}
        assert snapshot.get(tables.VRF, "Vrf_a") == {}
        assert snapshot.get(tables.BGP_NEIGHBOR, "default|10.0.0.2") == {"asn": "65002"}

    @pytest.mark.asyncio
    async def test_unreadable_dump(self, store):
        shell(store, "{not json")
        with pytest.raises(StoreError, match="unreadable CONFIG_DB dump"):
            await store.get_all()

    @pytest.mark.asyncio
    async def test_pipeline_set(self, store):
        fake = shell(store, "2")
        await store.pipeline_set([
            ConfigEntry(tables.VLAN, "Vlan100", {"vlanid": "100"}),
            ConfigEntry(tables.VRF, "Vrf_a", {}),
        ])

        request = json.loads(shlex.split(fake.commands[0])[-1])
        assert request == {
            "deletes": [],
            "sets": [["VLAN|Vlan100", ["vlanid", "100"]], ["VRF|Vrf_a", ["NULL", "NULL"]]],
        }

    @pytest.mark.asyncio
    async def test_replace_all_deletes_stale_keys(self, store):
        """Stale keys are dropped only from tables that are not merge-only."""
        dump = {"VRF|Vrf_old": ["NULL", "NULL"], "PORT|Ethernet99": ["mtu", "9100"]}
        fake = shell(store, json.dumps(dump), "1")

        await store.replace_all(
            {tables.VRF: {"Vrf_a": {}}, tables.PORT: {"Ethernet0": {"mtu": "9100"}}},
            merge_only=frozenset({tables.PORT}),
        )

        request = json.loads(shlex.split(fake.commands[1])[-1])
        assert request["deletes"] == ["VRF|Vrf_old"]
        assert [s[0] for s in request["sets"]] == ["VRF|Vrf_a", "PORT|Ethernet0"]


class TestLocking:
    """Tests for the lease lock kept in STATE_DB."""

    @pytest.mark.asyncio
    async def test_lock(self, store):
        fake = shell(store, "ok")
        lease = await store.lock("leaf1", "alice@host", 300)

        assert lease.holder == "alice@host"
        assert lease.ttl == 300
        assert fake.commands[0].startswith("redis-cli -n 6 --raw EVAL")
        assert "'INTENT_LOCK|leaf1'" in fake.commands[0]

    @pytest.mark.asyncio
    async def test_lock_held(self, store):
        shell(store, "held:bob@host")
        with pytest.raises(DeviceLockedError) as exc_info:
            await store.lock("leaf1", "alice@host", 300)
        assert exc_info.value.holder == "bob@host"

    @pytest.mark.asyncio
    async def test_unlock_held_by_other(self, store):
        shell(store, "held:bob@host")
        with pytest.raises(DeviceLockedError):
            await store.unlock("leaf1", "alice@host")
