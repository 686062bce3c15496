"""CONFIG_DB access over SSH.

SONiC keeps its configuration in Redis on the switch. Rather than exposing
Redis on the network, every operation runs ``redis-cli`` on the device over
an SSH session. Multi-key reads and writes go through Lua scripts so each is
one round trip and atomic on the device.
"""
import asyncio
import json
import logging
import shlex
from datetime import datetime, timezone
from typing import Optional

import paramiko

from ..config_db.entry import ConfigEntry
from ..config_db.snapshot import ConfigSnapshot
from ..errors import DeviceLockedError, StoreConnectionError, StoreError
from ..spec.inventory import DeviceProfile
from ..utils.connection import CommandResult, with_retry
from ..utils.logging_config import timed
from .base import ConfigStore, Lease, decode_fields, encode_fields, lock_key

logger = logging.getLogger(__name__)

CONFIG_DB = 4
STATE_DB = 6

_GET_SCRIPT = "return cjson.encode(redis.call('HGETALL', KEYS[1]))"

_DUMP_SCRIPT = """
local out = {}
for _, k in ipairs(redis.call('KEYS', '*|*')) do
  if redis.call('TYPE', k).ok == 'hash' then
    out[k] = redis.call('HGETALL', k)
  end
end
return cjson.encode(out)
"""

# ARGV[1]: JSON {"deletes": [key...], "sets": [[key, [f, v, ...]], ...]}
_WRITE_SCRIPT = """
local req = cjson.decode(ARGV[1])
for _, k in ipairs(req.deletes) do redis.call('DEL', k) end
for _, e in ipairs(req.sets) do
  if #e[2] > 2 or e[2][1] ~= 'NULL' then redis.call('HDEL', e[1], 'NULL') end
  redis.call('HSET', e[1], unpack(e[2]))
end
return #req.deletes + #req.sets
"""

_LOCK_SCRIPT = """
local cur = redis.call('HGET', KEYS[1], 'holder')
if cur and cur ~= ARGV[1] then return 'held:' .. cur end
redis.call('HSET', KEYS[1], 'holder', ARGV[1], 'acquired', ARGV[2], 'ttl', ARGV[3])
redis.call('EXPIRE', KEYS[1], tonumber(ARGV[3]))
return 'ok'
"""

_UNLOCK_SCRIPT = """
local cur = redis.call('HGET', KEYS[1], 'holder')
if not cur then return 'ok' end
if cur ~= ARGV[1] then return 'held:' .. cur end
redis.call('DEL', KEYS[1])
return 'ok'
"""


def _flat(fields: dict[str, str]) -> list[str]:
    out: list[str] = []
    for k, v in encode_fields(fields).items():
        out.extend([k, str(v)])
    return out


def _pairs(flat: list[str]) -> dict[str, str]:
    return dict(zip(flat[0::2], flat[1::2]))


class SSHRedisStore(ConfigStore):
    """ConfigStore that drives ``redis-cli`` on the switch through paramiko."""

    def __init__(self, profile: DeviceProfile, redis_cli: str = "redis-cli"):
        self.profile = profile
        self.name = profile.name
        self.redis_cli = redis_cli
        self._ssh: Optional[paramiko.SSHClient] = None

    @with_retry(max_attempts=3, min_wait=1, max_wait=10)
    async def connect(self) -> None:
        logger.info(f"Connecting to {self.name} at {self.profile.mgmt_ip}")
        loop = asyncio.get_event_loop()

        def _connect():
            ssh = paramiko.SSHClient()
            ssh.set_missing_host_key_policy(paramiko.AutoAddPolicy())
            ssh.connect(
                hostname=self.profile.mgmt_ip,
                port=self.profile.ssh_port,
                username=self.profile.username,
                password=self.profile.get_password(),
                timeout=self.profile.timeout,
                allow_agent=False,
                look_for_keys=False,
            )
            return ssh

        try:
            self._ssh = await loop.run_in_executor(None, _connect)
        except (paramiko.SSHException, OSError) as e:
            raise StoreConnectionError(f"{self.name}: {e}") from e
        logger.info(f"Connected to {self.name}")

    async def close(self) -> None:
        if self._ssh:
            self._ssh.close()
            self._ssh = None
            logger.debug(f"Disconnected from {self.name}")

    # --- Transport ---

    async def execute(self, command: str) -> CommandResult:
        """Run a shell command on the device."""
        if not self._ssh:
            raise StoreConnectionError(f"{self.name}: not connected")

        ssh = self._ssh
        loop = asyncio.get_event_loop()

        def _exec():
            _stdin, stdout, stderr = ssh.exec_command(command, timeout=self.profile.timeout)
            out = stdout.read().decode("utf-8", errors="ignore")
            err = stderr.read().decode("utf-8", errors="ignore")
            return stdout.channel.recv_exit_status(), out, err

        try:
            exit_code, out, err = await loop.run_in_executor(None, _exec)
        except (paramiko.SSHException, OSError) as e:
            raise StoreConnectionError(f"{self.name}: {e}") from e

        if exit_code != 0:
            logger.debug(f"Command '{command}' failed (exit {exit_code}): {err}")
            return CommandResult(False, out, err.strip(), command)
        # strip only the newline redis-cli appends
        return CommandResult(True, out[:-1] if out.endswith("\n") else out, "", command)

    async def redis(self, db: int, *args: str) -> str:
        """Run one redis command and return its raw output."""
        command = " ".join(
            [shlex.quote(self.redis_cli), "-n", str(db), "--raw"] + [shlex.quote(str(a)) for a in args]
        )
        result = await self.execute(command)
        if not result.success:
            raise StoreError(f"{self.name}: redis-cli failed: {result.error or result.output}")
        # redis-cli exits 0 on command errors and prints them instead
        if result.output.startswith(("ERR", "WRONGTYPE", "NOSCRIPT")):
            raise StoreError(f"{self.name}: {result.output}")
        return result.output

    # --- ConfigStore ---

    async def get(self, table: str, key: str) -> Optional[dict[str, str]]:
        out = await self.redis(CONFIG_DB, "EVAL", _GET_SCRIPT, "1", f"{table}|{key}")
        try:
            flat = json.loads(out) if out else []
        except json.JSONDecodeError as e:
            raise StoreError(f"{self.name}: unreadable {table}|{key}: {e}") from e
        if not flat:
            return None
        return decode_fields(_pairs(flat))

    async def set(self, table: str, key: str, fields: dict[str, str]) -> None:
        await self._write([], [ConfigEntry(table, key, fields)])

    async def delete(self, table: str, key: str) -> None:
        await self.redis(CONFIG_DB, "DEL", f"{table}|{key}")

    async def exists(self, table: str, key: str) -> bool:
        return (await self.redis(CONFIG_DB, "EXISTS", f"{table}|{key}")).strip() == "1"

    @timed("get_all")
    async def get_all(self) -> ConfigSnapshot:
        out = await self.redis(CONFIG_DB, "EVAL", _DUMP_SCRIPT, "0")
        try:
            raw = json.loads(out) if out else {}
        except json.JSONDecodeError as e:
            raise StoreError(f"{self.name}: unreadable CONFIG_DB dump: {e}") from e
        tables: dict[str, dict[str, dict[str, str]]] = {}
        # cjson encodes an empty table as {} rather than []
        for full_key, flat in raw.items():
            table, _, key = full_key.partition("|")
            tables.setdefault(table, {})[key] = decode_fields(_pairs(flat or []))
        logger.debug(f"{self.name}: read {len(raw)} keys from CONFIG_DB")
        return ConfigSnapshot(tables)

    async def pipeline_set(self, entries: list[ConfigEntry]) -> None:
        await self._write([], entries)

    async def replace_all(self, tables, merge_only: frozenset = frozenset()) -> None:
        current = await self.get_all()
        deletes = []
        for table, rows in tables.items():
            if table in merge_only:
                continue
            deletes.extend(f"{table}|{stale}" for stale in set(current.keys(table)) - set(rows))
        entries = [ConfigEntry(t, k, f) for t, rows in tables.items() for k, f in rows.items()]
        await self._write(deletes, entries)

    async def _write(self, deletes: list[str], entries: list[ConfigEntry]) -> None:
        request = {
            "deletes": deletes,
            "sets": [[f"{e.table}|{e.key}", _flat(e.fields)] for e in entries],
        }
        await self.redis(CONFIG_DB, "EVAL", _WRITE_SCRIPT, "0", json.dumps(request))

    async def lock(self, device: str, holder: str, ttl: int) -> Lease:
        acquired = datetime.now(timezone.utc)
        out = await self.redis(
            STATE_DB, "EVAL", _LOCK_SCRIPT, "1", lock_key(device), holder, acquired.isoformat(), str(ttl)
        )
        if out.startswith("held:"):
            raise DeviceLockedError(device, out[len("held:"):])
        return Lease(holder=holder, ttl=ttl, acquired_at=acquired)

    async def unlock(self, device: str, holder: str) -> None:
        out = await self.redis(STATE_DB, "EVAL", _UNLOCK_SCRIPT, "1", lock_key(device), holder)
        if out.startswith("held:"):
            raise DeviceLockedError(device, out[len("held:"):])


def ssh_store_factory(profile: DeviceProfile):
    """Build a store factory opening a new SSH session per call."""
    def factory() -> SSHRedisStore:
        return SSHRedisStore(profile)
    return factory
