"""Storage adapters for shared metric state.

This module provides the storage implementations behind the collector
registry:
- Redis: Distributed storage shared by many processes, updated through
  server-side Lua scripts
- Memory: Fast, single-process storage with the same semantics
"""

from __future__ import annotations

import json
import logging
import threading
from contextlib import contextmanager
from typing import Any, Iterator

import redis
from redis.exceptions import (
    AuthenticationError,
    ConnectionError as RedisConnectionError,
    RedisError,
    TimeoutError as RedisTimeoutError,
)

from redmetrics.config import RedisConfig
from redmetrics.core import (
    CorruptMetadata,
    InvalidCommand,
    MetricFamilySamples,
    MetricType,
    MetricUpdate,
    Number,
    Sample,
    StorageAdapter,
    StorageError,
    StorageUnavailable,
    UpdateCommand,
    parse_number,
    sort_samples,
)

logger = logging.getLogger(__name__)

META_FIELD = "__meta"
METRIC_KEYS_SUFFIX = "METRIC_KEYS"

# Collection order: gauges first, then counters.
COLLECT_ORDER = (MetricType.GAUGE, MetricType.COUNTER)


def _decode(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


def _format_operand(command: UpdateCommand, value: Number) -> str:
    if command is UpdateCommand.INCREMENT_INTEGER:
        return str(int(value))
    if isinstance(value, int):
        return str(value)
    return repr(float(value))


def _check_command(command: Any) -> UpdateCommand:
    if not isinstance(command, UpdateCommand):
        raise InvalidCommand(f"Unknown command: {command!r}")
    return command


# =============================================================================
# Redis Storage
# =============================================================================


class RedisStorage(StorageAdapter):
    """Redis-based storage shared by every process of an application.

    Each metric is a hash at ``<prefix>:<type>:<name>`` whose fields are
    JSON-encoded label-value tuples, plus a ``__meta`` field holding the
    metric's name, help and label names. A per-type gather set at
    ``<prefix>:<type>:METRIC_KEYS`` lists the metric keys holding samples.

    Example:
        >>> storage = RedisStorage(RedisConfig(host="redis", prefix="billing_METRICS"))
        >>> registry = CollectorRegistry(storage)

        >>> # Share an existing client instead
        >>> storage = RedisStorage(client=redis.Redis(host="localhost"))
    """

    # Applies the value command and, only when this call created the
    # series field, records metadata and the gather-set membership.
    # An integer increment on a field already holding a fraction is
    # applied as a float increment.
    UPDATE_SCRIPT = """
    local metric_key = KEYS[1]
    local gather_key = KEYS[2]
    local command = ARGV[1]
    local field = ARGV[2]

    local current = redis.call('HGET', metric_key, field)
    local created = not current
    if command == 'HINCRBY' and current and not string.match(current, '^%-?%d+$') then
        command = 'HINCRBYFLOAT'
    end
    redis.call(command, metric_key, field, ARGV[3])

    if created then
        redis.call('HSET', metric_key, '__meta', ARGV[4])
        redis.call('SADD', gather_key, metric_key)
        return 1
    end
    return 0
    """

    # Deletes every metric listed in the given gather sets and the sets.
    FLUSH_SCRIPT = """
    local removed = 0
    for i = 1, #KEYS do
        local members = redis.call('SMEMBERS', KEYS[i])
        for _, key in ipairs(members) do
            removed = removed + redis.call('DEL', key)
        end
        redis.call('DEL', KEYS[i])
    end
    return removed
    """

    COMMANDS = {
        UpdateCommand.INCREMENT_INTEGER: "HINCRBY",
        UpdateCommand.INCREMENT_FLOAT: "HINCRBYFLOAT",
        UpdateCommand.SET: "HSET",
    }

    def __init__(
        self,
        config: RedisConfig | None = None,
        *,
        client: Any = None,
        prefix: str | None = None,
    ) -> None:
        """Initialize Redis storage.

        Args:
            config: Connection settings (defaults to ``RedisConfig()``).
            client: Existing Redis client to use for every operation.
                When given, connection settings in ``config`` are ignored
                and the client is never closed by the storage.
            prefix: Key prefix overriding ``config.prefix``.
        """
        self._config = config or RedisConfig()
        self._prefix = prefix or self._config.prefix
        self._client = client
        self._scripts: dict[str, Any] = {}
        self._lock = threading.Lock()

    @property
    def prefix(self) -> str:
        """Get the key prefix."""
        return self._prefix

    def metric_key(self, metric_type: MetricType, name: str) -> str:
        """Create the hash key of one metric."""
        return f"{self._prefix}:{metric_type.value}:{name}"

    def gather_key(self, metric_type: MetricType) -> str:
        """Create the gather-set key of one metric type."""
        return f"{self._prefix}:{metric_type.value}:{METRIC_KEYS_SUFFIX}"

    def _create_client(self) -> Any:
        config = self._config
        return redis.Redis(
            host=config.host,
            port=config.port,
            db=config.database or 0,
            password=config.password,
            socket_connect_timeout=config.connect_timeout,
            socket_timeout=config.read_timeout,
            decode_responses=True,
        )

    @contextmanager
    def _connection(self) -> Iterator[Any]:
        """Yield a client for one operation, translating Redis failures."""
        owned = False
        with self._lock:
            client = self._client
            if client is None:
                client = self._create_client()
                if self._config.persistent_connections:
                    self._client = client
                else:
                    owned = True

        try:
            yield client
        except (AuthenticationError, RedisConnectionError, RedisTimeoutError) as e:
            raise StorageUnavailable(
                f"Can't connect to Redis server at "
                f"{self._config.host}:{self._config.port}: {e}"
            ) from e
        except RedisError as e:
            raise StorageError(f"Redis operation failed: {e}") from e
        finally:
            if owned:
                client.close()

    def _get_script(self, client: Any, name: str, source: str) -> Any:
        """Get or register a Lua script."""
        with self._lock:
            if name not in self._scripts:
                self._scripts[name] = client.register_script(source)
            return self._scripts[name]

    def update(self, update: MetricUpdate) -> None:
        """Atomically apply one update."""
        command = _check_command(update.command)
        redis_command = self.COMMANDS[command]
        metric_key = self.metric_key(update.type, update.name)

        with self._connection() as client:
            script = self._get_script(client, "update", self.UPDATE_SCRIPT)
            created = script(
                keys=[metric_key, self.gather_key(update.type)],
                args=[
                    redis_command,
                    update.series_key,
                    _format_operand(command, update.value),
                    json.dumps(update.metadata()),
                ],
                client=client,
            )

        if int(created):
            logger.debug("Registered new series %s%s", metric_key, update.series_key)
        else:
            logger.debug("Applied %s to %s%s", redis_command, metric_key, update.series_key)

    def collect(self) -> list[MetricFamilySamples]:
        """Collect gauge then counter families."""
        families: list[MetricFamilySamples] = []
        with self._connection() as client:
            for metric_type in COLLECT_ORDER:
                families.extend(self._collect_type(client, metric_type))
        logger.debug("Collected %d metric families", len(families))
        return families

    def _collect_type(self, client: Any, metric_type: MetricType) -> list[MetricFamilySamples]:
        keys = sorted(_decode(k) for k in client.smembers(self.gather_key(metric_type)))
        if not keys:
            return []

        pipe = client.pipeline(transaction=False)
        for key in keys:
            pipe.hgetall(key)
        raws = pipe.execute()

        families = []
        for key, raw in zip(keys, raws):
            # Flushed between SMEMBERS and HGETALL
            if not raw:
                continue
            families.append(self._decode_family(key, metric_type, raw))
        return families

    def _decode_family(
        self,
        key: str,
        metric_type: MetricType,
        raw: dict[Any, Any],
    ) -> MetricFamilySamples:
        fields = {_decode(k): v for k, v in raw.items()}
        meta_raw = fields.pop(META_FIELD, None)
        if meta_raw is None:
            raise CorruptMetadata(key, "metadata field missing")

        try:
            meta = json.loads(_decode(meta_raw))
            name = meta["name"]
            help_text = meta.get("help") or ""
            label_names = tuple(meta.get("labelNames") or ())
        except (json.JSONDecodeError, KeyError, TypeError, AttributeError) as e:
            raise CorruptMetadata(key, str(e)) from e

        samples = []
        for series_key, value in fields.items():
            try:
                label_values = tuple(json.loads(series_key))
            except json.JSONDecodeError as e:
                raise CorruptMetadata(key, f"undecodable series field {series_key!r}") from e
            samples.append(
                Sample(
                    name=name,
                    label_names=label_names,
                    label_values=label_values,
                    value=parse_number(value),
                )
            )

        return MetricFamilySamples(
            name=name,
            type=metric_type,
            help=help_text,
            label_names=label_names,
            samples=sort_samples(samples),
        )

    def flush(self) -> None:
        """Delete every metric of this prefix."""
        with self._connection() as client:
            script = self._get_script(client, "flush", self.FLUSH_SCRIPT)
            removed = script(
                keys=[self.gather_key(t) for t in COLLECT_ORDER],
                args=[],
                client=client,
            )
        logger.info("Flushed %s metric keys under prefix %s", removed, self._prefix)


# =============================================================================
# Memory Storage
# =============================================================================


class MemoryStorage(StorageAdapter):
    """In-memory storage for single-process use.

    Thread-safe implementation using a lock. Ordering and metadata behave
    as in ``RedisStorage``: the call creating a series rewrites the
    metric's metadata.

    Example:
        >>> registry = CollectorRegistry(MemoryStorage())
    """

    def __init__(self) -> None:
        self._metrics: dict[tuple[MetricType, str], dict[str, Any]] = {}
        self._lock = threading.Lock()

    def update(self, update: MetricUpdate) -> None:
        """Apply one update under the storage lock."""
        command = _check_command(update.command)
        with self._lock:
            entry = self._metrics.setdefault(
                (update.type, update.name), {"meta": None, "values": {}}
            )
            values: dict[str, Number] = entry["values"]
            current = values.get(update.series_key)
            if current is None:
                entry["meta"] = update.metadata()

            if command is UpdateCommand.SET:
                values[update.series_key] = update.value
            elif command is UpdateCommand.INCREMENT_INTEGER and not isinstance(current, float):
                values[update.series_key] = (current or 0) + int(update.value)
            else:
                values[update.series_key] = float(current or 0) + float(update.value)

    def collect(self) -> list[MetricFamilySamples]:
        """Collect gauge then counter families."""
        with self._lock:
            snapshot = {
                key: (dict(entry["meta"]), dict(entry["values"]))
                for key, entry in self._metrics.items()
            }

        families = []
        for metric_type in COLLECT_ORDER:
            names = sorted(name for (t, name) in snapshot if t is metric_type)
            for name in names:
                meta, values = snapshot[(metric_type, name)]
                label_names = tuple(meta["labelNames"])
                samples = [
                    Sample(name, label_names, tuple(json.loads(series_key)), value)
                    for series_key, value in values.items()
                ]
                families.append(
                    MetricFamilySamples(
                        name=name,
                        type=metric_type,
                        help=meta["help"],
                        label_names=label_names,
                        samples=sort_samples(samples),
                    )
                )
        return families

    def flush(self) -> None:
        """Remove all metrics."""
        with self._lock:
            self._metrics.clear()


# =============================================================================
# Storage Factory
# =============================================================================


def create_storage(
    backend: str = "redis",
    **kwargs: Any,
) -> StorageAdapter:
    """Create storage backend from configuration.

    Args:
        backend: Storage backend type ("redis", "memory").
        **kwargs: Backend-specific configuration.

    Returns:
        Storage instance.

    Example:
        >>> storage = create_storage("memory")
        >>> storage = create_storage("redis", config=RedisConfig(host="redis"))
    """
    if backend == "redis":
        return RedisStorage(**kwargs)
    elif backend == "memory":
        return MemoryStorage(**kwargs)
    else:
        raise ValueError(f"Unknown storage backend: {backend}")
