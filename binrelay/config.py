from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

from sqlalchemy.engine import URL

from .errors import ConfigurationError
from .models import TaskIdentity


def _pick(raw: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first present key, accepting snake_case and camelCase spellings."""
    for key in keys:
        if key in raw:
            return raw[key]
    return default


def _split_host_port(addr: str, default_port: int = 3306) -> tuple[str, int]:
    host, _, port = addr.rpartition(":")
    if not host:
        return addr, default_port
    try:
        return host, int(port)
    except ValueError:
        raise ConfigurationError(f"Invalid database address {addr!r}") from None


@dataclass
class CaptureConfig:
    db_url: str
    db_username: str
    db_password: str = ""
    databases: list[str] = field(default_factory=list)
    tasks: list[TaskIdentity] = field(default_factory=list)
    server_id: int = 1001
    queue_dir: str = "."
    state_dir: str = "."
    queue_backend: str = "file"
    redis_url: Optional[str] = None
    fsync: bool = True
    checkpoint_every: int = 1
    listen_host: str = "0.0.0.0"
    listen_port: int = 8080

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        if not self.db_url:
            raise ConfigurationError("db_url is required")
        if not self.tasks:
            raise ConfigurationError("at least one task must be configured")
        if self.queue_backend not in ("file", "redis"):
            raise ConfigurationError(f"Unknown queue_backend {self.queue_backend!r}")
        if self.queue_backend == "redis" and not self.redis_url:
            raise ConfigurationError("redis_url is required for the redis queue backend")
        if self.checkpoint_every < 1:
            raise ConfigurationError("checkpoint_every must be >= 1")

    @property
    def host(self) -> str:
        return _split_host_port(self.db_url)[0]

    @property
    def port(self) -> int:
        return _split_host_port(self.db_url)[1]

    @property
    def tables(self) -> list[str]:
        return sorted({task.table for task in self.tasks})

    def connection_settings(self) -> dict[str, Any]:
        """Settings in the shape expected by BinLogStreamReader."""
        return {
            "host": self.host,
            "port": self.port,
            "user": self.db_username,
            "passwd": self.db_password,
        }

    def source_url(self) -> URL:
        return URL.create(
            "mysql+pymysql",
            username=self.db_username,
            password=self.db_password or None,
            host=self.host,
            port=self.port,
        )

    def position_file(self) -> Path:
        return Path(self.state_dir) / f"{self.db_username}-binlog_position.json"

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "CaptureConfig":
        username = _pick(raw, "db_username", "dbUsername", default="")
        databases = list(_pick(raw, "databases", "dbDBs", default=[]))
        tasks = []
        for entry in _pick(raw, "tasks", default=[]):
            tasks.append(
                TaskIdentity(
                    account=_pick(entry, "account", "taskAccount", default=username),
                    database=_pick(entry, "db", "database", "taskDB"),
                    table=_pick(entry, "table", "taskTable"),
                )
            )
        return cls(
            db_url=_pick(raw, "db_url", "dbUrl", default=""),
            db_username=username,
            db_password=_pick(raw, "db_password", "dbPassword", default=""),
            databases=databases,
            tasks=tasks,
            server_id=int(_pick(raw, "server_id", "serverId", default=1001)),
            queue_dir=_pick(raw, "queue_dir", "queueDir", default="."),
            state_dir=_pick(raw, "state_dir", "stateDir", default="."),
            queue_backend=_pick(raw, "queue_backend", "queueBackend", default="file"),
            redis_url=_pick(raw, "redis_url", "redisUrl"),
            fsync=bool(_pick(raw, "fsync", default=True)),
            checkpoint_every=int(_pick(raw, "checkpoint_every", "checkpointEvery", default=1)),
            listen_host=_pick(raw, "listen_host", "listenHost", default="0.0.0.0"),
            listen_port=int(_pick(raw, "listen_port", "listenPort", default=8080)),
        )


@dataclass
class TableCapabilities:
    insert: bool = True
    update: bool = True
    delete: bool = True

    def allows(self, action: str) -> bool:
        return bool(getattr(self, action, False))


@dataclass
class ReplayConfig:
    task: TaskIdentity
    target_url: str
    task_name: str = ""
    endpoint_url: str = "http://127.0.0.1:8080"
    table_suffix: str = "_001"
    poll_interval: float = 2.0
    request_timeout: float = 10.0
    statement_timeout: float = 30.0
    capabilities: dict[str, TableCapabilities] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        if not self.target_url:
            raise ConfigurationError("a target database is required")
        if self.poll_interval <= 0:
            raise ConfigurationError("poll_interval must be > 0")
        if self.request_timeout <= 0 or self.statement_timeout <= 0:
            raise ConfigurationError("timeouts must be > 0")
        if not self.task_name:
            self.task_name = str(self.task)

    def capabilities_for(self, table: str) -> TableCapabilities:
        return self.capabilities.get(table) or self.capabilities.get("*") or TableCapabilities()

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "ReplayConfig":
        task = TaskIdentity(
            account=_pick(raw, "task_account", "taskAccount"),
            database=_pick(raw, "task_db", "taskDB"),
            table=_pick(raw, "task_table", "taskTable"),
        )

        target_url = _pick(raw, "target_url", "targetUrl")
        client = _pick(raw, "client")
        if not target_url and client:
            target_url = _target_url_from_client(client)

        capabilities = {
            table: TableCapabilities(
                insert=bool(flags.get("insert", True)),
                update=bool(flags.get("update", True)),
                delete=bool(flags.get("delete", True)),
            )
            for table, flags in (_pick(raw, "capabilities", default={}) or {}).items()
        }

        return cls(
            task=task,
            target_url=target_url or "",
            task_name=_pick(raw, "task_name", "taskName", default=""),
            endpoint_url=_pick(raw, "endpoint_url", "endpointUrl", default="http://127.0.0.1:8080"),
            table_suffix=_pick(raw, "table_suffix", "tableSuffix", default="_001"),
            poll_interval=float(_pick(raw, "poll_interval", "pollInterval", default=2.0)),
            request_timeout=float(_pick(raw, "request_timeout", "requestTimeout", default=10.0)),
            statement_timeout=float(_pick(raw, "statement_timeout", "statementTimeout", default=30.0)),
            capabilities=capabilities,
        )


def _target_url_from_client(client: Mapping[str, Any]) -> str:
    db_type = _pick(client, "db_type", "dbType", default="mysql")
    if db_type != "mysql":
        raise ConfigurationError(f"Unsupported client dbType {db_type!r}; use target_url instead")
    host, port = _split_host_port(_pick(client, "db_url", "dbUrl", default="127.0.0.1:3306"))
    url = URL.create(
        "mysql+pymysql",
        username=_pick(client, "db_username", "dbUsername"),
        password=_pick(client, "db_password", "dbPassword") or None,
        host=host,
        port=port,
        database=_pick(client, "db_name", "dbName"),
    )
    return url.render_as_string(hide_password=False)


def _load_entries(path: str | Path) -> list[Mapping[str, Any]]:
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
    except OSError as exc:
        raise ConfigurationError(f"Cannot read config file {path}: {exc}") from exc
    except ValueError as exc:
        raise ConfigurationError(f"Config file {path} is not valid JSON: {exc}") from exc

    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list) or not data:
        raise ConfigurationError(f"No configurations found in {path}")
    return data


def load_capture_configs(path: str | Path) -> list[CaptureConfig]:
    try:
        return [CaptureConfig.from_dict(entry) for entry in _load_entries(path)]
    except ConfigurationError:
        raise
    except (TypeError, ValueError, AttributeError) as exc:
        raise ConfigurationError(f"Invalid capture config in {path}: {exc}") from exc


def load_replay_configs(path: str | Path) -> list[ReplayConfig]:
    try:
        return [ReplayConfig.from_dict(entry) for entry in _load_entries(path)]
    except ConfigurationError:
        raise
    except (TypeError, ValueError, AttributeError) as exc:
        raise ConfigurationError(f"Invalid replay config in {path}: {exc}") from exc
