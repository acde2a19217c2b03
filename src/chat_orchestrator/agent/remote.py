"""Placeholder registry for tools hosted by remote tool servers.

No wire protocol is spoken: connecting a known server kind registers tools that
answer with canned data so the catalog and dispatch paths can be exercised.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

from pydantic import BaseModel, Field

from chat_orchestrator.agent.registry import ToolContext, ToolOutput, ToolRegistry, ToolSpec
from chat_orchestrator.config import RemoteServerConfig

logger = logging.getLogger(__name__)


class ReadFileInput(BaseModel):
    path: str = Field(min_length=1)


class WriteFileInput(BaseModel):
    path: str = Field(min_length=1)
    content: str


class QueryInput(BaseModel):
    query: str = Field(min_length=1)


class FetchUrlInput(BaseModel):
    url: str = Field(min_length=1)


def _read_file(args: ReadFileInput, context: ToolContext) -> ToolOutput:
    return ToolOutput(
        data={"path": args.path, "content": f"Mock content of {args.path}"},
        message=f"Read {args.path}",
    )


def _write_file(args: WriteFileInput, context: ToolContext) -> ToolOutput:
    return ToolOutput(
        data={"path": args.path, "bytes_written": len(args.content.encode("utf-8"))},
        message=f"Wrote {args.path}",
    )


def _execute_query(args: QueryInput, context: ToolContext) -> ToolOutput:
    rows = [{"id": 1, "name": "Sample Data"}]
    return ToolOutput(
        data={"query": args.query, "rows": rows, "row_count": len(rows)},
        message=f"Query returned {len(rows)} row(s)",
    )


def _fetch_url(args: FetchUrlInput, context: ToolContext) -> ToolOutput:
    return ToolOutput(
        data={"url": args.url, "status": 200, "body": f"Mock content from {args.url}"},
        message=f"Fetched {args.url}",
    )


def _filesystem_tools(server: str) -> list[ToolSpec]:
    return [
        ToolSpec(
            name="read_file",
            description="Read a file from the connected filesystem server.",
            args_schema=ReadFileInput,
            handler=_read_file,
            category=f"remote:{server}",
        ),
        ToolSpec(
            name="write_file",
            description="Write a file through the connected filesystem server.",
            args_schema=WriteFileInput,
            handler=_write_file,
            category=f"remote:{server}",
        ),
    ]


def _database_tools(server: str) -> list[ToolSpec]:
    return [
        ToolSpec(
            name="execute_query",
            description="Run a read query against the connected database server.",
            args_schema=QueryInput,
            handler=_execute_query,
            category=f"remote:{server}",
        )
    ]


def _web_tools(server: str) -> list[ToolSpec]:
    return [
        ToolSpec(
            name="fetch_url",
            description="Fetch a URL through the connected web server.",
            args_schema=FetchUrlInput,
            handler=_fetch_url,
            category=f"remote:{server}",
        )
    ]


SERVER_KINDS: dict[str, Callable[[str], list[ToolSpec]]] = {
    "filesystem": _filesystem_tools,
    "database": _database_tools,
    "web": _web_tools,
}


class RemoteToolRegistry(ToolRegistry):
    """Tool registry populated from configured remote servers."""

    source = "remote"

    def __init__(self, servers: Iterable[RemoteServerConfig] = ()) -> None:
        super().__init__()
        self._servers = list(servers)
        self._connected: dict[str, list[str]] = {}

    @property
    def connected_servers(self) -> list[str]:
        return list(self._connected)

    async def connect_all(self) -> list[str]:
        """Register tools for every enabled server of a known kind."""
        for server in self._servers:
            if not server.enabled or server.name in self._connected:
                continue
            factory = SERVER_KINDS.get(server.name)
            if factory is None:
                logger.warning("Unknown remote tool server %s; skipping", server.name)
                continue
            names = []
            for spec in factory(server.name):
                if spec.name in self:
                    logger.warning(
                        "Remote tool %s from %s already registered", spec.name, server.name
                    )
                    continue
                self.register(spec)
                names.append(spec.name)
            self._connected[server.name] = names
            logger.info("Connected remote tool server %s with tools %s", server.name, names)
        return self.connected_servers

    async def disconnect_all(self) -> None:
        for server, names in self._connected.items():
            for name in names:
                self.unregister(name)
            logger.info("Disconnected remote tool server %s", server)
        self._connected.clear()

    def server_status(self) -> list[dict[str, object]]:
        return [
            {
                "name": server.name,
                "enabled": server.enabled,
                "connected": server.name in self._connected,
                "tools": self._connected.get(server.name, []),
            }
            for server in self._servers
        ]
