"""
Drive Connector Tool Registry
-----------------------------
The tool catalogue is closed: every ToolName must have exactly one
ToolDefinition, and lookups outside the enum raise ToolNotFoundError.

Handlers receive validated argument models and return an MCP tool result
(``content`` blocks plus ``structuredContent``). Upstream failures inside a
handler are reported as ``isError`` results; anything else escapes to the
registry and becomes a ToolHandlerError.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Type
from urllib.parse import quote

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    ValidationInfo,
    field_validator,
    model_validator,
)

from driveconnector.cache.query_cache import QueryCache
from driveconnector.core.config import ToolsConfig
from driveconnector.graph.client import GraphClient
from driveconnector.graph.errors import UpstreamError
from driveconnector.graph.models import DriveItem
from driveconnector.mcp.definitions import (
    DEFAULT_TOP,
    FETCH_DESCRIPTION,
    FETCH_OUTPUT_SCHEMA,
    FETCH_TITLE,
    MAX_FETCH_IDS,
    MAX_TOP,
    SEARCH_DESCRIPTION_FOLDER,
    SEARCH_DESCRIPTION_ROOT,
    SEARCH_TITLE,
    ToolName,
    fetch_input_schema,
    search_input_schema,
    search_output_schema,
)
from driveconnector.mcp.errors import InvalidParamsError, ProtocolError, ToolHandlerError, ToolNotFoundError
from driveconnector.mcp.protocol import JSON_SCHEMA_2020_12

logger = logging.getLogger("DriveConnector.mcp.tools")

PREVIEW_MARKER = "\n[preview only; call fetch with this id for full content]"

ToolHandler = Callable[[Any], Awaitable[Dict[str, Any]]]


# ==========================================================================
# Argument models
# ==========================================================================

def _limit(info: ValidationInfo, name: str, fallback: int) -> int:
    # Limits arrive as validation context from the ToolDefinition.
    context = info.context or {}
    return int(context.get(name, fallback))


class SearchArguments(BaseModel):
    model_config = ConfigDict(extra="ignore")

    query: str
    top: Optional[int] = Field(default=None, ge=1)

    @field_validator("query")
    @classmethod
    def _query_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("query must be a non-empty string")
        return value

    @model_validator(mode="after")
    def _apply_top_limits(self, info: ValidationInfo) -> "SearchArguments":
        max_top = _limit(info, "max_top", MAX_TOP)
        if self.top is None:
            self.top = min(_limit(info, "default_top", DEFAULT_TOP), max_top)
        elif self.top > max_top:
            raise ValueError(f"top must be at most {max_top}")
        return self


class FetchArguments(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    ids: Optional[List[str]] = None

    @model_validator(mode="after")
    def _one_target(self, info: ValidationInfo) -> "FetchArguments":
        if self.id is not None and self.ids is not None:
            raise ValueError("provide either id or ids, not both")
        if self.id is None and not self.ids:
            raise ValueError("id is required")
        targets = [self.id] if self.id is not None else list(self.ids or [])
        if any(not target.strip() for target in targets):
            raise ValueError("item ids must be non-empty strings")
        max_ids = _limit(info, "max_fetch_ids", MAX_FETCH_IDS)
        if len(targets) > max_ids:
            raise ValueError(f"at most {max_ids} ids per fetch")
        return self

    @property
    def targets(self) -> List[str]:
        return [self.id] if self.id is not None else list(self.ids or [])


def _describe_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ())) or "arguments"
        parts.append(f"{location}: {err.get('msg', 'invalid value')}")
    return "; ".join(parts)


# ==========================================================================
# Result helpers
# ==========================================================================

def text_block(text: str) -> Dict[str, Any]:
    return {"type": "text", "text": text}


def error_result(message: str) -> Dict[str, Any]:
    return {"content": [text_block(message)], "isError": True}


def preview_text(item: DriveItem, max_chars: int = 500) -> str:
    """Short metadata summary for a search hit, bounded to ``max_chars`` including the marker."""
    lines = [item.name or item.id]
    if item.description:
        lines.append(item.description)
    if item.parent_path:
        lines.append(f"Location: {item.parent_path}")
    if item.mime_type:
        lines.append(f"Type: {item.mime_type}")
    if item.size is not None:
        lines.append(f"Size: {item.size} bytes")
    if item.last_modified:
        lines.append(f"Modified: {item.last_modified}")
    body = "\n".join(lines)
    keep = max(max_chars - len(PREVIEW_MARKER), 0)
    if len(body) > keep:
        body = body[: max(keep - 3, 0)] + "..."
    return (body + PREVIEW_MARKER)[:max_chars]


# ==========================================================================
# Registry
# ==========================================================================

@dataclass(frozen=True)
class ToolDefinition:
    name: ToolName
    title: str
    description: str
    input_schema: Dict[str, Any]
    output_schema: Dict[str, Any]
    arguments_model: Type[BaseModel]
    handler: ToolHandler
    limits: Dict[str, int] = field(default_factory=dict)

    def describe(self) -> Dict[str, Any]:
        input_schema = dict(self.input_schema)
        input_schema.setdefault("$schema", JSON_SCHEMA_2020_12)
        return {
            "name": self.name.value,
            "title": self.title,
            "description": self.description,
            "inputSchema": input_schema,
            "outputSchema": dict(self.output_schema),
            "annotations": {
                "readOnlyHint": True,
                "destructiveHint": False,
                "idempotentHint": True,
                "openWorldHint": True,
            },
        }


class ToolRegistry:
    """Closed mapping from ToolName to its definition."""

    def __init__(self, definitions: List[ToolDefinition]) -> None:
        self._tools: Dict[ToolName, ToolDefinition] = {}
        for definition in definitions:
            if definition.name in self._tools:
                raise ValueError(f"Duplicate tool definition: {definition.name.value}")
            self._tools[definition.name] = definition
        missing = [name.value for name in ToolName if name not in self._tools]
        if missing:
            raise ValueError(f"No handler registered for tool(s): {', '.join(missing)}")

    def list_tools(self) -> List[Dict[str, Any]]:
        return [self._tools[name].describe() for name in ToolName]

    def resolve(self, name: str) -> ToolDefinition:
        try:
            key = ToolName(name)
        except ValueError:
            raise ToolNotFoundError(name) from None
        return self._tools[key]

    async def invoke(self, name: str, arguments: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        definition = self.resolve(name)
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise InvalidParamsError("Invalid params: arguments must be an object")
        try:
            parsed = definition.arguments_model.model_validate(arguments, context=definition.limits)
        except ValidationError as exc:
            raise InvalidParamsError(f"Invalid params: {_describe_validation_error(exc)}") from exc

        try:
            return await definition.handler(parsed)
        except ProtocolError:
            raise
        except Exception as exc:
            logger.exception("[Tools] %s handler failed", definition.name.value)
            raise ToolHandlerError(str(exc) or exc.__class__.__name__) from exc


# ==========================================================================
# Drive tools
# ==========================================================================

class DriveTools:
    """search and fetch over one drive, sharing the query cache and Graph client."""

    def __init__(
        self,
        graph: GraphClient,
        cache: QueryCache,
        config: Optional[ToolsConfig] = None,
        link_base_url: Optional[str] = None,
    ) -> None:
        self._graph = graph
        self._cache = cache
        self._config = config or ToolsConfig()
        self._link_base_url = link_base_url.rstrip("/") if link_base_url else None

    @property
    def search_description(self) -> str:
        if self._graph.folder_item_id:
            return SEARCH_DESCRIPTION_FOLDER
        return SEARCH_DESCRIPTION_ROOT

    def build_registry(self) -> ToolRegistry:
        return ToolRegistry([
            ToolDefinition(
                name=ToolName.SEARCH,
                title=SEARCH_TITLE,
                description=self.search_description,
                input_schema=search_input_schema(self._config.default_top, self._config.max_top),
                output_schema=search_output_schema(self._config.preview_max_chars),
                arguments_model=SearchArguments,
                handler=self.search,
                limits={"default_top": self._config.default_top, "max_top": self._config.max_top},
            ),
            ToolDefinition(
                name=ToolName.FETCH,
                title=FETCH_TITLE,
                description=FETCH_DESCRIPTION,
                input_schema=fetch_input_schema(self._config.max_fetch_ids),
                output_schema=FETCH_OUTPUT_SCHEMA,
                arguments_model=FetchArguments,
                handler=self.fetch,
                limits={"max_fetch_ids": self._config.max_fetch_ids},
            ),
        ])

    def content_link(self, item_id: str) -> str:
        """Download URL for an item: the proxy route when a public base URL is set, else Graph."""
        if self._link_base_url:
            return f"{self._link_base_url}/items/{quote(item_id, safe='')}/content"
        return self._graph.content_url(item_id)

    def _resource_link(self, item: DriveItem, description: str) -> Dict[str, Any]:
        link = {
            "type": "resource_link",
            "uri": self.content_link(item.id),
            "name": item.name or item.id,
            "description": description,
        }
        if item.mime_type:
            link["mimeType"] = item.mime_type
        return link

    async def search(self, args: SearchArguments) -> Dict[str, Any]:
        top = args.top
        try:
            items = await self._cache.search(args.query, top)
        except UpstreamError as exc:
            logger.warning("[Tools] search failed: %s", exc.detail)
            return error_result(f"Search failed: {exc.detail}")

        content = [text_block(f"Found {len(items)} item(s). Showing up to {top}.")]
        results = []
        for item in items:
            content.append(self._resource_link(item, f"driveItem {item.id}"))
            results.append({
                "id": item.id,
                "title": item.name or item.id,
                "text": preview_text(item, self._config.preview_max_chars),
                "url": item.web_url or self.content_link(item.id),
            })
        return {"content": content, "structuredContent": {"results": results}, "isError": False}

    async def fetch(self, args: FetchArguments) -> Dict[str, Any]:
        targets = args.targets

        content: List[Dict[str, Any]] = []
        documents: List[Dict[str, Any]] = []
        failures = 0
        for item_id in targets:
            try:
                blocks, document = await self._fetch_one(item_id)
            except UpstreamError as exc:
                logger.warning("[Tools] fetch %s failed: %s", item_id, exc.detail)
                failures += 1
                blocks = [text_block(f"Fetch failed for {item_id}: {exc.detail}")]
                document = {"id": item_id, "kind": "error", "error": exc.detail}
            content.extend(blocks)
            documents.append(document)

        return {
            "content": content,
            "structuredContent": {"documents": documents},
            "isError": failures == len(targets),
        }

    async def _fetch_one(self, item_id: str) -> Tuple[List[Dict[str, Any]], Dict[str, Any]]:
        item = await self._graph.get_item(item_id)
        document: Dict[str, Any] = {
            "id": item.id or item_id,
            "title": item.name or None,
            "mimeType": item.mime_type,
            "size": item.size,
            "url": item.web_url,
        }
        if not item.is_file:
            document["kind"] = "not_file"
            return [text_block(f"Not a file: {item.name or item_id}")], document

        summary = f"(mime: {item.mime_type}, size: {item.size}B)"
        inline = item.is_text and item.size is not None and item.size < self._config.inline_max_bytes
        if inline:
            resp = await self._graph.download(item_id)
            text = resp.text
            document.update(kind="inline", text=text)
            return [text_block(f"# {item.name}\n{summary}"), text_block(text)], document

        document["kind"] = "link"
        document["url"] = self.content_link(item_id)
        return [
            text_block(f"Large/binary file. Returning link.\n{summary}"),
            self._resource_link(item, f"Download {item.name}"),
        ], document
