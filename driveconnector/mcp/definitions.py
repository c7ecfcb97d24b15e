"""
Tool identifiers and their JSON-Schema contracts.

The schemas are returned verbatim by ``tools/list`` and are part of the wire
contract. Their limits are built from ToolsConfig, the same values the
argument models enforce.
"""

from enum import Enum
from typing import Any, Dict


class ToolName(str, Enum):
    SEARCH = "search"
    FETCH = "fetch"


SEARCH_TITLE = "Search SharePoint drive"
SEARCH_DESCRIPTION_FOLDER = "Search within the specified folder only"
SEARCH_DESCRIPTION_ROOT = "Search the entire document library (drive root)"

FETCH_TITLE = "Fetch a file by item id"
FETCH_DESCRIPTION = "Return file content inline (if text & small), else a download link"

DEFAULT_TOP = 20
MAX_TOP = 50
MAX_FETCH_IDS = 10
PREVIEW_MAX_CHARS = 500


def search_input_schema(default_top: int = DEFAULT_TOP, max_top: int = MAX_TOP) -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": {
            "query": {"type": "string", "minLength": 1, "description": "Search query."},
            "top": {
                "type": "integer",
                "minimum": 1,
                "maximum": max_top,
                "default": default_top,
                "description": f"Maximum number of results (default {default_top}, max {max_top}).",
            },
        },
        "required": ["query"],
    }


def search_output_schema(preview_max_chars: int = PREVIEW_MAX_CHARS) -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": {
            "results": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "id": {"type": "string"},
                        "title": {"type": "string"},
                        "text": {"type": "string", "maxLength": preview_max_chars},
                        "url": {"type": ["string", "null"]},
                    },
                    "required": ["id", "title", "text", "url"],
                },
            },
        },
        "required": ["results"],
    }


def fetch_input_schema(max_fetch_ids: int = MAX_FETCH_IDS) -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": {
            "id": {"type": "string", "minLength": 1, "description": "Drive item id."},
            "ids": {
                "type": "array",
                "items": {"type": "string", "minLength": 1},
                "minItems": 1,
                "maxItems": max_fetch_ids,
                "description": "Several drive item ids, fetched independently.",
            },
        },
        "anyOf": [{"required": ["id"]}, {"required": ["ids"]}],
    }


FETCH_OUTPUT_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "documents": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "id": {"type": "string"},
                    "title": {"type": ["string", "null"]},
                    "kind": {"type": "string", "enum": ["inline", "link", "not_file", "error"]},
                    "mimeType": {"type": ["string", "null"]},
                    "size": {"type": ["integer", "null"]},
                    "url": {"type": ["string", "null"]},
                    "text": {"type": "string"},
                    "error": {"type": "string"},
                },
                "required": ["id", "kind"],
            },
        },
    },
    "required": ["documents"],
}
