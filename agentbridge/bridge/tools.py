"""Static tool catalog advertised to agent CLIs over ``tools/list``.

The bridge advertises these so the agent CLI recognises an IDE peer. None of
them are executed here: ``tools/call`` is always answered with an error.
"""

from __future__ import annotations

from typing import Any


def _tool(name: str, description: str, properties: dict[str, Any] | None = None,
          required: list[str] | None = None) -> dict[str, Any]:
    schema: dict[str, Any] = {"type": "object", "properties": properties or {}}
    if required:
        schema["required"] = required
    return {"name": name, "description": description, "inputSchema": schema}


_FILE_PATH = {"filePath": {"type": "string", "description": "Absolute path of the file"}}

TOOL_CATALOG: list[dict[str, Any]] = [
    _tool(
        "openFile",
        "Open a file in the editor and optionally select a range of text",
        {
            **_FILE_PATH,
            "preview": {"type": "boolean", "description": "Open in preview mode"},
            "startText": {"type": "string", "description": "Text marking the start of the selection"},
            "endText": {"type": "string", "description": "Text marking the end of the selection"},
            "makeFrontmost": {"type": "boolean", "description": "Focus the opened editor"},
        },
        ["filePath"],
    ),
    _tool(
        "openDiff",
        "Open a diff view comparing a file with proposed new contents",
        {
            "old_file_path": {"type": "string"},
            "new_file_path": {"type": "string"},
            "new_file_contents": {"type": "string"},
            "tab_name": {"type": "string"},
        },
        ["old_file_path", "new_file_path", "new_file_contents", "tab_name"],
    ),
    _tool("getCurrentSelection", "Get the current text selection in the active editor"),
    _tool("getLatestSelection", "Get the most recent text selection, even if the editor lost focus"),
    _tool("getOpenEditors", "List the editors currently open in the workspace"),
    _tool("getWorkspaceFolders", "List the workspace folders open in the application"),
    _tool(
        "getDiagnostics",
        "Get language diagnostics for a file or the whole workspace",
        {"uri": {"type": "string", "description": "File URI; omit for all files"}},
    ),
    _tool("checkDocumentDirty", "Check whether a document has unsaved changes", _FILE_PATH, ["filePath"]),
    _tool("saveDocument", "Save a document with unsaved changes", _FILE_PATH, ["filePath"]),
    _tool(
        "close_tab",
        "Close an editor tab by name",
        {"tab_name": {"type": "string"}},
        ["tab_name"],
    ),
    _tool("closeAllDiffTabs", "Close every open diff tab"),
]


def tool_names() -> list[str]:
    return [t["name"] for t in TOOL_CATALOG]
