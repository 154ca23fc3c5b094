"""
Skill loader and tool registry.

A skill is a directory holding a skill.json manifest and a Python module:

    skills/
        echo/
            skill.json   {"id": "echo", "name": "Echo", "version": "1.0.0",
                          "runtimeApiVersion": "1", "main": "main.py"}
            main.py      def list_tools(): ...
                         def execute(call, context): ...

list_tools() returns dicts with name, description and input_schema (a JSON
Schema object; "inputSchema" is accepted too) and optionally mutates_state.
execute() receives a SkillToolCall and a SkillRuntimeContext and returns a
SkillToolResult, a {"content": ...} dict or a string. It may be async.

Tools are namespaced "<skill id>.<tool name>". The registry is built once at
startup and never changes afterwards.
"""

import asyncio
import importlib.util
import inspect
import json
import logging
import os
import sys
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

CURRENT_RUNTIME_API_VERSION = "1"

_MANIFEST_FIELDS = ("id", "name", "version", "runtimeApiVersion", "main")


class SkillError(Exception):
    """Tool lookup or execution failed."""


class SkillLoadError(Exception):
    """A skill directory could not be loaded."""


@dataclass
class SkillManifest:
    id: str
    name: str
    version: str
    runtime_api_version: str
    main: str


@dataclass
class ToolDefinition:
    """A tool as exposed to the LLM."""

    name: str
    description: str
    input_schema: Dict[str, Any]
    mutates_state: bool = False


@dataclass
class SkillToolCall:
    name: str
    arguments_json: str

    def arguments(self) -> Dict[str, Any]:
        """Decode arguments_json; an empty string means no arguments."""
        if not self.arguments_json:
            return {}
        return json.loads(self.arguments_json)


@dataclass
class SkillToolResult:
    content: str
    metadata: Optional[Dict[str, Any]] = None


@dataclass
class SkillRuntimeContext:
    """Host-supplied context handed to execute(). Skills treat it as read-only."""

    now_iso: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    config: Dict[str, Any] = field(default_factory=dict)
    http: Any = None


@dataclass
class _ToolEntry:
    module: Any
    definition: ToolDefinition
    config: Dict[str, Any]


def _coerce_result(name: str, raw: Any) -> SkillToolResult:
    if isinstance(raw, SkillToolResult):
        return raw
    if isinstance(raw, str):
        return SkillToolResult(content=raw)
    if isinstance(raw, dict) and isinstance(raw.get("content"), str):
        return SkillToolResult(content=raw["content"], metadata=raw.get("metadata"))
    raise SkillError(f"tool {name} returned an invalid result: {raw!r}")


class SkillRegistry:
    """Immutable map of namespaced tool name -> skill module."""

    def __init__(self, entries: Optional[Dict[str, _ToolEntry]] = None):
        self._entries = dict(entries or {})
        self._tools = tuple(e.definition for e in self._entries.values())
        self._wire_names = {wire_name(name): name for name in self._entries}

    @property
    def tools(self) -> List[ToolDefinition]:
        return list(self._tools)

    def __len__(self):
        return len(self._tools)

    def __contains__(self, name):
        return name in self._entries

    def is_mutating(self, name: str) -> bool:
        entry = self._entries.get(name)
        return entry.definition.mutates_state if entry else False

    def execute_tool(
        self,
        name: str,
        arguments_json: str,
        context: Optional[SkillRuntimeContext] = None,
    ) -> SkillToolResult:
        """
        Run one tool.

        Args:
            name: Namespaced tool name ("echo.say")
            arguments_json: JSON-encoded arguments, parsed by the skill itself
            context: Runtime context; the skill's own config is injected

        Raises:
            SkillError: Unknown tool, or the tool raised / returned garbage
        """
        entry = self._entries.get(name)
        if entry is None:
            raise SkillError(f"unknown tool: {name}")

        skill_context = replace(context or SkillRuntimeContext(), config=entry.config)

        try:
            raw = entry.module.execute(SkillToolCall(name, arguments_json), skill_context)
            if inspect.isawaitable(raw):
                raw = asyncio.run(raw)
        except Exception as e:
            raise SkillError(f"tool {name} threw: {e}") from e

        return _coerce_result(name, raw)

    def to_openai_tools(self) -> List[Dict]:
        """
        Tool definitions in OpenAI function-calling format.

        Function names may not contain ".", so "echo.say" goes on the wire
        as "echo__say". Use resolve_wire_name() to map back.
        """
        return [
            {
                "type": "function",
                "function": {
                    "name": wire_name(t.name),
                    "description": t.description,
                    "parameters": t.input_schema,
                },
            }
            for t in self._tools
        ]

    def resolve_wire_name(self, name: str) -> str:
        """Map a function name from the model back to the namespaced tool name."""
        if name in self._entries:
            return name
        if name in self._wire_names:
            return self._wire_names[name]
        # unknown; keep it readable in the "unknown tool" error
        return name.replace("__", ".")


def wire_name(name: str) -> str:
    """Function name sent to the model for a namespaced tool name."""
    return name.replace(".", "__")


def create_empty_registry() -> SkillRegistry:
    return SkillRegistry()


def _read_manifest(skill_path: str) -> SkillManifest:
    manifest_path = os.path.join(skill_path, "skill.json")
    if not os.path.isfile(manifest_path):
        raise SkillLoadError(f"missing skill.json in {skill_path}")

    try:
        with open(manifest_path) as f:
            raw = json.load(f)
    except (OSError, ValueError) as e:
        raise SkillLoadError(f"invalid skill.json in {skill_path}: {e}") from e

    if not isinstance(raw, dict):
        raise SkillLoadError(f"invalid skill.json in {skill_path}: must be a JSON object")

    for key in _MANIFEST_FIELDS:
        value = raw.get(key)
        if not isinstance(value, str) or not value:
            raise SkillLoadError(
                f'invalid skill.json in {skill_path}: "{key}" must be a non-empty string'
            )

    return SkillManifest(
        id=raw["id"],
        name=raw["name"],
        version=raw["version"],
        runtime_api_version=raw["runtimeApiVersion"],
        main=raw["main"],
    )


def _import_module(manifest: SkillManifest, skill_path: str):
    module_path = os.path.join(skill_path, manifest.main)
    module_name = f"_skill_{manifest.id.replace('-', '_')}"
    try:
        spec = importlib.util.spec_from_file_location(module_name, module_path)
        if spec is None or spec.loader is None:
            raise ImportError(f"cannot import {module_path}")
        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        spec.loader.exec_module(module)
    except Exception as e:
        sys.modules.pop(module_name, None)
        raise SkillLoadError(f"skill {manifest.id}: failed to load {manifest.main}: {e}") from e

    if not callable(getattr(module, "list_tools", None)) or not callable(
        getattr(module, "execute", None)
    ):
        raise SkillLoadError(
            f"skill {manifest.id}: module must define list_tools() and execute()"
        )
    return module


def _load_skill(
    skill_path: str,
    skill_config: Dict[str, Dict[str, Any]],
    entries: Dict[str, _ToolEntry],
) -> None:
    manifest = _read_manifest(skill_path)

    if manifest.runtime_api_version != CURRENT_RUNTIME_API_VERSION:
        raise SkillLoadError(
            f'skill {manifest.id}: unsupported runtimeApiVersion "{manifest.runtime_api_version}" '
            f'(expected "{CURRENT_RUNTIME_API_VERSION}")'
        )

    module = _import_module(manifest, skill_path)

    try:
        raw_tools = module.list_tools()
    except Exception as e:
        raise SkillLoadError(f"skill {manifest.id}: list_tools() threw: {e}") from e

    if not isinstance(raw_tools, list):
        raise SkillLoadError(
            f"skill {manifest.id}: invalid tool definition: list_tools() must return a list, "
            f"got {type(raw_tools).__name__}"
        )

    config = skill_config.get(manifest.id, {})
    taken_wire_names = {wire_name(name): name for name in entries}
    for tool in raw_tools:
        if not isinstance(tool, dict) or not isinstance(tool.get("name"), str) or not tool["name"]:
            raise SkillLoadError(
                f"skill {manifest.id}: invalid tool definition {tool!r}: needs a non-empty string name"
            )

        qualified = f"{manifest.id}.{tool['name']}"
        if qualified in entries:
            raise SkillLoadError(f"duplicate tool name: {qualified}")
        clash = taken_wire_names.get(wire_name(qualified))
        if clash is not None:
            raise SkillLoadError(
                f"tool name {qualified} collides with {clash} as function name {wire_name(qualified)}"
            )
        taken_wire_names[wire_name(qualified)] = qualified

        schema = tool.get("input_schema", tool.get("inputSchema", {"type": "object", "properties": {}}))
        entries[qualified] = _ToolEntry(
            module=module,
            definition=ToolDefinition(
                name=qualified,
                description=tool.get("description", ""),
                input_schema=schema,
                mutates_state=bool(tool.get("mutates_state", tool.get("mutatesState", False))),
            ),
            config=config,
        )

    logger.info(f"Loaded skill {manifest.id} v{manifest.version} ({len(raw_tools)} tools)")


def load_skills(
    skill_dirs: List[str],
    skill_config: Optional[Dict[str, Dict[str, Any]]] = None,
) -> SkillRegistry:
    """
    Load every skill under the given directories.

    Args:
        skill_dirs: Directories whose immediate subdirectories are skills
        skill_config: Per-skill config keyed by skill id

    Returns:
        SkillRegistry with all tools

    Raises:
        SkillLoadError: Missing directory, bad manifest, unsupported runtime
            API version, module without list_tools/execute, duplicate tool
    """
    entries: Dict[str, _ToolEntry] = {}

    for skill_dir in skill_dirs:
        if not os.path.isdir(skill_dir):
            raise SkillLoadError(f"skill directory does not exist: {skill_dir}")

        for name in sorted(os.listdir(skill_dir)):
            skill_path = os.path.join(skill_dir, name)
            if not os.path.isdir(skill_path) or name.startswith((".", "__")):
                continue
            _load_skill(skill_path, skill_config or {}, entries)

    return SkillRegistry(entries)
