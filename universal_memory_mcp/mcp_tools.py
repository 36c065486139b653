"""
MCP Tool Definitions and Handlers for Universal Memory MCP

The catalog and the dispatcher are shared by the stdio server and the HTTP
bridge, so both transports expose identical tools and result envelopes.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, List

from mcp.shared.exceptions import McpError
from mcp.types import Tool, TextContent, ErrorData, INVALID_PARAMS, METHOD_NOT_FOUND, INTERNAL_ERROR

from .exceptions import ValidationError
from .memory_service import MemoryService
from .models import TODO_STATUSES, TODO_PRIORITIES, EXPORT_FORMATS, Todo

logger = logging.getLogger("universal-memory.mcp-tools")

_TAGS = {"type": "array", "items": {"type": "string"}}

TOOL_CATALOG: List[Dict[str, Any]] = [
    {
        "name": "add_memory",
        "description": "Store a new memory or fact for future reference",
        "inputSchema": {
            "type": "object",
            "properties": {
                "content": {"type": "string", "description": "The content or fact to remember"},
                "context": {
                    "type": "string",
                    "description": "Optional context about this memory (project, topic, etc.)",
                },
                "importance": {
                    "type": "number",
                    "description": "Importance level from 1-10 (optional, default: 5)",
                    "minimum": 1,
                    "maximum": 10,
                },
                "project": {"type": "string", "description": "Optional project name for organization"},
                "category": {
                    "type": "string",
                    "description": "Optional category for organizing memories within a project",
                },
                "tags": {**_TAGS, "description": "Optional tags for categorization"},
            },
            "required": ["content"],
        },
    },
    {
        "name": "search_memories",
        "description": "Search for relevant memories based on query",
        "inputSchema": {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "What to search for in memories"},
                "limit": {
                    "type": "number",
                    "description": "Maximum number of memories to return (default: 10)",
                    "minimum": 1,
                    "maximum": 20,
                },
                "context": {
                    "type": "string",
                    "description": "Optional context to filter memories (project, topic, etc.)",
                },
                "threshold": {
                    "type": "number",
                    "description": "Minimum relevance score from 0 to 1 (default: configured similarity threshold)",
                    "minimum": 0,
                    "maximum": 1,
                },
            },
            "required": ["query"],
        },
    },
    {
        "name": "get_memories",
        "description": "Get recent memories or all memories for a context",
        "inputSchema": {
            "type": "object",
            "properties": {
                "context": {"type": "string", "description": "Optional context to filter memories"},
                "limit": {
                    "type": "number",
                    "description": "Maximum number of memories to return (default: 10)",
                    "minimum": 1,
                    "maximum": 50,
                },
                "since": {"type": "string", "description": "ISO date string to get memories since this date"},
            },
        },
    },
    {
        "name": "extract_memories",
        "description": "Extract and store important facts from a conversation or text",
        "inputSchema": {
            "type": "object",
            "properties": {
                "text": {"type": "string", "description": "The text to extract memories from"},
                "context": {"type": "string", "description": "Context about this text (project, meeting, etc.)"},
            },
            "required": ["text"],
        },
    },
    {
        "name": "delete_memory",
        "description": "Delete a specific memory by ID",
        "inputSchema": {
            "type": "object",
            "properties": {"id": {"type": "string", "description": "The ID of the memory to delete"}},
            "required": ["id"],
        },
    },
    {
        "name": "list_projects",
        "description": "Show all projects with memories",
        "inputSchema": {"type": "object", "properties": {}},
    },
    {
        "name": "list_project_files",
        "description": "Show memory categories for a project",
        "inputSchema": {
            "type": "object",
            "properties": {
                "project": {"type": "string", "description": "The project name to list categories for"},
            },
            "required": ["project"],
        },
    },
    {
        "name": "memory_bank_update",
        "description": "Structured updates to project memories",
        "inputSchema": {
            "type": "object",
            "properties": {
                "project": {"type": "string", "description": "The project name"},
                "category": {"type": "string", "description": "Optional category for organizing memories"},
                "memories": {
                    "type": "array",
                    "description": "Array of memories to add",
                    "items": {
                        "type": "object",
                        "properties": {
                            "content": {"type": "string", "description": "The memory content"},
                            "importance": {
                                "type": "number",
                                "description": "Importance level from 1-10 (default: 5)",
                                "minimum": 1,
                                "maximum": 10,
                            },
                            "tags": {**_TAGS, "description": "Optional tags for categorization"},
                        },
                        "required": ["content"],
                    },
                },
            },
            "required": ["project", "memories"],
        },
    },
    {
        "name": "export_memory_bank",
        "description": "Export memories in different formats",
        "inputSchema": {
            "type": "object",
            "properties": {
                "project": {"type": "string", "description": "Optional project name to filter exports"},
                "category": {"type": "string", "description": "Optional category to filter exports"},
                "format": {"type": "string", "description": "Export format", "enum": list(EXPORT_FORMATS)},
            },
            "required": ["format"],
        },
    },
    {
        "name": "add_todo",
        "description": "Add a new todo item",
        "inputSchema": {
            "type": "object",
            "properties": {
                "content": {"type": "string", "description": "The todo content"},
                "status": {"type": "string", "description": "Todo status", "enum": list(TODO_STATUSES)},
                "priority": {"type": "string", "description": "Todo priority", "enum": list(TODO_PRIORITIES)},
                "project": {"type": "string", "description": "Optional project name"},
                "context": {"type": "string", "description": "Optional context"},
                "tags": {**_TAGS, "description": "Optional tags"},
            },
            "required": ["content"],
        },
    },
    {
        "name": "list_todos",
        "description": "List todos with optional filters",
        "inputSchema": {
            "type": "object",
            "properties": {
                "status": {"type": "string", "description": "Filter by status", "enum": list(TODO_STATUSES)},
                "priority": {"type": "string", "description": "Filter by priority", "enum": list(TODO_PRIORITIES)},
                "project": {"type": "string", "description": "Filter by project"},
                "context": {"type": "string", "description": "Filter by context"},
                "limit": {
                    "type": "number",
                    "description": "Maximum number of todos to return",
                    "minimum": 1,
                    "maximum": 50,
                },
            },
        },
    },
    {
        "name": "update_todo",
        "description": "Update an existing todo",
        "inputSchema": {
            "type": "object",
            "properties": {
                "id": {"type": "string", "description": "Todo ID"},
                "content": {"type": "string", "description": "Updated content"},
                "status": {"type": "string", "description": "Updated status", "enum": list(TODO_STATUSES)},
                "priority": {"type": "string", "description": "Updated priority", "enum": list(TODO_PRIORITIES)},
                "project": {"type": "string", "description": "Updated project"},
                "context": {"type": "string", "description": "Updated context"},
                "tags": {**_TAGS, "description": "Updated tags"},
            },
            "required": ["id"],
        },
    },
    {
        "name": "delete_todo",
        "description": "Delete a todo",
        "inputSchema": {
            "type": "object",
            "properties": {"id": {"type": "string", "description": "Todo ID to delete"}},
            "required": ["id"],
        },
    },
]

STATUS_ICONS = {"completed": "✅", "in_progress": "🔄", "pending": "⏳"}
PRIORITY_ICONS = {"high": "🔴", "medium": "🟡", "low": "🟢"}


def get_tool_definitions() -> List[Tool]:
    """Return list of available MCP tools"""
    return [
        Tool(name=entry["name"], description=entry["description"], inputSchema=entry["inputSchema"])
        for entry in TOOL_CATALOG
    ]


def text_result(text: str) -> Dict[str, Any]:
    return {"content": [{"type": "text", "text": text}]}


def _format_todo_line(index: int, todo: Todo) -> str:
    project = f" [{todo.project}]" if todo.project else ""
    context = f" ({todo.context})" if todo.context else ""
    tags = f" #{' #'.join(todo.tags)}" if todo.tags else ""
    return (
        f"{index}. {STATUS_ICONS.get(todo.status, '')} {PRIORITY_ICONS.get(todo.priority, '')} "
        f"{todo.content}{project}{context}{tags}\n"
        f"   ID: {todo.id} | Created: {todo.created_at}"
    )


class ToolDispatcher:
    """Routes a tool name plus arguments to the memory service.

    Arguments are checked against the catalog schema (required keys and enum
    values) before the service runs. Errors leave as McpError carrying the
    JSON-RPC code the transports report.
    """

    def __init__(self, service: MemoryService):
        self.service = service
        self._schemas = {entry["name"]: entry["inputSchema"] for entry in TOOL_CATALOG}
        self._handlers: Dict[str, Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]]] = {
            "add_memory": self._add_memory,
            "search_memories": self._search_memories,
            "get_memories": self._get_memories,
            "extract_memories": self._extract_memories,
            "delete_memory": self._delete_memory,
            "list_projects": self._list_projects,
            "list_project_files": self._list_project_files,
            "memory_bank_update": self._memory_bank_update,
            "export_memory_bank": self._export_memory_bank,
            "add_todo": self._add_todo,
            "list_todos": self._list_todos,
            "update_todo": self._update_todo,
            "delete_todo": self._delete_todo,
        }

    @property
    def tool_names(self) -> List[str]:
        return list(self._handlers)

    def _check_arguments(self, name: str, arguments: Any) -> Dict[str, Any]:
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise McpError(ErrorData(code=INVALID_PARAMS, message="Arguments must be an object"))

        schema = self._schemas[name]
        for key in schema.get("required", []):
            if arguments.get(key) is None:
                raise McpError(ErrorData(code=INVALID_PARAMS, message=f"Missing required parameter: {key}"))

        for key, prop in schema["properties"].items():
            value = arguments.get(key)
            if value is not None and "enum" in prop and value not in prop["enum"]:
                raise McpError(ErrorData(
                    code=INVALID_PARAMS,
                    message=f"Invalid value for {key}: {value!r} (expected one of {', '.join(prop['enum'])})",
                ))
        return arguments

    async def call(self, name: str, arguments: Any = None) -> Dict[str, Any]:
        """Execute a tool and return the {"content": [...]} envelope"""
        handler = self._handlers.get(name)
        if handler is None:
            raise McpError(ErrorData(code=METHOD_NOT_FOUND, message=f"Unknown tool: {name}"))

        arguments = self._check_arguments(name, arguments)
        try:
            return await handler(arguments)
        except ValidationError as e:
            raise McpError(ErrorData(code=INVALID_PARAMS, message=str(e)))
        except McpError:
            raise
        except Exception as e:
            logger.error(f"Tool execution error: {name}: {e}", exc_info=True)
            raise McpError(ErrorData(code=INTERNAL_ERROR, message=f"Error executing tool {name}: {e}"))

    async def call_content(self, name: str, arguments: Any = None) -> List[TextContent]:
        """Same as call(), shaped for the MCP server's call_tool handler"""
        envelope = await self.call(name, arguments)
        return [TextContent(type="text", text=item["text"]) for item in envelope["content"]]

    # ------------------------------------------------------------------
    # Memory tools
    # ------------------------------------------------------------------

    async def _add_memory(self, args: Dict[str, Any]) -> Dict[str, Any]:
        memory = await self.service.add_memory(
            content=args["content"],
            context=args.get("context"),
            importance=args.get("importance"),
            project=args.get("project"),
            category=args.get("category"),
            tags=args.get("tags"),
        )
        return text_result(f"Memory stored successfully with ID: {memory.id}\nContent: {memory.content}")

    async def _search_memories(self, args: Dict[str, Any]) -> Dict[str, Any]:
        query = args["query"]
        results = await self.service.search_memories(
            query,
            limit=args.get("limit"),
            context=args.get("context"),
            threshold=args.get("threshold"),
        )
        if not results:
            return text_result(f'No memories found for query: "{query}"')

        lines = [
            f"[{r.memory.timestamp}] {r.memory.context}: {r.memory.content} "
            f"(relevance: {r.similarity * 100:.1f}%)"
            for r in results
        ]
        return text_result(f"Found {len(results)} relevant memories:\n\n" + "\n\n".join(lines))

    async def _get_memories(self, args: Dict[str, Any]) -> Dict[str, Any]:
        context = args.get("context")
        memories = await self.service.get_memories(
            context=context, limit=args.get("limit"), since=args.get("since")
        )
        if not memories:
            return text_result(f'No memories found for context: "{context}"' if context else "No memories found")

        lines = [f"[{m.timestamp}] {m.context}: {m.content}" for m in memories]
        return text_result(f"Found {len(memories)} memories:\n\n" + "\n\n".join(lines))

    async def _extract_memories(self, args: Dict[str, Any]) -> Dict[str, Any]:
        memories = await self.service.extract_memories(args["text"], context=args.get("context"))
        summary = "\n".join(f"- {m.content}" for m in memories)
        return text_result(f"Extracted and stored {len(memories)} memories:\n\n{summary}")

    async def _delete_memory(self, args: Dict[str, Any]) -> Dict[str, Any]:
        memory_id = args["id"]
        if await self.service.delete_memory(memory_id):
            return text_result(f'Memory with ID "{memory_id}" deleted successfully')
        return text_result(f'Memory with ID "{memory_id}" not found')

    async def _list_projects(self, args: Dict[str, Any]) -> Dict[str, Any]:
        projects = await self.service.list_projects()
        if not projects:
            return text_result("No projects with memories found.")

        blocks = [
            f"**{p.project}** ({p.total_memories} memories)\n"
            f"  Categories: {', '.join(p.categories) if p.categories else 'None'}\n"
            f"  Last updated: {p.last_updated}"
            for p in projects
        ]
        return text_result(f"Found {len(projects)} projects with memories:\n\n" + "\n\n".join(blocks))

    async def _list_project_files(self, args: Dict[str, Any]) -> Dict[str, Any]:
        project = args["project"]
        categories = await self.service.list_project_files(project)
        if not categories:
            return text_result(f'No memory categories found for project "{project}".')
        listing = "\n".join(f"• {c}" for c in categories)
        return text_result(f'Memory categories for project "{project}":\n\n{listing}')

    async def _memory_bank_update(self, args: Dict[str, Any]) -> Dict[str, Any]:
        project = args["project"]
        category = args.get("category")
        stored = await self.service.update_memory_bank(project, args["memories"], category=category)
        in_category = f' in category "{category}"' if category else ""
        return text_result(
            f'Successfully updated memory bank for project "{project}"{in_category} '
            f"with {len(stored)} memories."
        )

    async def _export_memory_bank(self, args: Dict[str, Any]) -> Dict[str, Any]:
        fmt = args["format"]
        project = args.get("project")
        category = args.get("category")
        export, rendered = await self.service.export_memory_bank(fmt, project=project, category=category)

        filters = []
        if project:
            filters.append(f"project: {project}")
        if category:
            filters.append(f"category: {category}")
        filter_text = f" ({', '.join(filters)})" if filters else ""
        return text_result(
            f"Exported {len(export.memories)} memories{filter_text} in {fmt.upper()} format:"
            f"\n\n```{fmt}\n{rendered}\n```"
        )

    # ------------------------------------------------------------------
    # Todo tools
    # ------------------------------------------------------------------

    async def _add_todo(self, args: Dict[str, Any]) -> Dict[str, Any]:
        todo = await self.service.add_todo(
            content=args["content"],
            status=args.get("status"),
            priority=args.get("priority"),
            project=args.get("project"),
            context=args.get("context"),
            tags=args.get("tags"),
        )
        return text_result(
            f"Todo added successfully with ID: {todo.id}\nContent: {todo.content}\n"
            f"Status: {todo.status}\nPriority: {todo.priority}"
        )

    async def _list_todos(self, args: Dict[str, Any]) -> Dict[str, Any]:
        todos = await self.service.list_todos(
            status=args.get("status"),
            priority=args.get("priority"),
            project=args.get("project"),
            context=args.get("context"),
            limit=args.get("limit"),
        )
        if not todos:
            return text_result("No todos found matching the criteria.")
        lines = [_format_todo_line(i, todo) for i, todo in enumerate(todos, start=1)]
        return text_result(f"Found {len(todos)} todos:\n\n" + "\n\n".join(lines))

    async def _update_todo(self, args: Dict[str, Any]) -> Dict[str, Any]:
        todo_id = args["id"]
        updates = {k: v for k, v in args.items() if k != "id" and k in self._schemas["update_todo"]["properties"]}
        todo = await self.service.update_todo(todo_id, **updates)
        if todo is None:
            return text_result(f"Todo with ID {todo_id} not found.")
        return text_result(
            f"Todo updated successfully:\nID: {todo.id}\nContent: {todo.content}\n"
            f"Status: {todo.status}\nPriority: {todo.priority}"
        )

    async def _delete_todo(self, args: Dict[str, Any]) -> Dict[str, Any]:
        todo_id = args["id"]
        if await self.service.delete_todo(todo_id):
            return text_result(f"Todo with ID {todo_id} deleted successfully.")
        return text_result(f"Todo with ID {todo_id} not found.")
