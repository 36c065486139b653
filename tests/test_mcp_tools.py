"""Tests for the tool catalog and dispatcher."""

import asyncio

import pytest
from mcp.shared.exceptions import McpError
from mcp.types import INTERNAL_ERROR, INVALID_PARAMS, METHOD_NOT_FOUND, Tool

from universal_memory_mcp.mcp_tools import TOOL_CATALOG, ToolDispatcher, get_tool_definitions

EXPECTED_TOOLS = [
    "add_memory",
    "search_memories",
    "get_memories",
    "extract_memories",
    "delete_memory",
    "list_projects",
    "list_project_files",
    "memory_bank_update",
    "export_memory_bank",
    "add_todo",
    "list_todos",
    "update_todo",
    "delete_todo",
]


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def dispatcher(service):
    return ToolDispatcher(service)


def text_of(envelope):
    assert list(envelope) == ["content"]
    assert envelope["content"][0]["type"] == "text"
    return envelope["content"][0]["text"]


def error_code(dispatcher, name, arguments):
    with pytest.raises(McpError) as excinfo:
        run(dispatcher.call(name, arguments))
    return excinfo.value.error.code, excinfo.value.error.message


class TestCatalog:
    def test_names(self):
        assert [t["name"] for t in TOOL_CATALOG] == EXPECTED_TOOLS

    def test_tool_definitions(self):
        tools = get_tool_definitions()
        assert all(isinstance(t, Tool) for t in tools)
        assert tools[0].inputSchema["required"] == ["content"]

    def test_dispatcher_covers_catalog(self, dispatcher):
        assert dispatcher.tool_names == EXPECTED_TOOLS


class TestErrors:
    def test_unknown_tool(self, dispatcher):
        code, message = error_code(dispatcher, "drop_database", {})
        assert code == METHOD_NOT_FOUND
        assert message == "Unknown tool: drop_database"

    def test_missing_required(self, dispatcher):
        code, message = error_code(dispatcher, "add_memory", {"context": "x"})
        assert code == INVALID_PARAMS
        assert "content" in message

    def test_bad_enum(self, dispatcher):
        code, _ = error_code(dispatcher, "export_memory_bank", {"format": "xml"})
        assert code == INVALID_PARAMS

    def test_service_validation(self, dispatcher):
        code, message = error_code(dispatcher, "add_memory", {"content": "x", "importance": 42})
        assert code == INVALID_PARAMS
        assert "Importance" in message

    def test_store_failure_is_internal(self, dispatcher, service):
        service.store.close()
        code, message = error_code(dispatcher, "add_memory", {"content": "x"})
        assert code == INTERNAL_ERROR
        assert message.startswith("Error executing tool add_memory:")


class TestMemoryTools:
    def test_add_search_get_delete(self, dispatcher):
        added = text_of(run(dispatcher.call("add_memory", {"content": "Use PostgreSQL", "context": "db"})))
        assert added.startswith("Memory stored successfully with ID: ")
        memory_id = added.split("ID: ")[1].split("\n")[0]

        found = text_of(run(dispatcher.call("search_memories", {"query": "PostgreSQL", "threshold": 0.1})))
        assert found.startswith("Found 1 relevant memories:")
        assert "(relevance: 100.0%)" in found

        listed = text_of(run(dispatcher.call("get_memories", {"context": "db"})))
        assert "db: Use PostgreSQL" in listed

        deleted = text_of(run(dispatcher.call("delete_memory", {"id": memory_id})))
        assert deleted == f'Memory with ID "{memory_id}" deleted successfully'

    def test_not_found_is_text(self, dispatcher):
        text = text_of(run(dispatcher.call("delete_memory", {"id": "nonexistent-id"})))
        assert text == 'Memory with ID "nonexistent-id" not found'
        assert text_of(run(dispatcher.call("search_memories", {"query": "nothing"}))) == \
            'No memories found for query: "nothing"'

    def test_memory_bank_and_export(self, dispatcher):
        text = text_of(run(dispatcher.call("memory_bank_update", {
            "project": "atlas",
            "category": "decisions",
            "memories": [{"content": "Adopt FastAPI", "importance": 8}, {"content": "Drop Flask"}],
        })))
        assert text == 'Successfully updated memory bank for project "atlas" in category "decisions" with 2 memories.'

        projects = text_of(run(dispatcher.call("list_projects", {})))
        assert "**atlas** (2 memories)" in projects

        files = text_of(run(dispatcher.call("list_project_files", {"project": "atlas"})))
        assert files == 'Memory categories for project "atlas":\n\n• decisions'

        export = text_of(run(dispatcher.call("export_memory_bank", {"format": "csv", "project": "atlas"})))
        assert export.startswith("Exported 2 memories (project: atlas) in CSV format:\n\n```csv\n\"ID\"")
        assert export.endswith("\n```")

    def test_extract(self, dispatcher):
        text = text_of(run(dispatcher.call("extract_memories", {"text": "The team agreed to release every Tuesday."})))
        assert text.startswith("Extracted and stored 1 memories:")


class TestTodoTools:
    def test_lifecycle(self, dispatcher):
        added = text_of(run(dispatcher.call("add_todo", {"content": "Write tests", "priority": "high"})))
        todo_id = added.split("ID: ")[1].split("\n")[0]
        assert "Status: pending" in added

        listed = text_of(run(dispatcher.call("list_todos", {"priority": "high"})))
        assert "⏳ 🔴 Write tests" in listed

        updated = text_of(run(dispatcher.call("update_todo", {"id": todo_id, "status": "completed"})))
        assert "Status: completed" in updated

        assert text_of(run(dispatcher.call("delete_todo", {"id": todo_id}))) == \
            f"Todo with ID {todo_id} deleted successfully."
        assert text_of(run(dispatcher.call("update_todo", {"id": todo_id, "status": "pending"}))) == \
            f"Todo with ID {todo_id} not found."

    def test_empty_list(self, dispatcher):
        assert text_of(run(dispatcher.call("list_todos", None))) == "No todos found matching the criteria."
