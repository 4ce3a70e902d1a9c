import pytest
from pydantic import BaseModel

from auracle.errors import InterventionRequiredError, ToolNotFoundError
from auracle.tools import SecurityGuard, ToolRegistry


class AddInput(BaseModel):
    a: int
    b: int


class PathInput(BaseModel):
    path: str


@pytest.mark.asyncio
async def test_registry_logs_once_for_execute(monkeypatch) -> None:
    logs: list[str] = []

    def _capture(message: str, *args: object) -> None:
        logs.append(message)

    monkeypatch.setattr("auracle.tools.registry.logger.info", _capture)
    monkeypatch.setattr("auracle.tools.registry.logger.exception", _capture)

    registry = ToolRegistry()

    @registry.register(name="math_add", short_description="add", model=AddInput)
    def add(params: AddInput) -> int:
        return params.a + params.b

    result = await registry.execute("math_add", kwargs={"a": 1, "b": 2})
    assert result == 3
    assert logs.count("tool.call.start name={} {{ {} }}") == 1
    assert logs.count("tool.call.end name={} duration={:.3f}ms") == 1


@pytest.mark.asyncio
async def test_registry_logs_error_and_reraises(monkeypatch) -> None:
    logs: list[str] = []

    def _capture(message: str, *args: object) -> None:
        logs.append(message)

    monkeypatch.setattr("auracle.tools.registry.logger.info", _capture)
    monkeypatch.setattr("auracle.tools.registry.logger.exception", _capture)

    registry = ToolRegistry()

    @registry.register(name="boom", short_description="boom", model=PathInput)
    def boom(params: PathInput) -> str:
        raise RuntimeError(params.path)

    with pytest.raises(RuntimeError, match="README.md"):
        await registry.execute("boom", kwargs={"path": "README.md"})
    assert logs.count("tool.call.error name={}") == 1
    assert logs.count("tool.call.end name={} duration={:.3f}ms") == 1


@pytest.mark.asyncio
async def test_registry_unknown_tool_raises() -> None:
    registry = ToolRegistry()

    with pytest.raises(ToolNotFoundError) as excinfo:
        await registry.execute("missing", kwargs={})
    assert str(excinfo.value) == "tool 'missing' not found"
    with pytest.raises(ToolNotFoundError):
        registry.metadata("missing")


def test_registry_metadata_and_prompt_definitions() -> None:
    registry = ToolRegistry()

    @registry.register(name="fs_read", short_description="read a file", model=PathInput, permissions=["read"])
    def read(params: PathInput) -> str:
        """Read a file relative to the workspace."""
        return params.path

    @registry.register(name="fs_list", short_description="list a dir", model=PathInput)
    def listing(params: PathInput) -> str:
        return params.path

    metadata = registry.metadata("fs_read")
    assert metadata.name == "fs_read"
    assert metadata.description == "read a file"
    assert "path" in metadata.parameters.get("properties", {})

    assert registry.names() == ["fs_list", "fs_read"]
    assert registry.prompt_definitions(["fs_read", "unknown", "fs_list"]) == (
        "- fs_read: read a file\n- fs_list: list a dir\n"
    )
    detail = registry.detail("fs_read")
    assert "detail: Read a file relative to the workspace." in detail
    assert "permissions: read" in detail


def test_registering_same_name_replaces_tool() -> None:
    registry = ToolRegistry()

    @registry.register(name="echo", short_description="first", model=PathInput)
    def first(params: PathInput) -> str:
        return "first"

    @registry.register(name="echo", short_description="second", model=PathInput)
    def second(params: PathInput) -> str:
        return "second"

    assert registry.names() == ["echo"]
    assert registry.get("echo").short_description == "second"


@pytest.mark.asyncio
async def test_guard_blocks_unapproved_permissions_before_running() -> None:
    calls: list[str] = []
    guard = SecurityGuard()
    registry = ToolRegistry(guard)

    @registry.register(name="danger", short_description="danger", model=PathInput, permissions=["execute"])
    def danger(params: PathInput) -> str:
        calls.append(params.path)
        return "ran"

    with pytest.raises(InterventionRequiredError) as excinfo:
        await registry.execute("danger", kwargs={"path": "x"})
    assert excinfo.value.tool == "danger"
    assert calls == []

    guard.approve("danger")
    assert await registry.execute("danger", kwargs={"path": "x"}) == "ran"
    assert calls == ["x"]
