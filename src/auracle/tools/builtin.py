"""Built-in core tool definitions."""

from __future__ import annotations

import json
import subprocess
from dataclasses import asdict
from pathlib import Path
from typing import TYPE_CHECKING
from urllib import error as urllib_error
from urllib import parse as urllib_parse
from urllib.request import Request, urlopen

import html2markdown
from pydantic import BaseModel, Field

from auracle.tools.registry import ToolRegistry
from auracle.tools.security import PERM_EXECUTE, PERM_NETWORK, PERM_READ, PERM_WRITE

if TYPE_CHECKING:
    from auracle.system.monitor import SystemMonitor

CORE_TOOLS: tuple[str, ...] = (
    "sys_read_file",
    "sys_write_file",
    "sys_list_files",
    "sys_shell_exec",
    "sys_info",
    "http_fetch",
)
WEB_REQUEST_TIMEOUT_SECONDS = 20
SHELL_TIMEOUT_SECONDS = 120
MAX_FETCH_BYTES = 1_000_000
WEB_USER_AGENT = "auracle-web-tools/1.0"


class ReadFileInput(BaseModel):
    path: str = Field(..., description="Absolute or relative path to the file")


class WriteFileInput(BaseModel):
    path: str = Field(..., description="Path to the file to write")
    content: str = Field(..., description="Content to write to the file")


class ListFilesInput(BaseModel):
    path: str = Field(default=".", description="Path to list files from")


class ShellExecInput(BaseModel):
    command: str = Field(..., description="The command to execute")
    args: list[str] = Field(default_factory=list, description="Arguments for the command")


class FetchInput(BaseModel):
    url: str = Field(..., description="The URL to fetch")


class EmptyInput(BaseModel):
    pass


def _resolve_path(workspace: Path, raw: str) -> Path:
    path = Path(raw).expanduser()
    if path.is_absolute():
        return path
    return workspace / path


def _normalize_url(raw_url: str) -> str | None:
    normalized = raw_url.strip()
    if not normalized:
        return None

    parsed = urllib_parse.urlparse(normalized)
    if parsed.scheme and parsed.netloc:
        if parsed.scheme not in {"http", "https"}:
            return None
        return normalized

    if parsed.scheme == "" and parsed.netloc == "" and parsed.path:
        with_scheme = f"https://{normalized}"
        parsed = urllib_parse.urlparse(with_scheme)
        if parsed.netloc:
            return with_scheme

    return None


def _html_to_markdown(content: str) -> str:
    rendered = html2markdown.convert(content)
    lines = [line.rstrip() for line in rendered.splitlines()]
    return "\n".join(line for line in lines if line.strip())


def register_core_tools(registry: ToolRegistry, *, workspace: Path, monitor: SystemMonitor | None = None) -> None:
    """Register the core file, shell, system and web tools."""

    register = registry.register

    @register(
        name="sys_read_file",
        short_description="Read the content of a file from the filesystem.",
        model=ReadFileInput,
        permissions=[PERM_READ],
    )
    def read_file(params: ReadFileInput) -> str:
        return _resolve_path(workspace, params.path).read_text(encoding="utf-8")

    @register(
        name="sys_write_file",
        short_description="Create or overwrite a file with specific content.",
        model=WriteFileInput,
        permissions=[PERM_WRITE],
    )
    def write_file(params: WriteFileInput) -> str:
        file_path = _resolve_path(workspace, params.path)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_text(params.content, encoding="utf-8")
        return "File written successfully"

    @register(
        name="sys_list_files",
        short_description="List files and directories in a given path.",
        model=ListFilesInput,
        permissions=[PERM_READ],
    )
    def list_files(params: ListFilesInput) -> str:
        base = _resolve_path(workspace, params.path)
        entries = sorted(base.iterdir(), key=lambda item: item.name)
        return "\n".join(f"{entry.name}/" if entry.is_dir() else entry.name for entry in entries) or "(empty)"

    @register(
        name="sys_shell_exec",
        short_description="Execute a shell command. Returns stdout and stderr.",
        model=ShellExecInput,
        permissions=[PERM_EXECUTE],
    )
    def shell_exec(params: ShellExecInput) -> str:
        """Run one command without a shell. Non-zero exit raises an error."""
        completed = subprocess.run(  # noqa: S603
            [params.command, *params.args],
            cwd=workspace,
            capture_output=True,
            text=True,
            timeout=SHELL_TIMEOUT_SECONDS,
        )
        output = ((completed.stdout or "") + (completed.stderr or "")).strip()
        if completed.returncode != 0:
            raise RuntimeError(f"command failed: exit={completed.returncode} (output: {output})")
        return output or "(no output)"

    if monitor is not None:

        @register(
            name="sys_info",
            short_description="Get a snapshot of current system resource usage (CPU, Memory) and working directory.",
            model=EmptyInput,
            permissions=[PERM_READ],
        )
        def system_info(_params: EmptyInput) -> str:
            return json.dumps(asdict(monitor.get_snapshot()), ensure_ascii=False)

    @register(
        name="http_fetch",
        short_description="Fetch the content of a public URL (HTTP/HTTPS).",
        model=FetchInput,
        permissions=[PERM_NETWORK],
    )
    def http_fetch(params: FetchInput) -> str:
        """Fetch URL and convert HTML to markdown-like text."""
        url = _normalize_url(params.url)
        if not url:
            raise ValueError(f"invalid url: {params.url}")

        request = Request(  # noqa: S310
            url,
            headers={
                "User-Agent": WEB_USER_AGENT,
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            },
        )
        try:
            with urlopen(request, timeout=WEB_REQUEST_TIMEOUT_SECONDS) as response:  # noqa: S310
                body_bytes = response.read(MAX_FETCH_BYTES + 1)
                truncated = len(body_bytes) > MAX_FETCH_BYTES
                if truncated:
                    body_bytes = body_bytes[:MAX_FETCH_BYTES]
                charset = response.headers.get_content_charset() or "utf-8"
                content_type = response.headers.get_content_type()
        except urllib_error.URLError as exc:
            raise RuntimeError(f"fetch failed: {exc!s}") from exc

        content = body_bytes.decode(charset, errors="replace")
        rendered = _html_to_markdown(content) if content_type == "text/html" else content
        if truncated:
            rendered += "\n\n[truncated]"
        return rendered.strip() or "(empty response)"
