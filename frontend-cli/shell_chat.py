#!/usr/bin/env python3
"""Shell Chat CLI - Terminal client for the RAG chat gateway.

A rich TUI that streams chat turns from the gateway and manages the
knowledge base documents used to ground the answers.
"""

import argparse
import asyncio
import json
import os
import signal
import sys
from pathlib import Path
from typing import Any, Optional

import httpx
from rich.console import Console
from rich.live import Live
from rich.markdown import Markdown
from rich.prompt import Prompt
from rich.style import Style

from rag_gateway.client import GatewayClient
from rag_gateway.schemas.chat import ChatMessage
from rag_gateway.wire import UsageSummary

# Cache directory for session persistence
CACHE_DIR = Path.home() / ".cache" / "rag-chat"
SESSION_FILE = CACHE_DIR / "session.json"

PROVIDERS = ("gemini", "openai")
KEY_ENV = {"gemini": "GEMINI_API_KEY", "openai": "OPENAI_API_KEY"}

# Styles
ERROR_STYLE = Style(color="red", bold=True)
INFO_STYLE = Style(color="cyan")

HELP_TEXT = """
[bold]Commands:[/bold]
  /provider <gemini|openai>  Switch vendor
  /model [name]              Show or set the model (empty for default)
  /upload <path> [path...]   Add documents to the knowledge base
  /files                     List knowledge base documents
  /delete <file id>          Remove a document
  /clear                     Start a new conversation
  /help                      Show this help
  /quit                      Exit
"""


class ShellChat:
    """Terminal chat client for the gateway."""

    def __init__(self, server_url: str, provider: str, model: Optional[str] = None):
        self.client = GatewayClient(server_url)
        self.server_url = server_url.rstrip("/")
        self.provider = provider
        self.model = model
        self.history: list[ChatMessage] = []
        self.handles: dict[str, str] = {}
        self.console = Console()
        self.running = True
        self._load_session()

    def _load_session(self) -> None:
        """Load persisted OpenAI handles from the cache file."""
        try:
            if SESSION_FILE.exists():
                data = json.loads(SESSION_FILE.read_text())
                self.handles = {k: v for k, v in data.items() if isinstance(v, str) and v}
        except (OSError, json.JSONDecodeError):
            self.handles = {}
        if self.handles.get("assistantId"):
            self.console.print(
                f"[dim]Using assistant: {self.handles['assistantId'][:12]}...[/dim]"
            )

    def _save_session(self) -> None:
        try:
            CACHE_DIR.mkdir(parents=True, exist_ok=True)
            SESSION_FILE.write_text(json.dumps(self.handles))
        except OSError as exc:
            self.console.print(f"[dim]Could not save session: {exc}[/dim]")

    def _clear_conversation(self) -> None:
        self.history = []
        if self.handles.pop("threadId", None) is not None:
            self._save_session()
        self.console.print("Conversation cleared. Starting fresh.", style=INFO_STYLE)

    @property
    def api_key(self) -> str:
        return os.environ.get(KEY_ENV[self.provider], "")

    async def _check_health(self) -> bool:
        """Check if the gateway is reachable."""
        try:
            async with httpx.AsyncClient(timeout=5.0) as client:
                resp = await client.get(f"{self.server_url}/health")
                if resp.status_code == 200:
                    data = resp.json()
                    model = self.model or data.get(f"{self.provider}_model", "default")
                    self.console.print(
                        f"[dim]Connected to gateway. Provider: {self.provider}, model: {model}[/dim]"
                    )
                    return True
        except httpx.HTTPError as e:
            self.console.print(f"Cannot connect to gateway: {e}", style=ERROR_STYLE)
        return False

    def _remember(self, usage: UsageSummary) -> None:
        changed = False
        for key, value in (
            ("threadId", usage.thread_id),
            ("assistantId", usage.assistant_id),
            ("vectorStoreId", usage.vector_store_id),
        ):
            if value and self.handles.get(key) != value:
                self.handles[key] = value
                changed = True
        if changed:
            self._save_session()

    async def _upload(self, args: list[str]) -> None:
        paths = [Path(arg).expanduser() for arg in args]
        missing = [str(path) for path in paths if not path.is_file()]
        if not paths or missing:
            self.console.print(
                f"Usage: /upload <path> [path...] (missing: {', '.join(missing) or 'none'})",
                style=ERROR_STYLE,
            )
            return
        self.console.print(f"[dim]Uploading {len(paths)} file(s)...[/dim]")
        try:
            result = await self.client.upload(
                paths,
                provider=self.provider,
                api_key=self.api_key,
                assistant_id=self.handles.get("assistantId"),
                vector_store_id=self.handles.get("vectorStoreId"),
            )
        except httpx.HTTPError as e:
            self.console.print(f"Upload failed: {e}", style=ERROR_STYLE)
            return
        for key in ("assistantId", "vectorStoreId"):
            if result.get(key):
                self.handles[key] = result[key]
        self._save_session()
        for item in result.get("uploaded", []):
            self.console.print(f"  + {item.get('name')} [dim]({item.get('id')})[/dim]")

    async def _list_files(self) -> None:
        try:
            result = await self.client.list_files(
                provider=self.provider,
                api_key=self.api_key,
                vector_store_id=self.handles.get("vectorStoreId"),
            )
        except httpx.HTTPError as e:
            self.console.print(f"Failed to list files: {e}", style=ERROR_STYLE)
            return
        files = result.get("files", [])
        if not files:
            self.console.print(f"[dim]{result.get('message') or 'No documents uploaded'}[/dim]")
            return
        self.console.print("\n[bold]Knowledge base:[/bold]")
        for item in files:
            self.console.print(
                f"  {item.get('name')} "
                f"[dim]{item.get('state')} {item.get('id')}[/dim]"
            )
        self.console.print()

    async def _delete_file(self, args: list[str]) -> None:
        if len(args) != 1:
            self.console.print("Usage: /delete <file id>", style=ERROR_STYLE)
            return
        try:
            await self.client.delete_file(
                args[0],
                provider=self.provider,
                api_key=self.api_key,
                vector_store_id=self.handles.get("vectorStoreId"),
            )
        except httpx.HTTPError as e:
            self.console.print(f"Delete failed: {e}", style=ERROR_STYLE)
            return
        self.console.print(f"Removed {args[0]}", style=INFO_STYLE)

    async def _handle_command(self, command: str) -> bool:
        """Handle slash commands. Returns True if handled."""
        name, *args = command.strip().split()
        name = name.lower()

        if name in ("/quit", "/exit", "/q"):
            self.running = False
            self.console.print("[dim]Goodbye![/dim]")
        elif name == "/help":
            self.console.print(HELP_TEXT)
        elif name == "/clear":
            self._clear_conversation()
        elif name == "/provider":
            if len(args) != 1 or args[0].lower() not in PROVIDERS:
                self.console.print("Usage: /provider <gemini|openai>", style=ERROR_STYLE)
            else:
                self.provider = args[0].lower()
                self.history = []
                self.console.print(f"Provider: {self.provider}", style=INFO_STYLE)
        elif name == "/model":
            if args:
                self.model = args[0]
            self.console.print(f"Model: {self.model or 'gateway default'}", style=INFO_STYLE)
        elif name == "/upload":
            await self._upload(args)
        elif name == "/files":
            await self._list_files()
        elif name == "/delete":
            await self._delete_file(args)
        else:
            return False
        return True

    async def _stream_chat(self, message: str) -> None:
        """Send the message and render the reply as it streams."""
        self.history.append(ChatMessage(role="user", content=message))
        is_openai = self.provider == "openai"

        with Live(console=self.console, refresh_per_second=10) as live:
            turn = await self.client.chat(
                self.history,
                provider=self.provider,
                api_key=self.api_key,
                model=self.model,
                assistant_id=self.handles.get("assistantId") if is_openai else None,
                thread_id=self.handles.get("threadId") if is_openai else None,
                on_message=lambda reply: live.update(Markdown(reply.content)),
                on_usage=self._remember,
            )
            if turn.error is not None:
                live.update(Markdown(turn.reply.content if turn.reply else ""))

        if turn.error is not None:
            self.console.print(f"Error: {turn.error}", style=ERROR_STYLE)
            self.history.pop()
            return
        self.history.extend(turn.messages)
        if turn.usage is not None:
            self.console.print(
                f"[dim]{turn.usage.model}: {turn.usage.input_tokens} in / "
                f"{turn.usage.output_tokens} out[/dim]"
            )

    async def run(self) -> None:
        """Main chat loop."""
        if not await self._check_health():
            return
        if not self.api_key:
            self.console.print(
                f"Set {KEY_ENV[self.provider]} to chat with {self.provider}.",
                style=ERROR_STYLE,
            )

        self.console.print()
        self.console.print(
            "[bold]RAG Chat[/bold] - Type /help for commands, Ctrl+D to exit",
            style=INFO_STYLE,
        )
        self.console.print()

        try:
            while self.running:
                try:
                    user_input = Prompt.ask("[bold blue]You[/bold blue]")
                    if not user_input.strip():
                        continue

                    if user_input.startswith("/"):
                        if await self._handle_command(user_input):
                            continue

                    self.console.print()
                    await self._stream_chat(user_input)
                    self.console.print()

                except EOFError:
                    self.console.print("\n[dim]Goodbye![/dim]")
                    break
                except KeyboardInterrupt:
                    self.console.print()
                    continue
        finally:
            await self.client.aclose()


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="RAG Chat - Terminal client for the chat gateway",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  shell_chat.py                             Connect to localhost:8000
  shell_chat.py --provider openai           Chat through OpenAI assistants
  shell_chat.py --server http://pi:8000     Connect to remote gateway

Environment Variables:
  RAG_CHAT_SERVER    Default gateway URL
  GEMINI_API_KEY     Key used for the gemini provider
  OPENAI_API_KEY     Key used for the openai provider
""",
    )
    parser.add_argument(
        "--server",
        "-s",
        default=os.environ.get("RAG_CHAT_SERVER", "http://localhost:8000"),
        help="Gateway server URL (default: http://localhost:8000)",
    )
    parser.add_argument("--provider", "-p", choices=PROVIDERS, default="gemini")
    parser.add_argument("--model", "-m", default=None, help="Model override")

    args = parser.parse_args()

    def signal_handler(sig: int, frame: Any) -> None:
        print("\nExiting...")
        sys.exit(0)

    signal.signal(signal.SIGTERM, signal_handler)

    chat = ShellChat(server_url=args.server, provider=args.provider, model=args.model)
    try:
        asyncio.run(chat.run())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
