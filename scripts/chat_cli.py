#!/usr/bin/env python3
"""Interactive chat CLI for the music discovery service."""

import asyncio
import signal
import sys

import httpx
from rich.console import Console, Group
from rich.live import Live
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Prompt
from rich.text import Text

from discover_chat.client import ChatStreamClient, ChatStreamState, render_tool_call
from discover_chat.models.streaming import TextPart


class ChatCLI:
    """Interactive chat interface that renders the response as it streams."""

    def __init__(self, base_url: str = "http://localhost:8000"):
        """Initialize chat CLI."""
        self.base_url = base_url
        self.console = Console()
        self.client = ChatStreamClient(base_url)

    async def start(self) -> None:
        """Start the interactive chat session."""
        self.console.print(
            Panel.fit(
                "[bold blue]🎧 Discover Chat - Interactive Client[/bold blue]\n"
                "Describe a mood, an artist or a playlist you want.\n"
                "Commands: /help, /new, /quit. Ctrl-C cancels a response.",
                border_style="blue",
            )
        )

        if not await self._test_connection():
            self.console.print(f"[red]❌ Cannot connect to the service at {self.base_url}.[/red]")
            await self.client.aclose()
            return

        self.console.print("[green]✅ Connected to discover chat service[/green]\n")

        try:
            while True:
                user_input = await asyncio.to_thread(Prompt.ask, "\n[bold cyan]You[/bold cyan]")

                if user_input.lower() in ["/quit", "/exit", "quit", "exit"]:
                    break
                elif user_input.lower() == "/help":
                    self._show_help()
                    continue
                elif user_input.lower() == "/new":
                    self.client.new_conversation()
                    self.console.print("[yellow]🔄 Started a new conversation[/yellow]")
                    continue
                elif user_input.strip() == "":
                    continue

                await self._stream(user_input)

        except (KeyboardInterrupt, EOFError):
            pass
        finally:
            self.console.print("\n[yellow]👋 Goodbye![/yellow]")
            await self.client.aclose()

    async def _test_connection(self) -> bool:
        try:
            response = await self.client.http_client.get(f"{self.base_url}/health")
        except httpx.HTTPError as e:
            self.console.print(f"[dim]{e}[/dim]")
            return False
        return response.status_code == 200

    async def _stream(self, message: str) -> None:
        """Send a message and render the response live; Ctrl-C cancels it."""
        loop = asyncio.get_running_loop()
        loop.add_signal_handler(signal.SIGINT, self.client.cancel)
        try:
            with Live(self._render(self.client.state), console=self.console, refresh_per_second=12) as live:
                state = await self.client.send(message, lambda _event, s: live.update(self._render(s)))
                live.update(self._render(state))
        finally:
            loop.remove_signal_handler(signal.SIGINT)

        if state.cancelled:
            self.console.print("[yellow]⏹ Response cancelled[/yellow]")
        elif state.error:
            hint = " Try again in a moment." if state.error.retryable else ""
            self.console.print(f"[red]❌ {state.error.message}{hint}[/red]")
        elif state.usage:
            self.console.print(
                f"[dim]{state.usage.input_tokens} input / {state.usage.output_tokens} output tokens[/dim]"
            )

    def _render(self, state: ChatStreamState) -> Panel:
        """Render the streaming parts of the latest assistant message in order."""
        renderables = []
        for part in state.parts:
            if isinstance(part, TextPart):
                renderables.append(Markdown(part.content))
                continue
            view = state.tool_calls.get(part.tool_id)
            if view is None:
                continue
            display = render_tool_call(view)
            style = {"pending": "dim", "error": "red", "search": "magenta", "playlist": "green"}[display.kind]
            if display.kind == "playlist":
                renderables.append(
                    Panel("\n".join(display.lines), title=f"🎵 {display.title}", border_style=style)
                )
            else:
                body = display.title + "".join(f"\n  {line}" for line in display.lines)
                renderables.append(Text(f"🔧 {body}", style=style))

        if not renderables:
            renderables.append(Text("💭 Thinking...", style="dim"))

        return Panel(
            Group(*renderables),
            title="[bold green]🤖 Discover[/bold green]",
            border_style="green",
            padding=(1, 2),
        )

    def _show_help(self) -> None:
        """Show help information."""
        help_text = """
[bold]Available Commands:[/bold]
• /help - Show this help message
• /new - Start a new conversation
• /quit or /exit - Exit the chat
• Ctrl-C while a response streams - Cancel it (partial text is kept)

[bold]Example Conversation:[/bold]
1. "Find me something melancholic"
2. "What else has The Lanterns released?"
3. "Make a playlist from those"
        """

        self.console.print(Panel(help_text.strip(), title="[cyan]❓ Help[/cyan]", border_style="cyan"))


def main():
    """Main entry point for the chat CLI."""
    base_url = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:8000"

    chat = ChatCLI(base_url)
    asyncio.run(chat.start())


if __name__ == "__main__":
    main()
