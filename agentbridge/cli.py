"""CLI interface for AgentBridge."""

from __future__ import annotations

import asyncio
import json
import os
import signal

import click
from rich.console import Console
from rich.panel import Panel

console = Console()


@click.group()
@click.version_option(version="0.1.0", prog_name="agentbridge")
def cli():
    """AgentBridge - local IDE bridge for AI coding-agent CLIs."""
    pass


@cli.command()
@click.argument("roots", nargs=-1, type=click.Path(file_okay=False, resolve_path=True))
@click.option("--config", "-c", default="config.yaml", help="Config file path")
def run(roots: tuple[str, ...], config: str):
    """Start the bridge for the given workspace ROOTS."""
    from agentbridge.bridge import AgentActivity, BridgeManager
    from agentbridge.config import load_config
    from agentbridge.utils import setup_logging, short_id

    cfg = load_config(config)
    setup_logging(cfg.logging.level, cfg.logging.format)

    def show_event(event) -> None:
        if isinstance(event, AgentActivity):
            console.print(
                f" [cyan]●[/] [bold]{short_id(event.session_id)}[/] → {event.state.value}"
                + (f" [dim]({event.tool_name})[/]" if event.tool_name else "")
            )
        else:
            console.print(f" [dim]status {short_id(event.session_id)} model={event.model}[/]")

    async def main():
        manager = BridgeManager(cfg.bridge)
        manager.hub.subscribe(show_event)

        if not await manager.enable(list(roots)):
            console.print(
                f"[red]{cfg.bridge.agent_command} is not installed; bridge not started.[/]"
            )
            return

        instance = manager.instance
        console.print(Panel.fit(
            f"[bold green]AgentBridge running[/]\n"
            f"Port: {instance.port}\n"
            f"Discovery: {instance.discovery_path}\n"
            f"Workspaces: {', '.join(instance.workspace_roots) or '(none)'}"
        ))
        console.print("[green]Press Ctrl+C to stop.[/]")

        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop.set)
            except (NotImplementedError, RuntimeError):
                pass

        try:
            await stop.wait()
        finally:
            console.print("\n[yellow]Shutting down...[/]")
            await manager.disable()

    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


@cli.command()
def init():
    """Generate default config.yaml."""
    from agentbridge.config import generate_default_config

    config_path = "config.yaml"

    if os.path.exists(config_path):
        if not click.confirm(f"{config_path} already exists. Overwrite?"):
            console.print("[yellow]Cancelled.[/]")
            return

    generate_default_config(config_path)
    console.print(f"[green]Created {config_path}[/]")


@cli.command()
@click.option("--config", "-c", default="config.yaml", help="Config file path")
def records(config: str):
    """List discovery records in the discovery directory."""
    from rich.table import Table

    from agentbridge.bridge import DiscoveryPublisher
    from agentbridge.config import load_config

    cfg = load_config(config)
    publisher = DiscoveryPublisher(cfg.bridge.discovery_dir or None, cfg.bridge.ide_name)
    found = publisher.list_records()

    if not found:
        console.print(f"[yellow]No discovery records in {publisher.directory}[/]")
        return

    table = Table(title=f"Discovery records ({publisher.directory})")
    table.add_column("Port")
    table.add_column("IDE")
    table.add_column("PID")
    table.add_column("Workspace folders")

    for path, record in found:
        table.add_row(
            path.stem,
            record.ide_name,
            str(record.pid),
            "\n".join(record.workspace_folders) or "-",
        )

    console.print(table)


@cli.command()
@click.argument("port", type=int)
@click.option("--config", "-c", default="config.yaml", help="Config file path")
@click.option("--workspace", "-w", default=None, help="Workspace hint header")
def probe(port: int, config: str, workspace: str | None):
    """Connect to a running bridge on PORT the way an agent CLI would."""
    import websockets

    from agentbridge.bridge import DiscoveryPublisher
    from agentbridge.bridge.server import AUTH_HEADER, WORKSPACE_HEADER
    from agentbridge.config import load_config

    cfg = load_config(config)
    publisher = DiscoveryPublisher(cfg.bridge.discovery_dir or None, cfg.bridge.ide_name)
    record = publisher.read(port)
    if record is None:
        console.print(f"[red]No discovery record for port {port} in {publisher.directory}[/]")
        return

    headers = {AUTH_HEADER: record.auth_token}
    if workspace:
        headers[WORKSPACE_HEADER] = workspace

    async def handshake():
        async with websockets.connect(
            f"ws://127.0.0.1:{port}",
            additional_headers=headers,
            subprotocols=["mcp"],
        ) as websocket:
            await websocket.send(json.dumps({
                "jsonrpc": "2.0", "id": 1, "method": "initialize",
                "params": {"clientInfo": {"name": "agentbridge-probe", "cwd": workspace or os.getcwd()}},
            }))
            init = json.loads(await websocket.recv())
            server_info = init.get("result", {}).get("serverInfo", {})
            console.print(f"[green]✓ initialize[/] {server_info.get('name')} {server_info.get('version')}")

            await websocket.send(json.dumps({"jsonrpc": "2.0", "method": "notifications/initialized"}))
            await websocket.send(json.dumps({"jsonrpc": "2.0", "id": 2, "method": "tools/list"}))
            tools = json.loads(await websocket.recv()).get("result", {}).get("tools", [])
            console.print(f"[green]✓ tools/list[/] {', '.join(t['name'] for t in tools)}")

    try:
        asyncio.run(handshake())
    except Exception as e:
        console.print(f"[red]Connection error: {e}[/]")


@cli.command()
@click.argument("port", type=int)
@click.argument("event_name")
@click.option("--session", "-s", "session_id", required=True, help="Agent session id")
@click.option("--tool", default=None, help="Tool name")
@click.option("--cwd", default=None, help="Working directory of the agent")
def hook(port: int, event_name: str, session_id: str, tool: str | None, cwd: str | None):
    """Send a test hook EVENT_NAME (e.g. Stop) to the bridge on PORT."""
    import httpx

    payload = {"session_id": session_id, "hook_event_name": event_name}
    if tool:
        payload["tool_name"] = tool
    if cwd:
        payload["cwd"] = cwd

    try:
        resp = httpx.post(f"http://127.0.0.1:{port}/agent-hook", json=payload, timeout=5.0)
    except httpx.HTTPError as e:
        console.print(f"[red]Could not reach bridge on port {port}: {e}[/]")
        return

    style = "green" if resp.status_code == 200 else "red"
    console.print(f"[{style}]{resp.status_code}[/] {resp.text}")


if __name__ == "__main__":
    cli()
