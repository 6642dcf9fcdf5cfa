"""Command-line interface for nodewatch."""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from nodewatch import __version__
from nodewatch.collector import Collector, Scheduler
from nodewatch.config import (
    AgentConfig,
    Config,
    ConfigError,
    create_example_config,
    split_listen_addr,
)
from nodewatch.models import NodeStatus, Sample
from nodewatch.probe import Probe
from nodewatch.store import SampleStore

console = Console()

DEFAULT_CONFIG_PATHS = ["nodewatch.yaml", "nodewatch.yml", "~/.config/nodewatch/config.yaml"]


def setup_logging(level: str) -> None:
    """Configure logging."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def load_config(path: Optional[str]) -> Config:
    """Load the given config file, or the first default location that exists."""
    candidates = [path] if path else DEFAULT_CONFIG_PATHS
    for candidate in candidates:
        config_path = Path(candidate).expanduser()
        if config_path.exists():
            try:
                return Config.from_yaml(config_path)
            except ConfigError as e:
                console.print(f"[red]Invalid configuration: {e}[/]")
                sys.exit(1)

    console.print("[red]No configuration file found.[/]")
    console.print("Create one with: [cyan]nodewatch init[/]")
    sys.exit(1)


def format_rate(value: float) -> str:
    """Human-readable bytes/sec."""
    for unit in ("B/s", "KB/s", "MB/s"):
        if value < 1024:
            return f"{value:.0f} {unit}"
        value /= 1024
    return f"{value:.1f} GB/s"


def format_uptime(seconds: int) -> str:
    days, rest = divmod(seconds, 86400)
    hours, rest = divmod(rest, 3600)
    return f"{days}d {hours}h {rest // 60}m"


def create_samples_table(samples: list[Sample]) -> Table:
    """Create a Rich table displaying one round of samples."""
    table = Table(title="Node Metrics", show_header=True, header_style="bold")

    table.add_column("Node", style="cyan", no_wrap=True)
    table.add_column("Group")
    table.add_column("Status", justify="center")
    table.add_column("CPU", justify="right")
    table.add_column("Memory", justify="right")
    table.add_column("Disk", justify="right")
    table.add_column("TX", justify="right")
    table.add_column("RX", justify="right")
    table.add_column("Latency", justify="right")
    table.add_column("Uptime", justify="right")

    for sample in sorted(samples, key=lambda s: s.node.name):
        node = sample.node
        m = sample.metrics
        if m is None:
            table.add_row(
                node.name,
                node.group,
                Text("DOWN", style="red"),
                *[Text("-", style="dim")] * 7,
            )
            continue

        alerts = node.alerts

        def styled(text: str, value: float, limit: float | None) -> Text:
            return Text(text, style="red" if limit is not None and value >= limit else "")

        table.add_row(
            node.name,
            node.group,
            Text("UP", style="green"),
            styled(f"{m.cpu_percent:.1f}%", m.cpu_percent, alerts.cpu_pct if alerts else None),
            styled(f"{m.mem_percent:.1f}%", m.mem_percent, alerts.mem_pct if alerts else None),
            styled(f"{m.max_disk_pct:.1f}%", m.max_disk_pct, alerts.disk_pct if alerts else None),
            styled(format_rate(m.net.tx_bytes_per_sec), m.net.tx_bytes_per_sec,
                   alerts.tx_bps if alerts else None),
            styled(format_rate(m.net.rx_bytes_per_sec), m.net.rx_bytes_per_sec,
                   alerts.rx_bps if alerts else None),
            f"{sample.latency_ms} ms",
            format_uptime(m.uptime_sec),
        )

    return table


def create_summary_panel(samples: list[Sample]) -> Panel:
    """Create a summary panel."""
    down = [s for s in samples if s.status == NodeStatus.DOWN]
    alerts = [(s.node.name, a) for s in samples for a in s.get_alerts()]

    summary_parts = [
        f"[bold]Nodes:[/bold] {len(samples)} total, "
        f"[green]{len(samples) - len(down)}[/] up, "
        f"[red]{len(down)}[/] down",
    ]
    if samples:
        summary_parts.append(
            f"[bold]Last Round:[/bold] {samples[-1].time.strftime('%Y-%m-%d %H:%M:%S')} UTC"
        )

    if alerts:
        summary_parts.append("")
        summary_parts.append(f"[bold red]Alerts ({len(alerts)}):[/]")
        for node_name, msg in alerts[:5]:
            summary_parts.append(f"  • [{node_name}] {msg}")
        if len(alerts) > 5:
            summary_parts.append(f"  ... and {len(alerts) - 5} more")

    return Panel(
        "\n".join(summary_parts),
        title="Fleet Summary",
        border_style="red" if down else "cyan",
    )


@click.group()
@click.version_option(version=__version__)
def main() -> None:
    """nodewatch - Fleet metrics collector."""
    pass


@main.command()
@click.option(
    "-c", "--config",
    type=click.Path(exists=True),
    help="Path to configuration file",
)
@click.option(
    "--json", "output_json",
    is_flag=True,
    help="Output in JSON format",
)
@click.option(
    "--watch", "-w",
    is_flag=True,
    help="Keep probing at the configured refresh interval",
)
@click.option(
    "--log-level",
    default="WARNING",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    help="Logging level",
)
def check(
    config: Optional[str],
    output_json: bool,
    watch: bool,
    log_level: str,
) -> None:
    """Probe all configured nodes once and show the results."""
    setup_logging(log_level)
    cfg = load_config(config)

    def show(samples: list[Sample]) -> None:
        if output_json:
            click.echo(json.dumps([s.to_dict() for s in samples], indent=2))
        else:
            if watch:
                console.clear()
            console.print(create_summary_panel(samples))
            console.print(create_samples_table(samples))

    store = SampleStore(cfg.history_limit)
    collector = Collector(cfg.nodes, store, Probe(cfg.probe), on_round=show)

    if watch:
        console.print(f"[dim]Watching (interval: {cfg.refresh_seconds:g}s, Ctrl+C to stop)[/]")
        try:
            asyncio.run(Scheduler(collector, cfg.refresh_seconds).run_forever())
        except KeyboardInterrupt:
            console.print("\n[dim]Stopped watching.[/]")
        return

    samples = asyncio.run(collector.run_round())
    if any(s.status == NodeStatus.DOWN for s in samples):
        sys.exit(1)


@main.command()
@click.option(
    "-c", "--config",
    type=click.Path(exists=True),
    help="Path to configuration file",
)
@click.option(
    "--listen",
    default=None,
    help="Override listen address (host:port)",
)
def serve(config: Optional[str], listen: Optional[str]) -> None:
    """Start the collector and its query API."""
    cfg = load_config(config)
    setup_logging(cfg.log_level)

    try:
        host, port = split_listen_addr(listen or cfg.listen_addr)
    except ConfigError as e:
        console.print(f"[red]{e}[/]")
        sys.exit(1)

    console.print(
        f"[green]Collecting from {len(cfg.nodes)} nodes, serving at http://{host}:{port}[/]"
    )

    from nodewatch.dashboard import create_app
    import uvicorn

    uvicorn.run(create_app(cfg), host=host, port=port)


@main.command()
@click.option(
    "-c", "--config",
    type=click.Path(exists=True),
    help="Path to agent configuration file",
)
@click.option(
    "--listen",
    default=None,
    help="Override listen address (host:port)",
)
def agent(config: Optional[str], listen: Optional[str]) -> None:
    """Serve this machine's metrics to a collector."""
    try:
        cfg = AgentConfig.from_yaml(config) if config else AgentConfig()
        host, port = split_listen_addr(listen or cfg.listen_addr)
    except ConfigError as e:
        console.print(f"[red]Invalid configuration: {e}[/]")
        sys.exit(1)

    setup_logging(cfg.log_level)
    console.print(f"[green]Agent listening on http://{host}:{port}[/]")

    from nodewatch.agent import create_agent_app
    import uvicorn

    uvicorn.run(create_agent_app(cfg), host=host, port=port)


@main.command()
@click.option(
    "-o", "--output",
    default="nodewatch.yaml",
    help="Output file path",
)
@click.option(
    "--force", "-f",
    is_flag=True,
    help="Overwrite existing file",
)
def init(output: str, force: bool) -> None:
    """Create an example configuration file."""
    path = Path(output)

    if path.exists() and not force:
        console.print(f"[red]File already exists: {path}[/]")
        console.print("Use --force to overwrite")
        sys.exit(1)

    example = create_example_config()
    example.to_yaml(path)

    console.print(f"[green]Created example configuration: {path}[/]")
    console.print("Edit this file to add your nodes and settings.")


if __name__ == "__main__":
    main()
