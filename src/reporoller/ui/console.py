"""Rich-powered console output for RepoRoller."""

from __future__ import annotations

from rich.console import Console as RichConsole
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from reporoller.budget.models import SelectionResult, format_budget_usage
from reporoller.providers import ProviderRegistry
from reporoller.tokens import CostEstimate


class Console:
    """Terminal output for RepoRoller using Rich."""

    def __init__(self, stderr: bool = False) -> None:
        self.console = RichConsole(stderr=stderr)

    def success(self, message: str) -> None:
        self.console.print(f"[green]✓[/green] {message}")

    def error(self, message: str) -> None:
        self.console.print(f"[red]✗[/red] {message}")

    def warning(self, message: str) -> None:
        self.console.print(f"[yellow]![/yellow] {message}")

    def info(self, message: str) -> None:
        self.console.print(f"[blue]i[/blue] {message}")

    def markdown(self, text: str) -> None:
        """Render markdown text."""
        self.console.print(Markdown(text))

    def show_selection(self, result: SelectionResult, show_excluded: bool = True) -> None:
        """Display a budget selection: usage panel, then the file table."""
        pct = result.utilization_percent
        color = "green" if pct <= 90 else "yellow" if pct <= 100 else "red"
        self.console.print(
            Panel(
                f"[bold]Budget:[/bold] [{color}]{format_budget_usage(result)}[/{color}]\n"
                f"[bold]Provider:[/bold] {result.provider_id or '-'}\n"
                f"[bold]Tokens:[/bold] {result.total_tokens:,}\n"
                f"[bold]Cost:[/bold] ${result.total_cost:.4f}\n"
                f"[bold]Files:[/bold] {len(result.selected)} selected, "
                f"{len(result.excluded)} excluded",
                title="[bold]Budget Selection[/bold]",
                border_style=color,
            )
        )

        table = Table(border_style="cyan")
        table.add_column("", width=1)
        table.add_column("File", style="bold")
        table.add_column("Tokens", justify="right", style="cyan")
        table.add_column("Cost (USD)", justify="right")
        table.add_column("Note", style="dim")

        for f in result.selected:
            table.add_row(
                "[green]✓[/green]", f.path, f"{f.estimated_tokens:,}", f"${f.estimated_cost:.4f}", ""
            )
        if show_excluded and result.excluded:
            table.add_section()
            for f in result.excluded:
                reason = result.exclusion_reasons.get(f.path)
                table.add_row(
                    "[red]✗[/red]",
                    f"[dim]{f.path}[/dim]",
                    f"{f.estimated_tokens:,}",
                    f"${f.estimated_cost:.4f}",
                    reason.value.replace("_", " ") if reason else "",
                )

        self.console.print(table)

    def show_cost_estimates(self, tokens: int, estimates: list[CostEstimate]) -> None:
        """Display what a token count would cost on each provider."""
        table = Table(title=f"Cost of {tokens:,} input tokens", border_style="cyan")
        table.add_column("Provider", style="bold")
        table.add_column("Input cost", justify="right", style="cyan")
        table.add_column("Context used", justify="right")
        table.add_column("Fits", justify="center")

        for e in estimates:
            fits = "[green]✓[/green]" if e.within_context_window else "[red]✗[/red]"
            table.add_row(
                e.display_name,
                f"${e.input_cost:.4f}",
                f"{e.utilization_percent:.1f}% of {e.context_window:,}",
                fits,
            )

        self.console.print(table)

    def show_providers(self, registry: ProviderRegistry) -> None:
        """Display the provider registry."""
        table = Table(title="Providers", border_style="cyan")
        table.add_column("ID", style="bold")
        table.add_column("Name")
        table.add_column("Context", justify="right", style="cyan")
        table.add_column("Input $/M", justify="right")
        table.add_column("Output $/M", justify="right")

        for p in registry.values():
            table.add_row(
                p.id,
                p.display_name,
                f"{p.context_window:,}",
                f"{p.input_cost_per_million:.2f}",
                f"{p.output_cost_per_million:.2f}",
            )

        self.console.print(table)
