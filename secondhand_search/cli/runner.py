# secondhand_search/cli/runner.py

"""Headless CLI search runner built on the async orchestrator."""

import json
import logging
import sys

from rich.console import Console
from rich.table import Table

from secondhand_search.errors import SearchError
from secondhand_search.models.product import (
    SOURCE_LABELS,
    Product,
    ProductSummary,
)
from secondhand_search.services.health_checker import HealthChecker
from secondhand_search.services.product_detail_scraper import (
    ProductDetailScraper,
)
from secondhand_search.services.search_api import search_payload
from secondhand_search.services.search_orchestrator import (
    SearchOrchestrator,
    SearchResult,
)

logger = logging.getLogger("secondhand_search.cli")

# Stderr console for status messages so stdout stays clean for JSON
_err = Console(stderr=True)


def parse_source_csv(source_csv: str | None) -> list[str] | None:
    """Split ``-s danggeun,bunjang``; ``None`` means the defaults."""
    if source_csv is None:
        return None
    return [s.strip() for s in source_csv.split(",") if s.strip()]


def _print_table(products: list[Product]) -> None:
    """Render a Rich table of products to stdout."""
    table = Table(
        title="검색 결과",
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("#", style="dim", width=4)
    table.add_column("Title", max_width=50)
    table.add_column("Price", justify="right", style="green")
    table.add_column("Location", max_width=16)
    table.add_column("Source", style="magenta")
    table.add_column("URL", overflow="fold", style="dim")

    for idx, p in enumerate(products, 1):
        table.add_row(
            str(idx),
            p.title[:50],
            p.price_text,
            p.location or "—",
            SOURCE_LABELS.get(p.source, p.source),
            p.product_url,
        )

    Console().print(table)


def _write_json(payload: object) -> None:
    json.dump(payload, sys.stdout, ensure_ascii=False, indent=2)
    sys.stdout.write("\n")


def _report(result: SearchResult) -> None:
    """Warnings and a one-line summary on stderr."""
    for warning in result.warnings:
        _err.print(f"[yellow]Warning: {warning}[/yellow]")

    parts: list[str] = []
    if result.deduplicated_count:
        parts.append(f"{result.deduplicated_count} deduped")
    if result.invalid_count:
        parts.append(f"{result.invalid_count} invalid")
    detail = f" ({', '.join(parts)})" if parts else ""
    if result.products:
        _err.print(
            f"[green]✓ {result.count} products in "
            f"{result.execution_time}ms{detail}[/green]"
        )
    else:
        _err.print("[yellow]No products found.[/yellow]")


async def cli_search(
    query: str,
    source_csv: str | None,
    limit: int,
    force_refresh: bool,
    output_format: str,
    with_details: bool = False,
    orchestrator: SearchOrchestrator | None = None,
    detail_scraper: ProductDetailScraper | None = None,
) -> int:
    """Run a headless search and return an exit code (0=ok, 1=bad input).

    Zero results is still a success.  The shared browser is shut down
    before returning.
    """
    orchestrator = orchestrator or SearchOrchestrator()
    sources = parse_source_csv(source_csv)

    _err.print(
        f"[bold]Searching:[/bold] {query}  "
        f"[dim]sources={source_csv or 'default'} limit={limit}[/dim]"
    )

    try:
        try:
            result = await orchestrator.search(
                query, sources, limit, force_refresh
            )
        except SearchError as exc:
            logger.warning("CLI search rejected: %s", exc.message)
            _err.print(f"[red]{exc.code}: {exc.message}[/red]")
            if exc.details:
                _err.print(f"[dim]{exc.details}[/dim]")
            return 1

        _report(result)

        if with_details:
            scraper = detail_scraper or ProductDetailScraper(
                browser=orchestrator.browser
            )
            details = await scraper.scrape_products_details(
                [ProductSummary.from_product(p) for p in result.products]
            )
            if output_format == "table":
                _print_table(list(details))
            else:
                _write_json([d.to_dict() for d in details])
            return 0

        if output_format == "table":
            _print_table(result.products)
        else:
            _write_json(search_payload(result))
        return 0
    finally:
        await orchestrator.aclose()


async def run_health_check(checker: HealthChecker | None = None) -> int:
    """Run connectivity health check on all sources."""
    _err.print("[bold]Running scraper health check...[/bold]")
    results = await (checker or HealthChecker()).check_all()

    table = Table(
        title="Source Health Check",
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("Source", style="bold")
    table.add_column("Status", justify="center")
    table.add_column("Latency", justify="right")
    table.add_column("Notes", style="dim")

    any_down = False
    for r in results:
        if r.status == "ok":
            status = "[green]✅ OK[/green]"
        elif r.status == "slow":
            status = "[yellow]⚠️  SLOW[/yellow]"
        else:
            status = "[red]❌ DOWN[/red]"
            any_down = True

        latency = (
            f"{r.latency_ms:.0f}ms"
            if r.latency_ms > 0
            else "—"
        )
        table.add_row(
            SOURCE_LABELS.get(r.source_id, r.source_id),
            status,
            latency,
            r.message,
        )

    Console().print(table)
    return 1 if any_down else 0
