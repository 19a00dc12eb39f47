"""Command-line interface for the Shopify engraving app."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import typer
from bs4 import BeautifulSoup
from pydantic import ValidationError
from rich.console import Console
from rich.json import JSON
from rich.logging import RichHandler
from rich.table import Table

from .admin_client import ShopifyAdminClient
from .config import AppConfig, EngravingConfig, load_app_config
from .mock_client import MockShopifyClient
from .storefront.bootstrap import is_product_page, load_settings_from_page, render_preview
from .storefront.pricing import DISPLAY_ATTR
from .storefront.themes import detect_theme

app = typer.Typer(
    name="shopify-engraving",
    help="Custom engraving add-on for Shopify product pages"
)
console = Console()

WEBHOOK_TOPICS = ["orders/create", "app/uninstalled"]

SANDBOX_CONFIG = {
    "shopify": {
        "shop_domain": "sandbox.myshopify.com",
        "access_token": "shpat_sandbox",
    }
}


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging")):
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def load_config(config_path: str, sandbox: bool = False) -> AppConfig:
    """Load configuration from JSON file."""
    config_file = Path(config_path)
    if not config_file.exists():
        if sandbox:
            return AppConfig(**SANDBOX_CONFIG)
        console.print(f"[red]Error: Config file not found: {config_path}[/red]")
        raise typer.Exit(1)

    return load_app_config(config_file)


def make_client(cfg: AppConfig, sandbox: bool) -> ShopifyAdminClient:
    return ShopifyAdminClient(cfg, client=MockShopifyClient() if sandbox else None)


def read_html(path: str) -> str:
    html_file = Path(path)
    if not html_file.exists():
        console.print(f"[red]Error: File not found: {path}[/red]")
        raise typer.Exit(1)
    return html_file.read_text(encoding="utf-8")


@app.command()
def init(
    output: str = typer.Option("config.json", help="Output configuration file path")
):
    """Initialize a new configuration file with example values."""
    example_config = {
        "shopify": {
            "shop_domain": "your-store.myshopify.com",
            "access_token": "shpat_your_access_token_here",
            "api_version": "2024-01",
            "api_secret": "your_app_api_secret_here"
        },
        "app_url": "https://your-app.example.com",
        "engraving": {
            "engravingPrice": "10.00",
            "currency": "USD",
            "maxCharacters": 50,
            "saveToCartAsync": True,
            "requireText": True
        },
        "rate_limit": {
            "max_requests_per_second": 2.0,
            "burst_size": 10,
            "enable_caching": True,
            "cache_ttl_seconds": 60
        }
    }

    output_path = Path(output)
    with open(output_path, 'w') as f:
        json.dump(example_config, f, indent=2)

    console.print(f"[green]✓[/green] Configuration file created: {output}")
    console.print("\n[yellow]⚠ Please edit the file and add your Shopify credentials![/yellow]")


@app.command()
def validate(
    config: str = typer.Option("config.json", help="Configuration file path"),
):
    """Validate configuration file."""
    try:
        cfg = load_config(config)
    except (ValidationError, json.JSONDecodeError) as e:
        console.print(f"[red]✗ Configuration error:[/red] {str(e)}")
        raise typer.Exit(1)

    engraving = cfg.engraving
    console.print("[green]✓[/green] Configuration is valid!")
    console.print(f"\n[bold]Shop:[/bold] {cfg.shopify.shop_domain}")
    console.print(f"[bold]API version:[/bold] {cfg.shopify.api_version}")
    console.print(f"[bold]Engraving price:[/bold] {engraving.engraving_price} {engraving.currency}")
    console.print(f"[bold]Max characters:[/bold] {engraving.max_characters}")
    console.print(f"[bold]Cart mode:[/bold] {'async' if engraving.save_to_cart_async else 'form'}")
    if not cfg.shopify.signing_secret:
        console.print("[yellow]⚠ No api_secret set: webhook signatures will not be checked[/yellow]")


@app.command()
def serve(
    config: str = typer.Option("config.json", help="Configuration file path"),
    host: str = typer.Option("0.0.0.0", help="Host to bind to"),
    port: int = typer.Option(8000, help="Port to bind to"),
    sandbox: bool = typer.Option(False, help="Serve canned data instead of calling Shopify"),
    metrics: bool = typer.Option(False, help="Print OpenTelemetry metrics to the console"),
):
    """Start the engraving API and webhook server."""
    import uvicorn
    from .telemetry import init_metrics
    from .webhook import create_app

    init_metrics(console=metrics)
    cfg = load_config(config, sandbox)
    server_app = create_app(cfg, client=MockShopifyClient() if sandbox else None)

    console.print(f"[green]Starting engraving server on {host}:{port}[/green]")
    console.print(f"[blue]API: http://{host}:{port}/api[/blue]")
    console.print(f"[blue]Webhook endpoint: http://{host}:{port}/api/webhooks/<topic>[/blue]")

    uvicorn.run(server_app, host=host, port=port)


@app.command("detect-theme")
def detect_theme_command(
    file: str = typer.Argument(..., help="Saved product page HTML"),
):
    """Show which theme profile a product page resolves to."""
    document = BeautifulSoup(read_html(file), "html.parser")
    profile = detect_theme(document)

    table = Table(title=f"Theme: {profile.name}")
    table.add_column("Selector", style="cyan")
    table.add_column("Value", style="green")
    table.add_column("Matches", justify="right", style="yellow")
    for name in ("price", "form", "submit_button", "price_container"):
        selector = getattr(profile, name)
        table.add_row(name, selector, str(len(document.select(selector))))
    for selector in profile.variant_inputs:
        table.add_row("variant_input", selector, str(len(document.select(selector))))
    console.print(table)

    console.print(f"\n[bold]Product page:[/bold] {'yes' if is_product_page(document) else 'no'}")
    settings = load_settings_from_page(document)
    if settings:
        console.print("[bold]Embedded settings:[/bold]")
        console.print(JSON(json.dumps(settings, default=str)))


@app.command()
def preview(
    file: str = typer.Argument(..., help="Saved product page HTML"),
    select: bool = typer.Option(False, "--select", help="Tick the engraving checkbox"),
    text: Optional[str] = typer.Option(None, "--text", help="Engraving text to type"),
    config: Optional[str] = typer.Option(None, help="Configuration file whose engraving section is used"),
    output: Optional[str] = typer.Option(None, help="Write the resulting HTML here"),
):
    """Inject the engraving widget into a product page and report the result."""
    html = read_html(file)
    engraving: Optional[EngravingConfig] = load_config(config).engraving if config else None

    rendered = asyncio.run(render_preview(html, engraving, select=select or bool(text), text=text))

    document = BeautifulSoup(rendered, "html.parser")
    widget = document.select_one("[data-engraving-container]")
    textarea = document.select_one("#engraving-text")
    prices = [node.get_text(strip=True) for node in document.select(f"[{DISPLAY_ATTR}]")]
    total = document.select_one(".engraving-total-price")

    table = Table(title="Engraving preview")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Theme", detect_theme(BeautifulSoup(html, "html.parser")).name)
    table.add_row("Widget mounted", "yes" if widget is not None else "no")
    table.add_row("Engraving text", textarea.get_text() if textarea is not None and textarea.get_text() else "-")
    table.add_row("Displayed price", ", ".join(prices) if prices else "unchanged")
    table.add_row("Total", total.get_text(strip=True) if total is not None else "-")
    console.print(table)

    if output:
        Path(output).write_text(rendered, encoding="utf-8")
        console.print(f"\n[green]✓[/green] Saved to {output}")


@app.command("setup-metafields")
def setup_metafields(
    config: str = typer.Option("config.json", help="Configuration file path"),
    sandbox: bool = typer.Option(False, help="Run against canned data instead of Shopify"),
):
    """Create the engraving metafield definitions."""

    async def _setup():
        cfg = load_config(config, sandbox)
        async with make_client(cfg, sandbox) as client:
            return await client.create_metafield_definitions()

    results = asyncio.run(_setup())

    table = Table(title="Metafield definitions")
    table.add_column("Key", style="cyan")
    table.add_column("Owner", style="magenta")
    table.add_column("Status", style="green")
    for result in results:
        table.add_row(
            f"engraving.{result['key']}",
            result["owner_type"],
            "created" if result["created"] else "already exists",
        )
    console.print(table)


@app.command("enable-product")
def enable_product(
    product_id: str = typer.Argument(..., help="Shopify product ID"),
    disable: bool = typer.Option(False, "--disable", help="Turn engraving off instead"),
    price_cents: Optional[int] = typer.Option(None, min=0, help="Per-product engraving price in cents"),
    config: str = typer.Option("config.json", help="Configuration file path"),
    sandbox: bool = typer.Option(False, help="Run against canned data instead of Shopify"),
):
    """Enable (or disable) engraving on one product."""
    from .products import toggle_product_engraving
    from .errors import ShopifyAdminError

    async def _enable():
        cfg = load_config(config, sandbox)
        async with make_client(cfg, sandbox) as client:
            await toggle_product_engraving(client, product_id, not disable, price_cents)

    try:
        asyncio.run(_enable())
    except ShopifyAdminError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    state = "disabled" if disable else "enabled"
    console.print(f"[green]✓[/green] Engraving {state} for product {product_id}")


@app.command("register-webhooks")
def register_webhooks(
    url: Optional[str] = typer.Argument(None, help="Public base URL of this app (defaults to app_url)"),
    config: str = typer.Option("config.json", help="Configuration file path"),
    sandbox: bool = typer.Option(False, help="Run against canned data instead of Shopify"),
):
    """Subscribe the app to the webhooks it handles."""

    async def _register():
        cfg = load_config(config, sandbox)
        base_url = url or cfg.app_url
        if not base_url:
            console.print("[red]Error: Pass a URL or set app_url in the configuration.[/red]")
            raise typer.Exit(1)
        results = []
        async with make_client(cfg, sandbox) as client:
            for topic in WEBHOOK_TOPICS:
                address = f"{base_url.rstrip('/')}/api/webhooks/{topic}"
                webhook, created = await client.register_webhook(topic, address)
                results.append((webhook, created))
        return results

    table = Table(title="Webhooks")
    table.add_column("Topic", style="cyan")
    table.add_column("Address", style="green")
    table.add_column("Status", style="yellow")
    for webhook, created in asyncio.run(_register()):
        table.add_row(webhook.topic, webhook.address, "registered" if created else "already registered")
    console.print(table)


if __name__ == "__main__":
    app()
