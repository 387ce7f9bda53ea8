"""Typer CLI for Healthy Meals."""

import asyncio

import typer
from rich.console import Console

app = typer.Typer(name="healthy-meals", help="Healthy Meals: AI recipes metered by tokens")
console = Console()


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Bind host"),
    port: int = typer.Option(8080, help="Bind port"),
):
    """Start the Healthy Meals API server."""
    import uvicorn
    from healthy_meals.app import create_app
    from healthy_meals.common.config import get_settings

    get_settings().validate_for_production()
    console.print(f"[bold green]Starting Healthy Meals on {host}:{port}[/bold green]")
    uvicorn.run(create_app(), host=host, port=port)


@app.command()
def health(
    url: str = typer.Option("http://localhost:8080", help="Server URL"),
):
    """Check Healthy Meals server health."""
    import httpx

    try:
        resp = httpx.get(f"{url}/health", timeout=5)
        data = resp.json()
        console.print(f"[bold green]{data['status']}[/bold green] v{data['version']}")
    except (httpx.HTTPError, ValueError, KeyError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command("init-db")
def init_db():
    """Create the database tables."""
    from healthy_meals.deps import get_db

    async def _run():
        db = get_db()
        await db.init()
        await db.create_all()
        await db.close()

    asyncio.run(_run())
    console.print("[bold green]Database initialized[/bold green]")


@app.command()
def grant(
    user_id: str = typer.Argument(..., help="User id to credit"),
    amount: int = typer.Argument(..., help="Tokens to add"),
    description: str = typer.Option("Operator grant", help="Ledger description"),
):
    """Credit tokens to a user as an operator."""
    from healthy_meals.common.exceptions import InvalidAmountError
    from healthy_meals.deps import get_db, get_token_service

    async def _run():
        db = get_db()
        svc = get_token_service()
        await db.init()
        await db.create_all()
        try:
            async with db.get_session() as session:
                await svc.add_credits(
                    session, user_id, amount,
                    trusted=True, transaction_type="bonus", description=description,
                )
                return await svc.get_balance(session, user_id)
        finally:
            await db.close()

    try:
        balance = asyncio.run(_run())
    except InvalidAmountError as e:
        console.print(f"[bold red]{e.code}[/bold red] {e.message}")
        raise typer.Exit(1)
    console.print(
        f"[bold green]Granted {amount} tokens[/bold green] to {user_id}: "
        f"balance {balance.tokens_balance}"
    )


@app.command()
def balance(
    user_id: str = typer.Argument(..., help="User id"),
):
    """Show a user's token balance."""
    from healthy_meals.deps import get_db, get_token_service

    async def _run():
        db = get_db()
        svc = get_token_service()
        await db.init()
        try:
            async with db.get_session() as session:
                return await svc.get_balance(session, user_id)
        finally:
            await db.close()

    result = asyncio.run(_run())
    if result is None:
        console.print(f"[bold red]NOT_FOUND[/bold red] no token record for {user_id}")
        raise typer.Exit(1)
    console.print(f"[bold]{result.tokens_balance}[/bold] tokens")
    console.print(f"  Generations used: {result.total_generations_used}")


if __name__ == "__main__":
    app()
