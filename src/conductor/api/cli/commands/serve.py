"""Serve command - run the HTTP API."""

import typer

from conductor.infrastructure.logging import setup_logging

app = typer.Typer(help="HTTP API server")


@app.command("start")
def start(
    ctx: typer.Context,
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
    port: int = typer.Option(8070, "--port", help="Port"),
):
    """Start the API server."""
    import uvicorn

    from conductor.api.server import create_app

    opts = ctx.obj or {}
    setup_logging(opts.get("debug", False))
    app_ = create_app(profile=opts.get("profile", "dev"), config_dir=opts.get("config_dir", "configs"))
    uvicorn.run(app_, host=host, port=port)
