"""serve command: run the webhook server."""

from __future__ import annotations

import click
import uvicorn

from prguard_cli.context import get_settings, get_store
from prguard_core.errors import ConfigError
from prguard_core.trigger import enforce_hybrid_mode_at_startup
from prguard_server.app import create_app
from prguard_server.live import Broadcaster
from prguard_server.wiring import build_orchestrator


@click.command("serve")
@click.option("--host", default="127.0.0.1", show_default=True, help="Interface to bind.")
@click.option("--port", default=8000, show_default=True, type=int, help="Port to listen on.")
@click.pass_context
def serve_cmd(ctx, host: str, port: int):
    """Receive GitHub webhooks and analyse pull requests as they change.

    \b
    Required environment variables:
      GITHUB_TOKEN, or GITHUB_APP_ID and GITHUB_PRIVATE_KEY
      GITHUB_WEBHOOK_SECRET   secret configured on the webhook
      ANTHROPIC_API_KEY or OPENAI_API_KEY, depending on `model`
    """
    settings = get_settings(ctx)
    try:
        enforce_hybrid_mode_at_startup(settings.trigger, strict=settings.trigger_strict)
        broadcaster = Broadcaster()
        orchestrator = build_orchestrator(settings, get_store(ctx), live=broadcaster)
    except ConfigError as e:
        raise click.UsageError(str(e)) from e

    app = create_app(orchestrator, broadcaster, webhook_secret=settings.webhook_secret)
    uvicorn.run(app, host=host, port=port, log_config=None)
