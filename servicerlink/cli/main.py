import asyncio, json
from dataclasses import replace
from typing import Optional

import click

from servicerlink.config import ServicerLinkConfig


def _settings(db: Optional[str]) -> ServicerLinkConfig:
    settings = ServicerLinkConfig.from_env()
    if db:
        settings = replace(settings, db_path=db)
    try:
        settings.validate()
    except ValueError as e:
        raise click.ClickException(f"Invalid configuration: {e}")
    return settings


def _engine(db: Optional[str]):
    from servicerlink.intelligence.engine import ServicerIntelligenceEngine
    return ServicerIntelligenceEngine(config=_settings(db))


db_option = click.option(
    "--db", default=None, help="Intelligence database path (default: SERVICERLINK_DB_PATH)"
)


@click.group()
def cli(): ...


@cli.command()
@click.option("--host", default="0.0.0.0", help="Bind address (default: 0.0.0.0)")
@click.option("--port", default=8000, help="Server port (default: 8000)")
@db_option
def serve(host: str, port: int, db: Optional[str]):
    """
    Start the servicerlink API server.

    \b
    API Endpoints:
      GET  /healthz                           - Health check
      GET  /servicers                         - Registered adapters
      GET  /servicers/{id}/config             - Adapter configuration
      POST /servicers/{id}/test               - Connection test
      POST /servicers/{id}/validate           - Pre-flight validation
      POST /servicers/{id}/submit             - Submit an application
      POST /submissions/outcome               - Report an outcome
      GET  /servicers/{id}/recommendations    - Learned recommendations
      GET  /servicers/{id}/intelligence       - Learned intelligence

    \b
    Environment Variables:
      SERVICERLINK_DB_PATH   - Alternative to --db
      CHASE_API_KEY, BOFA_USERNAME, BOFA_PASSWORD, WF_EMAIL, SMTP_HOST ...
    """
    import uvicorn
    from servicerlink.api.app import create_app
    from servicerlink.service import SubmissionService

    settings = _settings(db)
    click.echo(f"Intelligence database: {settings.resolve_db_path()}")
    click.echo(f"\nStarting servicerlink API server on port {port}...")
    click.echo(f"Health check: http://127.0.0.1:{port}/healthz\n")

    app = create_app(SubmissionService(settings=settings))
    uvicorn.run(app, host=host, port=port)


@cli.command()
@click.argument("servicer_id")
@db_option
def recommendations(servicer_id: str, db: Optional[str]):
    """Show learned recommendations for a servicer."""
    recs = asyncio.run(_engine(db).get_recommendations(servicer_id))
    if not recs:
        click.echo(f"No recommendations yet for {servicer_id}")
        return
    click.echo(f"Recommendations for {servicer_id}:")
    for rec in recs:
        click.echo(f"  - {rec}")


@cli.command()
@click.argument("servicer_id")
@db_option
def intelligence(servicer_id: str, db: Optional[str]):
    """Dump learned intelligence for a servicer as JSON."""
    data = asyncio.run(_engine(db).get_intelligence(servicer_id))
    click.echo(json.dumps(data.to_dict(), indent=2))


@cli.command("test-connection")
@click.argument("servicer_id")
@db_option
def test_connection(servicer_id: str, db: Optional[str]):
    """Check connectivity to a servicer's submission channel."""
    from servicerlink.service import SubmissionService

    service = SubmissionService(settings=_settings(db))
    check = asyncio.run(service.test_connection(servicer_id))
    mark = "✓" if check.success else "✗"
    click.echo(f"{mark} {servicer_id}: {check.message}")
    if not check.success:
        raise SystemExit(1)


@cli.command()
@db_option
def stats(db: Optional[str]):
    """Show intelligence database statistics."""
    engine = _engine(db)
    data = asyncio.run(engine.store.get_stats())
    click.echo(json.dumps(data, indent=2))


@cli.command()
@db_option
def config(db: Optional[str]):
    """Print the effective configuration."""
    click.echo(_settings(db).get_summary())


if __name__ == "__main__":
    cli()
