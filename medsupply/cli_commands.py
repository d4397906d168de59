"""
Flask CLI commands for catalog and remote sync maintenance.

Commands:
- flask init-db: Create the database tables
- flask seed-catalog: Create the initial product catalog
- flask sync-remote: Full bidirectional sync with the remote store
- flask sync-orders: Re-upsert Shipped and Delivered orders remotely
"""

import click
from medsupply.database import get_session, create_schema
from medsupply.exceptions import MedSupplyError
from medsupply.services import catalog_service, order_service
from medsupply.services.sync_context import get_sync


def _echo_summary(label: str, summary) -> None:
    color = 'green' if summary.failed == 0 else 'yellow'
    click.echo(click.style(
        f'{label}: {summary.succeeded}/{summary.attempted} sincronizados, {summary.failed} con error',
        fg=color
    ))
    for error in summary.errors:
        click.echo(f'   - {error}')


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create the database tables."""
        create_schema()
        click.echo(click.style('✅ Tablas creadas', fg='green'))

    @app.cli.command('seed-catalog')
    def seed_catalog():
        """Create the initial product catalog if there are no active products."""
        try:
            created = catalog_service.seed_catalog(get_session())
        except MedSupplyError as e:
            click.echo(click.style(f'❌ {e.message}', fg='red'))
            raise SystemExit(1)

        if created == 0:
            click.echo(click.style('ℹ️  El catálogo ya tiene productos activos', fg='yellow'))
        else:
            click.echo(click.style(f'✅ {created} productos creados', fg='green', bold=True))

    @app.cli.command('sync-remote')
    def sync_remote():
        """Push the local catalog, pull remote-only products and reconcile orders."""
        sync = get_sync()
        try:
            report = sync.reconciliation.full_sync(get_session())
        finally:
            sync.shutdown()

        _echo_summary('Productos enviados', report.pushed)
        click.echo(f'Productos nuevos desde el servidor: {report.pulled}')
        _echo_summary('Pedidos', report.orders)

    @app.cli.command('sync-orders')
    def sync_orders():
        """Re-upsert every Shipped and Delivered order at its remote key."""
        sync = get_sync()
        try:
            summary = sync.reconciliation.reconcile_orders(order_service.list_orders(get_session()))
        finally:
            sync.shutdown()
        _echo_summary('Pedidos', summary)
