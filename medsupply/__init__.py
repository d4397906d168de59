"""Flask application factory."""
from flask import Flask, jsonify, request
from medsupply.database import init_db
import os


def create_app(config_object='config.Config', remote_store=None):
    """
    Create and configure the Flask application.

    Args:
        config_object: Import path (or class) of the configuration
        remote_store: Optional document store overriding REMOTE_BACKEND
    """
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Sentry for error tracking in production
    if os.getenv('SENTRY_DSN') and (app.config.get('ENV') == 'production' or os.getenv('FLASK_ENV') == 'production'):
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=os.getenv('SENTRY_DSN'),
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            environment=os.getenv('FLASK_ENV', 'production'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Redis cache for reports
    from medsupply.services.cache_service import init_cache
    init_cache(app)

    from medsupply.services.report_service import connect_report_invalidation
    connect_report_invalidation()

    # Prometheus metrics instrumentation
    from medsupply.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Production: trust the reverse proxy headers
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=0)

    # Initialize database
    init_db(app)

    # Remote sync (store, adapter, dispatcher, coordinator, reconciliation)
    from medsupply.services.sync_context import init_sync
    init_sync(app, store=remote_store)

    # Error Handlers
    from medsupply.exceptions import MedSupplyError

    @app.errorhandler(MedSupplyError)
    def handle_medsupply_error(error):
        """Handle custom application exceptions."""
        if error.status_code >= 500:
            app.logger.error(f"MedSupplyError [{error.status_code}]: {error.message}")
        else:
            app.logger.warning(f"MedSupplyError [{error.status_code}]: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'status': 'error', 'message': 'Not Found'}), 404

    @app.errorhandler(500)
    def internal_error(error):
        app.logger.error(f"Unhandled Exception on {request.path}: {error}")
        return jsonify({'status': 'error', 'message': 'Internal Server Error'}), 500

    # Register blueprints
    from medsupply.blueprints.main import main_bp
    from medsupply.blueprints.products import products_bp
    from medsupply.blueprints.orders import orders_bp
    from medsupply.blueprints.sync import sync_bp
    from medsupply.blueprints.reports import reports_bp
    from medsupply.blueprints.metrics import metrics_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(sync_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(metrics_bp)

    # CLI commands
    from medsupply.cli_commands import init_cli_commands
    init_cli_commands(app)

    return app
