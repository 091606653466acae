import click
from flask import Flask

import config
from database import close_connection
from extensions import limiter

# Settings copied onto app.config so tests can override them per app.
CONFIG_KEYS = (
    "SECRET_KEY",
    "MAX_CONTENT_LENGTH",
    "PRINTFUL_API_KEY",
    "PRINTFUL_API_BASE_URL",
    "PRINTFUL_API_LOCATION",
    "PRINTFUL_SANDBOX_MODE",
    "PRINTFUL_WEBHOOK_SECRET",
    "PRINTFUL_MAX_RETRIES",
    "PRINTFUL_REQUEST_TIMEOUT",
    "PRINTFUL_RATE_LIMIT",
    "PRINTFUL_RATE_WINDOW_SECONDS",
    "MOCKUP_DEFAULT_FILE_URL",
    "MIN_HOURS_BETWEEN_SYNCS",
    "CRON_SECRET",
    "ADMIN_API_TOKEN",
)


def create_app(test_config=None, services=None):
    app = Flask(__name__)

    for key in CONFIG_KEYS:
        app.config[key] = getattr(config, key)

    # Apply Test Config Overrides
    if test_config:
        app.config.update(test_config)

    # Setup Structured Logging
    from utils.logger import setup_logger
    setup_logger(app)

    # Health Check (Validates DB connectivity)
    @app.route("/healthz")
    def healthz():
        try:
            from database import get_db
            db = get_db()
            db.execute("SELECT 1").fetchone()
            return {"status": "ok", "db": "connected"}, 200
        except Exception as e:
            app.logger.error(f"[Health] Database check failed: {type(e).__name__}")
            return {"status": "error", "db": "unavailable"}, 503

    @app.route("/ping")
    def ping():
        return {"status": "ok"}, 200

    # ProxyFix
    if config.IS_PRODUCTION and config.TRUST_PROXY_HEADERS:
        from werkzeug.middleware.proxy_fix import ProxyFix
        n = config.PROXY_FIX_NUM_PROXIES
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=n, x_proto=n, x_host=n, x_port=n)
        app.logger.info(f"[Security] ProxyFix enabled for {n} proxies")

    # Extensions
    limiter.init_app(app)

    from services.container import init_app as init_services
    init_services(app, services)

    # Database Teardown
    app.teardown_appcontext(close_connection)

    # Blueprints
    from routes.webhook import webhook_bp
    from routes.cron import cron_bp
    from routes.admin import admin_bp
    app.register_blueprint(webhook_bp)
    app.register_blueprint(cron_bp)
    app.register_blueprint(admin_bp)

    register_cli(app)
    return app


def register_cli(app):
    from services.container import get_services

    @app.cli.command("sync-products")
    @click.option("--force", is_flag=True, help="Run even if a sync finished recently.")
    def sync_products_cmd(force):
        """Pull Printful store products into the local catalog."""
        synchronizer = get_services().synchronizer
        result = synchronizer.run_scheduled_sync(
            min_hours=app.config["MIN_HOURS_BETWEEN_SYNCS"], force=force
        )
        if result is None:
            click.echo("Skipped: last sync is recent. Use --force to run anyway.")
            return
        click.echo(f"Sync {result.sync_id}: {result.status} ({result.synced_count} synced, {result.failed_count} failed)")

    @app.cli.command("sync-categories")
    def sync_categories_cmd():
        """Mirror Printful catalog categories into the mapping table."""
        result = get_services().synchronizer.sync_categories()
        click.echo(f"Categories: {result['added']} added, {result['existing']} existing ({result['status']})")

    @app.cli.command("refresh-order")
    @click.argument("order_id")
    def refresh_order_cmd(order_id):
        """Poll Printful for an order and update the local row."""
        fields = get_services().fulfillment.refresh_order_status(order_id)
        click.echo(f"Order {order_id}: {fields['status']} (printful={fields['printful_status']})")

    @app.cli.command("restore-mockup-queue")
    def restore_mockup_queue_cmd():
        """Reload unfinished mockup tasks from the mirror table and start the worker."""
        queue = get_services().mockup_queue
        count = queue.restore()
        queue.process_queue()
        click.echo(f"Restored {count} mockup task(s).")


# WSGI Entry Point
app = create_app()

if __name__ == "__main__":
    app.run(host='0.0.0.0', debug=config.DEBUG)
