"""
Wires the Printful services together once per app.

Routes reach them through `get_services()`; tests build their own
`PrintfulServices` with fakes and pass it to `create_app`.
"""
from flask import current_app

from services.fulfillment import OrderFulfillment
from services.fulfillment_providers.printful import PrintfulProvider
from services.mockup_queue import MockupQueue, TimerScheduler
from services.observability import ErrorReporter
from services.printful_client import PrintfulClient
from services.product_sync import CatalogSynchronizer
from services.rate_limiter import RateLimiter
from services.repository import PostgresRepository

EXTENSION_KEY = "printful"


class PrintfulServices:
    def __init__(self, client, limiter, mockup_queue, synchronizer, fulfillment, repository, reporter):
        self.client = client
        self.limiter = limiter
        self.mockup_queue = mockup_queue
        self.synchronizer = synchronizer
        self.fulfillment = fulfillment
        self.repository = repository
        self.reporter = reporter


def build_services(config, app=None, session=None):
    reporter = ErrorReporter()
    repository = PostgresRepository()
    client = PrintfulClient(
        api_key=config.get("PRINTFUL_API_KEY"),
        base_url=config.get("PRINTFUL_API_BASE_URL"),
        sandbox=config.get("PRINTFUL_SANDBOX_MODE", False),
        max_retries=config.get("PRINTFUL_MAX_RETRIES", 3),
        timeout=config.get("PRINTFUL_REQUEST_TIMEOUT", 30.0),
        api_location=config.get("PRINTFUL_API_LOCATION"),
        session=session,
        reporter=reporter,
    )
    # One limiter per process: every mockup call must pass through it.
    limiter = RateLimiter(
        limit=config.get("PRINTFUL_RATE_LIMIT", 2),
        window=config.get("PRINTFUL_RATE_WINDOW_SECONDS", 60.0),
    )
    mockup_queue = MockupQueue(
        client,
        limiter,
        repository=repository,
        scheduler=TimerScheduler(app),
        default_file_url=config.get("MOCKUP_DEFAULT_FILE_URL"),
        reporter=reporter,
    )
    return PrintfulServices(
        client=client,
        limiter=limiter,
        mockup_queue=mockup_queue,
        synchronizer=CatalogSynchronizer(client, repository, reporter),
        fulfillment=OrderFulfillment(PrintfulProvider(client), repository, reporter),
        repository=repository,
        reporter=reporter,
    )


def init_app(app, services=None):
    app.extensions[EXTENSION_KEY] = services or build_services(app.config, app)
    return app.extensions[EXTENSION_KEY]


def get_services() -> PrintfulServices:
    return current_app.extensions[EXTENSION_KEY]
