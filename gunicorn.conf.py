# The mockup queue and rate limiter live in process memory, so there must be
# exactly one worker; concurrency comes from threads.
preload_app = False
workers = 1
threads = 4

# Bind
bind = "0.0.0.0:8080"

# Logging
accesslog = "-"
errorlog = "-"
loglevel = "info"

# Timeout
timeout = 120


def post_worker_init(worker):
    # Timers don't survive a fork; pick unfinished mockup tasks up again here.
    from app import app
    from services.container import get_services
    with app.app_context():
        queue = get_services().mockup_queue
        try:
            queue.restore()
        except Exception as e:
            worker.log.warning(f"[Mockups] Could not restore queue from mirror: {e}")
        queue.process_queue()
