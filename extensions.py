from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

# Initialize Limiter (Configured in app.py via init_app).
# Cron and webhook endpoints are the only public surface; keep them from
# being hammered into extra Printful calls.
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["600 per hour"],
    storage_uri="memory://"
)
