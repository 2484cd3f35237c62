import dramatiq
from dramatiq.brokers.redis import RedisBroker
from dramatiq.brokers.stub import StubBroker

from neoclip.config import get_settings

settings = get_settings()

if settings.APP_ENV == "test":
    broker = StubBroker()
else:
    broker = RedisBroker(url=settings.REDIS_URL)
dramatiq.set_broker(broker)

from neoclip.workers.quota_reset import *  # noqa: E402,F401,F403
