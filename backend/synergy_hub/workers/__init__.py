import dramatiq
from dramatiq.brokers.redis import RedisBroker
from dramatiq.brokers.stub import StubBroker

from synergy_hub.config import settings
from synergy_hub.logging_config import configure_logging

if settings.APP_ENV == "test":
    broker = StubBroker()
else:
    broker = RedisBroker(url=settings.REDIS_URL)
    configure_logging()
dramatiq.set_broker(broker)

from synergy_hub.workers.polling import poll_generation_task, schedule_poll  # noqa: E402
from synergy_hub.workers.persistence import persist_generation_outputs, schedule_persist  # noqa: E402
from synergy_hub.workers.reservations import schedule_sweep, sweep_stale_reservations  # noqa: E402

__all__ = [
    "broker",
    "poll_generation_task",
    "schedule_poll",
    "persist_generation_outputs",
    "schedule_persist",
    "sweep_stale_reservations",
    "schedule_sweep",
]
