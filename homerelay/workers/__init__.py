from .poller import PollingWorker

__all__ = ["PollingWorker"]
