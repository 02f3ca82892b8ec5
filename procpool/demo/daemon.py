from procpool.daemon import Daemon
from procpool.demo.worker import DemoWorker


class DemoDaemon(Daemon):
    """The demo service; its settings are read from config/demo.ini."""

    service_group = "demo"
    service_name = "demodaemon"
    service_description = "Demo daemon"
    worker_class = DemoWorker
