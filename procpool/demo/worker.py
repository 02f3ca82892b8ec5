from procpool.worker import Worker


class DemoWorker(Worker):
    """Counts its iterations and logs each one."""

    # Run our event loop every 2 seconds
    iteration_delay = 2.0
    process_title = "demo worker"

    def setup(self) -> None:
        # Open connections and build the data structures the worker needs here
        self.log.info("Init called")
        self.counter = 0

    def run(self) -> None:
        self.counter += 1
        self.log.info(f"Iterating {self.counter}")

    def cleanup(self) -> None:
        # Close connections to other systems and any other cleanup
        self.log.info("Cleanup called")
