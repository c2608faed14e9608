from stockview.tasks.scheduler import start_scheduler, shutdown_scheduler

__all__ = ["start_scheduler", "shutdown_scheduler"]
