# utils/engine.py
"""
Background runner for the attendance engine.
Owns the periodic scan, queue and purge loops and the manual trigger entry points.
"""

import atexit
import logging
import threading

from app.utils.clock import local_now


class AttendanceEngine:
    def __init__(self, app=None):
        self.app = None
        self.running = False
        self.threads = {}
        self.intervals = {}
        self.last_runs = {'scan': None, 'queue': None, 'purge': None}
        self.logger = logging.getLogger('attendance_engine')
        self._shutdown_event = threading.Event()
        # A new scan never starts while the previous one is still writing
        self._scan_lock = threading.Lock()
        self._queue_lock = threading.Lock()

        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        self.app = app
        self.intervals = {
            'scan': app.config.get('SCAN_INTERVAL_SECONDS', 60),
            'queue': app.config.get('QUEUE_INTERVAL_SECONDS', 15),
            'purge': app.config.get('PURGE_INTERVAL_SECONDS', 3600),
        }
        atexit.register(self.stop_worker)
        self.logger.info(f"Attendance engine bound to app (intervals: {self.intervals})")

    def start_worker(self):
        """Start the scan, queue and purge threads."""
        if self.running:
            self.logger.warning("Attendance engine is already running")
            return

        self.running = True
        self._shutdown_event.clear()

        loops = {
            'scan': self._scheduled_scan,
            'queue': self._scheduled_queue,
            'purge': self._scheduled_purge,
        }
        for name, task in loops.items():
            thread = threading.Thread(
                target=self._run_loop,
                args=(name, task, self.intervals[name]),
                daemon=True,
                name=f"Engine-{name}"
            )
            self.threads[name] = thread
            thread.start()

        self.logger.info("Attendance engine threads started")

    def stop_worker(self):
        if not self.running:
            return

        self.logger.info("Shutting down attendance engine")
        self.running = False
        self._shutdown_event.set()

        for name, thread in self.threads.items():
            if thread.is_alive():
                thread.join(timeout=5)
                if thread.is_alive():
                    self.logger.warning(f"Engine thread '{name}' did not shut down gracefully")

    def _run_loop(self, name, task, interval):
        while self.running and not self._shutdown_event.is_set():
            try:
                with self.app.app_context():
                    task()
            except Exception as e:
                # A failed cycle is retried on the next tick
                self.logger.error(f"Engine {name} cycle failed: {str(e)}", exc_info=True)
            self._shutdown_event.wait(interval)

    def _scheduled_scan(self):
        self.trigger_scan_now(blocking=False)

    def _scheduled_queue(self):
        self.trigger_queue_processing_now(blocking=False)

    def _scheduled_purge(self):
        from app.services.job_queue_service import JobQueueService

        with self._queue_lock:
            result = JobQueueService.purge_stale_jobs()
        self.last_runs['purge'] = {'at': local_now().isoformat(), 'result': result}

    def trigger_scan_now(self, now=None, blocking=True):
        """
        Run one scan cycle in the calling thread. Requires an app context.

        Returns:
            dict or None: Scan summary, None when a scan was already running
        """
        from app.services.trigger_service import TriggerService

        if not self._scan_lock.acquire(blocking=blocking):
            self.logger.info("Previous scan still running; skipping this cycle")
            return None

        try:
            summary = TriggerService.scan_classes(now=now)
            self.last_runs['scan'] = {'at': local_now().isoformat(), 'result': summary}
            return summary
        finally:
            self._scan_lock.release()

    def trigger_queue_processing_now(self, now=None, blocking=True):
        """Fire due jobs and resolve expired ones in the calling thread. Requires an app context."""
        from app.services.job_queue_service import JobQueueService

        if not self._queue_lock.acquire(blocking=blocking):
            self.logger.debug("Queue processing already running; skipping this cycle")
            return None

        try:
            summary = JobQueueService.process_queue(now=now)
            self.last_runs['queue'] = {'at': local_now().isoformat(), 'result': summary}
            return summary
        finally:
            self._queue_lock.release()

    def get_status(self):
        from app.services.job_queue_service import JobQueueService
        from app.extensions import notification_service

        status = JobQueueService.get_status()
        status['engine'] = {
            'running': self.running,
            'threads': {name: thread.is_alive() for name, thread in self.threads.items()},
            'intervals': self.intervals,
            'last_runs': self.last_runs
        }
        status['notifications'] = notification_service.get_stats()
        return status
