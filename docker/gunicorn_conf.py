# Gunicorn configuration for dbbackup
# Only one worker may own the backup scheduler, otherwise every worker
# would run pg_dump at the same cron tick.

import os
import logging

logger = logging.getLogger('gunicorn.error')

bind = os.environ.get('GUNICORN_BIND', '0.0.0.0:5000')
workers = int(os.environ.get('GUNICORN_WORKERS', '2'))


def post_fork(server, worker):
    """
    Called in each worker right after fork, before the app is loaded.

    Designates the first spawned worker (worker.age == 1) as the scheduler owner by
    setting SCHEDULER_WORKER, which create_app() reads.

    Args:
        server: Gunicorn arbiter
        worker: Gunicorn worker instance (arbiter numbers workers 1, 2, 3, ...)
    """
    if worker.age == 1:
        os.environ['SCHEDULER_WORKER'] = 'true'
        logger.info(f"Worker PID {worker.pid} (age={worker.age}): backup scheduler owner")
    else:
        os.environ['SCHEDULER_WORKER'] = 'false'
        logger.info(f"Worker PID {worker.pid} (age={worker.age}): HTTP only (scheduler disabled)")
