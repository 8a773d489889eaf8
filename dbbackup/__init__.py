import os
import logging
from logging.handlers import RotatingFileHandler
from flask import Flask


def configure_logging(app):
    """Configure application logging"""

    log_dir = app.config['LOG_DIR']
    os.makedirs(log_dir, exist_ok=True)

    # Set log level based on environment
    log_level = logging.DEBUG if app.config.get('DEBUG', False) else logging.INFO

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_formatter = logging.Formatter(
        '[%(asctime)s] %(levelname)s in %(module)s: %(message)s'
    )
    console_handler.setFormatter(console_formatter)

    # File handler
    file_handler = RotatingFileHandler(
        os.path.join(log_dir, 'dbbackup.log'),
        maxBytes=10485760,  # 10MB
        backupCount=10
    )
    file_handler.setLevel(log_level)
    file_formatter = logging.Formatter(
        '[%(asctime)s] %(levelname)s [%(name)s.%(funcName)s:%(lineno)d] %(message)s'
    )
    file_handler.setFormatter(file_formatter)

    # Configure root logger
    logging.basicConfig(level=log_level, handlers=[console_handler, file_handler])

    # app.logger ("dbbackup") propagates to the root handlers above
    app.logger.setLevel(log_level)

    app.logger.info(f"Logging configured (level: {logging.getLevelName(log_level)})")


def _has_section(app, *keys):
    return any(app.config.get(key) not in (None, '') for key in keys)


def create_app(config_name=None, config_overrides=None):
    """Flask application factory"""

    app = Flask(__name__)

    # Load configuration
    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'production')

    from dbbackup.config import config
    app.config.from_object(config[config_name])
    if config_overrides:
        app.config.update(config_overrides)

    configure_logging(app)

    os.makedirs(app.config['TEMP_DIR'], exist_ok=True)

    from dbbackup.routes import backup_routes
    app.register_blueprint(backup_routes.bp)

    # Health check endpoint
    @app.route('/health')
    def health():
        return {'status': 'healthy'}, 200

    app.extensions['dbbackup'] = None

    if not app.config['BACKUP_ENABLED']:
        app.logger.info('[db-backup] Plugin disabled by config')
        return app

    if not _has_section(app, 'BACKUP_DATABASE', 'DB_HOST', 'DB_NAME', 'DB_USER') or \
            not _has_section(app, 'BACKUP_AWS', 'AWS_S3_BUCKET', 'AWS_ACCESS_KEY_ID'):
        app.logger.error('[db-backup] Missing database or AWS configuration!')
        return app

    from dbbackup.backup.executor import build_orchestrator
    app.extensions['dbbackup'] = build_orchestrator(app.config, logger=app.logger)

    # Initialize and start scheduler (only in designated worker or development child process)
    from dbbackup.scheduler import init_scheduler, start_scheduler, stop_scheduler
    import atexit

    is_reloader_child = os.environ.get('WERKZEUG_RUN_MAIN') == 'true'
    is_development = app.config.get('DEBUG', False)
    is_scheduler_worker = os.environ.get('SCHEDULER_WORKER', 'true').lower() == 'true'

    # Scheduler initialization logic:
    # - Development mode: Only in Flask reloader child process (not parent)
    # - Production mode: Only in designated scheduler worker (SCHEDULER_WORKER=true)
    if not app.config.get('SCHEDULER_AUTOSTART', True):
        should_init_scheduler = False
    elif is_development:
        should_init_scheduler = is_reloader_child
        app.logger.info(f"Development mode: is_reloader_child={is_reloader_child}")
    else:
        should_init_scheduler = is_scheduler_worker
        app.logger.info(f"Production mode: is_scheduler_worker={is_scheduler_worker}")

    if should_init_scheduler:
        init_scheduler(app)
        start_scheduler()

        # Register cleanup function to stop scheduler on app shutdown
        atexit.register(stop_scheduler)
        app.logger.info("Scheduler initialized and started successfully")
    else:
        app.logger.info("Scheduler initialization skipped in this process")

    return app
