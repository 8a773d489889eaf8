import os


def _env_bool(name, default):
    return os.environ.get(name, default).lower() in ('1', 'true', 'yes', 'on')


def _env_int(name, default=None):
    value = os.environ.get(name)
    if value in (None, ''):
        return default
    return int(value)


class Config:
    """Base configuration"""

    # Backup schedule
    BACKUP_ENABLED = _env_bool('BACKUP_ENABLED', 'true')
    BACKUP_CRON = os.environ.get('BACKUP_CRON') or '0 3 * * *'
    BACKUP_RETENTION_DAYS = _env_int('BACKUP_RETENTION_DAYS', 7)

    # Database (pg_dump connection)
    DB_HOST = os.environ.get('DB_HOST')
    DB_PORT = _env_int('DB_PORT', 5432)
    DB_NAME = os.environ.get('DB_NAME')
    DB_USER = os.environ.get('DB_USER')
    DB_PASSWORD = os.environ.get('DB_PASSWORD')

    # S3
    AWS_S3_BUCKET = os.environ.get('AWS_S3_BUCKET')
    AWS_REGION = os.environ.get('AWS_REGION') or 'us-east-1'
    AWS_ACCESS_KEY_ID = os.environ.get('AWS_ACCESS_KEY_ID')
    AWS_SECRET_ACCESS_KEY = os.environ.get('AWS_SECRET_ACCESS_KEY')
    AWS_S3_PREFIX = os.environ.get('AWS_S3_PREFIX') or 'backups/'
    AWS_S3_ENDPOINT_URL = os.environ.get('AWS_S3_ENDPOINT_URL')

    # Nested plugin-style sections ({host, port, name, ...} / {bucket, accessKeyId, ...});
    # when set they replace the flat DB_* / AWS_* keys
    BACKUP_DATABASE = None
    BACKUP_AWS = None

    # Dump/compression
    PG_DUMP_PATH = os.environ.get('PG_DUMP_PATH') or 'pg_dump'
    DUMP_TIMEOUT = _env_int('DUMP_TIMEOUT')
    COMPRESSION_LEVEL = _env_int('COMPRESSION_LEVEL', 9)

    # Temp/logs
    TEMP_DIR = os.environ.get('TEMP_DIR') or '/data/temp'
    LOG_DIR = os.environ.get('LOG_DIR') or '/data/logs'

    # Scheduler
    SCHEDULER_AUTOSTART = True
    SCHEDULER_TIMEZONE = 'UTC'


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True

    # Use local data directory for development
    BASE_DIR = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
    DATA_DIR = os.path.join(BASE_DIR, 'data')
    TEMP_DIR = os.path.join(DATA_DIR, 'temp')
    LOG_DIR = os.path.join(DATA_DIR, 'logs')


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False


class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    DEBUG = False
    SCHEDULER_AUTOSTART = False


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': ProductionConfig
}
