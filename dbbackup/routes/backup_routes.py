"""
Backup routes - status, remote listing and manual triggers.
"""

from flask import Blueprint, current_app, jsonify, request

from dbbackup.backup.models import BackupError, ConfigurationError
from dbbackup.backup.storage import StoreError
from dbbackup.scheduler import get_scheduled_jobs, is_scheduler_running, trigger_backup_now


bp = Blueprint('backups', __name__, url_prefix='/api/backups')


def _get_orchestrator():
    return current_app.extensions.get('dbbackup')


def _not_configured():
    return jsonify({'error': 'Backups are disabled or not configured'}), 409


@bp.route('/', methods=['GET'])
def list_backups():
    """
    List uploaded backups under the configured prefix, newest first.

    Returns:
        JSON array of {key, last_modified, size_mb}
    """
    orchestrator = _get_orchestrator()
    if orchestrator is None:
        return _not_configured()

    try:
        orchestrator.store.validate()
        objects = orchestrator.storage.list_objects(orchestrator.store.key_prefix)
    except ConfigurationError as e:
        return jsonify({'error': str(e)}), 409
    except StoreError as e:
        return jsonify({'error': str(e)}), 502

    objects.sort(key=lambda obj: obj.last_modified, reverse=True)

    return jsonify([
        {
            'key': obj.key,
            'last_modified': obj.last_modified.isoformat(),
            'size_mb': round(obj.size / 1024 / 1024, 2)
        }
        for obj in objects
    ])


@bp.route('/status', methods=['GET'])
def get_status():
    """
    Get backup service status.

    Returns:
        JSON with:
        - enabled: Whether backups are configured
        - scheduler_status: Scheduler running status
        - scheduled_jobs: Jobs with next run times
        - backup: Orchestrator state, last results and recent log lines
        - store: Bucket reachability, only with ?check=true
    """
    orchestrator = _get_orchestrator()

    data = {
        'enabled': orchestrator is not None,
        'scheduler_status': 'running' if is_scheduler_running() else 'stopped',
        'scheduled_jobs': get_scheduled_jobs(),
        'backup': orchestrator.status() if orchestrator else None
    }

    if orchestrator and request.args.get('check', '').lower() in ('1', 'true', 'yes'):
        try:
            orchestrator.store.validate()
            orchestrator.storage.test_connection()
            data['store'] = {'ok': True}
        except BackupError as e:
            data['store'] = {'ok': False, 'error': str(e)}

    return jsonify(data)


@bp.route('/run', methods=['POST'])
def run_backup_now():
    """
    Queue an immediate backup through the scheduler.

    Returns:
        JSON with the queued scheduler job ID
    """
    if _get_orchestrator() is None:
        return _not_configured()

    try:
        job_id = trigger_backup_now()
    except RuntimeError as e:
        return jsonify({'error': str(e)}), 503

    return jsonify({'job_id': job_id, 'message': 'Backup queued'}), 202


@bp.route('/cleanup', methods=['POST'])
def run_cleanup_now():
    """
    Run a retention sweep synchronously.

    Returns:
        JSON with the sweep result (deleted keys and failures)
    """
    orchestrator = _get_orchestrator()
    if orchestrator is None:
        return _not_configured()

    try:
        result = orchestrator.cleanup_old_backups()
    except ConfigurationError as e:
        return jsonify({'error': str(e)}), 409
    except BackupError as e:
        return jsonify({'error': str(e)}), 502

    return jsonify(result.to_dict())
