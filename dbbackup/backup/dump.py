"""
Database dump producer.

Runs pg_dump against the configured server and writes a custom-format
dump file to a local path.
"""

import logging
import os
import subprocess
from typing import List, Optional

from .models import BackupError, BackupConfig


class DumpError(BackupError):
    """Raised when pg_dump cannot be started or exits non-zero."""

    def __init__(self, message: str, stderr: str = '', returncode: Optional[int] = None):
        super().__init__(message)
        self.stderr = stderr
        self.returncode = returncode


class DumpProducer:
    """
    Handler for producing a raw database dump with pg_dump.

    The password is handed to pg_dump through PGPASSWORD so it never shows up
    in the process list.
    """

    def __init__(self, executable: str = 'pg_dump', timeout: Optional[float] = None,
                 logger: Optional[logging.Logger] = None):
        """
        Initialize dump producer.

        Args:
            executable: pg_dump binary name or path
            timeout: Seconds to wait for pg_dump before killing it (None waits forever)
            logger: Logger for progress and captured output
        """
        self.executable = executable
        self.timeout = timeout
        self.logger = logger or logging.getLogger(__name__)

    def build_command(self, config: BackupConfig, output_path: str) -> List[str]:
        return [
            self.executable,
            '-h', str(config.host),
            '-p', str(config.port),
            '-U', str(config.user),
            '-F', 'c',
            '-b',
            '-v',
            '-f', output_path,
            str(config.database_name),
        ]

    def produce_dump(self, config: BackupConfig, output_path: str) -> str:
        """
        Dump the database to output_path.

        Args:
            config: Connection parameters
            output_path: File pg_dump should write

        Returns:
            output_path

        Raises:
            ConfigurationError: If config is incomplete (nothing is spawned)
            DumpError: If pg_dump cannot start, times out or exits non-zero
        """
        config.validate()

        env = os.environ.copy()
        env['PGPASSWORD'] = str(config.password)

        cmd = self.build_command(config, output_path)
        self.logger.info(f"[db-backup] Starting pg_dump for database \"{config.database_name}\"...")

        try:
            proc = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                env=env,
            )
        except OSError as e:
            self.logger.error(f"[db-backup] pg_dump could not be started: {e}")
            raise DumpError(f"Failed to start {self.executable}: {e}")

        try:
            stdout, stderr = proc.communicate(timeout=self.timeout)
        except subprocess.TimeoutExpired:
            proc.kill()
            stdout, stderr = proc.communicate()
            stderr_text = stderr.decode(errors='replace').strip()
            self.logger.error(f"[db-backup] pg_dump timed out after {self.timeout}s")
            raise DumpError(f"pg_dump timed out after {self.timeout}s", stderr=stderr_text)

        stdout_text = stdout.decode(errors='replace').strip()
        stderr_text = stderr.decode(errors='replace').strip()

        # pg_dump -v writes its progress to stderr
        if stdout_text:
            self.logger.debug(f"[pg_dump] {stdout_text}")
        if stderr_text:
            self.logger.debug(f"[pg_dump:stderr] {stderr_text}")

        if proc.returncode != 0:
            self.logger.error(f"[db-backup] pg_dump failed (exit code {proc.returncode}).")
            raise DumpError(
                stderr_text or f"pg_dump exited with code {proc.returncode}",
                stderr=stderr_text,
                returncode=proc.returncode,
            )

        if not os.path.exists(output_path):
            raise DumpError(f"pg_dump exited cleanly but wrote no file at {output_path}", stderr=stderr_text,
                            returncode=proc.returncode)

        self.logger.info('[db-backup] pg_dump completed successfully.')
        return output_path
