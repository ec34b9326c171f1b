"""
RemarkableSync export tool wrapper.

RemarkableSync backs the tablet up over USB into a local directory and renders
every notebook to PDF. We treat it as a black box: run it, then read the tree
it leaves behind::

    <backup_dir>/PDF/**/<name>.pdf
    <backup_dir>/Notebooks/<uuid>.metadata
    <backup_dir>/Notebooks/<uuid>.content
"""

import logging
import shutil
import subprocess
from pathlib import Path
from typing import List, Optional, Union

from .errors import ExportToolError
from .metadata_index import build_metadata_index
from .notebook_scanner import Notebook, scan_notebooks

logger = logging.getLogger(__name__)

EXPORT_TOOL = 'RemarkableSync'

# The tool's exit code is unreliable (template rendering errors fail the run
# after the backup itself succeeded), so stdout is checked for these instead.
SUCCESS_MARKERS = ('All files are up to date', 'Backup completed')


class RemarkableExporter:
    """Runs RemarkableSync and enumerates the notebooks it exported."""

    def __init__(self, backup_dir: Union[str, Path], password: Optional[str] = None,
                 executable: str = EXPORT_TOOL):
        self.backup_dir = Path(backup_dir)
        self.password = password
        self.executable = executable

        self.backup_dir.mkdir(parents=True, exist_ok=True)

    @property
    def pdf_dir(self) -> Path:
        return self.backup_dir / 'PDF'

    @property
    def notebooks_dir(self) -> Path:
        return self.backup_dir / 'Notebooks'

    def check_installation(self) -> str:
        """
        Verify the export tool is installed and runnable.

        Returns:
            The version string reported by the tool
        """
        logger.debug(f"Checking {self.executable} installation")

        try:
            result = subprocess.run([self.executable, '--version'], capture_output=True, text=True)
        except OSError as e:
            raise ExportToolError(
                f"{self.executable} not found: {e}. Install with: brew install remarkablesync"
            ) from e

        if result.returncode != 0:
            raise ExportToolError(f"{self.executable} not working properly")

        version = (result.stdout or '').strip()
        logger.debug(f"{self.executable} found: {version}")
        return version

    def build_command(self) -> List[str]:
        command = [self.executable, 'sync', '--backup-dir', str(self.backup_dir), '--skip-templates']
        if self.password:
            command.extend(['--password', self.password])
        return command

    def export(self) -> None:
        """Back the tablet up into ``backup_dir``; raises ExportToolError on failure."""
        logger.info("Syncing from reMarkable (USB)...")
        logger.debug("⚠️ Make sure your reMarkable tablet is connected via USB!")

        try:
            result = subprocess.run(self.build_command(), capture_output=True, text=True)
        except OSError as e:
            raise ExportToolError(f"Failed to run {self.executable}: {e}") from e

        if result.returncode == 0:
            return

        stdout = result.stdout or ''
        if any(marker in stdout for marker in SUCCESS_MARKERS):
            logger.debug("Files synced successfully (non-zero exit ignored)")
            return

        raise ExportToolError(
            f"{self.executable} failed: {(result.stderr or '').strip()}. "
            "Make sure tablet is connected via USB."
        )

    def list_notebooks(self, run_export: bool = True) -> List[Notebook]:
        """
        Export (optionally) and enumerate every notebook in the backup.

        Args:
            run_export: Run RemarkableSync first; False reuses the existing backup

        Returns:
            Notebooks in filesystem enumeration order
        """
        if run_export:
            self.export()

        if not self.pdf_dir.exists():
            logger.debug("No PDF directory found yet - no notebooks synced")
            return []

        metadata_index = build_metadata_index(self.notebooks_dir)
        logger.debug(f"Built metadata index with {len(metadata_index)} entries")

        return scan_notebooks(self.pdf_dir, metadata_index)

    def source_pdf(self, notebook: Notebook) -> Path:
        return self.pdf_dir / f"{notebook.path}.pdf"

    def copy_notebook_pdf(self, notebook: Notebook, output_dir: Union[str, Path]) -> Path:
        """Copy a notebook's PDF into the working directory and return the copy's path."""
        logger.debug(f"Copying notebook PDF: {notebook.name}")

        source_path = self.source_pdf(notebook)
        if not source_path.exists():
            raise ExportToolError(
                f"PDF not found at {source_path}. Notebook might not have been synced/converted yet."
            )

        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        output_path = output_dir / f"{notebook.name}.pdf"
        shutil.copyfile(source_path, output_path)

        logger.debug(f"Copied to: {output_path}")
        return output_path
