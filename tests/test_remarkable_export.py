"""Tests for the RemarkableSync wrapper."""

import subprocess
from unittest.mock import patch

import pytest

from remarkable2notion.core.errors import ExportToolError
from remarkable2notion.core.notebook_scanner import Notebook
from remarkable2notion.core.remarkable_export import RemarkableExporter


def completed(returncode=0, stdout='', stderr=''):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


@pytest.fixture
def exporter(backup):
    return RemarkableExporter(backup.root)


class TestCheckInstallation:

    def test_returns_version(self, exporter):
        with patch('subprocess.run', return_value=completed(stdout='RemarkableSync 1.4.0\n')) as run:
            assert exporter.check_installation() == 'RemarkableSync 1.4.0'

        assert run.call_args.args[0] == ['RemarkableSync', '--version']

    def test_missing_tool_mentions_install_hint(self, exporter):
        with patch('subprocess.run', side_effect=FileNotFoundError('RemarkableSync')):
            with pytest.raises(ExportToolError, match='brew install remarkablesync'):
                exporter.check_installation()

    def test_broken_tool(self, exporter):
        with patch('subprocess.run', return_value=completed(returncode=2)):
            with pytest.raises(ExportToolError):
                exporter.check_installation()


class TestExport:

    def test_command_line(self, backup):
        exporter = RemarkableExporter(backup.root, password='1234')

        assert exporter.build_command() == [
            'RemarkableSync', 'sync', '--backup-dir', str(backup.root), '--skip-templates',
            '--password', '1234',
        ]

    def test_command_line_without_password(self, exporter, backup):
        assert '--password' not in exporter.build_command()

    @pytest.mark.parametrize('stdout', ['All files are up to date', 'Rendering... Backup completed with 3 errors'])
    def test_non_zero_exit_with_success_marker_is_tolerated(self, exporter, stdout):
        with patch('subprocess.run', return_value=completed(returncode=1, stdout=stdout)):
            exporter.export()

    def test_non_zero_exit_without_marker_fails(self, exporter):
        with patch('subprocess.run', return_value=completed(returncode=1, stdout='', stderr='no device')):
            with pytest.raises(ExportToolError, match='no device'):
                exporter.export()

    def test_list_notebooks_runs_export_then_scans(self, exporter, backup):
        backup.add_pdf('Folder/Notebook')
        backup.add_metadata('uuid-a', 'Notebook', tags=['t'])

        with patch('subprocess.run', return_value=completed()) as run:
            notebooks = exporter.list_notebooks()

        run.assert_called_once()
        assert [(n.name, n.path, n.tags) for n in notebooks] == [('Notebook', 'Folder/Notebook', ['t'])]

    def test_list_notebooks_can_reuse_existing_backup(self, exporter, backup):
        backup.add_pdf('Notebook')

        with patch('subprocess.run') as run:
            notebooks = exporter.list_notebooks(run_export=False)

        run.assert_not_called()
        assert len(notebooks) == 1


class TestCopyNotebookPdf:

    def test_copies_into_output_dir(self, exporter, backup, tmp_path):
        backup.add_pdf('Work/Meeting Notes', content=b'%PDF-1.4 meeting')
        notebook = Notebook(name='Meeting Notes', path='Work/Meeting Notes', folder_path='Work')

        copied = exporter.copy_notebook_pdf(notebook, tmp_path / 'tmp')

        assert copied == tmp_path / 'tmp' / 'Meeting Notes.pdf'
        assert copied.read_bytes() == b'%PDF-1.4 meeting'

    def test_missing_source_pdf(self, exporter, tmp_path):
        notebook = Notebook(name='Ghost', path='Ghost')

        with pytest.raises(ExportToolError, match='PDF not found'):
            exporter.copy_notebook_pdf(notebook, tmp_path / 'tmp')
