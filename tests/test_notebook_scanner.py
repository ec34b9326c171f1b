"""Tests for notebook enumeration over the exported PDF tree."""

from remarkable2notion.core.metadata_index import MetadataIndexEntry, build_metadata_index
from remarkable2notion.core.notebook_scanner import Notebook, scan_notebooks


def test_missing_pdf_directory_yields_no_notebooks(tmp_path):
    assert scan_notebooks(tmp_path / 'PDF', {}) == []


def test_every_pdf_is_visited_exactly_once(backup):
    backup.add_pdf('Quick sheets')
    backup.add_pdf('Work/Meeting Notes')
    backup.add_pdf('Work/Projects/Roadmap')
    (backup.pdf_dir / 'Work' / 'notes.txt').write_text('not a notebook')

    notebooks = scan_notebooks(backup.pdf_dir, {})

    by_name = {notebook.name: notebook for notebook in notebooks}
    assert len(notebooks) == 3
    assert by_name['Quick sheets'].path == 'Quick sheets'
    assert by_name['Quick sheets'].folder_path == ''
    assert by_name['Meeting Notes'].path == 'Work/Meeting Notes'
    assert by_name['Meeting Notes'].folder_path == 'Work'
    assert by_name['Roadmap'].path == 'Work/Projects/Roadmap'
    assert by_name['Roadmap'].folder_path == 'Work/Projects'


def test_metadata_is_joined_by_display_name(backup):
    backup.add_pdf('Work/Meeting Notes')
    backup.add_metadata('uuid-a', 'Meeting Notes', parent='trash', tags=['work'])

    notebooks = scan_notebooks(backup.pdf_dir, build_metadata_index(backup.notebooks_dir))

    assert len(notebooks) == 1
    notebook = notebooks[0]
    assert notebook.tags == ['work']
    assert notebook.is_deleted is True
    assert notebook.created_time == '2023-11-14T22:13:20Z'


def test_missing_metadata_is_not_an_error(backup):
    backup.add_pdf('Orphan')
    index = {'Other': MetadataIndexEntry(tags=['x'], is_deleted=True)}

    notebooks = scan_notebooks(backup.pdf_dir, index)

    assert notebooks == [Notebook(name='Orphan', path='Orphan', folder_path='')]
    assert notebooks[0].tags == []
    assert notebooks[0].is_deleted is False
    assert notebooks[0].created_time is None
