"""Shared fixtures for the remarkable2notion test suite."""

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from remarkable2notion.utils.config import Config

ENV_VARS = list(Config.ENV_MAPPINGS) + ['REMARKABLE2NOTION_LOG_LEVEL']


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """No test sees the developer's env vars, config files, .env or keyring."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)

    home = tmp_path / 'home'
    home.mkdir()
    monkeypatch.setenv('HOME', str(home))

    workdir = tmp_path / 'work'
    workdir.mkdir()
    monkeypatch.chdir(workdir)

    with patch('keyring.get_password', return_value=None):
        yield


class BackupBuilder:
    """Writes a RemarkableSync-style backup tree for tests."""

    def __init__(self, root: Path):
        self.root = root
        self.pdf_dir = root / 'PDF'
        self.notebooks_dir = root / 'Notebooks'
        self.pdf_dir.mkdir(parents=True, exist_ok=True)
        self.notebooks_dir.mkdir(parents=True, exist_ok=True)

    def add_pdf(self, relative_path: str, content: bytes = b'%PDF-1.4 test') -> Path:
        path = self.pdf_dir / f"{relative_path}.pdf"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        return path

    def add_metadata(self, uuid: str, visible_name: str, parent: str = '',
                     created: str = '1700000000000', modified: str = '1700000500000',
                     tags=None, **extra) -> Path:
        metadata = {
            'visibleName': visible_name,
            'parent': parent,
            'createdTime': created,
            'lastModified': modified,
            'type': 'DocumentType',
        }
        metadata.update(extra)
        path = self.notebooks_dir / f"{uuid}.metadata"
        path.write_text(json.dumps(metadata))

        if tags is not None:
            content = {'tags': [{'name': tag, 'timestamp': 1700000000000} for tag in tags]}
            (self.notebooks_dir / f"{uuid}.content").write_text(json.dumps(content))
        return path


@pytest.fixture
def backup(tmp_path):
    return BackupBuilder(tmp_path / 'backup')
