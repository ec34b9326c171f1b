"""
Notebook enumeration over the PDF tree rendered by RemarkableSync.

``<backup>/PDF`` mirrors the tablet's folder hierarchy; every ``.pdf`` file in
it is one notebook. The folder path accumulated while walking becomes the
notebook's ``folder_path`` and, joined with the file stem, its storage key.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union

from .metadata_index import MetadataIndexEntry

logger = logging.getLogger(__name__)

PDF_SUFFIX = '.pdf'


@dataclass(frozen=True)
class Notebook:
    """One exported notebook: a PDF plus whatever the metadata index knew about it."""
    name: str
    path: str
    folder_path: str = ''
    created_time: Optional[str] = None
    modified_time: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    is_deleted: bool = False


def _join(relative_path: str, name: str) -> str:
    return f"{relative_path}/{name}" if relative_path else name


def scan_notebooks(pdf_dir: Union[str, Path],
                   metadata_index: Dict[str, MetadataIndexEntry]) -> List[Notebook]:
    """
    Recursively collect every PDF below ``pdf_dir`` as a Notebook.

    Args:
        pdf_dir: The ``PDF`` directory of a RemarkableSync backup
        metadata_index: Output of ``build_metadata_index``

    Returns:
        Notebooks in filesystem enumeration order
    """
    pdf_dir = Path(pdf_dir)
    notebooks: List[Notebook] = []

    if not pdf_dir.is_dir():
        logger.debug(f"No PDF directory found at {pdf_dir} - no notebooks synced yet")
        return notebooks

    _scan_directory(pdf_dir, '', metadata_index, notebooks)
    logger.debug(f"Found {len(notebooks)} notebooks")
    return notebooks


def _scan_directory(directory: Path, relative_path: str,
                    metadata_index: Dict[str, MetadataIndexEntry],
                    notebooks: List[Notebook]) -> None:
    with os.scandir(directory) as entries:
        for entry in entries:
            if entry.is_dir():
                _scan_directory(Path(entry.path), _join(relative_path, entry.name),
                                metadata_index, notebooks)
            elif entry.is_file() and entry.name.endswith(PDF_SUFFIX):
                notebooks.append(_build_notebook(Path(entry.path).stem, relative_path, metadata_index))


def _build_notebook(name: str, relative_path: str,
                    metadata_index: Dict[str, MetadataIndexEntry]) -> Notebook:
    meta = metadata_index.get(name)
    if meta is None:
        logger.debug(f"No metadata found for {name}")
        return Notebook(name=name, path=_join(relative_path, name), folder_path=relative_path)

    return Notebook(
        name=name,
        path=_join(relative_path, name),
        folder_path=relative_path,
        created_time=meta.created_time,
        modified_time=meta.modified_time,
        tags=list(meta.tags),
        is_deleted=meta.is_deleted,
    )
