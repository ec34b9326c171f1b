"""
reMarkable metadata index.

RemarkableSync mirrors the tablet's document store into ``<backup>/Notebooks``:
one ``<uuid>.metadata`` file per item (display name, parent folder, timestamps)
and, for documents, a ``<uuid>.content`` file holding the tag list. The PDFs
it renders only carry the display name, so this module reads every sidecar
file once and builds a lookup table keyed by display name.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Union

logger = logging.getLogger(__name__)

TRASH_PARENT = 'trash'
METADATA_SUFFIX = '.metadata'
CONTENT_SUFFIX = '.content'


@dataclass(frozen=True)
class MetadataIndexEntry:
    """Device-side metadata for one notebook, keyed by display name in the index."""
    created_time: Optional[str] = None
    modified_time: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    is_deleted: bool = False
    uuid: Optional[str] = None
    last_modified_ms: Optional[int] = None


def parse_remarkable_timestamp(timestamp_str: Optional[str]) -> Optional[str]:
    """
    Convert a reMarkable timestamp (milliseconds since the Unix epoch, as a
    string) into a second-precision ISO-8601 UTC string.

    Returns None for missing or unparseable values.
    """
    millis = _parse_millis(timestamp_str)
    if millis is None:
        return None

    try:
        dt = datetime.fromtimestamp(millis / 1000, tz=timezone.utc)
    except (ValueError, OverflowError, OSError):
        return None

    return dt.replace(microsecond=0).strftime('%Y-%m-%dT%H:%M:%SZ')


def _parse_millis(timestamp_str: Optional[str]) -> Optional[int]:
    if timestamp_str is None:
        return None
    try:
        return int(str(timestamp_str).strip())
    except ValueError:
        return None


def _read_json(path: Path) -> Optional[dict]:
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.debug(f"Could not read {path.name}: {e}")
        return None

    if not isinstance(data, dict):
        logger.debug(f"Ignoring {path.name}: expected a JSON object")
        return None
    return data


def read_tags(content_file: Path) -> List[str]:
    """Return the tag names stored in a ``.content`` file, in file order."""
    if not content_file.exists():
        return []

    content_data = _read_json(content_file)
    if not content_data:
        return []

    tags = []
    for tag in content_data.get('tags') or []:
        if isinstance(tag, dict) and tag.get('name'):
            tags.append(str(tag['name']))
    return tags


def _wins_over(candidate: MetadataIndexEntry, current: MetadataIndexEntry) -> bool:
    """Most recently modified entry wins; ties go to the greater UUID."""
    candidate_key = (candidate.last_modified_ms or 0, candidate.uuid or '')
    current_key = (current.last_modified_ms or 0, current.uuid or '')
    return candidate_key > current_key


def build_metadata_index(notebooks_dir: Union[str, Path]) -> Dict[str, MetadataIndexEntry]:
    """
    Build the display-name -> metadata lookup table in a single pass.

    Args:
        notebooks_dir: The ``Notebooks`` directory of a RemarkableSync backup

    Returns:
        Mapping of notebook display name to its MetadataIndexEntry. A missing
        directory yields an empty mapping.
    """
    notebooks_dir = Path(notebooks_dir)
    index: Dict[str, MetadataIndexEntry] = {}

    if not notebooks_dir.is_dir():
        logger.debug(f"No Notebooks directory found at {notebooks_dir}")
        return index

    logger.debug(f"Building metadata index from {notebooks_dir}")

    for metadata_file in notebooks_dir.iterdir():
        if metadata_file.suffix != METADATA_SUFFIX or not metadata_file.is_file():
            continue

        metadata = _read_json(metadata_file)
        if metadata is None:
            continue

        visible_name = metadata.get('visibleName')
        if not visible_name:
            logger.debug(f"Skipping {metadata_file.name}: no visibleName")
            continue

        uuid = metadata_file.stem
        entry = MetadataIndexEntry(
            created_time=parse_remarkable_timestamp(metadata.get('createdTime')),
            modified_time=parse_remarkable_timestamp(metadata.get('lastModified')),
            tags=read_tags(notebooks_dir / f"{uuid}{CONTENT_SUFFIX}"),
            is_deleted=metadata.get('parent') == TRASH_PARENT,
            uuid=uuid,
            last_modified_ms=_parse_millis(metadata.get('lastModified')),
        )

        existing = index.get(visible_name)
        if existing is not None:
            winner = entry if _wins_over(entry, existing) else existing
            logger.debug(
                f"Duplicate display name '{visible_name}' ({existing.uuid}, {uuid}); keeping {winner.uuid}"
            )
            entry = winner

        index[visible_name] = entry

    logger.debug(f"Indexed {len(index)} notebooks")
    return index
