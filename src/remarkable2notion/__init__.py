"""
remarkable2notion - sync reMarkable notebooks into a Notion database.

Notebooks exported by RemarkableSync are OCR'd with Google Cloud Vision and
upserted as Notion pages together with their page images and a PDF link.
"""

__version__ = "0.3.0"
