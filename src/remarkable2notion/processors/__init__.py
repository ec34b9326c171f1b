"""Document processors (OCR and page rasterization)."""

from .vision_ocr import ExtractionResult, VisionOCREngine

__all__ = ['ExtractionResult', 'VisionOCREngine']
