"""AI captioning of uploaded images."""
from .analyzer import ImageAnalyzer, extract_analysis

__all__ = ["ImageAnalyzer", "extract_analysis"]
