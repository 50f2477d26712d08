from .seg.segmenter import segment

__version__ = "0.1.0"

__all__ = ["segment", "__version__"]
