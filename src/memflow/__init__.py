"""MemFlow: perceptual fingerprinting and similarity grouping for photo batches."""

__version__ = "0.1.0"
