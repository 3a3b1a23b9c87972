"""VariantLens: honest evidence coverage for protein sequence variants."""

__version__ = "2.0.0"
