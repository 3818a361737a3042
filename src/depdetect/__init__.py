"""depdetect - detect package managers and extract dependency graphs."""

__version__ = "0.1.0"
