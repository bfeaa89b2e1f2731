"""Animal-model heritability of snail aperture index."""

__version__ = "0.1.0"
