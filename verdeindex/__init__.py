"""VerdeIndex: spectral index and fractional vegetation cover engine."""

__version__ = "0.1.0"
