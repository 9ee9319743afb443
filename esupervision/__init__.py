"""Remote check-in and identity verification workflow."""
__version__ = "1.0.0"
