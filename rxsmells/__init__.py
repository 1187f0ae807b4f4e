"""Static analysis of reactive component code smells."""

__version__ = "0.3.0"

__all__ = ["__version__"]
