"""tracematrix - use-case matrix integrity checker and source annotation injector."""

__version__ = "0.3.0"
