"""Register map tooling: intermediate representation, transforms, validation and a command line."""

__version__ = "0.1.0"