"""PSA workflow engine: graph model, validation and routing for project workflows."""

__version__ = "0.1.0"
