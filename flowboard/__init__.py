"""flowboard - dataflow pipeline for preparing retrieval-augmented-generation inputs."""

__version__ = "0.1.0"
