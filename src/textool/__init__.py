"""textool: dependency-graph evaluation engine for procedural textures."""

__version__ = "0.1.0"
