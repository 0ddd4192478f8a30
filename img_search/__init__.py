"""
Text-to-image semantic search package.

Modules:
- config: configuration for paths, model and ranking parameters.
- embedding: CLIP-based image and text embedding provider.
- store: JSON snapshot of (file path, embedding) records.
- indexer: recursive directory indexing into the store.
- search: cosine-similarity ranking of stored images against a text query.
- cli: command-line interface entrypoint.
"""

__version__ = "3.1.0"
