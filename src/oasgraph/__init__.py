"""oasgraph -- walk, resolve and index OpenAPI 3.x documents.

Parses an OpenAPI description into a typed object graph, resolves local and
cross-file ``$ref`` pointers, and builds an :class:`~oasgraph.index.Index`
that classifies every schema and reference in the document. Schema pointer
cycles are analysed to decide whether a finite value can ever satisfy them.
"""

__version__ = "0.1.0"
