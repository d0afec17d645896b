"""After-sales customer-support knowledge base with BM25 lexical search."""

__version__ = "0.1.0"
