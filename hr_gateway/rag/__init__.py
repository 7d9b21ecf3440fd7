"""RAG (Retrieval-Augmented Generation) pipeline components.

This package contains modules for:
- Paragraph/sentence-aware chunking with overlap
- Embedding generation with retry
- Qdrant and FAISS vector indexes
- Ingestion orchestration
- Semantic retrieval and grounded answer synthesis
"""
