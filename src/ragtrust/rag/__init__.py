"""Vector ranking over in-memory chunks."""

from ragtrust.rag.index import PriorityWeighting, VectorIndex, cosine_similarity

__all__ = ["PriorityWeighting", "VectorIndex", "cosine_similarity"]
