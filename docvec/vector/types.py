"""
Vector record types shared by every similarity strategy.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional

import numpy as np


@dataclass
class VectorRecord:
    """Represents a vector record with metadata."""

    id: int
    """Id of the document owning the vector"""

    vector: Optional[np.ndarray]
    """The vector itself (float64 copy of what the caller supplied)"""

    metadata: Dict[str, object] = field(default_factory=dict)
    """Opaque metadata returned alongside search hits"""


@dataclass
class QueryResult:
    """Represents a search result from a vector store."""

    id: int
    """Id of the matching document"""

    score: float
    """Cosine similarity of the match, in [-1, 1]"""

    metadata: Dict[str, object] = field(default_factory=dict)
    """Metadata associated with the matched record"""

    @property
    def document_id(self) -> int:
        return self.id

    @property
    def similarity(self) -> float:
        return self.score
