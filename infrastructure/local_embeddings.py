# infrastructure/local_embeddings.py
"""Local embedding generation with L2 normalization for cosine scoring"""
import asyncio
import logging
import numpy as np
from typing import Dict, List

from sentence_transformers import SentenceTransformer

from config import settings
from core.exceptions import ConfigurationError, EmbeddingError
from core.interfaces import IEmbeddingService

logger = logging.getLogger(settings.LOGGER_NAME)

class SentenceTransformerEmbedding(IEmbeddingService):
    """
    Sentence transformer with L2 normalization (unit vectors).

    For unit vectors cosine similarity equals the dot product, so scores from
    the vector store keep their [-1, 1] meaning regardless of the model's
    raw output scale.
    """

    _models: Dict[str, SentenceTransformer] = {}  # Loaded once per model name

    def __init__(self, model_name: str = "paraphrase-multilingual-mpnet-base-v2"):
        """Initializes the service, loading the heavy model only once."""
        if model_name not in SentenceTransformerEmbedding._models:
            try:
                logger.info(f"Attempting to load model {model_name} from local cache...")
                SentenceTransformerEmbedding._models[model_name] = SentenceTransformer(
                    model_name,
                    local_files_only=True
                )
                logger.info(f"Successfully loaded {model_name} from local cache.")

            except OSError as e:
                logger.warning(
                    f"Model {model_name} not found in cache. Attempting online download. "
                    f"This may take a few minutes. Error: {e}"
                )
                SentenceTransformerEmbedding._models[model_name] = SentenceTransformer(model_name)
                logger.info(f"Successfully downloaded and loaded {model_name}.")

        self._model_name = model_name
        self.model_impl = SentenceTransformerEmbedding._models[model_name]

        dimensions = self.model_impl.get_sentence_embedding_dimension()
        if not dimensions:
            raise ConfigurationError(f"Model {model_name} does not report an embedding dimension")
        self._dimensions = int(dimensions)

    @property
    def model(self) -> str:
        return self._model_name

    @property
    def dimensions(self) -> int:
        return self._dimensions

    def _l2_normalize(self, arr: np.ndarray) -> np.ndarray:
        """
        L2 normalize vectors to unit length (||v|| = 1).

        Args:
            arr: (N, D) array of N vectors with D dimensions

        Returns:
            (N, D) array of unit-normalized vectors
        """
        norms = np.linalg.norm(arr, axis=1, keepdims=True)
        norms[norms == 0] = 1e-12  # Avoid division by zero
        return arr / norms

    async def _encode(self, texts: List[str]) -> np.ndarray:
        try:
            raw = await asyncio.to_thread(
                self.model_impl.encode,
                texts,
                convert_to_tensor=False
            )
        except Exception as e:
            raise EmbeddingError(f"Local embedding failed: {e}") from e

        arr = np.asarray(raw, dtype="float32").reshape(len(texts), -1)
        if arr.shape[1] != self._dimensions:
            raise EmbeddingError(
                f"Embedding has {arr.shape[1]} dimensions, expected {self._dimensions}"
            )
        return self._l2_normalize(arr)

    async def embed(self, text: str) -> List[float]:
        return (await self._encode([text]))[0].tolist()

    async def embed_batch(self, texts: List[str], batch_size: int = 100) -> List[List[float]]:
        if not texts:
            return []

        batch_size = max(1, batch_size)
        vectors: List[List[float]] = []
        for start in range(0, len(texts), batch_size):
            normalized = await self._encode(texts[start:start + batch_size])
            vectors.extend(normalized.tolist())
        return vectors
