"""Embedding providers for the memory system.

Every provider returns vectors already L2-normalized, so similarity between
two stored vectors is a plain dot product regardless of the backend.
"""

import json
import logging
import math
import os
import re
import struct
import subprocess
import sys
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Sequence

import httpx

from engram.exceptions import ConfigurationError, EmbeddingFailure
from engram.xdg import get_models_dir

if TYPE_CHECKING:
    from engram.config import StoreConfig

logger = logging.getLogger(__name__)

DEFAULT_OPENAI_MODEL = "text-embedding-3-small"
DEFAULT_FASTEMBED_MODEL = "BAAI/bge-small-en-v1.5"

# Known dimensions to avoid a network round trip just for the size
OPENAI_MODEL_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}

FASTEMBED_MODEL_DIMENSIONS = {
    "BAAI/bge-small-en-v1.5": 384,
    "BAAI/bge-base-en-v1.5": 768,
    "sentence-transformers/all-MiniLM-L6-v2": 384,
}

LOCAL_MODEL_FILENAMES = ("all-MiniLM-L6-v2.gguf", "model.gguf")
LOCAL_EMBED_SCRIPT = "embed.py"

_UINT64_MASK = 0xFFFFFFFFFFFFFFFF


def normalize_vector(vector: Sequence[float]) -> List[float]:
    """Scale a vector to unit L2 length. Zero vectors are returned unchanged."""
    norm = math.sqrt(sum(x * x for x in vector))
    if norm == 0:
        return [float(x) for x in vector]
    return [x / norm for x in vector]


def to_float32(value: float) -> float:
    return struct.unpack("f", struct.pack("f", value))[0]


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two normalized vectors, as a float32 dot product.

    Vectors of different lengths are treated as unrelated (0.0).
    """
    if len(a) != len(b):
        return 0.0
    return to_float32(sum(x * y for x, y in zip(a, b)))


def _coerce_vector(values, source: str) -> List[float]:
    if not isinstance(values, list) or not values:
        raise EmbeddingFailure(f"{source} returned no embedding")
    try:
        return [float(v) for v in values]
    except (TypeError, ValueError) as e:
        raise EmbeddingFailure(f"{source} returned a non-numeric embedding: {e}") from e


class EmbeddingProvider(ABC):
    """Turns text into a fixed-length, unit-length vector."""

    name: str = "base"

    @property
    @abstractmethod
    def dimensions(self) -> int:
        """Length of every vector this provider returns."""

    @abstractmethod
    def embed(self, text: str) -> List[float]:
        """Embed text.

        Raises:
            EmbeddingFailure: If the backend cannot produce a vector
        """

    @property
    def identity(self) -> str:
        """Provider identity persisted by the store to detect embedder changes."""
        return self.name

    def close(self) -> None:
        """Release any resources held by the provider."""


class OpenAIEmbedder(EmbeddingProvider):
    """Embeddings from an OpenAI-compatible ``/embeddings`` HTTP endpoint."""

    name = "openai"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None,
    ):
        """Initialize the remote embedder.

        Args:
            api_key: API key; falls back to the OPENAI_API_KEY environment variable
            model: Embedding model name (default text-embedding-3-small)
            base_url: API base URL
            timeout: HTTP timeout in seconds
            client: Pre-built httpx client (mainly for tests)

        Raises:
            ConfigurationError: If no API key is available
        """
        api_key = api_key or os.environ.get("OPENAI_API_KEY")
        if not api_key:
            raise ConfigurationError("OpenAI API key not provided (set OPENAI_API_KEY or memory.api_key)")

        self.api_key = api_key
        self.model = model or DEFAULT_OPENAI_MODEL
        self.base_url = base_url.rstrip("/")
        self._dimensions = OPENAI_MODEL_DIMENSIONS.get(self.model, OPENAI_MODEL_DIMENSIONS[DEFAULT_OPENAI_MODEL])
        self._owns_client = client is None
        self.client = client or httpx.Client(timeout=timeout)

    @property
    def dimensions(self) -> int:
        return self._dimensions

    @property
    def identity(self) -> str:
        return f"{self.name}:{self.model}"

    def embed(self, text: str) -> List[float]:
        try:
            response = self.client.post(
                f"{self.base_url}/embeddings",
                json={"model": self.model, "input": text},
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        except httpx.RequestError as e:
            raise EmbeddingFailure(f"OpenAI embedding request failed: {e}") from e

        if not response.is_success:
            raise EmbeddingFailure(f"OpenAI API error: {response.status_code} {response.reason_phrase}")

        try:
            payload = response.json()
        except ValueError as e:
            raise EmbeddingFailure(f"OpenAI API returned invalid JSON: {e}") from e

        data = payload.get("data") if isinstance(payload, dict) else None
        if not data or not isinstance(data[0], dict):
            raise EmbeddingFailure("OpenAI API returned no embedding")

        vector = _coerce_vector(data[0].get("embedding"), "OpenAI API")
        if len(vector) != self._dimensions:
            raise EmbeddingFailure(
                f"OpenAI model {self.model} returned {len(vector)} dimensions, expected {self._dimensions}"
            )
        return normalize_vector(vector)

    def close(self) -> None:
        if self._owns_client:
            self.client.close()


class LocalEmbedder(EmbeddingProvider):
    """Embeddings from a local model file.

    If an ``embed.py`` script sits next to the model it is run as a subprocess
    with the model path and text, and must print a JSON array of numbers.
    Without the script a deterministic character-trigram hash embedding is
    used instead. That fallback is stable (same text, same vector) but carries
    no semantic meaning.
    """

    name = "local"

    def __init__(self, model_path: Optional[Path] = None):
        if model_path is None:
            model_path = self._find_default_model()
            if model_path is None:
                raise ConfigurationError(
                    f"Local model path not provided and no default model found in {get_models_dir()}"
                )

        model_path = Path(model_path).expanduser()
        if not model_path.is_file():
            raise ConfigurationError(f"Model file not found: {model_path}")

        self.model_path = model_path
        self._dimensions = 768 if "large" in str(model_path) else 384

    @staticmethod
    def _find_default_model() -> Optional[Path]:
        models_dir = get_models_dir()
        for filename in LOCAL_MODEL_FILENAMES:
            candidate = models_dir / filename
            if candidate.is_file():
                return candidate
        return None

    @property
    def dimensions(self) -> int:
        return self._dimensions

    @property
    def identity(self) -> str:
        return f"{self.name}:{self.model_path.name}"

    @property
    def script_path(self) -> Path:
        return self.model_path.parent / LOCAL_EMBED_SCRIPT

    def embed(self, text: str) -> List[float]:
        script = self.script_path
        if script.is_file():
            return self._embed_with_script(script, text)
        return self.hash_embedding(text)

    def _embed_with_script(self, script: Path, text: str) -> List[float]:
        try:
            result = subprocess.run(
                [sys.executable, str(script), str(self.model_path), text],
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as e:
            raise EmbeddingFailure(f"Embedding script could not be started: {e}") from e

        if result.returncode != 0:
            stderr = result.stderr.strip()
            raise EmbeddingFailure(f"Embedding script failed with exit code {result.returncode}: {stderr}")

        try:
            values = json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise EmbeddingFailure(f"Embedding script output is not JSON: {e}") from e

        vector = _coerce_vector(values, "Embedding script")
        if len(vector) != self._dimensions:
            raise EmbeddingFailure(f"Embedding script returned {len(vector)} dimensions, expected {self._dimensions}")
        return normalize_vector(vector)

    def hash_embedding(self, text: str) -> List[float]:
        """Histogram of hashed character trigrams, normalized."""
        vector = [0.0] * self._dimensions
        for ngram in extract_ngrams(text, 3):
            vector[djb2_hash(ngram) % self._dimensions] += 1.0
        return normalize_vector(vector)


def extract_ngrams(text: str, n: int) -> List[str]:
    """All character n-grams of the lower-cased text."""
    text = text.lower()
    return [text[i : i + n] for i in range(len(text) - n + 1)]


def djb2_hash(value: str) -> int:
    """djb2 polynomial rolling hash, wrapped to 64 bits."""
    h = 5381
    for c in value:
        h = ((h << 5) + h + ord(c)) & _UINT64_MASK
    return h


# Common English and software words; order fixes each word's vector slot
SIMPLE_VOCABULARY = tuple(
    dict.fromkeys(
        """
        the be to of and a in that have i it for not on with he as you do at
        this but his by from they we say her she or an will my one all would there their what
        so up out if about who get which go me when make can like time no just him know take
        people into year your good some could them see other than then now look only come its over think also
        back after use two how our work first well way even new want because any these give day most us
        is was are were been has had did does doing
        code function class method variable program software computer
        data file project build test run debug error fix
        create add remove delete update change modify edit
        install configure setup deploy server client api web
        database query table column row sql nosql json xml
        python javascript typescript golang rust java cpp
        react vue angular node express django flask fastapi
        docker kubernetes container cloud aws azure gcp
        git github commit branch merge pull push repository
        memory remember recall search find store save load
        user preference dislike need important always
        never usually sometimes often rarely name email phone
        address location place city country company job
        """.split()
    )
)

_NON_ALPHA_EDGES = re.compile(r"^[^a-z]+|[^a-z]+$")


class SimpleEmbedder(EmbeddingProvider):
    """Term-frequency vector over a fixed built-in vocabulary.

    Needs no network or model files. Words outside the vocabulary contribute
    nothing, so similarity is crude lexical overlap.
    """

    name = "simple"

    def __init__(self, vocabulary: Sequence[str] = SIMPLE_VOCABULARY):
        self.vocabulary = {word: index for index, word in enumerate(vocabulary)}

    @property
    def dimensions(self) -> int:
        return len(self.vocabulary)

    def embed(self, text: str) -> List[float]:
        vector = [0.0] * self.dimensions
        words = text.lower().split()
        if not words:
            return vector

        counts: Dict[str, int] = {}
        for word in words:
            word = _NON_ALPHA_EDGES.sub("", word)
            if word:
                counts[word] = counts.get(word, 0) + 1

        for word, count in counts.items():
            index = self.vocabulary.get(word)
            if index is not None:
                vector[index] = count / len(words)

        return normalize_vector(vector)


class FastEmbedEmbedder(EmbeddingProvider):
    """In-process embeddings using fastembed (optional dependency)."""

    name = "fastembed"

    def __init__(self, model_name: Optional[str] = None):
        try:
            import fastembed  # noqa: F401
        except ImportError as e:
            raise ConfigurationError(
                "fastembed is required for the fastembed provider. Install with: pip install engram[fastembed]"
            ) from e

        self.model_name = model_name or DEFAULT_FASTEMBED_MODEL
        self._model = None
        self._dimensions = FASTEMBED_MODEL_DIMENSIONS.get(self.model_name)

    @property
    def identity(self) -> str:
        return f"{self.name}:{self.model_name}"

    @property
    def dimensions(self) -> int:
        if self._dimensions is None:
            # Unknown model, fall back to asking the model itself
            try:
                self._dimensions = len(self._embed_raw("dimension probe"))
            except Exception as e:
                raise ConfigurationError(
                    f"Could not determine dimensions of fastembed model {self.model_name}: {e}"
                ) from e
        return self._dimensions

    def _embed_raw(self, text: str) -> List[float]:
        # Lazy load model
        if self._model is None:
            from fastembed import TextEmbedding

            self._model = TextEmbedding(model_name=self.model_name)
        return list(self._model.embed([text]))[0].tolist()

    def embed(self, text: str) -> List[float]:
        try:
            vector = self._embed_raw(text)
        except Exception as e:
            raise EmbeddingFailure(f"fastembed failed to embed text: {e}") from e
        return normalize_vector(vector)


EMBEDDING_PROVIDERS: Dict[str, Callable[["StoreConfig"], EmbeddingProvider]] = {
    "simple": lambda config: SimpleEmbedder(),
    "openai": lambda config: OpenAIEmbedder(
        api_key=config.api_key,
        model=config.embedding_model,
        base_url=config.api_base_url,
        timeout=config.request_timeout,
    ),
    "local": lambda config: LocalEmbedder(config.local_model_path),
    "fastembed": lambda config: FastEmbedEmbedder(config.embedding_model),
}


def create_embedder(config: "StoreConfig") -> EmbeddingProvider:
    """Build the embedding provider selected by ``config.embedding_provider``.

    Raises:
        ConfigurationError: If the selector is unknown or the provider can't be set up
    """
    factory = EMBEDDING_PROVIDERS.get(config.embedding_provider)
    if factory is None:
        available = ", ".join(sorted(EMBEDDING_PROVIDERS))
        raise ConfigurationError(f"Unknown embedding provider: {config.embedding_provider}. Available: {available}")

    embedder = factory(config)
    logger.debug(f"Created {embedder.identity} embedder ({embedder.dimensions} dims)")
    return embedder
