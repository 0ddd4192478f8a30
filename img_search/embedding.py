from __future__ import annotations

from typing import List, Protocol

from PIL import Image
import torch
from transformers import AutoImageProcessor, AutoModel, AutoTokenizer

from .config import ModelConfig, model
from .errors import ProviderError
from .logging import get_logger

logger = get_logger(__name__)


class EmbeddingProvider(Protocol):
    """Turns images and text into vectors of one shared embedding space."""

    def embed_image(self, path: str) -> List[float]:
        ...

    def embed_text(self, text: str) -> List[float]:
        ...


def _load_image(path: str) -> Image.Image:
    with Image.open(path) as img:
        return img.convert("RGB")


def _to_vector(feats) -> List[float]:
    # Newer transformers releases may wrap the projected features in a model output.
    if not isinstance(feats, torch.Tensor):
        feats = feats.pooler_output
    # normalize() leaves an all-zero vector at zero instead of producing NaN.
    feats = torch.nn.functional.normalize(feats, dim=-1)
    return [float(v) for v in feats[0].cpu().tolist()]


class ClipEmbedder:
    """CLIP-style dual encoder backed by HuggingFace transformers.

    The model, image processor and tokenizer are loaded on first use and kept
    for the lifetime of the instance; build one embedder and pass it to both
    the indexer and the search functions.
    """

    def __init__(self, cfg: ModelConfig = model) -> None:
        self.cfg = cfg
        self.device = torch.device(cfg.device)
        self._model = None
        self._image_processor = None
        self._tokenizer = None

    def load(self) -> None:
        """Load the model, image processor and tokenizer unless already loaded."""
        if self._model is not None:
            return
        try:
            logger.info("Loading tokenizer and image processor for %s...", self.cfg.model_name)
            tokenizer = AutoTokenizer.from_pretrained(self.cfg.model_name)
            image_processor = AutoImageProcessor.from_pretrained(self.cfg.model_name)
            logger.info("Loading model %s... This may take a moment.", self.cfg.model_name)
            clip_model = AutoModel.from_pretrained(self.cfg.model_name)
            clip_model.to(self.device)
            clip_model.eval()
        except Exception as e:
            raise ProviderError(f"Could not load model {self.cfg.model_name}: {e}") from e
        self._tokenizer = tokenizer
        self._image_processor = image_processor
        self._model = clip_model
        logger.info("Model loaded.")

    def embed_image(self, path: str) -> List[float]:
        """Return the L2-normalised image embedding for the file at ``path``."""
        self.load()
        try:
            image = _load_image(path)
            inputs = self._image_processor(images=image, return_tensors="pt")
            inputs = {k: v.to(self.device) for k, v in inputs.items()}
            with torch.no_grad():
                feats = self._model.get_image_features(**inputs)
            vector = _to_vector(feats)
        except Exception as e:
            raise ProviderError(f"{type(e).__name__}: {e}") from e
        return vector

    def embed_text(self, text: str) -> List[float]:
        """Return the L2-normalised text embedding for ``text``."""
        self.load()
        try:
            inputs = self._tokenizer([text], padding=True, truncation=True, return_tensors="pt")
            inputs = {k: v.to(self.device) for k, v in inputs.items()}
            with torch.no_grad():
                feats = self._model.get_text_features(**inputs)
            vector = _to_vector(feats)
        except Exception as e:
            raise ProviderError(f"{type(e).__name__}: {e}") from e
        return vector
