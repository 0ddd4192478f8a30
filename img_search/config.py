import os
from dataclasses import dataclass
from typing import Tuple


@dataclass
class PathConfig:
    # Single JSON snapshot holding every indexed image and its embedding.
    db_path: str = os.environ.get("IMG_SEARCH_DB_PATH", os.path.join(".", "db.json"))


@dataclass(frozen=True)
class ModelConfig:
    # HuggingFace model id for a CLIP-style dual encoder (can be overridden via env or direct init).
    # Image and text features must come from the same checkpoint to share one embedding space.
    model_name: str = os.environ.get(
        "IMG_SEARCH_MODEL_NAME", "openai/clip-vit-base-patch32"
    )
    device: str = "cuda" if os.environ.get("USE_CUDA", "0") == "1" else "cpu"


@dataclass(frozen=True)
class SearchConfig:
    # Cosine similarity in [-1, 1]; CLIP text/image pairs rarely exceed ~0.35.
    similarity_threshold: float = 0.28
    default_top_n: int = 4
    allowed_extensions: Tuple[str, ...] = (".png", ".jpg", ".jpeg", ".webp")


paths = PathConfig()
model = ModelConfig()
search = SearchConfig()


def ensure_parent_dir(path: str) -> None:
    """Ensure that the directory holding ``path`` exists."""
    parent = os.path.dirname(os.path.abspath(path))
    os.makedirs(parent, exist_ok=True)
