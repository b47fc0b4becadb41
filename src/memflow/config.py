import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .similarity.hash import HashAlgorithm

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass
class Settings:
    similarity_threshold: float = 0.85
    algorithm: HashAlgorithm = HashAlgorithm.AVERAGE
    sharpen: bool = False
    skip_undecodable: bool = True
    skip_failed_pairs: bool = False

    def __post_init__(self) -> None:
        if not 0.0 <= self.similarity_threshold <= 1.0:
            raise ValueError(
                f"similarity_threshold must be within [0, 1], got {self.similarity_threshold}"
            )
        self.algorithm = HashAlgorithm(self.algorithm)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from MEMFLOW_* environment variables."""
        env = os.environ if environ is None else environ
        return cls(
            similarity_threshold=float(env.get("MEMFLOW_SIMILARITY_THRESHOLD", cls.similarity_threshold)),
            algorithm=env.get("MEMFLOW_HASH_ALGORITHM", cls.algorithm),
            sharpen=env.get("MEMFLOW_SHARPEN", "").strip().lower() in _TRUTHY,
        )
