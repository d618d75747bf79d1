from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, field_validator


LayerMode = Literal["clip", "merge"]


class LayerPolicyConfig(BaseModel):
    """
    YAML shape of the layer policy (see compose/layers.yaml).
    """

    default: LayerMode = "clip"
    merge: list[str] = Field(default_factory=list)
    clip: list[str] = Field(default_factory=list)

    @field_validator("merge", "clip")
    @classmethod
    def _strip_names(cls, v: list[str]) -> list[str]:
        return [str(s).strip() for s in v if str(s).strip()]


@dataclass(frozen=True)
class LayerPolicy:
    """
    Which layers are merged whole across charts and which are clipped.

    Data, not code: new layer categories go in YAML.
    """

    merge_layers: frozenset[str]
    clip_layers: frozenset[str] = frozenset()
    default: LayerMode = "clip"

    def mode(self, layer_name: str) -> LayerMode:
        if layer_name in self.merge_layers:
            return "merge"
        if layer_name in self.clip_layers:
            return "clip"
        return self.default

    def is_merge(self, layer_name: str) -> bool:
        return self.mode(layer_name) == "merge"

    @classmethod
    def from_config(cls, cfg: LayerPolicyConfig) -> "LayerPolicy":
        overlap = set(cfg.merge) & set(cfg.clip)
        if overlap:
            raise ValueError(f"Layers listed as both merge and clip: {sorted(overlap)}")
        return cls(
            merge_layers=frozenset(cfg.merge),
            clip_layers=frozenset(cfg.clip),
            default=cfg.default,
        )


def _builtin_policy_path() -> Path:
    return Path(__file__).resolve().parent / "layers.yaml"


def policy_path() -> Path:
    raw = (os.getenv("ENC_LAYER_POLICY") or "").strip()
    return Path(raw).expanduser() if raw else _builtin_policy_path()


def load_policy(path: Path) -> LayerPolicy:
    raw = path.read_text(encoding="utf-8")
    data = yaml.safe_load(raw) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid layer policy yaml root: {path}")
    return LayerPolicy.from_config(LayerPolicyConfig.model_validate(data))


@lru_cache(maxsize=4)
def _policy_cached(path_s: str) -> LayerPolicy:
    return load_policy(Path(path_s))


def default_policy() -> LayerPolicy:
    return _policy_cached(str(policy_path()))


def clear_policy_cache() -> None:
    _policy_cached.cache_clear()
