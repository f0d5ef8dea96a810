"""Configuration schema and loader for the face segmentation pipeline."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from face_mapper.distortion import DistortionParams
from face_mapper.faces import DEFAULT_ACTIVE_FACES, DEFAULT_REGIONS, FaceId
from face_mapper.geometry import Quad, Region


class ProjectMetadata(BaseModel):
    name: str = Field("face_mapper")


class LoggingConfig(BaseModel):
    level: str = Field("INFO")
    output: str = Field("stdout")

    @field_validator("level")
    @classmethod
    def normalize_level(cls, value: str) -> str:
        return value.upper()


class SourceConfig(BaseModel):
    path: Optional[Path] = None
    device_id: Optional[int] = Field(None, ge=0)
    resolution: Optional[List[int]] = Field(None, min_length=2, max_length=2)
    fps: Optional[int] = Field(None, gt=0)
    loop: bool = True

    @model_validator(mode="after")
    def ensure_single_target(self) -> "SourceConfig":
        if (self.path is None) == (self.device_id is None):
            raise ValueError("Source requires exactly one of 'path' or 'device_id'")
        return self


class ChannelConfig(BaseModel):
    width: int = Field(512, gt=0)
    height: int = Field(512, gt=0)


class DistortionConfig(BaseModel):
    enabled: bool = True
    top: float = 0.3
    bottom: float = 0.3
    left: float = 0.1
    right: float = 0.1
    scale: float = Field(1.0, gt=0.0)

    def to_params(self) -> DistortionParams:
        return DistortionParams(
            top=self.top,
            bottom=self.bottom,
            left=self.left,
            right=self.right,
            scale=self.scale,
        )


class DewarpConfig(BaseModel):
    enabled: bool = True
    fallback_color: Optional[List[int]] = Field(None, min_length=3, max_length=3)

    @field_validator("fallback_color")
    @classmethod
    def ensure_byte_range(cls, value: Optional[List[int]]) -> Optional[List[int]]:
        if value is not None and any(not 0 <= channel <= 255 for channel in value):
            raise ValueError(f"fallback_color channels must be within 0..255, got {value}")
        return value


class RegionConfig(BaseModel):
    x: float = 0.0
    y: float = 0.0
    w: float = 0.0
    h: float = 0.0

    def to_region(self) -> Region:
        return Region(self.x, self.y, self.w, self.h)

    @classmethod
    def from_region(cls, region: Region) -> "RegionConfig":
        return cls(x=region.x, y=region.y, w=region.w, h=region.h)


class FaceConfig(BaseModel):
    active: bool = False
    region: RegionConfig = Field(default_factory=RegionConfig)
    quad: Optional[List[List[float]]] = None

    @field_validator("quad")
    @classmethod
    def ensure_four_points(cls, value: Optional[List[List[float]]]) -> Optional[List[List[float]]]:
        if value is None:
            return value
        if len(value) != 4 or any(len(point) != 2 for point in value):
            raise ValueError("quad must contain exactly four [x, y] points")
        return value

    def to_quad(self) -> Optional[Quad]:
        return Quad.from_points(self.quad) if self.quad is not None else None


def default_faces() -> Dict[FaceId, FaceConfig]:
    return {
        face: FaceConfig(
            active=face in DEFAULT_ACTIVE_FACES,
            region=RegionConfig.from_region(region),
        )
        for face, region in DEFAULT_REGIONS.items()
    }


class StorageConfig(BaseModel):
    output_dir: Path = Field(Path("output"), validate_default=True)

    @field_validator("output_dir", mode="before")
    @classmethod
    def ensure_output_dir(cls, value: str | Path) -> Path:
        path = Path(value)
        path.mkdir(parents=True, exist_ok=True)
        return path


class SegmenterConfig(BaseModel):
    project: ProjectMetadata = Field(default_factory=ProjectMetadata)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    source: Optional[SourceConfig] = None
    channels: ChannelConfig = Field(default_factory=ChannelConfig)
    distortion: DistortionConfig = Field(default_factory=DistortionConfig)
    dewarp: DewarpConfig = Field(default_factory=DewarpConfig)
    faces: Dict[FaceId, FaceConfig] = Field(default_factory=default_faces)
    storage: Optional[StorageConfig] = None

    @field_validator("faces")
    @classmethod
    def fill_missing_faces(cls, value: Dict[FaceId, FaceConfig]) -> Dict[FaceId, FaceConfig]:
        faces = default_faces()
        faces.update(value)
        return faces

    def face(self, face_id: FaceId) -> FaceConfig:
        return self.faces[face_id]


def load_config(path: str | Path) -> SegmenterConfig:
    """Load configuration from YAML file."""
    with open(path, "r", encoding="utf-8") as handle:
        raw: Dict[str, object] = yaml.safe_load(handle) or {}
    return SegmenterConfig.model_validate(raw)


def save_config(config: SegmenterConfig, path: str | Path) -> Path:
    """Write configuration (including the current face layout) back to YAML."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = config.model_dump(mode="json", exclude_none=True)
    payload["faces"] = {FaceId(key).value: face for key, face in payload["faces"].items()}
    with open(path, "w", encoding="utf-8") as handle:
        yaml.safe_dump(payload, handle, sort_keys=False)
    return path
