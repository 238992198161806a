"""Environment-based configuration for SnapClass."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Fixed by the model family: 224x224 RGB input, top-5 rendering.
INPUT_SIZE: int = 224
TOP_K: int = 5


class Settings(BaseSettings):
    """Application settings loaded from SNAPCLASS_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="SNAPCLASS_",
        case_sensitive=False,
        protected_namespaces=("settings_",),
    )

    # Server
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8083

    # Authentication (None = disabled)
    api_key: str | None = None

    # ML device
    device: Literal["cpu", "cuda", "openvino"] = "cpu"

    # Label catalog
    labels_url: str = "https://raw.githubusercontent.com/pytorch/hub/master/imagenet_classes.txt"

    # Model selection. The default expects ImageNet mean/std input; see README "Model input".
    model_repo_id: str = "onnxmodelzoo/mobilenetv2_100_Opset16"
    model_filename: str = "mobilenetv2_100_Opset16.onnx"
    models_dir: str = "models"
    apply_softmax: bool = True

    # ONNX Runtime threading
    intra_op_threads: int = Field(default=0, ge=0)
    inter_op_threads: int = Field(default=1, ge=1)

    # Concurrency
    max_concurrent: int = Field(default=2, ge=1)

    # Input limits
    max_image_pixels: int = Field(default=16_777_216, ge=1)
    max_file_size: int = Field(default=20_971_520, ge=1)

    # Classification sessions kept in memory
    max_sessions: int = Field(default=256, ge=1)

    @property
    def model_name(self) -> str:
        """Short identifier for the configured model file."""
        return self.model_filename.rsplit(".", 1)[0]


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
