from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource


class PathsConfig(BaseModel):
    raw_dir: str = "data/raw"
    sdtm_dir: str = "data/sdtm"
    adam_dir: str = "data/adam"
    ct_spec: str = "data/raw/sdtm_ct.csv"
    output_dir: str = "outputs"


class OutputConfig(BaseModel):
    ds_csv: str = "ds_domain.csv"
    adsl_csv: str = "adsl.csv"
    ae_table_html: str = "ae_summary_table.html"
    plot_severity_png: str = "plot_1.png"
    plot_top_ae_png: str = "plot_2.png"
    width: float = Field(default=8.0, gt=0)
    height: float = Field(default=6.0, gt=0)
    dpi: int = Field(default=300, gt=0)


class LoggingConfig(BaseModel):
    level: str = "INFO"
    json_output: bool = False
    scrub_values: bool = True


class AppConfig(BaseSettings):
    """Derivation settings from YAML with environment variable overrides."""

    env: Literal["local", "dev", "prod", "test"] = "local"
    paths: PathsConfig = PathsConfig()
    output: OutputConfig = OutputConfig()
    logging: LoggingConfig = LoggingConfig()

    model_config = {
        "env_file": ".env",
        "env_prefix": "CLINDERIV_",
        "env_nested_delimiter": "__",
        "case_sensitive": False,
        "extra": "ignore",
    }

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # environment beats YAML values passed as init kwargs
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    @classmethod
    def from_yaml(cls, path: str | Path) -> "AppConfig":
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
        return cls(**raw)

    def output_path(self, name: str) -> Path:
        return Path(self.paths.output_dir) / name


@lru_cache()
def get_config() -> AppConfig:
    """Cached config: defaults < `configs/config.{ENV}.yaml` < `CLINDERIV_*` environment."""
    config = AppConfig()
    env = os.getenv("ENV", config.env).lower()
    cfg_path = Path(f"configs/config.{env}.yaml")
    if cfg_path.exists():
        config = AppConfig.from_yaml(cfg_path)
    return config
