"""
应用配置加载。

设计目标：
- **严格**：YAML 里出现未知字段直接报错（`extra="forbid"`），启动即失败
- **类型安全**：使用 Pydantic 校验，字段名与配置文件一致（kebab-case alias）
- **可测试**：`parse_config` 接收 YAML 文本，`load_config` 只负责找文件/读文件
"""

from __future__ import annotations

import os
from collections.abc import Sequence
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

CONFIG_FILE_NAME = "metal-robot.yaml"
CONFIG_SEARCH_PATHS: tuple[str, ...] = ("/etc/metal-robot", "~/.metal-robot", ".")


class ConfigError(ValueError):
    """配置不合法（启动期致命错误）。"""

    pass


class ConfigModel(BaseModel):
    """所有配置模型的基类：拒绝未知字段、不可变。"""

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)


def validate_args(model: type[ConfigModel], raw: Any, what: str) -> Any:
    """把 action/modifier 的 args 映射校验成具体模型，错误统一成 `ConfigError`。"""
    try:
        return model.model_validate(raw or {})
    except ValidationError as exc:
        raise ConfigError(f"invalid {what} configuration: {exc}") from exc


class GitHubCredentials(ConfigModel):
    app_id: int = Field(alias="app-id")
    key_path: str = Field(alias="key-path")


class GitLabCredentials(ConfigModel):
    token: str


class ClientConfig(ConfigModel):
    name: str
    organization: str
    github: GitHubCredentials | None = None
    gitlab: GitLabCredentials | None = None

    @model_validator(mode="after")
    def _exactly_one_credential(self) -> ClientConfig:
        if self.github is not None and self.gitlab is not None:
            raise ValueError(f"client {self.name!r} must not configure github and gitlab at the same time")
        if self.github is None and self.gitlab is None:
            raise ValueError(f"client {self.name!r} needs either github or gitlab credentials")
        return self


class ActionSpec(ConfigModel):
    type: str
    client: str
    args: dict[str, Any] = Field(default_factory=dict)


class WebhookConfig(ConfigModel):
    vcs: Literal["github", "gitlab"]
    serve_path: str = Field(alias="serve-path")
    secret: str
    actions: list[ActionSpec] = Field(default_factory=list)


class AppConfig(ConfigModel):
    clients: list[ClientConfig] = Field(default_factory=list)
    webhooks: list[WebhookConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_names(self) -> AppConfig:
        names = [c.name for c in self.clients]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"client names must be unique: {', '.join(duplicates)}")
        paths = [w.serve_path.strip("/") for w in self.webhooks]
        duplicates = sorted({p for p in paths if paths.count(p) > 1})
        if duplicates:
            raise ValueError(f"webhook serve paths must be unique: {', '.join(duplicates)}")
        return self


def parse_config(text: str) -> AppConfig:
    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"unable to parse config file: {exc}") from exc
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError("config file must contain a mapping at the top level")
    try:
        return AppConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(f"invalid config: {exc}") from exc


def find_config_file(search_paths: Sequence[str] = CONFIG_SEARCH_PATHS) -> Path:
    for directory in search_paths:
        candidate = Path(os.path.expanduser(directory)) / CONFIG_FILE_NAME
        if candidate.is_file():
            return candidate
    raise ConfigError(f"no {CONFIG_FILE_NAME} found in: {', '.join(search_paths)}")


def load_config(path: str | None = None) -> AppConfig:
    """
    读取并校验配置文件。

    - **输入**：显式路径；为空时按 `CONFIG_SEARCH_PATHS` 顺序查找
    - **失败**：找不到/解析失败/校验失败都抛 `ConfigError`
    """
    config_path = Path(path) if path else find_config_file()
    try:
        text = config_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"unable to read config file {config_path}: {exc}") from exc
    return parse_config(text)
