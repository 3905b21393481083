import copy
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger("pos_checkout.config")

DEFAULT_CONFIG_DIR = "configs"

DEFAULTS: Dict[str, Any] = {
    "currency": "EUR",
    "cart": {"max_quantity": 9999},
    "split": {"min_payers": 2, "max_payers": 50},
    "promotions": {},
    "coupons": {},
}

# 环境变量覆盖：变量名 -> 点分配置键
ENV_OVERRIDES = {
    "POS_MAX_QUANTITY": ("cart.max_quantity", int),
    "POS_MAX_PAYERS": ("split.max_payers", int),
    "POS_MIN_PAYERS": ("split.min_payers", int),
    "POS_CURRENCY": ("currency", str),
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = _merge(out[key], value)
        else:
            out[key] = copy.deepcopy(value)
    return out


def _set_dotted(data: Dict[str, Any], key: str, value: Any) -> None:
    keys = key.split(".")
    node = data
    for k in keys[:-1]:
        node = node.setdefault(k, {})
    node[keys[-1]] = value


def _read_yaml(path: str) -> Dict[str, Any]:
    if not os.path.exists(path):
        return {}
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"config file {path} must contain a mapping")
    logger.debug("loaded config file %s", path)
    return data


@dataclass
class Settings:
    environment: str = "development"
    data: Dict[str, Any] = field(default_factory=lambda: copy.deepcopy(DEFAULTS))

    def get(self, key: str, default: Any = None) -> Any:
        """支持点分嵌套访问，如 "split.max_payers"。"""
        value: Any = self.data
        for k in key.split("."):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    @property
    def currency(self) -> str:
        return str(self.get("currency", "EUR"))

    @property
    def max_quantity(self) -> int:
        return int(self.get("cart.max_quantity", 9999))

    @property
    def min_payers(self) -> int:
        return int(self.get("split.min_payers", 2))

    @property
    def max_payers(self) -> int:
        return int(self.get("split.max_payers", 50))

    @property
    def promotions(self) -> Dict[str, Dict[str, Any]]:
        return dict(self.get("promotions", {}) or {})

    @property
    def coupons(self) -> Dict[str, Dict[str, Any]]:
        return dict(self.get("coupons", {}) or {})


def load_settings(environment: Optional[str] = None, config_dir: Optional[str] = None) -> Settings:
    """按层加载配置：默认值 < common.yaml < <env>.yaml < 环境变量。"""
    environment = environment or os.environ.get("POS_ENV", "development")
    config_dir = config_dir or os.environ.get("POS_CONFIG_DIR", DEFAULT_CONFIG_DIR)

    data = copy.deepcopy(DEFAULTS)
    data = _merge(data, _read_yaml(os.path.join(config_dir, "common.yaml")))
    data = _merge(data, _read_yaml(os.path.join(config_dir, f"{environment}.yaml")))

    for var, (key, cast) in ENV_OVERRIDES.items():
        raw = os.environ.get(var)
        if raw:
            _set_dotted(data, key, cast(raw))

    logger.info("settings loaded env=%s dir=%s", environment, config_dir)
    return Settings(environment=environment, data=data)
