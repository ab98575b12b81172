"""
Purpose: Read-only access to brand definitions (keywords and notification channels).
Constraints: Brands are owned by the settings subsystem; nothing here writes them.
"""

from __future__ import annotations

import json
import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from pydantic import ValidationError

from mention_monitor.core.errors import ConfigError
from mention_monitor.core.models import Brand

logger = logging.getLogger(__name__)


class BrandConfigProvider(ABC):
    @abstractmethod
    def get_brand(self, brand_id: str) -> Optional[Brand]:
        ...

    @abstractmethod
    def list_brands(self) -> List[Brand]:
        ...


class StaticBrandConfigProvider(BrandConfigProvider):
    def __init__(self, brands: Iterable[Brand]):
        self._brands: Dict[str, Brand] = {brand.id: brand for brand in brands}

    def get_brand(self, brand_id: str) -> Optional[Brand]:
        return self._brands.get(brand_id)

    def list_brands(self) -> List[Brand]:
        return list(self._brands.values())


class JsonBrandConfigProvider(BrandConfigProvider):
    """Brands from a JSON list file, reloaded when the file's mtime changes.

    Invalid entries are skipped with a warning so one bad brand does not stop the others.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._mtime: Optional[float] = None
        self._brands: Dict[str, Brand] = {}

    def _load(self) -> Dict[str, Brand]:
        with self._lock:
            try:
                mtime = self.path.stat().st_mtime
            except FileNotFoundError:
                raise ConfigError(f"Brands file not found: {self.path}")
            if self._mtime == mtime:
                return self._brands
            try:
                raw = json.loads(self.path.read_text(encoding="utf-8") or "[]")
            except json.JSONDecodeError as exc:
                raise ConfigError(f"Invalid JSON in {self.path}: {exc}") from exc
            if not isinstance(raw, list):
                raise ConfigError(f"Brands file {self.path} should contain a JSON list.")
            brands: Dict[str, Brand] = {}
            for entry in raw:
                try:
                    brand = Brand(**entry)
                except (TypeError, ValidationError) as exc:
                    logger.warning("Skipping invalid brand entry in %s: %s", self.path, exc)
                    continue
                brands[brand.id] = brand
            self._brands = brands
            self._mtime = mtime
            logger.info("Loaded %s brands from %s", len(brands), self.path)
            return brands

    def get_brand(self, brand_id: str) -> Optional[Brand]:
        return self._load().get(brand_id)

    def list_brands(self) -> List[Brand]:
        return list(self._load().values())
