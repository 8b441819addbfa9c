"""Catalog collaborator: the list of tracked products.

The engine only reads from the catalog. ``InMemoryCatalog`` is the default
implementation, seeded with the configurator's tracked parts or loaded from
a JSON file.
"""

import json
from abc import ABC, abstractmethod
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import structlog

from pricesync.scrapers.base import ProductSource


logger = structlog.get_logger(__name__)


class CatalogProvider(ABC):
    """Source of trackable products and their reference price/URL."""

    @abstractmethod
    async def list_tracked_products(self) -> List[ProductSource]:
        """Return every tracked product, sorted by product key."""

    async def get_source(self, product_key: str) -> Optional[ProductSource]:
        """Return one tracked product, or None if the key is unknown."""
        for source in await self.list_tracked_products():
            if source.product_key == product_key:
                return source
        return None


class InMemoryCatalog(CatalogProvider):
    """Dictionary-backed catalog."""

    def __init__(self, sources: Iterable[ProductSource] = ()):
        self._sources: Dict[str, ProductSource] = {}
        for source in sources:
            self.add(source)

    def add(self, source: ProductSource) -> None:
        self._sources[source.product_key] = source

    async def list_tracked_products(self) -> List[ProductSource]:
        return [self._sources[key] for key in sorted(self._sources)]

    async def get_source(self, product_key: str) -> Optional[ProductSource]:
        return self._sources.get(product_key)


# Tracked parts of the robot configurator: key -> (reference EUR price, URL, name, supplier)
_SEED = {
    "MG996R": ("6.2", "https://electropeak.com/mg996r-high-torque-digital-servo",
               "MG996R metal gear servo", "ElectroPeak"),
    "DS3218": ("12.9", "https://srituhobby.com/product/ds3218-20kg-metal-gear-servo-motor-waterproof-servo/",
               "DS3218 20 kg servo", "Sritu Hobby"),
    "ARD_MEGA": ("38.0", "https://www.kubii.com/en/micro-controllers/2075-arduino-mega-2560-rev3-7630049200067.html",
                 "Arduino Mega 2560", "Kubii"),
    "PCA9685": ("13.2", "https://eu.robotshop.com/products/pca9685-16-channel-12-bit-pwm-servo-driver",
                "PCA9685 16-channel servo driver", "RobotShop"),
    "RPI5": ("81.9", "https://www.welectron.com/Raspberry-Pi-5-8-GB-RAM_1",
             "Raspberry Pi 5 (8 GB)", "WElectron"),
    "MPU6050": ("14.2", "https://eu.robotshop.com/products/6-dof-gyro-accelerometer-imu-mpu6050",
                "MPU-6050 IMU", "RobotShop"),
    "BNO055": ("36.6", "https://eu.robotshop.com/products/bno055-9-dof-absolute-orientation-imu-fusion-breakout-board",
               "BNO055 9-DOF IMU", "RobotShop"),
    "OAKDLITE": ("128.1", "https://eu.mouser.com/ProductDetail/Luxonis/OAK-D-Lite-FF",
                 "Luxonis OAK-D Lite", "Mouser"),
    "UBEC6A": ("19.9", "https://mg-modellbau.de/Akkuweichen-usw/D-Power/D-Power-Antares-6A-UBEC-Regler.html",
               "UBEC 5V/6A regulator", "MG Modellbau"),
    "PSU12V10A": ("79.0", "https://www.optics-pro.com/power-supplies/pegasusastro-power-supply-12v-10a-europe-2-1mm/p,60252",
                  "Power supply 12 V / 10 A", "Optics Pro"),
    "LIPO4S5000": ("70.0", "https://gensace.de/collections/4s-lipo-battery",
                   "LiPo 4S 5000 mAh", "Gens Ace"),
    "FILAMENT": ("20.0", "https://prusa3d.com/", "3D printing filament (1 kg)", "Prusa Research"),
    # No vendor page; reported as invalid_url on every cycle
    "FASTENERS": ("60.0", "#", "Fasteners and bearings set", "Various"),
}

DEFAULT_PRODUCTS: List[ProductSource] = [
    ProductSource(
        product_key=key,
        reference_price=Decimal(price),
        source_url=url,
        name=name,
        supplier=supplier,
    )
    for key, (price, url, name, supplier) in _SEED.items()
]


def load_catalog_file(path: str) -> List[ProductSource]:
    """Load tracked products from a JSON file.

    The file holds a list of objects with ``product_key``,
    ``reference_price`` and ``source_url`` plus optional
    ``reference_currency``, ``name`` and ``supplier``.

    Args:
        path: Path to the JSON file

    Returns:
        Parsed product sources

    Raises:
        ValueError: If the file is not a list of valid product entries
    """
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(raw, list):
        raise ValueError(f"Catalog file {path} must contain a JSON list")

    sources = []
    for index, item in enumerate(raw):
        try:
            sources.append(
                ProductSource(
                    product_key=item["product_key"],
                    reference_price=Decimal(str(item["reference_price"])),
                    source_url=item["source_url"],
                    reference_currency=item.get("reference_currency", "EUR"),
                    name=item.get("name"),
                    supplier=item.get("supplier"),
                )
            )
        except (KeyError, TypeError, InvalidOperation, ValueError) as e:
            raise ValueError(f"Invalid catalog entry #{index} in {path}: {e}") from e

    logger.info("catalog_file_loaded", path=path, count=len(sources))
    return sources


def build_catalog(catalog_file: str = "") -> InMemoryCatalog:
    """Create the catalog from a JSON file, or the built-in parts list."""
    sources = load_catalog_file(catalog_file) if catalog_file else DEFAULT_PRODUCTS
    return InMemoryCatalog(sources)
