from __future__ import annotations

from collections.abc import Iterable

from lemobar_scan.core.models import Center

DEFAULT_CENTERS: tuple[Center, ...] = (
    Center("北京", 39.9042, 116.4074),
    Center("上海", 31.2304, 121.4737),
    Center("广州", 23.1291, 113.2644),
    Center("深圳", 22.5431, 114.0579),
    Center("杭州", 30.2741, 120.1551),
    Center("南京", 32.0603, 118.7969),
    Center("成都", 30.5728, 104.0668),
    Center("重庆", 29.5630, 106.5516),
    Center("武汉", 30.5928, 114.3055),
    Center("西安", 34.3416, 108.9398),
    Center("天津", 39.3434, 117.3616),
    Center("苏州", 31.2989, 120.5853),
    Center("郑州", 34.7466, 113.6254),
    Center("长沙", 28.2282, 112.9388),
    Center("青岛", 36.0671, 120.3826),
    Center("宁波", 29.8683, 121.5440),
    Center("佛山", 23.0215, 113.1214),
    Center("合肥", 31.8206, 117.2272),
    Center("无锡", 31.4912, 120.3119),
    Center("厦门", 24.4798, 118.0894),
    Center("大连", 38.9140, 121.6147),
    Center("南昌", 28.6829, 115.8582),
    Center("昆明", 25.0389, 102.7183),
    Center("常州", 31.8107, 119.9741),
)


def select_centers(names: Iterable[str] | None = None) -> list[Center]:
    """Return the built-in centers, optionally narrowed to ``names`` (in the given order)."""
    if not names:
        return list(DEFAULT_CENTERS)
    by_name = {center.name: center for center in DEFAULT_CENTERS}
    selected: list[Center] = []
    for name in names:
        center = by_name.get(name)
        if center is None:
            supported = ", ".join(by_name)
            raise ValueError(f"unknown center '{name}', supported: {supported}")
        if center not in selected:
            selected.append(center)
    return selected
