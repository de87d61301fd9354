"""Price Feed — абстрактный источник уже полученных цен.

DepegMonitor зависит только от протокола PriceFeed, а не от конкретного оракула.
InMemoryPriceFeed — push-адаптер по умолчанию: хост публикует репорты через
reportPrice / batchReportPrice.
"""

import threading
from typing import Iterable, Optional, Protocol

from src.core.domain.depeg_state import PriceReport
from src.core.errors import ValidationError


class PriceFeed(Protocol):
    """Источник последних цен по активам."""

    def latest(self, asset_id: str) -> Optional[PriceReport]:
        ...


class InMemoryPriceFeed:
    """Последний репорт по каждому активу; устаревшие timestamp отклоняются."""

    def __init__(self):
        self._reports: dict[str, PriceReport] = {}
        self._lock = threading.RLock()

    def latest(self, asset_id: str) -> Optional[PriceReport]:
        with self._lock:
            return self._reports.get(asset_id)

    def check(self, reports: Iterable[PriceReport]) -> None:
        """
        Проверка монотонности timestamp для последовательности репортов
        (включая порядок внутри пакета) без публикации.

        Raises:
            ValidationError: репорт старше последнего по активу
        """
        with self._lock:
            last_seen = {asset_id: r.ts_utc_ms for asset_id, r in self._reports.items()}
            for report in reports:
                previous = last_seen.get(report.asset_id)
                if previous is not None and report.ts_utc_ms < previous:
                    raise ValidationError(
                        f"stale price report for {report.asset_id}: "
                        f"ts={report.ts_utc_ms} < last={previous}"
                    )
                last_seen[report.asset_id] = report.ts_utc_ms

    def publish(self, report: PriceReport) -> None:
        with self._lock:
            self.check([report])
            self._reports[report.asset_id] = report

    def publish_many(self, reports: Iterable[PriceReport]) -> None:
        """Атомарная публикация пакета: либо все репорты, либо ни одного."""
        reports = list(reports)
        with self._lock:
            self.check(reports)
            for report in reports:
                self._reports[report.asset_id] = report
