"""
Historical kline loader for the Binance public data archive.
Downloads zipped CSV archives from data.binance.vision and caches the
parsed candles to disk.
"""

import csv
import io
import json
import zipfile
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable, List, Optional

import requests

from ..observability.logger import get_logger
from .candle import Candle

logger = get_logger(__name__)

BINANCE_DATA_URL = "https://data.binance.vision/data/spot"

# Archives switched from millisecond to microsecond epochs in 2025.
_MICROSECOND_THRESHOLD = 10 ** 15


class DataFetchError(Exception):
    """Historical data could not be downloaded."""

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url


def _epoch_to_datetime(value: int) -> datetime:
    """Convert a Binance epoch value (ms or us) to an aware UTC datetime."""
    if value >= _MICROSECOND_THRESHOLD:
        return datetime.fromtimestamp(value / 1_000_000, tz=timezone.utc)
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def parse_kline_row(row: List[str]) -> Optional[Candle]:
    """
    Parse one row of a Binance kline CSV.

    Column order is open_time, open, high, low, close, volume, close_time,
    followed by fields the backtester does not use. close_time is the last
    unit inside the bar, so end_time is moved one unit forward to give an
    exclusive bar end.

    Args:
        row: CSV fields.

    Returns:
        Candle, or None for header and malformed rows.
    """
    if len(row) < 7:
        return None

    try:
        open_time = int(row[0])
        close_time = int(row[6])
        open_price = float(row[1])
        high = float(row[2])
        low = float(row[3])
        close = float(row[4])
        volume = float(row[5])
    except ValueError:
        return None

    start_time = _epoch_to_datetime(open_time)
    end_time = _epoch_to_datetime(close_time + 1)

    if start_time >= end_time:
        return None

    return Candle(
        start_time=start_time,
        end_time=end_time,
        open=open_price,
        high=high,
        low=low,
        close=close,
        volume=volume,
    )


def parse_kline_csv(lines: Iterable[str]) -> List[Candle]:
    """Parse kline CSV text lines into candles, skipping unusable rows."""
    candles = []
    for row in csv.reader(lines):
        candle = parse_kline_row(row)
        if candle is not None:
            candles.append(candle)
    return candles


def load_klines_csv(path: str) -> List[Candle]:
    """
    Load candles from a local Binance kline CSV file.

    Args:
        path: Path to an extracted archive CSV.

    Returns:
        Candles sorted by end_time with duplicates removed.
    """
    with open(path, "r", newline="") as f:
        candles = parse_kline_csv(f)
    logger.info(f"Loaded {len(candles)} candles from {path}")
    return sort_and_deduplicate(candles)


def sort_and_deduplicate(candles: List[Candle]) -> List[Candle]:
    """Sort candles by end_time and drop repeated end_time values."""
    seen = set()
    unique = []
    for candle in sorted(candles, key=lambda c: c.end_time):
        if candle.end_time not in seen:
            seen.add(candle.end_time)
            unique.append(candle)
    return unique


def _is_current_month(day: date, today: date) -> bool:
    return day.year == today.year and day.month == today.month


class BinanceDataManager:
    """
    Manages historical kline data for backtesting.

    Features:
    - Walks monthly archives for past months and daily archives for the
      current month
    - Skips archives that have not been published yet
    - Caches parsed candles to disk to avoid repeated downloads
    """

    REQUEST_TIMEOUT = 30.0

    def __init__(
        self,
        cache_dir: str = "data/cache/klines",
        use_cache: bool = True,
        session: Optional[requests.Session] = None,
        base_url: str = BINANCE_DATA_URL
    ):
        """
        Initialize the data manager.

        Args:
            cache_dir: Directory for caching kline data.
            use_cache: Whether to use disk caching.
            session: Optional requests session (one is created if not provided).
            base_url: Root of the spot archive.
        """
        self.cache_dir = Path(cache_dir)
        self.use_cache = use_cache
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()

        if use_cache:
            self.cache_dir.mkdir(parents=True, exist_ok=True)

    def archive_url(self, symbol: str, interval: str, day: date, today: date) -> str:
        """
        Build the archive URL covering ``day``.

        Past months are published as one monthly archive; the current month
        is only available as daily archives.
        """
        if _is_current_month(day, today):
            file_name = f"{symbol}-{interval}-{day.year}-{day.month:02d}-{day.day:02d}.zip"
            folder = "daily"
        else:
            file_name = f"{symbol}-{interval}-{day.year}-{day.month:02d}.zip"
            folder = "monthly"
        return f"{self.base_url}/{folder}/klines/{symbol}/{interval}/{file_name}"

    @staticmethod
    def next_archive_date(day: date, today: date) -> date:
        """Return the first date not covered by the archive for ``day``."""
        if _is_current_month(day, today):
            return day + timedelta(days=1)
        if day.month == 12:
            return date(day.year + 1, 1, 1)
        return date(day.year, day.month + 1, 1)

    def get_klines(
        self,
        symbol: str,
        interval: str,
        start: date,
        end: date,
        today: Optional[date] = None
    ) -> List[Candle]:
        """
        Get klines for a date range.

        Args:
            symbol: Binance symbol (e.g., "BTCUSDT").
            interval: Kline interval (e.g., "1d", "4h").
            start: First date to fetch.
            end: Fetching stops before this date.
            today: Override for the current date (used to pick archive type).

        Returns:
            Candles opening in [start, end), sorted by end_time.

        Raises:
            DataFetchError: If an archive download fails or is not a valid zip.
        """
        if self.use_cache:
            cached = self._load_from_cache(symbol, interval, start, end)
            if cached:
                logger.info(
                    f"Loaded {len(cached)} candles from cache",
                    symbol=symbol,
                    interval=interval
                )
                return cached

        today = today or datetime.now(timezone.utc).date()
        logger.info(
            "Downloading klines from Binance archive",
            symbol=symbol,
            interval=interval,
            start=start.isoformat(),
            end=end.isoformat()
        )

        all_candles: List[Candle] = []
        archives = 0
        current = start
        while current < end:
            url = self.archive_url(symbol, interval, current, today)
            content = self._download(url)
            if content is not None:
                try:
                    all_candles.extend(self._read_archive(content))
                except (zipfile.BadZipFile, UnicodeDecodeError) as e:
                    raise DataFetchError(f"Unreadable archive: {e}", url=url) from e
                archives += 1
            current = self.next_archive_date(current, today)

        # Monthly archives overhang the requested range on both ends
        candles = [
            c for c in sort_and_deduplicate(all_candles)
            if start <= c.start_time.date() < end
        ]
        logger.info(
            f"Downloaded {len(candles)} unique candles",
            symbol=symbol,
            interval=interval,
            archives=archives
        )

        if self.use_cache and candles:
            self._save_to_cache(symbol, interval, start, end, candles)

        return candles

    def _download(self, url: str) -> Optional[bytes]:
        """Download one archive; None if it has not been published."""
        try:
            response = self.session.get(url, timeout=self.REQUEST_TIMEOUT)
        except requests.RequestException as e:
            raise DataFetchError(f"Request failed: {e}", url=url) from e

        if response.status_code == 404:
            logger.debug("Archive not available", url=url)
            return None
        if response.status_code != 200:
            raise DataFetchError(
                f"Unexpected HTTP status {response.status_code}", url=url
            )
        return response.content

    @staticmethod
    def _read_archive(content: bytes) -> List[Candle]:
        """Extract and parse the first CSV member of a zip archive."""
        with zipfile.ZipFile(io.BytesIO(content)) as archive:
            names = archive.namelist()
            if not names:
                return []
            with archive.open(names[0]) as member:
                text = io.TextIOWrapper(member, encoding="utf-8")
                return parse_kline_csv(text)

    def _get_cache_filename(self, symbol: str, interval: str, start: date, end: date) -> str:
        """Generate cache filename."""
        return f"{symbol}_{interval}_{start.strftime('%Y%m%d')}_{end.strftime('%Y%m%d')}.json"

    def _load_from_cache(
        self,
        symbol: str,
        interval: str,
        start: date,
        end: date
    ) -> Optional[List[Candle]]:
        """
        Try to load data from cache.

        Returns None if cache miss or invalid data.
        """
        cache_file = self.cache_dir / self._get_cache_filename(symbol, interval, start, end)

        if not cache_file.exists():
            return None

        try:
            with open(cache_file, "r") as f:
                data = json.load(f)

            if data.get("symbol") != symbol or data.get("interval") != interval:
                logger.warning("Cache metadata mismatch, ignoring cache")
                return None

            candles = [Candle.from_dict(c) for c in data.get("candles", [])]
            return candles or None

        except (json.JSONDecodeError, KeyError, ValueError) as e:
            logger.warning(f"Failed to load cache: {e}")
            return None

    def _save_to_cache(
        self,
        symbol: str,
        interval: str,
        start: date,
        end: date,
        candles: List[Candle]
    ) -> None:
        """Save data to cache."""
        cache_file = self.cache_dir / self._get_cache_filename(symbol, interval, start, end)

        data = {
            "symbol": symbol,
            "interval": interval,
            "start": start.isoformat(),
            "end": end.isoformat(),
            "cached_at": datetime.now(timezone.utc).isoformat(),
            "candle_count": len(candles),
            "candles": [c.to_dict() for c in candles],
        }

        try:
            with open(cache_file, "w") as f:
                json.dump(data, f)
        except OSError as e:
            logger.warning(f"Failed to save cache: {e}")
            return

        logger.info(f"Cached {len(candles)} candles to {cache_file}")

    def clear_cache(self, symbol: Optional[str] = None) -> int:
        """
        Clear cached data.

        Args:
            symbol: If specified, only clear cache for this symbol.

        Returns:
            Number of files deleted.
        """
        count = 0
        for cache_file in self.cache_dir.glob("*.json"):
            if symbol and not cache_file.name.startswith(f"{symbol}_"):
                continue
            cache_file.unlink()
            count += 1

        logger.info(f"Cleared {count} cache files")
        return count
