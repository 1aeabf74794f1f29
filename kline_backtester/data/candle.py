"""
Candle records and the ordered feed the backtest engine pulls from.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterator, List, Optional, Sequence


@dataclass(frozen=True)
class Candle:
    """One OHLCV bar covering [start_time, end_time)."""
    start_time: datetime
    end_time: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float

    def to_dict(self) -> dict:
        """Serialize candle to dictionary."""
        return {
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Candle":
        """Deserialize candle from dictionary."""
        return cls(
            start_time=datetime.fromisoformat(data["start_time"]),
            end_time=datetime.fromisoformat(data["end_time"]),
            open=float(data["open"]),
            high=float(data["high"]),
            low=float(data["low"]),
            close=float(data["close"]),
            volume=float(data["volume"]),
        )


class CandleFeed:
    """
    Finite, forward-only sequence of candles.

    The feed is validated once at construction: every candle must have
    start_time < end_time and end_time must be strictly increasing.
    A feed cannot be rewound; build a new one to replay.
    """

    def __init__(self, candles: Sequence[Candle]):
        """
        Initialize the feed.

        Args:
            candles: Candles sorted by end_time.

        Raises:
            ValueError: If the candles are malformed or out of order.
        """
        self._candles: List[Candle] = list(candles)
        self._validate()
        self._position = 0

    def _validate(self) -> None:
        previous: Optional[Candle] = None
        for index, candle in enumerate(self._candles):
            if candle.start_time >= candle.end_time:
                raise ValueError(
                    f"Candle {index} has start_time {candle.start_time} "
                    f"not before end_time {candle.end_time}"
                )
            if previous is not None and candle.end_time <= previous.end_time:
                raise ValueError(
                    f"Candle {index} end_time {candle.end_time} is not after "
                    f"previous end_time {previous.end_time}"
                )
            previous = candle

    def has_next(self) -> bool:
        """Whether another candle can be pulled."""
        return self._position < len(self._candles)

    def next(self) -> Candle:
        """
        Pull the next candle.

        Raises:
            StopIteration: When the feed is exhausted.
        """
        if not self.has_next():
            raise StopIteration
        candle = self._candles[self._position]
        self._position += 1
        return candle

    def peek(self) -> Optional[Candle]:
        """Return the next candle without consuming it."""
        if not self.has_next():
            return None
        return self._candles[self._position]

    @property
    def consumed(self) -> int:
        """Number of candles pulled so far."""
        return self._position

    def __len__(self) -> int:
        return len(self._candles)

    def __iter__(self) -> Iterator[Candle]:
        return self

    def __next__(self) -> Candle:
        return self.next()
