# AGPL-3.0 License

"""
Run history collection and storage.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import aiosqlite

from prove.log import get_logger
from prove.report.run_report import RunReport


@dataclass(frozen=True)
class Regression:
    """
    A check that ran markedly slower than its recorded baseline.
    """
    check_id: str
    duration_ms: int
    baseline_ms: float

    @property
    def factor(self) -> float:
        return self.duration_ms / self.baseline_ms if self.baseline_ms else 0.0

    def __str__(self) -> str:
        return f"{self.check_id} took {self.duration_ms}ms ({self.factor:.1f}x its {self.baseline_ms:.0f}ms baseline)"


class RunHistoryStore:
    """
    Stores run durations in SQLite with async support via aiosqlite.

    Baselines only consider passing, non-skipped executions, so a check
    that short-circuits on a failure does not drag its baseline down.
    """

    def __init__(
        self,
        db_path: str,
        regression_factor: float = 1.5,
        min_samples: int = 3,
        window: int = 20
    ):
        """
        Args:
            db_path: SQLite database file
            regression_factor: Duration multiple of the baseline that counts as a regression
            min_samples: Passing runs required before a baseline exists
            window: Number of most recent passing runs averaged into the baseline
        """
        self.db_path = db_path
        self.regression_factor = regression_factor
        self.min_samples = min_samples
        self.window = window
        self.logger = get_logger()
        self._initialized = False

    async def initialize(self):
        """
        Initialize database schema.

        Creates the database directory and tables if they don't exist.
        """
        if self._initialized:
            return

        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("""
                CREATE TABLE IF NOT EXISTS runs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp TEXT NOT NULL,
                    mode TEXT NOT NULL,
                    success INTEGER NOT NULL,
                    total_ms INTEGER NOT NULL
                )
            """)

            await db.execute("""
                CREATE TABLE IF NOT EXISTS check_runs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    run_id INTEGER NOT NULL REFERENCES runs(id),
                    check_id TEXT NOT NULL,
                    ok INTEGER NOT NULL,
                    skipped INTEGER NOT NULL,
                    duration_ms INTEGER NOT NULL
                )
            """)

            await db.execute("""
                CREATE INDEX IF NOT EXISTS idx_check_runs_check_id
                ON check_runs(check_id)
            """)

            await db.commit()

        self._initialized = True
        self.logger.debug(f"Run history database initialized at {self.db_path}")

    async def record_run(self, report: RunReport, timestamp: Optional[datetime] = None) -> int:
        """
        Record a finished run and its per-check durations.

        Args:
            report: The run to record
            timestamp: Run time (defaults to now, UTC)

        Returns:
            Row id of the recorded run
        """
        await self.initialize()
        timestamp = timestamp or datetime.now(timezone.utc)
        payload = report.to_dict()

        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                "INSERT INTO runs (timestamp, mode, success, total_ms) VALUES (?, ?, ?, ?)",
                (timestamp.isoformat(), payload["mode"], int(report.success), report.total_ms)
            )
            run_id = cursor.lastrowid

            await db.executemany(
                """
                INSERT INTO check_runs (run_id, check_id, ok, skipped, duration_ms)
                VALUES (?, ?, ?, ?, ?)
                """,
                [
                    (run_id, result.id, int(result.ok), int(result.skipped), result.duration_ms)
                    for result in report.checks
                ]
            )
            await db.commit()

        self.logger.debug(f"Recorded run {run_id} with {len(report.checks)} checks")
        return run_id

    async def baseline(self, check_id: str) -> Optional[float]:
        """
        Mean duration of the check's most recent passing executions.

        Returns:
            Baseline in milliseconds, or None with fewer than min_samples runs
        """
        await self.initialize()

        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(
                """
                SELECT duration_ms FROM check_runs
                WHERE check_id = ? AND ok = 1 AND skipped = 0
                ORDER BY id DESC LIMIT ?
                """,
                (check_id, self.window)
            ) as cursor:
                rows = await cursor.fetchall()

        if len(rows) < self.min_samples:
            return None
        return sum(row[0] for row in rows) / len(rows)

    async def regressions(self, report: RunReport) -> list[Regression]:
        """
        Compare a run against the recorded baselines.

        Call before record_run(), so the run is not part of its own baseline.

        Args:
            report: The run to compare

        Returns:
            Checks whose duration exceeds regression_factor times their baseline
        """
        found = []
        for result in report.checks:
            if not result.ok or result.skipped:
                continue
            baseline = await self.baseline(result.id)
            if baseline and result.duration_ms > self.regression_factor * baseline:
                found.append(Regression(result.id, result.duration_ms, baseline))
        return found
