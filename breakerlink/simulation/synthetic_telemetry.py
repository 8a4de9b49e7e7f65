# breakerlink/simulation/synthetic_telemetry.py
"""
Synthetic telemetry for running without a device.

Generates plausible readings for the current breaker table:
- Load current around a nominal value with gaussian noise
- Occasional fault excursions above the max threshold or below the min
- Master total = sum of load readings, master peak = highest total seen
- Supply voltage with a small amount of noise

The simulated device mirrors local breaker state, so the status mask always
follows the table it is given. Faults are therefore detected locally as
sustained threshold violations, with grace periods honoured.

Integrates with:
- BreakerEngine.apply_update() for the state update
- EngineClock through the engine (STEPPED mode makes runs deterministic)
"""

import asyncio
import random
from dataclasses import dataclass

from breakerlink.core.logging_system import get_logger
from breakerlink.engine.breaker_engine import BreakerEngine
from breakerlink.protocols.base_profile import (
    ProfileKind,
    ProtocolProfile,
    TelemetryUpdate,
)
from breakerlink.state.breaker_table import Breaker, BreakerTable

__all__ = ["SyntheticParameters", "SyntheticTelemetryGenerator", "SyntheticFeed"]


@dataclass
class SyntheticParameters:
    """Synthetic generator settings.

    Attributes:
        interval: Seconds between generated records
        seed: Random seed (None = nondeterministic)
        fault_probability: Chance per load per record of a fault excursion
        nominal_current: Typical reading of a load that is on
        supply_voltage: Nominal supply voltage
        noise_ratio: Standard deviation as a fraction of the nominal value
    """

    interval: float = 1.0
    seed: int | None = None
    fault_probability: float = 0.02
    nominal_current: float = 1.0
    supply_voltage: float = 12.0
    noise_ratio: float = 0.05


class SyntheticTelemetryGenerator:
    """
    Produces one TelemetryUpdate per call from the current table.

    Example:
        >>> generator = SyntheticTelemetryGenerator(SyntheticParameters(seed=7))
        >>> update = generator.next_update(engine.snapshot(), engine.profile)
        >>> engine.apply_update(update)
    """

    def __init__(
        self,
        params: SyntheticParameters | None = None,
        rng: random.Random | None = None,
    ):
        self.params = params if params is not None else SyntheticParameters()
        if not 0.0 <= self.params.fault_probability <= 1.0:
            raise ValueError(
                f"fault_probability must be in [0, 1], got {self.params.fault_probability}"
            )
        self.rng = rng or random.Random(self.params.seed)
        self.peak_total = 0.0
        self.records_generated = 0
        self.faults_injected = 0

    def next_update(self, table: BreakerTable, profile: ProtocolProfile) -> TelemetryUpdate:
        status_mask = 0
        for breaker in table:
            if breaker.is_on:
                status_mask |= 1 << breaker.index

        voltage = max(
            0.0,
            self.rng.gauss(
                self.params.supply_voltage,
                self.params.supply_voltage * self.params.noise_ratio / 5,
            ),
        )

        readings: dict[int, float] = {}
        for load in table.loads:
            if table.master.is_on and load.is_on:
                readings[load.index] = self._load_reading(load)
            else:
                readings[load.index] = 0.0

        total = sum(readings.values())
        self.peak_total = max(self.peak_total, total)

        measurements: dict[int, tuple[float | None, float | None]] = {}
        if profile.kind == ProfileKind.BINARY_V1:
            # Binary layout: master carries supply and total, loads carry
            # their own reading and the supply voltage
            measurements[0] = (round(voltage, 3), round(total, 3))
            for index, value in readings.items():
                measurements[index] = (round(value, 3), round(voltage, 3))
        else:
            measurements[0] = (round(total, 3), round(self.peak_total, 3))
            for index, value in readings.items():
                measurements[index] = (round(value, 3), None)

        self.records_generated += 1
        return TelemetryUpdate(
            status_mask=status_mask,
            slot_count=len(table),
            measurements=measurements,
        )

    def _load_reading(self, load: Breaker) -> float:
        nominal = self.params.nominal_current
        if self.rng.random() < self.params.fault_probability:
            self.faults_injected += 1
            return self._fault_reading(load)
        return max(0.0, self.rng.gauss(nominal, nominal * self.params.noise_ratio))

    def _fault_reading(self, load: Breaker) -> float:
        """Reading outside the breaker's limits."""
        short_possible = bool(load.min_threshold)
        if short_possible and self.rng.random() < 0.5:
            return load.min_threshold * self.rng.uniform(0.2, 0.8)
        ceiling = load.max_threshold or self.params.nominal_current * 3
        return ceiling * self.rng.uniform(1.05, 1.5)


class SyntheticFeed:
    """Feeds generated telemetry into an engine at a fixed interval."""

    def __init__(
        self,
        engine: BreakerEngine,
        generator: SyntheticTelemetryGenerator | None = None,
        interval: float | None = None,
    ):
        self.engine = engine
        self.generator = generator if generator is not None else SyntheticTelemetryGenerator()
        self.interval = self.generator.params.interval if interval is None else interval
        if self.interval <= 0:
            raise ValueError(f"interval must be > 0, got {self.interval}")

        self._running = False
        self._feed_task: asyncio.Task | None = None
        self.tick_errors = 0
        self.logger = get_logger(self.__class__.__name__, device=engine.device_name)

    def tick(self) -> None:
        """Generate and apply one record."""
        update = self.generator.next_update(self.engine.snapshot(), self.engine.profile)
        self.engine.apply_update(update)

    async def start(self) -> None:
        if self._running:
            self.logger.warning("Synthetic feed already running")
            return
        self._running = True
        self._feed_task = asyncio.create_task(self._feed_loop())
        self.logger.info(f"Synthetic feed started (interval: {self.interval}s)")

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        if self._feed_task:
            self._feed_task.cancel()
            try:
                await self._feed_task
            except asyncio.CancelledError:
                pass
            self._feed_task = None
        self.logger.info(
            f"Synthetic feed stopped after {self.generator.records_generated} records"
        )

    async def _feed_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.interval)
            try:
                self.tick()
            except Exception as e:
                self.tick_errors += 1
                self.logger.error(f"Synthetic tick failed: {e}", exc_info=True)
