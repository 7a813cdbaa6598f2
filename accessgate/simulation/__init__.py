from accessgate.simulation.harness import SimulationHarness
from accessgate.simulation.types import BatchReport, SimulationResult, StressReport

__all__ = ["BatchReport", "SimulationHarness", "SimulationResult", "StressReport"]
